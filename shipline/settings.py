"""Pipeline settings and secrets: environment layering and validation."""

from __future__ import annotations

import json
import logging
import os
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, SecretStr

from shipline.config import (
    CONFIG_DIR,
    DEFAULT_ALIAS,
    DEFAULT_BRANCH,
    DEFAULT_CONTAINER_NAME,
    DEFAULT_INSTALL_COMMAND,
    DEFAULT_PLATFORM,
    DEFAULT_SERVICE_PORT,
    DEFAULT_TEST_COMMAND,
    DEFAULT_TIMEOUTS,
)
from shipline.errors import AuthError, ConnectError
from shipline.models import DeployTarget, RegistryCredential

logger = logging.getLogger(__name__)

# All known configuration keys with defaults
_CONFIG_KEYS: dict[str, dict[str, Any]] = {
    "SHIPLINE_BRANCH": {"default": DEFAULT_BRANCH, "description": "Branch whose pushes trigger a run"},
    "SHIPLINE_SOURCE_DIR": {"default": ".", "description": "Source snapshot directory"},
    "SHIPLINE_LOG_LEVEL": {"default": "INFO", "description": "Logging level"},
    "SHIPLINE_IMAGE_REPOSITORY": {"default": "", "description": "Image repository, e.g. user/app"},
    "SHIPLINE_REGISTRY": {"default": "", "description": "Registry host (empty for Docker Hub)"},
    "SHIPLINE_PLATFORM": {"default": DEFAULT_PLATFORM, "description": "Target build platform"},
    "SHIPLINE_IMAGE_ALIAS": {"default": DEFAULT_ALIAS, "description": "Mutable tag pushed with each build"},
    "SHIPLINE_SOURCE_DATE_EPOCH": {"default": "", "description": "Pinned build timestamp for reproducible images"},
    "SHIPLINE_INSTALL_COMMAND": {"default": DEFAULT_INSTALL_COMMAND, "description": "Dependency install command"},
    "SHIPLINE_TEST_COMMAND": {"default": DEFAULT_TEST_COMMAND, "description": "Test gate command"},
    "SHIPLINE_CONTAINER_NAME": {"default": DEFAULT_CONTAINER_NAME, "description": "Container name on the deploy target"},
    "SHIPLINE_SERVICE_PORT": {"default": str(DEFAULT_SERVICE_PORT), "description": "Port the service listens on"},
    "SHIPLINE_HOST_PORT": {"default": "", "description": "Published host port (defaults to the service port)"},
    "SHIPLINE_VERIFY_DEPLOY": {"default": "false", "description": "Probe the service after deploying"},
    "SHIPLINE_EXPECTED_BODY": {"default": "", "description": "Body the probe expects (empty: any 200)"},
    "SHIPLINE_DEPLOY_SSH_PORT": {"default": "22", "description": "SSH port of the deploy target"},
    "SHIPLINE_REGISTRY_USERNAME": {"default": "", "description": "Registry username (secret)", "secret": True},
    "SHIPLINE_REGISTRY_TOKEN": {"default": "", "description": "Registry access token (secret)", "secret": True},
    "SHIPLINE_DEPLOY_HOST": {"default": "", "description": "Deploy target address (secret)", "secret": True},
    "SHIPLINE_DEPLOY_USER": {"default": "", "description": "Deploy target login name (secret)", "secret": True},
    "SHIPLINE_DEPLOY_KEY": {"default": "", "description": "Deploy target private key (secret)", "secret": True},
}

for _step, _seconds in DEFAULT_TIMEOUTS.items():
    _CONFIG_KEYS[f"SHIPLINE_TIMEOUT_{_step.upper()}"] = {
        "default": f"{_seconds:g}",
        "description": f"Timeout in seconds for each {_step} call",
    }

_TRUTHY = {"1", "true", "yes", "on"}


class ImageSettings(BaseModel):
    repository: str = ""
    registry: str = ""
    platform: str = DEFAULT_PLATFORM
    alias: str = DEFAULT_ALIAS
    source_date_epoch: int | None = None

    @property
    def full_repository(self) -> str:
        """Repository qualified with the registry host, when one is set."""
        if self.registry and not self.repository.startswith(f"{self.registry}/"):
            return f"{self.registry}/{self.repository}"
        return self.repository


class CommandSettings(BaseModel):
    """Toolchain commands run inside the source snapshot."""

    install: list[str] = Field(default_factory=lambda: shlex.split(DEFAULT_INSTALL_COMMAND))
    test: list[str] = Field(default_factory=lambda: shlex.split(DEFAULT_TEST_COMMAND))


class DeploySettings(BaseModel):
    container_name: str = DEFAULT_CONTAINER_NAME
    port: int = DEFAULT_SERVICE_PORT
    host_port: int | None = None
    ssh_port: int = 22
    verify: bool = False
    expected_body: str | None = None

    @property
    def published_port(self) -> int:
        return self.host_port or self.port


class StepTimeouts(BaseModel):
    """Per-call bounds, in seconds, for every external call."""

    install: float = DEFAULT_TIMEOUTS["install"]
    test: float = DEFAULT_TIMEOUTS["test"]
    build: float = DEFAULT_TIMEOUTS["build"]
    publish: float = DEFAULT_TIMEOUTS["publish"]
    connect: float = DEFAULT_TIMEOUTS["connect"]
    remote: float = DEFAULT_TIMEOUTS["remote"]


class PipelineSettings(BaseModel):
    """Non-secret configuration for one pipeline."""

    branch: str = DEFAULT_BRANCH
    source_dir: Path = Path(".")
    log_level: str = "INFO"
    image: ImageSettings = Field(default_factory=ImageSettings)
    commands: CommandSettings = Field(default_factory=CommandSettings)
    deploy: DeploySettings = Field(default_factory=DeploySettings)
    timeouts: StepTimeouts = Field(default_factory=StepTimeouts)


class PipelineSecrets(BaseModel):
    """The opaque values a run consumes but never logs."""

    registry_username: SecretStr = SecretStr("")
    registry_token: SecretStr = SecretStr("")
    deploy_host: SecretStr = SecretStr("")
    deploy_user: SecretStr = SecretStr("")
    deploy_key: SecretStr = SecretStr("")

    def missing(self) -> list[str]:
        """Return the names of unset values."""
        names = []
        for name in ("registry_username", "registry_token", "deploy_host", "deploy_user", "deploy_key"):
            if not getattr(self, name).get_secret_value():
                names.append(name)
        return names

    def values(self) -> list[str]:
        """Return every non-empty value, for registration with a redactor."""
        raw = [
            self.registry_username.get_secret_value(),
            self.registry_token.get_secret_value(),
            self.deploy_host.get_secret_value(),
            self.deploy_user.get_secret_value(),
            self.deploy_key.get_secret_value(),
        ]
        return [v for v in raw if v]

    def registry_credential(self) -> RegistryCredential:
        if not self.registry_username.get_secret_value() or not self.registry_token.get_secret_value():
            raise AuthError("registry credential is not configured")
        return RegistryCredential(username=self.registry_username, token=self.registry_token)

    def deploy_target(self, port: int = 22) -> DeployTarget:
        host = self.deploy_host.get_secret_value()
        user = self.deploy_user.get_secret_value()
        if not host or not user or not self.deploy_key.get_secret_value():
            raise ConnectError("deploy target is not configured")
        return DeployTarget(host=host, user=user, private_key=self.deploy_key, port=port)


class SettingsLoader:
    """Load shipline configuration for a project."""

    def generate_env_template(self, project_path: str | Path) -> Path:
        """Create .env.example with all config keys; secrets are left empty.

        Returns the path to the generated file.
        """
        root = Path(project_path)
        env_path = root / ".env.example"

        lines = ["# shipline configuration template", "# Copy to .env and fill in values", ""]
        for key, info in _CONFIG_KEYS.items():
            lines.append(f"# {info['description']}")
            lines.append(f"{key}={'' if info.get('secret') else info['default']}")
            lines.append("")

        env_path.write_text("\n".join(lines), encoding="utf-8")
        return env_path

    def load_raw(
        self,
        project_path: str | Path,
        environ: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Load merged config: defaults -> config.json -> .env -> env vars.

        Secret keys are never read from ``config.json``, which is meant to
        be committed.
        """
        root = Path(project_path)
        environ = os.environ if environ is None else environ
        config: dict[str, str] = {key: str(info["default"]) for key, info in _CONFIG_KEYS.items()}

        # 1. .shipline/config.json
        config_json = root / CONFIG_DIR / "config.json"
        if config_json.is_file():
            try:
                data = json.loads(config_json.read_text(encoding="utf-8"))
                for k, v in data.items():
                    if _CONFIG_KEYS.get(k, {}).get("secret"):
                        logger.warning("Ignoring secret %s in %s", k, config_json)
                        continue
                    config[k] = str(v)
            except (json.JSONDecodeError, OSError):
                logger.debug("Could not read config.json", exc_info=True)

        # 2. .env file
        env_file = root / ".env"
        if env_file.is_file():
            try:
                for line in env_file.read_text(encoding="utf-8").splitlines():
                    line = line.strip()
                    if not line or line.startswith("#"):
                        continue
                    if "=" in line:
                        k, v = line.split("=", 1)
                        config[k.strip()] = _unquote(v.strip())
            except OSError:
                logger.debug("Could not read .env", exc_info=True)

        # 3. Environment variables override all
        for key in _CONFIG_KEYS:
            env_val = environ.get(key)
            if env_val is not None:
                config[key] = env_val

        return config

    def load(
        self,
        project_path: str | Path = ".",
        environ: Mapping[str, str] | None = None,
    ) -> tuple[PipelineSettings, PipelineSecrets]:
        """Return validated settings and secrets for *project_path*."""
        raw = self.load_raw(project_path, environ)
        root = Path(project_path)

        source_dir = Path(raw["SHIPLINE_SOURCE_DIR"])
        if not source_dir.is_absolute():
            source_dir = root / source_dir

        settings = PipelineSettings(
            branch=raw["SHIPLINE_BRANCH"],
            source_dir=source_dir,
            log_level=raw["SHIPLINE_LOG_LEVEL"],
            image=ImageSettings(
                repository=raw["SHIPLINE_IMAGE_REPOSITORY"],
                registry=raw["SHIPLINE_REGISTRY"],
                platform=raw["SHIPLINE_PLATFORM"],
                alias=raw["SHIPLINE_IMAGE_ALIAS"],
                source_date_epoch=raw["SHIPLINE_SOURCE_DATE_EPOCH"] or None,
            ),
            commands=CommandSettings(
                install=shlex.split(raw["SHIPLINE_INSTALL_COMMAND"]),
                test=shlex.split(raw["SHIPLINE_TEST_COMMAND"]),
            ),
            deploy=DeploySettings(
                container_name=raw["SHIPLINE_CONTAINER_NAME"],
                port=raw["SHIPLINE_SERVICE_PORT"],
                host_port=raw["SHIPLINE_HOST_PORT"] or None,
                ssh_port=raw["SHIPLINE_DEPLOY_SSH_PORT"],
                verify=raw["SHIPLINE_VERIFY_DEPLOY"].strip().lower() in _TRUTHY,
                expected_body=raw["SHIPLINE_EXPECTED_BODY"] or None,
            ),
            timeouts=StepTimeouts(**{
                step: raw[f"SHIPLINE_TIMEOUT_{step.upper()}"] for step in DEFAULT_TIMEOUTS
            }),
        )

        key = raw["SHIPLINE_DEPLOY_KEY"]
        if key and "\n" not in key and "\\n" in key:
            # Single-line form used in .env files
            key = key.replace("\\n", "\n")

        secrets = PipelineSecrets(
            registry_username=raw["SHIPLINE_REGISTRY_USERNAME"],
            registry_token=raw["SHIPLINE_REGISTRY_TOKEN"],
            deploy_host=raw["SHIPLINE_DEPLOY_HOST"],
            deploy_user=raw["SHIPLINE_DEPLOY_USER"],
            deploy_key=key,
        )

        username = secrets.registry_username.get_secret_value()
        if not settings.image.repository and username:
            settings.image.repository = f"{username}/{settings.deploy.container_name}"

        return settings, secrets


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
        return value[1:-1]
    return value
