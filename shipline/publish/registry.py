"""RegistryPublisher — pushes an artifact under its immutable tag and alias."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile

from shipline.errors import AuthError, PublishError
from shipline.models import BuildArtifact, PublishResult, RegistryCredential
from shipline.runner import CommandRunner

logger = logging.getLogger(__name__)

# "latest: digest: sha256:ab12... size: 1573"
_DIGEST_RE = re.compile(r"digest:\s*(sha256:[0-9a-f]{64})")


class RegistryPublisher:
    """Authenticate once and push both tags of an artifact.

    Parameters
    ----------
    registry:
        Registry host passed to ``docker login``; empty for Docker Hub.
    runner:
        Command runner; substitute a fake in tests.
    """

    def __init__(self, registry: str = "", runner: CommandRunner | None = None) -> None:
        self.registry = registry
        self.runner = runner or CommandRunner()

    def publish(
        self,
        artifact: BuildArtifact,
        credential: RegistryCredential,
        *,
        timeout: float | None = None,
    ) -> PublishResult:
        """Push *artifact* as ``repo:tag`` and ``repo:alias``.

        Both pushes must succeed.  The login lives in a private
        ``DOCKER_CONFIG`` directory that is logged out and deleted afterwards
        whatever the outcome, so concurrent runs do not share a session.

        Raises
        ------
        AuthError
            The registry rejected the credential.
        PublishError
            Tagging or a push failed, or the two tags resolved to
            different digests.
        """
        config_dir = tempfile.mkdtemp(prefix="shipline-docker-")
        env = {"DOCKER_CONFIG": config_dir}
        try:
            self._login(credential, env, timeout)
            try:
                return self._push_both(artifact, env, timeout)
            finally:
                self._logout(env, timeout)
        finally:
            shutil.rmtree(config_dir, ignore_errors=True)

    def _login(
        self,
        credential: RegistryCredential,
        env: dict[str, str],
        timeout: float | None,
    ) -> None:
        cmd = ["docker", "login", "--username", credential.username.get_secret_value(), "--password-stdin"]
        if self.registry:
            cmd.append(self.registry)
        result = self.runner.run(
            cmd,
            input=credential.token.get_secret_value(),
            timeout=timeout,
            env=env,
        )
        if not result.ok:
            raise AuthError(
                f"Registry login failed (rc={result.returncode}): {result.tail(3)}"
            )
        logger.info("Logged in to %s", self.registry or "Docker Hub")

    def _push_both(
        self,
        artifact: BuildArtifact,
        env: dict[str, str],
        timeout: float | None,
    ) -> PublishResult:
        tagged = self.runner.run(
            ["docker", "tag", artifact.reference, artifact.alias_reference],
            timeout=timeout,
        )
        if not tagged.ok:
            raise PublishError(
                f"docker tag {artifact.alias_reference} failed: {tagged.tail(3)}"
            )

        digests: list[str] = []
        references: list[str] = []
        for ref in (artifact.reference, artifact.alias_reference):
            result = self.runner.run(["docker", "push", ref], timeout=timeout, env=env)
            if not result.ok:
                raise PublishError(
                    f"docker push {ref} failed (rc={result.returncode}): {result.tail(5)}"
                )
            match = _DIGEST_RE.search(result.stdout)
            if match:
                digests.append(match.group(1))
            references.append(ref)
            logger.info("Pushed %s", ref)

        if len(set(digests)) > 1:
            raise PublishError(
                f"{artifact.reference} and {artifact.alias_reference} "
                f"resolved to different digests: {', '.join(digests)}"
            )

        return PublishResult(references=references, digest=digests[0] if digests else "")

    def _logout(self, env: dict[str, str], timeout: float | None) -> None:
        cmd = ["docker", "logout"]
        if self.registry:
            cmd.append(self.registry)
        try:
            result = self.runner.run(cmd, timeout=timeout, env=env)
        except TimeoutError:
            logger.warning("docker logout timed out")
            return
        if not result.ok:
            logger.warning("docker logout failed: %s", result.tail(3))
