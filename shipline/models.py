"""Data model shared by the builder, publisher, deployer and orchestrator."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from shipline.config import DEFAULT_ALIAS


class RunState(str, Enum):
    """States of a pipeline run."""

    TRIGGERED = "triggered"
    INSTALLING = "installing"
    TESTING = "testing"
    BUILDING = "building"
    PUBLISHING = "publishing"
    DEPLOYING = "deploying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.FAILED)


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class BuildArtifact(BaseModel):
    """A container image produced from one source snapshot.

    ``tag`` is immutable (commit sha or source digest prefix); ``alias`` is
    the mutable pointer pushed next to it.
    """

    model_config = ConfigDict(frozen=True)

    repository: str
    tag: str
    alias: str = DEFAULT_ALIAS
    image_id: str = ""
    source_digest: str = ""
    platform: str = ""
    created_at: float = Field(default_factory=time.time)

    @property
    def reference(self) -> str:
        return f"{self.repository}:{self.tag}"

    @property
    def alias_reference(self) -> str:
        return f"{self.repository}:{self.alias}"


class RegistryCredential(BaseModel):
    """Username/token pair for one authenticated registry session."""

    model_config = ConfigDict(frozen=True)

    username: SecretStr
    token: SecretStr


class DeployTarget(BaseModel):
    """Remote host the artifact is run on."""

    model_config = ConfigDict(frozen=True)

    host: str
    user: str
    private_key: SecretStr
    port: int = 22

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"


class PublishResult(BaseModel):
    """References pushed for one artifact."""

    references: list[str] = Field(default_factory=list)
    digest: str = ""


class RemoteCommandRecord(BaseModel):
    """Outcome of a single command run on the deploy target."""

    command: str
    returncode: int = 0
    skipped: bool = False  # soft no-op, e.g. stopping a missing container
    output: str = ""


class DeployResult(BaseModel):
    image: str = ""
    container_name: str = ""
    commands: list[RemoteCommandRecord] = Field(default_factory=list)
    replaced_existing: bool = False


class PushEvent(BaseModel):
    """A source-control push that may trigger a run."""

    ref: str
    commit_sha: str = ""
    repository: str = ""
    pusher: str = ""

    @property
    def branch(self) -> str:
        prefix = "refs/heads/"
        return self.ref[len(prefix):] if self.ref.startswith(prefix) else self.ref

    @classmethod
    def from_github(cls, payload: dict[str, Any]) -> PushEvent:
        """Build an event from a GitHub ``push`` webhook payload."""
        repo = payload.get("repository") or {}
        pusher = payload.get("pusher") or {}
        return cls(
            ref=payload.get("ref", ""),
            commit_sha=payload.get("after", ""),
            repository=repo.get("full_name", ""),
            pusher=pusher.get("name", ""),
        )


class StepResult(BaseModel):
    """Terminal status of one named pipeline step."""

    name: str
    status: StepStatus = StepStatus.SKIPPED
    started_at: float | None = None
    duration_seconds: float = 0.0
    detail: str = ""
    error: str | None = None


class PipelineRun(BaseModel):
    """One end-to-end execution from trigger to terminal state."""

    run_id: str
    trigger: PushEvent
    state: RunState = RunState.TRIGGERED
    history: list[RunState] = Field(default_factory=lambda: [RunState.TRIGGERED])
    steps: list[StepResult] = Field(default_factory=list)
    failure_reason: str | None = None
    failure_message: str | None = None
    artifact: BuildArtifact | None = None
    published: list[str] = Field(default_factory=list)
    deploy: DeployResult | None = None
    started_at: float = Field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.SUCCEEDED

    def step(self, name: str) -> StepResult:
        """Return the step called *name*."""
        for s in self.steps:
            if s.name == name:
                return s
        raise KeyError(name)
