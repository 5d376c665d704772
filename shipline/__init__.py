"""shipline — build, test, publish and deploy a containerised service over SSH."""

__version__ = "1.0.0"

from shipline.build.builder import ArtifactBuilder
from shipline.build.toolchain import ProjectToolchain
from shipline.deploy.deployer import RemoteDeployer
from shipline.deploy.health import ProbeResult, ServiceProbe
from shipline.deploy.ssh import RemoteCommand, SSHSession
from shipline.errors import (
    AuthError,
    BuildError,
    ConnectError,
    HealthCheckError,
    InvalidTransition,
    PublishError,
    RemoteCommandError,
    RunCancelled,
    ShiplineError,
    StepTimeoutError,
    FailedTestsError,
)
from shipline.models import (
    BuildArtifact,
    DeployResult,
    DeployTarget,
    PipelineRun,
    PublishResult,
    PushEvent,
    RegistryCredential,
    RunState,
    StepResult,
    StepStatus,
)
from shipline.pipeline.orchestrator import PipelineOrchestrator
from shipline.pipeline.states import RunStateMachine
from shipline.publish.registry import RegistryPublisher
from shipline.runner import CommandResult, CommandRunner
from shipline.scaffold.ci import WorkflowGenerator
from shipline.scaffold.docker import DockerfileGenerator
from shipline.settings import PipelineSecrets, PipelineSettings, SettingsLoader

__all__ = [
    "__version__",
    # Pipeline
    "PipelineOrchestrator",
    "RunStateMachine",
    # Components
    "ArtifactBuilder",
    "CommandResult",
    "CommandRunner",
    "ProjectToolchain",
    "ProbeResult",
    "RegistryPublisher",
    "RemoteCommand",
    "RemoteDeployer",
    "SSHSession",
    "ServiceProbe",
    # Configuration and scaffolding
    "DockerfileGenerator",
    "PipelineSecrets",
    "PipelineSettings",
    "SettingsLoader",
    "WorkflowGenerator",
    # Data model
    "BuildArtifact",
    "DeployResult",
    "DeployTarget",
    "PipelineRun",
    "PublishResult",
    "PushEvent",
    "RegistryCredential",
    "RunState",
    "StepResult",
    "StepStatus",
    # Errors
    "AuthError",
    "BuildError",
    "ConnectError",
    "HealthCheckError",
    "InvalidTransition",
    "PublishError",
    "RemoteCommandError",
    "RunCancelled",
    "ShiplineError",
    "StepTimeoutError",
    "FailedTestsError",
]
