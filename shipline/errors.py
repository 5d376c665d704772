"""Exception hierarchy for pipeline failures.

Every error raised by a pipeline step is fatal to its run.  The class name
becomes the run's ``failure_reason``.
"""

from __future__ import annotations


class ShiplineError(Exception):
    """Base class for all shipline errors."""


class BuildError(ShiplineError):
    """Raised when dependency installation, packaging or image build fails."""


class FailedTestsError(BuildError):
    """Raised when the project's test command exits non-zero."""


class AuthError(ShiplineError):
    """Raised when the registry rejects the credential."""


class PublishError(ShiplineError):
    """Raised when a tag or push is rejected by the registry."""


class ConnectError(ShiplineError):
    """Raised when the remote session cannot be established or is lost."""


class RemoteCommandError(ShiplineError):
    """Raised when a remote command exits with a non-zero status."""

    def __init__(self, command: str, returncode: int, stderr: str = "") -> None:
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        msg = f"remote command failed (rc={returncode}): {command}"
        if stderr:
            msg += f": {stderr.strip()}"
        super().__init__(msg)


class StepTimeoutError(ShiplineError, TimeoutError):
    """Raised when an external call exceeds its time bound."""

    def __init__(self, command: str, timeout: float) -> None:
        self.command = command
        self.timeout = timeout
        super().__init__(f"{command} timed out after {timeout:g}s")


class HealthCheckError(ShiplineError):
    """Raised when the deployed service does not answer as expected."""


class RunCancelled(ShiplineError):
    """Raised when a run is cancelled between steps."""


class InvalidTransition(ShiplineError, ValueError):
    """Raised on an illegal pipeline state change."""
