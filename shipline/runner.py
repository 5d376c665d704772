"""CommandRunner — run docker, ssh and toolchain commands.

All external tools are driven through :func:`subprocess.run`; no Docker SDK
or SSH library dependency.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import BaseModel, Field

from shipline.errors import StepTimeoutError
from shipline.security.redact import Redactor, default_redactor

logger = logging.getLogger(__name__)

# Exit statuses reported when the executable is missing or cannot be run,
# matching the shell's conventions
COMMAND_NOT_FOUND = 127
COMMAND_NOT_EXECUTABLE = 126


class CommandResult(BaseModel):
    """Outcome of one external command."""

    argv: list[str] = Field(default_factory=list)
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def tail(self, lines: int = 20) -> str:
        """Return the last *lines* of stderr, or of stdout when stderr is empty."""
        text = self.stderr.strip() or self.stdout.strip()
        return "\n".join(text.splitlines()[-lines:])


class CommandRunner:
    """Execute commands with a time bound and redacted logging.

    Parameters
    ----------
    redactor:
        Masks secrets in the command lines and output written to the log.
    """

    def __init__(self, redactor: Redactor = default_redactor) -> None:
        self.redactor = redactor

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        input: str | None = None,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        """Run *argv* and return its result.

        Raises :class:`StepTimeoutError` when *timeout* elapses.  An
        executable that is missing (127) or cannot be started (126) is
        reported as a return code, not an exception.  Undecodable output
        bytes are replaced rather than raised.
        """
        argv = [str(a) for a in argv]
        display = self.redactor.redact(shlex.join(argv))
        logger.debug("$ %s (cwd=%s)", display, cwd)

        merged_env = None
        if env:
            merged_env = {**os.environ, **env}

        start = time.monotonic()
        try:
            proc = subprocess.run(
                argv,
                cwd=cwd,
                input=input,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=timeout,
                env=merged_env,
            )
        except subprocess.TimeoutExpired as exc:
            raise StepTimeoutError(display, timeout or 0.0) from exc
        except FileNotFoundError as exc:
            logger.debug("Executable not found: %s", argv[0])
            return CommandResult(
                argv=argv,
                returncode=COMMAND_NOT_FOUND,
                stderr=f"{argv[0]}: command not found ({exc})",
                duration_seconds=time.monotonic() - start,
            )
        except OSError as exc:
            logger.debug("Could not execute %s: %s", argv[0], exc)
            return CommandResult(
                argv=argv,
                returncode=COMMAND_NOT_EXECUTABLE,
                stderr=f"{argv[0]}: cannot execute ({exc})",
                duration_seconds=time.monotonic() - start,
            )

        result = CommandResult(
            argv=argv,
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
            duration_seconds=time.monotonic() - start,
        )
        if not result.ok:
            logger.debug(
                "%s exited %d: %s",
                argv[0], result.returncode, self.redactor.redact(result.tail(5)),
            )
        return result
