"""ProjectToolchain — dependency install and test gate for a source snapshot."""

from __future__ import annotations

import logging
import shlex
from collections.abc import Sequence
from pathlib import Path

from shipline.errors import BuildError, FailedTestsError
from shipline.runner import CommandRunner

logger = logging.getLogger(__name__)


class ProjectToolchain:
    """Run the project's own install and test commands.

    Parameters
    ----------
    install_command:
        Argument vector for dependency installation (e.g. ``npm install``).
    test_command:
        Argument vector for the test suite (e.g. ``npm test``).
    runner:
        Command runner; substitute a fake in tests.
    """

    def __init__(
        self,
        install_command: Sequence[str],
        test_command: Sequence[str],
        runner: CommandRunner | None = None,
    ) -> None:
        self.install_command = list(install_command)
        self.test_command = list(test_command)
        self.runner = runner or CommandRunner()

    def install(self, source: str | Path, *, timeout: float | None = None) -> str:
        """Install dependencies inside *source*.  Returns the command output."""
        root = _require_source(source)
        result = self.runner.run(self.install_command, cwd=root, timeout=timeout)
        if not result.ok:
            raise BuildError(
                f"{shlex.join(self.install_command)} failed (rc={result.returncode}): "
                f"{result.tail()}"
            )
        logger.info("Dependencies installed in %s", root)
        return result.stdout

    def test(self, source: str | Path, *, timeout: float | None = None) -> str:
        """Run the test suite inside *source*.  Returns the command output."""
        root = _require_source(source)
        result = self.runner.run(self.test_command, cwd=root, timeout=timeout)
        if not result.ok:
            raise FailedTestsError(
                f"{shlex.join(self.test_command)} failed (rc={result.returncode}): "
                f"{result.tail()}"
            )
        logger.info("Test gate passed")
        return result.stdout


def _require_source(source: str | Path) -> Path:
    root = Path(source)
    if not root.is_dir():
        raise BuildError(f"Source snapshot not found: {root}")
    return root
