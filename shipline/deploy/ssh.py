"""SSHSession — one OpenSSH session that runs a fixed command sequence.

The commands are sent as a single ``sh`` script over one ``ssh``
invocation.  The script reports each command's exit status on a marker line
and stops at the first failure that is not explicitly tolerated.
"""

from __future__ import annotations

import logging
import os
import secrets
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from shipline.errors import ConnectError, RemoteCommandError
from shipline.models import DeployTarget, RemoteCommandRecord
from shipline.runner import CommandRunner, CommandResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteCommand:
    """A command to run on the deploy target.

    ``tolerate`` is a substring of the command's output that turns a
    non-zero exit into a soft no-op.
    """

    argv: tuple[str, ...]
    tolerate: str | None = None

    @property
    def line(self) -> str:
        return shlex.join(self.argv)


class SSHSession:
    """Context manager holding the key material for one remote session.

    The private key is written to a private temporary directory (mode
    0600) on entry and removed on exit.

    Parameters
    ----------
    target:
        Host, login and key to connect with.
    connect_timeout:
        Seconds allowed for the connection to be established.
    command_timeout:
        Seconds allowed for the whole command sequence once connected.
    """

    def __init__(
        self,
        target: DeployTarget,
        runner: CommandRunner | None = None,
        *,
        connect_timeout: float = 30.0,
        command_timeout: float = 300.0,
    ) -> None:
        self.target = target
        self.runner = runner or CommandRunner()
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self._workdir: Path | None = None
        self.marker = f"__shipline_{secrets.token_hex(4)}__"

    # -- Context management ---------------------------------------------------

    def __enter__(self) -> SSHSession:
        self._workdir = Path(tempfile.mkdtemp(prefix="shipline-ssh-"))
        key = self.target.private_key.get_secret_value()
        if not key.endswith("\n"):
            key += "\n"
        fd = os.open(self.key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(key)
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    @property
    def key_path(self) -> Path:
        if self._workdir is None:
            raise RuntimeError("SSHSession is not open")
        return self._workdir / "id_deploy"

    # -- Commands -------------------------------------------------------------

    def ssh_command(self, remote: str) -> list[str]:
        """Return the ``ssh`` argument vector that runs *remote* on the target."""
        key_path = self.key_path
        return [
            "ssh",
            "-i", str(key_path),
            "-p", str(self.target.port),
            "-o", "BatchMode=yes",
            "-o", "IdentitiesOnly=yes",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"UserKnownHostsFile={key_path.parent / 'known_hosts'}",
            "-o", f"ConnectTimeout={max(1, int(self.connect_timeout))}",
            self.target.destination,
            remote,
        ]

    def script(self, commands: list[RemoteCommand]) -> str:
        """Render *commands* as a fail-fast shell script with status markers."""
        lines = ["exec 2>&1"]
        for i, cmd in enumerate(commands):
            lines.append(f"out=$({cmd.line} 2>&1); rc=$?")
            lines.append('printf \'%s\\n\' "$out"')
            lines.append(f"printf '\\n{self.marker} {i} %d\\n' \"$rc\"")
            if cmd.tolerate:
                lines.append(
                    f'if [ "$rc" -ne 0 ]; then case "$out" in '
                    f'*{shlex.quote(cmd.tolerate)}*) ;; *) exit "$rc" ;; esac; fi'
                )
            else:
                lines.append('[ "$rc" -eq 0 ] || exit "$rc"')
        lines.append("exit 0")
        return "\n".join(lines) + "\n"

    def execute(self, commands: list[RemoteCommand]) -> list[RemoteCommandRecord]:
        """Run *commands* in order within one session.

        Raises
        ------
        ConnectError
            The session could not be established or dropped mid-sequence.
        RemoteCommandError
            A command exited non-zero and its failure was not tolerated.
        """
        result = self.runner.run(
            self.ssh_command("sh -s"),
            input=self.script(commands),
            timeout=self.connect_timeout + self.command_timeout,
        )
        records = self._parse(result, commands)

        for cmd, record in zip(commands, records):
            if record.returncode == 0:
                continue
            if cmd.tolerate and cmd.tolerate in record.output:
                record.skipped = True
                logger.info("%s: nothing to do (%s)", cmd.line, cmd.tolerate)
                continue
            raise RemoteCommandError(cmd.line, record.returncode, record.output)

        if len(records) < len(commands):
            detail = result.tail(5)
            if not records:
                raise ConnectError(
                    f"Could not open session to {self.target.host} "
                    f"(rc={result.returncode}): {detail}"
                )
            raise ConnectError(
                f"Session to {self.target.host} ended after "
                f"{len(records)}/{len(commands)} commands (rc={result.returncode}): {detail}"
            )
        return records

    def _parse(
        self,
        result: CommandResult,
        commands: list[RemoteCommand],
    ) -> list[RemoteCommandRecord]:
        records: list[RemoteCommandRecord] = []
        pending: list[str] = []
        for line in result.stdout.splitlines():
            if line.startswith(self.marker):
                _, index, rc = line.split()
                records.append(RemoteCommandRecord(
                    command=commands[int(index)].line,
                    returncode=int(rc),
                    output="\n".join(pending).strip(),
                ))
                pending = []
            else:
                pending.append(line)
        return records
