"""RemoteDeployer — replaces the running container on the deploy target."""

from __future__ import annotations

import logging

from shipline.config import DEFAULT_CONTAINER_NAME, DEFAULT_SERVICE_PORT, NO_SUCH_CONTAINER
from shipline.deploy.ssh import RemoteCommand, SSHSession
from shipline.models import DeployResult, DeployTarget
from shipline.runner import CommandRunner

logger = logging.getLogger(__name__)


class RemoteDeployer:
    """Pull, stop, remove and run a container over one SSH session.

    The old instance is stopped before the new one starts; there is no
    atomic swap, so the service is briefly unavailable.  A failure after the
    stop leaves the old instance stopped.  Nothing is rolled back.

    Parameters
    ----------
    container_name:
        Name of the container instance on the target.
    port:
        Port the service listens on inside the container.
    host_port:
        Port published on the target; defaults to *port*.
    """

    def __init__(
        self,
        container_name: str = DEFAULT_CONTAINER_NAME,
        port: int = DEFAULT_SERVICE_PORT,
        host_port: int | None = None,
        *,
        runner: CommandRunner | None = None,
        connect_timeout: float = 30.0,
        command_timeout: float = 300.0,
    ) -> None:
        self.container_name = container_name
        self.port = port
        self.host_port = host_port or port
        self.runner = runner or CommandRunner()
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    def commands(self, image: str) -> list[RemoteCommand]:
        """The remote command sequence for deploying *image*."""
        name = self.container_name
        return [
            RemoteCommand(("docker", "pull", image)),
            RemoteCommand(("docker", "stop", name), tolerate=NO_SUCH_CONTAINER),
            RemoteCommand(("docker", "rm", name), tolerate=NO_SUCH_CONTAINER),
            RemoteCommand((
                "docker", "run", "-d",
                "--name", name,
                "-p", f"{self.host_port}:{self.port}",
                "--restart", "unless-stopped",
                image,
            )),
        ]

    def deploy(self, target: DeployTarget, image: str) -> DeployResult:
        """Deploy *image* to *target*.

        Raises
        ------
        ConnectError
            The SSH session could not be established.
        RemoteCommandError
            A remote command failed (stop/rm of a missing container excepted).
        """
        logger.info("Deploying %s as %s on port %d", image, self.container_name, self.host_port)
        session = SSHSession(
            target,
            self.runner,
            connect_timeout=self.connect_timeout,
            command_timeout=self.command_timeout,
        )
        with session:
            records = session.execute(self.commands(image))

        stop = records[1]
        result = DeployResult(
            image=image,
            container_name=self.container_name,
            commands=records,
            replaced_existing=not stop.skipped,
        )
        if result.replaced_existing:
            logger.info("Replaced running instance %s", self.container_name)
        else:
            logger.info("No previous instance of %s; first deployment", self.container_name)
        return result
