"""Remote deployer: SSH session, container replacement, health probe."""

from shipline.deploy.deployer import RemoteDeployer
from shipline.deploy.health import ProbeResult, ServiceProbe
from shipline.deploy.ssh import RemoteCommand, SSHSession

__all__ = [
    "ProbeResult",
    "RemoteCommand",
    "RemoteDeployer",
    "SSHSession",
    "ServiceProbe",
]
