"""Global constants: ports, names, defaults."""

from pathlib import Path

# Port the packaged service listens on inside and outside the container
DEFAULT_SERVICE_PORT = 3033

# Name of the container instance on the deploy target
DEFAULT_CONTAINER_NAME = "shipline-app"

# Mutable alias pushed alongside the immutable tag
DEFAULT_ALIAS = "latest"

DEFAULT_PLATFORM = "linux/amd64"

DEFAULT_BRANCH = "main"

DEFAULT_INSTALL_COMMAND = "npm install"
DEFAULT_TEST_COMMAND = "npm test"

# Per-call bounds in seconds
DEFAULT_TIMEOUTS = {
    "install": 600.0,
    "test": 600.0,
    "build": 1200.0,
    "publish": 600.0,
    "connect": 30.0,
    "remote": 300.0,
}

# Project-local configuration directory
CONFIG_DIR = Path(".shipline")

# Directories never hashed into a source digest
SNAPSHOT_EXCLUDE_DIRS = frozenset({
    ".git", "node_modules", "__pycache__", ".pytest_cache", ".shipline",
})

# Substring docker prints when stop/rm target a missing container
NO_SUCH_CONTAINER = "No such container"

# Commit sha GitHub sends for a branch deletion
NULL_SHA = "0" * 40
