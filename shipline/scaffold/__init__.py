"""Project scaffolding: Dockerfile and CI workflow generation."""

from shipline.scaffold.ci import WorkflowGenerator
from shipline.scaffold.docker import DockerfileGenerator

__all__ = [
    "DockerfileGenerator",
    "WorkflowGenerator",
]
