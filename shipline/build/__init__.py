"""Artifact builder: dependency install, test gate, image build."""

from shipline.build.builder import ArtifactBuilder
from shipline.build.toolchain import ProjectToolchain

__all__ = [
    "ArtifactBuilder",
    "ProjectToolchain",
]
