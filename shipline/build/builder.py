"""ArtifactBuilder — turns a source snapshot into a tagged container image."""

from __future__ import annotations

import logging
from pathlib import Path

from shipline.config import DEFAULT_ALIAS, DEFAULT_PLATFORM
from shipline.errors import BuildError
from shipline.models import BuildArtifact
from shipline.runner import CommandRunner
from shipline.security.hasher import Hasher

logger = logging.getLogger(__name__)

# Length of the digest prefix used as a tag when no commit sha is known
_DIGEST_TAG_LEN = 12


class ArtifactBuilder:
    """Build container images with the docker CLI.

    The project's Dockerfile is expected to install dependencies before
    copying the full source (see :class:`~shipline.scaffold.docker.DockerfileGenerator`).

    Parameters
    ----------
    repository:
        Image repository the artifact is tagged under (``user/app`` or
        ``registry.example.com/team/app``).
    alias:
        Mutable tag the publisher pushes alongside the immutable one.
    source_date_epoch:
        When set, exported as ``SOURCE_DATE_EPOCH`` so BuildKit stamps
        layers with a fixed time.
    """

    def __init__(
        self,
        repository: str,
        *,
        alias: str = DEFAULT_ALIAS,
        dockerfile: str = "Dockerfile",
        source_date_epoch: int | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.repository = repository
        self.alias = alias
        self.dockerfile = dockerfile
        self.source_date_epoch = source_date_epoch
        self.runner = runner or CommandRunner()

    def resolve_tag(self, source: str | Path, commit_sha: str | None = None) -> tuple[str, str]:
        """Return ``(tag, source_digest)`` for a snapshot.

        The commit sha is the tag when known; otherwise a prefix of the
        snapshot digest is used.
        """
        digest = Hasher.hash_snapshot(source)
        tag = commit_sha or digest[:_DIGEST_TAG_LEN]
        return tag, digest

    def build_command(
        self,
        source: str | Path,
        tag: str,
        *,
        platform: str = DEFAULT_PLATFORM,
        commit_sha: str | None = None,
    ) -> list[str]:
        root = Path(source)
        cmd = [
            "docker", "build",
            "--platform", platform,
            "--file", str(root / self.dockerfile),
            "--tag", f"{self.repository}:{tag}",
        ]
        if commit_sha:
            cmd += ["--label", f"org.opencontainers.image.revision={commit_sha}"]
        cmd.append(str(root))
        return cmd

    def build(
        self,
        source: str | Path,
        *,
        commit_sha: str | None = None,
        platform: str = DEFAULT_PLATFORM,
        timeout: float | None = None,
    ) -> BuildArtifact:
        """Build the image for *source* and return the artifact.

        Raises
        ------
        BuildError
            If the snapshot or its Dockerfile is missing, the repository is
            not configured, or ``docker build`` fails.
        """
        root = Path(source)
        if not self.repository:
            raise BuildError("Image repository is not configured")
        if not root.is_dir():
            raise BuildError(f"Source snapshot not found: {root}")
        if not (root / self.dockerfile).is_file():
            raise BuildError(f"No {self.dockerfile} in {root}")

        tag, digest = self.resolve_tag(root, commit_sha)
        env = None
        if self.source_date_epoch is not None:
            env = {"SOURCE_DATE_EPOCH": str(self.source_date_epoch)}

        logger.info("Building %s:%s for %s", self.repository, tag, platform)
        result = self.runner.run(
            self.build_command(root, tag, platform=platform, commit_sha=commit_sha),
            cwd=root,
            timeout=timeout,
            env=env,
        )
        if not result.ok:
            raise BuildError(f"docker build failed (rc={result.returncode}): {result.tail()}")

        reference = f"{self.repository}:{tag}"
        inspect = self.runner.run(
            ["docker", "image", "inspect", "--format", "{{.Id}}", reference],
            timeout=timeout,
        )
        if not inspect.ok:
            raise BuildError(f"Built image {reference} not found: {inspect.tail()}")

        artifact = BuildArtifact(
            repository=self.repository,
            tag=tag,
            alias=self.alias,
            image_id=inspect.stdout.strip(),
            source_digest=digest,
            platform=platform,
        )
        logger.info("Built %s (%s)", artifact.reference, artifact.image_id or "no id")
        return artifact
