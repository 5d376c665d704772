"""DockerfileGenerator — writes the two-stage Node.js Dockerfile."""

from __future__ import annotations

import logging
from pathlib import Path

from shipline.config import DEFAULT_SERVICE_PORT

logger = logging.getLogger(__name__)

_DOCKERFILE_TEMPLATE = """\
# Two-stage build: install dependencies, then copy into a clean runtime image
# Stage 1: Builder
FROM {base_image} AS builder

WORKDIR /app

# Manifests first so the install layer is cached until dependencies change
COPY package*.json ./
RUN npm install

COPY . .

# Stage 2: Runtime
FROM {base_image}

WORKDIR /app
COPY --from=builder /app .

EXPOSE {port}

CMD ["node", "{entrypoint}"]
"""

_DOCKERIGNORE = """\
node_modules
npm-debug.log
.git
.github
.env
.env.*
.shipline
Dockerfile
.dockerignore
"""


class DockerfileGenerator:
    """Generate container build files for a Node.js service."""

    def __init__(self, base_image: str = "node:18-alpine", entrypoint: str = "server.js") -> None:
        self.base_image = base_image
        self.entrypoint = entrypoint

    def render(self, port: int = DEFAULT_SERVICE_PORT) -> str:
        return _DOCKERFILE_TEMPLATE.format(
            base_image=self.base_image,
            port=port,
            entrypoint=self.entrypoint,
        )

    def generate(self, project_path: str | Path, port: int = DEFAULT_SERVICE_PORT) -> Path:
        """Write ``Dockerfile`` and ``.dockerignore`` to the project root.

        Returns the Dockerfile path.
        """
        root = Path(project_path)
        root.mkdir(parents=True, exist_ok=True)
        path = root / "Dockerfile"
        path.write_text(self.render(port), encoding="utf-8")
        (root / ".dockerignore").write_text(_DOCKERIGNORE, encoding="utf-8")
        logger.info("Dockerfile generated: %s", path)
        return path
