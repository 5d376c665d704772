"""WorkflowGenerator — generates a GitHub Actions workflow that runs shipline."""

from __future__ import annotations

import logging
from pathlib import Path

from shipline.config import DEFAULT_BRANCH

logger = logging.getLogger(__name__)

# Repository secrets consumed by the workflow, mapped to shipline settings
SECRET_ENV = {
    "SHIPLINE_REGISTRY_USERNAME": "DOCKER_USERNAME",
    "SHIPLINE_REGISTRY_TOKEN": "DOCKER_PASSWORD",
    "SHIPLINE_DEPLOY_HOST": "EC2_HOST",
    "SHIPLINE_DEPLOY_USER": "EC2_USER",
    "SHIPLINE_DEPLOY_KEY": "EC2_SSH_KEY",
}

_WORKFLOW_TEMPLATE = """\
name: Build and deploy

on:
  push:
    branches: [{branch}]

concurrency:
  group: deploy-{branch}
  cancel-in-progress: false

jobs:
  deploy:
    runs-on: ubuntu-latest
    steps:
      - uses: actions/checkout@v4
      - uses: actions/setup-node@v4
        with:
          node-version: "{node_version}"
      - uses: actions/setup-python@v5
        with:
          python-version: "3.12"
      - name: Install shipline
        run: pip install shipline
      - name: Run pipeline
        env:
{env_block}
        run: python -m shipline run --sha "${{{{ github.sha }}}}" --ref "${{{{ github.ref }}}}"
"""


class WorkflowGenerator:
    """Generate CI/CD configuration files."""

    def render(self, branch: str = DEFAULT_BRANCH, node_version: str = "18") -> str:
        env_block = "\n".join(
            f"          {env}: ${{{{ secrets.{secret} }}}}" for env, secret in SECRET_ENV.items()
        )
        return _WORKFLOW_TEMPLATE.format(
            branch=branch,
            node_version=node_version,
            env_block=env_block,
        )

    def generate(self, project_path: str | Path, branch: str = DEFAULT_BRANCH) -> Path:
        """Write .github/workflows/deploy.yml.

        Returns the path to the generated file.
        """
        root = Path(project_path)
        workflow_dir = root / ".github" / "workflows"
        workflow_dir.mkdir(parents=True, exist_ok=True)

        path = workflow_dir / "deploy.yml"
        path.write_text(self.render(branch), encoding="utf-8")
        logger.info("GitHub Actions workflow generated: %s", path)
        return path
