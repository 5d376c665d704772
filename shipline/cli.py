"""Command-line entry point.

    python -m shipline run [--source DIR] [--sha SHA] [--ref REF] [--event FILE]
    python -m shipline init [DIR] [--branch main] [--port 3033]
    python -m shipline probe URL [--expect BODY]
    python -m shipline config
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from shipline import __version__
from shipline.config import DEFAULT_SERVICE_PORT
from shipline.deploy.health import ServiceProbe
from shipline.log import configure_logging
from shipline.models import PipelineRun, PushEvent
from shipline.pipeline.orchestrator import PipelineOrchestrator
from shipline.runner import CommandRunner
from shipline.scaffold.ci import WorkflowGenerator
from shipline.scaffold.docker import DockerfileGenerator
from shipline.settings import PipelineSecrets, PipelineSettings, SettingsLoader

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shipline",
        description="Build, test, publish and deploy a containerised service.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--project", default=".", help="Project root holding .env / .shipline")
    parser.add_argument("--log-level", default=None, help="Override SHIPLINE_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the pipeline once")
    run.add_argument("--source", default=None, help="Source snapshot directory")
    run.add_argument("--sha", default=None, help="Commit sha (default: git rev-parse HEAD)")
    run.add_argument("--ref", default=None, help="Pushed ref (default: the configured branch)")
    run.add_argument("--event", default=None, help="GitHub push event payload (JSON file)")

    init = sub.add_parser("init", help="Write Dockerfile, workflow and .env.example")
    init.add_argument("directory", nargs="?", default=".")
    init.add_argument("--branch", default="main")
    init.add_argument("--port", type=int, default=DEFAULT_SERVICE_PORT)

    probe = sub.add_parser("probe", help="Check a deployed service")
    probe.add_argument("url")
    probe.add_argument("--expect", default=None, help="Exact body expected")
    probe.add_argument("--attempts", type=int, default=5)

    sub.add_parser("config", help="Print effective settings (secrets masked)")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    loader = SettingsLoader()
    settings, secrets = loader.load(args.project)
    configure_logging(args.log_level or settings.log_level)

    if args.command == "run":
        return _cmd_run(args, settings, secrets)
    if args.command == "init":
        return _cmd_init(args, loader)
    if args.command == "probe":
        result = ServiceProbe(args.expect, attempts=args.attempts).check(args.url)
        print(json.dumps(result.model_dump(mode="json"), indent=2))
        return 0 if result.healthy else 1
    if args.command == "config":
        data = {
            "settings": settings.model_dump(mode="json"),
            "secrets": secrets.model_dump(mode="json"),
            "missing": secrets.missing(),
        }
        print(json.dumps(data, indent=2))
        return 0
    return 2


def _cmd_run(
    args: argparse.Namespace,
    settings: PipelineSettings,
    secrets: PipelineSecrets,
) -> int:
    source = Path(args.source) if args.source else settings.source_dir

    if args.event:
        payload = json.loads(Path(args.event).read_text(encoding="utf-8"))
        event = PushEvent.from_github(payload)
    else:
        event = PushEvent(
            ref=args.ref or f"refs/heads/{settings.branch}",
            commit_sha=args.sha or _head_sha(source),
        )

    missing = secrets.missing()
    if missing:
        logger.warning("Unset secrets: %s", ", ".join(missing))

    run = PipelineOrchestrator(settings, secrets).handle_push(event, source=source)
    if run is None:
        return 0
    _print_summary(run)
    return 0 if run.succeeded else 1


def _cmd_init(args: argparse.Namespace, loader: SettingsLoader) -> int:
    root = Path(args.directory)
    written = [
        DockerfileGenerator().generate(root, port=args.port),
        root / ".dockerignore",
        WorkflowGenerator().generate(root, branch=args.branch),
        loader.generate_env_template(root),
    ]
    for path in written:
        print(f"wrote {path}")
    return 0


def _head_sha(source: Path) -> str:
    result = CommandRunner().run(["git", "rev-parse", "HEAD"], cwd=source, timeout=10)
    return result.stdout.strip() if result.ok else ""


def _print_summary(run: PipelineRun) -> None:
    print(f"run {run.run_id}: {run.state.value}")
    for step in run.steps:
        line = f"  {step.name:<8} {step.status.value:<8}"
        if step.duration_seconds:
            line += f" {step.duration_seconds:6.1f}s"
        if step.detail:
            line += f"  {step.detail.splitlines()[0]}"
        print(line)
    if run.failure_reason:
        print(f"failed: {run.failure_reason}: {run.failure_message}")


if __name__ == "__main__":
    sys.exit(main())
