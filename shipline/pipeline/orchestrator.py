"""PipelineOrchestrator — runs install, test, build, publish and deploy in order.

A run is fail-fast: the first error moves it to ``FAILED`` and every later
step is recorded as skipped.  Nothing is retried or rolled back.

Usage::

    settings, secrets = SettingsLoader().load(".")
    orchestrator = PipelineOrchestrator(settings, secrets)
    run = orchestrator.handle_push(PushEvent(ref="refs/heads/main", commit_sha=sha))
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Callable
from pathlib import Path

from shipline.build.builder import ArtifactBuilder
from shipline.build.toolchain import ProjectToolchain
from shipline.config import NULL_SHA
from shipline.deploy.deployer import RemoteDeployer
from shipline.deploy.health import ServiceProbe
from shipline.errors import HealthCheckError, RunCancelled, ShiplineError
from shipline.models import BuildArtifact, PipelineRun, PushEvent, RunState, StepResult, StepStatus
from shipline.pipeline.states import RunStateMachine
from shipline.publish.registry import RegistryPublisher
from shipline.runner import CommandRunner
from shipline.security.redact import Redactor, default_redactor
from shipline.settings import PipelineSecrets, PipelineSettings

logger = logging.getLogger(__name__)

_Action = Callable[[PipelineRun, Path], str]


class PipelineOrchestrator:
    """Sequence the pipeline steps for one project.

    The orchestrator holds configuration and collaborators only; all
    per-run state lives on the returned :class:`PipelineRun`, so separate
    runs may execute concurrently.

    Parameters
    ----------
    settings:
        Non-secret configuration.
    secrets:
        Registry and deploy-target credentials.  Registered with *redactor*
        for the duration of each run.
    runner:
        Command runner shared by the default collaborators.
    toolchain, builder, publisher, deployer, probe:
        Override the collaborators built from *settings*.
    """

    def __init__(
        self,
        settings: PipelineSettings,
        secrets: PipelineSecrets,
        *,
        runner: CommandRunner | None = None,
        toolchain: ProjectToolchain | None = None,
        builder: ArtifactBuilder | None = None,
        publisher: RegistryPublisher | None = None,
        deployer: RemoteDeployer | None = None,
        probe: ServiceProbe | None = None,
        redactor: Redactor = default_redactor,
    ) -> None:
        self.settings = settings
        self.secrets = secrets
        self.redactor = redactor
        runner = runner or CommandRunner(redactor)

        self.toolchain = toolchain or ProjectToolchain(
            settings.commands.install, settings.commands.test, runner=runner,
        )
        self.builder = builder or ArtifactBuilder(
            settings.image.full_repository,
            alias=settings.image.alias,
            source_date_epoch=settings.image.source_date_epoch,
            runner=runner,
        )
        self.publisher = publisher or RegistryPublisher(settings.image.registry, runner=runner)
        self.deployer = deployer or RemoteDeployer(
            settings.deploy.container_name,
            settings.deploy.port,
            settings.deploy.host_port,
            runner=runner,
            connect_timeout=settings.timeouts.connect,
            command_timeout=settings.timeouts.remote,
        )
        self.probe = probe or ServiceProbe(settings.deploy.expected_body)

    # -- Triggering -----------------------------------------------------------

    def should_trigger(self, event: PushEvent) -> bool:
        """True if *event* is a push to the configured branch."""
        if event.commit_sha == NULL_SHA:
            return False
        return event.branch == self.settings.branch

    def handle_push(
        self,
        event: PushEvent,
        *,
        source: str | Path | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineRun | None:
        """Start exactly one run for a push to the configured branch.

        Returns ``None`` when the push does not trigger a run.
        """
        if not self.should_trigger(event):
            logger.info("Ignoring push to %s (watching %s)", event.branch, self.settings.branch)
            return None
        return self.run(event, source=source, cancel=cancel)

    # -- Execution ------------------------------------------------------------

    def steps(self) -> list[tuple[str, RunState, _Action]]:
        return [
            ("install", RunState.INSTALLING, self._install),
            ("test", RunState.TESTING, self._test),
            ("build", RunState.BUILDING, self._build),
            ("publish", RunState.PUBLISHING, self._publish),
            ("deploy", RunState.DEPLOYING, self._deploy),
        ]

    def run(
        self,
        event: PushEvent,
        *,
        source: str | Path | None = None,
        cancel: threading.Event | None = None,
    ) -> PipelineRun:
        """Execute one run to a terminal state and return it.

        *cancel* is checked between steps only; a step already started runs
        to completion (or to its timeout).
        """
        source_dir = Path(source) if source is not None else self.settings.source_dir
        run = PipelineRun(run_id=uuid.uuid4().hex[:12], trigger=event)
        machine = RunStateMachine()
        secret_values = self.secrets.values()
        self.redactor.add(*secret_values)

        logger.info(
            "Run %s triggered by %s@%s",
            run.run_id, event.branch, event.commit_sha[:12] or "?",
        )
        try:
            steps = self.steps()
            for index, (name, state, action) in enumerate(steps):
                if cancel is not None and cancel.is_set():
                    self._fail(run, machine, RunCancelled(f"cancelled before {name}"))
                    self._skip(run, steps[index:])
                    break

                machine.advance(state)
                run.state = state
                run.history = machine.history
                step = StepResult(name=name, started_at=time.time())
                start = time.monotonic()
                logger.info("Run %s: %s", run.run_id, state.value)
                try:
                    step.detail = self.redactor.redact(action(run, source_dir))
                except Exception as exc:
                    if not isinstance(exc, ShiplineError):
                        logger.debug("Run %s: unexpected error in %s", run.run_id, name, exc_info=True)
                    step.status = StepStatus.FAILURE
                    step.error = type(exc).__name__
                    step.detail = self.redactor.redact(str(exc))
                    step.duration_seconds = time.monotonic() - start
                    run.steps.append(step)
                    self._fail(run, machine, exc)
                    self._skip(run, steps[index + 1:])
                    break
                step.status = StepStatus.SUCCESS
                step.duration_seconds = time.monotonic() - start
                run.steps.append(step)
            else:
                machine.advance(RunState.SUCCEEDED)
                run.state = RunState.SUCCEEDED
                run.history = machine.history
                logger.info("Run %s succeeded", run.run_id)
        finally:
            run.finished_at = time.time()
            self.redactor.discard(*secret_values)

        return run

    def _fail(self, run: PipelineRun, machine: RunStateMachine, exc: Exception) -> None:
        machine.fail()
        run.state = RunState.FAILED
        run.history = machine.history
        run.failure_reason = type(exc).__name__
        run.failure_message = self.redactor.redact(str(exc))
        logger.error("Run %s failed: %s: %s", run.run_id, run.failure_reason, run.failure_message)

    @staticmethod
    def _skip(run: PipelineRun, remaining: list[tuple[str, RunState, _Action]]) -> None:
        for name, _, _ in remaining:
            run.steps.append(StepResult(name=name, status=StepStatus.SKIPPED))

    # -- Steps ----------------------------------------------------------------

    def _install(self, run: PipelineRun, source: Path) -> str:
        self.toolchain.install(source, timeout=self.settings.timeouts.install)
        return "dependencies installed"

    def _test(self, run: PipelineRun, source: Path) -> str:
        self.toolchain.test(source, timeout=self.settings.timeouts.test)
        return "tests passed"

    def _build(self, run: PipelineRun, source: Path) -> str:
        run.artifact = self.builder.build(
            source,
            commit_sha=run.trigger.commit_sha or None,
            platform=self.settings.image.platform,
            timeout=self.settings.timeouts.build,
        )
        return run.artifact.reference

    def _publish(self, run: PipelineRun, source: Path) -> str:
        artifact = _require_artifact(run)
        credential = self.secrets.registry_credential()
        result = self.publisher.publish(
            artifact, credential, timeout=self.settings.timeouts.publish,
        )
        run.published = result.references
        return ", ".join(result.references)

    def _deploy(self, run: PipelineRun, source: Path) -> str:
        artifact = _require_artifact(run)
        target = self.secrets.deploy_target(port=self.settings.deploy.ssh_port)
        run.deploy = self.deployer.deploy(target, artifact.reference)

        if self.settings.deploy.verify:
            url = f"http://{target.host}:{self.settings.deploy.published_port}/"
            probe = self.probe.check(url)
            if not probe.healthy:
                raise HealthCheckError(f"{url} unhealthy: {probe.message}")
        return f"{run.deploy.container_name} running {run.deploy.image}"


def _require_artifact(run: PipelineRun) -> BuildArtifact:
    if run.artifact is None:
        raise ShiplineError(f"Run {run.run_id} has no built artifact")
    return run.artifact
