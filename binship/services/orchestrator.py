"""
Deploy Orchestrator

Drives one build or deploy run through its stages, strictly in sequence,
publishing a start and exactly one completion event per stage.
"""

import asyncio
import contextlib
import functools
import math
import time
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Optional

from binship.constants import (
    BINARY_MODE,
    SIMULATED_STAGE_DURATION,
    STREAM_PIPELINE,
    TRANSFER_BACKOFF_BASE,
)
from binship.event_bus import EventBus
from binship.events import (
    BuildProgress,
    HealthTick,
    RunCompleted,
    ServiceStateChanged,
    StageCompleted,
    StageFailed,
    StageStarted,
    TransferProgress,
    TransferRetry,
)
from binship.exceptions import (
    BinshipError,
    ConfigurationError,
    HealthUnhealthyError,
    HealthUnreachableError,
    NoArtifactError,
    RunCancelledError,
    ServiceControlError,
    TransportError,
)
from binship.models.config import DeploymentConfig
from binship.models.pipeline import OutcomeStatus, PipelineRun, Stage
from binship.models.requests import BuildRequest, DeployRequest
from binship.models.results import BuildResult, HealthObservation, HealthStatus
from binship.services.build_service import BuildRunner
from binship.services.health_monitor import HealthMonitor
from binship.services.service_controller import (
    ServiceSupervisor,
    SystemdController,
    render_unit,
)
from binship.services.ssh_service import open_session

# Upper bound between health polls while verifying a fresh deploy
VERIFY_POLL_INTERVAL = 2.0

# Lines of captured build output attached to a failure event
FAILURE_OUTPUT_LINES = 20

SessionFactory = Callable[[DeploymentConfig], Awaitable]
SupervisorFactory = Callable[[object, DeploymentConfig], ServiceSupervisor]


class _StageSkipped(Exception):
    """Raised by a stage handler that decided not to run."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class DeployOrchestrator:
    """
    State machine tying build, transfer, install, restart and health
    verification into one pipeline.

    Collaborators are injectable so runs can be exercised without a
    toolchain, a remote host or a network.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        bus: EventBus,
        build_runner: Optional[BuildRunner] = None,
        session_factory: Optional[SessionFactory] = None,
        supervisor_factory: Optional[SupervisorFactory] = None,
        health_monitor: Optional[HealthMonitor] = None,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        backoff_base: float = TRANSFER_BACKOFF_BASE,
    ):
        self.config = config
        self.bus = bus
        self.build_runner = build_runner or BuildRunner()
        self.session_factory = session_factory or open_session
        self.supervisor_factory = supervisor_factory or SystemdController
        self.health_monitor = health_monitor or HealthMonitor()
        self.sleep = sleep
        self.backoff_base = backoff_base
        self.last_build: Optional[BuildResult] = None
        self._artifact: Optional[Path] = None

    # -- public entry points ------------------------------------------------

    async def run_build(self, request: BuildRequest) -> PipelineRun:
        """Build only: Idle -> Building -> Succeeded."""
        run = PipelineRun(kind="build", dry_run=request.dry_run)
        ok = await self._stage(
            run, Stage.BUILDING, functools.partial(self._build, request.dry_run, request.mode)
        )
        if ok:
            self._finish(run)
        return run

    async def run_deploy(self, request: DeployRequest) -> PipelineRun:
        """Full pipeline from Idle to Succeeded or Aborted."""
        run = PipelineRun(kind="deploy", dry_run=request.dry_run)
        self._artifact = None

        if request.skip_build:
            build_step = self._reuse_artifact
        else:
            build_step = functools.partial(self._build, request.dry_run)

        steps = [
            (Stage.BUILDING, build_step),
            (Stage.TRANSFERRING, functools.partial(self._transfer, request.dry_run)),
            (Stage.INSTALLING, functools.partial(self._install, request.dry_run)),
            (
                Stage.RESTARTING_SERVICE,
                functools.partial(self._restart, request.force, request.dry_run),
            ),
            (Stage.VERIFYING_HEALTH, functools.partial(self._verify, request.dry_run)),
        ]
        for stage, stage_handler in steps:
            if not await self._stage(run, stage, stage_handler):
                return run

        self._finish(run)
        return run

    # -- stage machinery ----------------------------------------------------

    async def _stage(self, run: PipelineRun, stage: Stage, handler) -> bool:
        """
        Run one stage handler.

        Returns:
            True if the run may continue, False if it was aborted
        """
        run.advance(stage)
        self.bus.publish(StageStarted(stage=stage, dry_run=run.dry_run))
        start = time.monotonic()

        try:
            detail = await handler()
        except _StageSkipped as skipped:
            run.record(OutcomeStatus.SKIPPED, 0.0, skipped.detail)
            self.bus.publish(StageCompleted(stage=stage, detail=skipped.detail, skipped=True))
            return True
        except asyncio.CancelledError:
            cancelled = RunCancelledError(f"{stage.label} cancelled")
            self._abort(run, stage, cancelled, time.monotonic() - start)
            raise
        except BinshipError as e:
            self._abort(run, stage, e, time.monotonic() - start)
            return False
        except Exception as e:
            self._abort(run, stage, e, time.monotonic() - start)
            raise

        duration = SIMULATED_STAGE_DURATION if run.dry_run else time.monotonic() - start
        run.record(OutcomeStatus.SUCCESS, duration, detail or "")
        self.bus.publish(
            StageCompleted(
                stage=stage,
                duration=duration,
                detail=detail or "",
                simulated=run.dry_run,
            )
        )
        return True

    def _abort(self, run: PipelineRun, stage: Stage, error: Exception, duration: float) -> None:
        if isinstance(error, BinshipError):
            cause, message = error.cause, error.format_message()
        else:
            cause, message = type(error).__name__, str(error)

        output = getattr(error, "captured_output", "") or ""
        tail = "\n".join(output.splitlines()[-FAILURE_OUTPUT_LINES:])

        run.record(OutcomeStatus.FAILURE, duration, message, cause)
        run.abort(stage, cause, message)
        self.bus.publish(
            StageFailed(
                stage=stage, cause=cause, message=message, duration=duration, output=tail
            )
        )
        self.bus.publish(
            RunCompleted(
                kind=run.kind,
                succeeded=False,
                final_stage=Stage.ABORTED,
                abort_stage=stage,
                cause=cause,
                duration=run.duration,
            )
        )

    def _finish(self, run: PipelineRun) -> None:
        run.succeed()
        self.bus.publish(
            RunCompleted(
                kind=run.kind,
                succeeded=True,
                final_stage=Stage.SUCCEEDED,
                duration=run.duration,
            )
        )

    def _require(self, *fields: str) -> None:
        missing = self.config.missing_fields(*fields)
        if missing:
            raise ConfigurationError(
                f"Missing required settings: {', '.join(missing)}",
                context="Run 'binship validate' to check the config file",
            )

    @contextlib.asynccontextmanager
    async def _session(self):
        """A fresh session owned by the current stage only."""
        session = await self.session_factory(self.config)
        try:
            yield session
        finally:
            await session.close()

    # -- stage handlers -----------------------------------------------------

    async def _build(self, dry_run: bool, mode: Optional[str] = None) -> str:
        self._require("binary_name")
        if not self.config.project_path.is_dir():
            raise ConfigurationError(
                f"Project path does not exist: {self.config.project_path}"
            )

        def on_line(line: str) -> None:
            self.bus.publish(BuildProgress(line=line))

        result = await self.build_runner.run(
            self.config, dry_run=dry_run, mode=mode, on_line=on_line
        )
        self.last_build = result
        self._artifact = result.binary_path

        if result.simulated:
            return f"simulated build of {self.config.binary_name}"
        if result.reused:
            return f"artifact up to date ({result.size_display})"
        return f"{result.size_display} in {result.duration:.1f}s"

    async def _reuse_artifact(self) -> str:
        self._artifact = self.build_runner.find_artifact(self.config)
        raise _StageSkipped("build skipped, reusing existing artifact")

    async def _transfer(self, dry_run: bool) -> str:
        self._require("host", "user", "install_path")
        if self._artifact is None:
            raise NoArtifactError(
                "No build artifact to deploy",
                context=f"Expected {self.build_runner.artifact_path(self.config)}; run a build first",
            )

        if dry_run:
            return f"would upload {self._artifact.name} to {self.config.remote_binary_path}"

        max_attempts = max(1, self.config.transfer_attempts)
        attempt = 1
        while True:
            try:
                size = await self._upload_once(attempt)
                break
            except TransportError as e:
                if not e.transient or attempt >= max_attempts:
                    raise
                delay = self.backoff_base * 2 ** (attempt - 1)
                self.bus.publish(
                    TransferRetry(
                        attempt=attempt,
                        max_attempts=max_attempts,
                        delay=delay,
                        error=e.message,
                    )
                )
                await self.sleep(delay)
                attempt += 1

        suffix = f" after {attempt} attempts" if attempt > 1 else ""
        return f"uploaded {size} bytes to {self.config.remote_binary_path}{suffix}"

    async def _upload_once(self, attempt: int) -> int:
        last_percent = [-1]

        def progress(sent: int, total: int) -> None:
            percent = int(sent * 100 / total) if total else 100
            if percent >= last_percent[0] + 5 or sent == total:
                last_percent[0] = percent
                self.bus.publish(
                    TransferProgress(bytes_sent=sent, total_bytes=total, attempt=attempt)
                )

        async with self._session() as session:
            supervisor = self.supervisor_factory(session, self.config)
            await supervisor.prepare_install_dir()
            size = await session.upload(
                str(self._artifact),
                self.config.staging_path,
                mode=BINARY_MODE,
                progress=progress,
                timeout=self.config.command_timeout,
            )
            await supervisor.place_binary()
        return size

    async def _install(self, dry_run: bool) -> str:
        self._require("service_name", "install_path", "user")
        unit = render_unit(self.config)
        if dry_run:
            return f"would install {self.config.unit_path}"

        async with self._session() as session:
            supervisor = self.supervisor_factory(session, self.config)
            await supervisor.set_permissions()
            changed = await supervisor.install(unit)
        return "unit installed" if changed else "unit unchanged"

    async def _restart(self, force: bool, dry_run: bool) -> str:
        self._require("service_name")
        action = "stop+start" if force else "restart"
        if dry_run:
            return f"would {action} {self.config.service_name}"

        async with self._session() as session:
            supervisor = self.supervisor_factory(session, self.config)
            if force:
                status = await supervisor.stop()
                self.bus.publish(ServiceStateChanged(action="stop", status=status))
                status = await supervisor.start()
                self.bus.publish(ServiceStateChanged(action="start", status=status))
            else:
                status = await supervisor.restart()
                self.bus.publish(ServiceStateChanged(action="restart", status=status))

        if not status.active:
            raise ServiceControlError(
                f"{self.config.service_name} is not active after {action}",
                context=f"state {status.display}, last exit {status.last_exit}",
            )
        pid = f" (pid {status.pid})" if status.pid else ""
        return f"{self.config.service_name} active{pid}"

    async def _verify(self, dry_run: bool) -> str:
        config = self.config
        if not config.health_endpoint:
            raise _StageSkipped("no health endpoint configured")
        if dry_run:
            return f"would poll {config.health_endpoint} for up to {config.grace_period:g}s"

        interval = min(config.poll_interval, VERIFY_POLL_INTERVAL, config.grace_period)
        attempts = max(1, math.ceil(config.grace_period / interval)) if interval > 0 else 1
        deadline = time.monotonic() + config.grace_period
        last = None
        for attempt in range(1, attempts + 1):
            last = await self._probe(deadline)
            self.bus.publish(HealthTick(observation=last), stream=STREAM_PIPELINE)
            if last.is_healthy:
                return f"healthy after {attempt} probe{'s' if attempt > 1 else ''}"
            remaining = deadline - time.monotonic()
            if attempt == attempts or remaining <= 0:
                break
            await self.sleep(min(interval, remaining))

        error_class = HealthUnhealthyError
        if last.status == HealthStatus.UNREACHABLE:
            error_class = HealthUnreachableError
        raise error_class(
            f"{config.service_name} did not become healthy within {config.grace_period:g}s",
            context=f"last observation: {last.summary}",
        )

    async def _probe(self, deadline: float) -> HealthObservation:
        """One observation, never outliving the verification deadline."""
        config = self.config
        remaining = deadline - time.monotonic()
        timeout = min(config.health_timeout, remaining) if remaining > 0 else config.health_timeout
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                self.health_monitor.observe_once(
                    config.health_endpoint, timeout, config.expect_body
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return HealthObservation(
                timestamp=datetime.now(),
                status=HealthStatus.UNREACHABLE,
                latency=time.monotonic() - start,
                error=f"timed out after {timeout:.1f}s",
            )
