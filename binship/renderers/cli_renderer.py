"""
Line-oriented renderer.

Subscribes to the event bus and turns pipeline and health events into
DeployLogger steps, successes and errors.
"""

from typing import Optional

from rich.markup import escape

from binship.event_bus import Subscription
from binship.events import (
    BuildProgress,
    HealthTick,
    LogLine,
    Notice,
    RunCompleted,
    ServiceStateChanged,
    StageCompleted,
    StageFailed,
    StageStarted,
    TransferProgress,
    TransferRetry,
)
from binship.logger import DeployLogger, StepSpinner
from binship.models.pipeline import Stage
from binship.ui_components import health_markup

STEP_TITLES = {
    Stage.BUILDING: "Building",
    Stage.TRANSFERRING: "Transferring artifact",
    Stage.INSTALLING: "Installing service",
    Stage.RESTARTING_SERVICE: "Restarting service",
    Stage.VERIFYING_HEALTH: "Verifying health",
}


class CliRenderer:
    """Renders events for a single CLI command."""

    def __init__(self, logger: DeployLogger):
        self.logger = logger
        self.spinner: Optional[StepSpinner] = None
        self.completed: Optional[RunCompleted] = None

    def handle(self, event) -> None:
        handler = getattr(self, f"_on_{type(event).__name__}", None)
        if handler is not None:
            handler(event)

    async def consume(self, subscription: Subscription) -> Optional[RunCompleted]:
        """Render events until the run completes."""
        try:
            async for event in subscription:
                self.handle(event)
                if isinstance(event, RunCompleted):
                    return event
        finally:
            self._stop_spinner(ok=self.completed is not None and self.completed.succeeded)
        return None

    def _stop_spinner(self, ok: bool = True) -> None:
        if self.spinner is not None:
            self.spinner.stop(ok)
            self.spinner = None

    def _on_StageStarted(self, event: StageStarted) -> None:
        title = STEP_TITLES.get(event.stage, event.stage.label)
        if event.dry_run:
            title = f"{title} [dim](dry run)[/dim]"
        self.logger.step(title)
        self.spinner = StepSpinner(self.logger, STEP_TITLES.get(event.stage, event.stage.label))
        self.spinner.start()

    def _on_BuildProgress(self, event: BuildProgress) -> None:
        self.logger.log_output(event.line, "build")

    def _on_TransferProgress(self, event: TransferProgress) -> None:
        if self.spinner is not None:
            self.spinner.update(f"Uploading {event.percent:.0f}%")
        if event.bytes_sent == event.total_bytes:
            self.logger.log(f"Uploaded {event.total_bytes} bytes (attempt {event.attempt})", "DEBUG")

    def _on_TransferRetry(self, event: TransferRetry) -> None:
        self.logger.warning(
            f"Attempt {event.attempt}/{event.max_attempts} failed: {event.error}. Retrying in {event.delay:g}s"
        )

    def _on_ServiceStateChanged(self, event: ServiceStateChanged) -> None:
        state = event.status.display if event.status else "unknown"
        self.logger.log(f"Service {event.action}: {state}")

    def _on_HealthTick(self, event: HealthTick) -> None:
        observation = event.observation
        self.logger.log(f"Health: {observation.summary}", "INFO" if observation.is_healthy else "WARNING")
        if event.stream == "health":
            self.logger.console.print(
                f"  [dim]{observation.timestamp:%H:%M:%S}[/dim] {health_markup(observation.status.value)} "
                f"[dim]{observation.summary}[/dim]"
            )

    def _on_LogLine(self, event: LogLine) -> None:
        self.logger.log_output(event.line, "remote")
        if not self.logger.verbose:
            self.logger.console.print(event.line, markup=False, highlight=False)

    def _on_StageCompleted(self, event: StageCompleted) -> None:
        self._stop_spinner()
        if event.skipped:
            self.logger.success(f"Skipped: {event.detail}")
        else:
            self.logger.success(event.detail or "done")

    def _on_StageFailed(self, event: StageFailed) -> None:
        self._stop_spinner(ok=False)
        if event.output:
            self.logger.log_output(event.output, "build")
        self.logger.log_error(
            f"{STEP_TITLES.get(event.stage, event.stage.label)} failed ({event.cause})",
            context=escape(event.message),
        )
        if event.output and not self.logger.verbose:
            self.logger.console.print(event.output, markup=False, highlight=False, style="dim")

    def _on_RunCompleted(self, event: RunCompleted) -> None:
        self.completed = event
        self._stop_spinner(ok=event.succeeded)
        if event.succeeded:
            self.logger.log(f"{event.kind.capitalize()} succeeded in {event.duration:.1f}s")
        else:
            self.logger.log(
                f"{event.kind.capitalize()} aborted at {event.abort_stage.value}: {event.cause}",
                "ERROR",
            )

    def _on_Notice(self, event: Notice) -> None:
        if event.level == "ERROR":
            self.logger.log_error(event.message)
        elif event.level == "WARNING":
            self.logger.warning(event.message)
        else:
            self.logger.success(event.message)
