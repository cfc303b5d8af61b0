"""Monitor command - health, service state and logs"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import click
from rich.table import Table

from binship.base import ProjectCommand
from binship.constants import DEFAULT_LOG_LINES
from binship.events import HealthTick
from binship.models.results import HealthObservation
from binship.renderers.cli_renderer import CliRenderer
from binship.ui_components import health_markup


@dataclass
class MonitorOptions:
    """Options for monitor command."""

    continuous: bool = False
    lines: int = DEFAULT_LOG_LINES


class MonitorCommand(ProjectCommand):
    """
    Observe the deployed application.

    One-shot mode prints a single report and exits 0 only when healthy.
    Continuous mode polls every interval until interrupted; the exit code
    then reflects the last observation.
    """

    def __init__(self, options: MonitorOptions, **kwargs):
        super().__init__(**kwargs)
        self.options = options
        self.last_observation: Optional[HealthObservation] = None

    def execute(self) -> None:
        config = self.load_config()
        self.show_header(
            title="Monitor",
            project=config.binary_name,
            details={
                "Endpoint": config.health_endpoint or "-",
                "Interval": f"{config.poll_interval:g}s",
            },
        )

        if self.options.continuous:
            self._run_continuous()
        else:
            self._run_once()

    def _run_once(self) -> None:
        report = self.run_async(self.ensure_app_monitor().check_once(self.options.lines))

        if self.json_output:
            observation = report.observation
            self.output_json(
                {
                    "healthy": report.healthy,
                    "summary": report.summary(),
                    "health": observation.status.value if observation else None,
                    "latency_ms": round(observation.latency * 1000) if observation and observation.latency is not None else None,
                    "ssh_ok": report.ssh_ok,
                    "service": report.service_status.display if report.service_status else None,
                },
                exit_code=0 if report.healthy else 1,
            )
            return

        table = Table(title="Application Status", title_justify="left", padding=(0, 1))
        table.add_column("Check", style="cyan", no_wrap=True)
        table.add_column("Status")
        table.add_column("Details", style="dim")

        observation = report.observation
        if observation is not None:
            latency = f"{observation.latency * 1000:.0f}ms" if observation.latency is not None else ""
            table.add_row(
                "Health",
                health_markup(observation.status.value),
                observation.error or latency,
            )
        else:
            table.add_row("Health", "[dim]not configured[/dim]", "")

        if report.ssh_ok:
            table.add_row("SSH", "[green]connected[/green]", f"{self.config.user}@{self.config.host}")
            status = report.service_status
            color = "green" if status.active else ("dim" if status.absent else "red")
            pid = f"pid {status.pid}" if status.pid else ""
            table.add_row("Service", f"[{color}]{status.display}[/{color}]", pid)
        else:
            table.add_row("SSH", "[red]failed[/red]", report.ssh_error or "")

        self.console.print(table)

        if report.log_lines:
            self.console.print(f"\n[bold]Last {len(report.log_lines)} log lines[/bold] [dim]({self.config.log_path})[/dim]")
            for line in report.log_lines:
                self.console.print(line, markup=False, highlight=False)

        self.console.print()
        if report.healthy:
            self.print_success(report.summary())
        else:
            self.print_error(report.summary())
            raise SystemExit(1)

    def _run_continuous(self) -> None:
        self.init_project_logger("monitor")
        self.logger.step(f"Monitoring every {self.config.poll_interval:g}s (Ctrl+C to stop)")

        try:
            self.run_async(self._watch())
        except KeyboardInterrupt:
            self.console.print()
            self.logger.log("Monitoring stopped by user")

        observation = self.last_observation
        if observation is None:
            self.logger.warning("No health observation was made")
            raise SystemExit(1)
        if not observation.is_healthy:
            raise SystemExit(1)

    async def _watch(self) -> None:
        subscription = self.bus.subscribe()
        renderer = CliRenderer(self.logger)

        async def render():
            async for event in subscription:
                if isinstance(event, HealthTick):
                    self.last_observation = event.observation
                renderer.handle(event)

        render_task = asyncio.ensure_future(render())
        try:
            await self.ensure_app_monitor().run(self.bus, self.options.lines)
        finally:
            render_task.cancel()
            await asyncio.gather(render_task, return_exceptions=True)
            for event in subscription.drain():
                if isinstance(event, HealthTick):
                    self.last_observation = event.observation
                renderer.handle(event)
            subscription.close()


@click.command()
@click.option("--continuous", "-c", is_flag=True, help="Keep polling until interrupted")
@click.option("--lines", "-n", default=DEFAULT_LOG_LINES, show_default=True, help="Log lines to show")
@click.option("--verbose", "-v", is_flag=True, help="Show all output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format (one-shot only)")
@click.pass_context
def monitor(ctx, continuous, lines, verbose, json_output):
    """
    Check application health

    Examples:
        # One report: health, service state, last log lines
        binship monitor

        # Poll until Ctrl+C
        binship monitor --continuous
    """
    obj = ctx.obj or {}
    cmd = MonitorCommand(
        MonitorOptions(continuous=continuous, lines=lines),
        config_path=obj.get("config"),
        verbose=verbose or obj.get("verbose", False),
        json_output=json_output and not continuous,
    )
    cmd.run()
