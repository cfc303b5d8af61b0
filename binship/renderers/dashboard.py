"""
Interactive dashboard.

A rich Live view that only reads from the event bus. Key presses become
command requests for the dispatcher; nothing here touches the pipeline or
the monitor directly.
"""

import asyncio
import threading
from collections import deque
from datetime import datetime
from typing import Optional

import click
from rich.console import Console, Group
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from binship.constants import (
    EVENT_WINDOW_SIZE,
    HEALTH_WINDOW_SIZE,
    LOG_WINDOW_SIZE,
    STREAM_HEALTH,
)
from binship.event_bus import EventBus
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
from binship.models.config import DeploymentConfig
from binship.models.pipeline import DEPLOY_STAGES, Stage
from binship.models.requests import (
    BuildRequest,
    DeployRequest,
    MonitorRequest,
    QuitRequest,
    ValidateConfigRequest,
)
from binship.services.dispatcher import CommandDispatcher
from binship.ui_components import BRAND_COLOR, LOGO, health_markup

TABS = ["Pipeline", "Monitor", "Config"]

KEY_HELP = (
    "[bold]b[/bold] build  [bold]d[/bold] deploy  [bold]f[/bold] force deploy  "
    "[bold]m[/bold] monitor  [bold]v[/bold] validate  [bold]c[/bold] clear  "
    "[bold]←/→[/bold] tabs  [bold]q[/bold] quit"
)

ARROW_LEFT = ("\x1b[D", "\xe0K")
ARROW_RIGHT = ("\x1b[C", "\xe0M")
ESCAPE = "\x1b"


class DashboardState:
    """Everything the dashboard shows, updated only from events."""

    def __init__(self, config: DeploymentConfig, dry_run: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.tab = 0
        self.stage_status = {}
        self.stage_detail = {}
        self.run_kind: Optional[str] = None
        self.run_state = "idle"
        self.events = deque(maxlen=EVENT_WINDOW_SIZE)
        self.health = deque(maxlen=HEALTH_WINDOW_SIZE)
        self.logs = deque(maxlen=LOG_WINDOW_SIZE)
        self.status_message = "Ready"
        self.monitoring = False

    # -- input --------------------------------------------------------------

    def handle_key(self, key: str):
        """
        Translate a key press into a command request.

        Returns:
            A request for the dispatcher, or None for view-only keys
        """
        if key in ("q", "Q", ESCAPE):
            return QuitRequest()
        if key in ("h",) + ARROW_LEFT:
            self.tab = (self.tab - 1) % len(TABS)
            return None
        if key in ("l",) + ARROW_RIGHT:
            self.tab = (self.tab + 1) % len(TABS)
            return None
        if key == "c":
            self.status_message = "Ready"
            self.events.clear()
            return None
        if key == "b":
            self.status_message = "Build requested"
            return BuildRequest(dry_run=self.dry_run)
        if key == "d":
            self.status_message = "Deploy requested"
            return DeployRequest(dry_run=self.dry_run)
        if key == "f":
            self.status_message = "Forced deploy requested"
            return DeployRequest(force=True, dry_run=self.dry_run)
        if key == "m":
            self.monitoring = not self.monitoring
            self.tab = TABS.index("Monitor")
            return MonitorRequest(continuous=True, lines=LOG_WINDOW_SIZE)
        if key == "v":
            return ValidateConfigRequest()
        return None

    # -- events -------------------------------------------------------------

    def apply(self, event) -> None:
        if isinstance(event, StageStarted):
            if event.stage == Stage.BUILDING:
                self.stage_status.clear()
                self.stage_detail.clear()
            self.stage_status[event.stage] = "running"
            self.run_state = "running"
            self._event(f"{event.stage.label} started")
        elif isinstance(event, StageCompleted):
            self.stage_status[event.stage] = "skipped" if event.skipped else "done"
            self.stage_detail[event.stage] = event.detail
            self._event(f"{event.stage.label}: {event.detail}")
        elif isinstance(event, StageFailed):
            self.stage_status[event.stage] = "failed"
            self.stage_detail[event.stage] = f"{event.cause}: {event.message}"
            self._event(f"[red]{event.stage.label} failed ({event.cause})[/red]", raw=True)
        elif isinstance(event, RunCompleted):
            self.run_kind = event.kind
            if event.succeeded:
                self.run_state = "succeeded"
                self.status_message = f"{event.kind.capitalize()} succeeded in {event.duration:.1f}s"
            else:
                self.run_state = "aborted"
                self.status_message = (
                    f"{event.kind.capitalize()} aborted at {event.abort_stage.label}: {event.cause}"
                )
        elif isinstance(event, BuildProgress):
            self.stage_detail[Stage.BUILDING] = event.line
        elif isinstance(event, TransferProgress):
            self.stage_detail[Stage.TRANSFERRING] = f"{event.percent:.0f}% (attempt {event.attempt})"
        elif isinstance(event, TransferRetry):
            self._event(
                f"Transfer attempt {event.attempt}/{event.max_attempts} failed, retrying in {event.delay:g}s"
            )
        elif isinstance(event, ServiceStateChanged):
            state = event.status.display if event.status else "unknown"
            self._event(f"Service {event.action}: {state}")
        elif isinstance(event, HealthTick):
            self.health.append(event.observation)
        elif isinstance(event, LogLine):
            self.logs.append(event.line)
        elif isinstance(event, Notice):
            self.status_message = event.message
            if event.stream == STREAM_HEALTH and event.message == "Monitoring stopped":
                self.monitoring = False
            self._event(event.message)

    def _event(self, message: str, raw: bool = False) -> None:
        text = message if raw else escape(message)
        self.events.append(f"[dim]{datetime.now():%H:%M:%S}[/dim] {text}")

    # -- rendering ----------------------------------------------------------

    def render(self):
        tabs = Text()
        for index, name in enumerate(TABS):
            style = f"bold {BRAND_COLOR}" if index == self.tab else "dim"
            tabs.append(f" {name} ", style=style)

        title = f"[bold {BRAND_COLOR}]{LOGO}[/bold {BRAND_COLOR}] [dim]›[/dim] {escape(self.config.binary_name)}"
        if self.dry_run:
            title += " [yellow](dry run)[/yellow]"

        body = [self._render_pipeline, self._render_monitor, self._render_config][self.tab]()
        status = Text.from_markup(f"[dim]Status:[/dim] {escape(self.status_message)}")
        return Panel(
            Group(tabs, Text(""), body, Text(""), status, Text.from_markup(f"[dim]{KEY_HELP}[/dim]")),
            title=title,
            title_align="left",
            border_style="cyan",
        )

    def _render_pipeline(self):
        table = Table(show_header=True, padding=(0, 1), expand=True)
        table.add_column("Stage", style="cyan", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Details", style="dim")

        markers = {
            "running": "[yellow]●[/yellow] running",
            "done": "[green]●[/green] done",
            "skipped": "[dim]●[/dim] skipped",
            "failed": "[red]●[/red] failed",
        }
        for stage in DEPLOY_STAGES:
            state = self.stage_status.get(stage)
            table.add_row(
                stage.label,
                markers.get(state, "[dim]○ pending[/dim]"),
                escape(self.stage_detail.get(stage, "")),
            )

        recent = Text.from_markup("\n".join(self.events) or "[dim]No events yet[/dim]")
        return Group(table, Text(""), Panel(recent, title="Recent events", border_style="dim"))

    def _render_monitor(self):
        table = Table(show_header=True, padding=(0, 1), expand=True)
        table.add_column("Time", style="dim", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Latency", justify="right")
        table.add_column("Details", style="dim")

        for observation in list(self.health)[-HEALTH_WINDOW_SIZE:]:
            latency = f"{observation.latency * 1000:.0f}ms" if observation.latency is not None else "-"
            table.add_row(
                f"{observation.timestamp:%H:%M:%S}",
                health_markup(observation.status.value),
                latency,
                escape(observation.error or ""),
            )

        state = "[green]on[/green]" if self.monitoring else "[dim]off (press m)[/dim]"
        logs = Text("\n".join(self.logs)) if self.logs else Text("No log lines", style="dim")
        return Group(
            Text.from_markup(f"Monitoring: {state}"),
            table,
            Panel(logs, title=escape(self.config.log_path or "log"), border_style="dim"),
        )

    def _render_config(self):
        config = self.config
        table = Table(show_header=False, padding=(0, 1), box=None)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value")
        rows = [
            ("Project path", str(config.project_path)),
            ("Binary", config.binary_name),
            ("Build mode", config.build_mode),
            ("Host", f"{config.user}@{config.host}:{config.port}"),
            ("Auth", "key" if config.key_path else "password"),
            ("Install path", config.install_path),
            ("Service", config.service_name),
            ("Health endpoint", config.health_endpoint or "-"),
            ("Log path", config.log_path or "-"),
            ("Poll interval", f"{config.poll_interval:g}s"),
            ("Grace period", f"{config.grace_period:g}s"),
        ]
        for key, value in rows:
            table.add_row(key, escape(value))
        return table


class KeyReader:
    """
    Reads single key presses on a daemon thread.

    The thread blocks in click.getchar; a daemon thread never holds up
    interpreter exit.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.loop = loop
        self.keys: asyncio.Queue = asyncio.Queue()
        self._thread = threading.Thread(target=self._read, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def _read(self) -> None:
        while True:
            try:
                key = click.getchar()
            except (KeyboardInterrupt, EOFError):
                key = "q"
            self.loop.call_soon_threadsafe(self.keys.put_nowait, key)
            if key in ("q", "Q", ESCAPE):
                return

    async def get(self, timeout: float) -> Optional[str]:
        try:
            return await asyncio.wait_for(self.keys.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


async def run_dashboard(
    config: DeploymentConfig,
    bus: EventBus,
    dispatcher: CommandDispatcher,
    console: Optional[Console] = None,
    dry_run: bool = False,
) -> None:
    """Run the interactive loop until the user quits."""
    state = DashboardState(config, dry_run=dry_run)
    subscription = bus.subscribe()
    keys = KeyReader(asyncio.get_running_loop())
    keys.start()
    dispatcher_task = asyncio.ensure_future(dispatcher.run())

    try:
        with Live(
            state.render(),
            console=console,
            refresh_per_second=8,
            screen=True,
        ) as live:
            while not dispatcher_task.done():
                for event in subscription.drain():
                    state.apply(event)

                key = await keys.get(timeout=0.1)
                if key is not None:
                    request = state.handle_key(key)
                    if request is not None:
                        dispatcher.submit(request)

                live.update(state.render())
    finally:
        subscription.close()
        if not dispatcher_task.done():
            dispatcher.submit(QuitRequest())
        await dispatcher_task
