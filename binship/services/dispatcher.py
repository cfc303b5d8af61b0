"""
Command Dispatcher

Consumes command requests from a queue and runs them in the background so
the interactive display never waits on a pipeline or a monitor.
"""

import asyncio
from typing import Optional, Set

from binship.constants import STREAM_HEALTH
from binship.core.config_loader import ConfigLoader
from binship.event_bus import EventBus
from binship.events import Notice
from binship.exceptions import BinshipError
from binship.models.requests import (
    BuildRequest,
    CommandRequest,
    DeployRequest,
    MonitorRequest,
    QuitRequest,
    ValidateConfigRequest,
)
from binship.services.monitor_service import ApplicationMonitor
from binship.services.orchestrator import DeployOrchestrator


class CommandDispatcher:
    """
    Single consumer of the command queue.

    At most one pipeline run is active at a time; a build or deploy requested
    while one is running is rejected with a notice. The continuous monitor is
    an independent task toggled by monitor requests.
    """

    def __init__(
        self,
        bus: EventBus,
        orchestrator: DeployOrchestrator,
        monitor: ApplicationMonitor,
        config_loader: Optional[ConfigLoader] = None,
        config_path: Optional[str] = None,
    ):
        self.bus = bus
        self.orchestrator = orchestrator
        self.monitor = monitor
        self.config_loader = config_loader or ConfigLoader()
        self.config_path = config_path
        self.commands: asyncio.Queue = asyncio.Queue()
        self.pipeline_task: Optional[asyncio.Task] = None
        self.monitor_task: Optional[asyncio.Task] = None
        self.check_tasks: Set[asyncio.Task] = set()
        self._stopped = asyncio.Event()

    def submit(self, request: CommandRequest) -> None:
        self.commands.put_nowait(request)

    @property
    def pipeline_running(self) -> bool:
        return self.pipeline_task is not None and not self.pipeline_task.done()

    @property
    def monitoring(self) -> bool:
        return self.monitor_task is not None and not self.monitor_task.done()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    async def run(self) -> None:
        """Process requests until a QuitRequest arrives."""
        try:
            while True:
                request = await self.commands.get()
                if isinstance(request, QuitRequest):
                    break
                await self.handle(request)
        finally:
            await self.shutdown()

    async def handle(self, request: CommandRequest) -> None:
        if isinstance(request, (BuildRequest, DeployRequest)):
            self._start_pipeline(request)
        elif isinstance(request, MonitorRequest):
            await self._handle_monitor(request)
        elif isinstance(request, ValidateConfigRequest):
            self._validate(request)
        else:
            raise TypeError(f"Unknown request: {request!r}")

    def _start_pipeline(self, request) -> None:
        if self.pipeline_running:
            self.bus.publish(
                Notice(message="A run is already in progress", level="WARNING")
            )
            return

        if isinstance(request, BuildRequest):
            coro = self.orchestrator.run_build(request)
        else:
            coro = self.orchestrator.run_deploy(request)
        self.pipeline_task = asyncio.ensure_future(coro)
        self.pipeline_task.add_done_callback(self._report_crash)

    async def _handle_monitor(self, request: MonitorRequest) -> None:
        if not request.continuous:
            task = asyncio.ensure_future(self._check_once(request.lines))
            self.check_tasks.add(task)
            task.add_done_callback(self.check_tasks.discard)
            task.add_done_callback(self._report_crash)
            return

        if self.monitoring:
            await self._cancel(self.monitor_task)
            self.monitor_task = None
            self.bus.publish(Notice(message="Monitoring stopped"), stream=STREAM_HEALTH)
            return

        self.monitor_task = asyncio.ensure_future(self.monitor.run(self.bus, request.lines))
        self.monitor_task.add_done_callback(self._report_crash)
        self.bus.publish(Notice(message="Monitoring started"), stream=STREAM_HEALTH)

    async def _check_once(self, lines: int) -> None:
        report = await self.monitor.check_once(lines)
        level = "INFO" if report.healthy else "WARNING"
        self.bus.publish(Notice(message=report.summary(), level=level), stream=STREAM_HEALTH)

    def _validate(self, request: ValidateConfigRequest) -> None:
        try:
            result = self.config_loader.validate_file(request.path or self.config_path)
        except BinshipError as e:
            self.bus.publish(Notice(message=e.format_message(), level="ERROR"))
            return
        if result.is_valid:
            self.bus.publish(Notice(message="Configuration is valid"))
        for error in result.errors:
            self.bus.publish(Notice(message=error, level="ERROR"))
        for warning in result.warnings:
            self.bus.publish(Notice(message=warning, level="WARNING"))

    def _report_crash(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.bus.publish(
                Notice(message=f"{type(error).__name__}: {error}", level="ERROR")
            )

    async def _cancel(self, task: Optional[asyncio.Task]) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def shutdown(self) -> None:
        """Cancel background work and wait for it to unwind."""
        await self._cancel(self.pipeline_task)
        await self._cancel(self.monitor_task)
        for task in list(self.check_tasks):
            await self._cancel(task)
        self._stopped.set()
