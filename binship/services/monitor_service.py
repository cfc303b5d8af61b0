"""
Application Monitor

Combines health probes, service status and log tailing for the monitor
command and the interactive dashboard.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from binship.constants import STREAM_HEALTH
from binship.event_bus import EventBus
from binship.events import HealthTick, LogLine, Notice
from binship.exceptions import TransportError
from binship.models.config import DeploymentConfig
from binship.models.results import HealthObservation, ServiceStatus
from binship.services.health_monitor import HealthMonitor, LogTailer
from binship.services.service_controller import SystemdController
from binship.services.ssh_service import open_session


@dataclass
class MonitorReport:
    """Snapshot of the application as seen from the operator's machine."""

    observation: Optional[HealthObservation] = None
    service_status: Optional[ServiceStatus] = None
    log_lines: List[str] = field(default_factory=list)
    ssh_ok: bool = False
    ssh_error: Optional[str] = None

    @property
    def healthy(self) -> bool:
        if self.observation is not None:
            return self.observation.is_healthy
        return bool(self.service_status and self.service_status.active)

    def issues(self) -> List[str]:
        problems = []
        if self.observation is not None and not self.observation.is_healthy:
            problems.append(f"health {self.observation.summary}")
        if not self.ssh_ok:
            problems.append(f"ssh: {self.ssh_error or 'unavailable'}")
        elif self.service_status is not None and not self.service_status.active:
            problems.append(f"service {self.service_status.display}")
        return problems

    def summary(self) -> str:
        problems = self.issues()
        if not problems:
            return "All systems operational"
        return f"Issues: {', '.join(problems)}"


class ApplicationMonitor:
    """Observes one deployed application."""

    def __init__(
        self,
        config: DeploymentConfig,
        health_monitor: Optional[HealthMonitor] = None,
        session_factory: Optional[Callable] = None,
    ):
        self.config = config
        self.health_monitor = health_monitor or HealthMonitor()
        self.session_factory = session_factory or open_session

    async def observe(self) -> Optional[HealthObservation]:
        if not self.config.health_endpoint:
            return None
        return await self.health_monitor.observe_once(
            self.config.health_endpoint,
            self.config.health_timeout,
            self.config.expect_body,
        )

    async def check_once(self, lines: int = 0) -> MonitorReport:
        """One health observation, the service state and the last log lines."""
        report = MonitorReport(observation=await self.observe())

        try:
            session = await self.session_factory(self.config)
        except TransportError as e:
            report.ssh_error = e.message
            return report

        try:
            report.ssh_ok = True
            report.service_status = await SystemdController(session, self.config).status()
            if lines and self.config.log_path:
                tailer = LogTailer(session, self.config.log_path)
                report.log_lines = await tailer.last_lines(lines)
        finally:
            await session.close()
        return report

    async def run(self, bus: EventBus, lines: int = 0) -> None:
        """
        Publish health ticks every interval and, when a log path is set,
        newly appended log lines. Runs until cancelled.
        """
        tasks = []
        if self.config.health_endpoint:
            tasks.append(asyncio.ensure_future(self._health_loop(bus)))
        if self.config.log_path:
            tasks.append(asyncio.ensure_future(self._log_loop(bus, lines)))

        if not tasks:
            bus.publish(
                Notice(message="Nothing to monitor: set monitor.health_endpoint or monitor.log_path", level="WARNING"),
                stream=STREAM_HEALTH,
            )
            return

        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _health_loop(self, bus: EventBus) -> None:
        def sink(observation: HealthObservation) -> None:
            bus.publish(HealthTick(observation=observation))

        await self.health_monitor.run_continuous(
            self.config.health_endpoint,
            self.config.poll_interval,
            sink,
            self.config.health_timeout,
            self.config.expect_body,
        )

    async def _log_loop(self, bus: EventBus, lines: int) -> None:
        """Tail the log file, reconnecting after transport failures."""
        offset: Optional[int] = None
        while True:
            try:
                session = await self.session_factory(self.config)
            except TransportError as e:
                self._log_interrupted(bus, e)
                await asyncio.sleep(self.config.poll_interval)
                continue

            tailer = LogTailer(session, self.config.log_path, offset or 0)
            try:
                if offset is None:
                    if lines:
                        for line in await tailer.last_lines(lines):
                            bus.publish(LogLine(line=line))
                    await tailer.seek_end()
                    offset = tailer.offset
                await tailer.follow(
                    self.config.poll_interval,
                    lambda line: bus.publish(LogLine(line=line)),
                )
            except TransportError as e:
                self._log_interrupted(bus, e)
            finally:
                if offset is not None:
                    offset = tailer.offset
                await session.close()
            await asyncio.sleep(self.config.poll_interval)

    def _log_interrupted(self, bus: EventBus, error: TransportError) -> None:
        bus.publish(
            Notice(message=f"Log stream interrupted: {error.message}", level="WARNING"),
            stream=STREAM_HEALTH,
        )
