"""Unit tests for the application monitor."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from binship.events import HealthTick, LogLine, Notice
from binship.models.results import ExecResult
from binship.services.health_monitor import HealthMonitor
from binship.services.monitor_service import ApplicationMonitor
from tests.conftest import FakeSession, SessionFactory, make_config

ACTIVE = ExecResult(exit_code=0, stdout="ActiveState=active\nUnitFileState=enabled\nMainPID=7\nLoadState=loaded\n")


def healthy_monitor() -> HealthMonitor:
    return HealthMonitor(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="ok")))


class TestCheckOnce:
    @pytest.mark.asyncio
    async def test_all_systems_operational(self, tmp_path) -> None:
        config = make_config(tmp_path, log_path="/var/log/api.log")
        session = FakeSession({"systemctl show": ACTIVE, "tail -n": ExecResult(exit_code=0, stdout="a\nb\n")})

        async def factory(cfg):
            return session

        monitor = ApplicationMonitor(config, healthy_monitor(), session_factory=factory)
        report = await monitor.check_once(lines=2)

        assert report.healthy
        assert report.ssh_ok
        assert report.service_status.pid == 7
        assert report.log_lines == ["a", "b"]
        assert report.summary() == "All systems operational"
        assert session.closed

    @pytest.mark.asyncio
    async def test_ssh_failure_is_reported_not_raised(self, config, refused) -> None:
        monitor = ApplicationMonitor(
            config, healthy_monitor(), session_factory=SessionFactory(failures=[refused])
        )

        report = await monitor.check_once()

        assert not report.ssh_ok
        assert report.ssh_error == refused.message
        assert report.summary().startswith("Issues: ssh:")

    @pytest.mark.asyncio
    async def test_unhealthy_endpoint(self, config) -> None:
        health = HealthMonitor(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
        monitor = ApplicationMonitor(config, health, session_factory=SessionFactory())

        report = await monitor.check_once()

        assert not report.healthy
        assert "health unhealthy: HTTP 503" in report.summary()


class TestRun:
    @pytest.mark.asyncio
    async def test_publishes_health_ticks(self, tmp_path, bus) -> None:
        config = make_config(tmp_path, poll_interval=0.01)
        sub = bus.subscribe()
        monitor = ApplicationMonitor(config, healthy_monitor(), session_factory=SessionFactory())

        task = asyncio.ensure_future(monitor.run(bus))
        ticks = []
        while len(ticks) < 2:
            event = await sub.get()
            if isinstance(event, HealthTick):
                ticks.append(event)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert all(t.stream == "health" for t in ticks)
        assert [t.seq for t in ticks] == [1, 2]

    @pytest.mark.asyncio
    async def test_publishes_last_log_lines(self, tmp_path, bus) -> None:
        config = make_config(tmp_path, health_endpoint=None, log_path="/var/log/api.log", poll_interval=0.01)
        session = FakeSession({"tail -n": ExecResult(exit_code=0, stdout="boot\nready\n")})

        async def factory(cfg):
            return session

        sub = bus.subscribe()
        monitor = ApplicationMonitor(config, healthy_monitor(), session_factory=factory)
        task = asyncio.ensure_future(monitor.run(bus, lines=5))

        lines = []
        while len(lines) < 2:
            event = await sub.get()
            if isinstance(event, LogLine):
                lines.append(event.line)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert lines == ["boot", "ready"]
        assert session.closed

    @pytest.mark.asyncio
    async def test_nothing_to_monitor(self, tmp_path, bus) -> None:
        config = make_config(tmp_path, health_endpoint=None, log_path=None)
        sub = bus.subscribe()

        await ApplicationMonitor(config, healthy_monitor()).run(bus)

        events = sub.drain()
        assert isinstance(events[0], Notice)
        assert events[0].level == "WARNING"

    @pytest.mark.asyncio
    async def test_log_failure_does_not_stop_health_ticks(self, tmp_path, bus, refused) -> None:
        config = make_config(tmp_path, log_path="/var/log/api.log", poll_interval=0.01)
        sub = bus.subscribe()
        sessions = SessionFactory(failures=[refused] * 100)
        monitor = ApplicationMonitor(config, healthy_monitor(), session_factory=sessions)

        task = asyncio.ensure_future(monitor.run(bus))
        ticks, warnings = [], []
        while len(ticks) < 3 or not warnings:
            event = await asyncio.wait_for(sub.get(), timeout=1.0)
            if isinstance(event, HealthTick):
                ticks.append(event)
            elif isinstance(event, Notice):
                warnings.append(event)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert warnings[0].level == "WARNING"
        assert warnings[0].stream == "health"
        assert warnings[0].message.startswith("Log stream interrupted")

    @pytest.mark.asyncio
    async def test_log_stream_reconnects(self, tmp_path, bus, refused) -> None:
        config = make_config(tmp_path, health_endpoint=None, log_path="/var/log/api.log", poll_interval=0.01)
        sub = bus.subscribe()
        sessions = SessionFactory(failures=[refused])
        monitor = ApplicationMonitor(config, healthy_monitor(), session_factory=sessions)

        task = asyncio.ensure_future(monitor.run(bus, lines=5))
        while not sessions.sessions:
            await asyncio.sleep(0.01)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

        assert sessions.calls == 2
        assert any(c.startswith("tail -n 5") for c in sessions.sessions[0].commands)
