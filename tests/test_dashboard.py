"""Unit tests for the dashboard state."""

from __future__ import annotations

from datetime import datetime

from rich.console import Console

from binship.event_bus import EventBus
from binship.events import (
    HealthTick,
    LogLine,
    Notice,
    RunCompleted,
    StageCompleted,
    StageFailed,
    StageStarted,
)
from binship.models.pipeline import Stage
from binship.models.requests import (
    BuildRequest,
    DeployRequest,
    MonitorRequest,
    QuitRequest,
    ValidateConfigRequest,
)
from binship.models.results import HealthObservation, HealthStatus
from binship.renderers.dashboard import TABS, DashboardState


class TestKeys:
    def test_command_keys(self, config) -> None:
        state = DashboardState(config, dry_run=True)

        assert state.handle_key("b") == BuildRequest(dry_run=True)
        assert state.handle_key("d") == DeployRequest(dry_run=True)
        assert state.handle_key("f") == DeployRequest(force=True, dry_run=True)
        assert state.handle_key("v") == ValidateConfigRequest()
        assert isinstance(state.handle_key("q"), QuitRequest)
        assert isinstance(state.handle_key("\x1b"), QuitRequest)
        assert state.handle_key("z") is None

    def test_monitor_key_switches_tab(self, config) -> None:
        state = DashboardState(config)

        request = state.handle_key("m")

        assert isinstance(request, MonitorRequest)
        assert request.continuous
        assert TABS[state.tab] == "Monitor"

    def test_tab_navigation_wraps(self, config) -> None:
        state = DashboardState(config)
        state.handle_key("h")
        assert TABS[state.tab] == "Config"
        state.handle_key("l")
        state.handle_key("\x1b[C")
        assert TABS[state.tab] == "Monitor"


class TestEvents:
    def test_pipeline_progress(self, config) -> None:
        bus = EventBus()
        state = DashboardState(config)

        for event in (
            StageStarted(stage=Stage.BUILDING),
            StageCompleted(stage=Stage.BUILDING, detail="1.0 MB in 3.0s"),
            StageStarted(stage=Stage.TRANSFERRING),
            StageFailed(stage=Stage.TRANSFERRING, cause="TransportError", message="refused"),
            RunCompleted(succeeded=False, abort_stage=Stage.TRANSFERRING, cause="TransportError"),
        ):
            state.apply(bus.publish(event))

        assert state.stage_status[Stage.BUILDING] == "done"
        assert state.stage_status[Stage.TRANSFERRING] == "failed"
        assert state.run_state == "aborted"
        assert "TransportError" in state.status_message

    def test_health_and_logs(self, config) -> None:
        state = DashboardState(config)
        observation = HealthObservation(datetime.now(), HealthStatus.UNREACHABLE, error="refused")

        state.apply(HealthTick(observation=observation))
        state.apply(LogLine(line="[error] boom"))
        state.apply(Notice(message="Monitoring stopped"))

        assert list(state.health) == [observation]
        assert list(state.logs) == ["[error] boom"]

    def test_every_tab_renders(self, config) -> None:
        state = DashboardState(config)
        state.apply(HealthTick(observation=HealthObservation(datetime.now(), HealthStatus.HEALTHY, latency=0.01)))
        state.apply(LogLine(line="[not markup]"))
        console = Console(record=True, width=100)

        for tab in range(len(TABS)):
            state.tab = tab
            console.print(state.render())

        text = console.export_text()
        assert "Verifying health" in text
        assert "[not markup]" in text
        assert "10.0.0.5" in text
