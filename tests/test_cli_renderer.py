"""Unit tests for the line renderer and the deploy logger."""

from __future__ import annotations

import pytest
from rich.console import Console

from binship.event_bus import EventBus
from binship.events import (
    BuildProgress,
    RunCompleted,
    StageCompleted,
    StageFailed,
    StageStarted,
    TransferRetry,
)
from binship.logger import DeployLogger
from binship.models.pipeline import Stage
from binship.renderers.cli_renderer import CliRenderer


@pytest.fixture
def console() -> Console:
    return Console(record=True, width=120)


@pytest.fixture
def logger(tmp_path, console):
    logger = DeployLogger("api", "deploy", log_root=tmp_path, console_output=console)
    yield logger
    logger.close()


class TestCliRenderer:
    @pytest.mark.asyncio
    async def test_consume_stops_at_run_completed(self, logger, console) -> None:
        bus = EventBus()
        sub = bus.subscribe()
        renderer = CliRenderer(logger)

        bus.publish(StageStarted(stage=Stage.BUILDING))
        bus.publish(BuildProgress(line="\x1b[32mCompiling\x1b[0m api"))
        bus.publish(StageCompleted(stage=Stage.BUILDING, detail="1.0 MB in 2.0s"))
        bus.publish(RunCompleted(kind="build", succeeded=True, final_stage=Stage.SUCCEEDED))

        completed = await renderer.consume(sub)

        assert completed.succeeded
        text = console.export_text()
        assert "Building" in text
        assert "1.0 MB in 2.0s" in text

    def test_failure_keeps_bracketed_text(self, logger, console) -> None:
        renderer = CliRenderer(logger)

        renderer.handle(StageStarted(stage=Stage.BUILDING))
        renderer.handle(
            StageFailed(
                stage=Stage.BUILDING,
                cause="BuildFailed",
                message="error[E0425]: cannot find value",
                output="error[E0425]: cannot find value `x`",
            )
        )

        text = console.export_text()
        assert "Building failed (BuildFailed)" in text
        assert "error[E0425]: cannot find value" in text
        assert logger.has_errors

    def test_retry_is_a_warning(self, logger, console) -> None:
        CliRenderer(logger).handle(TransferRetry(attempt=1, max_attempts=3, delay=1.0, error="refused"))
        assert "Attempt 1/3 failed: refused. Retrying in 1s" in console.export_text()


class TestDeployLogger:
    def test_log_file_layout_and_ansi_stripping(self, tmp_path, console) -> None:
        logger = DeployLogger("api", "build", log_root=tmp_path, console_output=console)
        logger.log_output("\x1b[1mCompiling\x1b[0m api", "build")
        logger.close()

        assert logger.log_path.parent.parent == tmp_path / ".binship" / "logs"
        assert logger.log_path.name.endswith("_build.log")
        content = logger.log_path.read_text()
        assert "  [build] Compiling api" in content
        assert "Status: SUCCESS" in content
