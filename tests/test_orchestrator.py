"""Unit tests for the deploy orchestrator."""

from __future__ import annotations

import asyncio
from datetime import datetime

import pytest

from binship.constants import SIMULATED_STAGE_DURATION, STREAM_PIPELINE
from binship.events import (
    HealthTick,
    RunCompleted,
    ServiceStateChanged,
    StageCompleted,
    StageFailed,
    StageStarted,
    TransferRetry,
)
from binship.exceptions import AuthFailedError, BuildFailedError
from binship.models.pipeline import DEPLOY_STAGES, OutcomeStatus, Stage
from binship.models.requests import BuildRequest, DeployRequest
from binship.models.results import HealthObservation, HealthStatus
from binship.services.orchestrator import DeployOrchestrator
from tests.conftest import (
    FakeBuildRunner,
    FakeHealthMonitor,
    FakeSupervisor,
    SessionFactory,
    make_config,
    no_sleep,
)


def observation(status: HealthStatus) -> HealthObservation:
    error = None if status == HealthStatus.HEALTHY else "HTTP 500"
    return HealthObservation(timestamp=datetime.now(), status=status, latency=0.01, error=error)


HEALTHY = observation(HealthStatus.HEALTHY)
UNHEALTHY = observation(HealthStatus.UNHEALTHY)
UNREACHABLE = HealthObservation(
    timestamp=datetime.now(), status=HealthStatus.UNREACHABLE, error="connection refused"
)


class SlowHealthMonitor:
    """Probes that take a while and then report the endpoint unreachable."""

    def __init__(self, delay: float):
        self.delay = delay
        self.timeouts = []

    async def observe_once(self, endpoint, timeout, expect_body=None):
        self.timeouts.append(timeout)
        await asyncio.sleep(self.delay)
        return UNREACHABLE

    async def aclose(self) -> None:
        pass


def build_orchestrator(
    config,
    bus,
    artifact,
    journal,
    sessions=None,
    health=None,
    active=True,
    build_error=None,
    sleep=no_sleep,
):
    return DeployOrchestrator(
        config,
        bus,
        build_runner=FakeBuildRunner(artifact, error=build_error),
        session_factory=sessions or SessionFactory(),
        supervisor_factory=lambda session, cfg: FakeSupervisor(journal, active=active),
        health_monitor=health or FakeHealthMonitor([HEALTHY]),
        sleep=sleep,
        backoff_base=1.0,
    )


def drain(subscription):
    return subscription.drain()


class TestDeployHappyPath:
    @pytest.mark.asyncio
    async def test_deploy_walks_every_stage_in_order(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.succeeded
        assert [o.stage for o in run.outcomes] == DEPLOY_STAGES
        assert all(o.status == OutcomeStatus.SUCCESS for o in run.outcomes)

        events = drain(sub)
        started = [e.stage for e in events if isinstance(e, StageStarted)]
        completed = [e.stage for e in events if isinstance(e, StageCompleted)]
        assert started == DEPLOY_STAGES
        assert completed == DEPLOY_STAGES
        assert isinstance(events[-1], RunCompleted)
        assert events[-1].succeeded

    @pytest.mark.asyncio
    async def test_each_stage_completes_before_the_next_starts(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        await orchestrator.run_deploy(DeployRequest())

        open_stage = None
        for event in drain(sub):
            if isinstance(event, StageStarted):
                assert open_stage is None
                open_stage = event.stage
            elif isinstance(event, (StageCompleted, StageFailed)):
                assert event.stage == open_stage
                open_stage = None
        assert open_stage is None

    @pytest.mark.asyncio
    async def test_binary_is_placed_only_after_upload(self, config, bus, artifact, journal) -> None:
        sessions = SessionFactory()
        orchestrator = build_orchestrator(config, bus, artifact, journal, sessions=sessions)

        await orchestrator.run_deploy(DeployRequest())

        upload_session = sessions.sessions[0]
        assert upload_session.uploads[0][1] == config.staging_path
        assert journal[:2] == ["prepare_install_dir", "place_binary"]

    @pytest.mark.asyncio
    async def test_every_remote_stage_closes_its_session(self, config, bus, artifact, journal) -> None:
        sessions = SessionFactory()
        orchestrator = build_orchestrator(config, bus, artifact, journal, sessions=sessions)

        await orchestrator.run_deploy(DeployRequest())

        assert len(sessions.sessions) == 3
        assert all(session.closed for session in sessions.sessions)

    @pytest.mark.asyncio
    async def test_sequence_numbers_increase_on_pipeline_stream(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        await orchestrator.run_deploy(DeployRequest())

        seqs = [e.seq for e in drain(sub) if e.stream == STREAM_PIPELINE]
        assert seqs == sorted(seqs)
        assert len(seqs) == len(set(seqs))


class TestDryRun:
    @pytest.mark.asyncio
    async def test_dry_run_emits_full_sequence_without_side_effects(
        self, config, bus, artifact, journal
    ) -> None:
        sub = bus.subscribe()
        sessions = SessionFactory()
        health = FakeHealthMonitor([HEALTHY])
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, sessions=sessions, health=health
        )

        run = await orchestrator.run_deploy(DeployRequest(dry_run=True))

        assert run.succeeded
        assert sessions.calls == 0
        assert health.calls == 0
        assert journal == []
        assert not artifact.exists()

        completed = [e for e in drain(sub) if isinstance(e, StageCompleted)]
        assert [e.stage for e in completed] == DEPLOY_STAGES
        assert all(e.simulated for e in completed)
        assert all(e.duration == SIMULATED_STAGE_DURATION for e in completed)

    @pytest.mark.asyncio
    async def test_dry_run_still_reports_missing_settings(self, tmp_path, bus, artifact, journal) -> None:
        config = make_config(tmp_path, host="")
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        run = await orchestrator.run_deploy(DeployRequest(dry_run=True))

        assert run.aborted
        assert run.abort_stage == Stage.TRANSFERRING
        assert run.abort_cause == "ConfigInvalid"


class TestBuildFailures:
    @pytest.mark.asyncio
    async def test_build_failure_aborts_with_output(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        output = "\n".join(f"line {n}" for n in range(40))
        error = BuildFailedError("Build failed for api", captured_output=output, exit_code=101)
        sessions = SessionFactory()
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, sessions=sessions, build_error=error
        )

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.aborted
        assert run.abort_stage == Stage.BUILDING
        assert run.abort_cause == "BuildFailed"
        assert sessions.calls == 0

        events = drain(sub)
        failed = [e for e in events if isinstance(e, StageFailed)]
        assert len(failed) == 1
        assert failed[0].output.splitlines()[0] == "line 20"
        assert failed[0].output.splitlines()[-1] == "line 39"
        assert events[-1].final_stage == Stage.ABORTED
        assert events[-1].abort_stage == Stage.BUILDING

    @pytest.mark.asyncio
    async def test_skip_build_without_artifact_aborts_before_connecting(
        self, config, bus, artifact, journal
    ) -> None:
        sessions = SessionFactory()
        orchestrator = build_orchestrator(config, bus, artifact, journal, sessions=sessions)

        run = await orchestrator.run_deploy(DeployRequest(skip_build=True))

        assert run.aborted
        assert run.abort_stage == Stage.TRANSFERRING
        assert run.abort_cause == "NoArtifact"
        assert run.outcome_for(Stage.BUILDING).status == OutcomeStatus.SKIPPED
        assert sessions.calls == 0

    @pytest.mark.asyncio
    async def test_skip_build_reuses_existing_artifact(self, config, bus, artifact, journal) -> None:
        artifact.parent.mkdir(parents=True)
        artifact.write_bytes(b"binary")
        runner_orchestrator = build_orchestrator(config, bus, artifact, journal)

        run = await runner_orchestrator.run_deploy(DeployRequest(skip_build=True))

        assert run.succeeded
        assert runner_orchestrator.build_runner.calls == []

    @pytest.mark.asyncio
    async def test_build_only_run(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        run = await orchestrator.run_build(BuildRequest(mode="debug"))

        assert run.succeeded
        assert [o.stage for o in run.outcomes] == [Stage.BUILDING]
        assert orchestrator.build_runner.calls == [{"dry_run": False, "mode": "debug"}]
        assert orchestrator.last_build.binary_path == artifact
        assert isinstance(drain(sub)[-1], RunCompleted)


class TestTransferRetry:
    @pytest.mark.asyncio
    async def test_transient_failures_are_retried_with_backoff(
        self, config, bus, artifact, journal, refused
    ) -> None:
        sub = bus.subscribe()
        delays = []

        async def record_sleep(delay: float) -> None:
            delays.append(delay)

        sessions = SessionFactory(failures=[refused, refused])
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, sessions=sessions, sleep=record_sleep
        )

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.succeeded
        assert delays == [1.0, 2.0]
        retries = [e for e in drain(sub) if isinstance(e, TransferRetry)]
        assert [r.attempt for r in retries] == [1, 2]
        assert all(r.max_attempts == 3 for r in retries)
        assert "after 3 attempts" in run.outcome_for(Stage.TRANSFERRING).detail

    @pytest.mark.asyncio
    async def test_retry_limit_exhausted_aborts_transfer(
        self, config, bus, artifact, journal, refused
    ) -> None:
        sessions = SessionFactory(failures=[refused, refused, refused])
        orchestrator = build_orchestrator(config, bus, artifact, journal, sessions=sessions)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.aborted
        assert run.abort_stage == Stage.TRANSFERRING
        assert run.abort_cause == "TransportError"
        assert run.abort_message.startswith("ConnectionRefused")
        assert sessions.calls == 3
        assert "place_binary" not in journal

    @pytest.mark.asyncio
    async def test_auth_failure_is_not_retried(self, config, bus, artifact, journal) -> None:
        sessions = SessionFactory(failures=[AuthFailedError("Authentication failed")])
        orchestrator = build_orchestrator(config, bus, artifact, journal, sessions=sessions)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.aborted
        assert sessions.calls == 1
        assert run.abort_message.startswith("AuthFailed")


class TestRestart:
    @pytest.mark.asyncio
    async def test_force_stops_then_starts(self, config, bus, artifact, journal) -> None:
        sub = bus.subscribe()
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        await orchestrator.run_deploy(DeployRequest(force=True))

        assert journal[-2:] == ["stop", "start"]
        actions = [e.action for e in drain(sub) if isinstance(e, ServiceStateChanged)]
        assert actions == ["stop", "start"]

    @pytest.mark.asyncio
    async def test_plain_deploy_uses_native_restart(self, config, bus, artifact, journal) -> None:
        orchestrator = build_orchestrator(config, bus, artifact, journal)

        await orchestrator.run_deploy(DeployRequest())

        assert journal[-1] == "restart"
        assert "stop" not in journal

    @pytest.mark.asyncio
    async def test_inactive_service_aborts(self, config, bus, artifact, journal) -> None:
        health = FakeHealthMonitor([HEALTHY])
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, health=health, active=False
        )

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.aborted
        assert run.abort_stage == Stage.RESTARTING_SERVICE
        assert run.abort_cause == "ServiceControlFailed"
        assert health.calls == 0


class TestVerifyHealth:
    @pytest.mark.asyncio
    async def test_first_healthy_observation_succeeds(self, config, bus, artifact, journal) -> None:
        health = FakeHealthMonitor([UNHEALTHY, HEALTHY])
        orchestrator = build_orchestrator(config, bus, artifact, journal, health=health)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.succeeded
        assert health.calls == 2

    @pytest.mark.asyncio
    async def test_exhaustion_aborts_once_without_further_ticks(
        self, config, bus, artifact, journal
    ) -> None:
        sub = bus.subscribe()
        health = FakeHealthMonitor([UNHEALTHY])
        orchestrator = build_orchestrator(config, bus, artifact, journal, health=health)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.aborted
        assert run.abort_stage == Stage.VERIFYING_HEALTH
        assert run.abort_cause == "HealthUnhealthy"

        events = drain(sub)
        ticks = [e for e in events if isinstance(e, HealthTick)]
        assert len(ticks) == health.calls == 3
        assert all(tick.stream == STREAM_PIPELINE for tick in ticks)

        failed_index = next(i for i, e in enumerate(events) if isinstance(e, StageFailed))
        assert not any(isinstance(e, HealthTick) for e in events[failed_index:])
        assert sum(isinstance(e, RunCompleted) for e in events) == 1

    @pytest.mark.asyncio
    async def test_unreachable_endpoint_reports_unreachable_cause(
        self, config, bus, artifact, journal
    ) -> None:
        health = FakeHealthMonitor([UNREACHABLE])
        orchestrator = build_orchestrator(config, bus, artifact, journal, health=health)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.abort_cause == "HealthUnreachable"

    @pytest.mark.asyncio
    async def test_slow_probes_stay_within_grace_period(self, tmp_path, bus, artifact, journal) -> None:
        config = make_config(tmp_path, grace_period=1.0, poll_interval=0.2, health_timeout=1.0)
        health = SlowHealthMonitor(delay=0.5)
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, health=health, sleep=asyncio.sleep
        )

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.abort_cause == "HealthUnreachable"
        assert run.outcome_for(Stage.VERIFYING_HEALTH).duration < 1.4
        assert len(health.timeouts) == 2
        assert health.timeouts[1] < 0.5

    @pytest.mark.asyncio
    async def test_no_endpoint_skips_verification(self, tmp_path, bus, artifact, journal) -> None:
        config = make_config(tmp_path, health_endpoint=None)
        health = FakeHealthMonitor([HEALTHY])
        orchestrator = build_orchestrator(config, bus, artifact, journal, health=health)

        run = await orchestrator.run_deploy(DeployRequest())

        assert run.succeeded
        assert run.outcome_for(Stage.VERIFYING_HEALTH).status == OutcomeStatus.SKIPPED
        assert health.calls == 0


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_during_verification_aborts_as_cancelled(
        self, config, bus, artifact, journal
    ) -> None:
        sub = bus.subscribe()
        polling = asyncio.Event()

        async def slow_sleep(delay: float) -> None:
            polling.set()
            await asyncio.sleep(3600)

        health = FakeHealthMonitor([UNHEALTHY])
        orchestrator = build_orchestrator(
            config, bus, artifact, journal, health=health, sleep=slow_sleep
        )

        task = asyncio.ensure_future(orchestrator.run_deploy(DeployRequest()))
        await polling.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        events = drain(sub)
        failed = [e for e in events if isinstance(e, StageFailed)]
        assert len(failed) == 1
        assert failed[0].stage == Stage.VERIFYING_HEALTH
        assert failed[0].cause == "Cancelled"
        assert isinstance(events[-1], RunCompleted)
        assert events[-1].cause == "Cancelled"
