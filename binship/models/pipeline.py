"""
Pipeline Models

Stage state machine and per-run outcome bookkeeping.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Stage(Enum):
    """Pipeline stages, in execution order."""

    IDLE = "idle"
    BUILDING = "building"
    TRANSFERRING = "transferring"
    INSTALLING = "installing"
    RESTARTING_SERVICE = "restarting_service"
    VERIFYING_HEALTH = "verifying_health"
    SUCCEEDED = "succeeded"
    ABORTED = "aborted"

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.SUCCEEDED, Stage.ABORTED)

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


_STAGE_ORDER = {stage: index for index, stage in enumerate(Stage)}

# Stages a deploy walks through between Idle and Succeeded
DEPLOY_STAGES = [
    Stage.BUILDING,
    Stage.TRANSFERRING,
    Stage.INSTALLING,
    Stage.RESTARTING_SERVICE,
    Stage.VERIFYING_HEALTH,
]


class OutcomeStatus(Enum):
    """Status of a finished stage."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class StageOutcome:
    """Recorded result of one stage."""

    stage: Stage
    status: OutcomeStatus
    duration: float = 0.0
    detail: str = ""
    cause: Optional[str] = None


@dataclass
class PipelineRun:
    """
    A single build or deploy execution.

    The stage only moves forward. Once terminal the run is finished and
    must not be reused.
    """

    kind: str
    dry_run: bool = False
    stage: Stage = Stage.IDLE
    outcomes: list[StageOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    abort_stage: Optional[Stage] = None
    abort_cause: Optional[str] = None
    abort_message: Optional[str] = None

    def advance(self, stage: Stage) -> None:
        """Move to a later stage."""
        if self.stage.is_terminal:
            raise RuntimeError(f"Run already finished in state {self.stage.value}")
        if stage.order <= self.stage.order:
            raise RuntimeError(
                f"Cannot move from {self.stage.value} back to {stage.value}"
            )
        self.stage = stage
        if stage.is_terminal:
            self.finished_at = datetime.now()

    def record(
        self,
        status: OutcomeStatus,
        duration: float = 0.0,
        detail: str = "",
        cause: Optional[str] = None,
    ) -> StageOutcome:
        """Record the outcome of the current stage."""
        outcome = StageOutcome(self.stage, status, duration, detail, cause)
        self.outcomes.append(outcome)
        return outcome

    def succeed(self) -> None:
        self.advance(Stage.SUCCEEDED)

    def abort(self, stage: Stage, cause: str, message: str = "") -> None:
        """Terminate the run from any non-terminal stage."""
        if self.stage.is_terminal:
            raise RuntimeError(f"Run already finished in state {self.stage.value}")
        self.abort_stage = stage
        self.abort_cause = cause
        self.abort_message = message
        self.stage = Stage.ABORTED
        self.finished_at = datetime.now()

    def outcome_for(self, stage: Stage) -> Optional[StageOutcome]:
        for outcome in self.outcomes:
            if outcome.stage == stage:
                return outcome
        return None

    @property
    def succeeded(self) -> bool:
        return self.stage == Stage.SUCCEEDED

    @property
    def aborted(self) -> bool:
        return self.stage == Stage.ABORTED

    @property
    def duration(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def __repr__(self) -> str:
        if self.aborted:
            return f"PipelineRun(kind={self.kind}, aborted at {self.abort_stage.value}: {self.abort_cause})"
        return f"PipelineRun(kind={self.kind}, stage={self.stage.value})"
