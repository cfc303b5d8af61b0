"""
Pipeline and health events.

Every event belongs to one stream and carries a per-stream sequence
number stamped by the EventBus on publish.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union

from binship.constants import STREAM_HEALTH, STREAM_PIPELINE
from binship.models.pipeline import Stage
from binship.models.results import HealthObservation, ServiceStatus


@dataclass
class BaseEvent:
    stream: str = field(default=STREAM_PIPELINE, init=False)
    seq: int = field(default=0, init=False)
    timestamp: datetime = field(default_factory=datetime.now, init=False)


@dataclass
class StageStarted(BaseEvent):
    stage: Stage = Stage.IDLE
    dry_run: bool = False


@dataclass
class StageCompleted(BaseEvent):
    stage: Stage = Stage.IDLE
    duration: float = 0.0
    detail: str = ""
    skipped: bool = False
    simulated: bool = False


@dataclass
class BuildProgress(BaseEvent):
    line: str = ""


@dataclass
class TransferProgress(BaseEvent):
    bytes_sent: int = 0
    total_bytes: int = 0
    attempt: int = 1

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 100.0
        return min(100.0, self.bytes_sent * 100.0 / self.total_bytes)


@dataclass
class TransferRetry(BaseEvent):
    attempt: int = 1
    max_attempts: int = 1
    delay: float = 0.0
    error: str = ""


@dataclass
class ServiceStateChanged(BaseEvent):
    action: str = ""
    status: Optional[ServiceStatus] = None


@dataclass
class HealthTick(BaseEvent):
    observation: Optional[HealthObservation] = None

    def __post_init__(self):
        self.stream = STREAM_HEALTH


@dataclass
class LogLine(BaseEvent):
    line: str = ""

    def __post_init__(self):
        self.stream = STREAM_HEALTH


@dataclass
class StageFailed(BaseEvent):
    stage: Stage = Stage.IDLE
    cause: str = ""
    message: str = ""
    duration: float = 0.0
    output: str = ""


@dataclass
class RunCompleted(BaseEvent):
    kind: str = "deploy"
    succeeded: bool = False
    final_stage: Stage = Stage.IDLE
    abort_stage: Optional[Stage] = None
    cause: Optional[str] = None
    duration: float = 0.0


@dataclass
class Notice(BaseEvent):
    message: str = ""
    level: str = "INFO"


Event = Union[
    StageStarted,
    StageCompleted,
    BuildProgress,
    TransferProgress,
    TransferRetry,
    ServiceStateChanged,
    HealthTick,
    LogLine,
    StageFailed,
    RunCompleted,
    Notice,
]
