"""
binship Models

Dataclass models for configuration, results, pipeline state and requests.
"""

from binship.models.config import DeploymentConfig
from binship.models.pipeline import (
    DEPLOY_STAGES,
    OutcomeStatus,
    PipelineRun,
    Stage,
    StageOutcome,
)
from binship.models.requests import (
    BuildRequest,
    CommandRequest,
    DeployRequest,
    MonitorRequest,
    QuitRequest,
    ValidateConfigRequest,
)
from binship.models.results import (
    BuildResult,
    ExecResult,
    HealthObservation,
    HealthStatus,
    ServiceStatus,
    ValidationResult,
    format_size,
)

__all__ = [
    "DeploymentConfig",
    "DEPLOY_STAGES",
    "OutcomeStatus",
    "PipelineRun",
    "Stage",
    "StageOutcome",
    "BuildRequest",
    "CommandRequest",
    "DeployRequest",
    "MonitorRequest",
    "QuitRequest",
    "ValidateConfigRequest",
    "BuildResult",
    "ExecResult",
    "HealthObservation",
    "HealthStatus",
    "ServiceStatus",
    "ValidationResult",
    "format_size",
]
