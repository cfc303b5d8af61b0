"""
Result Models

Dataclass models for build, remote execution, service and health results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional


@dataclass
class ValidationResult:
    """Result of a validation operation."""

    is_valid: bool = True
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if validation has errors."""
        return len(self.errors) > 0

    def add_error(self, error: str) -> None:
        """Add an error to the validation result."""
        self.errors.append(error)
        self.is_valid = False

    def add_warning(self, warning: str) -> None:
        """Add a warning to the validation result."""
        self.warnings.append(warning)

    def __repr__(self) -> str:
        return f"ValidationResult(valid={self.is_valid}, errors={len(self.errors)}, warnings={len(self.warnings)})"


@dataclass
class BuildResult:
    """Result of a local build."""

    success: bool
    duration: float
    binary_path: Optional[Path] = None
    binary_size: int = 0
    captured_output: str = ""
    simulated: bool = False
    reused: bool = False

    @property
    def size_display(self) -> str:
        return format_size(self.binary_size)

    def __repr__(self) -> str:
        return f"BuildResult(success={self.success}, duration={self.duration:.2f}s, size={self.size_display})"


@dataclass
class ExecResult:
    """Result of a remote command execution."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    host: str = ""
    command: str = ""
    duration_seconds: float = 0.0

    @property
    def is_success(self) -> bool:
        """Check if remote command succeeded."""
        return self.exit_code == 0

    @property
    def is_failure(self) -> bool:
        """Check if remote command failed."""
        return self.exit_code != 0

    @property
    def output(self) -> str:
        """Get combined output (stdout + stderr)."""
        return f"{self.stdout}\n{self.stderr}".strip()

    def __repr__(self) -> str:
        return f"ExecResult(host={self.host}, exit_code={self.exit_code}, duration={self.duration_seconds:.2f}s)"


@dataclass
class ServiceStatus:
    """Supervisor view of the managed service."""

    active: bool
    enabled: bool
    pid: Optional[int] = None
    last_exit: Optional[int] = None
    absent: bool = False
    state: str = "unknown"

    @classmethod
    def not_installed(cls) -> "ServiceStatus":
        return cls(active=False, enabled=False, absent=True, state="not-found")

    @property
    def display(self) -> str:
        if self.absent:
            return "not installed"
        return self.state


class HealthStatus(Enum):
    """Classification of a single health observation."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNREACHABLE = "unreachable"


@dataclass
class HealthObservation:
    """One health probe result."""

    timestamp: datetime
    status: HealthStatus
    latency: Optional[float] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def is_healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    @property
    def summary(self) -> str:
        if self.is_healthy:
            return f"healthy ({self.latency * 1000:.0f}ms)" if self.latency is not None else "healthy"
        return f"{self.status.value}: {self.error or 'no detail'}"


def format_size(size: int) -> str:
    """Human readable byte size, e.g. '512.0 B' or '1.0 MB'."""
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"
