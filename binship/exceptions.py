"""
binship Exception Hierarchy

Clean exception hierarchy for consistent error handling across the pipeline
and the CLI. Every error carries the abort cause name reported in events.
"""

from enum import Enum
from typing import Optional


class BinshipError(Exception):
    """Base exception for all binship errors."""

    cause = "Error"

    def __init__(self, message: str, context: Optional[str] = None):
        self.message = message
        self.context = context
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format error message with optional context."""
        if self.context:
            return f"{self.message}\nContext: {self.context}"
        return self.message


class ConfigurationError(BinshipError):
    """Raised when configuration is invalid or missing."""

    cause = "ConfigInvalid"


class NoArtifactError(BinshipError):
    """Raised when a build is skipped but no prior artifact exists."""

    cause = "NoArtifact"


class BuildFailedError(BinshipError):
    """Raised when the local toolchain exits non-zero."""

    cause = "BuildFailed"

    def __init__(
        self,
        message: str,
        captured_output: str = "",
        exit_code: Optional[int] = None,
    ):
        self.captured_output = captured_output
        self.exit_code = exit_code
        context = f"exit code {exit_code}" if exit_code is not None else None
        super().__init__(message, context)


class TransportErrorKind(Enum):
    """Kind of transport failure."""

    TIMEOUT = "Timeout"
    AUTH_FAILED = "AuthFailed"
    CONNECTION_REFUSED = "ConnectionRefused"


class TransportError(BinshipError):
    """Raised when the remote channel cannot be established or breaks."""

    cause = "TransportError"
    kind = TransportErrorKind.CONNECTION_REFUSED

    @property
    def transient(self) -> bool:
        """Whether retrying can help. False for authentication failures."""
        return self.kind != TransportErrorKind.AUTH_FAILED

    def format_message(self) -> str:
        base = super().format_message()
        return f"{self.kind.value}: {base}"


class ConnectTimeoutError(TransportError):
    """Connect or remote operation exceeded its timeout."""

    kind = TransportErrorKind.TIMEOUT


class AuthFailedError(TransportError):
    """Remote host rejected every configured credential."""

    kind = TransportErrorKind.AUTH_FAILED


class ConnectRefusedError(TransportError):
    """Remote host refused or dropped the connection."""

    kind = TransportErrorKind.CONNECTION_REFUSED


class TransferIncompleteError(BinshipError):
    """Raised when the uploaded file does not match the local artifact."""

    cause = "TransferIncomplete"


class ServiceControlError(BinshipError):
    """Raised when a supervisor command exits non-zero."""

    cause = "ServiceControlFailed"


class HealthUnreachableError(BinshipError):
    """Raised when the health endpoint cannot be reached."""

    cause = "HealthUnreachable"


class HealthUnhealthyError(BinshipError):
    """Raised when the service never reported healthy within the grace period."""

    cause = "HealthUnhealthy"


class RunCancelledError(BinshipError):
    """Raised when a pipeline run is cancelled by the user."""

    cause = "Cancelled"
