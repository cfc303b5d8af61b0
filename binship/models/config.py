"""
Configuration Models

Immutable settings record shared by every stage of a run.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from binship.constants import STAGING_SUFFIX, UNIT_DIR


@dataclass(frozen=True)
class DeploymentConfig:
    """Validated deployment settings. One snapshot per run."""

    project_path: Path
    binary_name: str
    host: str
    user: str
    install_path: str
    service_name: str
    build_mode: str = "release"
    port: int = 22
    key_path: Optional[str] = None
    password: Optional[str] = None
    health_endpoint: Optional[str] = None
    expect_body: Optional[str] = None
    log_path: Optional[str] = None
    poll_interval: float = 10.0
    health_timeout: float = 5.0
    grace_period: float = 30.0
    transfer_attempts: int = 3
    command_timeout: float = 30.0

    @property
    def key_path_expanded(self) -> Optional[str]:
        """Get expanded key path."""
        if not self.key_path:
            return None
        return str(Path(self.key_path).expanduser())

    @property
    def remote_binary_path(self) -> str:
        """Final location of the binary on the remote host."""
        return f"{self.install_path.rstrip('/')}/{self.binary_name}"

    @property
    def staging_path(self) -> str:
        """Upload target; moved into place once the transfer completes."""
        return f"{self.remote_binary_path}{STAGING_SUFFIX}"

    @property
    def unit_path(self) -> str:
        return f"{UNIT_DIR}/{self.service_name}"

    @property
    def is_release(self) -> bool:
        return self.build_mode == "release"

    def missing_fields(self, *names: str) -> list[str]:
        """Return the names of required fields that are empty."""
        missing = []
        for name in names:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing
