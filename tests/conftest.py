"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from binship.event_bus import EventBus
from binship.exceptions import ConnectRefusedError
from binship.models.config import DeploymentConfig
from binship.models.results import BuildResult, ExecResult, ServiceStatus


def make_config(project_path: Path, **overrides) -> DeploymentConfig:
    values = dict(
        project_path=project_path,
        binary_name="api",
        host="10.0.0.5",
        user="deploy",
        install_path="/opt/api",
        service_name="api.service",
        key_path="~/.ssh/id_ed25519",
        health_endpoint="http://10.0.0.5:8080/health",
        poll_interval=1.0,
        health_timeout=1.0,
        grace_period=3.0,
    )
    values.update(overrides)
    return DeploymentConfig(**values)


class FakeSession:
    """In-memory stand-in for RemoteSession."""

    def __init__(self, responses: Optional[Dict[str, ExecResult]] = None):
        self.responses = responses or {}
        self.commands: List[str] = []
        self.uploads: List[tuple] = []
        self.files: Dict[str, str] = {}
        self.closed = False

    async def exec(self, command: str, timeout: Optional[float] = None) -> ExecResult:
        self.commands.append(command)
        for prefix, result in self.responses.items():
            if command.startswith(prefix):
                return result
        return ExecResult(exit_code=0, command=command)

    async def upload(self, local_path, remote_path, mode=0o644, progress=None, timeout=None) -> int:
        size = Path(local_path).stat().st_size
        self.uploads.append((local_path, remote_path, mode))
        if progress:
            progress(size // 2, size)
            progress(size, size)
        return size

    async def write_text(self, remote_path: str, content: str, timeout=None) -> None:
        self.files[remote_path] = content

    async def close(self) -> None:
        self.closed = True


class SessionFactory:
    """Hands out FakeSessions, optionally failing the first connects."""

    def __init__(self, failures: Optional[List[Exception]] = None):
        self.failures = list(failures or [])
        self.sessions: List[FakeSession] = []
        self.calls = 0

    async def __call__(self, config: DeploymentConfig) -> FakeSession:
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        session = FakeSession()
        self.sessions.append(session)
        return session


class FakeSupervisor:
    """ServiceSupervisor recording every call into a shared journal."""

    def __init__(self, journal: List[str], active: bool = True):
        self.journal = journal
        self.active = active

    def _status(self) -> ServiceStatus:
        return ServiceStatus(
            active=self.active,
            enabled=True,
            pid=4242 if self.active else None,
            state="active" if self.active else "failed",
        )

    async def prepare_install_dir(self) -> None:
        self.journal.append("prepare_install_dir")

    async def place_binary(self) -> None:
        self.journal.append("place_binary")

    async def set_permissions(self) -> None:
        self.journal.append("set_permissions")

    async def install(self, unit_definition: str) -> bool:
        self.journal.append("install")
        return True

    async def start(self) -> ServiceStatus:
        self.journal.append("start")
        return self._status()

    async def stop(self) -> ServiceStatus:
        self.journal.append("stop")
        return ServiceStatus(active=False, enabled=True, state="inactive")

    async def restart(self) -> ServiceStatus:
        self.journal.append("restart")
        return self._status()

    async def status(self) -> ServiceStatus:
        return self._status()


class FakeBuildRunner:
    """BuildRunner double that writes a fake artifact instead of compiling."""

    def __init__(self, artifact: Path, error: Optional[Exception] = None):
        self.artifact = artifact
        self.error = error
        self.calls: List[dict] = []

    def artifact_path(self, config, mode=None) -> Path:
        return self.artifact

    def find_artifact(self, config, mode=None) -> Optional[Path]:
        return self.artifact if self.artifact.is_file() else None

    async def run(self, config, dry_run=False, mode=None, on_line: Optional[Callable] = None) -> BuildResult:
        self.calls.append({"dry_run": dry_run, "mode": mode})
        if dry_run:
            return BuildResult(success=True, duration=0.1, binary_path=self.artifact, simulated=True)
        if self.error is not None:
            raise self.error
        if on_line:
            on_line("Compiling api v0.1.0")
        self.artifact.parent.mkdir(parents=True, exist_ok=True)
        self.artifact.write_bytes(b"\x7fELF" + b"\x00" * 60)
        return BuildResult(
            success=True,
            duration=0.5,
            binary_path=self.artifact,
            binary_size=self.artifact.stat().st_size,
        )


class FakeHealthMonitor:
    """Returns queued observations, repeating the last one."""

    def __init__(self, observations):
        self.observations = list(observations)
        self.calls = 0

    async def observe_once(self, endpoint, timeout, expect_body=None):
        self.calls += 1
        if len(self.observations) > 1:
            return self.observations.pop(0)
        return self.observations[0]

    async def aclose(self) -> None:
        pass


async def no_sleep(delay: float) -> None:
    return None


@pytest.fixture
def config(tmp_path: Path) -> DeploymentConfig:
    return make_config(tmp_path)


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def artifact(tmp_path: Path) -> Path:
    return tmp_path / "target" / "release" / "api"


@pytest.fixture
def journal() -> List[str]:
    return []


@pytest.fixture
def refused() -> ConnectRefusedError:
    return ConnectRefusedError("Failed to connect to deploy@10.0.0.5:22", context="refused")
