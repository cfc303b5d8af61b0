"""
Build Service

Drives the local cargo toolchain and inspects the resulting artifact.
"""

import asyncio
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from binship.constants import SIMULATED_STAGE_DURATION
from binship.exceptions import BuildFailedError
from binship.models.config import DeploymentConfig
from binship.models.results import BuildResult, format_size

LineCallback = Callable[[str], None]


class BuildRunner:
    """Runs `cargo build` for the configured binary and reports the artifact."""

    def __init__(self, toolchain: str = "cargo"):
        self.toolchain = toolchain

    def build_command(self, config: DeploymentConfig, mode: Optional[str] = None) -> List[str]:
        mode = mode or config.build_mode
        cmd = [self.toolchain, "build", "--bin", config.binary_name]
        if mode == "release":
            cmd.append("--release")
        return cmd

    def artifact_path(self, config: DeploymentConfig, mode: Optional[str] = None) -> Path:
        """Expected location of the built binary."""
        mode = mode or config.build_mode
        name = config.binary_name
        if os.name == "nt":
            name = f"{name}.exe"
        return config.project_path / "target" / mode / name

    def find_artifact(self, config: DeploymentConfig, mode: Optional[str] = None) -> Optional[Path]:
        path = self.artifact_path(config, mode)
        return path if path.is_file() else None

    def needs_rebuild(self, config: DeploymentConfig, mode: Optional[str] = None) -> bool:
        """
        Check whether the artifact is missing or older than its sources.

        Sources are every *.rs file under src/ plus Cargo.toml.
        """
        artifact = self.find_artifact(config, mode)
        if artifact is None:
            return True

        binary_mtime = artifact.stat().st_mtime
        latest_source = _latest_source_mtime(config.project_path)
        if latest_source is None:
            return False
        return latest_source > binary_mtime

    def build_info(self, config: DeploymentConfig, mode: Optional[str] = None) -> Dict[str, Any]:
        """Describe the current artifact for status output."""
        path = self.artifact_path(config, mode)
        info: Dict[str, Any] = {
            "path": path,
            "exists": path.is_file(),
            "size": 0,
            "size_display": "-",
            "modified": None,
        }
        if info["exists"]:
            stat = path.stat()
            info["size"] = stat.st_size
            info["size_display"] = format_size(stat.st_size)
            info["modified"] = datetime.fromtimestamp(stat.st_mtime)
        return info

    async def run(
        self,
        config: DeploymentConfig,
        dry_run: bool = False,
        mode: Optional[str] = None,
        on_line: Optional[LineCallback] = None,
    ) -> BuildResult:
        """
        Build the binary.

        Args:
            config: Deployment configuration
            dry_run: Synthesize a result without invoking the toolchain
            mode: Override the configured build mode
            on_line: Called with every output line as it arrives

        Returns:
            BuildResult

        Raises:
            BuildFailedError: If the toolchain exits non-zero or produces no artifact
        """
        mode = mode or config.build_mode
        cmd = self.build_command(config, mode)

        if dry_run:
            if on_line:
                on_line(f"[dry-run] would run: {' '.join(cmd)}")
            return BuildResult(
                success=True,
                duration=SIMULATED_STAGE_DURATION,
                binary_path=self.artifact_path(config, mode),
                simulated=True,
            )

        if not self.needs_rebuild(config, mode):
            artifact = self.artifact_path(config, mode)
            if on_line:
                on_line(f"Artifact up to date: {artifact}")
            return BuildResult(
                success=True,
                duration=0.0,
                binary_path=artifact,
                binary_size=artifact.stat().st_size,
                reused=True,
            )

        start = time.monotonic()
        output_lines: List[str] = []
        returncode = await self._execute(cmd, config.project_path, output_lines, on_line)
        duration = time.monotonic() - start
        captured = "\n".join(output_lines)

        if returncode != 0:
            raise BuildFailedError(
                f"Build failed for {config.binary_name}",
                captured_output=captured,
                exit_code=returncode,
            )

        artifact = self.find_artifact(config, mode)
        if artifact is None:
            raise BuildFailedError(
                f"Build succeeded but artifact is missing: {self.artifact_path(config, mode)}",
                captured_output=captured,
            )

        return BuildResult(
            success=True,
            duration=duration,
            binary_path=artifact,
            binary_size=artifact.stat().st_size,
            captured_output=captured,
        )

    async def clean(
        self,
        config: DeploymentConfig,
        dry_run: bool = False,
        on_line: Optional[LineCallback] = None,
    ) -> str:
        """Run `cargo clean` and return its output."""
        cmd = [self.toolchain, "clean"]
        if dry_run:
            if on_line:
                on_line(f"[dry-run] would run: {' '.join(cmd)}")
            return ""

        output_lines: List[str] = []
        returncode = await self._execute(cmd, config.project_path, output_lines, on_line)
        captured = "\n".join(output_lines)
        if returncode != 0:
            raise BuildFailedError(
                "Clean failed", captured_output=captured, exit_code=returncode
            )
        return captured

    async def _execute(
        self,
        cmd: List[str],
        cwd: Path,
        output_lines: List[str],
        on_line: Optional[LineCallback],
    ) -> int:
        """Run a toolchain command, streaming merged stdout/stderr."""
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=str(cwd),
            )
        except FileNotFoundError:
            raise BuildFailedError(
                f"Toolchain not found: {self.toolchain}",
                captured_output="",
            )

        try:
            while True:
                line = await process.stdout.readline()
                if not line:
                    break
                decoded_line = line.decode("utf-8", errors="replace").rstrip()
                output_lines.append(decoded_line)
                if on_line:
                    on_line(decoded_line)
            await process.wait()
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        return process.returncode


async def _terminate(process, grace: float = 5.0) -> None:
    """Stop a running child, escalating to kill if it ignores SIGTERM."""
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()


def _latest_source_mtime(project_path: Path) -> Optional[float]:
    latest = None
    candidates = list((project_path / "src").rglob("*.rs"))
    manifest = project_path / "Cargo.toml"
    if manifest.exists():
        candidates.append(manifest)
    for path in candidates:
        mtime = path.stat().st_mtime
        if latest is None or mtime > latest:
            latest = mtime
    return latest
