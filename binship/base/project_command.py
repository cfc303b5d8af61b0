"""
Project Command Base Class

Base class for commands that operate on a configured binary.
Provides config loading and lazy service initialization.
"""

import asyncio
from typing import Awaitable, Optional

from .base_command import BaseCommand
from binship.core.config_loader import ConfigLoader
from binship.event_bus import EventBus
from binship.models.config import DeploymentConfig
from binship.models.pipeline import PipelineRun
from binship.renderers.cli_renderer import CliRenderer
from binship.services import (
    ApplicationMonitor,
    BuildRunner,
    DeployOrchestrator,
    HealthMonitor,
)


class ProjectCommand(BaseCommand):
    """
    Base class for project commands.

    Provides:
    - Config discovery and validation
    - Lazily constructed build, pipeline and monitor services
    - Running a pipeline with live CLI rendering
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        dry_run: bool = False,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(verbose=verbose, json_output=json_output)
        self.config_path = config_path
        self.dry_run = dry_run
        self.config_loader = ConfigLoader()
        self.config: Optional[DeploymentConfig] = None
        self.bus = EventBus()
        self.build_runner: Optional[BuildRunner] = None
        self.health_monitor: Optional[HealthMonitor] = None
        self.orchestrator: Optional[DeployOrchestrator] = None
        self.app_monitor: Optional[ApplicationMonitor] = None

    def load_config(self) -> DeploymentConfig:
        """
        Load and validate configuration.

        Raises:
            ConfigurationError: If the config file is missing or invalid
        """
        if self.config is None:
            self.config = self.config_loader.load(self.config_path)
        return self.config

    def init_project_logger(self, command_name: str):
        config = self.load_config()
        return self.init_logger(config.binary_name, command_name, log_root=config.project_path)

    def ensure_build_runner(self) -> BuildRunner:
        if self.build_runner is None:
            self.build_runner = BuildRunner()
        return self.build_runner

    def ensure_health_monitor(self) -> HealthMonitor:
        if self.health_monitor is None:
            self.health_monitor = HealthMonitor()
        return self.health_monitor

    def ensure_orchestrator(self) -> DeployOrchestrator:
        if self.orchestrator is None:
            self.orchestrator = DeployOrchestrator(
                self.load_config(),
                self.bus,
                build_runner=self.ensure_build_runner(),
                health_monitor=self.ensure_health_monitor(),
            )
        return self.orchestrator

    def ensure_app_monitor(self) -> ApplicationMonitor:
        if self.app_monitor is None:
            self.app_monitor = ApplicationMonitor(
                self.load_config(), health_monitor=self.ensure_health_monitor()
            )
        return self.app_monitor

    def run_async(self, coro: Awaitable):
        """Run a coroutine to completion, closing the HTTP client afterwards."""

        async def _main():
            try:
                return await coro
            finally:
                if self.health_monitor is not None:
                    await self.health_monitor.aclose()

        return asyncio.run(_main())

    async def render_pipeline(self, pipeline: Awaitable[PipelineRun]) -> PipelineRun:
        """
        Await a pipeline run while rendering its events.

        Events still queued when the run fails or is cancelled are rendered
        before the error propagates.
        """
        subscription = self.bus.subscribe()
        renderer = CliRenderer(self.logger)
        render_task = asyncio.ensure_future(renderer.consume(subscription))
        try:
            run = await pipeline
        except BaseException:
            render_task.cancel()
            await asyncio.gather(render_task, return_exceptions=True)
            for event in subscription.drain():
                renderer.handle(event)
            raise
        finally:
            subscription.close()

        await render_task
        return run
