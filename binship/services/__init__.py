"""
binship Services Layer

Build, remote session, supervisor, health and pipeline operations.
"""

from .build_service import BuildRunner
from .dispatcher import CommandDispatcher
from .health_monitor import HealthMonitor, LogTailer
from .monitor_service import ApplicationMonitor, MonitorReport
from .orchestrator import DeployOrchestrator
from .service_controller import ServiceSupervisor, SystemdController, render_unit
from .ssh_service import RemoteSession, open_session

__all__ = [
    "BuildRunner",
    "CommandDispatcher",
    "HealthMonitor",
    "LogTailer",
    "ApplicationMonitor",
    "MonitorReport",
    "DeployOrchestrator",
    "ServiceSupervisor",
    "SystemdController",
    "render_unit",
    "RemoteSession",
    "open_session",
]
