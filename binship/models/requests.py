"""
Command Request Models

Typed command selections accepted by the dispatcher.
"""

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class BuildRequest:
    mode: Optional[str] = None
    dry_run: bool = False


@dataclass(frozen=True)
class DeployRequest:
    skip_build: bool = False
    force: bool = False
    dry_run: bool = False


@dataclass(frozen=True)
class MonitorRequest:
    continuous: bool = False
    lines: int = 50


@dataclass(frozen=True)
class ValidateConfigRequest:
    path: Optional[str] = None


@dataclass(frozen=True)
class QuitRequest:
    pass


CommandRequest = Union[
    BuildRequest, DeployRequest, MonitorRequest, ValidateConfigRequest, QuitRequest
]
