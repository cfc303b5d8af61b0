"""
binship Renderers

Event bus consumers: line-oriented CLI output and the interactive dashboard.
"""

from .cli_renderer import CliRenderer
from .dashboard import DashboardState, run_dashboard

__all__ = [
    "CliRenderer",
    "DashboardState",
    "run_dashboard",
]
