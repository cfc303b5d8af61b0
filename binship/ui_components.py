"""
binship - UI Components & Branding
Standardized headers and colors shared by the CLI and the dashboard
"""

from rich.console import Console

LOGO = "binship"

# Color scheme
BRAND_COLOR = "color(214)"
SUCCESS_COLOR = "green"
WARNING_COLOR = "yellow"
ERROR_COLOR = "red"
INFO_COLOR = "cyan"

HEALTH_COLORS = {
    "healthy": SUCCESS_COLOR,
    "unhealthy": WARNING_COLOR,
    "unreachable": ERROR_COLOR,
}


def show_header(
    title: str,
    subtitle: str = None,
    project: str = None,
    details: dict = None,
    console: Console = None,
):
    """
    Display a standardized binship command header.

    Args:
        title: Main title (e.g., "Deploy", "Monitor")
        subtitle: Optional subtitle line
        project: Binary name (if applicable)
        details: Additional key-value pairs to display
        console: Rich Console instance (creates new if None)

    Example:
        show_header(
            title="Deploy",
            project="api-server",
            details={"Host": "10.0.0.5", "Mode": "release"}
        )
    """
    if console is None:
        console = Console()

    prefix = f" [bold {BRAND_COLOR}]{LOGO}[/bold {BRAND_COLOR}] [dim]›[/dim]"

    console.print(f"{prefix} [bold white]{title}[/bold white]")

    if subtitle:
        console.print(f"{prefix} [dim]{subtitle}[/dim]")

    if project:
        console.print(f"{prefix} Project: [cyan]{project}[/cyan]")

    if details:
        for key, value in details.items():
            console.print(f"{prefix} {key}: [cyan]{value}[/cyan]")

    console.print()


def health_markup(status: str) -> str:
    """Colored label for a health status value."""
    color = HEALTH_COLORS.get(status, "white")
    return f"[{color}]{status}[/{color}]"
