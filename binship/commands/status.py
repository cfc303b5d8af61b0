"""Status command - remote service and artifact overview"""

import click
from rich.table import Table

from binship.base import ProjectCommand
from binship.services.service_controller import SystemdController


class StatusCommand(ProjectCommand):
    """Show remote service state, last install time and binary size."""

    def execute(self) -> None:
        config = self.load_config()
        self.show_header(
            title="Status",
            project=config.binary_name,
            details={"Host": f"{config.user}@{config.host}:{config.port}"},
        )
        status, installed_at, binary = self.run_async(self._collect())
        local = self.ensure_build_runner().build_info(config)

        if self.json_output:
            self.output_json(
                {
                    "service": config.service_name,
                    "installed": not status.absent,
                    "active": status.active,
                    "enabled": status.enabled,
                    "pid": status.pid,
                    "last_exit": status.last_exit,
                    "last_install": installed_at.isoformat() if installed_at else None,
                    "remote_binary": binary,
                    "local_artifact": str(local["path"]) if local["exists"] else None,
                    "local_size": local["size"],
                }
            )
            return

        table = Table(
            title=f"{config.binary_name} - Service Status",
            title_justify="left",
            padding=(0, 1),
        )
        table.add_column("Component", style="cyan", no_wrap=True)
        table.add_column("Status", style="green")
        table.add_column("Details", style="dim")

        if status.absent:
            table.add_row("Service", "[yellow]not installed[/yellow]", config.service_name)
        else:
            color = "green" if status.active else "red"
            table.add_row(
                "Service",
                f"[{color}]●[/{color}] {status.display}",
                f"{'enabled' if status.enabled else 'disabled'}"
                + (f", pid {status.pid}" if status.pid else "")
                + (f", last exit {status.last_exit}" if status.last_exit is not None else ""),
            )

        table.add_row(
            "Last install",
            installed_at.strftime("%Y-%m-%d %H:%M:%S") if installed_at else "[dim]-[/dim]",
            config.unit_path,
        )
        table.add_row(
            "Remote binary",
            "[green]present[/green]" if binary else "[yellow]missing[/yellow]",
            binary or config.remote_binary_path,
        )
        table.add_row(
            "Local artifact",
            local["size_display"] if local["exists"] else "[yellow]not built[/yellow]",
            str(local["path"]),
        )
        self.console.print(table)
        self.console.print()

    async def _collect(self):
        config = self.load_config()
        session = await self.ensure_orchestrator().session_factory(config)
        try:
            controller = SystemdController(session, config)
            status = await controller.status()
            installed_at = await controller.last_install_time()
            binary = await controller.binary_info()
        finally:
            await session.close()
        return status, installed_at, binary


@click.command()
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def status(ctx, json_output):
    """
    Show remote service status
    """
    obj = ctx.obj or {}
    cmd = StatusCommand(
        config_path=obj.get("config"),
        verbose=obj.get("verbose", False),
        json_output=json_output,
    )
    cmd.run()
