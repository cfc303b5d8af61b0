"""Config commands - create and validate binship.yml"""

from pathlib import Path

import click
from rich.table import Table

from binship.base import BaseCommand
from binship.core.config_loader import ConfigLoader


class ValidateCommand(BaseCommand):
    """Validate a config file and show the resolved settings."""

    def __init__(self, path: str = None, **kwargs):
        super().__init__(**kwargs)
        self.path = path
        self.loader = ConfigLoader()

    def execute(self) -> None:
        config_file = self.loader.find_config(self.path)
        result = self.loader.validate_file(self.path)

        if self.json_output:
            self.output_json(
                {
                    "file": str(config_file),
                    "valid": result.is_valid,
                    "errors": result.errors,
                    "warnings": result.warnings,
                },
                exit_code=0 if result.is_valid else 1,
            )
            return

        self.show_header(title="Validate Config", details={"File": config_file})

        for error in result.errors:
            self.print_error(error)
        for warning in result.warnings:
            self.print_warning(warning)

        if not result.is_valid:
            self.console.print()
            raise SystemExit(1)

        config = self.loader.load(str(config_file))
        table = Table(show_header=False, padding=(0, 1), box=None)
        table.add_column("Key", style="cyan", no_wrap=True)
        table.add_column("Value")
        table.add_row("Binary", config.binary_name)
        table.add_row("Project path", str(config.project_path))
        table.add_row("Build mode", config.build_mode)
        table.add_row("Target", f"{config.user}@{config.host}:{config.port}")
        table.add_row("Install path", config.install_path)
        table.add_row("Service", config.service_name)
        table.add_row("Health endpoint", config.health_endpoint or "-")
        self.console.print(table)
        self.console.print()
        self.print_success("Configuration is valid")


class InitCommand(BaseCommand):
    """Write a starter binship.yml."""

    def __init__(self, name: str, host: str, path: str = None, force: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        self.host = host
        self.path = Path(path) if path else None
        self.force = force

    def execute(self) -> None:
        self.show_header(title="Init", project=self.name)
        target = ConfigLoader().write_default(
            self.path, name=self.name, host=self.host, force=self.force
        )
        self.print_success(f"Created {target}")
        self.console.print("\n[dim]Next steps:[/dim]")
        self.console.print(f"  [cyan]edit {target}[/cyan]")
        self.console.print("  [cyan]binship validate[/cyan]")
        self.console.print("  [cyan]binship deploy --dry-run[/cyan]\n")


@click.command()
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def validate(ctx, json_output):
    """
    Validate the configuration file
    """
    obj = ctx.obj or {}
    cmd = ValidateCommand(path=obj.get("config"), json_output=json_output)
    cmd.run()


@click.command()
@click.option("--name", default="my-app", show_default=True, help="Binary name")
@click.option("--host", default="192.168.1.100", show_default=True, help="Deploy host")
@click.option("--force", is_flag=True, help="Overwrite an existing file")
@click.pass_context
def init(ctx, name, host, force):
    """
    Create a binship.yml in the current directory

    Examples:
        binship init --name api-server --host 10.0.0.5
    """
    obj = ctx.obj or {}
    cmd = InitCommand(name=name, host=host, path=obj.get("config"), force=force)
    cmd.run()
