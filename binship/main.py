#!/usr/bin/env python3
"""binship CLI - Main entry point"""

import functools
import os
import sys

from rich.console import Console

import rich_click as click

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"
click.rich_click.STYLE_EPILOG_TEXT = "dim"
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ALIGN_OPTIONS_PANEL = "left"
click.rich_click.ALIGN_ERRORS_PANEL = "left"
click.rich_click.ERRORS_EPILOGUE = ""

from binship import __version__
from binship.commands.build import build, check_rebuild, clean
from binship.commands.config import init, validate
from binship.commands.dashboard import DashboardCommand
from binship.commands.deploy import deploy
from binship.commands.logs import logs
from binship.commands.monitor import monitor
from binship.commands.status import status

console = Console()


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""
    from click.exceptions import ClickException, MissingParameter, UsageError

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (MissingParameter, UsageError) as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.format_message()}\n")
            if e.ctx and e.ctx.command:
                console.print(
                    f"[dim]Run[/dim] [cyan]binship {e.ctx.command.name} --help[/cyan] [dim]for usage information[/dim]\n"
                )
            sys.exit(1)
        except ClickException as e:
            e.show()
            sys.exit(e.exit_code)
        except KeyboardInterrupt:
            console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            sys.exit(130)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")

            if os.environ.get("DEBUG") or os.environ.get("VERBOSE"):
                import traceback

                console.print("[dim]Traceback:[/dim]")
                traceback.print_exc()
            sys.exit(1)

    return wrapper


@click.group(invoke_without_command=True)
@click.option("--config", "-c", "config_path", help="Path to binship.yml")
@click.option("--dry-run", is_flag=True, help="Simulate every step without side effects")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx: click.Context, config_path, dry_run, verbose) -> None:
    """
    binship - build a compiled service, ship it over SSH, keep it healthy.

    \b
    Quick Start:
      binship init --name api --host 10.0.0.5   # Create binship.yml
      binship validate                          # Check the config
      binship deploy                            # Build, ship, restart, verify
      binship monitor --continuous              # Watch health

    \b
    Run without a command for the interactive dashboard.
    """
    ctx.ensure_object(dict)
    ctx.obj.update({"config": config_path, "dry_run": dry_run, "verbose": verbose})

    if ctx.invoked_subcommand is None:
        cmd = DashboardCommand(config_path=config_path, dry_run=dry_run, verbose=verbose)
        cmd.run()


cli.add_command(init)
cli.add_command(validate)
cli.add_command(build)
cli.add_command(check_rebuild)
cli.add_command(clean)
cli.add_command(deploy)
cli.add_command(monitor)
cli.add_command(status)
cli.add_command(logs)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    cli()


if __name__ == "__main__":
    main()
