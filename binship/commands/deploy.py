"""Deploy command - build, ship, install, restart and verify"""

from dataclasses import dataclass

import click

from binship.base import ProjectCommand
from binship.models.requests import DeployRequest


@dataclass
class DeployOptions:
    """Options for deploy command."""

    skip_build: bool = False
    force: bool = False


class DeployCommand(ProjectCommand):
    """
    Run the full deployment pipeline.

    Features:
    - Staged upload with retry on transient connection failures
    - Idempotent service unit installation
    - Restart (or stop+start with --force)
    - Health verification within the grace period
    """

    def __init__(self, options: DeployOptions, **kwargs):
        super().__init__(**kwargs)
        self.options = options

    def execute(self) -> None:
        config = self.load_config()
        details = {
            "Target": f"{config.user}@{config.host}:{config.port}",
            "Service": config.service_name,
        }
        if self.options.skip_build:
            details["Build"] = "skipped"
        if self.options.force:
            details["Restart"] = "stop + start"
        if self.dry_run:
            details["Mode"] = "dry run"

        self.show_header(title="Deploy", project=config.binary_name, details=details)
        self.init_project_logger("deploy")

        request = DeployRequest(
            skip_build=self.options.skip_build,
            force=self.options.force,
            dry_run=self.dry_run,
        )
        run = self.run_async(
            self.render_pipeline(self.ensure_orchestrator().run_deploy(request))
        )

        self._print_summary(run)
        if not run.succeeded:
            raise SystemExit(1)

    def _print_summary(self, run) -> None:
        if self.verbose:
            return
        config = self.config
        self.console.print()
        if run.succeeded:
            verb = "would be deployed" if run.dry_run else "deployed"
            self.console.print(
                f"[color(248)]{config.binary_name} {verb} to {config.host} in {run.duration:.1f}s.[/color(248)]"
            )
            if not run.dry_run:
                self.console.print("\n[dim]Watch it:[/dim]")
                self.console.print("  [cyan]binship monitor --continuous[/cyan]")
                self.console.print("  [cyan]binship logs -f[/cyan]")
        else:
            self.console.print(
                f"[red]Deploy aborted at {run.abort_stage.label.lower()} ({run.abort_cause}).[/red]"
            )
        self.console.print(f"\n[dim]Logs saved to:[/dim] {self.logger.log_path}\n")


@click.command()
@click.option("--skip-build", is_flag=True, help="Deploy the existing artifact without building")
@click.option("--force", "-f", is_flag=True, help="Stop then start instead of restart")
@click.option("--dry-run", is_flag=True, help="Walk every stage without side effects")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.pass_context
def deploy(ctx, skip_build, force, dry_run, verbose):
    """
    Build and deploy the binary to the remote host

    Examples:
        # Full deploy
        binship deploy

        # Redeploy the last build, forcing a stop/start cycle
        binship deploy --skip-build --force
    """
    obj = ctx.obj or {}
    cmd = DeployCommand(
        DeployOptions(skip_build=skip_build, force=force),
        config_path=obj.get("config"),
        dry_run=dry_run or obj.get("dry_run", False),
        verbose=verbose or obj.get("verbose", False),
    )
    cmd.run()
