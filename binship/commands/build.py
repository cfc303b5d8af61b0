"""Build commands - compile the binary locally"""

from dataclasses import dataclass
from typing import Optional

import click

from binship.base import ProjectCommand
from binship.models.requests import BuildRequest


@dataclass
class BuildOptions:
    """Options for build command."""

    mode: Optional[str] = None


class BuildCommand(ProjectCommand):
    """
    Build the configured binary.

    Features:
    - Debug or release toolchain invocation
    - Reuse of an up-to-date artifact
    - Dry-run without touching the toolchain
    """

    def __init__(self, options: BuildOptions, **kwargs):
        super().__init__(**kwargs)
        self.options = options

    def execute(self) -> None:
        config = self.load_config()
        mode = self.options.mode or config.build_mode

        self.show_header(
            title="Build",
            project=config.binary_name,
            details={"Mode": mode, "Path": config.project_path},
        )
        self.init_project_logger("build")

        orchestrator = self.ensure_orchestrator()
        request = BuildRequest(mode=self.options.mode, dry_run=self.dry_run)
        run = self.run_async(self.render_pipeline(orchestrator.run_build(request)))

        if run.aborted:
            raise SystemExit(1)

        result = orchestrator.last_build
        if not self.verbose and result is not None:
            self.console.print()
            if result.simulated:
                self.console.print("[color(248)]Dry run complete, nothing was built.[/color(248)]")
            else:
                self.console.print(f"[dim]Binary:[/dim] {result.binary_path}")
                self.console.print(f"[dim]Size:[/dim]   {result.size_display}")
            self.console.print(f"\n[dim]Logs saved to:[/dim] {self.logger.log_path}\n")


class CheckRebuildCommand(ProjectCommand):
    """Report whether sources changed since the last build."""

    def execute(self) -> None:
        config = self.load_config()
        runner = self.ensure_build_runner()
        info = runner.build_info(config)
        stale = runner.needs_rebuild(config)

        if self.json_output:
            self.output_json(
                {
                    "binary": config.binary_name,
                    "artifact": str(info["path"]),
                    "exists": info["exists"],
                    "size": info["size"],
                    "needs_rebuild": stale,
                }
            )
            return

        self.show_header(title="Rebuild Check", project=config.binary_name)
        if info["exists"]:
            self.print_dim(f"Artifact: {info['path']} ({info['size_display']}, built {info['modified']:%Y-%m-%d %H:%M:%S})")
        else:
            self.print_dim(f"Artifact: {info['path']} (missing)")

        if stale:
            self.print_warning("Rebuild needed")
        else:
            self.print_success("Artifact is up to date")


class CleanCommand(ProjectCommand):
    """Remove build artifacts."""

    def execute(self) -> None:
        config = self.load_config()
        self.show_header(title="Clean", project=config.binary_name)
        logger = self.init_project_logger("clean")

        logger.step("Cleaning build artifacts")
        output = self.run_async(
            self.ensure_build_runner().clean(
                config,
                dry_run=self.dry_run,
                on_line=lambda line: logger.log_output(line, "build"),
            )
        )
        if self.dry_run:
            logger.success("Dry run: cargo clean skipped")
        else:
            logger.success(output.strip().splitlines()[-1] if output.strip() else "Clean complete")


@click.command()
@click.option("--mode", "-m", type=click.Choice(["debug", "release"]), help="Override build mode")
@click.option("--dry-run", is_flag=True, help="Show what would be built")
@click.option("--verbose", "-v", is_flag=True, help="Show all build output")
@click.pass_context
def build(ctx, mode, dry_run, verbose):
    """
    Build the binary locally

    Examples:
        # Release build using binship.yml
        binship build

        # Debug build with full output
        binship build --mode debug -v
    """
    obj = ctx.obj or {}
    cmd = BuildCommand(
        BuildOptions(mode=mode),
        config_path=obj.get("config"),
        dry_run=dry_run or obj.get("dry_run", False),
        verbose=verbose or obj.get("verbose", False),
    )
    cmd.run()


@click.command(name="check-rebuild")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.pass_context
def check_rebuild(ctx, json_output):
    """
    Check whether the binary is older than its sources
    """
    obj = ctx.obj or {}
    cmd = CheckRebuildCommand(config_path=obj.get("config"), json_output=json_output)
    cmd.run()


@click.command()
@click.option("--dry-run", is_flag=True, help="Show what would be removed")
@click.option("--verbose", "-v", is_flag=True, help="Show all output")
@click.pass_context
def clean(ctx, dry_run, verbose):
    """
    Remove build artifacts (cargo clean)
    """
    obj = ctx.obj or {}
    cmd = CleanCommand(
        config_path=obj.get("config"),
        dry_run=dry_run or obj.get("dry_run", False),
        verbose=verbose or obj.get("verbose", False),
    )
    cmd.run()
