"""Logs command - read the remote application log"""

from dataclasses import dataclass

import click

from binship.base import ProjectCommand
from binship.constants import DEFAULT_LOG_LINES
from binship.exceptions import ConfigurationError
from binship.services.health_monitor import LogTailer


@dataclass
class LogsOptions:
    """Options for logs command."""

    lines: int = DEFAULT_LOG_LINES
    follow: bool = False


class LogsCommand(ProjectCommand):
    """Print the last lines of the remote log, optionally following it."""

    def __init__(self, options: LogsOptions, **kwargs):
        super().__init__(**kwargs)
        self.options = options

    def execute(self) -> None:
        config = self.load_config()
        if not config.log_path:
            raise ConfigurationError(
                "No log file configured",
                context="Set monitor.log_path in binship.yml",
            )

        self.show_header(
            title="Logs",
            project=config.binary_name,
            details={"File": f"{config.host}:{config.log_path}"},
        )
        try:
            self.run_async(self._read())
        except KeyboardInterrupt:
            if not self.options.follow:
                raise
            self.console.print()

    async def _read(self) -> None:
        config = self.config
        session = await self.ensure_orchestrator().session_factory(config)
        try:
            tailer = LogTailer(session, config.log_path)
            for line in await tailer.last_lines(self.options.lines):
                self._print(line)
            if self.options.follow:
                await tailer.seek_end()
                await tailer.follow(config.poll_interval, self._print)
        finally:
            await session.close()

    def _print(self, line: str) -> None:
        self.console.print(line, markup=False, highlight=False)


@click.command()
@click.option("--lines", "-n", default=DEFAULT_LOG_LINES, show_default=True, help="Number of lines")
@click.option("--follow", "-f", is_flag=True, help="Keep printing new lines")
@click.pass_context
def logs(ctx, lines, follow):
    """
    Show the remote application log

    Examples:
        binship logs -n 200
        binship logs -f
    """
    obj = ctx.obj or {}
    cmd = LogsCommand(
        LogsOptions(lines=lines, follow=follow),
        config_path=obj.get("config"),
        verbose=obj.get("verbose", False),
    )
    cmd.run()
