"""
Logging system for binship
Provides real-time logging to files with clean console output
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Optional, TextIO

from rich.console import Console
from rich.live import Live
from rich.padding import Padding
from rich.spinner import Spinner
from rich.text import Text

from binship.constants import LOG_DATE_FORMAT, LOG_DIR

console = Console()

ANSI_ESCAPE = re.compile(r"\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])")


class DeployLogger:
    """
    Manages logging for build and deploy operations
    - Writes all output to log files in real-time
    - Shows clean progress UI in console (unless verbose)
    - Captures errors with context
    """

    def __init__(
        self,
        project_name: str,
        operation: str,
        verbose: bool = False,
        log_root: Optional[Path] = None,
        console_output: Optional[Console] = None,
    ):
        """
        Initialize logger

        Args:
            project_name: Name of the deployed binary
            operation: Operation name (e.g., 'build', 'deploy', 'monitor')
            verbose: If True, show all output in console
            log_root: Directory that holds .binship/logs (default: cwd)
            console_output: Console to print to (default: module console)
        """
        self.project_name = project_name
        self.operation = operation
        self.verbose = verbose
        self.console = console_output or console
        self.log_file: Optional[TextIO] = None
        self.log_path: Optional[Path] = None
        self.current_step = ""
        self.has_errors = False

        # Structure: .binship/logs/{date}/{time}_{operation}.log
        now = datetime.now()
        date_str = now.strftime(LOG_DATE_FORMAT)
        time_str = now.strftime("%H-%M-%S")

        logs_dir = Path(log_root or Path.cwd()) / LOG_DIR / date_str
        logs_dir.mkdir(parents=True, exist_ok=True)

        self.log_path = logs_dir / f"{time_str}_{operation}.log"

        # Line buffered for real-time tailing
        self.log_file = open(self.log_path, "w", buffering=1)

        self._write_log_header()

    def _write_log_header(self):
        """Write log file header"""
        header = f"""
{"=" * 80}
binship Log
{"=" * 80}
Project: {self.project_name}
Operation: {self.operation}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self.log_file.write(header)
        self.log_file.flush()

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        timestamp = datetime.now().strftime("%H:%M:%S")
        log_line = f"[{timestamp}] [{level}] {message}\n"

        if self.log_file:
            self.log_file.write(log_line)
            self.log_file.flush()

        if self.verbose:
            if level == "ERROR":
                self.console.print(f"[red]{message}[/red]")
            elif level == "WARNING":
                self.console.print(f"[yellow]{message}[/yellow]")
            elif level == "DEBUG":
                self.console.print(f"[dim]{message}[/dim]")
            else:
                self.console.print(message)

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log command output

        Always written to the log file; shown in console only if verbose.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr, build, remote)
        """
        if not output:
            return

        clean_output = ANSI_ESCAPE.sub("", output)

        if self.log_file:
            for line in clean_output.splitlines() or [clean_output]:
                self.log_file.write(f"  [{stream}] {line}\n")
            self.log_file.flush()

        if self.verbose:
            self.console.print(output, markup=False, highlight=False)

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., command that failed)
        """
        self.has_errors = True

        error_block = f"""
{"!" * 80}
ERROR OCCURRED
{"!" * 80}
{error}
"""
        if context:
            error_block += f"\nContext: {context}\n"

        error_block += f"{'!' * 80}\n\n"

        if self.log_file:
            self.log_file.write(error_block)
            self.log_file.flush()

        if not self.verbose:
            self.console.print()

        self.console.print(f"[bold red]✗ {error}[/bold red]")
        if context:
            self.console.print(f"  [color(208)]{context}[/color(208)]")

    def step(self, step_name: str):
        """
        Start a new step

        Args:
            step_name: Name of the step
        """
        if self.current_step and not self.verbose:
            self.console.print()

        self.current_step = step_name
        self.log(f"Step: {step_name}", "INFO")

        if not self.verbose:
            self.console.print(f"[color(214)]▶[/color(214)] [white]{step_name}[/white]")

    def success(self, message: str):
        """Log a success message"""
        self.log(message, "INFO")

        if not self.verbose:
            self.console.print(f"  [dim]✓ {message}[/dim]")

    def warning(self, message: str):
        """Log a warning message"""
        self.log(message, "WARNING")

        if not self.verbose:
            self.console.print(f"  [yellow]⚠[/yellow] [dim]{message}[/dim]")

    def close(self):
        """Close log file"""
        if self.log_file:
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {"FAILED" if self.has_errors else "SUCCESS"}
{"=" * 80}
"""
            self.log_file.write(footer)
            self.log_file.close()
            self.log_file = None

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, _exc_tb):
        """Context manager exit"""
        if exc_type is not None and exc_type != SystemExit:
            self.log_error(
                str(exc_val) if exc_val else "Operation failed",
                context=f"{exc_type.__name__}",
            )
        self.close()
        return False


class StepSpinner:
    """
    Spinner shown under the current step while a long operation runs.

    Disabled in verbose mode, where raw output streams to the console.
    """

    def __init__(self, logger: DeployLogger, description: str):
        self.logger = logger
        self.description = description
        self._live: Optional[Live] = None

    def start(self) -> None:
        if self.logger.verbose or self._live is not None:
            return
        spinner = Spinner("dots", text=f"[cyan]{self.description}...[/cyan]")
        self._live = Live(
            Padding(spinner, (0, 0, 0, 2)),
            console=self.logger.console,
            refresh_per_second=10,
            transient=True,
        )
        self._live.start()

    def update(self, description: str) -> None:
        self.description = description
        if self._live is not None:
            spinner = Spinner("dots", text=f"[cyan]{description}...[/cyan]")
            self._live.update(Padding(spinner, (0, 0, 0, 2)))

    def stop(self, ok: bool = True) -> None:
        if self._live is None:
            return
        if not ok:
            x_mark = Text("  ✗ ", style="red")
            x_mark.append(self.description, style="dim")
            self._live.update(x_mark)
        self._live.stop()
        self._live = None
