"""
Logging system for sshdeploy
Provides real-time logging to files with clean console output
"""

from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO, Union

from rich.console import Console
from rich.markup import escape

from sshdeploy.constants import (
    DEFAULT_STATE_DIR,
    LOG_DATE_FORMAT,
    LOG_TIME_FORMAT,
    REDACTED,
)
from sshdeploy.utils import strip_ansi

console = Console()

# Shorter fragments would redact ordinary words
MIN_REDACTION_LENGTH = 8


class DeployLogger:
    """
    Manages logging for deployment operations
    - Writes all output to log files in real-time
    - Shows clean progress UI in console (unless verbose)
    - Masks registered secret values everywhere
    """

    def __init__(
        self,
        target_name: str,
        operation: str,
        verbose: bool = False,
        log_dir: Optional[Union[str, Path]] = None,
        show_target: bool = False,
    ):
        """
        Initialize logger

        Args:
            target_name: Name of the deployment target
            operation: Operation name (e.g., 'sync', 'run-command')
            verbose: If True, show all output in console
            log_dir: Root of the log tree (defaults to ~/.sshdeploy/logs)
            show_target: Prefix console lines with the target name
        """
        self.target_name = target_name
        self.operation = operation
        self.verbose = verbose
        self.show_target = show_target
        self.log_file: Optional[TextIO] = None
        self.log_path: Optional[Path] = None
        self.current_step = ""
        self.has_errors = False
        self._redactions: List[str] = []

        if log_dir is None:
            log_dir = Path(DEFAULT_STATE_DIR).expanduser() / "logs"

        # Structure: logs/{target}/{date}/{time}_{operation}.log
        now = datetime.now()
        target_logs_dir = Path(log_dir).expanduser() / target_name / now.strftime(LOG_DATE_FORMAT)
        target_logs_dir.mkdir(parents=True, exist_ok=True)

        log_filename = f"{now.strftime(LOG_TIME_FORMAT)}_{operation}.log"
        self.log_path = target_logs_dir / log_filename

        # Line buffered so the file is readable while a deploy runs
        self.log_file = open(self.log_path, "a", buffering=1)

        self._write_log_header()

    def _write_log_header(self):
        """Write log file header"""
        header = f"""
{"=" * 80}
sshdeploy Log
{"=" * 80}
Target: {self.target_name}
Operation: {self.operation}
Started: {datetime.now().isoformat()}
{"=" * 80}

"""
        self.log_file.write(header)
        self.log_file.flush()

    def _prefix(self) -> str:
        return f"[dim]\\[{escape(self.target_name)}][/dim] " if self.show_target else ""

    def redact(self, secret: Union[str, bytes, bytearray, None]) -> None:
        """
        Register a secret value that must never appear in output.

        Multi-line secrets (private keys) are also registered line by line.
        """
        if not secret:
            return
        if isinstance(secret, (bytes, bytearray)):
            secret = bytes(secret).decode("utf-8", errors="ignore")

        candidates = [secret.strip()] + [line.strip() for line in secret.splitlines()]
        for candidate in candidates:
            if len(candidate) >= MIN_REDACTION_LENGTH and candidate not in self._redactions:
                self._redactions.append(candidate)
        # Longest first so a full key is masked before its lines
        self._redactions.sort(key=len, reverse=True)

    def scrub(self, text: str) -> str:
        """Replace registered secrets in text."""
        for secret in self._redactions:
            if secret in text:
                text = text.replace(secret, REDACTED)
        return text

    def log(self, message: str, level: str = "INFO"):
        """
        Log a message to file and optionally console

        Args:
            message: Message to log
            level: Log level (INFO, WARNING, ERROR, DEBUG)
        """
        message = self.scrub(message)
        timestamp = datetime.now().strftime("%H:%M:%S")
        log_line = f"[{timestamp}] [{level}] {message}\n"

        if self.log_file:
            self.log_file.write(log_line)
            self.log_file.flush()

        if self.verbose:
            text = self._prefix() + escape(message)
            if level == "ERROR":
                console.print(f"[red]{text}[/red]")
            elif level == "WARNING":
                console.print(f"[yellow]{text}[/yellow]")
            elif level == "DEBUG":
                console.print(f"[dim]{text}[/dim]")
            else:
                console.print(text)

    def log_command(self, command: str):
        """Log a command being executed"""
        self.log(f"Executing: {command}", "DEBUG")

    def log_output(self, output: str, stream: str = "stdout"):
        """
        Log command output

        Always written to the log file, shown in console only if verbose.

        Args:
            output: Command output (single line or multiline)
            stream: Stream name (stdout, stderr)
        """
        if not output:
            return

        clean_output = self.scrub(strip_ansi(output))

        if self.log_file:
            for line in clean_output.splitlines():
                self.log_file.write(f"  [{stream}] {line}\n")
            self.log_file.flush()

        if self.verbose:
            console.print(escape(clean_output))

    def log_error(self, error: str, context: Optional[str] = None):
        """
        Log an error with context

        Args:
            error: Error message
            context: Additional context (e.g., stage that failed)
        """
        self.has_errors = True
        error = self.scrub(error)
        context = self.scrub(context) if context else None

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
            console.print()

        console.print(f"{self._prefix()}[bold red]✗ {escape(error)}[/bold red]")
        if context:
            console.print(f"  [color(208)]{escape(context)}[/color(208)]")

    def step(self, step_name: str):
        """
        Start a new step

        Args:
            step_name: Name of the step
        """
        self.current_step = step_name
        self.log(f"Step: {step_name}", "INFO")

        if not self.verbose:
            console.print(
                f"{self._prefix()}[color(214)]▶[/color(214)] [white]{escape(step_name)}[/white]"
            )

    def success(self, message: str):
        """Log a success message"""
        self.log(message, "INFO")

        if not self.verbose:
            console.print(f"{self._prefix()}  [dim]✓ {escape(self.scrub(message))}[/dim]")

    def warning(self, message: str):
        """Log a warning message"""
        self.log(message, "WARNING")

        if not self.verbose:
            console.print(
                f"{self._prefix()}  [yellow]⚠[/yellow] [dim]{escape(self.scrub(message))}[/dim]"
            )

    def close(self, status: Optional[str] = None):
        """Close log file"""
        if self.log_file:
            if status is None:
                status = "FAILED" if self.has_errors else "SUCCESS"
            footer = f"""
{"=" * 80}
Completed: {datetime.now().isoformat()}
Status: {status}
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
