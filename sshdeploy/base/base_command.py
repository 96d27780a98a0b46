"""
Base Command Class

Abstract base for all sshdeploy CLI commands.
Provides common functionality and structure.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape

from sshdeploy.constants import EXIT_FAILED, EXIT_INTERRUPTED
from sshdeploy.exceptions import SSHDeployError
from sshdeploy.logger import DeployLogger
from sshdeploy.ui_components import show_header


class BaseCommand(ABC):
    """
    Abstract base command class.

    Provides:
    - Logger initialization
    - Header display
    - Error handling
    - JSON output support
    """

    def __init__(self, verbose: bool = False, json_output: bool = False):
        self.verbose = verbose
        self.json_output = json_output
        self.console = Console()
        self.logger: Optional[DeployLogger] = None

    def output_json(self, data: Any, exit_code: int = 0) -> None:
        """
        Output data as JSON and exit.

        Args:
            data: Data to output as JSON
            exit_code: Exit code (0 for success, non-zero for error)
        """
        print(json.dumps(data, indent=2, default=str))
        if exit_code != 0:
            raise SystemExit(exit_code)

    def output_json_error(
        self, error: str, details: Optional[Dict[str, Any]] = None, exit_code: int = EXIT_FAILED
    ) -> None:
        """Output error as JSON and exit."""
        error_data: Dict[str, Any] = {"error": error}
        if details:
            error_data["details"] = details
        self.output_json(error_data, exit_code=exit_code)

    def show_header(
        self,
        title: str,
        target: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        """Show command header (skip in JSON or verbose mode)."""
        if not self.verbose and not self.json_output:
            show_header(title=title, target=target, details=details, console=self.console)

    def print_success(self, message: str) -> None:
        """Print success message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[green]✓ {escape(message)}[/green]")

    def print_error(self, message: str) -> None:
        """Print error message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[red]✗ {escape(message)}[/red]")

    def print_warning(self, message: str) -> None:
        """Print warning message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[yellow]⚠ {escape(message)}[/yellow]")

    def print_dim(self, message: str) -> None:
        """Print dim message (skip in JSON mode)."""
        if not self.json_output:
            self.console.print(f"[dim]{escape(message)}[/dim]")

    def _logs_hint(self) -> None:
        if self.logger and self.logger.log_path and not self.json_output:
            self.console.print(f"[dim]Logs saved to:[/dim] {self.logger.log_path}\n")

    @abstractmethod
    def execute(self, **kwargs) -> None:
        """
        Execute command logic.

        Must be implemented by subclasses.
        """

    def run(self, **kwargs) -> None:
        """
        Run command with error handling.

        Args:
            **kwargs: Command arguments
        """
        try:
            self.execute(**kwargs)
        except KeyboardInterrupt:
            self.console.print("\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            self._logs_hint()
            raise SystemExit(EXIT_INTERRUPTED)
        except SystemExit:
            raise
        except SSHDeployError as e:
            if self.json_output:
                self.output_json_error(e.message, {"kind": e.kind, "context": e.context})
            self.console.print(
                f"\n[bold red]✗ {escape(e.kind)}:[/bold red] {escape(e.message)}"
            )
            if e.context:
                self.console.print(f"  [color(208)]{escape(e.context)}[/color(208)]")
            self.console.print()
            if self.logger:
                self.logger.log_error(e.message, context=e.context)
            self._logs_hint()
            raise SystemExit(EXIT_FAILED)
        except Exception as e:
            error_type = type(e).__name__
            self.console.print(f"\n[bold red]✗ {escape(error_type)}:[/bold red] {escape(str(e))}\n")
            if self.logger:
                self.logger.log_error(f"{error_type}: {e}")
            self._logs_hint()
            raise SystemExit(EXIT_FAILED)
        finally:
            if self.logger:
                self.logger.close()
