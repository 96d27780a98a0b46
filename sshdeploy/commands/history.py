"""sshdeploy CLI - History command"""

from typing import Optional

import click
from rich.table import Table

from sshdeploy.base import TargetCommand
from sshdeploy.models.results import DeploymentStatus
from sshdeploy.utils import format_duration

STATUS_STYLES = {
    DeploymentStatus.SUCCESS: "green",
    DeploymentStatus.PARTIAL: "yellow",
    DeploymentStatus.FAILED: "red",
}


class HistoryCommand(TargetCommand):
    """Show the deployment audit log."""

    def __init__(
        self,
        target_name: Optional[str] = None,
        limit: int = 20,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.target_name = target_name
        self.limit = limit

    def execute(self) -> None:
        """Execute history command."""
        results = self.history.list(self.target_name, self.limit)

        if self.json_output:
            self.output_json({"deployments": [result.to_dict() for result in results]})
            return

        self.show_header(
            title="Deployment History",
            target=self.target_name,
            details={"Limit": self.limit},
        )

        if not results:
            self.print_warning("No deployments recorded")
            return

        table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
        table.add_column("Started (UTC)", style="dim", no_wrap=True)
        table.add_column("Target", style="cyan")
        table.add_column("Status")
        table.add_column("Stage", style="dim")
        table.add_column("Error", style="dim")
        table.add_column("Exit codes", style="dim")
        table.add_column("Duration", style="dim")
        table.add_column("Run", style="dim")

        for result in results:
            style = STATUS_STYLES[result.status]
            codes = ", ".join(
                f"{stage}={code}"
                for stage, code in result.exit_codes.items()
                if code is not None
            )
            table.add_row(
                result.started_at.strftime("%Y-%m-%d %H:%M:%S"),
                result.target,
                f"[{style}]{result.status.value}[/{style}]",
                result.failed_stage.value if result.failed_stage else "-",
                result.error_kind.value if result.error_kind else "-",
                codes or "-",
                format_duration(result.duration_seconds),
                result.run_id[:8],
            )

        self.console.print(table)
        self.console.print()


@click.command(name="history")
@click.option("-t", "--target", help="Only show this target")
@click.option("-n", "--limit", default=20, type=click.IntRange(min=1), help="Number of runs to show")
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def history(target, limit, config_path, verbose, json_output):
    """
    Show deployment history

    \b
    Examples:
      sshdeploy history
      sshdeploy history -t production -n 5
    """
    cmd = HistoryCommand(
        target, limit, config_path=config_path, verbose=verbose, json_output=json_output
    )
    cmd.run()
