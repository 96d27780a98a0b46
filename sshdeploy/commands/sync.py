"""sshdeploy CLI - Sync command

Mirrors the source tree onto one or more targets and runs their post-deploy
command. Each target is an independent run with its own lock, log file and
audit record.
"""

import asyncio
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.markup import escape
from rich.table import Table

from sshdeploy.base import TargetCommand
from sshdeploy.constants import EXIT_FAILED, EXIT_PARTIAL, EXIT_SUCCESS
from sshdeploy.core.orchestrator import DeploymentOrchestrator
from sshdeploy.models.results import DeploymentResult, DeploymentStatus
from sshdeploy.models.target import Target
from sshdeploy.utils import format_duration


def exit_code_for(results: List[DeploymentResult]) -> int:
    """Failed wins over partial, partial wins over success."""
    statuses = {result.status for result in results}
    if DeploymentStatus.FAILED in statuses:
        return EXIT_FAILED
    if DeploymentStatus.PARTIAL in statuses:
        return EXIT_PARTIAL
    return EXIT_SUCCESS


class SyncCommand(TargetCommand):
    """
    Deploy the source tree to targets.

    Features:
    - Pinned host key verification before any credential is sent
    - Creates and updates first, deletes last
    - Best-effort post-deploy command (non-zero exit is reported as partial)
    """

    def __init__(
        self,
        target_names: Tuple[str, ...],
        source: Optional[str] = None,
        exclude: Tuple[str, ...] = (),
        timeout: Optional[float] = None,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.target_names = list(target_names)
        self.source = source
        self.exclude = list(exclude)
        self.timeout = timeout

    @property
    def source_root(self) -> Path:
        if self.source:
            return Path(self.source).expanduser().resolve()
        return self.config.source

    def execute(self) -> None:
        """Execute sync command."""
        targets = self.get_targets(self.target_names)
        show_target = len(targets) > 1

        self.show_header(
            title="Sync",
            target=", ".join(t.name for t in targets),
            details={
                "Source": self.source_root,
                "Timeout": f"{self.timeout:g}s" if self.timeout else "per target",
            },
        )

        def logger_factory(target: Target):
            return self.create_logger(target, "sync", show_target=show_target)

        orchestrator = DeploymentOrchestrator(
            transport=self.transport,
            secret_store=self.secret_store,
            registry=self.registry,
            history=self.history,
            locks=self.locks,
            logger_factory=logger_factory,
        )

        results = asyncio.run(
            orchestrator.run_many(targets, self.source_root, self.exclude, self.timeout)
        )
        exit_code = exit_code_for(results)

        if self.json_output:
            self.output_json(
                {"results": [result.to_dict() for result in results]}, exit_code
            )
            return

        self._print_summary(results)
        if exit_code != EXIT_SUCCESS:
            raise SystemExit(exit_code)

    def _print_summary(self, results: List[DeploymentResult]) -> None:
        self.console.print()
        if len(results) > 1:
            table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
            table.add_column("Target", style="cyan")
            table.add_column("Status")
            table.add_column("Stage", style="dim")
            table.add_column("Error", style="dim")
            table.add_column("Duration", style="dim")
            for result in results:
                color = {
                    DeploymentStatus.SUCCESS: "green",
                    DeploymentStatus.PARTIAL: "yellow",
                    DeploymentStatus.FAILED: "red",
                }[result.status]
                table.add_row(
                    result.target,
                    f"[{color}]{result.status.value}[/{color}]",
                    result.failed_stage.value if result.failed_stage else "-",
                    result.error_kind.value if result.error_kind else "-",
                    format_duration(result.duration_seconds),
                )
            self.console.print(table)
            self.console.print()
            return

        result = results[0]
        if result.status == DeploymentStatus.SUCCESS:
            self.print_success(f"{result.target}: deployment complete")
        elif result.status == DeploymentStatus.PARTIAL:
            post = [step for step in result.steps if step.error_kind is not None]
            code = post[-1].exit_code if post else None
            self.print_warning(
                f"{result.target}: complete (partial), post-deploy exited with {code}"
            )
        else:
            kind = result.error_kind.value if result.error_kind else "Error"
            self.console.print(
                f"[bold red]✗ {escape(result.target)}: failed at stage "
                f"'{escape(result.failed_stage.value)}' ({escape(kind)})[/bold red]"
            )
        self.print_dim(f"Run id: {result.run_id}")
        self.console.print()


@click.command(name="sync")
@click.option("-t", "--target", "targets", multiple=True, help="Target name (repeatable)")
@click.option("-s", "--source", help="Local tree to deploy (overrides config)")
@click.option("-e", "--exclude", multiple=True, help="Extra exclusion glob (repeatable)")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Timeout in seconds per remote operation",
)
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def sync(targets, source, exclude, timeout, config_path, verbose, json_output):
    """
    Deploy the source tree to a target

    \b
    Examples:
      sshdeploy sync -t production
      sshdeploy sync -t production -e "*.map" --timeout 120
      sshdeploy sync -t staging -t production

    \b
    Exit codes:
      0  complete, 1  failed, 2  complete but post-deploy failed
    """
    cmd = SyncCommand(
        targets,
        source=source,
        exclude=exclude,
        timeout=timeout,
        config_path=config_path,
        verbose=verbose,
        json_output=json_output,
    )
    cmd.run()
