"""
Run Command

Execute one command on a target over a verified session.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

import click
from rich.text import Text

from sshdeploy.base import TargetCommand
from sshdeploy.constants import EXIT_PARTIAL
from sshdeploy.core.orchestrator import DeploymentOrchestrator
from sshdeploy.models.results import CommandOutcome, ErrorKind
from sshdeploy.models.target import Target
from sshdeploy.services.remote_executor import RemoteExecutor


@dataclass
class RunCommandOptions:
    """Options for run-command."""

    target_name: str
    command: str
    timeout: Optional[float] = None


class RunCommand(TargetCommand):
    """
    Execute a single remote command.

    Features:
    - Same credential, host verification and lock as a deployment
    - Output capture and display
    - Non-zero remote exit reported as CommandNonZeroExit (exit code 2)
    """

    def __init__(
        self,
        options: RunCommandOptions,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.options = options

    async def _run(self, target: Target) -> CommandOutcome:
        orchestrator = DeploymentOrchestrator(
            transport=self.transport,
            secret_store=self.secret_store,
            registry=self.registry,
        )
        executor = RemoteExecutor(self.transport, self.logger)

        async with self.locks.hold(target.name):
            if self.logger:
                self.logger.step("Loading credential")
            credential = orchestrator.load_credential(target, self.logger)
            try:
                if self.logger:
                    self.logger.step("Executing command")
                return await executor.run_command(
                    self.options.command, target, credential, self.options.timeout
                )
            finally:
                credential.release()

    def execute(self) -> None:
        """Execute run-command."""
        target = self.get_target(self.options.target_name)

        self.show_header(
            title="Run Command",
            target=target.name,
            details={
                "Host": target.address,
                "Command": self.options.command,
            },
        )

        self.init_logger(target, "run-command")
        outcome = asyncio.run(self._run(target))

        if self.json_output:
            self.output_json(
                {
                    "target": target.name,
                    "command": outcome.command,
                    "exit_code": outcome.exit_code,
                    "stdout": self.logger.scrub(outcome.stdout) if self.logger else outcome.stdout,
                    "stderr": self.logger.scrub(outcome.stderr) if self.logger else outcome.stderr,
                    "error_kind": None
                    if outcome.is_success
                    else ErrorKind.COMMAND_NON_ZERO_EXIT.value,
                },
                0 if outcome.is_success else EXIT_PARTIAL,
            )
            return

        scrub = self.logger.scrub if self.logger else str
        if outcome.stdout and not self.verbose:
            self.console.print("\n[bold cyan]Output:[/bold cyan]")
            self.console.print(Text.from_ansi(scrub(outcome.stdout)))

        if outcome.stderr and not self.verbose:
            self.console.print("\n[bold yellow]Errors:[/bold yellow]")
            self.console.print(Text.from_ansi(scrub(outcome.stderr)))

        if outcome.is_success:
            self.logger.success("Command executed successfully")
        else:
            self.logger.warning(
                f"{ErrorKind.COMMAND_NON_ZERO_EXIT.value}: exit code {outcome.exit_code}"
            )

        self._logs_hint()
        if not outcome.is_success:
            raise SystemExit(EXIT_PARTIAL)


@click.command(name="run-command")
@click.option("-t", "--target", required=True, help="Target name")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Timeout in seconds (session is aborted on expiry)",
)
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
@click.argument("command")
def run_command(target, timeout, config_path, verbose, json_output, command):
    """
    Run one command on a target

    Opens one verified session, executes exactly one command and reports
    its exit status. If the target's key has a forced command, sshd runs
    that command instead.

    \b
    Examples:
      sshdeploy run-command -t production "systemctl --user restart app"
      sshdeploy run-command -t production --timeout 30 "./migrate.sh"
    """
    options = RunCommandOptions(target_name=target, command=command, timeout=timeout)
    cmd = RunCommand(options, config_path=config_path, verbose=verbose, json_output=json_output)
    cmd.run()
