"""sshdeploy CLI - Host key command

The ssh-keyscan step: show what a host presents so an operator can compare
it out of band and pin it in sshdeploy.yml.
"""

import asyncio
from typing import Optional

import click
from rich.markup import escape

from sshdeploy.base import TargetCommand
from sshdeploy.services.remote_executor import RemoteExecutor
from sshdeploy.services.transport import normalize_fingerprint


class HostKeyCommand(TargetCommand):
    """Fetch a target's host key fingerprint without trusting it."""

    def __init__(
        self,
        target_name: str,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.target_name = target_name

    def execute(self) -> None:
        """Execute host-key command."""
        target = self.get_target(self.target_name)
        executor = RemoteExecutor(self.transport)
        presented = asyncio.run(executor.fetch_host_fingerprint(target))

        pinned = target.host_key_fingerprint
        matches = bool(pinned) and normalize_fingerprint(pinned) == normalize_fingerprint(
            presented
        )

        if self.json_output:
            self.output_json(
                {
                    "target": target.name,
                    "host": target.host,
                    "port": target.port,
                    "presented": presented,
                    "pinned": pinned,
                    "matches": matches,
                }
            )
            return

        self.show_header(title="Host Key", target=target.name, details={"Host": f"{target.host}:{target.port}"})
        self.console.print(f" [bold]Presented:[/bold] {escape(presented)}")
        self.console.print(f" [bold]Pinned:[/bold]    {escape(pinned or '(none)')}\n")

        if matches:
            self.print_success("Fingerprint matches the pinned value")
        elif pinned:
            self.print_error("Fingerprint does NOT match the pinned value")
            self.print_dim("Deployments will fail with UntrustedHost until this is resolved")
        else:
            self.print_warning("No fingerprint pinned for this target")
            self.print_dim(
                "Verify the value above on the server (ssh-keygen -lf /etc/ssh/ssh_host_ed25519_key.pub), then add:"
            )
            self.console.print(
                f"   [cyan]host_key_fingerprint: {escape(presented)}[/cyan]"
            )
        self.console.print()


@click.command(name="host-key")
@click.option("-t", "--target", required=True, help="Target name")
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def host_key(target, config_path, verbose, json_output):
    """
    Show the host key fingerprint a target presents

    Sends no credentials. Compare the value with the server's own key
    before pinning it.

    \b
    Example:
      sshdeploy host-key -t production
    """
    cmd = HostKeyCommand(target, config_path=config_path, verbose=verbose, json_output=json_output)
    cmd.run()
