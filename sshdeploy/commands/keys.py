"""sshdeploy CLI - Key registry commands"""

from typing import List, Optional

import click
from rich.table import Table

from sshdeploy.base import TargetCommand
from sshdeploy.services.key_registry import KeyEntry


def _policy_summary(entry: KeyEntry) -> str:
    policy = entry.policy
    parts = []
    if policy.has_forced_command:
        parts.append(f"command={policy.forced_command}")
    for name, enabled in (
        ("no-port-forwarding", policy.forbid_port_forwarding),
        ("no-agent-forwarding", policy.forbid_agent_forwarding),
        ("no-pty", policy.forbid_pty),
        ("no-X11-forwarding", policy.forbid_x11),
    ):
        if enabled:
            parts.append(name)
    return ", ".join(parts) or "unrestricted"


class KeysListCommand(TargetCommand):
    """List active keys per target."""

    def __init__(
        self,
        target_name: Optional[str] = None,
        show_all: bool = False,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.target_name = target_name
        self.show_all = show_all

    def _target_names(self) -> List[str]:
        if self.target_name:
            return [self.get_target(self.target_name).name]
        return sorted(set(self.config.target_names) | set(self.registry.targets()))

    def execute(self) -> None:
        """Execute keys:list."""
        registry = self.registry
        entries: List[KeyEntry] = []
        for name in self._target_names():
            entries.extend(registry.history(name) if self.show_all else registry.list(name))

        if self.json_output:
            self.output_json({"keys": [entry.to_dict() for entry in entries]})
            return

        self.show_header(
            title="Key Registry",
            target=self.target_name,
            details={"Showing": "all records" if self.show_all else "active keys"},
        )

        if not entries:
            self.print_warning("No keys registered")
            self.print_dim("Register one: sshdeploy rotate-key -t <target> -l <label> -k key.pub")
            return

        table = Table(show_header=True, header_style="bold cyan", padding=(0, 1))
        table.add_column("Target", style="cyan", no_wrap=True)
        table.add_column("Label", style="white")
        table.add_column("Type", style="yellow")
        if self.show_all:
            table.add_column("Event")
        table.add_column("Restrictions", style="dim")
        table.add_column("Recorded", style="dim")

        for entry in entries:
            row = [entry.target, entry.label, entry.public_key.key_type]
            if self.show_all:
                row.append("[green]registered[/green]" if entry.active else "[red]revoked[/red]")
            row.extend(
                [_policy_summary(entry), entry.recorded_at.strftime("%Y-%m-%d %H:%M:%S")]
            )
            table.add_row(*row)

        self.console.print(table)
        self.console.print()


class KeysRevokeCommand(TargetCommand):
    """Mark a key inactive."""

    def __init__(
        self,
        target_name: str,
        label: str,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.target_name = target_name
        self.label = label

    def execute(self) -> None:
        """Execute keys:revoke."""
        target = self.get_target(self.target_name)
        entry = self.registry.revoke(target.name, self.label)

        if self.json_output:
            self.output_json({"revoked": entry.to_dict()})
            return

        self.print_success(f"Revoked '{entry.label}' for {target.name}")
        self.print_dim(
            f"Remove the matching line from ~{target.user}/.ssh/authorized_keys on {target.host}"
        )
        self.console.print()


@click.command(name="keys:list")
@click.option("-t", "--target", help="Only show this target")
@click.option("--all", "show_all", is_flag=True, help="Show every registry record")
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def keys_list(target, show_all, config_path, verbose, json_output):
    """
    List registered deploy keys

    \b
    Examples:
      sshdeploy keys:list
      sshdeploy keys:list -t production --all
    """
    cmd = KeysListCommand(
        target, show_all, config_path=config_path, verbose=verbose, json_output=json_output
    )
    cmd.run()


@click.command(name="keys:revoke")
@click.option("-t", "--target", required=True, help="Target name")
@click.option("-l", "--label", required=True, help="Credential label to revoke")
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def keys_revoke(target, label, config_path, verbose, json_output):
    """
    Revoke a deploy key

    The record is kept; deployments using a revoked label fail with
    CredentialUnavailable.

    \b
    Example:
      sshdeploy keys:revoke -t production -l ci-2025
    """
    cmd = KeysRevokeCommand(
        target, label, config_path=config_path, verbose=verbose, json_output=json_output
    )
    cmd.run()
