"""
Rotate Key Command

Register a new deploy key for a target, optionally install it on the host
and revoke the key it replaces. Between the two steps both keys are valid.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
from rich.markup import escape

from sshdeploy.base import TargetCommand
from sshdeploy.core.orchestrator import DeploymentOrchestrator
from sshdeploy.exceptions import ConfigurationError, DuplicateLabel, KeyNotFound
from sshdeploy.models.policy import RestrictionPolicy
from sshdeploy.models.target import Target
from sshdeploy.services.key_registry import KeyEntry
from sshdeploy.services.policy_compiler import compile_authorized_key, parse_public_key
from sshdeploy.services.remote_executor import RemoteExecutor


@dataclass
class RotateKeyOptions:
    """Options for rotate-key."""

    target_name: str
    label: str
    public_key_file: str
    policy: RestrictionPolicy
    revoke: Optional[str] = None
    install: bool = False
    timeout: Optional[float] = None


class RotateKeyCommand(TargetCommand):
    """
    Key rotation bookkeeping.

    Steps:
    1. refuse a label that is already active (DuplicateLabel)
    2. install the compiled line in authorized_keys (with --install)
    3. register the new label
    4. revoke the old label (with --revoke)

    A failed install leaves the registry untouched, so the same command can
    simply be re-run.
    """

    def __init__(
        self,
        options: RotateKeyOptions,
        config_path: Optional[str] = None,
        verbose: bool = False,
        json_output: bool = False,
    ):
        super().__init__(config_path, verbose=verbose, json_output=json_output)
        self.options = options

    def _read_public_key(self):
        path = Path(self.options.public_key_file).expanduser()
        try:
            text = path.read_text()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read public key file '{path}': {e.strerror or e}"
            )
        return parse_public_key(text)

    async def _install(self, target: Target, line: str) -> bool:
        orchestrator = DeploymentOrchestrator(
            transport=self.transport,
            secret_store=self.secret_store,
            registry=self.registry,
        )
        executor = RemoteExecutor(self.transport, self.logger)

        async with self.locks.hold(target.name):
            credential = orchestrator.load_credential(target, self.logger)
            try:
                return await executor.install_authorized_key(
                    line, target, credential, self.options.timeout
                )
            finally:
                credential.release()

    def execute(self) -> None:
        """Execute rotate-key."""
        target = self.get_target(self.options.target_name)
        if self.options.revoke == self.options.label:
            raise ConfigurationError(
                "--revoke must name the old label, not the one being registered"
            )

        self.show_header(
            title="Rotate Key",
            target=target.name,
            details={
                "New label": self.options.label,
                "Revoke": self.options.revoke or "-",
                "Install": "Yes" if self.options.install else "No",
            },
        )

        logger = self.init_logger(target, "rotate-key")
        public_key = self._read_public_key()

        if self.registry.get(target.name, self.options.label) is not None:
            raise DuplicateLabel(target.name, self.options.label)
        if self.options.revoke and self.registry.get(target.name, self.options.revoke) is None:
            raise KeyNotFound(target.name, self.options.revoke)
        line = compile_authorized_key(self.options.policy, public_key, self.options.label)

        # Nothing is recorded until the key is on the host
        installed = None
        if self.options.install:
            if logger:
                logger.step(f"Installing key on {target.address}")
            installed = asyncio.run(self._install(target, line))
            if logger:
                logger.success(
                    "Installed in authorized_keys" if installed else "Already in authorized_keys"
                )

        if logger:
            logger.step(f"Registering '{self.options.label}'")
        entry: KeyEntry = self.registry.register(
            target.name, self.options.label, public_key, self.options.policy
        )
        if logger:
            logger.success(f"Registered {public_key.key_type} key '{entry.label}'")

        revoked = None
        if self.options.revoke:
            if logger:
                logger.step(f"Revoking '{self.options.revoke}'")
            revoked = self.registry.revoke(target.name, self.options.revoke)
            if logger:
                logger.success(f"Revoked '{revoked.label}'")
                logger.warning(
                    "Remove the revoked key from the host's authorized_keys once the new key is verified"
                )

        if self.json_output:
            self.output_json(
                {
                    "target": target.name,
                    "registered": entry.to_dict(),
                    "authorized_key_line": line,
                    "installed": installed,
                    "revoked": revoked.to_dict() if revoked else None,
                }
            )
            return

        self.console.print("\n[bold]authorized_keys entry:[/bold]")
        self.console.print(escape(line), soft_wrap=True)
        if not self.options.install:
            self.console.print(
                f"\n[dim]Append it to ~{escape(target.user)}/.ssh/authorized_keys on {escape(target.host)}, "
                f"or re-run with --install[/dim]"
            )
        if not self.options.policy.has_forced_command:
            self.print_dim("Key is not locked to a forced command")
        self._logs_hint()


@click.command(name="rotate-key")
@click.option("-t", "--target", required=True, help="Target name")
@click.option("-l", "--label", required=True, help="Label for the new credential")
@click.option(
    "-k", "--public-key", "public_key", required=True, help="Path to the new public key (.pub)"
)
@click.option("--revoke", help="Label of the credential being replaced")
@click.option("--forced-command", help="Only allow this command for the key")
@click.option("--allow-pty", is_flag=True, help="Do not add no-pty")
@click.option("--allow-port-forwarding", is_flag=True, help="Do not add no-port-forwarding")
@click.option("--allow-agent-forwarding", is_flag=True, help="Do not add no-agent-forwarding")
@click.option("--allow-x11", is_flag=True, help="Do not add no-X11-forwarding")
@click.option("--install", is_flag=True, help="Append the entry to authorized_keys on the host")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    help="Timeout in seconds for --install",
)
@click.option("-c", "--config", "config_path", help="Path to sshdeploy.yml")
@click.option("--verbose", "-v", is_flag=True, help="Show all command output")
@click.option("--json", "json_output", is_flag=True, help="Output in JSON format")
def rotate_key(
    target,
    label,
    public_key,
    revoke,
    forced_command,
    allow_pty,
    allow_port_forwarding,
    allow_agent_forwarding,
    allow_x11,
    install,
    timeout,
    config_path,
    verbose,
    json_output,
):
    """
    Register a new deploy key and revoke the old one

    All restrictions are on by default. The old key stays valid until it
    is revoked, so verify the new one before passing --revoke.

    \b
    Examples:
      sshdeploy rotate-key -t production -l ci-2026 -k ci.pub
      sshdeploy rotate-key -t production -l ci-2026 -k ci.pub --install
      sshdeploy rotate-key -t production -l ci-2027 -k new.pub --revoke ci-2026
      sshdeploy rotate-key -t production -l ci -k ci.pub \\
          --forced-command "rsync --server -logDtprze.iLsfxC . /var/www/app"
    """
    policy = RestrictionPolicy(
        forbid_port_forwarding=not allow_port_forwarding,
        forbid_agent_forwarding=not allow_agent_forwarding,
        forbid_pty=not allow_pty,
        forbid_x11=not allow_x11,
        forced_command=forced_command,
    )
    options = RotateKeyOptions(
        target_name=target,
        label=label,
        public_key_file=public_key,
        policy=policy,
        revoke=revoke,
        install=install,
        timeout=timeout,
    )
    cmd = RotateKeyCommand(options, config_path=config_path, verbose=verbose, json_output=json_output)
    cmd.run()
