#!/usr/bin/env python3
"""sshdeploy CLI - Main entry point"""

import functools
import os
import sys

from rich.console import Console

# Rich-Click: CLI help with colors
import rich_click as click
from click.exceptions import Abort, ClickException, UsageError

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.USE_MARKDOWN = False
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.MAX_WIDTH = 100

click.rich_click.STYLE_COMMAND = "bold cyan"
click.rich_click.STYLE_OPTION = "bold magenta"
click.rich_click.STYLE_SWITCH = "bold green"
click.rich_click.STYLE_ARGUMENT = "bold yellow"
click.rich_click.STYLE_HEADER_TEXT = "bold cyan"
click.rich_click.STYLE_USAGE = "bold yellow"
click.rich_click.STYLE_USAGE_COMMAND = "bold cyan"
click.rich_click.STYLE_HELPTEXT_FIRST_LINE = "bold white"
click.rich_click.STYLE_HELPTEXT = ""
click.rich_click.STYLE_METAVAR = "bold yellow"
click.rich_click.STYLE_REQUIRED_SHORT = "bold red"
click.rich_click.STYLE_REQUIRED_LONG = "bold red"
click.rich_click.STYLE_OPTION_DEFAULT = "dim cyan"
click.rich_click.STYLE_OPTIONS_PANEL_BORDER = "cyan"
click.rich_click.STYLE_COMMANDS_PANEL_BORDER = "cyan"
click.rich_click.ALIGN_OPTIONS_PANEL = "left"
click.rich_click.ALIGN_ERRORS_PANEL = "left"
click.rich_click.ERRORS_EPILOGUE = ""

from sshdeploy import __version__
from sshdeploy.commands import history, host_key, keys, rotate_key, run_cmd, sync
from sshdeploy.constants import EXIT_FAILED, EXIT_INTERRUPTED

console = Console()


def handle_cli_errors(func):
    """Decorator to handle CLI errors gracefully."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except UsageError as e:
            console.print(f"\n[bold red]✗ Error:[/bold red] {e.format_message()}\n")
            if e.ctx and e.ctx.command:
                console.print(
                    f"[dim]Run[/dim] [cyan]sshdeploy {e.ctx.command.name} --help[/cyan] [dim]for usage information[/dim]\n"
                )
            sys.exit(EXIT_FAILED)
        except ClickException as e:
            e.show()
            sys.exit(e.exit_code)
        except (KeyboardInterrupt, Abort):
            console.print("\n\n[yellow]⚠️  Operation cancelled by user[/yellow]")
            sys.exit(EXIT_INTERRUPTED)
        except Exception as e:
            console.print(f"\n[bold red]✗ Unexpected error:[/bold red] {e}\n")

            if os.environ.get("DEBUG") or os.environ.get("VERBOSE"):
                import traceback

                console.print("[dim]Traceback:[/dim]")
                traceback.print_exc()
            sys.exit(EXIT_FAILED)

    return wrapper


@click.group(cls=click.RichGroup)
@click.version_option(version=__version__)
def cli() -> None:
    """
    sshdeploy - SSH-key based continuous deployment to a single server.

    \b
    Quick Start:
      sshdeploy host-key -t production          # Show fingerprint to pin
      sshdeploy rotate-key -t production \\
          --label ci-2026 --public-key ci.pub   # Register deploy key
      sshdeploy sync -t production              # Deploy the source tree

    \b
    Exit codes:
      0  deployment complete
      1  deployment failed
      2  deployment complete, post-deploy command failed (partial)
    """


cli.add_command(sync.sync)
cli.add_command(run_cmd.run_command)
cli.add_command(rotate_key.rotate_key)
cli.add_command(keys.keys_list)
cli.add_command(keys.keys_revoke)
cli.add_command(history.history)
cli.add_command(host_key.host_key)


@handle_cli_errors
def main():
    """Main entry point with error handling."""
    cli(standalone_mode=False)


if __name__ == "__main__":
    main()
