"""
sshdeploy CLI - UI Components
Standardized headers and UI elements
"""

from rich.console import Console
from rich.markup import escape

BRAND_COLOR = "cyan"


def show_header(
    title: str,
    target: str = None,
    details: dict = None,
    console: Console = None,
):
    """
    Display a standardized command header.

    Example:
        show_header(
            title="Sync",
            target="production",
            details={"Source": "./dist", "Timeout": "300s"}
        )
    """
    if console is None:
        console = Console()

    console.print(
        f" [bold color(214)]sshdeploy[/bold color(214)] [dim]›[/dim] [bold white]{escape(title)}[/bold white]"
    )

    if target:
        console.print(f" [dim]Target:[/dim] [{BRAND_COLOR}]{escape(target)}[/{BRAND_COLOR}]")

    if details:
        for key, value in details.items():
            console.print(f" [dim]{escape(str(key))}:[/dim] {escape(str(value))}")

    console.print()
