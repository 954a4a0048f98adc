"""Version command."""

import click
from rich.console import Console
from rich.table import Table

from ... import __version__
from ..context import load_config

console = Console()


@click.command()
@click.option("--show-config", is_flag=True, help="Also show the effective settings")
@click.pass_context
def version(ctx: click.Context, show_config: bool) -> None:
    """Show Weather Chat version.

    Examples:

        weather-chat version

        weather-chat version --show-config
    """
    console.print(f"[bold]Weather Chat[/bold] v{__version__}")

    if show_config:
        config = load_config(ctx)
        table = Table(title="Settings")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_row("config file", ctx.obj.get("config") or "-")
        table.add_row("agent url", config.agent_url)
        table.add_row("storage", str(config.get_storage_path()))
        table.add_row("timeout", f"{config.timeout:g}s")
        rate = (
            f"{config.rate_limit_max_requests} per {config.rate_limit_window_seconds:g}s"
            if config.rate_limit_enabled else "off"
        )
        table.add_row("rate limit", rate)
        console.print()
        console.print(table)
