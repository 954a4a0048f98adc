"""Weather Chat CLI application."""

import logging
import os
from pathlib import Path

import click
import yaml
from rich.console import Console

from .. import __version__
from ..config import ChatConfig
from ..utils.logging import setup_logging, setup_logging_from_dict

console = Console()


def find_config() -> str | None:
    """
    Find config file using standard priority order:

    1. WEATHER_CHAT_CONFIG environment variable
    2. .weather-chat.yaml in current directory (project config)
    3. ~/.config/weather-chat/config.yaml (user config)

    Returns None if no config found.
    """
    env_config = os.environ.get("WEATHER_CHAT_CONFIG")
    if env_config:
        path = Path(env_config)
        if path.exists():
            return str(path)

    project_config = Path.cwd() / ".weather-chat.yaml"
    if project_config.exists():
        return str(project_config)

    user_config = Path.home() / ".config" / "weather-chat" / "config.yaml"
    if user_config.exists():
        return str(user_config)

    return None


def _configure_logging(config_path: str | None, debug: bool) -> None:
    """Apply the config file's logging section; without a file only warnings are shown."""
    if not config_path:
        setup_logging_from_dict({"level": "DEBUG" if debug else "WARNING"})
        return

    try:
        chat_config = ChatConfig.load(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid config {config_path}: {e}") from e
    if debug:
        chat_config.log_level = "DEBUG"
    setup_logging(chat_config)


@click.group()
@click.version_option(version=__version__, prog_name="weather-chat")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False), help="Config file path")
@click.option("--no-config", is_flag=True, help="Disable config auto-loading")
@click.option("--storage", "-s", type=click.Path(dir_okay=False), help="Chat history file (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.option("--debug", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config: str, no_config: bool, storage: str, verbose: bool, debug: bool) -> None:
    """Weather Chat: talk to the weather agent from your terminal.

    Every conversation is kept as a session in a local history file;
    new messages go to the current session.

    Config file locations (in priority order):

        1. -c/--config PATH (explicit)

        2. WEATHER_CHAT_CONFIG env var

        3. .weather-chat.yaml (project config)

        4. ~/.config/weather-chat/config.yaml (user config)

    Examples:

        weather-chat chat "Will it rain in Dublin tomorrow?"

        weather-chat session list

        weather-chat session export 3f2a --format txt
    """
    ctx.ensure_object(dict)

    if no_config:
        config = None
    elif config is None:
        config = find_config()
        if config and verbose:
            console.print(f"[dim]Using config: {config}[/dim]")

    _configure_logging(config, debug)
    if debug:
        logging.getLogger(__name__).debug("Debug logging enabled")

    ctx.obj["config"] = config
    ctx.obj["storage"] = storage
    ctx.obj["verbose"] = verbose
    ctx.obj["debug"] = debug


# Import and register commands
from .commands import chat, session, version

cli.add_command(chat.chat)
cli.add_command(chat.retry)
cli.add_command(session.session)
cli.add_command(version.version)
