"""Chat commands: send a message or retry the last one."""

import asyncio
import json

import click
from rich.console import Console

from ...client import ChatClient
from ...config import ChatConfig
from ...errors import ChatError
from ...events import TextEvent
from ...store import SessionStore
from ...types import TurnResult
from ..context import load_config

console = Console()


@click.command()
@click.argument("message")
@click.option("--new", "new_session", is_flag=True, help="Start a new session first")
@click.option("--timeout", "-t", type=float, default=None, help="Request timeout in seconds")
@click.option("--json", "json_output", is_flag=True, help="JSON output format")
@click.pass_context
def chat(
    ctx: click.Context,
    message: str,
    new_session: bool,
    timeout: float,
    json_output: bool,
) -> None:
    """Send a message to the weather agent and stream the reply.

    Examples:

        weather-chat chat "What's the forecast for Oslo?"

        weather-chat chat --new "Is it windy in Chicago?"

        weather-chat chat --json "Weather in Rome" | jq .content
    """
    config = load_config(ctx)
    if timeout:
        config.timeout = timeout
    store = SessionStore.from_config(config)
    if new_session:
        store.create_session()

    result = asyncio.run(_run(store, config, message, json_output, retry=False))
    _finish(result, json_output)


@click.command()
@click.option("--json", "json_output", is_flag=True, help="JSON output format")
@click.pass_context
def retry(ctx: click.Context, json_output: bool) -> None:
    """Re-send the last message of the current session."""
    config = load_config(ctx)
    store = SessionStore.from_config(config)
    result = asyncio.run(_run(store, config, "", json_output, retry=True))
    _finish(result, json_output)


async def _run(
    store: SessionStore,
    config: ChatConfig,
    message: str,
    json_output: bool,
    retry: bool,
) -> TurnResult:
    """Run one turn, printing text as it streams unless JSON output is requested."""
    printed = 0

    async with ChatClient(store, config) as client:
        if not json_output:
            @client.on(TextEvent)
            def on_text(event: TextEvent) -> None:
                nonlocal printed
                if event.is_complete:
                    return
                console.print(event.text[printed:], end="", markup=False, highlight=False)
                printed = len(event.text)

        try:
            if retry:
                return await client.retry_last_message()
            return await client.send_message(message)
        except ValueError as e:
            raise click.ClickException(str(e))
        except ChatError as e:
            # rejected before sending (busy or rate limited)
            return TurnResult(content="", success=False, error=e, session_id=store.current_session_id)


def _finish(result: TurnResult, json_output: bool) -> None:
    if json_output:
        click.echo(json.dumps({
            "content": result.content,
            "success": result.success,
            "cancelled": result.cancelled,
            "error": result.error.to_dict() if isinstance(result.error, ChatError) else None,
            "session_id": result.session_id,
            "duration_ms": result.duration_ms,
        }, indent=2))
    else:
        console.print()

    if not result.success:
        if not json_output and isinstance(result.error, ChatError):
            console.print(f"[red]{result.error.title}:[/red] {result.error.message}")
            if result.error.can_retry:
                console.print("[dim]Run 'weather-chat retry' to try again.[/dim]")
        raise SystemExit(1)
