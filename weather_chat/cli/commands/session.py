"""Session management commands."""

from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from ...history import EXPORT_FORMATS, export_filename, export_session, get_chat_stats, search_sessions
from ...types import SessionEntry, parse_timestamp
from ..context import build_store, resolve_session_id

console = Console()


@click.group()
def session() -> None:
    """Manage chat sessions.

    Sessions are saved automatically after every change.

    Examples:

        weather-chat session list

        weather-chat session switch 3f2a

        weather-chat session export 3f2a --format txt -o chat.txt
    """


def _format_time(value: str) -> str:
    return parse_timestamp(value).strftime("%Y-%m-%d %H:%M")


def _print_sessions(entries: list[SessionEntry], current: str | None, title: str) -> None:
    table = Table(title=title)
    table.add_column("", no_wrap=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Messages", justify="right")
    table.add_column("Last activity", style="dim")

    for entry in entries:
        session_title = entry.metadata.title
        if len(session_title) > 40:
            session_title = session_title[:37] + "..."
        table.add_row(
            "*" if entry.id == current else "",
            entry.id[:12],
            session_title,
            str(entry.metadata.message_count),
            _format_time(entry.metadata.last_activity),
        )

    console.print(table)
    console.print(f"[dim]{len(entries)} session(s)[/dim]")


@session.command("list")
@click.option("--limit", "-n", type=int, default=20, help="Max sessions to show")
@click.pass_context
def session_list(ctx: click.Context, limit: int) -> None:
    """List sessions, most recently active first."""
    store = build_store(ctx)
    sessions = store.get_all_sessions()
    if not sessions:
        console.print("[dim]No sessions found[/dim]")
        return
    _print_sessions(sessions[:limit], store.current_session_id, "Sessions")


@session.command("new")
@click.option("--title", help="Session title (default: named after the first message)")
@click.pass_context
def session_new(ctx: click.Context, title: str | None) -> None:
    """Start a new, empty session and make it current."""
    store = build_store(ctx)
    session_id = store.create_session(title)
    console.print(f"Created session [cyan]{session_id}[/cyan]")


@session.command("switch")
@click.argument("session_id")
@click.pass_context
def session_switch(ctx: click.Context, session_id: str) -> None:
    """Make SESSION_ID the current session."""
    store = build_store(ctx)
    resolved = resolve_session_id(store, session_id)
    store.switch_to_session(resolved)
    console.print(f"Switched to [cyan]{resolved}[/cyan]")


@session.command("delete")
@click.argument("session_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def session_delete(ctx: click.Context, session_id: str, yes: bool) -> None:
    """Delete a session and its messages."""
    store = build_store(ctx)
    resolved = resolve_session_id(store, session_id)
    if not yes:
        click.confirm(f"Delete session {resolved[:12]}?", abort=True)
    store.delete_session(resolved)
    console.print(f"Deleted session [cyan]{resolved}[/cyan]")
    if store.current_session_id:
        console.print(f"[dim]Current session: {store.current_session_id}[/dim]")


@session.command("clear")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def session_clear(ctx: click.Context, yes: bool) -> None:
    """Remove all messages from the current session."""
    store = build_store(ctx)
    if store.current_session_id is None:
        console.print("[yellow]No current session[/yellow]")
        return
    if not yes:
        click.confirm("Clear all messages in the current session?", abort=True)
    store.clear_current_session()
    console.print("Session cleared")


@session.command("rename")
@click.argument("session_id")
@click.argument("title")
@click.pass_context
def session_rename(ctx: click.Context, session_id: str, title: str) -> None:
    """Give a session a new TITLE."""
    store = build_store(ctx)
    resolved = resolve_session_id(store, session_id)
    try:
        store.rename_session(resolved, title)
    except ValueError as e:
        raise click.ClickException(str(e))
    console.print(f"Renamed [cyan]{resolved[:12]}[/cyan] to {title.strip()!r}")


@session.command("show")
@click.argument("session_id", required=False)
@click.pass_context
def session_show(ctx: click.Context, session_id: str | None) -> None:
    """Print the messages of a session (default: the current one)."""
    store = build_store(ctx)
    if session_id is None:
        session_id = store.current_session_id
        if session_id is None:
            console.print("[dim]No current session[/dim]")
            return
    else:
        session_id = resolve_session_id(store, session_id)

    meta = store.get_session_metadata(session_id)
    console.print(f"[bold]{meta.title if meta else 'Untitled Chat'}[/bold] [dim]({session_id})[/dim]")
    for message in store.get_session_messages(session_id):
        who = "[cyan]You[/cyan]" if message.is_user else "[green]Agent[/green]"
        console.print(f"{who} [dim]{_format_time(message.timestamp)}[/dim]")
        if message.message:
            console.print(message.message, markup=False, highlight=False)
        else:
            console.print("[dim](empty)[/dim]")
        console.print()


@session.command("search")
@click.argument("query")
@click.pass_context
def session_search(ctx: click.Context, query: str) -> None:
    """Find sessions whose title or messages contain QUERY."""
    store = build_store(ctx)
    matches = search_sessions(store, query)
    if not matches:
        console.print(f"[dim]No sessions match {query!r}[/dim]")
        return
    _print_sessions(matches, store.current_session_id, f"Sessions matching {query!r}")


@session.command("export")
@click.argument("session_id")
@click.option("--format", "-f", "fmt", type=click.Choice(EXPORT_FORMATS), default="json")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to file (default: stdout)")
@click.option("--auto-name", is_flag=True, help="Name the output file after the session title")
@click.pass_context
def session_export(ctx: click.Context, session_id: str, fmt: str, output: str | None, auto_name: bool) -> None:
    """Export a session as JSON or plain text."""
    store = build_store(ctx)
    resolved = resolve_session_id(store, session_id)
    document = export_session(store, resolved, fmt)

    if auto_name and not output:
        meta = store.get_session_metadata(resolved)
        output = export_filename(meta.title if meta else "chat", fmt)

    if output:
        Path(output).write_text(document, encoding="utf-8")
        console.print(f"Exported to [cyan]{output}[/cyan]")
    else:
        click.echo(document, nl=not document.endswith("\n"))


@session.command("stats")
@click.pass_context
def session_stats(ctx: click.Context) -> None:
    """Show totals across all sessions."""
    stats = get_chat_stats(build_store(ctx))
    for key, value in stats.items():
        console.print(f"[bold]{key.replace('_', ' ').capitalize()}:[/bold] {value}")
