"""Builds config and store objects from the CLI context."""

import click

from ..config import ChatConfig
from ..store import SessionStore


def load_config(ctx: click.Context) -> ChatConfig:
    """Config from the resolved file (or defaults) with CLI overrides applied."""
    config_path = ctx.obj.get("config")
    config = ChatConfig.load(config_path) if config_path else ChatConfig()
    if ctx.obj.get("storage"):
        config.storage_path = ctx.obj["storage"]
    return config


def build_store(ctx: click.Context) -> SessionStore:
    return SessionStore.from_config(load_config(ctx))


def resolve_session_id(store: SessionStore, prefix: str) -> str:
    """
    Expand a (possibly shortened) session id.

    Raises:
        click.ClickException: If nothing or more than one session matches
    """
    if prefix in store:
        return prefix
    matches = [e.id for e in store.get_all_sessions() if e.id.startswith(prefix)]
    if not matches:
        raise click.ClickException(f"No session found matching: {prefix}")
    if len(matches) > 1:
        raise click.ClickException(
            f"Ambiguous ID, {len(matches)} matches: " + ", ".join(m[:12] for m in matches)
        )
    return matches[0]
