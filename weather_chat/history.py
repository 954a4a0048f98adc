"""Search, statistics and export over a store's sessions."""

import json
import re
from typing import Any, Dict, List

from .store import SessionStore
from .types import SessionEntry, utc_now_iso

EXPORT_FORMATS = ("json", "txt")


def search_sessions(store: SessionStore, query: str) -> List[SessionEntry]:
    """
    Sessions whose title or any message contains ``query`` (case-insensitive).

    A blank query returns every session. Order follows ``get_all_sessions``.
    """
    sessions = store.get_all_sessions()
    needle = query.strip().lower()
    if not needle:
        return sessions
    return [
        entry for entry in sessions
        if needle in entry.metadata.title.lower()
        or any(needle in m.message.lower() for m in entry.messages)
    ]


def get_chat_stats(store: SessionStore) -> Dict[str, int]:
    sessions = store.get_all_sessions()
    return {
        "total_sessions": len(sessions),
        "total_messages": sum(len(e.messages) for e in sessions),
        "user_messages": sum(1 for e in sessions for m in e.messages if m.is_user),
        "empty_sessions": sum(1 for e in sessions if not e.messages),
    }


def export_filename(title: str, fmt: str) -> str:
    """Filesystem-safe name derived from a session title."""
    return f"{re.sub(r'[^a-z0-9]', '_', title, flags=re.I)}.{fmt}"


def export_session(store: SessionStore, session_id: str, fmt: str = "json") -> str:
    """
    Render one session for download.

    Args:
        store: Session store
        session_id: Session to export
        fmt: "json" (title, messages, exportedAt) or "txt" (one block per message)

    Returns:
        The exported document

    Raises:
        KeyError: If the session does not exist
        ValueError: If ``fmt`` is not supported
    """
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format: {fmt!r} (expected one of {EXPORT_FORMATS})")
    if session_id not in store:
        raise KeyError(session_id)

    meta = store.get_session_metadata(session_id)
    title = meta.title if meta else "Untitled Chat"
    messages = store.get_session_messages(session_id)

    if fmt == "txt":
        lines = [f"Chat: {title}", ""]
        for m in messages:
            lines.append(f"{m.role}: {m.message}")
            lines.append("")
        return "\n".join(lines).rstrip("\n") + "\n"

    document: Dict[str, Any] = {
        "title": title,
        "messages": [m.to_dict() for m in messages],
        "exportedAt": utc_now_iso(),
    }
    return json.dumps(document, indent=2, ensure_ascii=False)
