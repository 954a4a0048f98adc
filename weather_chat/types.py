"""
Weather Chat type definitions.

This module contains the public data types shared by the store, the
stream ingestor and the chat client.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

NEW_CHAT_TITLE = "New Chat"
UNTITLED_CHAT_TITLE = "Untitled Chat"


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: str) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    Accepts the browser form with a trailing ``Z``. Naive values are taken
    as UTC; anything unparseable sorts as the oldest possible time.
    """
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, TypeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StreamState(Enum):
    """Chat client streaming state; drives the typing indicator in a UI."""
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ERROR = "error"


class ErrorKind(Enum):
    """Error categories surfaced to the user."""
    NETWORK = "network"
    SERVER = "server"
    CLIENT = "client"
    DECODE = "decode"
    LISTENER = "listener"
    STORAGE = "storage"
    BUSY = "busy"
    RATE_LIMIT = "rate_limit"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Message:
    """A conversation message."""
    is_user: bool
    message: str
    timestamp: str = field(default_factory=utc_now_iso)  # ISO 8601

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(is_user=True, message=text)

    @classmethod
    def assistant(cls, text: str = "") -> "Message":
        return cls(is_user=False, message=text)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """
        Build a message from its persisted form.

        Also understands the older ``{role, content}`` shape.

        Raises:
            ValueError: If ``data`` is not a message record
        """
        if not isinstance(data, dict):
            raise ValueError(f"Message record must be an object, got {type(data).__name__}")
        if "isUser" in data:
            is_user = bool(data["isUser"])
            text = data.get("message", "")
        elif "role" in data:
            is_user = data["role"] == "user"
            text = data.get("content", "")
        else:
            raise ValueError("Message record has neither 'isUser' nor 'role'")
        if not isinstance(text, str):
            raise ValueError("Message text must be a string")
        timestamp = data.get("timestamp")
        if not isinstance(timestamp, str) or not timestamp:
            timestamp = utc_now_iso()
        return cls(is_user=is_user, message=text, timestamp=timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isUser": self.is_user,
            "message": self.message,
            "timestamp": self.timestamp,
        }

    @property
    def role(self) -> str:
        return "user" if self.is_user else "assistant"


@dataclass
class SessionMetadata:
    """Per-session metadata shown in a session list."""
    title: str = NEW_CHAT_TITLE
    created_at: str = field(default_factory=utc_now_iso)
    last_activity: str = field(default_factory=utc_now_iso)
    message_count: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionMetadata":
        """
        Build metadata from its persisted (camelCase) form.

        Raises:
            ValueError: If ``data`` is not a metadata record
        """
        if not isinstance(data, dict):
            raise ValueError(f"Metadata record must be an object, got {type(data).__name__}")
        now = utc_now_iso()
        title = data.get("title") or NEW_CHAT_TITLE
        return cls(
            title=str(title),
            created_at=str(data.get("createdAt") or now),
            last_activity=str(data.get("lastActivity") or now),
            message_count=int(data.get("messageCount", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "createdAt": self.created_at,
            "lastActivity": self.last_activity,
            "messageCount": self.message_count,
        }


@dataclass
class SessionEntry:
    """One session as listed by ``SessionStore.get_all_sessions()``."""
    id: str
    messages: List[Message]
    metadata: SessionMetadata


@dataclass
class TurnResult:
    """Outcome of one user turn against the agent."""
    content: str
    success: bool = True
    error: Optional[Exception] = None
    cancelled: bool = False
    session_id: Optional[str] = None
    duration_ms: int = 0

    def __bool__(self) -> bool:
        """Allow `if result:` checks."""
        return self.success
