"""
Session store holding every conversation and the current session pointer.

Every mutating operation runs to completion under one lock, writes the
whole snapshot to storage and then notifies subscribers, all before it
returns. Reads never persist or notify.

Usage:
    store = SessionStore(JsonFileStorage("~/.weather-chat/storage.json"))
    unsubscribe = store.subscribe(lambda: redraw(store.get_current_messages()))

    store.add_message_to_current_session(Message.user("Weather in Oslo?"))
    store.add_message_to_current_session(Message.assistant())
    store.update_last_message("It is sunny")
"""

import dataclasses
import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import codec
from .config import ChatConfig
from .errors import DecodeError, StorageError
from .events import ChangeNotifier, Listener
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from .titles import derive_title
from .types import (
    NEW_CHAT_TITLE,
    UNTITLED_CHAT_TITLE,
    Message,
    SessionEntry,
    SessionMetadata,
    parse_timestamp,
    utc_now,
)

logger = logging.getLogger(__name__)

# Live persisted layout
SESSIONS_KEY = "chatSessions"
METADATA_KEY = "sessionMetadata"
CURRENT_SESSION_KEY = "currentSessionId"

# Older clients saved threads through the codec under these keys
LEGACY_THREADS_KEY = "weather-chat-threads"
LEGACY_SELECTED_KEY = "weather-chat-selected"


def _new_session_id() -> str:
    return str(uuid.uuid4())


class SessionStore:
    """
    Reactive container for every chat session.

    Args:
        storage: Storage medium; defaults to an in-memory one
        clock: Returns the current aware datetime (injectable for tests)
        id_factory: Returns a fresh unique session id
        codec_key: XOR key used to read legacy codec-encoded data
    """

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = _new_session_id,
        codec_key: str = codec.DEFAULT_KEY,
    ):
        self._storage = storage if storage is not None else MemoryStorage()
        self._clock = clock
        self._id_factory = id_factory
        self._codec_key = codec_key

        self._sessions: Dict[str, List[Message]] = {}
        self._metadata: Dict[str, SessionMetadata] = {}
        self._current_session_id: Optional[str] = None

        self._lock = threading.RLock()
        self._notifier = ChangeNotifier()

        self._load()

    @classmethod
    def from_config(cls, config: ChatConfig) -> "SessionStore":
        """Create a store persisted to the file named in ``config``."""
        return cls(
            storage=JsonFileStorage(config.get_storage_path()),
            codec_key=config.codec_key,
        )

    # === Read API ===

    @property
    def current_session_id(self) -> Optional[str]:
        return self._current_session_id

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_current_messages(self) -> List[Message]:
        """Messages of the current session, or an empty list."""
        with self._lock:
            if self._current_session_id is None:
                return []
            return list(self._sessions.get(self._current_session_id, []))

    def get_session_messages(self, session_id: str) -> List[Message]:
        with self._lock:
            return list(self._sessions.get(session_id, []))

    def get_session_metadata(self, session_id: str) -> Optional[SessionMetadata]:
        with self._lock:
            meta = self._metadata.get(session_id)
            return dataclasses.replace(meta) if meta else None

    def get_all_sessions(self) -> List[SessionEntry]:
        """
        Every session, most recently active first.

        Sessions without a metadata record get a synthesized
        "Untitled Chat" record; it is not stored.
        """
        with self._lock:
            entries = []
            for session_id, messages in self._sessions.items():
                meta = self._metadata.get(session_id)
                if meta is None:
                    meta = self._untitled_metadata(messages)
                else:
                    meta = dataclasses.replace(meta)
                entries.append(SessionEntry(id=session_id, messages=list(messages), metadata=meta))

        entries.sort(key=lambda e: parse_timestamp(e.metadata.last_activity), reverse=True)
        return entries

    # === Mutations ===

    def create_session(self, title: Optional[str] = None) -> str:
        """Create an empty session, make it current and return its id."""
        with self._lock:
            session_id = self._create_session_locked(title)
            self._persist()
        logger.debug(f"Created session {session_id}")
        self._notifier.notify()
        return session_id

    def switch_to_session(self, session_id: str) -> None:
        """
        Make ``session_id`` current. Unknown ids are ignored.

        A session listed without a metadata record gets its "Untitled Chat"
        record stored on switch.
        """
        with self._lock:
            if session_id not in self._sessions:
                logger.debug(f"Ignoring switch to unknown session {session_id}")
                return
            self._make_current_locked(session_id)
            self._persist()
        self._notifier.notify()

    def delete_session(self, session_id: str) -> None:
        """Delete a session; if it was current, another one (or none) becomes current."""
        with self._lock:
            if session_id not in self._sessions:
                return
            del self._sessions[session_id]
            self._metadata.pop(session_id, None)
            if self._current_session_id == session_id:
                self._current_session_id = None
                fallback = next(iter(self._sessions), None)
                if fallback is not None:
                    self._make_current_locked(fallback)
            self._persist()
        logger.debug(f"Deleted session {session_id}, current is now {self._current_session_id}")
        self._notifier.notify()

    def rename_session(self, session_id: str, title: str) -> None:
        """
        Give a session an explicit title.

        Raises:
            ValueError: If ``title`` is blank
        """
        title = title.strip()
        if not title:
            raise ValueError("Session title cannot be empty")
        with self._lock:
            if session_id not in self._sessions:
                return
            meta = self._metadata.get(session_id)
            if meta is None:
                meta = self._metadata[session_id] = self._untitled_metadata(self._sessions[session_id])
            meta.title = title
            meta.last_activity = self._now()
            self._persist()
        self._notifier.notify()

    def clear_current_session(self) -> None:
        """Remove all messages from the current session, keeping its id and title."""
        with self._lock:
            session_id = self._current_session_id
            if session_id is None:
                return
            self._sessions[session_id] = []
            meta = self._metadata[session_id]
            meta.message_count = 0
            meta.last_activity = self._now()
            self._persist()
        self._notifier.notify()

    def add_message_to_current_session(self, message: Message) -> None:
        """
        Append a message to the current session, creating one if needed.

        The first user message sent while the session still has the
        default title names the session.
        """
        with self._lock:
            if self._current_session_id is None:
                self._create_session_locked(None)
            session_id = self._current_session_id
            messages = self._sessions[session_id]
            messages.append(message)

            meta = self._metadata[session_id]
            meta.message_count = len(messages)
            meta.last_activity = self._now()
            if message.is_user and meta.title == NEW_CHAT_TITLE:
                meta.title = derive_title(message.message)
                logger.debug(f"Session {session_id} titled {meta.title!r}")
            self._persist()
        self._notifier.notify()

    def update_last_message(self, content: str) -> None:
        """
        Replace the whole text of the current session's last message.

        ``content`` must be the full text so far, not a delta. No-op when
        there is no current session or it has no messages.
        """
        with self._lock:
            session_id = self._current_session_id
            if session_id is None:
                return
            messages = self._sessions[session_id]
            if not messages:
                return
            messages[-1] = dataclasses.replace(messages[-1], message=content)
            self._metadata[session_id].last_activity = self._now()
            self._persist()
        self._notifier.notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener()`` after every mutation. Returns an unsubscribe function."""
        return self._notifier.subscribe(listener)

    # === Internals ===

    def _now(self) -> str:
        return self._clock().isoformat()

    def _untitled_metadata(self, messages: List[Message]) -> SessionMetadata:
        now = self._now()
        return SessionMetadata(
            title=UNTITLED_CHAT_TITLE,
            created_at=messages[0].timestamp if messages else now,
            last_activity=messages[-1].timestamp if messages else now,
            message_count=len(messages),
        )

    def _make_current_locked(self, session_id: str) -> None:
        if session_id not in self._metadata:
            self._metadata[session_id] = self._untitled_metadata(self._sessions[session_id])
            logger.info(f"Adopted session {session_id} without metadata")
        self._current_session_id = session_id

    def _create_session_locked(self, title: Optional[str]) -> str:
        session_id = self._id_factory()
        now = self._now()
        self._sessions[session_id] = []
        self._metadata[session_id] = SessionMetadata(
            title=title or NEW_CHAT_TITLE,
            created_at=now,
            last_activity=now,
            message_count=0,
        )
        self._current_session_id = session_id
        return session_id

    def _persist(self) -> None:
        """Write the full snapshot. Failures are logged; the mutation stands."""
        try:
            sessions = {
                sid: [m.to_dict() for m in messages] for sid, messages in self._sessions.items()
            }
            metadata = {sid: meta.to_dict() for sid, meta in self._metadata.items()}
            self._storage.set_item(SESSIONS_KEY, json.dumps(sessions, ensure_ascii=False))
            self._storage.set_item(METADATA_KEY, json.dumps(metadata, ensure_ascii=False))
            if self._current_session_id is not None:
                self._storage.set_item(CURRENT_SESSION_KEY, self._current_session_id)
            else:
                self._storage.remove_item(CURRENT_SESSION_KEY)
        except (StorageError, TypeError, ValueError) as e:
            logger.error(f"Failed to persist chat sessions: {e}")

    def _load(self) -> None:
        has_live_data = any(
            self._storage.get_item(key) is not None
            for key in (SESSIONS_KEY, METADATA_KEY, CURRENT_SESSION_KEY)
        )
        if not has_live_data:
            self._migrate_legacy()
            return

        self._sessions = self._load_sessions()
        self._metadata = {
            sid: meta for sid, meta in self._load_metadata().items() if sid in self._sessions
        }
        for session_id, meta in self._metadata.items():
            meta.message_count = len(self._sessions[session_id])

        current = self._storage.get_item(CURRENT_SESSION_KEY)
        if current in self._sessions and current in self._metadata:
            self._current_session_id = current
        elif current is not None:
            logger.warning(f"Stored current session {current!r} is incomplete; starting without one")

        logger.info(f"Loaded {len(self._sessions)} chat session(s)")

    def _read_object(self, key: str) -> Dict[str, Any]:
        """
        Parse the JSON object stored under ``key``; absent means empty.

        Raises:
            DecodeError: If the stored value is not a JSON object
        """
        raw = self._storage.get_item(key)
        if raw is None:
            return {}
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise DecodeError(f"{key} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise DecodeError(f"{key} must be an object, got {type(data).__name__}")
        return data

    def _load_sessions(self) -> Dict[str, List[Message]]:
        try:
            sessions = {}
            for session_id, messages in self._read_object(SESSIONS_KEY).items():
                if not isinstance(messages, list):
                    raise DecodeError(f"session {session_id!r} is not a list")
                sessions[str(session_id)] = [Message.from_dict(m) for m in messages]
            return sessions
        except (DecodeError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable {SESSIONS_KEY}: {e}")
            return {}

    def _load_metadata(self) -> Dict[str, SessionMetadata]:
        try:
            data = self._read_object(METADATA_KEY)
            return {str(sid): SessionMetadata.from_dict(meta) for sid, meta in data.items()}
        except (DecodeError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable {METADATA_KEY}: {e}")
            return {}

    def _migrate_legacy(self) -> None:
        """Import threads saved by older clients, then drop the legacy keys."""
        encoded = self._storage.get_item(LEGACY_THREADS_KEY)
        if encoded is None:
            return
        threads = codec.decode(encoded, self._codec_key)
        if not isinstance(threads, dict):
            logger.warning("Legacy chat threads could not be decoded; skipping migration")
            return

        for thread_id, records in threads.items():
            if not isinstance(records, list):
                continue
            messages = []
            for record in records:
                try:
                    messages.append(Message.from_dict(record))
                except ValueError as e:
                    logger.debug(f"Skipping legacy message in {thread_id}: {e}")
            now = self._now()
            first_user = next((m for m in messages if m.is_user), None)
            self._sessions[str(thread_id)] = messages
            self._metadata[str(thread_id)] = SessionMetadata(
                title=derive_title(first_user.message) if first_user else NEW_CHAT_TITLE,
                created_at=messages[0].timestamp if messages else now,
                last_activity=messages[-1].timestamp if messages else now,
                message_count=len(messages),
            )

        selected_raw = self._storage.get_item(LEGACY_SELECTED_KEY)
        selected = codec.decode(selected_raw, self._codec_key) if selected_raw else None
        if isinstance(selected, str) and selected in self._sessions:
            self._current_session_id = selected

        self._persist()
        try:
            self._storage.remove_item(LEGACY_THREADS_KEY)
            self._storage.remove_item(LEGACY_SELECTED_KEY)
        except StorageError as e:
            logger.error(f"Failed to remove legacy chat threads: {e}")
        logger.info(f"Migrated {len(self._sessions)} legacy chat thread(s)")
