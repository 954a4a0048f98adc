"""
Weather Chat: a streaming chat client for a hosted weather agent.

Keeps every conversation in a persisted, observable session store and
rebuilds the agent's streamed reply frame by frame.

Basic Usage:
    import asyncio
    from weather_chat import ChatClient, ChatConfig, SessionStore

    async def main():
        config = ChatConfig()
        store = SessionStore.from_config(config)
        async with ChatClient(store, config) as client:
            result = await client.send_message("Weather in Lisbon?")
            print(result.content)

    asyncio.run(main())

Observing the store:
    unsubscribe = store.subscribe(lambda: print(store.get_current_messages()))
"""

__version__ = "1.0.0"

from .client import ChatClient
from .codec import decode, encode
from .config import ChatConfig
from .errors import (
    ChatError,
    ClientError,
    DecodeError,
    ListenerError,
    NetworkError,
    RateLimitError,
    ServerError,
    StorageError,
    StreamBusyError,
    StreamCancelled,
)
from .events import ChangeNotifier, ChatEvent, ErrorEvent, EventEmitter, StateEvent, TextEvent
from .storage import JsonFileStorage, KeyValueStorage, MemoryStorage
from .store import SessionStore
from .stream import CancelToken, IncrementalDecoder, StreamIngestor, parse_frame
from .titles import derive_title
from .types import (
    ErrorKind,
    Message,
    SessionEntry,
    SessionMetadata,
    StreamState,
    TurnResult,
)

__all__ = [
    # Version
    "__version__",
    # Core
    "SessionStore",
    "StreamIngestor",
    "ChatClient",
    "ChatConfig",
    # Storage
    "KeyValueStorage",
    "MemoryStorage",
    "JsonFileStorage",
    "encode",
    "decode",
    # Streaming
    "CancelToken",
    "IncrementalDecoder",
    "parse_frame",
    "derive_title",
    # Types
    "ErrorKind",
    "Message",
    "SessionEntry",
    "SessionMetadata",
    "StreamState",
    "TurnResult",
    # Events
    "ChangeNotifier",
    "ChatEvent",
    "ErrorEvent",
    "EventEmitter",
    "StateEvent",
    "TextEvent",
    # Errors
    "ChatError",
    "ClientError",
    "DecodeError",
    "ListenerError",
    "NetworkError",
    "RateLimitError",
    "ServerError",
    "StorageError",
    "StreamBusyError",
    "StreamCancelled",
]
