"""
Weather Chat event system.

Two observer mechanisms live here:

- ChangeNotifier: zero-argument "something changed" listeners used by the
  session store. A UI re-reads whatever state it needs when called.
- EventEmitter: typed events emitted by the chat client while a reply
  streams (text updates, state changes, errors).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from .errors import ListenerError
from .types import StreamState

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """
    Ordered registry of change listeners.

    Usage:
        notifier = ChangeNotifier()
        unsubscribe = notifier.subscribe(lambda: print("changed"))
        notifier.notify()
        unsubscribe()
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            A function that removes this registration. Calling it more than
            once is harmless.
        """
        with self._lock:
            self._listeners.append(listener)

        removed = False

        def unsubscribe() -> None:
            nonlocal removed
            if removed:
                return
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass
            removed = True

        return unsubscribe

    def notify(self) -> None:
        """
        Call every listener in registration order.

        A failing listener is logged and skipped; the rest still run.
        """
        with self._lock:
            snapshot = list(self._listeners)

        for listener in snapshot:
            try:
                listener()
            except Exception as e:
                err = ListenerError(f"Store listener {listener!r} failed: {e}")
                logger.error(err.message, exc_info=True)

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


@dataclass
class ChatEvent:
    """Base event class for all chat client events."""
    timestamp: float = field(default_factory=time.time)
    session_id: Optional[str] = None


@dataclass
class TextEvent(ChatEvent):
    """
    Assistant text update.

    ``text`` is always the full message so far, never a delta.
    """
    text: str = ""
    is_complete: bool = False


@dataclass
class StateEvent(ChatEvent):
    """Streaming state change (drives the typing indicator)."""
    old_state: Optional[StreamState] = None
    new_state: Optional[StreamState] = None


@dataclass
class ErrorEvent(ChatEvent):
    """
    Classified error from a turn.

    ``info`` has the ``{type, title, message, canRetry}`` banner shape.
    """
    error: str = ""
    info: Dict[str, Any] = field(default_factory=dict)
    recoverable: bool = True


E = TypeVar("E", bound=ChatEvent)


class EventEmitter:
    """
    Typed pub/sub for chat client events.

    Usage:
        client = ChatClient(store)

        @client.on(TextEvent)
        def on_text(event: TextEvent):
            render(event.text)
    """

    def __init__(self) -> None:
        self._handlers: Dict[Type[ChatEvent], List[Callable[..., None]]] = {}
        self._global_handlers: List[Callable[[ChatEvent], None]] = []
        self._handlers_lock = threading.Lock()

    def on(self, event_type: Type[E]) -> Callable[[Callable[[E], None]], Callable[[E], None]]:
        """Decorator registering a handler for one event class."""
        def decorator(func: Callable[[E], None]) -> Callable[[E], None]:
            self.add_handler(event_type, func)
            return func
        return decorator

    def on_any(self, func: Callable[[ChatEvent], None]) -> Callable[[ChatEvent], None]:
        """Register a handler for every event."""
        with self._handlers_lock:
            self._global_handlers.append(func)
        return func

    def add_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        with self._handlers_lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def remove_handler(self, event_type: Type[E], handler: Callable[[E], None]) -> None:
        with self._handlers_lock:
            if event_type in self._handlers:
                self._handlers[event_type] = [
                    h for h in self._handlers[event_type] if h != handler
                ]

    def emit(self, event: ChatEvent) -> None:
        """
        Deliver an event to global handlers, then to handlers of its class.

        Handlers run outside the lock so they may register or remove
        handlers themselves. Handler exceptions are logged, never raised.
        """
        with self._handlers_lock:
            global_snapshot = list(self._global_handlers)
            specific_snapshot = list(self._handlers.get(type(event), []))

        for handler in global_snapshot + specific_snapshot:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Event handler error ({type(event).__name__}): {e}")

    def handler_count(self, event_type: Optional[Type[E]] = None) -> int:
        with self._handlers_lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(h) for h in self._handlers.values()) + len(self._global_handlers)
