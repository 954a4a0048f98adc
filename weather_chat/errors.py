"""
Error taxonomy for Weather Chat.

Network, server and client errors are surfaced to the user with a retry
affordance. Decode, listener and storage errors never leave the component
that hit them; they are logged and recovered with a safe fallback.
"""

from typing import Any, Dict, Optional

import httpx

from .types import ErrorKind


class ChatError(Exception):
    """Base class for all classified Weather Chat errors."""

    kind: ErrorKind = ErrorKind.NETWORK
    default_title: str = "Error"
    default_message: str = "Something went wrong."
    can_retry: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        title: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message or self.default_message
        self.title = title or self.default_title
        self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Shape consumed by an error banner: type, title, message, canRetry."""
        return {
            "type": self.kind.value,
            "title": self.title,
            "message": self.message,
            "canRetry": self.can_retry,
        }


class NetworkError(ChatError):
    """Offline, fetch failure or timeout."""
    kind = ErrorKind.NETWORK
    default_title = "Connection Error"
    default_message = "Connection lost. Please check your internet."
    can_retry = True


class ServerError(ChatError):
    """HTTP 5xx from the agent endpoint."""
    kind = ErrorKind.SERVER
    default_title = "Server Error"
    default_message = "Something went wrong. Please try again later."
    can_retry = True


class ClientError(ChatError):
    """HTTP 4xx from the agent endpoint."""
    kind = ErrorKind.CLIENT
    default_title = "Request Error"
    default_message = "Request invalid. Please try again."
    can_retry = False


class DecodeError(ChatError):
    """Malformed persisted data or stream bytes."""
    kind = ErrorKind.DECODE
    default_title = "Decode Error"
    default_message = "Stored data could not be read."


class ListenerError(ChatError):
    """A store subscriber raised."""
    kind = ErrorKind.LISTENER
    default_title = "Listener Error"
    default_message = "A change listener failed."


class StorageError(ChatError):
    """Reading from or writing to the storage medium failed."""
    kind = ErrorKind.STORAGE
    default_title = "Storage Error"
    default_message = "Chat history could not be saved."


class StreamBusyError(ChatError):
    """A new turn was requested while a reply is still streaming."""
    kind = ErrorKind.BUSY
    default_title = "Busy"
    default_message = "Please wait for the current reply to finish."


class RateLimitError(ChatError):
    """The message rate limiter rejected a turn."""
    kind = ErrorKind.RATE_LIMIT
    default_title = "Slow Down"
    can_retry = True

    def __init__(self, retry_after: float, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(
            message or f"Too many messages. Try again in {max(1, round(retry_after))}s.",
        )


class StreamCancelled(ChatError):
    """Raised inside the read loop when its cancel token fires."""
    kind = ErrorKind.CANCELLED
    default_title = "Cancelled"
    default_message = "The reply was cancelled."


def classify_status(status_code: int) -> ChatError:
    """Map a non-2xx HTTP status to a classified error."""
    if status_code >= 500:
        return ServerError(
            f"HTTP {status_code}: Something went wrong. Please try again later.",
            status_code=status_code,
        )
    if 400 <= status_code < 500:
        return ClientError(
            f"HTTP {status_code}: Request invalid. Please try again.",
            status_code=status_code,
        )
    return NetworkError(
        f"HTTP {status_code}: Unexpected response from the agent.",
        title="Unexpected Response",
        status_code=status_code,
    )


def classify_exception(exc: BaseException) -> ChatError:
    """
    Map any failure raised while talking to the agent to a ChatError.

    Already classified errors are returned unchanged.
    """
    if isinstance(exc, ChatError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(title="Connection Timeout")
    if isinstance(exc, httpx.HTTPStatusError):
        return classify_status(exc.response.status_code)
    if isinstance(exc, (httpx.TransportError, OSError)):
        return NetworkError(title="Network Error")
    return NetworkError()
