"""
Chat client: one user turn against the hosted weather agent.

Usage:
    store = SessionStore.from_config(config)

    async with ChatClient(store, config) as client:
        @client.on(TextEvent)
        def on_text(event):
            render(event.text)

        result = await client.send_message("Weather in Prague?")
        if not result:
            show_banner(result.error.to_dict())
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from .config import ChatConfig
from .errors import (
    ChatError,
    RateLimitError,
    StreamBusyError,
    StreamCancelled,
    classify_exception,
    classify_status,
)
from .events import ErrorEvent, EventEmitter, StateEvent, TextEvent
from .store import SessionStore
from .stream import CancelToken, StreamIngestor
from .types import Message, StreamState, TurnResult
from .utils.rate_limit import MessageRateLimiter, RateLimitConfig
from .utils.retry import RetryConfig, retry_async
from .utils.validation import MessageValidationError, validate_message

logger = logging.getLogger(__name__)


class ChatClient(EventEmitter):
    """
    Sends user turns to the agent and streams replies into a SessionStore.

    At most one reply streams at a time; ``send_message`` raises
    StreamBusyError while ``is_streaming`` is true.

    Args:
        store: Session store receiving messages
        config: Agent and client settings (defaults if omitted)
        http_client: Shared httpx.AsyncClient; one is created (and closed
            by ``aclose``) when omitted
        rate_limiter: Overrides the limiter built from ``config``
    """

    def __init__(
        self,
        store: SessionStore,
        config: Optional[ChatConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[MessageRateLimiter] = None,
    ):
        super().__init__()
        self._store = store
        self._config = config or ChatConfig()
        self._http = http_client
        self._owns_http = http_client is None
        self._rate_limiter = rate_limiter or MessageRateLimiter.from_config(RateLimitConfig(
            max_requests=self._config.rate_limit_max_requests,
            window_seconds=self._config.rate_limit_window_seconds,
            enabled=self._config.rate_limit_enabled,
        ))
        self._retry_config = RetryConfig(
            max_attempts=self._config.retry_max_attempts,
            backoff_base=self._config.retry_backoff_base,
            backoff_max=self._config.retry_backoff_max,
        )
        self._state = StreamState.IDLE
        self._cancel_token: Optional[CancelToken] = None
        self._last_error: Optional[ChatError] = None

    # === Lifecycle ===

    async def __aenter__(self) -> "ChatClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Cancel any in-flight reply and close the owned HTTP client."""
        self.cancel()
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    # === State ===

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        """True from the moment a request is sent until its stream is released."""
        return self._state in (StreamState.CONNECTING, StreamState.STREAMING)

    @property
    def last_error(self) -> Optional[ChatError]:
        return self._last_error

    @property
    def rate_limiter(self) -> MessageRateLimiter:
        return self._rate_limiter

    # === Turns ===

    async def send_message(
        self,
        text: str,
        cancel_token: Optional[CancelToken] = None,
    ) -> TurnResult:
        """
        Record a user message and stream the agent's reply into the store.

        Network, server and client failures do not raise; they come back
        as ``TurnResult(success=False, error=...)`` and any partial reply
        stays in the store.

        Raises:
            MessageValidationError: If ``text`` is blank, too long or unsafe
            StreamBusyError: If a reply is still streaming
            RateLimitError: If too many messages were sent recently
        """
        validation = validate_message(text)
        if not validation.is_valid:
            raise MessageValidationError(validation.errors)
        text = validation.sanitized
        self._check_can_send()

        self._store.add_message_to_current_session(Message.user(text))
        return await self._run_turn(text, cancel_token)

    async def retry_last_message(self, cancel_token: Optional[CancelToken] = None) -> TurnResult:
        """
        Re-send the latest user message of the current session.

        The user message is not added again; a fresh assistant message
        receives the new reply.

        Raises:
            ValueError: If the current session has no user message
            StreamBusyError: If a reply is still streaming
            RateLimitError: If too many messages were sent recently
        """
        last_user = next(
            (m for m in reversed(self._store.get_current_messages()) if m.is_user),
            None,
        )
        if last_user is None:
            raise ValueError("No user message to retry")
        self._check_can_send()

        self._last_error = None
        return await self._run_turn(last_user.message, cancel_token)

    def cancel(self) -> None:
        """Stop the in-flight reply, if any. Partial text stays in the store."""
        if self._cancel_token is not None:
            self._cancel_token.cancel()

    def build_request_body(self, text: str) -> Dict[str, Any]:
        """JSON body for the agent stream endpoint."""
        cfg = self._config
        thread_id = cfg.thread_id or self._store.current_session_id
        return {
            "messages": [{"role": "user", "content": text}],
            "runId": cfg.run_id,
            "maxRetries": cfg.max_retries,
            "maxSteps": cfg.max_steps,
            "temperature": cfg.temperature,
            "topP": cfg.top_p,
            "runtimeContext": dict(cfg.runtime_context),
            "threadId": thread_id,
            "resourceId": cfg.resource_id,
        }

    # === Internals ===

    def _check_can_send(self) -> None:
        if self.is_streaming:
            raise StreamBusyError()
        if not self._rate_limiter.is_allowed():
            raise RateLimitError(self._rate_limiter.remaining_time())

    def _set_state(self, new_state: StreamState) -> None:
        old_state = self._state
        if old_state == new_state:
            return
        self._state = new_state
        self.emit(StateEvent(
            session_id=self._store.current_session_id,
            old_state=old_state,
            new_state=new_state,
        ))

    def _get_http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self._config.timeout, follow_redirects=True)
            self._owns_http = True
        return self._http

    async def _open(self, body: Dict[str, Any]) -> httpx.Response:
        """Send the request and return a streaming response with a 2xx status."""
        headers = {
            "Accept": "*/*",
            "Content-Type": "application/json",
            **self._config.extra_headers,
        }
        http = self._get_http()
        request = http.build_request("POST", self._config.agent_url, json=body, headers=headers)
        try:
            response = await http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise classify_exception(e) from e

        if not response.is_success:
            await response.aclose()
            raise classify_status(response.status_code)
        return response

    @asynccontextmanager
    async def _stream_response(self, body: Dict[str, Any]) -> AsyncIterator[httpx.Response]:
        """Scoped access to the agent response; it is closed on every exit path."""
        response = await retry_async(
            self._open,
            body,
            config=self._retry_config,
            on_retry=lambda attempt, exc: logger.info(f"Agent request failed ({exc}), retry {attempt}"),
        )
        try:
            yield response
        finally:
            await response.aclose()

    async def _run_turn(self, text: str, cancel_token: Optional[CancelToken]) -> TurnResult:
        token = cancel_token or CancelToken()
        self._cancel_token = token
        session_id = self._store.current_session_id
        start = time.monotonic()

        def publish(content: str) -> None:
            self.emit(TextEvent(session_id=session_id, text=content))

        ingestor: Optional[StreamIngestor] = None
        self._set_state(StreamState.CONNECTING)
        try:
            async with self._stream_response(self.build_request_body(text)) as response:
                if token.cancelled:
                    raise StreamCancelled()
                self._store.add_message_to_current_session(Message.assistant())
                self._set_state(StreamState.STREAMING)
                ingestor = StreamIngestor(self._store, on_update=publish)
                content = await ingestor.consume(response.aiter_bytes(), token)

        except StreamCancelled:
            content = ingestor.content if ingestor else ""
            logger.info(f"Reply cancelled after {len(content)} chars")
            self._set_state(StreamState.IDLE)
            return TurnResult(
                content=content,
                success=True,
                cancelled=True,
                session_id=session_id,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        except (ChatError, httpx.HTTPError, OSError) as e:
            error = classify_exception(e)
            content = ingestor.content if ingestor else ""
            self._last_error = error
            logger.warning(f"Agent turn failed: {error.title}: {error.message}")
            self._set_state(StreamState.ERROR)
            self.emit(ErrorEvent(
                session_id=session_id,
                error=error.message,
                info=error.to_dict(),
                recoverable=error.can_retry,
            ))
            self._set_state(StreamState.IDLE)
            return TurnResult(
                content=content,
                success=False,
                error=error,
                session_id=session_id,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

        except asyncio.CancelledError:
            self._set_state(StreamState.IDLE)
            raise

        finally:
            if self._cancel_token is token:
                self._cancel_token = None

        self._last_error = None
        self.emit(TextEvent(session_id=session_id, text=content, is_complete=True))
        self._set_state(StreamState.IDLE)
        return TurnResult(
            content=content,
            success=True,
            session_id=session_id,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
