"""
Streaming ingestion of the agent's chunked reply.

The agent answers with numeric-prefixed frames, one per line::

    0:"Hello "
    9:{"toolCallId":"call_1","toolName":"weatherTool","args":{...}}
    0:"world\\n!"

Text frames are unquoted and appended to an accumulator. Tool-call frames
are dropped. After every chunk the store's last message is overwritten
with the full accumulated text.

Each chunk's lines are parsed as they arrive. The one exception is a chunk
that ends inside a multi-byte character: its last line is held back and
completed by the next chunk.
"""

import asyncio
import codecs
import logging
import re
from typing import AsyncIterator, Callable, Optional, Protocol

from .errors import StreamCancelled

logger = logging.getLogger(__name__)

_FRAME_RE = re.compile(r"^\d+:")

TOOL_CALL_MARKERS = ('{"toolCallId"', '"toolName"', '"args"')


class LastMessageSink(Protocol):
    def update_last_message(self, content: str) -> None:
        ...


class IncrementalDecoder:
    """
    UTF-8 decoder that carries partial multi-byte sequences between chunks.

    Invalid bytes decode to U+FFFD instead of raising.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def feed(self, chunk: bytes) -> str:
        return self._decoder.decode(chunk, final=False)

    def flush(self) -> str:
        """Decode whatever is still buffered; a truncated sequence becomes U+FFFD."""
        return self._decoder.decode(b"", final=True)

    @property
    def pending(self) -> bytes:
        buffered, _ = self._decoder.getstate()
        return buffered

    def reset(self) -> None:
        self._decoder.reset()


def unquote(payload: str) -> str:
    """Strip one leading and one trailing double quote."""
    if payload.startswith('"'):
        payload = payload[1:]
    if payload.endswith('"'):
        payload = payload[:-1]
    return payload


def is_tool_call(payload: str) -> bool:
    return any(marker in payload for marker in TOOL_CALL_MARKERS)


def parse_frame(line: str) -> Optional[str]:
    """
    Extract user-visible text from one protocol line.

    Returns:
        The text to append, or None for non-frame lines, tool-call
        frames and empty payloads
    """
    line = line.strip()
    if not line or not _FRAME_RE.match(line):
        return None
    payload = unquote(line.split(":", 1)[1])
    if not payload or is_tool_call(payload):
        return None
    return payload.replace("\\n", " ")


class CancelToken:
    """Abort signal for an in-flight stream read."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def _read_next(chunks: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


class StreamIngestor:
    """
    Rebuilds the assistant message from a chunked byte stream.

    Args:
        store: Receives ``update_last_message(full_text)`` after each chunk
        on_update: Optional callback with the full text after each chunk
    """

    def __init__(
        self,
        store: LastMessageSink,
        on_update: Optional[Callable[[str], None]] = None,
    ):
        self._store = store
        self._on_update = on_update
        self._decoder = IncrementalDecoder()
        self._carry = ""
        self._content = ""
        self._chunks = 0
        self._dropped_frames = 0

    @property
    def content(self) -> str:
        return self._content

    @property
    def chunk_count(self) -> int:
        return self._chunks

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    def feed(self, chunk: bytes) -> str:
        """Process one chunk and publish the full text so far."""
        self._chunks += 1
        text = self._carry + self._decoder.feed(chunk)
        self._carry = ""
        if self._decoder.pending:
            # the chunk ended mid-character, so its last line is incomplete
            text, _, self._carry = text.rpartition("\n")
        self._ingest_text(text)
        self._publish()
        return self._content

    def finish(self) -> str:
        """Flush text held back by the decoder at end of stream."""
        tail = self._carry + self._decoder.flush()
        self._carry = ""
        if tail:
            self._ingest_text(tail)
            self._publish()
        return self._content

    def _ingest_text(self, text: str) -> None:
        for line in text.split("\n"):
            line = line.strip()
            if not line:
                continue
            visible = parse_frame(line)
            if visible is None:
                if _FRAME_RE.match(line):
                    self._dropped_frames += 1
                continue
            self._content += visible

    def _publish(self) -> None:
        self._store.update_last_message(self._content)
        if self._on_update:
            self._on_update(self._content)

    async def consume(
        self,
        chunks: AsyncIterator[bytes],
        cancel_token: Optional[CancelToken] = None,
    ) -> str:
        """
        Read ``chunks`` to the end, feeding each one.

        A read pending when ``cancel_token`` fires is abandoned and
        StreamCancelled is raised; content gathered so far stays in the
        store.

        Returns:
            The full assistant message
        """
        while True:
            chunk = await self._next_chunk(chunks, cancel_token)
            if chunk is None:
                break
            if chunk:
                self.feed(chunk)

        logger.debug(
            f"Stream complete: {self._chunks} chunk(s), {len(self._content)} chars, "
            f"{self._dropped_frames} frame(s) dropped"
        )
        return self.finish()

    async def _next_chunk(
        self,
        chunks: AsyncIterator[bytes],
        cancel_token: Optional[CancelToken],
    ) -> Optional[bytes]:
        if cancel_token is None:
            return await _read_next(chunks)
        if cancel_token.cancelled:
            raise StreamCancelled()

        read = asyncio.ensure_future(_read_next(chunks))
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            done, _ = await asyncio.wait({read, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.cancel()
            raise
        finally:
            waiter.cancel()
        if read in done:
            return read.result()

        read.cancel()
        try:
            await read
        except asyncio.CancelledError:
            pass
        raise StreamCancelled()
