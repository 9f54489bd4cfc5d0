# src/pipeline/streaming.py — v2
"""Bounded single-reader channel over a streaming capability call.

The producer side reads text deltas from the capability and publishes the
accumulated text as ``StreamPartial`` events, then exactly one terminal
event: ``StreamCompleted`` or ``StreamFailed``. The channel is finite and
not restartable.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Union

from songsmith.core.errors import ClassifiedError, ErrorKind, classify_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamPartial:
    """Accumulated text so far."""

    text: str


@dataclass(frozen=True)
class StreamCompleted:
    """Terminal success: the full text."""

    text: str


@dataclass(frozen=True)
class StreamFailed:
    """Terminal failure."""

    error: ClassifiedError


StreamEvent = Union[StreamPartial, StreamCompleted, StreamFailed]


class DraftStream:
    """Pump a delta stream through a bounded queue.

    Use as an async context manager so the producer task and the underlying
    stream are closed even when the consumer stops early or is cancelled::

        async with DraftStream(deltas) as stream:
            async for event in stream:
                ...

    Args:
        source: Async iterator of text deltas.
        maxsize: Queue bound; the producer waits when the reader falls behind.
        idle_timeout_s: Longest wait for the next event before failing.
    """

    def __init__(
        self,
        source: AsyncIterator[str],
        maxsize: int = 64,
        idle_timeout_s: float = 60.0,
    ) -> None:
        self._source = source
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue(maxsize=maxsize)
        self._idle_timeout_s = idle_timeout_s
        self._producer: asyncio.Task[None] | None = None
        self._started = False

    async def __aenter__(self) -> DraftStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __aiter__(self) -> AsyncIterator[StreamEvent]:
        if self._started:
            raise RuntimeError("DraftStream can only be consumed once")
        self._started = True
        self._producer = asyncio.create_task(self._pump())
        return self._events()

    async def _pump(self) -> None:
        text = ""
        try:
            async for delta in self._source:
                if not delta:
                    continue
                text += delta
                await self._queue.put(StreamPartial(text))
        except Exception as exc:
            await self._queue.put(StreamFailed(classify_error(exc)))
            return
        await self._queue.put(StreamCompleted(text))

    async def _events(self) -> AsyncIterator[StreamEvent]:
        while True:
            try:
                async with asyncio.timeout(self._idle_timeout_s):
                    event = await self._queue.get()
            except TimeoutError as exc:
                raise ClassifiedError(
                    ErrorKind.NETWORK,
                    f"Stream stalled: no data for {self._idle_timeout_s:g}s",
                    cause=exc,
                ) from exc
            yield event
            if not isinstance(event, StreamPartial):
                return

    async def aclose(self) -> None:
        """Stop the producer and close the underlying stream."""
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._producer
            logger.debug("Draft stream closed before completion")
        close = getattr(self._source, "aclose", None)
        if close is not None:
            await close()
