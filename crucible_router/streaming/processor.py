from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, runtime_checkable

logger = logging.getLogger("crucible_router")

StreamChunk = str | bytes
ChunkCallback = Callable[[StreamChunk], Awaitable[Any] | Any]


class StreamCancelledError(Exception):
    """Terminal signal of a source that was closed by its consumer."""


@runtime_checkable
class ChunkSource(Protocol):
    def __aiter__(self) -> AsyncIterator[StreamChunk]: ...

    async def aclose(self) -> None: ...


_END = object()
_CANCELLED = object()


class ChunkChannel:
    """Queue-backed chunk source with distinct end-of-stream and cancel signals.

    Producers call ``send`` and finally ``close``; the consumer iterates and may
    call ``aclose`` to stop the producer, after which iteration raises
    ``StreamCancelledError`` and ``send`` returns ``False``.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def send(self, chunk: StreamChunk) -> bool:
        if self._closed or self._cancelled:
            return False
        await self._queue.put(chunk)
        return not self._cancelled

    async def close(self) -> None:
        if self._closed or self._cancelled:
            return
        self._closed = True
        await self._queue.put(_END)

    async def aclose(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CANCELLED)

    def __aiter__(self) -> ChunkChannel:
        return self

    async def __anext__(self) -> StreamChunk:
        if self._cancelled and self._queue.empty():
            raise StreamCancelledError("chunk channel was closed by its consumer")
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            raise StopAsyncIteration
        if item is _CANCELLED or self._cancelled:
            raise StreamCancelledError("chunk channel was closed by its consumer")
        return item


@dataclass(slots=True)
class StreamStats:
    chunks: int = 0
    bytes: int = 0
    cancelled: bool = False


def chunk_size_bytes(chunk: StreamChunk) -> int:
    if isinstance(chunk, bytes):
        return len(chunk)
    return len(chunk.encode("utf-8"))


async def invoke_callback(callback: ChunkCallback, chunk: StreamChunk) -> None:
    result = callback(chunk)
    if inspect.isawaitable(result):
        await result


class StreamProcessor:
    def __init__(self) -> None:
        self._listeners: list[ChunkCallback] = []
        self._stop_requested: set[int] = set()

    def subscribe(self, listener: ChunkCallback) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def stop_requested(self, source: object) -> bool:
        return id(source) in self._stop_requested

    async def request_stop(self, source: object) -> None:
        self._stop_requested.add(id(source))
        aclose = getattr(source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as exc:
            logger.warning(
                "stream_cancel_failed source=%s error=%s",
                type(source).__name__,
                exc,
            )

    async def process(
        self,
        source: ChunkSource | AsyncIterator[StreamChunk],
        on_chunk: ChunkCallback | None = None,
    ) -> StreamStats:
        stats = StreamStats()
        key = id(source)
        can_close = hasattr(source, "aclose")
        try:
            async for chunk in source:
                stats.chunks += 1
                stats.bytes += chunk_size_bytes(chunk)
                if on_chunk is not None:
                    await invoke_callback(on_chunk, chunk)
                else:
                    for listener in list(self._listeners):
                        await invoke_callback(listener, chunk)
                if key in self._stop_requested and not can_close:
                    break
        except StreamCancelledError:
            if key not in self._stop_requested:
                raise
            logger.debug("stream_cancelled chunks=%d bytes=%d", stats.chunks, stats.bytes)
        except Exception:
            if can_close and key not in self._stop_requested:
                await self.request_stop(source)
            raise
        finally:
            stats.cancelled = key in self._stop_requested
            self._stop_requested.discard(key)
        return stats
