from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

from crucible_router.streaming.assembler import (
    DEFAULT_MAX_BUFFER_BYTES,
    ResponseAssembler,
)
from crucible_router.streaming.formatting import FormatTransformer, OutputFormat
from crucible_router.streaming.processor import (
    ChunkCallback,
    ChunkSource,
    StreamChunk,
    StreamProcessor,
    invoke_callback,
)
from crucible_router.streaming.truncation import (
    ContextType,
    TruncationManager,
    truncation_manager_for,
)

logger = logging.getLogger("crucible_router")


@dataclass(slots=True)
class OutputOptions:
    context_type: ContextType | str = ContextType.DEFAULT
    format: OutputFormat | str | None = None
    on_chunk: ChunkCallback | None = None
    max_buffer_bytes: int | None = None


@dataclass(slots=True)
class OutputResult:
    text: str
    raw_text: str
    truncated: bool
    size_bytes: int
    chunks: int
    cancelled: bool
    format: str | None = None


class OutputCoordinator:
    def __init__(
        self,
        *,
        max_buffer_bytes: int = DEFAULT_MAX_BUFFER_BYTES,
        formatter: FormatTransformer | None = None,
        truncation_factory: Callable[[Any], TruncationManager] = truncation_manager_for,
    ) -> None:
        self._max_buffer_bytes = max_buffer_bytes
        self._formatter = formatter or FormatTransformer()
        self._truncation_factory = truncation_factory

    async def process(
        self,
        source: ChunkSource | AsyncIterator[StreamChunk],
        options: OutputOptions | None = None,
    ) -> OutputResult:
        options = options or OutputOptions()
        assembler = ResponseAssembler(
            self._truncation_factory(options.context_type),
            max_buffer=(
                options.max_buffer_bytes
                if options.max_buffer_bytes is not None
                else self._max_buffer_bytes
            ),
        )
        processor = StreamProcessor()
        stopping = False

        async def on_chunk(chunk: StreamChunk) -> None:
            nonlocal stopping
            keep_going = assembler.add_chunk(chunk)
            if options.on_chunk is not None:
                await invoke_callback(options.on_chunk, chunk)
            if not keep_going and not stopping:
                stopping = True
                await processor.request_stop(source)

        stats = await processor.process(source, on_chunk)
        assembler.finalize()
        raw_text = assembler.get_response()
        buffer = assembler.buffer
        if stats.cancelled:
            logger.info(
                "output_truncated context_type=%s size_bytes=%d chunks=%d",
                options.context_type,
                buffer.size_bytes,
                stats.chunks,
            )

        text = raw_text
        if options.format is not None:
            text = self.render(raw_text, options.format)
        return OutputResult(
            text=text,
            raw_text=raw_text,
            truncated=buffer.truncated,
            size_bytes=buffer.size_bytes,
            chunks=stats.chunks,
            cancelled=stats.cancelled,
            format=str(getattr(options.format, "value", options.format))
            if options.format is not None
            else None,
        )

    def render(self, raw_text: str, output_format: OutputFormat | str) -> str:
        try:
            data = json.loads(raw_text)
        except ValueError:
            logger.debug("output_format_fallback format=%s", output_format)
            return self._formatter.to(output_format, raw_text, as_value=True)
        return self._formatter.to(output_format, data)
