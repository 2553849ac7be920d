from __future__ import annotations

import codecs
from dataclasses import dataclass, field

from crucible_router.streaming.processor import StreamChunk
from crucible_router.streaming.truncation import TruncationManager

DEFAULT_MAX_BUFFER_BYTES = 1024 * 1024


@dataclass(slots=True)
class AssembledBuffer:
    parts: list[str] = field(default_factory=list)
    size_bytes: int = 0
    truncated: bool = False

    def text(self) -> str:
        return "".join(self.parts)


def clip_to_bytes(text: str, limit: int) -> tuple[str, bool]:
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text, False
    # Cutting mid-character leaves a partial sequence; "ignore" drops it.
    return encoded[: max(0, limit)].decode("utf-8", errors="ignore"), True


class ResponseAssembler:
    def __init__(
        self,
        truncation: TruncationManager,
        *,
        max_buffer: int = DEFAULT_MAX_BUFFER_BYTES,
    ) -> None:
        self._truncation = truncation
        self._max_buffer = max(0, int(max_buffer))
        self._buffer = AssembledBuffer()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def buffer(self) -> AssembledBuffer:
        return self._buffer

    @property
    def closed(self) -> bool:
        return self._buffer.truncated or self._buffer.size_bytes >= self._max_buffer

    def add_chunk(self, chunk: StreamChunk) -> bool:
        if self.closed:
            return False
        if isinstance(chunk, bytes):
            return self._accept(self._decoder.decode(chunk))
        return self._accept(chunk)

    def finalize(self) -> None:
        pending = self._decoder.decode(b"", final=True)
        if pending and not self.closed:
            self._accept(pending)

    def get_response(self) -> str:
        return self._buffer.text()

    def _accept(self, text: str) -> bool:
        result = self._truncation.append(text)
        remaining = self._max_buffer - self._buffer.size_bytes
        accepted, clipped = clip_to_bytes(result.text, remaining)
        if accepted:
            self._buffer.parts.append(accepted)
            self._buffer.size_bytes += len(accepted.encode("utf-8"))
        below_ceiling = self._buffer.size_bytes < self._max_buffer
        if result.done or clipped or not below_ceiling:
            self._buffer.truncated = True
        return not result.done and below_ceiling
