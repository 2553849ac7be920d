from __future__ import annotations

import json
import time
from pathlib import Path
from queue import Full, Queue
from threading import Lock, Thread
from typing import Any


def _encode(record: dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=True, separators=(",", ":"), default=str)


class JsonlAuditLogger:
    """Append routing events to a JSONL file from a background writer thread.

    Instances are callable so they can be passed directly as an ``audit_hook``.
    When the queue is full, events are dropped and a summary record is written
    on shutdown.
    """

    def __init__(self, path: str | Path, *, enabled: bool = True, max_queue_size: int = 4096):
        self.enabled = enabled
        self.path = Path(path)
        self._dropped = 0
        self._dropped_lock = Lock()
        self._queue: Queue[str | None] = Queue(maxsize=max(1, max_queue_size))
        self._writer: Thread | None = None
        if self.enabled:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._writer = Thread(
                target=self._write_loop, name="crucible-audit-writer", daemon=True
            )
            self._writer.start()

    def __call__(self, event: dict[str, Any]) -> None:
        self.log(event)

    @property
    def dropped_records(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def log(self, event: dict[str, Any]) -> None:
        if not self.enabled:
            return
        try:
            self._queue.put_nowait(_encode({"ts": round(time.time(), 3), **event}))
        except Full:
            with self._dropped_lock:
                self._dropped += 1

    def close(self, timeout: float = 2.0) -> None:
        if self._writer is None:
            return
        self._queue.put(None)
        self._writer.join(timeout=timeout)
        self._writer = None

    def _write_loop(self) -> None:
        with self.path.open("a", encoding="utf-8") as handle:
            while (line := self._queue.get()) is not None:
                handle.write(line + "\n")
                handle.flush()
            with self._dropped_lock:
                dropped, self._dropped = self._dropped, 0
            if dropped:
                handle.write(
                    _encode(
                        {
                            "ts": round(time.time(), 3),
                            "event": "audit_dropped_records",
                            "dropped_count": dropped,
                        }
                    )
                    + "\n"
                )
                handle.flush()
