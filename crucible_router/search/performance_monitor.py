from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Protocol


@dataclass(frozen=True, slots=True)
class TimerHandle:
    label: str
    started_at: float


@dataclass(slots=True)
class TimerStats:
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    @property
    def average_ms(self) -> float:
        return self.total_ms / self.count if self.count else 0.0


class Monitor(Protocol):
    def start_timer(self, label: str = ...) -> TimerHandle: ...

    def end_timer(self, handle: TimerHandle) -> float: ...


class PerformanceMonitor:
    def __init__(self, *, clock: Callable[[], float] = time.perf_counter) -> None:
        self._clock = clock
        self._stats: dict[str, TimerStats] = {}

    def start_timer(self, label: str = "search") -> TimerHandle:
        return TimerHandle(label=label, started_at=self._clock())

    def end_timer(self, handle: TimerHandle) -> float:
        elapsed_ms = max(0.0, (self._clock() - handle.started_at) * 1000.0)
        stats = self._stats.setdefault(handle.label, TimerStats())
        stats.count += 1
        stats.total_ms += elapsed_ms
        stats.max_ms = max(stats.max_ms, elapsed_ms)
        return elapsed_ms

    def snapshot(self) -> dict[str, TimerStats]:
        return {
            label: TimerStats(count=s.count, total_ms=s.total_ms, max_ms=s.max_ms)
            for label, s in self._stats.items()
        }
