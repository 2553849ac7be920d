from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from crucible_router.routing.selector import RoutingDecision
from crucible_router.runtime.bounded_maps import BoundedCounterMap, BoundedDequeMap

DEFAULT_RING_CAPACITY = 1000
DEFAULT_RING_RETAIN = 500


@dataclass(frozen=True, slots=True)
class PerformanceRecord:
    decision: RoutingDecision
    timestamp: float


@dataclass(slots=True)
class BackendPerformanceSnapshot:
    backend_id: str
    successes: int
    failures: int
    rolling_latency_ms: float | None

    @property
    def success_rate(self) -> float | None:
        total = self.successes + self.failures
        return (float(self.successes) / float(total)) if total > 0 else None


@dataclass(slots=True)
class PerformanceSnapshot:
    records: int
    average_latency_ms: float
    backends: dict[str, BackendPerformanceSnapshot]


class PerformanceTracker:
    def __init__(
        self,
        *,
        capacity: int = DEFAULT_RING_CAPACITY,
        retain: int = DEFAULT_RING_RETAIN,
        latency_window_size: int = 50,
        max_backends: int = 256,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._capacity = max(1, int(capacity))
        self._retain = max(1, min(int(retain), self._capacity))
        self._records: list[PerformanceRecord] = []
        self._clock = clock
        self._latency_windows: BoundedDequeMap[str, float] = BoundedDequeMap(
            max_keys=max_backends,
            window_size=latency_window_size,
        )
        self._successes: BoundedCounterMap[str] = BoundedCounterMap(max_keys=max_backends)
        self._failures: BoundedCounterMap[str] = BoundedCounterMap(max_keys=max_backends)

    def record_decision(self, decision: RoutingDecision) -> PerformanceRecord:
        record = PerformanceRecord(decision=decision, timestamp=self._clock())
        self._records.append(record)
        if len(self._records) > self._capacity:
            # Compact by age: only the newest ``retain`` records survive.
            del self._records[: len(self._records) - self._retain]
        return record

    def records(self) -> list[PerformanceRecord]:
        return list(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def get_average_latency(self) -> float:
        latencies = [
            record.decision.estimated_latency
            for record in self._records
            if record.decision.estimated_latency is not None
        ]
        if not latencies:
            return 0.0
        return sum(latencies) / len(latencies)

    def record_outcome(self, backend_id: str, *, latency_ms: float, success: bool) -> None:
        if success:
            self._successes.increment(backend_id)
            self._latency_windows.append(backend_id, max(0.0, float(latency_ms)))
        else:
            self._failures.increment(backend_id)

    def estimate_latency(self, backend_id: str) -> float | None:
        window = self._latency_windows.window(backend_id)
        if not window:
            return None
        return sum(window) / len(window)

    def snapshot(self) -> PerformanceSnapshot:
        backend_ids = [
            *self._latency_windows.keys(),
            *self._successes.to_dict(),
            *self._failures.to_dict(),
        ]
        backends: dict[str, BackendPerformanceSnapshot] = {}
        for backend_id in backend_ids:
            if backend_id in backends:
                continue
            backends[backend_id] = BackendPerformanceSnapshot(
                backend_id=backend_id,
                successes=self._successes.get(backend_id),
                failures=self._failures.get(backend_id),
                rolling_latency_ms=self.estimate_latency(backend_id),
            )
        return PerformanceSnapshot(
            records=len(self._records),
            average_latency_ms=self.get_average_latency(),
            backends=backends,
        )
