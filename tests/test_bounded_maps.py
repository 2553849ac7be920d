from __future__ import annotations

from crucible_router.runtime.bounded_maps import (
    BoundedCounterMap,
    BoundedDequeMap,
)


def test_bounded_counter_map_evicts_oldest_key() -> None:
    counters = BoundedCounterMap[str](max_keys=2)
    counters.increment("a")
    counters.increment("b")
    counters.increment("c")

    assert counters.to_dict() == {"b": 1, "c": 1}
    assert counters.get("a") == 0


def test_bounded_counter_map_accumulates_existing_key() -> None:
    counters = BoundedCounterMap[str](max_keys=2)
    counters.increment("a")
    counters.increment("b")

    assert counters.increment("a", 3) == 4
    assert counters.to_dict() == {"a": 4, "b": 1}


def test_bounded_deque_map_bounds_key_and_window_size() -> None:
    windows = BoundedDequeMap[str, int](max_keys=2, window_size=2)
    windows.append("a", 1)
    windows.append("a", 2)
    windows.append("a", 3)
    assert windows.window("a") == [2, 3]

    windows.append("b", 10)
    windows.append("c", 20)

    assert windows.keys() == ["b", "c"]
    assert windows.window("a") == []
