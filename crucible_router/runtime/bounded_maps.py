from __future__ import annotations

from collections import OrderedDict, deque
from collections.abc import ItemsView
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")
T = TypeVar("T")


class _BoundedMap(Generic[K, V]):
    """Insertion-ordered map that forgets its oldest key past ``max_keys``."""

    def __init__(self, max_keys: int):
        self._max_keys = max(1, int(max_keys))
        self._data: OrderedDict[K, V] = OrderedDict()

    def get(self, key: K, default: V | None = None) -> V | None:
        return self._data.get(key, default)

    def set(self, key: K, value: V) -> None:
        is_new = key not in self._data
        self._data[key] = value
        if is_new and len(self._data) > self._max_keys:
            self._data.popitem(last=False)

    def items(self) -> ItemsView[K, V]:
        return self._data.items()


class BoundedCounterMap(Generic[K]):
    def __init__(self, max_keys: int):
        self._map: _BoundedMap[K, int] = _BoundedMap(max_keys=max_keys)

    def increment(self, key: K, amount: int = 1) -> int:
        next_value = int(self._map.get(key, 0) or 0) + int(amount)
        self._map.set(key, next_value)
        return next_value

    def get(self, key: K) -> int:
        return int(self._map.get(key, 0) or 0)

    def to_dict(self) -> dict[K, int]:
        return dict(self._map.items())


class BoundedDequeMap(Generic[K, T]):
    """Per-key sliding windows; both the key count and window length are capped."""

    def __init__(self, *, max_keys: int, window_size: int):
        self._window_size = max(1, int(window_size))
        self._map: _BoundedMap[K, deque[T]] = _BoundedMap(max_keys=max_keys)

    def append(self, key: K, value: T) -> deque[T]:
        bucket = self._map.get(key)
        if bucket is None:
            bucket = deque(maxlen=self._window_size)
            self._map.set(key, bucket)
        bucket.append(value)
        return bucket

    def window(self, key: K) -> list[T]:
        bucket = self._map.get(key)
        return list(bucket) if bucket is not None else []

    def keys(self) -> list[K]:
        return [key for key, _ in self._map.items()]
