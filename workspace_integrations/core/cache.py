"""
Small TTL + LRU cache for values that change relatively seldom,
such as device and workspace metadata or signing key sets.
"""

import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable


class TTLCache:
    """OrderedDict-backed LRU cache where entries also expire after ttl seconds."""

    def __init__(self, ttl: float, max_size: int = 500, clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._store: OrderedDict[str, tuple[Any, float]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        cached = self._store.get(key)
        if cached is None:
            return None
        value, ts = cached
        if self._clock() - ts >= self.ttl:
            del self._store[key]
            return None
        self._store.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (value, self._clock())
        self._store.move_to_end(key)
        if len(self._store) > self.max_size:
            self._store.popitem(last=False)

    async def fetch(self, key: str, loader: Callable[[], Awaitable[Any]]) -> Any:
        """Return the cached value for key, or await loader() and cache it."""
        value = self.get(key)
        if value is not None:
            return value
        value = await loader()
        self.set(key, value)
        return value

    def clear(self) -> None:
        self._store.clear()

    def __len__(self) -> int:
        return len(self._store)
