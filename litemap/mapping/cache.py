"""
Thread-safe LRU cache shared by the SQL compiler and the materializer.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Generic, Hashable, Optional, TypeVar

from litemap.config import get_settings

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LruCache(Generic[K, V]):
    """
    Bounded mapping that evicts the least recently used entry.

    The bound defaults to ``CACHE_MAX_ENTRIES`` and is read on each insert so
    that settings overrides applied after import still take effect.
    """

    def __init__(self, max_entries: Optional[int] = None) -> None:
        self._max_entries = max_entries
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def max_entries(self) -> int:
        if self._max_entries is None:
            return get_settings().cache_max_entries
        return self._max_entries

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            try:
                self._data.move_to_end(key)
            except KeyError:
                return None
            return self._data[key]

    def put(self, key: K, value: V) -> None:
        limit = max(self.max_entries, 0)
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > limit:
                self._data.popitem(last=False)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


__all__ = ["LruCache"]
