"""
Process-wide cache of resolved route costs.

Shared by every concurrent lookup of every request, so all access goes
through one lock. Entries are evicted least-recently-used once `max_size`
is reached and expire `ttl_seconds` after they were written.
"""

import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional


class RouteCache:
    def __init__(self, max_size: int = 2048, ttl_seconds: Optional[float] = 900.0, clock=time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: 'OrderedDict[Hashable, tuple]' = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            value, created_at = entry
            if self.ttl_seconds is not None and self._clock() - created_at >= self.ttl_seconds:
                del self._entries[key]
                self._misses += 1
                return None
            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
                self._evictions += 1

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                'size': len(self._entries),
                'max_size': self.max_size,
                'ttl_seconds': self.ttl_seconds,
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
                'hit_rate': round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }


class NullRouteCache:
    """Cache that never stores anything"""

    def get(self, key: Hashable) -> Optional[Any]:
        return None

    def set(self, key: Hashable, value: Any) -> None:
        return None

    def clear(self) -> None:
        return None

    def __len__(self) -> int:
        return 0

    def stats(self) -> Dict:
        return {'size': 0, 'hits': 0, 'misses': 0, 'evictions': 0, 'hit_rate': 0.0}
