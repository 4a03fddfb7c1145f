"""Size-bounded, expiring cache for external metric results."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Hashable, Optional

from .apitypes import ExternalMetricInfo, ExternalMetricValueList

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheKey:
    """Key of one external metric request."""

    namespace: str
    metric_selector: str
    info: ExternalMetricInfo


class LRUExpireCache:
    """A least-recently-used cache whose entries also expire after a time to live."""

    def __init__(self, max_size: int, clock: Optional[Clock] = None):
        if max_size <= 0:
            raise ValueError("max_size must be greater than 0")
        self.max_size = max_size
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[Hashable, tuple[Any, float]]" = OrderedDict()

    def get(self, key: Hashable) -> Optional[Any]:
        """Return the live value for ``key``, or None when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._entries[key]
            return None
        self._entries.move_to_end(key)
        return value

    def add(self, key: Hashable, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds, evicting the least recently used entry if full."""
        self._entries[key] = (value, self._clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def remove(self, key: Hashable) -> None:
        """Drop ``key`` if present."""
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries


class ExternalMetricsCache:
    """Caches external metric value lists per request key."""

    def __init__(self, size: int, ttl: timedelta, clock: Optional[Clock] = None):
        self.ttl = ttl
        self.store = LRUExpireCache(size, clock)

    def get(self, key: CacheKey) -> Optional[ExternalMetricValueList]:
        """Return the cached list for ``key``, or None on a miss."""
        value = self.store.get(key)
        if value is None:
            return None
        if not isinstance(value, ExternalMetricValueList):
            self.store.remove(key)
            return None
        return value

    def add(self, key: CacheKey, value: ExternalMetricValueList) -> None:
        """Cache ``value`` under ``key`` for the configured time to live."""
        self.store.add(key, value, self.ttl.total_seconds())