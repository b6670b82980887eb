"""Lock-guarded TTL caches.

Invariant: every read and write of the entry map happens inside ``self._lock``.
Expired entries are evicted opportunistically on write; there is no background
sweeper. Concurrent misses for the same key are not de-duplicated: both callers
compute and the later write wins, which is harmless because aggregation is
deterministic.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Iterable, TypeVar

from aggfootprint.config import AggregationModel
from aggfootprint.utils import get_logger

from .types import AggregatedBar

V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    key: Hashable
    value: V
    written_at: float


class TTLCache(Generic[V]):
    """Mapping with per-entry expiry and an optional entry cap.

    When ``max_entries`` is set and a write finds the cache over capacity,
    expired entries are evicted first; if that is not enough the oldest
    entries go.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "cache",
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[Hashable, CacheEntry[V]] = {}
        self.logger = get_logger("data.cache").bind(component=name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _fresh(self, entry: CacheEntry[V], now: float) -> bool:
        return (now - entry.written_at) < self.ttl_seconds

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._fresh(entry, self._clock()):
                return None
            return entry.value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = CacheEntry(key=key, value=value, written_at=now)
            self._evict_locked(now)

    def _evict_locked(self, now: float) -> None:
        if self.max_entries is not None and len(self._entries) <= self.max_entries:
            return
        expired = [k for k, e in self._entries.items() if not self._fresh(e, now)]
        for k in expired:
            del self._entries[k]

        overflow = 0
        if self.max_entries is not None and len(self._entries) > self.max_entries:
            oldest = sorted(self._entries.values(), key=lambda e: e.written_at)
            overflow = len(self._entries) - self.max_entries
            for e in oldest[:overflow]:
                del self._entries[e.key]

        if expired or overflow:
            self.logger.debug("cache_evicted", expired=len(expired), overflow=overflow)

    def pop(self, key: Hashable) -> V | None:
        with self._lock:
            entry = self._entries.pop(key, None)
        return entry.value if entry is not None else None

    def discard_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Remove every entry whose key matches ``predicate``."""
        with self._lock:
            keys = [k for k in self._entries if predicate(k)]
            for k in keys:
                del self._entries[k]
        return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@dataclass(frozen=True)
class AggregationKey:
    """Composite cache key; ``source_ids`` is always sorted."""

    reference_index: int
    model: AggregationModel
    tick_size: float
    source_ids: tuple[str, ...]
    reference_series_id: str | None


def make_aggregation_key(
    reference_index: int,
    model: AggregationModel,
    tick_size: float,
    source_ids: Iterable[str],
    reference_series_id: str | None,
) -> AggregationKey:
    return AggregationKey(
        reference_index=int(reference_index),
        model=AggregationModel(model),
        tick_size=float(tick_size),
        source_ids=tuple(sorted(source_ids)),
        reference_series_id=reference_series_id,
    )


class ResultCache:
    """TTL memoization of aggregation results (no entry cap)."""

    def __init__(self, ttl_seconds: float = 60.0, *, clock: Callable[[], float] = time.monotonic):
        self._cache: TTLCache[AggregatedBar] = TTLCache(ttl_seconds, clock=clock, name="result_cache")

    def __len__(self) -> int:
        return len(self._cache)

    def get_or_compute(self, key: AggregationKey, compute_fn: Callable[[], AggregatedBar]) -> AggregatedBar:
        hit = self._cache.get(key)
        if hit is not None:
            return hit
        value = compute_fn()
        self._cache.set(key, value)
        return value

    def purge_source(self, instrument_id: str, min_reference_index: int = 0) -> int:
        """Drop cached aggregations that include ``instrument_id``.

        Only keys with ``reference_index >= min_reference_index`` are dropped,
        so a change to a live bar leaves older bars cached.
        """
        return self._cache.discard_where(
            lambda k: isinstance(k, AggregationKey)
            and k.reference_index >= min_reference_index
            and (instrument_id in k.source_ids or k.reference_series_id == instrument_id)
        )

    def clear(self) -> None:
        self._cache.clear()


__all__ = [
    "AggregationKey",
    "CacheEntry",
    "ResultCache",
    "TTLCache",
    "make_aggregation_key",
]
