"""Open interest / funding / mark price status for derivatives instruments.

Status comes from an injected :class:`StatusProvider`. Results are cached for
``ttl_seconds`` (30 s by default) in a lock-guarded map capped at
``max_entries``; expired entries are evicted when a write finds the map full.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

import structlog

from aggfootprint.data.cache import TTLCache
from aggfootprint.utils import get_logger, timestamp_ms

DEFAULT_MARKERS = ("PERP", "FUTURES", "SWAP", "PERPETUAL", "USD-PERP", "USDT-PERP")


@dataclass(frozen=True)
class DerivativesStatus:
    instrument_id: str
    open_interest: float | None = None
    funding_rate: float | None = None
    mark_price: float | None = None
    index_price: float | None = None
    last_price: float | None = None
    timestamp: int = field(default_factory=timestamp_ms)


class StatusProvider(Protocol):
    async def fetch(self, instrument_id: str) -> DerivativesStatus | None: ...


def _mean(values: Sequence[float | None]) -> float:
    return sum(v or 0.0 for v in values) / len(values)


class DerivativesStatusService:
    """Cached access to derivatives status for the aggregated instruments."""

    def __init__(
        self,
        provider: StatusProvider,
        *,
        ttl_seconds: float = 30.0,
        max_entries: int = 1000,
        markers: Iterable[str] = DEFAULT_MARKERS,
        clock: Callable[[], float] = time.monotonic,
        logger: structlog.BoundLogger | None = None,
    ):
        self.provider = provider
        self.markers = tuple(m.upper() for m in markers)
        self._cache: TTLCache[DerivativesStatus] = TTLCache(
            ttl_seconds, max_entries=max_entries, clock=clock, name="status_cache"
        )
        self.logger = (logger or get_logger("services.derivatives_status")).bind(
            component="derivatives_status"
        )

    def is_derivatives(self, instrument_id: str | None) -> bool:
        if not instrument_id:
            return False
        name = instrument_id.upper()
        return any(marker in name for marker in self.markers)

    async def get_status(self, instrument_id: str) -> DerivativesStatus | None:
        """Cached status for one instrument; ``None`` if unavailable."""
        if not instrument_id:
            return None
        key = instrument_id.upper()

        hit = self._cache.get(key)
        if hit is not None:
            return hit

        if not self.is_derivatives(key):
            return None

        try:
            status = await self.provider.fetch(key)
        except Exception as e:
            self.logger.warning("status_fetch_failed", symbol=key, error=str(e))
            return None

        if status is not None:
            self._cache.set(key, status)
        return status

    async def get_aggregated_status(self, instrument_ids: Iterable[str]) -> DerivativesStatus | None:
        """Open interest summed, prices and funding averaged across instruments."""
        statuses: list[DerivativesStatus] = []
        for instrument_id in instrument_ids:
            status = await self.get_status(instrument_id)
            if status is not None:
                statuses.append(status)

        if not statuses:
            return None

        return DerivativesStatus(
            instrument_id=statuses[0].instrument_id,
            open_interest=sum(s.open_interest or 0.0 for s in statuses),
            funding_rate=_mean([s.funding_rate for s in statuses]),
            mark_price=_mean([s.mark_price for s in statuses]),
            index_price=_mean([s.index_price for s in statuses]),
            last_price=_mean([s.last_price for s in statuses]),
        )

    def clear_cache(self, instrument_id: str) -> None:
        if instrument_id:
            self._cache.pop(instrument_id.upper())

    def clear_all(self) -> None:
        self._cache.clear()

    @property
    def cached_count(self) -> int:
        return len(self._cache)
