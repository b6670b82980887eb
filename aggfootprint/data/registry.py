"""Registry of the source series taking part in the aggregation."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

from aggfootprint.utils import get_logger

from .cache import ResultCache
from .series import ReadinessHandle, SeriesProvider, SourceSeries, Subscription
from .types import Bar

UpdateListener = Callable[[str, Bar], None]


@dataclass(frozen=True)
class SourceHandle:
    """Non-owning view of one registered series plus its readiness."""

    instrument_id: str
    series: SourceSeries
    readiness: ReadinessHandle

    @property
    def is_ready(self) -> bool:
        return bool(self.readiness.is_ready)

    @property
    def bars(self) -> Sequence[Bar]:
        return self.series.bars


@dataclass
class _Entry:
    series: SourceSeries
    readiness: ReadinessHandle
    subscription: Subscription


class SourceRegistry:
    """Owns the instrument -> (series, readiness, subscription) maps.

    All map access goes through ``self._lock``. Computation works on the
    immutable :class:`SourceHandle` list returned by :meth:`snapshot`.
    """

    def __init__(
        self,
        provider: SeriesProvider,
        *,
        primary_id: str | None = None,
        lookback_days: int = 30,
        cache: ResultCache | None = None,
    ):
        self.provider = provider
        self.primary_id = primary_id.upper() if primary_id else None
        self.lookback_days = lookback_days
        self.cache = cache
        self.logger = get_logger("data.registry")
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}
        self._listeners: dict[int, UpdateListener] = {}
        self._next_listener = 0

    def __contains__(self, instrument_id: str) -> bool:
        with self._lock:
            return instrument_id.upper() in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def ids(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)

    def add(self, instrument_id: str) -> bool:
        """Load ``instrument_id`` and start its volume computation.

        Provider failures are logged and reported as ``False``; the instrument
        is then simply absent from aggregation.
        """
        symbol = instrument_id.upper()
        if symbol in self:
            return True

        readiness: ReadinessHandle | None = None
        try:
            series = self.provider.load(symbol, self.lookback_days)
            readiness = self.provider.compute_volume(series)
            bar_count = len(series.bars)
            subscription = series.subscribe(self._on_series_update)
        except Exception as e:
            self.logger.error("series_load_failed", symbol=symbol, error=str(e))
            if readiness is not None:
                readiness.abort()
            return False

        with self._lock:
            if symbol in self._entries:
                # Lost a race with a concurrent add; keep the first one.
                subscription.close()
                readiness.abort()
                return True
            self._entries[symbol] = _Entry(series=series, readiness=readiness, subscription=subscription)

        self.logger.info("series_added", symbol=symbol, bars=bar_count)
        return True

    def remove(self, instrument_id: str) -> bool:
        """Abort, unsubscribe, dispose and purge ``instrument_id``."""
        symbol = instrument_id.upper()
        with self._lock:
            entry = self._entries.pop(symbol, None)
            if entry is None:
                return False
            self._dispose(symbol, entry)
            purged = self.cache.purge_source(symbol) if self.cache is not None else 0

        self.logger.info("series_removed", symbol=symbol, purged_cache_entries=purged)
        return True

    def _dispose(self, symbol: str, entry: _Entry) -> None:
        entry.subscription.close()
        if not entry.readiness.is_ready:
            entry.readiness.abort()
            self.logger.info("readiness_aborted", symbol=symbol)
        try:
            entry.series.close()
        except Exception as e:
            self.logger.warning("series_close_failed", symbol=symbol, error=str(e))

    def apply_selection(self, instrument_ids: Iterable[str]) -> None:
        """Replace every non-primary series with ``instrument_ids``."""
        wanted = {s.upper() for s in instrument_ids}
        if self.primary_id:
            wanted.add(self.primary_id)
        for symbol in self.ids:
            if symbol not in wanted:
                self.remove(symbol)
        for symbol in sorted(wanted):
            self.add(symbol)

    def get(self, instrument_id: str | None) -> SourceHandle | None:
        if not instrument_id:
            return None
        symbol = instrument_id.upper()
        with self._lock:
            entry = self._entries.get(symbol)
            if entry is None:
                return None
            return SourceHandle(symbol, entry.series, entry.readiness)

    @property
    def primary(self) -> SourceHandle | None:
        return self.get(self.primary_id)

    def snapshot(self) -> list[SourceHandle]:
        """All registered sources, ordered by instrument id."""
        with self._lock:
            return [
                SourceHandle(symbol, entry.series, entry.readiness)
                for symbol, entry in sorted(self._entries.items())
            ]

    def is_ready(self, instrument_id: str) -> bool:
        handle = self.get(instrument_id)
        return handle is not None and handle.is_ready

    def ready_ids(self, sources: Iterable[SourceHandle] | None = None) -> list[str]:
        """Ids of ready sources; a source whose readiness cannot be read is skipped."""
        ready = []
        for handle in self.snapshot() if sources is None else sources:
            try:
                if handle.is_ready:
                    ready.append(handle.instrument_id)
            except Exception as e:
                self.logger.warning("source_readiness_failed", symbol=handle.instrument_id, error=str(e))
        return ready

    def add_update_listener(self, listener: UpdateListener) -> Subscription:
        """Call ``listener(instrument_id, bar)`` whenever a source bar changes."""
        with self._lock:
            token = self._next_listener
            self._next_listener += 1
            self._listeners[token] = listener

        def _remove() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return Subscription(_remove)

    def _on_series_update(self, instrument_id: str, bar: Bar) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(instrument_id, bar)
            except Exception as e:
                self.logger.warning("update_listener_failed", symbol=instrument_id, error=str(e))

    def close(self) -> None:
        with self._lock:
            entries, self._entries = self._entries, {}
            for symbol, entry in entries.items():
                self._dispose(symbol, entry)
            self._listeners.clear()
            if self.cache is not None:
                self.cache.clear()
        self.logger.info("registry_closed", disposed=len(entries))
