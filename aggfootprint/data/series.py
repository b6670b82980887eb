"""Source-series capabilities and in-memory implementations.

A *source series* is a time-ordered list of :class:`Bar` for one instrument,
owned by an external provider. Its per-price volume breakdown is computed
asynchronously; a :class:`ReadinessHandle` reports when it is safe to read and
lets the owner abort the computation.

Update notifications use explicit :class:`Subscription` handles so a listener
can always be removed again.
"""

from __future__ import annotations

import bisect
import threading
from enum import Enum
from typing import Callable, Protocol, Sequence, runtime_checkable

from .types import Bar

UpdateCallback = Callable[[str, Bar], None]


class Subscription:
    """Handle for one registered callback. ``close()`` is idempotent."""

    def __init__(self, unsubscribe: Callable[[], None]):
        self._unsubscribe: Callable[[], None] | None = unsubscribe

    @property
    def active(self) -> bool:
        return self._unsubscribe is not None

    def close(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()


@runtime_checkable
class SourceSeries(Protocol):
    instrument_id: str

    @property
    def bars(self) -> Sequence[Bar]: ...

    def subscribe(self, callback: UpdateCallback) -> Subscription: ...

    def close(self) -> None: ...


@runtime_checkable
class ReadinessHandle(Protocol):
    @property
    def is_ready(self) -> bool: ...

    def abort(self) -> None: ...


class SeriesProvider(Protocol):
    def load(self, instrument_id: str, lookback_days: int) -> SourceSeries: ...

    def compute_volume(self, series: SourceSeries) -> ReadinessHandle: ...


class ReadinessState(str, Enum):
    PENDING = "pending"
    FINISHED = "finished"
    ABORTED = "aborted"


class ReadinessFlag:
    """Thread-safe readiness flag for an in-flight volume computation."""

    def __init__(self, ready: bool = False):
        self._lock = threading.Lock()
        self._state = ReadinessState.FINISHED if ready else ReadinessState.PENDING

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is ReadinessState.FINISHED

    def finish(self) -> None:
        with self._lock:
            if self._state is ReadinessState.PENDING:
                self._state = ReadinessState.FINISHED

    def abort(self) -> None:
        with self._lock:
            if self._state is ReadinessState.PENDING:
                self._state = ReadinessState.ABORTED


class BarSeries:
    """List-backed :class:`SourceSeries` kept sorted by ``time_start``."""

    def __init__(self, instrument_id: str, bars: Sequence[Bar] | None = None):
        self.instrument_id = instrument_id.upper()
        self._lock = threading.Lock()
        self._bars: list[Bar] = sorted(bars or [], key=lambda b: b.time_start)
        self._times: list[int] = [b.time_start for b in self._bars]
        self._callbacks: dict[int, UpdateCallback] = {}
        self._next_token = 0
        self.closed = False

    @property
    def bars(self) -> Sequence[Bar]:
        return tuple(self._bars)

    def __len__(self) -> int:
        return len(self._bars)

    def upsert(self, bar: Bar) -> None:
        """Insert ``bar`` in time order, replacing a bar with the same start."""
        with self._lock:
            idx = bisect.bisect_left(self._times, bar.time_start)
            if idx < len(self._times) and self._times[idx] == bar.time_start:
                self._bars[idx] = bar
            else:
                self._bars.insert(idx, bar)
                self._times.insert(idx, bar.time_start)
            callbacks = list(self._callbacks.values())
        for cb in callbacks:
            cb(self.instrument_id, bar)

    def subscribe(self, callback: UpdateCallback) -> Subscription:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._callbacks[token] = callback

        def _remove() -> None:
            with self._lock:
                self._callbacks.pop(token, None)

        return Subscription(_remove)

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def close(self) -> None:
        with self._lock:
            self._callbacks.clear()
            self.closed = True


class StaticSeriesProvider:
    """Provider over pre-built :class:`BarSeries`.

    Volume computation finishes immediately unless ``ready=False`` was given for
    the instrument, in which case the returned flag stays pending until
    :meth:`finish` is called.
    """

    def __init__(self):
        self._series: dict[str, BarSeries] = {}
        self._ready: dict[str, bool] = {}
        self.flags: dict[str, ReadinessFlag] = {}

    def register(self, series: BarSeries, ready: bool = True) -> BarSeries:
        self._series[series.instrument_id] = series
        self._ready[series.instrument_id] = ready
        return series

    def load(self, instrument_id: str, lookback_days: int) -> BarSeries:
        try:
            return self._series[instrument_id.upper()]
        except KeyError:
            raise LookupError(f"unknown instrument: {instrument_id}") from None

    def compute_volume(self, series: SourceSeries) -> ReadinessFlag:
        flag = ReadinessFlag(ready=self._ready.get(series.instrument_id, True))
        self.flags[series.instrument_id] = flag
        return flag

    def finish(self, instrument_id: str) -> None:
        self.flags[instrument_id.upper()].finish()
