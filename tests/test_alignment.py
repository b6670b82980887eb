"""Tests for nearest-at-or-before time alignment."""

from aggfootprint.data import BarSeries, ReadinessFlag, SourceHandle
from aggfootprint.indicators import TimeAligner


def _handle(bars, ready=True):
    series = BarSeries("ETHUSDT", bars)
    return SourceHandle("ETHUSDT", series, ReadinessFlag(ready=ready))


def test_exact_and_between_matches(bar_factory):
    source = _handle([bar_factory(t, {100.0: (1.0, 1.0)}) for t in (0, 60_000, 120_000)])
    assert TimeAligner.align(source, 60_000) == 1
    assert TimeAligner.align(source, 119_999) == 1
    assert TimeAligner.align(source, 10_000_000) == 2


def test_before_first_bar_is_unaligned(bar_factory):
    source = _handle([bar_factory(60_000, {100.0: (1.0, 1.0)})])
    assert TimeAligner.align(source, 59_999) is None


def test_empty_or_unready_series(bar_factory):
    assert TimeAligner.align(_handle([]), 0) is None
    unready = _handle([bar_factory(0, {100.0: (1.0, 1.0)})], ready=False)
    assert TimeAligner.align(unready, 0) is None


def test_aligned_bar(bar_factory):
    bars = [bar_factory(t, {100.0 + t / 60_000: (1.0, 1.0)}) for t in (0, 60_000)]
    source = _handle(bars)
    assert TimeAligner.aligned_bar(source, 90_000) is bars[1]
    assert TimeAligner.aligned_bar(source, -1) is None
