"""Time alignment of independent bar series."""

from __future__ import annotations

import bisect

from aggfootprint.data.registry import SourceHandle
from aggfootprint.data.types import Bar


def _bar_time(bar: Bar) -> int:
    return bar.time_start


class TimeAligner:
    """Nearest-at-or-before lookup of a timestamp in a source series."""

    @staticmethod
    def align(source: SourceHandle, reference_time: int) -> int | None:
        """Index of the last bar starting at or before ``reference_time``.

        ``None`` means the source has no data for that moment: it is not ready,
        it is empty, or every bar starts after ``reference_time``.
        """
        if not source.is_ready:
            return None
        bars = source.bars
        if not bars:
            return None
        idx = bisect.bisect_right(bars, reference_time, key=_bar_time) - 1
        if idx < 0 or idx >= len(bars):
            return None
        return idx

    @classmethod
    def aligned_bar(cls, source: SourceHandle, reference_time: int) -> Bar | None:
        idx = cls.align(source, reference_time)
        if idx is None:
            return None
        return source.bars[idx]
