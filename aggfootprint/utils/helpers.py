"""Time and price helpers."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

MS_IN_DAY = 86_400_000
MS_IN_WEEK = 7 * MS_IN_DAY

# 1970-01-01 was a Thursday; the first Monday 00:00 UTC is 4 days later.
_EPOCH_MONDAY_MS = 4 * MS_IN_DAY


def timestamp_ms() -> int:
    """Current UTC time in milliseconds."""
    return int(time.time() * 1000)


def ms_to_datetime(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def get_day_start_ms(ms: int) -> int:
    """UTC midnight of the day containing ``ms``."""
    return (int(ms) // MS_IN_DAY) * MS_IN_DAY


def get_week_start_ms(ms: int) -> int:
    """Most recent UTC Monday 00:00 at or before ``ms``."""
    offset = int(ms) - _EPOCH_MONDAY_MS
    return (offset // MS_IN_WEEK) * MS_IN_WEEK + _EPOCH_MONDAY_MS


def get_period_start_ms(ms: int, period) -> int:
    """Start of the daily or weekly period containing ``ms``.

    ``period`` is a :class:`aggfootprint.config.ResetPeriod` or its string value.
    """
    value = getattr(period, "value", period)
    if value == "weekly":
        return get_week_start_ms(ms)
    if value == "daily":
        return get_day_start_ms(ms)
    raise ValueError(f"Unknown period: {period!r}")


def round_to_tick(price: float, tick_size: float) -> float:
    """Quantize ``price`` to the nearest multiple of ``tick_size``.

    Ties round half away from zero. The division is done in decimal on the
    shortest repr of both operands, so ``round_to_tick(100.05, 0.1)`` is 100.1
    even though ``100.05 / 0.1`` is slightly below 1000.5 in binary floating point.
    """
    if tick_size <= 0:
        raise ValueError("tick_size must be > 0")
    tick = Decimal(repr(float(tick_size)))
    steps = (Decimal(repr(float(price))) / tick).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return float(steps * tick)
