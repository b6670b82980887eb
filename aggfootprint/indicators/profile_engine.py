"""Period volume profile with point of control and value area.

The profile sums ``buy + sell`` volume per tick-quantized price over every
ready source bar that starts inside the active UTC day or week.

Value area expansion starts at the POC and, one level at a time, extends
toward whichever neighbouring level (above or below the current area) holds
more volume, preferring the upper side on ties, until the area holds
``value_area_pct`` of total volume. This one-step lookahead is a heuristic: it
does not guarantee the narrowest possible region.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import Iterable, Mapping

from aggfootprint.config import ResetPeriod
from aggfootprint.data.registry import SourceHandle
from aggfootprint.data.types import Bar
from aggfootprint.utils import get_logger, round_to_tick
from aggfootprint.utils.helpers import MS_IN_DAY, MS_IN_WEEK, get_period_start_ms


def _as_fraction(value_area_pct: float | None) -> float:
    """Normalize value_area_pct to a 0-1 fraction.

    Values above 1 are percentages; values at or below 1 are already fractions,
    so ``1`` means the whole profile, not 1%.
    """
    if value_area_pct is None:
        return 0.7
    pct = float(value_area_pct)
    return pct / 100.0 if pct > 1 else pct


def _bar_time(bar: Bar) -> int:
    return bar.time_start


@dataclass(frozen=True)
class ValueArea:
    period_start: int
    poc: float | None
    vah: float | None
    val: float | None
    total_volume: float
    price_levels: int


class ValueAreaCalculator:
    """Builds the period profile and derives POC / VAH / VAL."""

    def __init__(
        self,
        period: ResetPeriod = ResetPeriod.DAILY,
        tick_size: float = 0.1,
        value_area_pct: float = 70.0,
    ):
        if tick_size <= 0:
            raise ValueError("tick_size must be > 0")
        self.period = ResetPeriod(period)
        self.tick_size = float(tick_size)
        self.value_area_pct = value_area_pct
        self.last: ValueArea | None = None
        self.logger = get_logger("indicators.value_area")

    @staticmethod
    def _poc(levels: Mapping[float, float]) -> float | None:
        if not levels:
            return None
        max_vol = max(levels.values())
        return min(p for p, v in levels.items() if v == max_vol)

    @classmethod
    def compute(
        cls,
        levels: Mapping[float, float],
        value_area_pct: float = 70.0,
    ) -> tuple[float | None, float | None, float | None]:
        """Return (poc, vah, val) using outward expansion from the POC."""
        if not levels:
            return None, None, None

        total = float(sum(levels.values()))
        if total <= 0:
            return None, None, None

        prices = sorted(levels.keys())
        poc = cls._poc(levels)
        poc_idx = prices.index(poc)
        vah_idx = val_idx = poc_idx
        current = float(levels[poc])
        target = total * _as_fraction(value_area_pct)

        while current < target and (vah_idx + 1 < len(prices) or val_idx - 1 >= 0):
            up_vol = float(levels[prices[vah_idx + 1]]) if vah_idx + 1 < len(prices) else None
            down_vol = float(levels[prices[val_idx - 1]]) if val_idx - 1 >= 0 else None

            if down_vol is None or (up_vol is not None and up_vol >= down_vol):
                vah_idx += 1
                current += up_vol
            else:
                val_idx -= 1
                current += down_vol

        return poc, prices[vah_idx], prices[val_idx]

    def period_bounds(self, reference_time: int) -> tuple[int, int]:
        start = get_period_start_ms(reference_time, self.period)
        length = MS_IN_WEEK if self.period is ResetPeriod.WEEKLY else MS_IN_DAY
        return start, start + length

    def build_profile(self, sources: Iterable[SourceHandle], start_ms: int, end_ms: int) -> dict[float, float]:
        """Sum traded volume per quantized price for bars in ``[start_ms, end_ms)``."""
        profile: dict[float, float] = {}
        for source in sorted(sources, key=lambda s: s.instrument_id):
            try:
                if not source.is_ready:
                    continue
                bars = source.bars
            except Exception as e:
                self.logger.warning("source_profile_failed", symbol=source.instrument_id, error=str(e))
                continue
            i = bisect.bisect_left(bars, start_ms, key=_bar_time)
            while i < len(bars) and bars[i].time_start < end_ms:
                for price, stat in bars[i].levels.items():
                    volume = stat.total_volume
                    if volume <= 0:
                        continue
                    level = round_to_tick(price, self.tick_size)
                    profile[level] = profile.get(level, 0.0) + volume
                i += 1
        return profile

    def update(self, sources: Iterable[SourceHandle], reference_time: int) -> ValueArea:
        """Recompute the profile for the period containing ``reference_time``."""
        start_ms, end_ms = self.period_bounds(reference_time)
        profile = self.build_profile(sources, start_ms, end_ms)
        poc, vah, val = self.compute(profile, self.value_area_pct)

        if self.last is not None and self.last.period_start != start_ms:
            self.logger.info("value_area_period_rolled", period=self.period.value, period_start=start_ms)

        self.last = ValueArea(
            period_start=start_ms,
            poc=poc,
            vah=vah,
            val=val,
            total_volume=float(sum(profile.values())),
            price_levels=len(profile),
        )
        self.logger.debug("value_area_recomputed", poc=poc, vah=vah, val=val, levels=len(profile))
        return self.last


__all__ = ["ValueArea", "ValueAreaCalculator"]
