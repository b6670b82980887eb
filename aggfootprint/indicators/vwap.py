"""Session and anchored ("strike") VWAP."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

from aggfootprint.data.types import Bar
from aggfootprint.utils import get_logger
from aggfootprint.utils.helpers import get_day_start_ms


@dataclass
class VWAPState:
    cumulative_weighted_price: float = 0.0
    cumulative_volume: float = 0.0
    reset_boundary: int | None = None
    # Volume-weighted sum of squared typical price, for deviation bands.
    cumulative_weighted_sq: float = 0.0


@dataclass(frozen=True)
class VWAPSnapshot:
    vwap: float
    deviation1: float
    deviation2: float
    time: int


class VWAPEngine:
    """Session VWAP (running recurrence, UTC-day reset) and strike VWAP.

    The session recurrence assumes each bar observation is fed exactly once, in
    time order. Feeding the same bar twice counts its volume twice.
    """

    def __init__(self):
        self.state = VWAPState()
        self.strike_anchor: int | None = None
        self.logger = get_logger("indicators.vwap")

    # ------------------------------------------------------------------
    # Session VWAP
    # ------------------------------------------------------------------
    def update(self, bar: Bar) -> VWAPSnapshot | None:
        """Fold the latest bar into the session VWAP."""
        day_start = get_day_start_ms(bar.time_start)
        state = self.state
        if state.reset_boundary is None or day_start > state.reset_boundary:
            if state.reset_boundary is not None:
                self.logger.info(
                    "session_vwap_reset",
                    previous_day=state.reset_boundary,
                    day_start=day_start,
                    vwap=state.cumulative_weighted_price,
                )
            self.state = state = VWAPState(reset_boundary=day_start)

        volume = bar.volume
        new_volume = state.cumulative_volume + volume
        if new_volume > 0:
            tp = bar.typical_price
            state.cumulative_weighted_price = (
                state.cumulative_weighted_price * state.cumulative_volume + tp * volume
            ) / new_volume
            state.cumulative_weighted_sq += tp * tp * volume
            state.cumulative_volume = new_volume

        return self.snapshot(bar.time_start)

    @property
    def session_vwap(self) -> float | None:
        if self.state.cumulative_volume <= 0:
            return None
        return self.state.cumulative_weighted_price

    def snapshot(self, time: int) -> VWAPSnapshot | None:
        vwap = self.session_vwap
        if vwap is None:
            return None
        mean_sq = self.state.cumulative_weighted_sq / self.state.cumulative_volume
        sigma = math.sqrt(max(0.0, mean_sq - vwap * vwap))
        return VWAPSnapshot(vwap=vwap, deviation1=sigma, deviation2=2.0 * sigma, time=time)

    def reset(self) -> None:
        self.state = VWAPState()

    # ------------------------------------------------------------------
    # Strike VWAP
    # ------------------------------------------------------------------
    def set_strike_anchor(self, start_index: int | None) -> None:
        """Anchor the strike VWAP at ``start_index``; ``None`` disables it."""
        if start_index is not None and start_index < 0:
            raise ValueError("start_index must be >= 0")
        self.strike_anchor = start_index
        self.logger.info("strike_anchor_set", start_index=start_index)

    def strike_vwap(self, bars: Sequence[Bar], current_index: int | None = None) -> float | None:
        """Full-window VWAP over ``bars[anchor .. current_index]`` (inclusive)."""
        if self.strike_anchor is None or not bars:
            return None
        end = len(bars) - 1 if current_index is None else min(current_index, len(bars) - 1)
        if self.strike_anchor > end:
            return None
        return window_vwap(bars[self.strike_anchor : end + 1])


def window_vwap(bars: Sequence[Bar]) -> float | None:
    """Volume-weighted mean typical price of ``bars``; ``None`` if no volume."""
    weighted = 0.0
    volume = 0.0
    for bar in bars:
        v = bar.volume
        weighted += bar.typical_price * v
        volume += v
    if volume <= 0:
        return None
    return weighted / volume
