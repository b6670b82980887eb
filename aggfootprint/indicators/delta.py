"""Cumulative volume delta with daily or weekly reset."""

from __future__ import annotations

from dataclasses import dataclass

from aggfootprint.config import ResetPeriod
from aggfootprint.data.types import Bar
from aggfootprint.utils import get_logger
from aggfootprint.utils.helpers import get_period_start_ms


@dataclass
class CVDState:
    cumulative_delta: float = 0.0
    last_reset_boundary: int | None = None


@dataclass(frozen=True)
class BarStats:
    """Per-bar buy/sell statistics with the running CVD."""

    time: int
    volume: float
    delta: float
    cvd: float
    buy: float
    sell: float


class CVDTracker:
    """Running sum of (buy - sell) volume of the latest reference bar.

    On entering a new period the CVD restarts at that bar's own delta.
    """

    def __init__(self, reset_period: ResetPeriod = ResetPeriod.DAILY):
        self.reset_period = ResetPeriod(reset_period)
        self.state = CVDState()
        self.logger = get_logger("indicators.delta")

    @property
    def cumulative_delta(self) -> float:
        return self.state.cumulative_delta

    def update(self, bar: Bar) -> BarStats:
        buy = bar.buy_volume
        sell = bar.sell_volume
        delta = buy - sell
        boundary = get_period_start_ms(bar.time_start, self.reset_period)

        state = self.state
        if state.last_reset_boundary is None or boundary > state.last_reset_boundary:
            if state.last_reset_boundary is not None:
                self.logger.info(
                    "cvd_reset",
                    period=self.reset_period.value,
                    boundary=boundary,
                    previous_cvd=state.cumulative_delta,
                )
            state.cumulative_delta = delta
            state.last_reset_boundary = boundary
        else:
            state.cumulative_delta += delta

        return BarStats(
            time=bar.time_start,
            volume=buy + sell,
            delta=delta,
            cvd=state.cumulative_delta,
            buy=buy,
            sell=sell,
        )

    def reset(self) -> None:
        self.state = CVDState()
