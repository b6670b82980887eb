"""Data types for footprint bars and merged price-level grids."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from aggfootprint.config import AggregationModel


@dataclass(frozen=True)
class PriceLevelStat:
    """Buy/sell volume, trade count and delta traded at one price.

    ``+`` is the merge operator: field-wise sum, commutative and associative.
    ``delta`` defaults to ``buy_volume - sell_volume`` when not supplied.
    """

    buy_volume: float = 0.0
    sell_volume: float = 0.0
    trade_count: int = 0
    delta: float | None = None

    def __post_init__(self) -> None:
        if self.buy_volume < 0 or self.sell_volume < 0:
            raise ValueError(
                f"negative volume (buy={self.buy_volume}, sell={self.sell_volume})"
            )
        if self.trade_count < 0:
            raise ValueError(f"negative trade count: {self.trade_count}")
        if self.delta is None:
            object.__setattr__(self, "delta", float(self.buy_volume) - float(self.sell_volume))

    @classmethod
    def zero(cls) -> "PriceLevelStat":
        return cls(0.0, 0.0, 0, 0.0)

    def __add__(self, other: "PriceLevelStat") -> "PriceLevelStat":
        if not isinstance(other, PriceLevelStat):
            return NotImplemented
        return PriceLevelStat(
            buy_volume=self.buy_volume + other.buy_volume,
            sell_volume=self.sell_volume + other.sell_volume,
            trade_count=self.trade_count + other.trade_count,
            delta=self.delta + other.delta,
        )

    @property
    def total_volume(self) -> float:
        return self.buy_volume + self.sell_volume


def _freeze_levels(levels: Mapping[float, PriceLevelStat] | None) -> Mapping[float, PriceLevelStat]:
    items = sorted((levels or {}).items())
    return MappingProxyType(dict(items))


@dataclass(frozen=True)
class Bar:
    """One OHLC bar with its per-price volume breakdown."""

    time_start: int
    open: float
    high: float
    low: float
    close: float
    levels: Mapping[float, PriceLevelStat] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", _freeze_levels(self.levels))

    @property
    def buy_volume(self) -> float:
        return float(sum(s.buy_volume for s in self.levels.values()))

    @property
    def sell_volume(self) -> float:
        return float(sum(s.sell_volume for s in self.levels.values()))

    @property
    def volume(self) -> float:
        return self.buy_volume + self.sell_volume

    @property
    def delta(self) -> float:
        return self.buy_volume - self.sell_volume

    @property
    def trade_count(self) -> int:
        return sum(s.trade_count for s in self.levels.values())

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0

    @property
    def has_range(self) -> bool:
        return self.high > self.low


@dataclass(frozen=True)
class AggregatedBar:
    """Merged price grid for one reference bar.

    Built fresh by every aggregation call; the level map is read-only and
    iterates in ascending price order.
    """

    reference_time: int | None
    model: AggregationModel
    reference_series_id: str | None = None
    reference_index: int | None = None
    levels: Mapping[float, PriceLevelStat] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "levels", _freeze_levels(self.levels))

    @property
    def is_empty(self) -> bool:
        return not self.levels

    @property
    def total_volume(self) -> float:
        return float(sum(s.total_volume for s in self.levels.values()))

    @property
    def total_buy_volume(self) -> float:
        return float(sum(s.buy_volume for s in self.levels.values()))

    @property
    def total_sell_volume(self) -> float:
        return float(sum(s.sell_volume for s in self.levels.values()))

    @property
    def total_delta(self) -> float:
        return float(sum(s.delta for s in self.levels.values()))

    @property
    def total_trades(self) -> int:
        return sum(s.trade_count for s in self.levels.values())

    def sorted_levels(self, descending: bool = False) -> list[tuple[float, PriceLevelStat]]:
        """Levels ordered by price (descending = top-to-bottom ladder order)."""
        return sorted(self.levels.items(), key=lambda kv: kv[0], reverse=descending)
