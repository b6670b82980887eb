"""Series, registry and cache layer."""

from .cache import AggregationKey, ResultCache, TTLCache, make_aggregation_key
from .registry import SourceHandle, SourceRegistry
from .series import (
    BarSeries,
    ReadinessFlag,
    ReadinessHandle,
    ReadinessState,
    SeriesProvider,
    SourceSeries,
    StaticSeriesProvider,
    Subscription,
)
from .types import AggregatedBar, Bar, PriceLevelStat

__all__ = [
    "AggregatedBar",
    "AggregationKey",
    "Bar",
    "BarSeries",
    "PriceLevelStat",
    "ReadinessFlag",
    "ReadinessHandle",
    "ReadinessState",
    "ResultCache",
    "SeriesProvider",
    "SourceHandle",
    "SourceRegistry",
    "SourceSeries",
    "StaticSeriesProvider",
    "Subscription",
    "TTLCache",
    "make_aggregation_key",
]
