"""Footprint aggregation and order-flow indicators."""

from .aggregator import VolumeAggregator, normalize_price
from .alignment import TimeAligner
from .color_scale import QuantileColorScale
from .delta import BarStats, CVDState, CVDTracker
from .profile_engine import ValueArea, ValueAreaCalculator
from .vwap import VWAPEngine, VWAPSnapshot, VWAPState, window_vwap

__all__ = [
    "BarStats",
    "CVDState",
    "CVDTracker",
    "QuantileColorScale",
    "TimeAligner",
    "ValueArea",
    "ValueAreaCalculator",
    "VolumeAggregator",
    "VWAPEngine",
    "VWAPSnapshot",
    "VWAPState",
    "normalize_price",
    "window_vwap",
]
