"""Shared utilities."""

from .helpers import (
    get_day_start_ms,
    get_period_start_ms,
    get_week_start_ms,
    ms_to_datetime,
    round_to_tick,
    timestamp_ms,
)
from .logging import get_logger, setup_logging

__all__ = [
    "get_logger",
    "setup_logging",
    "timestamp_ms",
    "ms_to_datetime",
    "get_day_start_ms",
    "get_week_start_ms",
    "get_period_start_ms",
    "round_to_tick",
]
