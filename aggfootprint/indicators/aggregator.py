"""Multi-instrument footprint aggregation.

For one bar of the primary series, every ready source series is aligned to the
bar's start time, its price levels are optionally rescaled onto the reference
instrument's bar range, quantized to ``tick_size`` and merged with
``PriceLevelStat.__add__``.

Two models:

* ``direct``: prices are merged as-is (same quote currency, similar price).
* ``normalized``: each source bar's ``[low, high]`` is mapped linearly onto the
  reference bar's ``[low, high]`` so instruments with different price scales
  land on one ladder. A flat bar (``high == low``) on either side keeps the
  original price.
"""

from __future__ import annotations

from typing import Sequence

from aggfootprint.config import AggregationModel
from aggfootprint.data.registry import SourceHandle, SourceRegistry
from aggfootprint.data.types import AggregatedBar, Bar, PriceLevelStat
from aggfootprint.utils import get_logger, round_to_tick

from .alignment import TimeAligner


def normalize_price(price: float, source_bar: Bar, reference_bar: Bar) -> float:
    """Map ``price`` from the source bar's range onto the reference bar's range."""
    if not source_bar.has_range or not reference_bar.has_range:
        return price
    position = (price - source_bar.low) / (source_bar.high - source_bar.low)
    position = max(0.0, min(1.0, position))
    return reference_bar.low + position * (reference_bar.high - reference_bar.low)


class VolumeAggregator:
    """Merge engine for the registered source series."""

    def __init__(self, registry: SourceRegistry):
        self.registry = registry
        self.aligner = TimeAligner()
        self.logger = get_logger("indicators.aggregator")

    def reference_time(self, reference_index: int) -> int | None:
        """Start time of the primary series' bar at ``reference_index``."""
        primary = self.registry.primary
        if primary is None:
            return None
        try:
            bars = primary.bars
        except Exception as e:
            self.logger.warning("source_align_failed", symbol=primary.instrument_id, error=str(e))
            return None
        if reference_index < 0 or reference_index >= len(bars):
            return None
        return bars[reference_index].time_start

    def aggregate(
        self,
        reference_index: int,
        model: AggregationModel,
        tick_size: float,
        reference_series_id: str | None = None,
        *,
        sources: Sequence[SourceHandle] | None = None,
    ) -> AggregatedBar:
        """Build the merged price grid for one primary-series bar.

        Args:
            reference_index: Begin-based bar index in the primary series
            model: Aggregation model
            tick_size: Price quantum, must be > 0
            reference_series_id: Instrument whose bar range anchors the normalized model
            sources: Optional snapshot to aggregate instead of the registry's

        Returns:
            A new AggregatedBar; its grid is empty when nothing could be aligned.
        """
        if tick_size is None or tick_size <= 0:
            raise ValueError("tick_size must be > 0")
        model = AggregationModel(model)
        ref_id = reference_series_id.upper() if reference_series_id else None

        t = self.reference_time(reference_index)
        if t is None:
            return AggregatedBar(
                reference_time=None,
                model=model,
                reference_series_id=ref_id,
                reference_index=reference_index,
            )

        if sources is None:
            sources = self.registry.snapshot()
        # Fixed visiting order keeps float sums identical across runs.
        ordered = sorted(sources, key=lambda s: s.instrument_id)

        reference_bar: Bar | None = None
        if model is AggregationModel.NORMALIZED and ref_id is not None:
            ref_source = next((s for s in ordered if s.instrument_id == ref_id), None)
            if ref_source is not None:
                reference_bar = self._aligned(ref_source, t)

        grid: dict[float, PriceLevelStat] = {}
        merged_sources = 0
        for source in ordered:
            bar = self._aligned(source, t)
            if bar is None or not bar.levels:
                continue
            merged_sources += 1
            for price, stat in bar.levels.items():
                target = price
                if reference_bar is not None:
                    target = normalize_price(price, bar, reference_bar)
                target = round_to_tick(target, tick_size)
                grid[target] = grid.get(target, PriceLevelStat.zero()) + stat

        self.logger.debug(
            "bar_aggregated",
            reference_index=reference_index,
            model=model.value,
            sources=merged_sources,
            levels=len(grid),
        )
        return AggregatedBar(
            reference_time=t,
            model=model,
            reference_series_id=ref_id,
            reference_index=reference_index,
            levels=grid,
        )

    def _aligned(self, source: SourceHandle, t: int) -> Bar | None:
        try:
            return self.aligner.aligned_bar(source, t)
        except Exception as e:
            self.logger.warning("source_align_failed", symbol=source.instrument_id, error=str(e))
            return None
