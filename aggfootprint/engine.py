"""Engine orchestrating aggregation and indicators for one chart."""

from __future__ import annotations

import bisect
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from aggfootprint.config import AggregationModel, Settings, get_settings
from aggfootprint.data import (
    AggregatedBar,
    Bar,
    ResultCache,
    SeriesProvider,
    SourceRegistry,
    make_aggregation_key,
)
from aggfootprint.indicators import (
    BarStats,
    CVDTracker,
    QuantileColorScale,
    ValueArea,
    ValueAreaCalculator,
    VolumeAggregator,
    VWAPEngine,
    VWAPSnapshot,
)
from aggfootprint.services import DerivativesStatus, DerivativesStatusService, StatusProvider
from aggfootprint.utils import get_logger
from aggfootprint.utils.scheduler import PeriodicTask


def _bar_time(bar: Bar) -> int:
    return bar.time_start


@dataclass(frozen=True)
class CycleResult:
    time: int
    aggregated: AggregatedBar
    vwap: VWAPSnapshot | None
    strike_vwap: float | None
    bar_stats: BarStats | None
    value_area: ValueArea


class FootprintEngine:
    """Aggregated footprint for a primary series plus its order-flow studies.

    :meth:`update` runs one synchronous cycle. Session VWAP and CVD consume
    each completed primary bar exactly once, in time order; the developing
    (last) bar is only folded in once a newer bar has started.

    The derivatives status refresh runs separately as a :class:`PeriodicTask`
    between :meth:`start` and :meth:`stop`.
    """

    def __init__(
        self,
        provider: SeriesProvider,
        *,
        settings: Settings | None = None,
        status_provider: StatusProvider | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.logger = get_logger("engine")

        self.model = AggregationModel(self.settings.aggregation_model)
        self.tick_size = float(self.settings.tick_size)
        self.reference_series_id = self.settings.reference_symbol_id

        self.cache = ResultCache(self.settings.result_cache_ttl_sec, clock=clock)
        self.registry = SourceRegistry(
            provider,
            primary_id=self.settings.primary_symbol_id,
            lookback_days=self.settings.history_lookback_days,
            cache=self.cache,
        )
        self.aggregator = VolumeAggregator(self.registry)

        self.vwap = VWAPEngine()
        self.cvd = CVDTracker(self.settings.cvd_reset_period)
        self.value_area = ValueAreaCalculator(
            period=self.settings.poc_period,
            tick_size=self.tick_size,
            value_area_pct=self.settings.value_area_pct,
        )
        self.color_scale = QuantileColorScale(
            max_samples=self.settings.color_scale_max_samples,
            min_samples=self.settings.color_scale_min_samples,
            lower_quantile=self.settings.color_scale_lower_quantile,
            upper_quantile=self.settings.color_scale_upper_quantile,
            floor=self.settings.color_scale_floor,
        )

        self.status: DerivativesStatusService | None = None
        self._status_task: PeriodicTask | None = None
        self.latest_status: DerivativesStatus | None = None
        if status_provider is not None:
            self.status = DerivativesStatusService(
                status_provider,
                ttl_seconds=self.settings.status_cache_ttl_sec,
                max_entries=self.settings.status_cache_max_entries,
                markers=self.settings.derivatives_marker_list,
                clock=clock,
                logger=self.logger,
            )
            self._status_task = PeriodicTask(
                "derivatives_status_refresh",
                self.refresh_status,
                self.settings.status_update_interval_sec,
                logger=self.logger,
            )

        self._last_observed: int | None = None
        self._update_subscription = self.registry.add_update_listener(self._on_source_update)

    # ------------------------------------------------------------------
    # Sources
    # ------------------------------------------------------------------
    def initialize(self) -> list[str]:
        """Load the configured symbols; returns those that loaded."""
        loaded = [s for s in self.settings.symbol_list if self.registry.add(s)]
        primary = self.settings.primary_symbol_id
        if primary and primary not in loaded and self.registry.add(primary):
            loaded.append(primary)
        self.logger.info("engine_initialized", symbols=loaded, primary=primary)
        return loaded

    def add_source(self, instrument_id: str) -> bool:
        return self.registry.add(instrument_id)

    def remove_source(self, instrument_id: str) -> bool:
        if self.status is not None:
            self.status.clear_cache(instrument_id)
        return self.registry.remove(instrument_id)

    def apply_selection(self, instrument_ids: Iterable[str]) -> None:
        before = set(self.registry.ids)
        self.registry.apply_selection(instrument_ids)
        if self.status is not None:
            for symbol in before - set(self.registry.ids):
                self.status.clear_cache(symbol)

    def configure(
        self,
        *,
        model: AggregationModel | None = None,
        tick_size: float | None = None,
        reference_series_id: str | None = None,
    ) -> None:
        if tick_size is not None:
            if tick_size <= 0:
                raise ValueError("tick_size must be > 0")
            self.tick_size = float(tick_size)
            self.value_area.tick_size = self.tick_size
        if model is not None:
            self.model = AggregationModel(model)
        if reference_series_id is not None:
            self.reference_series_id = reference_series_id.upper()

    def _on_source_update(self, instrument_id: str, bar: Bar) -> None:
        # A changed source bar affects every primary bar aligned to it, i.e.
        # primary bars starting at or after it.
        primary = self.registry.primary
        first_index = 0
        if primary is not None:
            try:
                first_index = bisect.bisect_left(primary.bars, bar.time_start, key=_bar_time)
            except Exception as e:
                # Unknown position; drop every entry for this source.
                self.logger.warning("primary_read_failed", symbol=primary.instrument_id, error=str(e))
        self.cache.purge_source(instrument_id, min_reference_index=first_index)

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def aggregated_bar(self, reference_index: int) -> AggregatedBar:
        """Cached aggregation of primary bar ``reference_index``."""
        sources = self.registry.snapshot()
        key = make_aggregation_key(
            reference_index,
            self.model,
            self.tick_size,
            self.registry.ready_ids(sources),
            self.reference_series_id,
        )

        def _compute() -> AggregatedBar:
            result = self.aggregator.aggregate(
                reference_index,
                self.model,
                self.tick_size,
                self.reference_series_id,
                sources=sources,
            )
            self.color_scale.update(result.levels.values())
            return result

        return self.cache.get_or_compute(key, _compute)

    def set_strike_anchor(self, start_index: int | None) -> None:
        self.vwap.set_strike_anchor(start_index)

    def intensity(self, volume: float) -> float:
        return self.color_scale.intensity(volume)

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------
    def update(self) -> CycleResult | None:
        """Run one cycle against the primary series' latest bar."""
        primary = self.registry.primary
        if primary is None:
            return None
        try:
            bars = primary.bars
            primary_ready = primary.is_ready
        except Exception as e:
            self.logger.warning("primary_read_failed", symbol=primary.instrument_id, error=str(e))
            return None
        if not bars:
            return None
        latest = bars[-1]

        vwap_snapshot: VWAPSnapshot | None = None
        bar_stats: BarStats | None = None
        if primary_ready:
            start = 0
            if self._last_observed is not None:
                start = bisect.bisect_right(bars, self._last_observed, key=_bar_time)
            for bar in bars[start : len(bars) - 1]:
                vwap_snapshot = self.vwap.update(bar)
                bar_stats = self.cvd.update(bar)
                self._last_observed = bar.time_start
            if vwap_snapshot is None and self._last_observed is not None:
                vwap_snapshot = self.vwap.snapshot(self._last_observed)

        strike = self.vwap.strike_vwap(bars)
        value_area = self.value_area.update(self.registry.snapshot(), latest.time_start)
        aggregated = self.aggregated_bar(len(bars) - 1)

        return CycleResult(
            time=latest.time_start,
            aggregated=aggregated,
            vwap=vwap_snapshot,
            strike_vwap=strike,
            bar_stats=bar_stats,
            value_area=value_area,
        )

    # ------------------------------------------------------------------
    # Derivatives status
    # ------------------------------------------------------------------
    async def refresh_status(self) -> DerivativesStatus | None:
        if self.status is None:
            return None
        symbols = [s for s in self.registry.ids if self.status.is_derivatives(s)]
        if not symbols:
            return None
        aggregated = await self.status.get_aggregated_status(symbols)
        if aggregated is not None:
            self.latest_status = aggregated
            self.logger.info(
                "derivatives_status_updated",
                symbols=symbols,
                open_interest=aggregated.open_interest,
                funding_rate=aggregated.funding_rate,
            )
        return aggregated

    async def start(self) -> None:
        if self._status_task is not None:
            self._status_task.start()

    async def stop(self) -> None:
        if self._status_task is not None:
            await self._status_task.stop()

    def close(self) -> None:
        self._update_subscription.close()
        self.registry.close()
        if self.status is not None:
            self.status.clear_all()
        self.logger.info("engine_closed")
