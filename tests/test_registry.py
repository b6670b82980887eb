"""Tests for the source registry lifecycle."""

from unittest.mock import MagicMock

import pytest

from aggfootprint.config import AggregationModel
from aggfootprint.data import ReadinessState, ResultCache, SourceHandle, SourceRegistry, make_aggregation_key


@pytest.fixture
def cache():
    return ResultCache(60.0)


@pytest.fixture
def registry(provider, cache):
    return SourceRegistry(provider, primary_id="BTCUSDT", cache=cache)


def test_add_loads_and_subscribes(series_factory, registry, bar_factory):
    series = series_factory("BTCUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})])

    assert registry.add("btcusdt") is True
    assert "BTCUSDT" in registry
    assert registry.ids == ["BTCUSDT"]
    assert registry.is_ready("BTCUSDT")
    assert series.subscriber_count == 1
    # Adding twice is a no-op.
    assert registry.add("BTCUSDT") is True
    assert series.subscriber_count == 1


def test_provider_failure_is_logged_and_absent(registry):
    assert registry.add("UNKNOWN") is False
    assert "UNKNOWN" not in registry
    assert registry.snapshot() == []


def test_compute_volume_failure_is_absent():
    provider = MagicMock()
    provider.compute_volume.side_effect = RuntimeError("volume analysis unavailable")
    registry = SourceRegistry(provider)

    assert registry.add("BTCUSDT") is False
    assert len(registry) == 0


def test_remove_aborts_pending_readiness_and_purges(series_factory, provider, registry, cache, bar_factory):
    series = series_factory("ETHUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})], ready=False)
    registry.add("ETHUSDT")
    key = make_aggregation_key(0, AggregationModel.DIRECT, 0.1, ["BTCUSDT", "ETHUSDT"], None)
    cache.get_or_compute(key, MagicMock())
    assert len(cache) == 1

    assert registry.remove("ETHUSDT") is True

    assert provider.flags["ETHUSDT"].state is ReadinessState.ABORTED
    assert series.subscriber_count == 0
    assert series.closed is True
    assert len(cache) == 0
    assert registry.remove("ETHUSDT") is False


def test_remove_finished_series_does_not_abort(series_factory, provider, registry, bar_factory):
    series_factory("ETHUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})])
    registry.add("ETHUSDT")
    registry.remove("ETHUSDT")
    assert provider.flags["ETHUSDT"].state is ReadinessState.FINISHED


def test_readiness_becomes_visible(series_factory, provider, registry, bar_factory):
    series_factory("ETHUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})], ready=False)
    registry.add("ETHUSDT")
    assert registry.ready_ids() == []

    provider.finish("ETHUSDT")
    assert registry.ready_ids() == ["ETHUSDT"]


def test_snapshot_is_sorted(series_factory, registry, bar_factory):
    for symbol in ("XRPUSDT", "BTCUSDT", "ETHUSDT"):
        series_factory(symbol, [bar_factory(0, {1.0: (1.0, 0.0)})])
        registry.add(symbol)
    assert [h.instrument_id for h in registry.snapshot()] == ["BTCUSDT", "ETHUSDT", "XRPUSDT"]
    assert registry.primary.instrument_id == "BTCUSDT"


def test_apply_selection_keeps_primary(series_factory, registry, bar_factory):
    for symbol in ("BTCUSDT", "ETHUSDT", "XRPUSDT"):
        series_factory(symbol, [bar_factory(0, {1.0: (1.0, 0.0)})])
    registry.add("BTCUSDT")
    registry.add("ETHUSDT")

    registry.apply_selection(["xrpusdt"])

    assert registry.ids == ["BTCUSDT", "XRPUSDT"]


def test_update_listener_subscription(series_factory, registry, bar_factory):
    series = series_factory("BTCUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})])
    registry.add("BTCUSDT")
    seen = []
    subscription = registry.add_update_listener(lambda symbol, bar: seen.append((symbol, bar.time_start)))

    series.upsert(bar_factory(60_000, {100.0: (1.0, 1.0)}))
    subscription.close()
    subscription.close()
    series.upsert(bar_factory(120_000, {100.0: (1.0, 1.0)}))

    assert seen == [("BTCUSDT", 60_000)]
    assert subscription.active is False


def test_failing_listener_does_not_break_others(series_factory, registry, bar_factory):
    series = series_factory("BTCUSDT", [])
    registry.add("BTCUSDT")
    seen = []
    registry.add_update_listener(MagicMock(side_effect=RuntimeError("boom")))
    registry.add_update_listener(lambda symbol, bar: seen.append(symbol))

    series.upsert(bar_factory(0, {100.0: (1.0, 1.0)}))

    assert seen == ["BTCUSDT"]


def test_close_disposes_everything(series_factory, registry, cache, bar_factory):
    series = series_factory("BTCUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})])
    registry.add("BTCUSDT")
    cache.get_or_compute(make_aggregation_key(0, "direct", 0.1, ["X"], None), MagicMock())

    registry.close()

    assert len(registry) == 0
    assert series.closed is True
    assert len(cache) == 0


def test_unreadable_series_is_absent(failing_series_factory, provider, registry, bar_factory):
    series = failing_series_factory("ETHUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})], fail=True, ready=False)

    assert registry.add("ETHUSDT") is False

    assert "ETHUSDT" not in registry
    assert series.subscriber_count == 0
    assert provider.flags["ETHUSDT"].state is ReadinessState.ABORTED


def test_ready_ids_skips_unreadable_readiness(series_factory, registry, bar_factory):
    series_factory("BTCUSDT", [bar_factory(0, {100.0: (1.0, 1.0)})])
    registry.add("BTCUSDT")

    class BrokenReadiness:
        @property
        def is_ready(self):
            raise RuntimeError("volume analysis crashed")

        def abort(self):
            pass

    broken = SourceHandle("ETHUSDT", MagicMock(), BrokenReadiness())

    assert registry.ready_ids(registry.snapshot() + [broken]) == ["BTCUSDT"]
