"""Tests for the quantile color scale."""

import pytest

from aggfootprint.data import PriceLevelStat
from aggfootprint.indicators import QuantileColorScale


def test_floor_until_enough_samples():
    scale = QuantileColorScale()
    scale.observe(float(v) for v in range(1, 11))

    assert len(scale) == 10
    for volume in (1.0, 5.0, 1000.0):
        assert scale.intensity(volume) == 0.1


def test_intensity_maps_between_quantiles():
    scale = QuantileColorScale()
    scale.observe(float(v) for v in range(1, 12))

    assert (scale.lower, scale.upper) == (1.0, 11.0)
    assert scale.intensity(6.0) == pytest.approx(0.5)
    assert scale.intensity(1.0) == 0.1
    assert scale.intensity(500.0) == 1.0
    assert scale.intensity(0.0) == 0.1


def test_intensity_is_monotone():
    scale = QuantileColorScale()
    scale.observe(float(v * v) for v in range(1, 200))

    values = [scale.intensity(float(v)) for v in range(0, 50_000, 250)]
    assert values == sorted(values)
    assert all(0.1 <= v <= 1.0 for v in values)


def test_window_is_bounded():
    scale = QuantileColorScale(max_samples=1000)
    scale.observe(float(v) for v in range(1, 1501))

    assert len(scale) == 1000
    # Oldest 500 samples were dropped.
    assert scale.lower == pytest.approx(501.0 + int(1000 * 0.05))


def test_non_positive_volumes_ignored():
    scale = QuantileColorScale()
    scale.observe([0.0, -1.0, 2.0])
    assert len(scale) == 1


def test_update_uses_level_totals():
    scale = QuantileColorScale(min_samples=1)
    scale.update([PriceLevelStat(1.0, 1.0), PriceLevelStat(3.0, 1.0)])
    assert sorted(scale._samples) == [2.0, 4.0]
