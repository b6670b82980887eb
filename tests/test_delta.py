"""Tests for cumulative volume delta."""

import pytest

from aggfootprint.config import ResetPeriod
from aggfootprint.indicators import CVDTracker

DAY_MS = 86_400_000
MONDAY_MS = 1_704_067_200_000  # 2024-01-01 00:00 UTC
MINUTE = 60_000


def test_accumulates_within_day(bar_factory):
    tracker = CVDTracker()
    tracker.update(bar_factory(MONDAY_MS, {100.0: (5.0, 2.0)}))
    stats = tracker.update(bar_factory(MONDAY_MS + MINUTE, {100.0: (1.0, 4.0)}))

    assert stats.delta == pytest.approx(-3.0)
    assert stats.cvd == pytest.approx(0.0)
    assert stats.buy == 1.0
    assert stats.sell == 4.0
    assert stats.volume == 5.0
    assert stats.time == MONDAY_MS + MINUTE


def test_first_bar_of_new_day_starts_at_its_own_delta(bar_factory):
    tracker = CVDTracker(ResetPeriod.DAILY)
    tracker.update(bar_factory(MONDAY_MS, {100.0: (10.0, 0.0)}))
    tracker.update(bar_factory(MONDAY_MS + DAY_MS - MINUTE, {100.0: (3.0, 0.0)}))
    assert tracker.cumulative_delta == pytest.approx(13.0)

    stats = tracker.update(bar_factory(MONDAY_MS + DAY_MS, {100.0: (1.0, 3.0)}))

    assert stats.cvd == pytest.approx(-2.0)
    assert tracker.state.last_reset_boundary == MONDAY_MS + DAY_MS


def test_weekly_period_spans_days(bar_factory):
    tracker = CVDTracker("weekly")
    tracker.update(bar_factory(MONDAY_MS, {100.0: (2.0, 1.0)}))
    stats = tracker.update(bar_factory(MONDAY_MS + 3 * DAY_MS, {100.0: (2.0, 1.0)}))
    assert stats.cvd == pytest.approx(2.0)

    stats = tracker.update(bar_factory(MONDAY_MS + 7 * DAY_MS, {100.0: (0.0, 4.0)}))
    assert stats.cvd == pytest.approx(-4.0)
    assert tracker.state.last_reset_boundary == MONDAY_MS + 7 * DAY_MS


def test_reset_clears_state(bar_factory):
    tracker = CVDTracker()
    tracker.update(bar_factory(MONDAY_MS, {100.0: (2.0, 1.0)}))
    tracker.reset()
    assert tracker.cumulative_delta == 0.0
    assert tracker.state.last_reset_boundary is None
