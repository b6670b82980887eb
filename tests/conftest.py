import asyncio
import inspect

import pytest

from aggfootprint.config import Settings
from aggfootprint.data import Bar, BarSeries, PriceLevelStat, StaticSeriesProvider

MINUTE_MS = 60_000
# Monday 2024-01-01 00:00 UTC
MONDAY_MS = 1_704_067_200_000


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as requiring an event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem):
    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            signature = inspect.signature(test_function)
            filtered_args = {
                name: value
                for name, value in pyfuncitem.funcargs.items()
                if name in signature.parameters
            }
            loop.run_until_complete(test_function(**filtered_args))
        finally:
            loop.run_until_complete(asyncio.sleep(0))
            loop.close()
            asyncio.set_event_loop(None)
        return True
    return None


def make_bar(time_start, levels=None, *, open=None, high=None, low=None, close=None):
    """Build a Bar from ``{price: (buy, sell[, trades])}``.

    OHLC defaults to the level price range.
    """
    stats = {}
    for price, vols in (levels or {}).items():
        buy, sell = vols[0], vols[1]
        trades = vols[2] if len(vols) > 2 else 1
        stats[float(price)] = PriceLevelStat(buy_volume=buy, sell_volume=sell, trade_count=trades)
    prices = sorted(stats) or [100.0]
    low = prices[0] if low is None else low
    high = prices[-1] if high is None else high
    open = low if open is None else open
    close = high if close is None else close
    return Bar(time_start=time_start, open=open, high=high, low=low, close=close, levels=stats)


@pytest.fixture
def bar_factory():
    return make_bar


@pytest.fixture
def provider():
    return StaticSeriesProvider()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        symbols="BTCUSDT,BTCUSDT-PERP",
        primary_symbol="BTCUSDT",
        tick_size=1.0,
    )


@pytest.fixture
def series_factory(provider):
    def _make(instrument_id, bars, ready=True):
        return provider.register(BarSeries(instrument_id, bars), ready=ready)

    return _make


class FailingSeries(BarSeries):
    """BarSeries whose ``bars`` raises once ``fail`` is set."""

    def __init__(self, instrument_id, bars=None, fail=False):
        super().__init__(instrument_id, bars)
        self.fail = fail

    @property
    def bars(self):
        if self.fail:
            raise RuntimeError("feed disconnected")
        return super().bars


@pytest.fixture
def failing_series_factory(provider):
    def _make(instrument_id, bars, fail=False, ready=True):
        return provider.register(FailingSeries(instrument_id, bars, fail=fail), ready=ready)

    return _make
