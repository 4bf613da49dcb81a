import pytest

from cci_trading.core.data_provider import Candle, Interval

START = 1_700_000_000_000 // Interval.H4.milliseconds * Interval.H4.milliseconds


def build_candles(closes, step=Interval.H4.milliseconds, start=START):
    """고가 = 저가 = 종가인 캔들 (typical price == close)."""
    return [
        Candle(timestamp=start + i * step, open=c, high=c, low=c, close=c, volume=1.0)
        for i, c in enumerate(closes)
    ]


@pytest.fixture
def make_candles():
    return build_candles
