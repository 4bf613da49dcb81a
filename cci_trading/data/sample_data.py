"""
샘플 캔들 생성 모듈.

[ 역할 ]
    네트워크/DB 없이 백테스트를 돌려볼 수 있도록 랜덤워크 캔들을 생성.
    seed가 같으면 항상 같은 캔들 (테스트 재현성).

[ 호출하는 곳 ]
    - run_backtest.py --source sample
    - data/market_data.py::MarketDataManager 폴백 (fallback_to_sample=True)
    - 단위 테스트 (고정 seed)
"""

import time

import numpy as np

from cci_trading.core.data_provider import Candle, CandleSource, Interval

# 심볼별 시작 가격
BASE_PRICES = {
    "BTCUSDT": 45000.0,
    "ETHUSDT": 2800.0,
    "BNBUSDT": 350.0,
    "ADAUSDT": 1.2,
}


def generate_sample_candles(
    symbol: str,
    interval: Interval,
    count: int,
    seed: int | None = None,
    end_time: int | None = None,
    initial_price: float | None = None,
    volatility: float = 0.02,
) -> list[Candle]:
    """랜덤워크 샘플 캔들 생성.

    Args:
        symbol: 심볼 (시작 가격 결정용)
        interval: 캔들 간격
        count: 캔들 수
        seed: 난수 시드. None이면 심볼 기반 고정 시드
        end_time: 마지막 캔들 시작 시각 (ms). None이면 현재 시각 기준
        initial_price: 시작 가격. None이면 BASE_PRICES 또는 45000
        volatility: 캔들당 수익률 표준편차
    """
    if count <= 0:
        return []

    if seed is None:
        seed = sum(ord(ch) for ch in symbol)
    rng = np.random.default_rng(seed)

    step = interval.milliseconds
    if end_time is None:
        end_time = int(time.time() * 1000) // step * step
    start_time = end_time - (count - 1) * step

    price = initial_price if initial_price is not None else BASE_PRICES.get(symbol, 45000.0)
    returns = rng.normal(0.0, volatility, count)
    closes = price * np.cumprod(1 + returns)

    candles = []
    prev_close = price
    for i in range(count):
        close = float(closes[i])
        open_price = prev_close
        high = max(open_price, close) * (1 + abs(rng.normal(0, 0.005)))
        low = min(open_price, close) * (1 - abs(rng.normal(0, 0.005)))
        candles.append(Candle(
            timestamp=start_time + i * step,
            open=open_price,
            high=high,
            low=low,
            close=close,
            volume=float(rng.lognormal(8, 1)),
        ))
        prev_close = close

    return candles


class SampleCandleSource(CandleSource):
    """generate_sample_candles()를 CandleSource로 감싼 것 (--source sample)."""

    name = "sample"

    def __init__(self, seed: int | None = None):
        self.seed = seed

    def fetch_candles(self, symbol: str, interval: Interval, count: int) -> list[Candle]:
        return generate_sample_candles(symbol, interval, count, seed=self.seed)
