"""
Yahoo Finance 캔들 수집 모듈.

[ 역할 ]
    yfinance로 OHLCV를 받아 Candle 리스트로 변환하는 CandleSource 구현.
    Yahoo에는 4시간봉이 없어서 1시간봉을 pandas resample로 합쳐 만든다.

[ 심볼 변환 ]
    바이낸스식 'BTCUSDT' → Yahoo식 'BTC-USD'. 이미 Yahoo 형식이면 그대로 사용.

[ 제한 ]
    Yahoo 분봉은 조회 가능한 기간이 짧다 (15분봉 60일, 1시간봉 730일).
"""

import logging
import math
import time

import pandas as pd
import yfinance as yf

from cci_trading.core.data_provider import Candle, CandleSource, Interval, candles_from_frame
from cci_trading.core.errors import DataSourceError

logger = logging.getLogger("cci_trading.ingestion")

# Interval → (yfinance interval, resample 규칙)
_YAHOO_INTERVALS = {
    Interval.M15: ("15m", None),
    Interval.H1: ("1h", None),
    Interval.H4: ("1h", "4h"),
    Interval.D1: ("1d", None),
    Interval.W1: ("1wk", None),
}

# yfinance 분봉 최대 조회 일수
_MAX_DAYS = {"15m": 59, "1h": 729}


def to_yahoo_symbol(symbol: str) -> str:
    """'BTCUSDT' → 'BTC-USD'."""
    if symbol.endswith("USDT") and "-" not in symbol:
        return f"{symbol[:-4]}-USD"
    return symbol


def resample_ohlcv(df: pd.DataFrame, rule: str) -> pd.DataFrame:
    """date 컬럼 기준으로 OHLCV 리샘플링 (예: 1시간봉 → 4시간봉)."""
    frame = df.set_index(pd.to_datetime(df["date"], utc=True)).drop(columns=["date"])
    resampled = frame.resample(rule, label="left", closed="left").agg({
        "open": "first",
        "high": "max",
        "low": "min",
        "close": "last",
        "volume": "sum",
    })
    resampled = resampled.dropna(subset=["open", "close"])
    return resampled.rename_axis("date").reset_index()


class YahooCandleSource(CandleSource):
    """Yahoo Finance 캔들 소스."""

    name = "yahoo"

    def __init__(self, max_retries: int = 3, retry_delay: float = 5.0):
        self.max_retries = max_retries
        self.retry_delay = retry_delay

    def _download(self, symbol: str, yahoo_interval: str, days: int) -> pd.DataFrame:
        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                logger.info(
                    f"Fetching {symbol} {yahoo_interval} {days}d "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                return yf.Ticker(symbol).history(
                    period=f"{days}d",
                    interval=yahoo_interval,
                    auto_adjust=False,
                    actions=False,
                )
            except Exception as e:  # yfinance는 다양한 예외를 던진다
                last_error = e
                logger.error(f"Error fetching {symbol} (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    time.sleep(self.retry_delay)
        raise DataSourceError(
            f"Yahoo Finance 조회 실패 ({self.max_retries}회 시도): {last_error}",
            symbol=symbol, interval=yahoo_interval,
        )

    def fetch_candles(self, symbol: str, interval: Interval, count: int) -> list[Candle]:
        if count <= 0:
            return []

        yahoo_symbol = to_yahoo_symbol(symbol)
        yahoo_interval, rule = _YAHOO_INTERVALS[interval]

        day_ms = 24 * 60 * 60 * 1000
        days = math.ceil(count * interval.milliseconds / day_ms) + 2
        days = min(days, _MAX_DAYS.get(yahoo_interval, days))

        df = self._download(yahoo_symbol, yahoo_interval, days)
        if df is None or df.empty:
            logger.warning(f"No data found for {yahoo_symbol}")
            return []

        df = df.reset_index()
        df = df.rename(columns={
            "Date": "date",
            "Datetime": "date",
            "Open": "open",
            "High": "high",
            "Low": "low",
            "Close": "close",
            "Volume": "volume",
        })
        df = df[["date", "open", "high", "low", "close", "volume"]]

        if rule is not None:
            df = resample_ohlcv(df, rule)

        return candles_from_frame(df)[-count:]
