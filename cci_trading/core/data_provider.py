"""
캔들(OHLCV) 데이터 제공 추상 클래스 정의.

[ 역할 ]
    OHLCV(시가/고가/저가/종가/거래량) 캔들을 제공하는 인터페이스.
    데이터 소스(거래소 API, Yahoo, DB, 메모리)에 독립적으로
    지표 계산/백테스트/시세포착에 캔들 시퀀스를 공급.

[ 구현체 ]
    - ingestion/binance.py::BinanceCandleSource       (바이낸스 K-line API)
    - ingestion/yahoo_finance.py::YahooCandleSource    (yfinance)
    - data/clickhouse_provider.py::ClickHouseCandleSource
    - data/mock_provider.py::MockCandleSource          (메모리, 테스트용)

[ 계약 ]
    fetch_candles()는 timestamp 오름차순, 중복 없는 캔들 리스트를 반환.
    빈 리스트 = "데이터 없음" 신호 (정상 결과).
    조회 실패는 DataSourceError로 알린다.

[ 호출하는 곳 ]
    - data/market_data.py::MarketDataManager가 캐싱/폴백을 얹어 사용
    - backtest/engine.py, monitoring/monitor.py
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import pandas as pd

CANDLE_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class Interval(Enum):
    """캔들 시간프레임. value는 거래소 interval 코드."""
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"
    D1 = "1d"
    W1 = "1w"

    @property
    def milliseconds(self) -> int:
        return _INTERVAL_MS[self]

    @classmethod
    def parse(cls, value: "str | Interval") -> "Interval":
        """'4h', '4시간', '240' 같은 표기를 Interval로 변환."""
        if isinstance(value, Interval):
            return value
        key = str(value).strip()
        if key in _INTERVAL_ALIASES:
            return _INTERVAL_ALIASES[key]
        for interval in cls:
            if interval.value == key.lower():
                return interval
        raise ValueError(f"지원하지 않는 시간프레임: '{value}'")


_INTERVAL_MS = {
    Interval.M15: 15 * 60 * 1000,
    Interval.H1: 60 * 60 * 1000,
    Interval.H4: 4 * 60 * 60 * 1000,
    Interval.D1: 24 * 60 * 60 * 1000,
    Interval.W1: 7 * 24 * 60 * 60 * 1000,
}

# 앱 화면에서 쓰던 한글 표기
_INTERVAL_ALIASES = {
    "15분": Interval.M15,
    "1시간": Interval.H1,
    "4시간": Interval.H4,
    "1일": Interval.D1,
    "1주": Interval.W1,
}


@dataclass(frozen=True)
class Candle:
    """단일 캔들. 생성 후 변경 불가."""
    timestamp: int   # 캔들 시작 시각 (ms epoch)
    open: float      # 시가
    high: float      # 고가
    low: float       # 저가
    close: float     # 종가
    volume: float    # 거래량

    @property
    def typical_price(self) -> float:
        """(고가 + 저가 + 종가) / 3"""
        return (self.high + self.low + self.close) / 3.0


def normalize_candles(candles: list[Candle]) -> list[Candle]:
    """timestamp 기준 오름차순 정렬 + 중복 제거 (같은 timestamp는 나중 것 유지)."""
    by_ts: dict[int, Candle] = {}
    for c in candles:
        by_ts[c.timestamp] = c
    return [by_ts[ts] for ts in sorted(by_ts)]


def candles_from_frame(df: pd.DataFrame) -> list[Candle]:
    """OHLCV DataFrame → Candle 리스트.

    timestamp 컬럼이 없고 date 컬럼(datetime)이 있으면 ms epoch로 변환한다.
    """
    if df is None or df.empty:
        return []

    frame = df.copy()
    if "timestamp" not in frame.columns:
        if "date" not in frame.columns:
            raise ValueError("timestamp 또는 date 컬럼이 필요합니다")
        dates = pd.to_datetime(frame["date"], utc=True)
        frame["timestamp"] = dates.astype("int64") // 10**6

    candles = [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame[CANDLE_COLUMNS].itertuples(index=False)
    ]
    return normalize_candles(candles)


def candles_to_frame(candles: list[Candle]) -> pd.DataFrame:
    """Candle 리스트 → OHLCV DataFrame (columns: timestamp, open, high, low, close, volume)."""
    return pd.DataFrame(
        [(c.timestamp, c.open, c.high, c.low, c.close, c.volume) for c in candles],
        columns=CANDLE_COLUMNS,
    )


class CandleSource(ABC):
    """캔들 데이터 제공 추상 클래스.

    모든 데이터 소스 구현체는 이 클래스를 상속받아 fetch_candles()를 구현해야 한다.
    """

    name: str = "abstract"

    @abstractmethod
    def fetch_candles(
        self,
        symbol: str,
        interval: Interval,
        count: int,
    ) -> list[Candle]:
        """최근 count개 캔들 조회.

        Args:
            symbol: 심볼 (예: 'BTCUSDT')
            interval: 시간프레임
            count: 요청 캔들 수

        Returns:
            timestamp 오름차순 캔들 리스트. 데이터가 없으면 빈 리스트.

        Raises:
            DataSourceError: 네트워크/API 오류로 조회 실패
        """
        ...

    def close(self) -> None:
        """연결 자원 해제. 기본 구현은 아무것도 하지 않음."""
