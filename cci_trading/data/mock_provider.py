"""
테스트/오프라인용 Mock 캔들 소스.

[ 역할 ]
    외부 API 없이 미리 로드한 캔들(또는 DataFrame)을 돌려준다.
    실패 주입(fail_with)으로 데이터 소스 오류 경로를 테스트할 수 있다.

[ 호출하는 곳 ]
    - 단위 테스트 (엔진, 시세포착, MarketDataManager 폴백)
"""

import pandas as pd

from cci_trading.core.data_provider import Candle, CandleSource, Interval, candles_from_frame, normalize_candles
from cci_trading.core.errors import DataSourceError


class MockCandleSource(CandleSource):
    """메모리 기반 캔들 소스.

    사용법:
        source = MockCandleSource()
        source.load_candles("BTCUSDT", Interval.H4, candles)
        source.fetch_candles("BTCUSDT", Interval.H4, 100)
    """

    name = "mock"

    def __init__(self):
        self._data: dict[tuple[str, Interval], list[Candle]] = {}
        self.fail_with: DataSourceError | None = None  # 설정 시 fetch마다 이 예외 발생
        self.calls: list[tuple[str, Interval, int]] = []

    def load_candles(self, symbol: str, interval: Interval, candles: list[Candle]) -> None:
        self._data[(symbol, interval)] = normalize_candles(candles)

    def load_frame(self, symbol: str, interval: Interval, df: pd.DataFrame) -> None:
        """OHLCV DataFrame 로드 (timestamp 또는 date 컬럼)."""
        self._data[(symbol, interval)] = candles_from_frame(df)

    def fetch_candles(self, symbol: str, interval: Interval, count: int) -> list[Candle]:
        self.calls.append((symbol, interval, count))
        if self.fail_with is not None:
            raise self.fail_with
        candles = self._data.get((symbol, interval), [])
        return candles[-count:] if count > 0 else []
