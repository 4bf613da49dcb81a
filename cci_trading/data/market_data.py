"""
시장 데이터 관리 모듈.

[ 역할 ]
    CandleSource를 감싸서 캐싱 + 폴백 정책 + 기간 → 캔들 수 변환 제공.
    동일 데이터 반복 조회 시 캐시에서 즉시 반환.

[ 폴백 정책 ]
    fallback_to_sample=True 이고 소스가 실패(DataSourceError)하면
    샘플 캔들로 대체하고 WARNING 로그를 남긴다. 결과 CandleSeries.synthetic=True.
    소스 자체가 SampleCandleSource인 경우에도 synthetic=True.
    정책이 꺼져 있으면 DataSourceError를 그대로 전파.
    실제 데이터와 샘플 데이터를 조용히 섞지 않는다.

[ 의존성 ]
    - core/data_provider.py::CandleSource (데이터 소스 추상화)
    - data/sample_data.py::generate_sample_candles (폴백)

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run_backtest()
    - run_backtest.py
"""

import logging
from dataclasses import dataclass, field

from cci_trading.core.data_provider import Candle, CandleSource, Interval
from cci_trading.core.errors import DataSourceError
from cci_trading.data.sample_data import SampleCandleSource, generate_sample_candles

logger = logging.getLogger("cci_trading.data")

# 백테스트 기간별 일수
PERIOD_DAYS = {
    "1주일": 7,
    "3개월": 90,
    "6개월": 180,
    "1년": 365,
    "2년": 730,
}

DEFAULT_PERIOD = "1주일"


def limit_for_period(test_period: str, interval: Interval) -> int:
    """백테스트 기간에 해당하는 캔들 수. 모르는 기간은 1주일로 본다.

    예: 1년 + 4h → 365 * 6 = 2190, 3개월 + 1h → 2160
    """
    days = PERIOD_DAYS.get(test_period, PERIOD_DAYS[DEFAULT_PERIOD])
    day_ms = 24 * 60 * 60 * 1000
    return max(1, days * day_ms // interval.milliseconds)


@dataclass
class CandleSeries:
    """조회 결과. synthetic=True면 실제 시세가 아닌 샘플 데이터."""
    symbol: str
    interval: Interval
    candles: list[Candle] = field(default_factory=list)
    source: str = ""
    synthetic: bool = False

    def __len__(self) -> int:
        return len(self.candles)


class MarketDataManager:
    """CandleSource 위에 캐싱 + 폴백을 추가한 매니저.

    사용 예:
        manager = MarketDataManager(BinanceCandleSource(), fallback_to_sample=True)
        series = manager.get_candles("BTCUSDT", Interval.H4, 500)
    """

    def __init__(self, source: CandleSource, fallback_to_sample: bool = False):
        self.source = source
        self.fallback_to_sample = fallback_to_sample
        self._cache: dict[tuple[str, Interval, int], CandleSeries] = {}

    def get_candles(
        self,
        symbol: str,
        interval: Interval,
        count: int,
        use_cache: bool = True,
    ) -> CandleSeries:
        """캔들 조회 (캐싱 지원).

        Raises:
            DataSourceError: 조회 실패 + 폴백 정책 꺼짐
        """
        cache_key = (symbol, interval, count)
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        try:
            candles = self.source.fetch_candles(symbol, interval, count)
            series = CandleSeries(
                symbol,
                interval,
                candles,
                source=self.source.name,
                synthetic=isinstance(self.source, SampleCandleSource),
            )
        except DataSourceError as e:
            if not self.fallback_to_sample:
                raise
            logger.warning(
                f"{self.source.name} 조회 실패 ({symbol} {interval.value}): {e.message} "
                f"→ 샘플 데이터 {count}개로 대체"
            )
            series = CandleSeries(
                symbol,
                interval,
                generate_sample_candles(symbol, interval, count),
                source="sample",
                synthetic=True,
            )

        # 샘플 데이터는 캐싱하지 않는다 (대체 결과는 다음 호출에서 실제 소스 재시도)
        if use_cache and not series.synthetic:
            self._cache[cache_key] = series
        return series

    def get_candles_for_period(
        self,
        symbol: str,
        interval: Interval,
        test_period: str,
    ) -> CandleSeries:
        """백테스트 기간('1년' 등)으로 캔들 조회."""
        return self.get_candles(symbol, interval, limit_for_period(test_period, interval))

    def clear_cache(self) -> None:
        """캐시 초기화."""
        self._cache.clear()

    def close(self) -> None:
        self.source.close()
