"""
데이터 소스 생성 모듈.

[ 역할 ]
    설정(Config.data / Config.database)과 소스 이름으로 CandleSource를 만든다.
    무거운 의존성(yfinance, clickhouse_connect)은 해당 소스를 고를 때만 import.

[ 호출하는 곳 ]
    - run_backtest.py, scripts/run_monitor.py
"""

from cci_trading.core.data_provider import CandleSource
from cci_trading.data.sample_data import SampleCandleSource
from cci_trading.utils.config import Config

SOURCE_NAMES = ("binance", "yahoo", "clickhouse", "sample")


def create_candle_source(config: Config, name: str | None = None) -> CandleSource:
    """이름으로 CandleSource 생성. name이 None이면 config.data.source.

    Raises:
        ValueError: 알 수 없는 소스 이름
    """
    name = name or config.data.source

    if name == "binance":
        from cci_trading.ingestion.binance import BinanceCandleSource
        return BinanceCandleSource(
            base_url=config.data.base_url,
            timeout=config.data.timeout,
            max_retries=config.data.max_retries,
            backoff_base=config.data.retry_delay,
            include_in_progress=config.data.include_in_progress,
        )
    if name == "yahoo":
        from cci_trading.ingestion.yahoo_finance import YahooCandleSource
        return YahooCandleSource(max_retries=config.data.max_retries)
    if name == "clickhouse":
        from cci_trading.data.clickhouse_provider import ClickHouseCandleSource
        db = config.database
        return ClickHouseCandleSource(db.host, db.port, db.database, db.user, db.password)
    if name == "sample":
        return SampleCandleSource()

    raise ValueError(f"알 수 없는 데이터 소스: '{name}'. 사용 가능: {', '.join(SOURCE_NAMES)}")
