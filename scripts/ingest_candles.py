#!/usr/bin/env python3
"""
바이낸스 캔들을 ClickHouse로 수집하는 스크립트

[ 사용법 ]
    # 최초 수집 (1년치 4시간봉)
    python scripts/ingest_candles.py --symbols BTCUSDT,ETHUSDT --timeframe 4h --period 1년 --init-schema

    # 증분 수집 (마지막 저장 캔들 이후만)
    python scripts/ingest_candles.py --symbols BTCUSDT --timeframe 4h
"""
import argparse
import logging
import sys
import time
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cci_trading.core.data_provider import Interval
from cci_trading.core.errors import DataSourceError
from cci_trading.data.market_data import limit_for_period
from cci_trading.ingestion.binance import BinanceCandleSource
from cci_trading.ingestion.clickhouse_schema import (
    get_client,
    get_last_candle_time,
    initialize_schema,
    insert_candles,
)
from cci_trading.utils.config import Config
from cci_trading.utils.logger import setup_logger

logger = logging.getLogger("cci_trading.ingestion")


def candles_to_fetch(last_time: int | None, interval: Interval, period: str, now_ms: int) -> int:
    """수집할 캔들 수. 저장된 캔들이 있으면 그 이후만 (+1개 겹쳐서 갱신)."""
    full = limit_for_period(period, interval)
    if last_time is None:
        return full
    missing = (now_ms - last_time) // interval.milliseconds + 1
    return max(1, min(full, missing))


def ingest_symbol(client, source: BinanceCandleSource, symbol: str, interval: Interval, period: str) -> bool:
    """
    단일 심볼의 캔들을 수집하고 ClickHouse에 저장

    Returns:
        성공 시 True, 실패 시 False
    """
    last_time = get_last_candle_time(client, symbol, interval)
    count = candles_to_fetch(last_time, interval, period, int(time.time() * 1000))
    logger.info(f"{symbol} {interval.value}: {count}개 수집 시작 (마지막 저장: {last_time})")

    try:
        candles = source.fetch_candles(symbol, interval, count)
    except DataSourceError as e:
        logger.error(f"{symbol} 수집 실패: {e.message}")
        return False

    if not candles:
        logger.warning(f"{symbol}: 수집된 캔들 없음")
        return False

    inserted = insert_candles(client, symbol, interval, candles, source=source.name)
    logger.info(f"{symbol}: {inserted}개 저장")
    return True


def main():
    parser = argparse.ArgumentParser(description="바이낸스 캔들을 ClickHouse로 수집")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--symbols", type=str, required=True, help='쉼표로 구분한 심볼 (예: "BTCUSDT,ETHUSDT")')
    parser.add_argument("--timeframe", type=str, default="4h", help="시간프레임")
    parser.add_argument("--period", type=str, default="1년", help="최초 수집 기간")
    parser.add_argument("--init-schema", action="store_true", help="수집 전 스키마 초기화")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    interval = Interval.parse(args.timeframe)
    symbols = [s.strip() for s in args.symbols.split(",") if s.strip()]

    db = config.database
    client = get_client(db.host, db.port, db.database, db.user, db.password)
    logger.info(f"ClickHouse 연결: {db.host}:{db.port}/{db.database}")

    if args.init_schema:
        initialize_schema(client)

    source = BinanceCandleSource(
        base_url=config.data.base_url,
        timeout=config.data.timeout,
        max_retries=config.data.max_retries,
        backoff_base=config.data.retry_delay,
    )

    success = 0
    try:
        for symbol in symbols:
            if ingest_symbol(client, source, symbol, interval, args.period):
                success += 1
    finally:
        source.close()

    logger.info("=" * 60)
    logger.info(f"수집 완료: 성공 {success}/{len(symbols)}")
    sys.exit(0 if success == len(symbols) else 1)


if __name__ == "__main__":
    main()
