"""
ClickHouse 데이터베이스 스키마 정의 및 연결 관리

[ 테이블 ]
    crypto_candles   - 캔들 (심볼, 시간프레임, 시작시각 ms 기준 중복 제거)
    ingestion_log    - 심볼/시간프레임별 마지막 수집 기록
    signal_configs   - 시세포착 설정
    market_signals   - 시세포착 신호 이력
    breakout_states  - 설정별 돌파 추적 상태
"""
import logging
from datetime import datetime
from typing import Optional

import clickhouse_connect
from clickhouse_connect.driver import Client

from cci_trading.core.data_provider import Candle, Interval

logger = logging.getLogger("cci_trading.ingestion")

CANDLE_TABLE = "crypto_candles"


def get_client(
    host: str = "localhost",
    port: int = 8123,
    database: str = "default",
    user: str = "default",
    password: str = "password",
) -> Client:
    """
    ClickHouse 클라이언트 연결 생성

    Args:
        host: ClickHouse 호스트
        port: HTTP 포트 (기본값: 8123)
        database: 데이터베이스 이름
        user: 사용자 이름
        password: 비밀번호
    """
    return clickhouse_connect.get_client(
        host=host,
        port=port,
        database=database,
        username=user,
        password=password,
    )


_SCHEMA = [
    f"""
    CREATE TABLE IF NOT EXISTS {CANDLE_TABLE} (
        symbol String,
        interval String,
        timestamp Int64,
        open Float64,
        high Float64,
        low Float64,
        close Float64,
        volume Float64,
        source String DEFAULT 'binance',
        ingestion_time DateTime DEFAULT now()
    )
    ENGINE = ReplacingMergeTree(ingestion_time)
    PARTITION BY (interval, toYYYYMM(fromUnixTimestamp64Milli(timestamp)))
    ORDER BY (symbol, interval, timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS ingestion_log (
        symbol String,
        interval String,
        last_timestamp Int64,
        last_ingestion DateTime,
        record_count UInt32,
        status String
    )
    ENGINE = ReplacingMergeTree(last_ingestion)
    ORDER BY (symbol, interval)
    """,
    """
    CREATE TABLE IF NOT EXISTS signal_configs (
        config_id String,
        username String,
        name String,
        symbol String,
        timeframe String,
        check_interval UInt32,
        is_active UInt8,
        seed_money Float64,
        cci_period UInt32,
        cci_breakout_value Float64,
        cci_entry_value Float64,
        rsi_period UInt32,
        created_at String,
        is_deleted UInt8 DEFAULT 0,
        updated_at DateTime64(3) DEFAULT now64(3)
    )
    ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY config_id
    """,
    """
    CREATE TABLE IF NOT EXISTS market_signals (
        signal_id String,
        config_id String,
        username String,
        symbol String,
        signal_type String,
        direction String,
        price Float64,
        volume Float64,
        indicator_value Float64,
        extreme_value Float64,
        rsi_value Float64,
        breakout_value Float64,
        entry_value Float64,
        timeframe String,
        timestamp Int64,
        reason String,
        status String,
        is_read UInt8
    )
    ENGINE = MergeTree()
    ORDER BY (username, timestamp)
    """,
    """
    CREATE TABLE IF NOT EXISTS breakout_states (
        config_id String,
        state String,
        extreme_cci Float64,
        last_cci Nullable(Float64),
        last_candle_time Nullable(Int64),
        last_checked_at Nullable(Int64),
        is_deleted UInt8 DEFAULT 0,
        updated_at DateTime64(3) DEFAULT now64(3)
    )
    ENGINE = ReplacingMergeTree(updated_at)
    ORDER BY config_id
    """,
]


def initialize_schema(client: Client) -> None:
    """
    필요한 테이블 생성 (이미 존재하면 무시)
    """
    for ddl in _SCHEMA:
        client.command(ddl)
    logger.info("테이블 생성 완료 (또는 이미 존재)")


def verify_connection(client: Client) -> bool:
    """
    ClickHouse 연결 검증

    Returns:
        연결 성공 시 True
    """
    try:
        return client.command("SELECT 1") == 1
    except Exception as e:  # 드라이버/네트워크 예외 종류가 다양함
        logger.error(f"연결 실패: {e}")
        return False


def get_symbols(client: Client, interval: Interval) -> list[str]:
    """
    저장된 심볼 목록 조회
    """
    result = client.query(
        f"SELECT DISTINCT symbol FROM {CANDLE_TABLE} WHERE interval = %(interval)s ORDER BY symbol",
        parameters={"interval": interval.value},
    )
    return [row[0] for row in result.result_rows]


def get_record_count(client: Client, symbol: Optional[str] = None) -> int:
    """
    레코드 수 조회

    Args:
        symbol: 특정 심볼 (None이면 전체)
    """
    if symbol:
        result = client.query(
            f"SELECT COUNT(*) FROM {CANDLE_TABLE} WHERE symbol = %(symbol)s",
            parameters={"symbol": symbol},
        )
    else:
        result = client.query(f"SELECT COUNT(*) FROM {CANDLE_TABLE}")
    return result.result_rows[0][0] if result.result_rows else 0


def get_last_candle_time(client: Client, symbol: str, interval: Interval) -> Optional[int]:
    """
    마지막으로 저장된 캔들 시작 시각 (ms), 없으면 None
    """
    result = client.query(
        f"""
        SELECT max(timestamp), count()
        FROM {CANDLE_TABLE}
        WHERE symbol = %(symbol)s AND interval = %(interval)s
        """,
        parameters={"symbol": symbol, "interval": interval.value},
    )
    if result.result_rows:
        last, count = result.result_rows[0]
        if count:
            return int(last)
    return None


def insert_candles(
    client: Client,
    symbol: str,
    interval: Interval,
    candles: list[Candle],
    source: str = "binance",
) -> int:
    """
    캔들 저장 + ingestion_log 기록. 저장한 행 수 반환.
    """
    if not candles:
        return 0

    rows = [
        [symbol, interval.value, c.timestamp, c.open, c.high, c.low, c.close, c.volume, source]
        for c in candles
    ]
    client.insert(
        CANDLE_TABLE,
        rows,
        column_names=["symbol", "interval", "timestamp", "open", "high", "low", "close", "volume", "source"],
    )
    client.insert(
        "ingestion_log",
        [[symbol, interval.value, candles[-1].timestamp, datetime.now(), len(rows), "success"]],
        column_names=["symbol", "interval", "last_timestamp", "last_ingestion", "record_count", "status"],
    )
    return len(rows)
