"""
ClickHouse 기반 CandleSource 구현.

[ 역할 ]
    ClickHouse crypto_candles 테이블에 저장된 캔들을 조회하여 백테스트에 제공.
    scripts/ingest_candles.py로 미리 수집해 두면 네트워크 없이 반복 실행 가능.

[ 의존성 ]
    - core/data_provider.py::CandleSource (추상 클래스)
    - ingestion/clickhouse_schema.py (ClickHouse 연결 및 스키마)

[ 호출하는 곳 ]
    - run_backtest.py (--source clickhouse 옵션 사용 시)
"""

from clickhouse_connect.driver import Client

from cci_trading.core.data_provider import Candle, CandleSource, Interval
from cci_trading.core.errors import DataSourceError
from cci_trading.ingestion.clickhouse_schema import CANDLE_TABLE, get_client


class ClickHouseCandleSource(CandleSource):
    """ClickHouse 기반 캔들 소스.

    사용 예:
        source = ClickHouseCandleSource('localhost', 8123, 'default', password='password')
        candles = source.fetch_candles('BTCUSDT', Interval.H4, 500)
    """

    name = "clickhouse"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8123,
        database: str = "default",
        user: str = "default",
        password: str = "password",
        client: Client | None = None,
    ):
        self.client = client or get_client(host, port, database, user, password)

    def fetch_candles(self, symbol: str, interval: Interval, count: int) -> list[Candle]:
        """최근 count개 캔들 (오름차순)."""
        if count <= 0:
            return []

        # 최신 count개를 내림차순으로 뽑은 뒤 뒤집는다
        query = f"""
            SELECT timestamp, open, high, low, close, volume
            FROM {CANDLE_TABLE} FINAL
            WHERE symbol = %(symbol)s
              AND interval = %(interval)s
            ORDER BY timestamp DESC
            LIMIT %(count)s
        """
        try:
            result = self.client.query(
                query,
                parameters={"symbol": symbol, "interval": interval.value, "count": count},
            )
        except Exception as e:  # clickhouse_connect는 드라이버/네트워크 예외를 여러 종류로 던진다
            raise DataSourceError(
                f"ClickHouse 캔들 조회 실패: {e}", symbol=symbol, interval=interval.value,
            ) from e

        candles = [
            Candle(
                timestamp=int(row[0]),
                open=float(row[1]),
                high=float(row[2]),
                low=float(row[3]),
                close=float(row[4]),
                volume=float(row[5]),
            )
            for row in result.result_rows
        ]
        candles.reverse()
        return candles

    def close(self) -> None:
        """ClickHouse 연결 종료."""
        if hasattr(self.client, "close"):
            self.client.close()
