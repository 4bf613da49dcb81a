"""
ClickHouse 기반 시세포착 저장소.

[ 역할 ]
    signal_configs / market_signals / breakout_states 테이블에 저장.
    스키마는 ingestion/clickhouse_schema.py::initialize_schema()가 만든다.

[ 갱신/삭제 방식 ]
    설정과 돌파 상태는 ReplacingMergeTree(updated_at) 테이블.
    같은 키로 새 행을 넣으면 갱신, is_deleted=1 행을 넣으면 삭제.
    조회는 FINAL로 최신 행만 본다.
"""

from datetime import datetime
from typing import Any

from clickhouse_connect.driver import Client

from cci_trading.ingestion.clickhouse_schema import get_client
from cci_trading.monitoring.models import BreakoutStateRecord, MarketSignal, MarketSignalConfig
from cci_trading.storage.signal_store import SignalStore

_CONFIG_COLUMNS = [
    "config_id", "username", "name", "symbol", "timeframe", "check_interval", "is_active",
    "seed_money", "cci_period", "cci_breakout_value", "cci_entry_value", "rsi_period", "created_at",
]
_SIGNAL_COLUMNS = [
    "signal_id", "config_id", "username", "symbol", "signal_type", "direction", "price", "volume",
    "indicator_value", "extreme_value", "rsi_value", "breakout_value", "entry_value", "timeframe",
    "timestamp", "reason", "status", "is_read",
]
_STATE_COLUMNS = [
    "config_id", "state", "extreme_cci", "last_cci", "last_candle_time", "last_checked_at",
]


def _rows_as_dicts(result: Any) -> list[dict[str, Any]]:
    return [dict(zip(result.column_names, row)) for row in result.result_rows]


class ClickHouseSignalStore(SignalStore):
    """ClickHouse 저장소.

    사용 예:
        store = ClickHouseSignalStore(host="localhost", password="password")
        store.get_configs("alice")
    """

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

    # ─── 설정 ─────────────────────────────────────────────────────────────

    def save_config(self, config: MarketSignalConfig) -> None:
        data = config.to_dict()
        data["is_active"] = int(config.is_active)
        row = [data[c] for c in _CONFIG_COLUMNS] + [0, datetime.now()]
        self.client.insert("signal_configs", [row],
                           column_names=_CONFIG_COLUMNS + ["is_deleted", "updated_at"])

    def get_configs(self, username: str) -> list[MarketSignalConfig]:
        result = self.client.query(
            f"""
            SELECT {", ".join(_CONFIG_COLUMNS)}
            FROM signal_configs FINAL
            WHERE username = %(username)s AND is_deleted = 0
            ORDER BY created_at
            """,
            parameters={"username": username},
        )
        configs = []
        for data in _rows_as_dicts(result):
            data["is_active"] = bool(data["is_active"])
            configs.append(MarketSignalConfig.from_dict(data))
        return configs

    def delete_config(self, config_id: str) -> None:
        self.client.insert("signal_configs", [[config_id, 1, datetime.now()]],
                           column_names=["config_id", "is_deleted", "updated_at"])
        self.delete_breakout_state(config_id)

    # ─── 신호 ─────────────────────────────────────────────────────────────

    def save_signal(self, signal: MarketSignal) -> None:
        data = signal.to_dict()
        data["is_read"] = int(signal.is_read)
        self.client.insert("market_signals", [[data[c] for c in _SIGNAL_COLUMNS]],
                           column_names=_SIGNAL_COLUMNS)

    def get_signals(self, username: str, limit: int = 50) -> list[MarketSignal]:
        result = self.client.query(
            f"""
            SELECT {", ".join(_SIGNAL_COLUMNS)}
            FROM market_signals
            WHERE username = %(username)s
            ORDER BY timestamp DESC
            LIMIT %(limit)s
            """,
            parameters={"username": username, "limit": limit},
        )
        signals = []
        for data in _rows_as_dicts(result):
            data["is_read"] = bool(data["is_read"])
            signals.append(MarketSignal.from_dict(data))
        return signals

    # ─── 돌파 상태 ────────────────────────────────────────────────────────

    def get_breakout_state(self, config_id: str) -> BreakoutStateRecord | None:
        result = self.client.query(
            f"""
            SELECT {", ".join(_STATE_COLUMNS)}
            FROM breakout_states FINAL
            WHERE config_id = %(config_id)s AND is_deleted = 0
            """,
            parameters={"config_id": config_id},
        )
        rows = _rows_as_dicts(result)
        return BreakoutStateRecord.from_dict(rows[0]) if rows else None

    def save_breakout_state(self, record: BreakoutStateRecord) -> None:
        data = record.to_dict()
        row = [data[c] for c in _STATE_COLUMNS] + [0, datetime.now()]
        self.client.insert("breakout_states", [row],
                           column_names=_STATE_COLUMNS + ["is_deleted", "updated_at"])

    def delete_breakout_state(self, config_id: str) -> None:
        self.client.insert("breakout_states", [[config_id, 1, datetime.now()]],
                           column_names=["config_id", "is_deleted", "updated_at"])

    def close(self) -> None:
        if hasattr(self.client, "close"):
            self.client.close()
