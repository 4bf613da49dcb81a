from types import SimpleNamespace

import pytest

from cci_trading.core.trading_strategy import Direction
from cci_trading.monitoring.models import BreakoutStateRecord, MarketSignal, MarketSignalConfig
from cci_trading.signals.detector import BreakoutState
from cci_trading.storage.clickhouse_store import ClickHouseSignalStore
from cci_trading.storage.signal_store import MemorySignalStore


def make_signal(username="alice", timestamp=1000, **kwargs):
    return MarketSignal(
        config_id="cfg", username=username, symbol="BTCUSDT", direction=Direction.LONG,
        price=100.0, volume=1.0, indicator_value=-80.0, timeframe="15m",
        timestamp=timestamp, **kwargs,
    )


def test_memory_store_configs_are_copies():
    store = MemorySignalStore()
    config = MarketSignalConfig(username="alice")
    store.save_config(config)

    loaded = store.get_configs("alice")[0]
    loaded.symbol = "ETHUSDT"

    assert store.get_configs("alice")[0].symbol == "BTCUSDT"
    assert store.get_configs("bob") == []


def test_memory_store_delete_config_drops_state():
    store = MemorySignalStore()
    config = MarketSignalConfig(username="alice")
    store.save_config(config)
    store.save_breakout_state(BreakoutStateRecord(config.config_id, BreakoutState.LONG_BREAKOUT, -130.0))

    store.delete_config(config.config_id)

    assert store.get_configs("alice") == []
    assert store.get_breakout_state(config.config_id) is None


def test_memory_store_signals_newest_first():
    store = MemorySignalStore()
    for ts in (1000, 3000, 2000):
        store.save_signal(make_signal(timestamp=ts))
    store.save_signal(make_signal(username="bob", timestamp=5000))

    signals = store.get_signals("alice", limit=2)
    assert [s.timestamp for s in signals] == [3000, 2000]


class FakeClient:
    """insert 기록 + 테이블별 미리 준비한 조회 결과."""

    def __init__(self):
        self.inserts = []
        self.queries = []
        self.results = {}
        self.closed = False

    def insert(self, table, rows, column_names=None):
        self.inserts.append((table, rows, column_names))

    def query(self, query, parameters=None):
        self.queries.append((query, parameters))
        for table, (columns, rows) in self.results.items():
            if table in query:
                return SimpleNamespace(column_names=columns, result_rows=rows)
        return SimpleNamespace(column_names=[], result_rows=[])

    def close(self):
        self.closed = True


def test_clickhouse_save_config_writes_live_row():
    client = FakeClient()
    store = ClickHouseSignalStore(client=client)
    config = MarketSignalConfig(username="alice", is_active=False)

    store.save_config(config)

    table, rows, columns = client.inserts[0]
    assert table == "signal_configs"
    row = dict(zip(columns, rows[0]))
    assert row["config_id"] == config.config_id
    assert row["is_active"] == 0
    assert row["is_deleted"] == 0


def test_clickhouse_get_configs_maps_columns():
    client = FakeClient()
    config = MarketSignalConfig(username="alice", symbol="ETHUSDT")
    data = config.to_dict()
    columns = list(data)
    data["is_active"] = 1
    client.results["signal_configs"] = (columns, [tuple(data[c] for c in columns)])

    configs = ClickHouseSignalStore(client=client).get_configs("alice")

    assert configs == [config]
    query, params = client.queries[0]
    assert "FINAL" in query
    assert "is_deleted = 0" in query
    assert params == {"username": "alice"}


def test_clickhouse_delete_writes_tombstones():
    client = FakeClient()
    ClickHouseSignalStore(client=client).delete_config("cfg")

    tables = [(table, rows[0][:2]) for table, rows, _ in client.inserts]
    assert tables == [("signal_configs", ["cfg", 1]), ("breakout_states", ["cfg", 1])]


def test_clickhouse_breakout_state_round_trip():
    client = FakeClient()
    store = ClickHouseSignalStore(client=client)
    record = BreakoutStateRecord("cfg", BreakoutState.SHORT_BREAKOUT, 160.0, 150.0, 2000, 3000)

    store.save_breakout_state(record)
    _, rows, columns = client.inserts[0]
    saved = dict(zip(columns, rows[0]))
    assert saved["state"] == "SHORT_BREAKOUT"

    state_columns = columns[:-2]
    client.results["breakout_states"] = (state_columns, [tuple(saved[c] for c in state_columns)])
    assert store.get_breakout_state("cfg") == record


def test_clickhouse_missing_state_is_none():
    assert ClickHouseSignalStore(client=FakeClient()).get_breakout_state("nope") is None


def test_clickhouse_signals():
    client = FakeClient()
    store = ClickHouseSignalStore(client=client)
    signal = make_signal(extreme_value=-140.0, breakout_value=100.0, entry_value=90.0)

    store.save_signal(signal)
    _, rows, columns = client.inserts[0]
    saved = dict(zip(columns, rows[0]))
    assert saved["direction"] == "LONG"
    assert saved["is_read"] == 0

    client.results["market_signals"] = (columns, [tuple(saved[c] for c in columns)])
    assert store.get_signals("alice", limit=10) == [signal]
    assert client.queries[-1][1] == {"username": "alice", "limit": 10}

    store.close()
    assert client.closed


@pytest.mark.parametrize("table", ["signal_configs", "breakout_states"])
def test_clickhouse_updates_use_versioned_rows(table):
    client = FakeClient()
    store = ClickHouseSignalStore(client=client)
    if table == "signal_configs":
        store.save_config(MarketSignalConfig(username="alice"))
    else:
        store.save_breakout_state(BreakoutStateRecord("cfg"))
    _, _, columns = client.inserts[0]
    assert columns[-2:] == ["is_deleted", "updated_at"]
