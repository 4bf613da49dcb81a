import threading

import pytest

from cci_trading.core.data_provider import Interval
from cci_trading.core.errors import DataSourceError, InvalidSettingsError
from cci_trading.core.trading_strategy import Direction
from cci_trading.data.mock_provider import MockCandleSource
from cci_trading.monitoring.models import BreakoutStateRecord, MarketSignal, MarketSignalConfig
from cci_trading.monitoring.monitor import MonitorOutcome, SignalMonitor, evaluate_config
from cci_trading.monitoring.notifier import NotificationSink, format_signal
from cci_trading.signals.detector import BreakoutState
from cci_trading.storage.signal_store import MemorySignalStore

NOW = 1_800_000_000_000
BREAKOUT = [100.0, 100.0, 100.0, 100.0, 90.0]   # 마지막 CCI -133.3
RECOVERY = BREAKOUT + [90.0]                     # 마지막 CCI -66.7


class CollectingNotifier(NotificationSink):
    def __init__(self):
        self.signals = []

    def notify(self, signal):
        self.signals.append(signal)


def make_config(**kwargs):
    kwargs.setdefault("username", "alice")
    kwargs.setdefault("timeframe", "4h")
    kwargs.setdefault("cci_period", 4)
    return MarketSignalConfig(**kwargs)


def test_first_check_only_arms(make_candles):
    config = make_config()
    state, signals = evaluate_config(config, make_candles(BREAKOUT), None, NOW)

    assert signals == []
    assert state.state is BreakoutState.LONG_BREAKOUT
    assert state.extreme_cci == pytest.approx(-133.333, abs=1e-3)
    assert state.last_candle_time == make_candles(BREAKOUT)[-1].timestamp
    assert state.last_checked_at == NOW


def test_first_check_does_not_report_past_signals(make_candles):
    state, signals = evaluate_config(make_config(), make_candles(RECOVERY), None, NOW)
    assert signals == []
    assert state.state is BreakoutState.NO_BREAKOUT


def test_signal_fires_once_on_recovery(make_candles):
    config = make_config()
    state, _ = evaluate_config(config, make_candles(BREAKOUT), None, NOW)

    state, signals = evaluate_config(config, make_candles(RECOVERY), state, NOW + 1)
    assert len(signals) == 1
    signal = signals[0]
    assert signal.direction is Direction.LONG
    assert signal.price == 90.0
    assert signal.extreme_value == pytest.approx(-133.333, abs=1e-3)
    assert signal.rsi_value == 50.0      # RSI 데이터 부족
    assert signal.strength() == 66
    assert signal.config_id == config.config_id
    assert "과매도" in signal.reason
    assert state.state is BreakoutState.NO_BREAKOUT

    # 같은 캔들로 다시 점검해도 신호 없음
    again, repeated = evaluate_config(config, make_candles(RECOVERY), state, NOW + 2)
    assert repeated == []
    assert again.last_candle_time == state.last_candle_time


def test_too_few_candles_keeps_state(make_candles):
    previous = BreakoutStateRecord("cfg", BreakoutState.SHORT_BREAKOUT, 150.0, 140.0, 123)
    state, signals = evaluate_config(make_config(config_id="cfg"), make_candles([1.0, 2.0]), previous, NOW)
    assert signals == []
    assert state.state is BreakoutState.SHORT_BREAKOUT
    assert state.last_candle_time == 123
    assert state.last_checked_at == NOW


def build_monitor(source, store, **kwargs):
    notifier = CollectingNotifier()
    monitor = SignalMonitor(source, store, notifier, clock=lambda: NOW / 1000, **kwargs)
    return monitor, notifier


# 롱 돌파→복귀 후 숏 돌파→복귀 (cci_period=4)
# CCI: 0, -133.3, -66.7(LONG), -44.4, 0, +133.3, +66.7(SHORT)
TWO_CYCLES = [100.0, 100.0, 100.0, 100.0, 90.0, 90.0, 90.0, 90.0, 100.0, 100.0]


def test_every_cycle_between_checks_is_reported(make_candles):
    config = make_config()
    candles = make_candles(TWO_CYCLES)
    state, _ = evaluate_config(config, candles[:4], None, NOW)

    state, signals = evaluate_config(config, candles, state, NOW + 1)

    assert [s.direction for s in signals] == [Direction.LONG, Direction.SHORT]
    assert [s.timestamp for s in signals] == [candles[5].timestamp, candles[9].timestamp]
    assert signals[1].extreme_value == pytest.approx(133.333, abs=1e-3)
    assert state.state is BreakoutState.NO_BREAKOUT
    assert state.last_candle_time == candles[-1].timestamp


def test_monitor_notifies_each_cycle_once(make_candles):
    source = MockCandleSource()
    store = MemorySignalStore()
    config = make_config()
    store.save_config(config)
    monitor, notifier = build_monitor(source, store)
    candles = make_candles(TWO_CYCLES)

    source.load_candles("BTCUSDT", Interval.H4, candles[:4])
    monitor.run_once(monitor.load_configs(["alice"]))
    source.load_candles("BTCUSDT", Interval.H4, candles)
    result = monitor.run_once(monitor.load_configs(["alice"]))[0]

    assert result.outcome is MonitorOutcome.SIGNAL
    assert len(result.signals) == 2
    assert notifier.signals == list(result.signals)
    assert [s.direction for s in store.get_signals("alice")] == [Direction.SHORT, Direction.LONG]

    monitor.run_once(monitor.load_configs(["alice"]))
    assert len(notifier.signals) == 2


def test_monitor_saves_and_notifies(make_candles):
    source = MockCandleSource()
    store = MemorySignalStore()
    config = make_config()
    store.save_config(config)
    monitor, notifier = build_monitor(source, store)

    source.load_candles("BTCUSDT", Interval.H4, make_candles(BREAKOUT))
    first = monitor.run_once(monitor.load_configs(["alice"]))
    assert [r.outcome for r in first] == [MonitorOutcome.NO_SIGNAL]
    assert store.get_breakout_state(config.config_id).state is BreakoutState.LONG_BREAKOUT

    source.load_candles("BTCUSDT", Interval.H4, make_candles(RECOVERY))
    second = monitor.run_once(monitor.load_configs(["alice"]))
    assert second[0].outcome is MonitorOutcome.SIGNAL
    assert notifier.signals == list(second[0].signals)
    assert store.get_signals("alice") == list(second[0].signals)

    third = monitor.run_once(monitor.load_configs(["alice"]))
    assert third[0].outcome is MonitorOutcome.NO_SIGNAL
    assert len(notifier.signals) == 1


def test_monitor_reports_data_errors_and_short_history(make_candles):
    source = MockCandleSource()
    store = MemorySignalStore()
    monitor, notifier = build_monitor(source, store)

    source.load_candles("BTCUSDT", Interval.H4, make_candles([100.0, 101.0]))
    result = monitor.check_config(make_config())
    assert result.outcome is MonitorOutcome.INSUFFICIENT_DATA

    source.fail_with = DataSourceError("HTTP 503 오류", symbol="BTCUSDT")
    result = monitor.check_config(make_config())
    assert result.outcome is MonitorOutcome.DATA_ERROR
    assert result.error == "HTTP 503 오류"
    assert notifier.signals == []


def test_monitor_requests_enough_candles():
    source = MockCandleSource()
    monitor, _ = build_monitor(source, MemorySignalStore(), candle_count=10)
    monitor.check_config(make_config(cci_period=30))
    assert source.calls == [("BTCUSDT", Interval.H4, 30)]


def test_cancel_and_inactive_configs(make_candles):
    source = MockCandleSource()
    source.load_candles("BTCUSDT", Interval.H4, make_candles(BREAKOUT))
    cancel = threading.Event()
    monitor, _ = build_monitor(source, MemorySignalStore(), cancel_event=cancel)

    results = monitor.run_once([make_config(is_active=False), make_config()])
    assert len(results) == 1

    cancel.set()
    assert monitor.run_once([make_config()]) == []
    monitor.run_forever(["alice"], interval=0)   # 즉시 종료


def test_config_validation():
    assert make_config().is_valid()
    config = make_config(username=" ", cci_breakout_value=80, timeframe="2h")
    with pytest.raises(InvalidSettingsError) as excinfo:
        config.validate()
    assert len(excinfo.value.violations) == 3
    assert make_config().summary() == "CCI(4) 100↑/90↓ • BTCUSDT • 4h (15분)"


def test_model_dicts_round_trip():
    config = make_config(name="테스트")
    assert MarketSignalConfig.from_dict(config.to_dict()) == config

    signal = MarketSignal(
        config_id="c", username="alice", symbol="ETHUSDT", direction=Direction.SHORT,
        price=3000.0, volume=12.0, indicator_value=95.0, timeframe="15m",
        timestamp=NOW, extreme_value=250.0, breakout_value=100.0, entry_value=90.0,
    )
    data = signal.to_dict()
    assert data["direction"] == "SHORT"
    assert MarketSignal.from_dict(data) == signal
    assert signal.strength() == 100
    assert "SHORT" in format_signal(signal)

    record = BreakoutStateRecord("c", BreakoutState.LONG_BREAKOUT, -150.0, -120.0, NOW, NOW)
    assert BreakoutStateRecord.from_dict(record.to_dict()) == record
