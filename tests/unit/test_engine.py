import pytest

from cci_trading.backtest.engine import BacktestEngine
from cci_trading.core.data_provider import Interval
from cci_trading.core.errors import DataSourceError, InvalidSettingsError
from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction
from cci_trading.data.market_data import MarketDataManager, limit_for_period
from cci_trading.data.mock_provider import MockCandleSource
from cci_trading.data.position import TradeType
from cci_trading.data.sample_data import generate_sample_candles

# cci_length=4 기준: [100 x4, 90] → CCI -133.3 (돌파), 다음 90 → -66.7 (복귀)
BREAKOUT_CLOSES = [100.0, 100.0, 100.0, 100.0, 90.0, 90.0]
SETTINGS = StrategySettings(cci_length=4)


def test_flat_prices_produce_no_trades(make_candles):
    result = BacktestEngine().run(StrategySettings(), make_candles([100.0] * 60))

    assert result.total_trades == 0
    assert result.total_positions == 0
    assert result.final_capital == StrategySettings().seed_money


def test_too_few_candles_is_not_an_error(make_candles):
    result = BacktestEngine().run(StrategySettings(), make_candles([100.0] * 5))
    assert result.total_trades == 0
    assert result.candle_count == 5


@pytest.mark.parametrize("mode", ["excursion", "crossover"])
def test_breakout_recovery_opens_one_long(make_candles, mode):
    candles = make_candles(BREAKOUT_CLOSES + [90.0, 90.0])
    engine = BacktestEngine()
    result = engine.run(SETTINGS.with_overrides(signal_mode=mode), candles)

    entries = [t for t in result.trades if t.trade_type is TradeType.STAGE_ENTRY]
    assert len(entries) == 1
    entry = entries[0]
    assert entry.direction is Direction.LONG
    assert entry.stage == 0
    assert entry.amount == pytest.approx(SETTINGS.seed_money * 0.2)
    assert entry.timestamp == candles[5].timestamp
    assert entry.entry_price == 90.0

    # 가격 변동이 없으므로 마지막 캔들에서 강제 청산
    assert result.trades[-1].trade_type is TradeType.FORCE_CLOSE
    assert result.trades[-1].timestamp == candles[-1].timestamp
    assert result.total_positions == 1
    assert len(engine.equity_curve) == len(candles) - SETTINGS.cci_length + 1


def test_profit_exit_after_entry(make_candles):
    candles = make_candles(BREAKOUT_CLOSES + [93.0])
    result = BacktestEngine().run(SETTINGS, candles)

    assert [t.trade_type for t in result.trades] == [TradeType.STAGE_ENTRY, TradeType.PROFIT_EXIT]
    assert result.win_rate == 100.0
    assert result.total_profit > 0
    assert result.final_capital == pytest.approx(SETTINGS.seed_money + sum(t.net_profit for t in result.trades))


def test_invalid_settings_rejected_before_run(make_candles):
    settings = StrategySettings(cci_length=0, entry_threshold=100, exit_threshold=120)
    with pytest.raises(InvalidSettingsError) as excinfo:
        BacktestEngine().run(settings, make_candles([100.0] * 30))
    assert len(excinfo.value.violations) == 2


def test_sample_run_invariants():
    settings = StrategySettings(timeframe="1h", entry_threshold=100, exit_threshold=90)
    candles = generate_sample_candles("BTCUSDT", Interval.H1, 1500, seed=7)
    result = BacktestEngine().run(settings, candles)

    # 동시에 열린 포지션은 최대 1개
    for prev, cur in zip(result.positions, result.positions[1:]):
        assert cur.start_time >= prev.end_time
    # 모든 포지션은 전량 청산으로 끝난다
    assert all(p.exit_reason.is_full_exit for p in result.positions)
    assert sum(1 for t in result.trades if t.trade_type.is_full_exit) == result.total_positions
    assert [t.timestamp for t in result.trades] == sorted(t.timestamp for t in result.trades)
    assert result.final_capital == pytest.approx(settings.seed_money + sum(t.net_profit for t in result.trades))
    assert result.max_drawdown >= 0.0
    assert all(t.stage <= settings.max_stage for t in result.trades)


def test_same_input_same_result():
    candles = generate_sample_candles("ETHUSDT", Interval.H4, 800, seed=3)
    settings = StrategySettings(symbol="ETHUSDT")
    first = BacktestEngine().run(settings, candles).to_dict()
    second = BacktestEngine().run(settings, candles).to_dict()
    assert first == second


def test_run_backtest_uses_period_candle_count(make_candles):
    source = MockCandleSource()
    source.load_candles("BTCUSDT", Interval.D1, make_candles([100.0] * 400, step=Interval.D1.milliseconds))
    engine = BacktestEngine(MarketDataManager(source))

    result = engine.run_backtest(StrategySettings(timeframe="1d", test_period="3개월"))

    assert source.calls == [("BTCUSDT", Interval.D1, limit_for_period("3개월", Interval.D1))]
    assert result.candle_count == 90


def test_run_backtest_propagates_data_errors():
    source = MockCandleSource()
    source.fail_with = DataSourceError("boom", symbol="BTCUSDT")
    engine = BacktestEngine(MarketDataManager(source))
    with pytest.raises(DataSourceError):
        engine.run_backtest(StrategySettings())


def test_run_backtest_marks_synthetic_fallback():
    source = MockCandleSource()
    source.fail_with = DataSourceError("boom", symbol="BTCUSDT")
    engine = BacktestEngine(MarketDataManager(source, fallback_to_sample=True))

    result = engine.run_backtest(StrategySettings(test_period="1주일"))

    assert result.synthetic_data is True
    assert result.candle_count == limit_for_period("1주일", Interval.H4)


def test_generate_report_requires_run():
    assert "error" in BacktestEngine().generate_report()


def test_equity_curve_ends_at_final_capital(make_candles):
    engine = BacktestEngine()
    result = engine.run(SETTINGS, make_candles(BREAKOUT_CLOSES + [91.0]))

    assert result.trades[-1].trade_type is TradeType.FORCE_CLOSE
    assert result.trades[-1].fee > 0
    report = engine.generate_report()
    assert report["equity_curve"][-1]["equity"] == pytest.approx(result.final_capital)
    assert len(report["equity_curve"]) == 4


def test_equity_curve_matches_capital_on_sample_data():
    engine = BacktestEngine()
    candles = generate_sample_candles("BTCUSDT", Interval.H4, 600, seed=11)
    result = engine.run(StrategySettings(), candles)
    assert engine.equity_curve[-1][1] == pytest.approx(result.final_capital)
