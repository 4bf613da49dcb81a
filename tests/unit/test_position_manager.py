import pytest

from cci_trading.backtest.position_manager import PositionManager
from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction, EntrySignal
from cci_trading.data.position import TradeType

T0 = 1_700_000_000_000
HOUR = 60 * 60 * 1000


def open_position(manager, direction=Direction.LONG, price=100.0):
    signal = EntrySignal(direction=direction, price=price, timestamp=T0, cci=-90.0, previous_cci=-130.0)
    return manager.open(signal)


def test_open_creates_stage_zero_with_start_amount():
    manager = PositionManager(StrategySettings())
    trade = open_position(manager)

    assert trade.trade_type is TradeType.STAGE_ENTRY
    assert trade.stage == 0
    assert trade.amount == 2000.0
    assert trade.coins == pytest.approx(20.0)
    assert trade.fee == pytest.approx(0.8)
    assert trade.net_profit == pytest.approx(-0.8)
    assert manager.position.average_price == pytest.approx(100.0)
    assert "롱 진입" in trade.reason


def test_second_open_is_rejected():
    manager = PositionManager(StrategySettings())
    open_position(manager)
    with pytest.raises(RuntimeError):
        open_position(manager)


def test_stage_one_averaging_from_first_entry():
    manager = PositionManager(StrategySettings())
    open_position(manager)

    trade = manager.on_candle(97.9, T0 + HOUR, -120.0)

    position = manager.position
    assert trade.trade_type is TradeType.STAGE_ENTRY
    assert trade.stage == 1
    assert trade.amount == pytest.approx(2000.0)
    assert position.current_stage == 1
    assert position.total_amount == pytest.approx(4000.0)
    assert position.average_price == pytest.approx(4000.0 / (20.0 + 2000.0 / 97.9))


def test_no_averaging_below_threshold():
    manager = PositionManager(StrategySettings())
    open_position(manager)
    assert manager.on_candle(98.5, T0 + HOUR, -100.0) is None
    assert manager.position.current_stage == 0


def test_stage_zero_profit_exit_closes_position():
    manager = PositionManager(StrategySettings())
    open_position(manager)

    trade = manager.on_candle(104.0, T0 + HOUR, 50.0)

    assert trade.trade_type is TradeType.PROFIT_EXIT
    assert trade.gross_profit == pytest.approx(80.0)
    assert trade.fee == pytest.approx(2080.0 * 0.04 / 100)
    assert trade.net_profit == pytest.approx(trade.gross_profit - trade.fee)
    assert manager.position is None
    assert not manager.is_open

    result = manager.results[0]
    assert result.exit_reason is TradeType.PROFIT_EXIT
    assert result.total_profit == pytest.approx(80.0 - 0.8 - 0.832)
    assert result.duration_ms == HOUR


def test_half_sell_keeps_average_and_lowers_stage():
    manager = PositionManager(StrategySettings())
    open_position(manager)
    manager.on_candle(97.9, T0 + HOUR, -120.0)
    average = manager.position.average_price
    coins = manager.position.total_coins

    trade = manager.on_candle(99.5, T0 + 2 * HOUR, -20.0)

    position = manager.position
    assert trade.trade_type is TradeType.HALF_SELL
    assert trade.stage == 1
    assert trade.coins == pytest.approx(coins / 2)
    assert trade.gross_profit == pytest.approx(coins / 2 * (99.5 - average))
    assert position.current_stage == 0
    assert position.total_amount == pytest.approx(2000.0)
    assert position.average_price == pytest.approx(average)
    assert position.committed_amount == pytest.approx(4000.0)


def test_full_exit_after_averaging():
    manager = PositionManager(StrategySettings())
    open_position(manager)
    manager.on_candle(97.9, T0 + HOUR, -120.0)

    trade = manager.on_candle(103.0, T0 + 2 * HOUR, 40.0)

    assert trade.trade_type is TradeType.FULL_EXIT
    assert manager.position is None
    assert manager.results[0].max_stage == 1


def test_stop_loss_only_at_final_stage():
    manager = PositionManager(StrategySettings(max_stage=1))
    open_position(manager)
    manager.on_candle(97.9, T0 + HOUR, -120.0)

    trade = manager.on_candle(88.0, T0 + 2 * HOUR, -200.0)

    assert trade.trade_type is TradeType.STOP_LOSS
    assert trade.gross_profit < 0
    assert manager.position is None


def test_max_stage_zero_goes_straight_to_stop_loss():
    manager = PositionManager(StrategySettings(max_stage=0))
    open_position(manager)
    assert manager.on_candle(95.0, T0 + HOUR, -150.0) is None
    trade = manager.on_candle(89.0, T0 + 2 * HOUR, -200.0)
    assert trade.trade_type is TradeType.STOP_LOSS


def test_one_capital_event_per_candle():
    manager = PositionManager(StrategySettings())
    open_position(manager)

    trade = manager.on_candle(80.0, T0 + HOUR, -250.0)

    assert trade.trade_type is TradeType.STAGE_ENTRY
    assert trade.stage == 1
    assert len(manager.trades) == 2
    assert manager.is_open


def test_short_never_averages():
    manager = PositionManager(StrategySettings())
    open_position(manager, Direction.SHORT)

    for i, price in enumerate((103.0, 105.0, 108.0, 109.5), start=1):
        assert manager.on_candle(price, T0 + i * HOUR, 150.0) is None
    trade = manager.on_candle(111.0, T0 + 5 * HOUR, 200.0)

    assert trade.trade_type is TradeType.STOP_LOSS
    types = [t.trade_type for t in manager.trades]
    assert types == [TradeType.STAGE_ENTRY, TradeType.STOP_LOSS]
    assert all(t.stage == 0 for t in manager.trades)


def test_short_profit_exit():
    manager = PositionManager(StrategySettings())
    open_position(manager, Direction.SHORT)

    trade = manager.on_candle(96.0, T0 + HOUR, -20.0)

    assert trade.trade_type is TradeType.PROFIT_EXIT
    assert trade.gross_profit == pytest.approx(80.0)
    assert manager.results[0].direction is Direction.SHORT


def test_force_close():
    manager = PositionManager(StrategySettings())
    assert manager.force_close(100.0, T0, 0.0) is None

    open_position(manager)
    trade = manager.force_close(101.0, T0 + HOUR, 10.0)

    assert trade.trade_type is TradeType.FORCE_CLOSE
    assert trade.exit_price == 101.0
    assert manager.results[0].exit_reason is TradeType.FORCE_CLOSE
    assert manager.position is None


def test_position_ids_increase():
    manager = PositionManager(StrategySettings())
    open_position(manager)
    manager.force_close(100.0, T0 + HOUR, 0.0)
    open_position(manager)
    manager.force_close(100.0, T0 + 2 * HOUR, 0.0)
    assert [r.position_id for r in manager.results] == [1, 2]
