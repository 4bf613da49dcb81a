import pytest

from cci_trading.backtest.position_manager import PositionManager
from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction, EntrySignal
from cci_trading.strategies import create_policy, list_policies
from cci_trading.strategies.stage_policies import CurrentSizePolicy, DoublingPolicy, SeedFractionPolicy

T0 = 1_700_000_000_000
HOUR = 60 * 60 * 1000


def half_sold_position(policy_name):
    """1단계 물타기 후 절반 매도한 포지션 (committed 4000, total 2000)."""
    manager = PositionManager(StrategySettings(stage_policy=policy_name))
    manager.open(EntrySignal(Direction.LONG, 100.0, T0, -90.0, -130.0))
    manager.on_candle(97.9, T0 + HOUR, -120.0)
    manager.on_candle(99.5, T0 + 2 * HOUR, -20.0)
    return manager


def test_registry_lists_builtin_policies():
    assert {"doubling", "current_size", "seed_fraction"} <= set(list_policies())
    assert isinstance(create_policy("doubling", StrategySettings()), DoublingPolicy)


def test_unknown_policy_raises():
    with pytest.raises(ValueError, match="알 수 없는 물타기 정책"):
        create_policy("martingale_x10", StrategySettings())


def test_seed_fraction_amounts():
    policy = SeedFractionPolicy(StrategySettings())
    assert [policy.stage_amount(None, k) for k in (1, 2, 3, 4)] == [2000.0, 4000.0, 8000.0, 16000.0]


def test_doubling_uses_committed_amount_after_half_sell():
    manager = half_sold_position("doubling")
    trade = manager.on_candle(96.0, T0 + 3 * HOUR, -150.0)
    assert trade.stage == 1
    assert trade.amount == pytest.approx(4000.0)


def test_current_size_uses_remaining_cost_after_half_sell():
    manager = half_sold_position("current_size")
    assert isinstance(manager.policy, CurrentSizePolicy)
    trade = manager.on_candle(96.0, T0 + 3 * HOUR, -150.0)
    assert trade.amount == pytest.approx(2000.0)


def test_policies_agree_without_half_sell():
    settings = StrategySettings()
    amounts = {}
    for name in ("doubling", "current_size", "seed_fraction"):
        manager = PositionManager(settings.with_overrides(stage_policy=name))
        manager.open(EntrySignal(Direction.LONG, 100.0, T0, -90.0, -130.0))
        amounts[name] = manager.on_candle(97.9, T0 + HOUR, -120.0).amount
    assert amounts["doubling"] == amounts["current_size"] == amounts["seed_fraction"] == pytest.approx(2000.0)
