"""
물타기 단계별 추가 금액 정책 구현.

[ 역할 ]
    core/trading_strategy.py::StagePolicy의 구현체 모음.
    "손실 기준 도달 시 얼마를 더 넣을 것인가"만 결정한다.
    언제 물타기할지는 backtest/position_manager.py가 판단.

[ 정책 비교 ] (start_amount = 2,000, 절반매도 없을 때)
    단계            1      2      3       4
    doubling      2,000  4,000  8,000  16,000   지금까지 투입한 총액만큼
    current_size  2,000  4,000  8,000  16,000   현재 포지션 원가만큼 (절반매도 시 줄어듦)
    seed_fraction 2,000  4,000  8,000  16,000   시드 × 시작비율 × 2^(단계-1), 포지션과 무관

    절반매도가 끼면 세 정책의 결과가 달라진다.

[ 파라미터 ]
    seed_money, start_amount: StrategySettings에서 참조
"""

from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import StagePolicy
from cci_trading.data.position import Position
from cci_trading.strategies import register


@register("doubling")
class DoublingPolicy(StagePolicy):
    """k단계 투입액 = 0 ~ k-1단계에 투입한 금액의 합 (마틴게일 2배)."""

    def __init__(self, settings: StrategySettings):
        super().__init__(name="doubling", settings=settings)

    def stage_amount(self, position: Position, stage_index: int) -> float:
        return position.committed_amount


@register("current_size")
class CurrentSizePolicy(StagePolicy):
    """k단계 투입액 = 현재 포지션 원가 (total_amount)."""

    def __init__(self, settings: StrategySettings):
        super().__init__(name="current_size", settings=settings)

    def stage_amount(self, position: Position, stage_index: int) -> float:
        return position.total_amount


@register("seed_fraction")
class SeedFractionPolicy(StagePolicy):
    """k단계 투입액 = seed_money × (start_amount / seed_money) × 2^(k-1).

    시드 대비 고정 비율로 늘려가는 방식 (20% → 20%, 40%, 80%, 160%).
    """

    def __init__(self, settings: StrategySettings):
        super().__init__(name="seed_fraction", settings=settings)

    @property
    def start_ratio(self) -> float:
        return self.settings.start_amount / self.settings.seed_money

    def stage_amount(self, position: Position, stage_index: int) -> float:
        return self.settings.seed_money * self.start_ratio * 2 ** (stage_index - 1)
