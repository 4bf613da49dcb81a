"""
포지션 / 거래 기록 모듈.

[ 역할 ]
    시뮬레이션 중인 포지션(Position)과 단계(Stage), 자금 이동 기록(TradeExecution)을 정의.
    PositionManager가 이 클래스를 통해 상태를 갱신한다.

[ 주요 클래스 ]
    Stage          - 물타기 1단계 진입 (진입가, 투입금액, 코인 수량)
    Position       - 열린 포지션. 단계 목록과 합계/평균단가 추적
    TradeType      - 거래 종류 (단계 진입, 익절, 절반매도, 손절, 강제청산)
    TradeExecution - 개별 자금 이동 기록 (생성 후 변경 불가)

[ 불변식 ]
    - total_amount == Σ stage.amount, total_coins == Σ stage.coins
    - average_price == total_amount / total_coins (단계 추가/축소 후 항상 재계산)
    - 포지션은 최소 1개 단계가 있어야 average_price를 읽을 수 있다

[ 호출하는 곳 ]
    - backtest/position_manager.py: add_stage(), reduce_half()로 상태 갱신
    - backtest/metrics.py: TradeExecution 목록으로 성과 계산
"""

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any

from cci_trading.core.trading_strategy import Direction


class TradeType(Enum):
    """거래 종류."""
    STAGE_ENTRY = "STAGE_ENTRY"    # 0~4단계 진입
    PROFIT_EXIT = "PROFIT_EXIT"    # 0단계 익절 (전량)
    FULL_EXIT = "FULL_EXIT"        # 물타기 이후 익절 (전량)
    HALF_SELL = "HALF_SELL"        # 절반 매도
    STOP_LOSS = "STOP_LOSS"        # 손절 (전량)
    FORCE_CLOSE = "FORCE_CLOSE"    # 데이터 종료 시 강제 청산 (전량)

    @property
    def is_entry(self) -> bool:
        return self is TradeType.STAGE_ENTRY

    @property
    def is_full_exit(self) -> bool:
        return self in (TradeType.PROFIT_EXIT, TradeType.FULL_EXIT,
                        TradeType.STOP_LOSS, TradeType.FORCE_CLOSE)


@dataclass(frozen=True)
class Stage:
    """물타기 1단계."""
    index: int            # 단계 번호 (0~4)
    entry_price: float
    amount: float         # 투입 금액 (절반매도 시 함께 축소)
    coins: float          # amount / entry_price
    timestamp: int


@dataclass
class Position:
    """시뮬레이션 중인 포지션. 한 번의 백테스트에서 동시에 최대 1개."""
    position_id: int
    direction: Direction
    symbol: str
    opened_at: int
    entry_cci: float = 0.0
    previous_cci: float = 0.0
    stages: list[Stage] = field(default_factory=list)
    current_stage: int = 0            # 현재 단계 (절반매도 시 1 감소)
    max_stage_reached: int = 0
    committed_amount: float = 0.0     # 지금까지 진입에 투입한 금액 합계 (절반매도로 줄지 않음)
    total_amount: float = 0.0
    total_coins: float = 0.0
    average_price: float = 0.0

    @property
    def first_entry_price(self) -> float:
        return self.stages[0].entry_price

    def add_stage(self, price: float, amount: float, timestamp: int, stage_index: int) -> Stage:
        """단계 추가 후 합계/평균단가 재계산."""
        stage = Stage(
            index=stage_index,
            entry_price=price,
            amount=amount,
            coins=amount / price,
            timestamp=timestamp,
        )
        self.stages.append(stage)
        self.current_stage = stage_index
        self.max_stage_reached = max(self.max_stage_reached, stage_index)
        self.committed_amount += amount
        self._recalculate()
        return stage

    def reduce_half(self) -> tuple[float, float]:
        """모든 단계를 절반으로 축소. (매도한 코인 수, 매도분 원가) 반환.

        평균단가는 바뀌지 않고, 현재 단계는 1 감소 (최소 0).
        """
        sold_coins = self.total_coins / 2
        sold_cost = self.total_amount / 2
        self.stages = [replace(s, amount=s.amount / 2, coins=s.coins / 2) for s in self.stages]
        self.current_stage = max(0, self.current_stage - 1)
        self._recalculate()
        return sold_coins, sold_cost

    def profit_rate(self, price: float) -> float:
        """평균단가 대비 수익률 (%). SHORT는 가격 하락이 수익."""
        if self.direction is Direction.LONG:
            return (price - self.average_price) / self.average_price * 100
        return (self.average_price - price) / self.average_price * 100

    def loss_rate(self, price: float, reference: float | None = None) -> float:
        """기준가(기본: 평균단가) 대비 손실률 (%). 수익이면 음수."""
        base = self.average_price if reference is None else reference
        if self.direction is Direction.LONG:
            return (base - price) / base * 100
        return (price - base) / base * 100

    def _recalculate(self) -> None:
        self.total_amount = sum(s.amount for s in self.stages)
        self.total_coins = sum(s.coins for s in self.stages)
        # stages가 비어 있으면 평균단가를 계산하지 않는다 (0 나누기 방지)
        self.average_price = self.total_amount / self.total_coins if self.total_coins > 0 else 0.0


@dataclass(frozen=True)
class TradeExecution:
    """자금 이동 1건. 생성 후 변경하지 않는다 (append-only)."""
    position_id: int
    trade_type: TradeType
    direction: Direction
    stage: int
    entry_price: float        # 진입: 체결가 / 청산: 평균단가
    exit_price: float | None  # 청산가 (진입은 None)
    amount: float             # 이동 금액 (진입: 투입액 / 청산: 매도 대금)
    coins: float
    fee: float
    gross_profit: float       # 수수료 전 손익 (진입은 0)
    net_profit: float         # gross_profit - fee
    timestamp: int
    entry_cci: float = 0.0
    exit_cci: float = 0.0
    profit_rate: float = 0.0  # 평균단가 대비 수익률 (%)
    reason: str = ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["trade_type"] = self.trade_type.value
        data["direction"] = self.direction.value
        return data
