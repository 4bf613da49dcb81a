"""
매매 방향 / 물타기 금액 정책 추상 클래스 정의.

[ 역할 ]
    - Direction: 진입 방향 (LONG / SHORT)
    - EntrySignal: 신호 감지기가 만든 진입 신호
    - StagePolicy: 물타기 단계별 추가 투입 금액을 결정하는 정책 인터페이스

[ 구현체 ]
    - strategies/stage_policies.py::DoublingPolicy      ("doubling", 기본값)
    - strategies/stage_policies.py::CurrentSizePolicy   ("current_size")
    - strategies/stage_policies.py::SeedFractionPolicy  ("seed_fraction")

[ 호출하는 곳 ]
    - backtest/position_manager.py::PositionManager가 물타기 조건 충족 시
      policy.stage_amount(position, stage_index)를 호출하여 투입 금액 결정

[ 데이터 흐름 ]
    settings.stage_policy(이름) → strategies.create_policy() → StagePolicy
    position + 다음 단계 번호 → stage_amount() → 추가 투입 금액
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cci_trading.core.settings import StrategySettings
    from cci_trading.data.position import Position


class Direction(Enum):
    """진입 방향."""
    LONG = "LONG"
    SHORT = "SHORT"


@dataclass(frozen=True)
class EntrySignal:
    """신호 감지기가 만든 진입 신호. PositionManager.open()에 전달됨."""
    direction: Direction
    price: float              # 신호 발생 캔들 종가
    timestamp: int
    cci: float                # 신호 발생 시점 CCI
    previous_cci: float       # 직전 샘플 CCI
    confidence: float = 0.0   # 0~1, 이탈 깊이 기반
    reason: str = ""


class StagePolicy(ABC):
    """물타기 금액 정책 추상 클래스.

    새 정책을 만들려면 이 클래스를 상속받아 stage_amount()를 구현하고
    strategies/ 디렉토리에 @register("이름")으로 등록하면 된다.
    """

    def __init__(self, name: str, settings: StrategySettings):
        self.name = name
        self.settings = settings

    @abstractmethod
    def stage_amount(self, position: Position, stage_index: int) -> float:
        """stage_index(1~4) 단계로 물타기할 때 추가 투입 금액.

        Args:
            position: 현재 열린 포지션 (stages, total_amount 등 참조)
            stage_index: 새로 추가될 단계 번호

        Returns:
            추가 투입 금액 (> 0)
        """
        ...

    def __call__(self, position: Position, stage_index: int) -> float:
        return self.stage_amount(position, stage_index)
