"""
CCI 물타기 전략 설정 정의.

[ 역할 ]
    백테스트 1회 실행에 필요한 모든 파라미터를 담는 StrategySettings.
    실행 전에 validate()로 불변식을 검사하고, 위반 항목은 모두 모아서
    InvalidSettingsError로 알린다 (값을 임의로 보정하지 않음).

[ 파라미터 ]
    symbol / timeframe:      대상 심볼과 캔들 시간프레임
    seed_money:              초기 자본
    start_amount:            0단계 진입 금액 (보통 시드의 20%)
    cci_length:              CCI 기간
    entry_threshold:         돌파 기준 (예: 110 → CCI < -110 또는 > +110)
    exit_threshold:          재진입 기준 (예: 100, entry_threshold보다 작아야 함)
    profit_target:           익절 목표 수익률 (%)
    half_sell_profit_rate:   물타기 이후 절반 매도 수익률 (%)
    stage1_loss~stage4_loss: 단계별 물타기 손실 기준 (%), 순증가
    stop_loss_percent:       최종 단계 손절 기준 (%)
    fee_rate:                거래당 수수료율 (%)
    max_stage:               최대 물타기 단계 (0~4)
    stage_policy:            단계별 추가 금액 정책 이름 (strategies/ 레지스트리)
    signal_mode:             진입 신호 판정 방식 ("excursion" / "crossover")

[ 호출하는 곳 ]
    - utils/config.py::Config가 config.yaml의 strategy 섹션으로 생성
    - backtest/engine.py::BacktestEngine.run()이 실행 전 validate() 호출
"""

from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from cci_trading.core.data_provider import Interval
from cci_trading.core.errors import InvalidSettingsError

SIGNAL_MODES = ("excursion", "crossover")


@dataclass(frozen=True)
class StrategySettings:
    """CCI 물타기 전략 설정. 기본값은 앱의 기본 설정과 동일."""
    symbol: str = "BTCUSDT"
    timeframe: str = "4h"
    seed_money: float = 10_000.0
    start_amount: float = 2_000.0          # 시드머니의 20%
    test_period: str = "1년"
    candle_count: int = 500                # test_period를 쓰지 않을 때 요청 캔들 수

    # CCI
    cci_length: int = 20
    entry_threshold: float = 110.0         # ±110 돌파
    exit_threshold: float = 100.0          # ±100 안쪽으로 복귀 시 진입

    # 손익절
    profit_target: float = 3.0             # 익절 목표 (%)
    half_sell_profit_rate: float = 0.5     # 물타기 후 절반 매도 (%)
    stop_loss_percent: float = 10.0        # 최종 단계 손절 (%)

    # 물타기 단계별 손실 기준 (%)
    stage1_loss: float = 2.0
    stage2_loss: float = 4.0
    stage3_loss: float = 8.0
    stage4_loss: float = 10.0

    fee_rate: float = 0.04                 # 0.04%
    max_stage: int = 4
    stage_policy: str = "doubling"
    signal_mode: str = "excursion"

    @property
    def interval(self) -> Interval:
        return Interval.parse(self.timeframe)

    @property
    def stage_losses(self) -> tuple[float, float, float, float]:
        """단계 n(1~4)으로 올라가는 손실 기준. stage_losses[n-1]."""
        return (self.stage1_loss, self.stage2_loss, self.stage3_loss, self.stage4_loss)

    def loss_threshold_for(self, next_stage: int) -> float:
        """next_stage(1~4)로 물타기하기 위한 손실 기준 (%)."""
        return self.stage_losses[next_stage - 1]

    def collect_violations(self) -> list[str]:
        """위반된 불변식 목록. 비어 있으면 유효한 설정."""
        violations: list[str] = []

        if not self.symbol.strip():
            violations.append("symbol이 비어 있습니다")
        try:
            Interval.parse(self.timeframe)
        except ValueError as e:
            violations.append(str(e))

        for name in ("seed_money", "start_amount", "entry_threshold", "exit_threshold",
                     "profit_target", "half_sell_profit_rate", "stop_loss_percent"):
            value = getattr(self, name)
            if value <= 0:
                violations.append(f"{name}는 0보다 커야 합니다 (현재 {value})")

        if self.cci_length <= 0:
            violations.append(f"cci_length는 0보다 커야 합니다 (현재 {self.cci_length})")
        if self.candle_count <= 0:
            violations.append(f"candle_count는 0보다 커야 합니다 (현재 {self.candle_count})")

        if self.exit_threshold >= self.entry_threshold:
            violations.append(
                f"exit_threshold({self.exit_threshold})는 "
                f"entry_threshold({self.entry_threshold})보다 작아야 합니다"
            )

        losses = self.stage_losses
        if any(v <= 0 for v in losses):
            violations.append(f"단계별 손실 기준은 모두 0보다 커야 합니다 (현재 {list(losses)})")
        if any(b <= a for a, b in zip(losses, losses[1:])):
            violations.append(f"단계별 손실 기준은 순증가해야 합니다 (현재 {list(losses)})")

        if self.fee_rate < 0:
            violations.append(f"fee_rate는 음수일 수 없습니다 (현재 {self.fee_rate})")
        if not 0 <= self.max_stage <= 4:
            violations.append(f"max_stage는 0~4 범위여야 합니다 (현재 {self.max_stage})")
        # 순환 import 방지: 정책 레지스트리는 호출 시점에 로드
        from cci_trading.strategies import list_policies
        if self.stage_policy not in list_policies():
            violations.append(
                f"stage_policy '{self.stage_policy}'는 등록되지 않았습니다 "
                f"(사용 가능: {', '.join(list_policies())})"
            )
        if self.signal_mode not in SIGNAL_MODES:
            violations.append(
                f"signal_mode는 {', '.join(SIGNAL_MODES)} 중 하나여야 합니다 (현재 '{self.signal_mode}')"
            )

        return violations

    def validate(self) -> "StrategySettings":
        """불변식 검사. 위반이 있으면 전부 담아 InvalidSettingsError 발생."""
        violations = self.collect_violations()
        if violations:
            raise InvalidSettingsError(violations)
        return self

    def with_overrides(self, **overrides: Any) -> "StrategySettings":
        """일부 값을 바꾼 새 설정 반환. 알 수 없는 키는 ValueError."""
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"알 수 없는 설정 키: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StrategySettings":
        """딕셔너리에서 생성. 모르는 키는 무시."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
