"""
시세포착 데이터 모델.

[ 주요 클래스 ]
    MarketSignalConfig  - 사용자별 시세포착 설정 (심볼, 시간프레임, CCI 돌파/진입값 등)
    MarketSignal        - 감지된 진입 신호 1건 (알림/이력용)
    BreakoutStateRecord - 설정별로 저장하는 돌파 추적 상태 (중복 알림 방지용)

[ 용어 ]
    breakout_value: CCI가 ±이 값을 넘으면 돌파 (백테스트의 entry_threshold)
    entry_value:    돌파 후 ±이 값 안쪽으로 돌아오면 신호 (백테스트의 exit_threshold)

[ 호출하는 곳 ]
    - monitoring/monitor.py
    - storage/*.py (저장/조회)
"""

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from cci_trading.core.data_provider import Interval
from cci_trading.core.errors import InvalidSettingsError
from cci_trading.core.trading_strategy import Direction
from cci_trading.signals.detector import BreakoutState, signal_confidence


def _new_id() -> str:
    return uuid.uuid4().hex


def _now_str() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


@dataclass
class MarketSignalConfig:
    """시세포착 설정. username별로 여러 개를 가질 수 있다."""
    username: str
    symbol: str = "BTCUSDT"
    timeframe: str = "15m"
    name: str = ""
    check_interval: int = 15              # 진입 체크 간격 (분)
    is_active: bool = True
    seed_money: float = 1000.0
    cci_period: int = 20
    cci_breakout_value: float = 100.0
    cci_entry_value: float = 90.0
    rsi_period: int = 14
    config_id: str = field(default_factory=_new_id)
    created_at: str = field(default_factory=_now_str)

    @property
    def interval(self) -> Interval:
        return Interval.parse(self.timeframe)

    def collect_violations(self) -> list[str]:
        violations = []
        if not self.username.strip():
            violations.append("username이 비어 있습니다")
        if not self.symbol.strip():
            violations.append("symbol이 비어 있습니다")
        try:
            Interval.parse(self.timeframe)
        except ValueError as e:
            violations.append(str(e))
        if self.check_interval <= 0:
            violations.append(f"check_interval은 0보다 커야 합니다 (현재 {self.check_interval})")
        if self.seed_money <= 0:
            violations.append(f"seed_money는 0보다 커야 합니다 (현재 {self.seed_money})")
        if self.cci_period <= 0:
            violations.append(f"cci_period는 0보다 커야 합니다 (현재 {self.cci_period})")
        if self.rsi_period <= 0:
            violations.append(f"rsi_period는 0보다 커야 합니다 (현재 {self.rsi_period})")
        if self.cci_entry_value <= 0 or self.cci_breakout_value <= 0:
            violations.append("CCI 돌파값/진입값은 0보다 커야 합니다")
        if self.cci_entry_value >= self.cci_breakout_value:
            violations.append(
                f"cci_entry_value({self.cci_entry_value})는 "
                f"cci_breakout_value({self.cci_breakout_value})보다 작아야 합니다"
            )
        return violations

    def is_valid(self) -> bool:
        return not self.collect_violations()

    def validate(self) -> "MarketSignalConfig":
        violations = self.collect_violations()
        if violations:
            raise InvalidSettingsError(violations)
        return self

    def summary(self) -> str:
        """예: 'CCI(20) 100↑/90↓ • BTCUSDT • 15m (15분)'"""
        return (f"CCI({self.cci_period}) {self.cci_breakout_value:g}↑/{self.cci_entry_value:g}↓ "
                f"• {self.symbol} • {self.timeframe} ({self.check_interval}분)")

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketSignalConfig":
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass(frozen=True)
class MarketSignal:
    """감지된 진입 신호."""
    config_id: str
    username: str
    symbol: str
    direction: Direction
    price: float
    volume: float
    indicator_value: float                # 신호 시점 CCI
    timeframe: str
    timestamp: int                        # 신호 캔들 시작 시각 (ms)
    reason: str = ""
    signal_type: str = "CCI"
    extreme_value: float = 0.0            # 이탈 구간의 CCI 극값
    rsi_value: float = 50.0
    breakout_value: float = 0.0
    entry_value: float = 0.0
    status: str = "ACTIVE"
    is_read: bool = False
    signal_id: str = field(default_factory=_new_id)

    def strength(self) -> int:
        """신호 강도 (0~100). 이탈 극값이 돌파값의 2배에 가까울수록 강하다."""
        return int(signal_confidence(self.extreme_value, self.breakout_value) * 100)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["direction"] = self.direction.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MarketSignal":
        known = cls.__dataclass_fields__
        values = {k: v for k, v in data.items() if k in known}
        values["direction"] = Direction(values["direction"])
        return cls(**values)


@dataclass
class BreakoutStateRecord:
    """설정별 돌파 추적 상태. 매 점검 후 저장되어 다음 점검의 입력이 된다."""
    config_id: str
    state: BreakoutState = BreakoutState.NO_BREAKOUT
    extreme_cci: float = 0.0
    last_cci: float | None = None
    last_candle_time: int | None = None   # 마지막으로 반영한 캔들 시각 (ms)
    last_checked_at: int | None = None    # 마지막 점검 시각 (ms)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BreakoutStateRecord":
        known = cls.__dataclass_fields__
        values = {k: v for k, v in data.items() if k in known}
        values["state"] = BreakoutState(values.get("state", BreakoutState.NO_BREAKOUT.value))
        return cls(**values)
