"""
CCI 돌파-재진입 신호 감지 모듈.

[ 역할 ]
    CCI 시퀀스에서 "바깥 밴드 돌파 → 안쪽 밴드 복귀" 전환을 찾아
    LONG / SHORT 진입 방향을 알려준다. 단순 임계값 교차가 아니라 히스테리시스.

[ 판정 방식 2가지 (settings.signal_mode) ]
    crossover  - 직전/현재 두 샘플만 본다 (detect_entry)
                 LONG:  이전 CCI < -entry  이고  현재 CCI >= -exit
                 SHORT: 이전 CCI > +entry  이고  현재 CCI <= +exit
    excursion  - BreakoutTracker 상태머신 (기본값)
                 NO_BREAKOUT ──(CCI < -entry)──▶ LONG_BREAKOUT ──(CCI >= -exit)──▶ LONG 신호, NO_BREAKOUT
                 NO_BREAKOUT ──(CCI > +entry)──▶ SHORT_BREAKOUT ─(CCI <= +exit)──▶ SHORT 신호, NO_BREAKOUT
                 한 번의 이탈(excursion)당 신호는 최대 1회.

[ 호출하는 곳 ]
    - backtest/engine.py: 캔들마다 detector.step(cci) 호출
    - monitoring/monitor.py: 저장된 BreakoutState로 tracker를 복원해 1스텝 진행
"""

from enum import Enum

from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction


class BreakoutState(Enum):
    """돌파 추적 상태. 시세포착에서는 설정별로 저장된다."""
    NO_BREAKOUT = "NO_BREAKOUT"
    LONG_BREAKOUT = "LONG_BREAKOUT"
    SHORT_BREAKOUT = "SHORT_BREAKOUT"


def detect_entry(
    previous_cci: float,
    current_cci: float,
    settings: StrategySettings,
) -> Direction | None:
    """두 샘플 기반 진입 신호. exit < entry이면 LONG/SHORT는 동시에 참일 수 없다."""
    if previous_cci < -settings.entry_threshold and current_cci >= -settings.exit_threshold:
        return Direction.LONG
    if previous_cci > settings.entry_threshold and current_cci <= settings.exit_threshold:
        return Direction.SHORT
    return None


def signal_confidence(extreme_cci: float, entry_threshold: float) -> float:
    """신호 신뢰도 (0~1). 이탈 구간의 극값이 깊을수록 높다.

    |극값| == entry_threshold * 2 이상이면 1.0.
    """
    if entry_threshold <= 0:
        return 0.0
    return max(0.0, min(1.0, abs(extreme_cci) / (2 * entry_threshold)))


class BreakoutTracker:
    """excursion 방식 신호 감지기. 이탈 1회당 신호 1회."""

    def __init__(
        self,
        entry_threshold: float,
        exit_threshold: float,
        state: BreakoutState = BreakoutState.NO_BREAKOUT,
        extreme_cci: float = 0.0,
    ):
        self.entry_threshold = entry_threshold
        self.exit_threshold = exit_threshold
        self.state = state
        self.extreme_cci = extreme_cci      # 진행 중인 이탈 구간의 극값
        self.signal_extreme = extreme_cci   # 마지막 신호를 만든 이탈 구간의 극값
        self.previous_cci: float | None = None

    @classmethod
    def from_settings(cls, settings: StrategySettings) -> "BreakoutTracker":
        return cls(settings.entry_threshold, settings.exit_threshold)

    def step(self, cci: float) -> Direction | None:
        """CCI 1개를 반영하고, 재진입이 완료되면 방향 반환."""
        fired: Direction | None = None

        if self.state is BreakoutState.LONG_BREAKOUT:
            self.extreme_cci = min(self.extreme_cci, cci)
            if cci >= -self.exit_threshold:
                fired = Direction.LONG
        elif self.state is BreakoutState.SHORT_BREAKOUT:
            self.extreme_cci = max(self.extreme_cci, cci)
            if cci <= self.exit_threshold:
                fired = Direction.SHORT

        if fired is not None:
            self.signal_extreme = self.extreme_cci
            self.state = BreakoutState.NO_BREAKOUT

        # 신호 직후라도 같은 값이 반대쪽 밴드를 넘었으면 새 이탈로 추적 시작
        if self.state is BreakoutState.NO_BREAKOUT:
            if cci < -self.entry_threshold:
                self.state = BreakoutState.LONG_BREAKOUT
                self.extreme_cci = cci
            elif cci > self.entry_threshold:
                self.state = BreakoutState.SHORT_BREAKOUT
                self.extreme_cci = cci

        self.previous_cci = cci
        return fired

    def confidence(self) -> float:
        return signal_confidence(self.signal_extreme, self.entry_threshold)


class CrossoverDetector:
    """crossover 방식 신호 감지기. detect_entry()를 연속 샘플에 적용."""

    def __init__(self, settings: StrategySettings):
        self.settings = settings
        self.previous_cci: float | None = None
        self.extreme_cci = 0.0

    def step(self, cci: float) -> Direction | None:
        fired = None
        if self.previous_cci is not None:
            fired = detect_entry(self.previous_cci, cci, self.settings)
            if fired is not None:
                self.extreme_cci = self.previous_cci
        self.previous_cci = cci
        return fired

    def confidence(self) -> float:
        return signal_confidence(self.extreme_cci, self.settings.entry_threshold)


def create_detector(settings: StrategySettings) -> "BreakoutTracker | CrossoverDetector":
    """settings.signal_mode에 맞는 감지기 생성."""
    if settings.signal_mode == "crossover":
        return CrossoverDetector(settings)
    if settings.signal_mode == "excursion":
        return BreakoutTracker.from_settings(settings)
    raise ValueError(f"알 수 없는 signal_mode: '{settings.signal_mode}'")
