"""
시세포착(실시간 신호 감시) 모듈.

[ 역할 ]
    사용자 설정마다 최신 캔들을 조회해 CCI 돌파-재진입 신호를 찾고,
    새 신호가 생기면 저장소에 기록하고 알림을 보낸다.

[ 실행 흐름 ]
    run_once() 1회 점검:
        설정마다 (cancel_event가 set되면 다음 설정부터 중단)
            1. source.fetch_candles() → 실패 시 DATA_ERROR
            2. 캔들 < cci_period → INSUFFICIENT_DATA
            3. evaluate_config(config, candles, 저장된 상태, now)
               → 새 상태 저장, 신호마다 save_signal + notify → SIGNAL
               → 없으면 NO_SIGNAL
    run_forever(): run_once() 후 interval초 대기를 cancel될 때까지 반복.

[ 중복 알림 방지 ]
    상태(BreakoutStateRecord)는 저장소에만 있고, evaluate_config()의 입력/출력으로만 흐른다.
    이미 반영한 캔들(last_candle_time 이전)은 다시 보지 않으므로
    같은 돌파-재진입에 대해 신호는 한 번만 나간다.
    첫 점검에서는 마지막 캔들 1개만 반영한다 (과거 신호를 소급해서 알리지 않음).

[ 호출하는 곳 ]
    - scripts/run_monitor.py
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from cci_trading.core.data_provider import Candle, CandleSource
from cci_trading.core.errors import DataSourceError
from cci_trading.core.trading_strategy import Direction
from cci_trading.indicators.technical import build_indicator_samples, compute_rsi
from cci_trading.monitoring.models import BreakoutStateRecord, MarketSignal, MarketSignalConfig
from cci_trading.monitoring.notifier import LoggingNotifier, NotificationSink
from cci_trading.signals.detector import BreakoutTracker
from cci_trading.storage.signal_store import SignalStore

logger = logging.getLogger("cci_trading.monitor")


class MonitorOutcome(Enum):
    """설정 1개 점검 결과. '신호 없음'과 '점검 실패'를 구분한다."""
    SIGNAL = "SIGNAL"
    NO_SIGNAL = "NO_SIGNAL"
    INSUFFICIENT_DATA = "INSUFFICIENT_DATA"
    DATA_ERROR = "DATA_ERROR"


@dataclass(frozen=True)
class MonitorResult:
    config_id: str
    symbol: str
    outcome: MonitorOutcome
    signals: tuple[MarketSignal, ...] = ()
    error: str = ""


def _signal_reason(direction: Direction, config: MarketSignalConfig) -> str:
    if direction is Direction.LONG:
        return (f"CCI -{config.cci_breakout_value:g} 돌파 후 -{config.cci_entry_value:g} 복귀 "
                f"(과매도 회복)")
    return (f"CCI +{config.cci_breakout_value:g} 돌파 후 +{config.cci_entry_value:g} 복귀 "
            f"(과매수 반락)")


def evaluate_config(
    config: MarketSignalConfig,
    candles: list[Candle],
    state: BreakoutStateRecord | None,
    now: int,
) -> tuple[BreakoutStateRecord, list[MarketSignal]]:
    """설정 1개를 캔들에 적용해 (새 상태, 신호 목록) 반환. 부수효과 없음.

    점검 사이에 돌파-재진입이 여러 번 끝났으면 신호도 시간 순서대로 여러 개.

    Args:
        config: 시세포착 설정
        candles: 닫힌 캔들 (오름차순)
        state: 저장돼 있던 돌파 상태 (처음이면 None)
        now: 점검 시각 (ms)
    """
    if state is None:
        state = BreakoutStateRecord(config_id=config.config_id)

    samples = build_indicator_samples(candles, config.cci_period)
    if not samples:
        return BreakoutStateRecord(
            config_id=config.config_id,
            state=state.state,
            extreme_cci=state.extreme_cci,
            last_cci=state.last_cci,
            last_candle_time=state.last_candle_time,
            last_checked_at=now,
        ), []

    if state.last_candle_time is None:
        new_samples = samples[-1:]
    else:
        new_samples = [s for s in samples if s.timestamp > state.last_candle_time]

    tracker = BreakoutTracker(
        config.cci_breakout_value,
        config.cci_entry_value,
        state=state.state,
        extreme_cci=state.extreme_cci,
    )
    closes = [c.close for c in candles]
    index_by_time = {c.timestamp: i for i, c in enumerate(candles)}

    signals: list[MarketSignal] = []
    for sample in new_samples:
        direction = tracker.step(sample.cci_value)
        if direction is None:
            continue
        idx = index_by_time[sample.timestamp]
        signals.append(MarketSignal(
            config_id=config.config_id,
            username=config.username,
            symbol=config.symbol,
            direction=direction,
            price=sample.price,
            volume=sample.volume,
            indicator_value=sample.cci_value,
            timeframe=config.timeframe,
            timestamp=sample.timestamp,
            reason=_signal_reason(direction, config),
            extreme_value=tracker.signal_extreme,
            rsi_value=compute_rsi(closes[:idx + 1], config.rsi_period),
            breakout_value=config.cci_breakout_value,
            entry_value=config.cci_entry_value,
        ))

    last_cci = new_samples[-1].cci_value if new_samples else state.last_cci
    last_candle_time = new_samples[-1].timestamp if new_samples else state.last_candle_time
    new_state = BreakoutStateRecord(
        config_id=config.config_id,
        state=tracker.state,
        extreme_cci=tracker.extreme_cci,
        last_cci=last_cci,
        last_candle_time=last_candle_time,
        last_checked_at=now,
    )
    return new_state, signals


class SignalMonitor:
    """시세포착 루프.

    사용 예:
        cancel = threading.Event()
        monitor = SignalMonitor(BinanceCandleSource(), store, LoggingNotifier(), cancel)
        monitor.run_forever(usernames=["alice"], interval=60)
    """

    def __init__(
        self,
        source: CandleSource,
        store: SignalStore,
        notifier: NotificationSink | None = None,
        cancel_event: threading.Event | None = None,
        candle_count: int = 100,
        clock: Callable[[], float] = time.time,
    ):
        self.source = source
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.cancel_event = cancel_event or threading.Event()
        self.candle_count = candle_count
        self._clock = clock

    def load_configs(self, usernames: list[str]) -> list[MarketSignalConfig]:
        configs = []
        for username in usernames:
            configs.extend(self.store.get_configs(username))
        return configs

    def run_once(self, configs: list[MarketSignalConfig]) -> list[MonitorResult]:
        """모든 활성 설정을 1회 점검."""
        results = []
        for config in configs:
            if self.cancel_event.is_set():
                logger.info("시세포착 중단 요청: 남은 설정 점검을 건너뜁니다")
                break
            if not config.is_active:
                continue
            results.append(self.check_config(config))
        return results

    def check_config(self, config: MarketSignalConfig) -> MonitorResult:
        count = max(self.candle_count, config.cci_period, config.rsi_period + 1)
        try:
            candles = self.source.fetch_candles(config.symbol, config.interval, count)
        except DataSourceError as e:
            logger.error(f"[{config.symbol} {config.timeframe}] 캔들 조회 실패: {e.message}")
            return MonitorResult(config.config_id, config.symbol, MonitorOutcome.DATA_ERROR, error=e.message)

        if len(candles) < config.cci_period:
            logger.warning(
                f"[{config.symbol} {config.timeframe}] 캔들 부족: {len(candles)}개 < {config.cci_period}개"
            )
            return MonitorResult(config.config_id, config.symbol, MonitorOutcome.INSUFFICIENT_DATA)

        now = int(self._clock() * 1000)
        state = self.store.get_breakout_state(config.config_id)
        new_state, signals = evaluate_config(config, candles, state, now)
        self.store.save_breakout_state(new_state)

        if not signals:
            logger.debug(
                f"[{config.symbol} {config.timeframe}] 신호 없음 "
                f"(CCI {new_state.last_cci:.1f}, 상태 {new_state.state.value})"
            )
            return MonitorResult(config.config_id, config.symbol, MonitorOutcome.NO_SIGNAL)

        for signal in signals:
            self.store.save_signal(signal)
            self.notifier.notify(signal)
        return MonitorResult(config.config_id, config.symbol, MonitorOutcome.SIGNAL,
                             signals=tuple(signals))

    def run_forever(self, usernames: list[str], interval: float = 60.0) -> None:
        """cancel_event가 set될 때까지 interval초마다 점검."""
        logger.info(f"시세포착 시작: 사용자 {', '.join(usernames)}, 점검 간격 {interval:g}초")
        while not self.cancel_event.is_set():
            results = self.run_once(self.load_configs(usernames))
            signals = sum(len(r.signals) for r in results)
            errors = sum(1 for r in results if r.outcome is MonitorOutcome.DATA_ERROR)
            logger.info(f"점검 완료: 설정 {len(results)}개, 신호 {signals}건, 조회 실패 {errors}건")
            self.cancel_event.wait(interval)
        logger.info("시세포착 종료")
