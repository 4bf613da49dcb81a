"""
시세포착 알림 모듈.

[ 역할 ]
    감지된 MarketSignal을 사용자에게 전달하는 인터페이스(NotificationSink).
    기본 구현 LoggingNotifier는 로그로만 남긴다.

[ 호출하는 곳 ]
    - monitoring/monitor.py::SignalMonitor가 신호 감지 시 notify() 호출
"""

import logging
from abc import ABC, abstractmethod

from cci_trading.backtest.metrics import format_timestamp
from cci_trading.monitoring.models import MarketSignal

logger = logging.getLogger("cci_trading.monitor")


class NotificationSink(ABC):
    """알림 전달 추상 클래스."""

    @abstractmethod
    def notify(self, signal: MarketSignal) -> None:
        ...


def format_signal(signal: MarketSignal) -> str:
    """알림 본문. 예: '[BTCUSDT 15m] LONG @ 43,210.5000 CCI -88.2 (강도 62)'"""
    return (
        f"[{signal.symbol} {signal.timeframe}] {signal.direction.value} @ {signal.price:,.4f} "
        f"CCI {signal.indicator_value:.1f} RSI {signal.rsi_value:.1f} "
        f"(강도 {signal.strength()}, {format_timestamp(signal.timestamp, '%Y-%m-%d %H:%M')}) "
        f"{signal.reason}"
    )


class LoggingNotifier(NotificationSink):
    """신호를 INFO 로그로 남기는 기본 알림."""

    def notify(self, signal: MarketSignal) -> None:
        logger.info(f"시세포착 신호: {format_signal(signal)}")
