"""
시세포착 저장소 추상 클래스 정의.

[ 역할 ]
    시세포착 설정 / 신호 이력 / 돌파 상태를 저장하고 조회하는 인터페이스.
    시세포착 루프는 이 인터페이스만 알고, 실제 저장 방식은 모른다.

[ 구현체 ]
    - MemorySignalStore                         (이 파일, 테스트/단일 프로세스용)
    - storage/clickhouse_store.py::ClickHouseSignalStore

[ 호출하는 곳 ]
    - monitoring/monitor.py::SignalMonitor
    - scripts/run_monitor.py
"""

from abc import ABC, abstractmethod
from dataclasses import replace

from cci_trading.monitoring.models import BreakoutStateRecord, MarketSignal, MarketSignalConfig


class SignalStore(ABC):
    """시세포착 저장소 추상 클래스."""

    # ─── 설정 ─────────────────────────────────────────────────────────────

    @abstractmethod
    def save_config(self, config: MarketSignalConfig) -> None:
        """설정 저장 (같은 config_id면 덮어쓰기)."""
        ...

    @abstractmethod
    def get_configs(self, username: str) -> list[MarketSignalConfig]:
        """사용자의 설정 목록 (생성 순)."""
        ...

    @abstractmethod
    def delete_config(self, config_id: str) -> None:
        """설정 삭제. 해당 설정의 돌파 상태도 함께 삭제."""
        ...

    # ─── 신호 ─────────────────────────────────────────────────────────────

    @abstractmethod
    def save_signal(self, signal: MarketSignal) -> None:
        ...

    @abstractmethod
    def get_signals(self, username: str, limit: int = 50) -> list[MarketSignal]:
        """최근 신호 목록 (최신순)."""
        ...

    # ─── 돌파 상태 ────────────────────────────────────────────────────────

    @abstractmethod
    def get_breakout_state(self, config_id: str) -> BreakoutStateRecord | None:
        ...

    @abstractmethod
    def save_breakout_state(self, record: BreakoutStateRecord) -> None:
        ...

    @abstractmethod
    def delete_breakout_state(self, config_id: str) -> None:
        ...

    def close(self) -> None:
        """연결 자원 해제. 기본 구현은 아무것도 하지 않음."""


class MemorySignalStore(SignalStore):
    """메모리 기반 저장소. 프로세스가 끝나면 사라진다."""

    def __init__(self):
        self._configs: dict[str, MarketSignalConfig] = {}
        self._signals: list[MarketSignal] = []
        self._states: dict[str, BreakoutStateRecord] = {}

    def save_config(self, config: MarketSignalConfig) -> None:
        self._configs[config.config_id] = replace(config)

    def get_configs(self, username: str) -> list[MarketSignalConfig]:
        return [replace(c) for c in self._configs.values() if c.username == username]

    def delete_config(self, config_id: str) -> None:
        self._configs.pop(config_id, None)
        self._states.pop(config_id, None)

    def save_signal(self, signal: MarketSignal) -> None:
        self._signals.append(signal)

    def get_signals(self, username: str, limit: int = 50) -> list[MarketSignal]:
        signals = [s for s in self._signals if s.username == username]
        signals.sort(key=lambda s: s.timestamp, reverse=True)
        return signals[:limit]

    def get_breakout_state(self, config_id: str) -> BreakoutStateRecord | None:
        record = self._states.get(config_id)
        return replace(record) if record is not None else None

    def save_breakout_state(self, record: BreakoutStateRecord) -> None:
        self._states[record.config_id] = replace(record)

    def delete_breakout_state(self, config_id: str) -> None:
        self._states.pop(config_id, None)
