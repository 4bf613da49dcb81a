"""
설정 관리 모듈.

[ 역할 ]
    config.yaml (또는 .json) 파일을 파싱하여 Config 객체로 변환.
    전략 파라미터, 데이터 소스, DB, 시세포착, 로깅 설정 등을 통합 관리.

[ 설정 파일 구조 (config.yaml) ]
    strategy:         → StrategySettings (CCI 물타기 전략 파라미터)
    data:             → DataConfig (캔들 소스, 재시도, 샘플 폴백)
    database:         → DatabaseConfig (ClickHouse)
    monitor:          → MonitorConfig (시세포착)
    log_level:        → "INFO" / "DEBUG"
    log_dir:          → 로그 디렉토리 경로

[ 호출하는 곳 ]
    - run_backtest.py, scripts/*.py에서 Config.from_yaml()로 로드
"""

import json
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from cci_trading.core.settings import StrategySettings


@dataclass
class DataConfig:
    """캔들 데이터 소스 설정. config.yaml의 data 섹션에 대응."""
    source: str = "binance"             # binance / yahoo / clickhouse / sample
    base_url: str = "https://api.binance.com"
    timeout: float = 15.0               # 요청당 타임아웃 (초)
    max_retries: int = 3
    retry_delay: float = 0.5            # 백오프 시작 대기 (초)
    fallback_to_sample: bool = False    # 조회 실패 시 샘플 데이터로 대체
    include_in_progress: bool = False   # 아직 닫히지 않은 캔들 포함 여부


@dataclass
class DatabaseConfig:
    """데이터베이스 설정. config.yaml의 database 섹션에 대응."""
    host: str = "localhost"
    port: int = 8123
    database: str = "default"
    user: str = "default"
    password: str = "password"


@dataclass
class MonitorConfig:
    """시세포착 설정. config.yaml의 monitor 섹션에 대응."""
    interval: float = 60.0              # 점검 간격 (초)
    usernames: list[str] = field(default_factory=list)
    candle_count: int = 100
    store: str = "memory"               # memory / clickhouse


def _section(section_cls, values: dict[str, Any] | None):
    """설정 섹션 dict → 섹션 dataclass. 모르는 키는 무시."""
    known = {f.name for f in fields(section_cls)}
    return section_cls(**{k: v for k, v in (values or {}).items() if k in known})


@dataclass
class Config:
    """전체 설정. from_yaml() 또는 from_json()으로 파일에서 로드."""
    strategy: StrategySettings = field(default_factory=StrategySettings)
    data: DataConfig = field(default_factory=DataConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    log_level: str = "INFO"
    log_dir: str = "logs"

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Config":
        """YAML 파일에서 설정 로드. 빈 파일이면 기본값."""
        text = Path(path).read_text(encoding="utf-8")
        return cls._from_dict(yaml.safe_load(text) or {})

    @classmethod
    def from_json(cls, path: str | Path) -> "Config":
        text = Path(path).read_text(encoding="utf-8")
        return cls._from_dict(json.loads(text))

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "Config":
        """딕셔너리에서 Config 생성. 모르는 키는 무시."""
        return cls(
            strategy=StrategySettings.from_dict(data.get("strategy") or {}),
            data=_section(DataConfig, data.get("data")),
            database=_section(DatabaseConfig, data.get("database")),
            monitor=_section(MonitorConfig, data.get("monitor")),
            log_level=data.get("log_level", "INFO"),
            log_dir=data.get("log_dir", "logs"),
        )

    def to_dict(self) -> dict[str, Any]:
        """딕셔너리로 변환."""
        return asdict(self)

    def save_yaml(self, path: str | Path) -> None:
        """YAML 파일로 저장."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, allow_unicode=True, default_flow_style=False)
