"""
예외 정의 모듈.

[ 역할 ]
    실행을 중단시켜야 하는 경계 오류(boundary error)만 예외로 정의.
    데이터 부족, 0으로 나누기 같은 계산 단계의 문제는 예외가 아니라
    각 단계의 센티널 값(CCI 0.0, RSI 50.0, 빈 결과)으로 흡수된다.

[ 예외 종류 ]
    DataSourceError      - 캔들 데이터를 가져오지 못함 (네트워크/API 오류)
    InvalidSettingsError - 전략 설정 불변식 위반 (위반 항목 전체를 나열)

[ 호출하는 곳 ]
    - ingestion/*.py, data/*.py: 데이터 수집 실패 시 DataSourceError
    - core/settings.py::StrategySettings.validate(): InvalidSettingsError
    - monitoring/monitor.py: DataSourceError를 잡아 DATA_ERROR 결과로 변환
"""


class TradingSystemError(Exception):
    """이 패키지에서 발생하는 모든 예외의 부모 클래스."""


class DataSourceError(TradingSystemError):
    """시세 데이터 소스에서 데이터를 가져오지 못했을 때."""

    def __init__(
        self,
        message: str,
        symbol: str = "",
        interval: str = "",
        status_code: int | None = None,
    ):
        self.message = message
        self.symbol = symbol
        self.interval = interval
        self.status_code = status_code
        super().__init__(message)


class InvalidSettingsError(TradingSystemError):
    """설정값이 불변식을 위반했을 때. 위반 항목을 모두 담는다."""

    def __init__(self, violations: list[str]):
        self.violations = list(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(f"잘못된 전략 설정 ({len(self.violations)}건):\n{lines}")
