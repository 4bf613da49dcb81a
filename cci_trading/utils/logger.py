"""
로깅 모듈.

[ 역할 ]
    파일 + 콘솔 로거를 설정. 백테스트 거래 내역, 시세포착 신호, 데이터 오류 등을 기록.
    하위 모듈 로거(cci_trading.backtest, cci_trading.monitor ...)는 이 로거로 전파된다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/cci_trading_20240601.log)

[ 호출하는 곳 ]
    - run_backtest.py, scripts/run_monitor.py, scripts/ingest_candles.py에서 setup_logger() 호출
    - backtest/engine.py에서 logging.getLogger("cci_trading.backtest") 등 하위 로거 사용
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# 요청마다 INFO 로그를 남기는 라이브러리
_NOISY_LOGGERS = ("httpx", "httpcore", "yfinance", "clickhouse_connect")


def setup_logger(
    name: str = "cci_trading",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 파일 핸들러(일별) + 콘솔 핸들러 등록.

    log_dir=None이면 파일 핸들러를 만들지 않는다.
    이미 설정된 로거는 레벨만 갱신하고 핸들러를 중복 등록하지 않는다.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if logger.handlers:
        return logger

    formatter = logging.Formatter(FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # 파일 핸들러
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(
            log_path / f"{name}_{today}.log",
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 콘솔 핸들러
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
