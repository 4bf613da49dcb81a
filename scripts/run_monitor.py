#!/usr/bin/env python3
"""
시세포착 실행 스크립트

[ 사용법 ]
    # config.yaml의 monitor.usernames 설정을 주기적으로 점검
    python scripts/run_monitor.py

    # 사용자 지정 + 1회만 점검
    python scripts/run_monitor.py --users alice --once

    # 메모리 저장소로 설정 1개를 즉석에서 등록해 점검
    python scripts/run_monitor.py --users demo --add BTCUSDT:15m

Ctrl-C를 누르면 현재 설정 점검을 마친 뒤 종료한다.
"""
import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

# 프로젝트 루트를 sys.path에 추가
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cci_trading.data.sources import create_candle_source
from cci_trading.monitoring.models import MarketSignalConfig
from cci_trading.monitoring.monitor import SignalMonitor
from cci_trading.monitoring.notifier import LoggingNotifier
from cci_trading.storage.signal_store import MemorySignalStore, SignalStore
from cci_trading.utils.config import Config
from cci_trading.utils.logger import setup_logger

logger = logging.getLogger("cci_trading.monitor")


def create_store(config: Config) -> SignalStore:
    if config.monitor.store == "clickhouse":
        from cci_trading.ingestion.clickhouse_schema import initialize_schema
        from cci_trading.storage.clickhouse_store import ClickHouseSignalStore

        db = config.database
        store = ClickHouseSignalStore(db.host, db.port, db.database, db.user, db.password)
        initialize_schema(store.client)
        return store
    return MemorySignalStore()


def main():
    parser = argparse.ArgumentParser(description="CCI 시세포착 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--users", type=str, default=None, help="쉼표로 구분한 사용자 (기본: config의 monitor.usernames)")
    parser.add_argument("--add", action="append", default=[], metavar="SYMBOL:TIMEFRAME",
                        help="점검할 설정 추가 (예: BTCUSDT:15m)")
    parser.add_argument("--interval", type=float, default=None, help="점검 간격 (초)")
    parser.add_argument("--once", action="store_true", help="1회만 점검하고 종료")
    args = parser.parse_args()

    config_path = Path(args.config)
    config = Config.from_yaml(config_path) if config_path.exists() else Config()
    setup_logger(level=config.log_level, log_dir=config.log_dir)

    usernames = [u.strip() for u in args.users.split(",")] if args.users else list(config.monitor.usernames)
    if not usernames:
        logger.error("점검할 사용자가 없습니다 (--users 또는 config.yaml의 monitor.usernames)")
        sys.exit(2)

    store = create_store(config)
    for pair in args.add:
        symbol, _, timeframe = pair.partition(":")
        for username in usernames:
            item = MarketSignalConfig(username=username, symbol=symbol, timeframe=timeframe or "15m")
            store.save_config(item.validate())

    cancel = threading.Event()
    # Ctrl-C → 진행 중인 설정까지만 점검하고 종료
    signal.signal(signal.SIGINT, lambda *_: cancel.set())

    source = create_candle_source(config)
    monitor = SignalMonitor(
        source,
        store,
        LoggingNotifier(),
        cancel_event=cancel,
        candle_count=config.monitor.candle_count,
    )

    try:
        if args.once:
            for result in monitor.run_once(monitor.load_configs(usernames)):
                logger.info(f"{result.symbol}: {result.outcome.value} {result.error}")
        else:
            monitor.run_forever(usernames, interval=args.interval or config.monitor.interval)
    finally:
        source.close()
        store.close()


if __name__ == "__main__":
    main()
