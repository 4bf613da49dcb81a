"""
CCI 물타기 백테스트 실행 스크립트 (시스템 진입점).

[ 사용법 ]
    # 기본 실행 (config.yaml의 strategy 사용, 바이낸스 데이터)
    python run_backtest.py

    # 심볼 / 시간프레임 / 기간 지정
    python run_backtest.py --symbol ETHUSDT --timeframe 1h --period 3개월

    # 캔들 수 직접 지정 (기간 대신)
    python run_backtest.py --count 1000

    # 파라미터 오버라이드
    python run_backtest.py -p entry_threshold=120 -p profit_target=2.5

    # 샘플 데이터로 테스트
    python run_backtest.py --source sample

    # ClickHouse 데이터 사용 (scripts/ingest_candles.py로 미리 수집)
    python run_backtest.py --source clickhouse

    # 물타기 금액 정책 지정 / 비교
    python run_backtest.py --policy current_size
    python run_backtest.py --compare doubling current_size seed_fraction

    # 등록된 정책 목록 확인
    python run_backtest.py --list-policies

    # JSON 출력
    python run_backtest.py --json > result.json
"""

import argparse
import json
import sys
from pathlib import Path

from cci_trading.backtest.engine import BacktestEngine
from cci_trading.backtest.metrics import BacktestResult, format_timestamp
from cci_trading.core.errors import DataSourceError, InvalidSettingsError
from cci_trading.core.settings import StrategySettings
from cci_trading.data.market_data import CandleSeries, MarketDataManager
from cci_trading.data.sources import SOURCE_NAMES, create_candle_source
from cci_trading.strategies import list_policies
from cci_trading.utils.config import Config
from cci_trading.utils.logger import setup_logger


def parse_param(param_str: str) -> tuple[str, object]:
    """'key=value' 문자열을 파싱하여 (key, value) 반환. 숫자면 자동 변환."""
    key, _, value = param_str.partition("=")
    key = key.strip()
    value = value.strip()

    # 숫자 자동 변환
    try:
        if "." in value:
            return key, float(value)
        return key, int(value)
    except ValueError:
        # bool 변환
        if value.lower() in ("true", "yes"):
            return key, True
        if value.lower() in ("false", "no"):
            return key, False
        return key, value


def build_settings(config: Config, args: argparse.Namespace) -> StrategySettings:
    """config.yaml의 strategy + CLI 옵션 → StrategySettings."""
    overrides: dict[str, object] = {}
    if args.symbol:
        overrides["symbol"] = args.symbol
    if args.timeframe:
        overrides["timeframe"] = args.timeframe
    if args.period:
        overrides["test_period"] = args.period
    if args.count:
        overrides["candle_count"] = args.count
    if args.policy:
        overrides["stage_policy"] = args.policy
    for p in args.param:
        key, value = parse_param(p)
        overrides[key] = value
    return config.strategy.with_overrides(**overrides)


def load_candles(manager: MarketDataManager, settings: StrategySettings, use_count: bool) -> CandleSeries:
    """캔들 조회. --count가 있으면 개수로, 없으면 test_period로."""
    if use_count:
        return manager.get_candles(settings.symbol, settings.interval, settings.candle_count)
    return manager.get_candles_for_period(settings.symbol, settings.interval, settings.test_period)


def print_single_result(result: BacktestResult):
    """단일 실행 결과 출력."""
    print()
    print(result.summary())

    if result.positions:
        print("\n최근 포지션 (최대 5건):")
        for p in result.positions[-5:]:
            profit_str = f"+{p.total_profit:,.2f}" if p.total_profit > 0 else f"{p.total_profit:,.2f}"
            print(
                f"  #{p.position_id} [{format_timestamp(p.start_time)} ~ {format_timestamp(p.end_time)}] "
                f"{p.direction.value} 최대 {p.max_stage}단계 {p.exit_reason.value} -> {profit_str} ({p.duration})"
            )


def print_comparison(results: dict[str, BacktestResult], settings: StrategySettings):
    """여러 정책 비교 결과 출력."""
    names = list(results.keys())
    col_width = max(14, max(len(n) for n in names) + 2)
    width = 20 + col_width * len(names)

    print(f"\n{'=' * width}")
    print(f"물타기 정책 비교 ({settings.symbol} {settings.timeframe}, {settings.test_period})")
    print(f"{'=' * width}")

    header = f"{'':>20}" + "".join(f"{n:>{col_width}}" for n in names)
    print(header)
    print("-" * len(header))

    rows = [
        ("총 수익률", lambda r: f"{r.total_return:.2f}%"),
        ("최종 자본", lambda r: f"{r.final_capital:,.2f}"),
        ("최대 낙폭(MDD)", lambda r: f"{r.max_drawdown:.2f}%"),
        ("포지션 수", lambda r: f"{r.total_positions}"),
        ("승률", lambda r: f"{r.win_rate:.1f}%"),
        ("수익 팩터", lambda r: f"{r.profit_factor:.2f}"),
        ("총 수수료", lambda r: f"{r.total_fees:,.2f}"),
        ("최대 도달 단계", lambda r: f"{r.max_stage_reached}"),
        ("최대 연속 손실", lambda r: f"{r.max_consecutive_losses}"),
    ]

    for label, fmt in rows:
        row = f"{label:>20}" + "".join(f"{fmt(results[n]):>{col_width}}" for n in names)
        print(row)

    print(f"{'=' * width}")


def main() -> int:
    parser = argparse.ArgumentParser(description="CCI 물타기 전략 백테스트 실행")
    parser.add_argument("--config", type=str, default="config.yaml", help="설정 파일 경로")
    parser.add_argument("--symbol", type=str, default=None, help="심볼 (예: BTCUSDT)")
    parser.add_argument("--timeframe", type=str, default=None, help="시간프레임 (15m, 1h, 4h, 1d, 1w)")
    parser.add_argument("--period", type=str, default=None, help="백테스트 기간 (1주일, 3개월, 6개월, 1년, 2년)")
    parser.add_argument("--count", type=int, default=None, help="캔들 수 (기간 대신 지정)")
    parser.add_argument("--source", type=str, default=None, choices=SOURCE_NAMES, help="데이터 소스")
    parser.add_argument("-p", "--param", action="append", default=[], help="전략 파라미터 오버라이드 (예: -p entry_threshold=120)")
    parser.add_argument("--policy", type=str, default=None, help="물타기 금액 정책 이름")
    parser.add_argument("--compare", nargs="+", metavar="POLICY", help="여러 정책 비교 (예: --compare doubling current_size)")
    parser.add_argument("--list-policies", action="store_true", help="등록된 물타기 정책 목록 출력")
    parser.add_argument("--json", action="store_true", help="결과를 JSON으로 출력")
    args = parser.parse_args()

    # 정책 목록 출력
    if args.list_policies:
        print("등록된 물타기 정책:")
        for name in list_policies():
            print(f"  - {name}")
        return 0

    # 설정 로드
    config_path = Path(args.config)
    if config_path.exists():
        config = Config.from_yaml(config_path)
    else:
        print(f"설정 파일 없음: {config_path}, 기본값 사용", file=sys.stderr)
        config = Config()

    # 로거 (JSON 출력 시 stdout을 깨끗하게 유지)
    setup_logger(level=config.log_level, log_dir=config.log_dir, console=not args.json)

    try:
        settings = build_settings(config, args).validate()
    except (ValueError, InvalidSettingsError) as e:
        print(f"오류: {e}", file=sys.stderr)
        return 2

    # 데이터 로드 (한 번만)
    source = create_candle_source(config, args.source)
    manager = MarketDataManager(source, fallback_to_sample=config.data.fallback_to_sample)
    try:
        series = load_candles(manager, settings, use_count=args.count is not None)
    except DataSourceError as e:
        print(f"오류: 캔들 데이터를 가져오지 못했습니다.\n  {e.message}", file=sys.stderr)
        print("  1. 네트워크 상태 / 심볼명을 확인하세요", file=sys.stderr)
        print("  2. --source sample 옵션으로 샘플 데이터 사용", file=sys.stderr)
        return 1
    finally:
        manager.close()

    if not series.candles:
        # 데이터 없음은 거래 0건 결과로 보고
        print(f"경고: {settings.symbol} {settings.timeframe} 캔들이 없습니다.", file=sys.stderr)

    engine = BacktestEngine()

    # ─── 비교 모드 ───────────────────────────────────────────────────────
    if args.compare:
        results = {}
        try:
            for name in args.compare:
                policy_settings = settings.with_overrides(stage_policy=name)
                results[name] = engine.run(policy_settings, series.candles, synthetic_data=series.synthetic)
        except InvalidSettingsError as e:
            print(f"오류: {e}", file=sys.stderr)
            return 2
        if args.json:
            print(json.dumps({n: r.to_dict() for n, r in results.items()}, ensure_ascii=False, indent=2))
        else:
            print_comparison(results, settings)
        return 0

    # ─── 단일 실행 모드 ─────────────────────────────────────────────────
    result = engine.run(settings, series.candles, synthetic_data=series.synthetic)
    if args.json:
        print(json.dumps(engine.generate_report(), ensure_ascii=False, indent=2))
    else:
        print_single_result(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
