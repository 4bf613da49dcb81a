"""
백테스팅 엔진 모듈.

[ 역할 ]
    과거 캔들에 CCI 물타기 전략을 적용하여 가상 매매를 시뮬레이션하고 성과를 측정.
    시스템의 핵심 실행 루프를 담당.

[ 실행 흐름 ]
    run() 호출 시:
        1. settings.validate() (위반 시 InvalidSettingsError, 캔들은 건드리지 않음)
        2. indicators.build_indicator_samples()로 CCI 시퀀스 계산
        3. 샘플마다 (시간 순서대로)
           → detector.step(cci)로 돌파-재진입 신호 판정 (항상 진행)
           → 포지션이 열려 있으면 position_manager.on_candle()
           → 포지션이 없고 신호가 있으면 position_manager.open()
        4. 마지막에 포지션이 남아 있으면 마지막 종가로 강제 청산
        5. metrics.aggregate()로 성과 지표 계산

[ 의존성 ]
    - signals/detector.py (진입 신호)
    - backtest/position_manager.py::PositionManager (포지션 상태머신)
    - backtest/metrics.py::aggregate() (성과 계산)
    - data/market_data.py::MarketDataManager (run_backtest에서 캔들 조회)

[ 호출하는 곳 ]
    - run_backtest.py (진입점)에서 생성 및 실행
"""

import logging
from typing import Any

from cci_trading.backtest.metrics import BacktestResult, aggregate, format_timestamp
from cci_trading.backtest.position_manager import PositionManager
from cci_trading.core.data_provider import Candle
from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import EntrySignal
from cci_trading.data.market_data import MarketDataManager
from cci_trading.indicators.technical import build_indicator_samples
from cci_trading.signals.detector import create_detector

logger = logging.getLogger("cci_trading.backtest")


class BacktestEngine:
    """백테스팅 엔진. run()으로 시뮬레이션 실행."""

    def __init__(self, data_manager: MarketDataManager | None = None):
        self.data_manager = data_manager

        # 백테스트 실행 후 채워지는 결과
        self.equity_curve: list[tuple[int, float]] = []   # (timestamp, 평가자산) 캔들별
        self.result: BacktestResult | None = None

    def run_backtest(self, settings: StrategySettings) -> BacktestResult:
        """데이터 매니저로 캔들을 조회한 뒤 run() 실행.

        Raises:
            InvalidSettingsError: 설정 불변식 위반
            DataSourceError: 조회 실패 (폴백 정책이 꺼져 있을 때)
        """
        if self.data_manager is None:
            raise RuntimeError("data_manager 없이 run_backtest()를 호출할 수 없습니다. run(settings, candles)를 사용하세요.")

        settings.validate()
        series = self.data_manager.get_candles_for_period(
            settings.symbol, settings.interval, settings.test_period,
        )
        return self.run(settings, series.candles, synthetic_data=series.synthetic)

    def run(
        self,
        settings: StrategySettings,
        candles: list[Candle],
        synthetic_data: bool = False,
    ) -> BacktestResult:
        """백테스트 실행.

        Args:
            settings: 전략 설정
            candles: timestamp 오름차순 캔들
            synthetic_data: 샘플 데이터 여부 (리포트 표시용)

        Returns:
            BacktestResult: 성과 지표 + 포지션/거래 기록
        """
        settings.validate()
        self.equity_curve = []

        samples = build_indicator_samples(candles, settings.cci_length)
        if not samples:
            logger.warning(
                f"CCI 계산에 필요한 캔들이 부족합니다: {len(candles)}개 < {settings.cci_length}개"
            )
            self.result = aggregate([], settings, candle_count=len(candles),
                                    synthetic_data=synthetic_data)
            return self.result

        logger.info(
            f"백테스트 시작: {settings.symbol} {settings.timeframe} "
            f"{format_timestamp(samples[0].timestamp, '%Y-%m-%d %H:%M')} ~ "
            f"{format_timestamp(samples[-1].timestamp, '%Y-%m-%d %H:%M')} "
            f"(캔들 {len(candles)}개, 정책 {settings.stage_policy}, 신호 {settings.signal_mode})"
        )

        detector = create_detector(settings)
        manager = PositionManager(settings)
        realized = settings.seed_money

        for sample in samples:
            previous = detector.previous_cci
            direction = detector.step(sample.cci_value)

            if manager.is_open:
                trade = manager.on_candle(sample.price, sample.timestamp, sample.cci_value)
                if trade is not None:
                    realized += trade.net_profit
            elif direction is not None:
                signal = EntrySignal(
                    direction=direction,
                    price=sample.price,
                    timestamp=sample.timestamp,
                    cci=sample.cci_value,
                    previous_cci=previous if previous is not None else sample.cci_value,
                    confidence=detector.confidence(),
                )
                realized += manager.open(signal).net_profit

            self.equity_curve.append((sample.timestamp, realized + _unrealized(manager, sample.price)))

        last = samples[-1]
        closing = manager.force_close(last.price, last.timestamp, last.cci_value)
        if closing is not None:
            logger.info(f"데이터 종료: 포지션 #{closing.position_id} 강제 청산 @ {last.price:,.4f}")

        self.result = aggregate(
            manager.trades,
            settings,
            positions=manager.results,
            candle_count=len(candles),
            synthetic_data=synthetic_data,
        )
        if closing is not None:
            # 마지막 평가자산에 강제 청산 수수료 반영
            self.equity_curve[-1] = (last.timestamp, self.result.final_capital)
        logger.info(
            f"백테스트 완료. 포지션 {self.result.total_positions}개, "
            f"총 손익 {self.result.total_profit:,.2f} ({self.result.total_return:.2f}%)"
        )
        return self.result

    def generate_report(self) -> dict[str, Any]:
        """백테스트 리포트 생성."""
        if self.result is None:
            return {"error": "백테스트를 먼저 실행하세요."}

        return {
            "metrics": self.result.to_dict(),
            "equity_curve": [{"timestamp": ts, "equity": value} for ts, value in self.equity_curve],
        }


def _unrealized(manager: PositionManager, price: float) -> float:
    """열린 포지션의 평가손익 (수수료 제외)."""
    position = manager.position
    if position is None:
        return 0.0
    return position.total_amount * position.profit_rate(price) / 100
