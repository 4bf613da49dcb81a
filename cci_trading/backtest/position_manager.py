"""
포지션 상태머신 모듈.

[ 역할 ]
    열린 포지션 1개를 캔들마다 평가하여 익절 / 절반매도 / 물타기 / 손절을 결정하고
    자금 이동을 TradeExecution으로 기록한다.

[ 캔들당 판정 순서 ] (포지션당 캔들 1개에 자금 이동은 최대 1건)
    LONG
        1. 익절     0단계: 수익률 >= profit_target → PROFIT_EXIT
                    1단계 이상: 수익률 >= profit_target → FULL_EXIT
                                수익률 >= half_sell_profit_rate → HALF_SELL
        2. 물타기   current_stage < max_stage 일 때
                    0단계: 최초 진입가 대비 손실 >= stage1_loss
                    n단계: 평균단가 대비 손실 >= stage{n+1}_loss
        3. 손절     current_stage == max_stage 이고 평균단가 대비 손실 >= stop_loss_percent
    SHORT (물타기/절반매도 없음)
        1. 수익률 >= profit_target → PROFIT_EXIT
        2. 손실 >= stop_loss_percent → STOP_LOSS

[ 수수료 / 손익 ]
    수수료 = 이동 금액 × fee_rate / 100 (진입: 투입액, 청산: 매도 대금)
    청산 손익 = 코인 × (청산가 - 평균단가)   (SHORT는 부호 반대)
    진입 거래의 순손익 = -수수료

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()
"""

import logging

from cci_trading.backtest.metrics import PositionResult, build_position_result, format_timestamp
from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction, EntrySignal, StagePolicy
from cci_trading.data.position import Position, TradeExecution, TradeType
from cci_trading.strategies import create_policy

logger = logging.getLogger("cci_trading.backtest")


class PositionManager:
    """포지션 1개의 수명주기 관리. open() → on_candle() 반복 → 전량 청산."""

    def __init__(self, settings: StrategySettings, policy: StagePolicy | None = None):
        self.settings = settings
        self.policy = policy or create_policy(settings.stage_policy, settings)

        self.position: Position | None = None
        self.trades: list[TradeExecution] = []        # 전체 거래 기록 (append-only)
        self.results: list[PositionResult] = []       # 종료된 포지션
        self._position_trades: list[TradeExecution] = []
        self._next_id = 1

    @property
    def is_open(self) -> bool:
        return self.position is not None

    # ─── 진입 ─────────────────────────────────────────────────────────────

    def open(self, signal: EntrySignal) -> TradeExecution:
        """0단계 진입. 이미 포지션이 열려 있으면 RuntimeError."""
        if self.position is not None:
            raise RuntimeError(
                f"포지션 #{self.position.position_id}가 이미 열려 있습니다 (동시 포지션은 1개만 허용)"
            )

        self.position = Position(
            position_id=self._next_id,
            direction=signal.direction,
            symbol=self.settings.symbol,
            opened_at=signal.timestamp,
            entry_cci=signal.cci,
            previous_cci=signal.previous_cci,
        )
        self._next_id += 1
        self._position_trades = []

        reason = signal.reason or _entry_reason(signal.direction, self.settings)
        return self._enter_stage(0, self.settings.start_amount, signal.price, signal.timestamp,
                                 signal.cci, reason)

    def _enter_stage(
        self,
        stage_index: int,
        amount: float,
        price: float,
        timestamp: int,
        cci: float,
        reason: str,
    ) -> TradeExecution:
        position = self.position
        stage = position.add_stage(price, amount, timestamp, stage_index)
        fee = amount * self.settings.fee_rate / 100

        trade = TradeExecution(
            position_id=position.position_id,
            trade_type=TradeType.STAGE_ENTRY,
            direction=position.direction,
            stage=stage_index,
            entry_price=price,
            exit_price=None,
            amount=amount,
            coins=stage.coins,
            fee=fee,
            gross_profit=0.0,
            net_profit=-fee,
            timestamp=timestamp,
            entry_cci=cci,
            exit_cci=0.0,
            profit_rate=0.0,
            reason=reason,
        )
        self._record(trade)
        return trade

    # ─── 캔들별 평가 ──────────────────────────────────────────────────────

    def on_candle(self, price: float, timestamp: int, cci: float) -> TradeExecution | None:
        """열린 포지션을 현재 종가로 평가. 자금 이동이 있으면 해당 거래 반환."""
        if self.position is None:
            return None
        if self.position.direction is Direction.LONG:
            return self._evaluate_long(price, timestamp, cci)
        return self._evaluate_short(price, timestamp, cci)

    def _evaluate_long(self, price: float, timestamp: int, cci: float) -> TradeExecution | None:
        s = self.settings
        position = self.position
        stage = position.current_stage
        profit_rate = position.profit_rate(price)

        # 1. 익절 / 절반매도
        if stage == 0:
            if profit_rate >= s.profit_target:
                return self._close(TradeType.PROFIT_EXIT, price, timestamp, cci,
                                   f"목표 수익 {profit_rate:.2f}% 달성 (익절)")
        else:
            if profit_rate >= s.profit_target:
                return self._close(TradeType.FULL_EXIT, price, timestamp, cci,
                                   f"물타기 {stage}단계 후 목표 수익 {profit_rate:.2f}% 달성 (전량 매도)")
            if profit_rate >= s.half_sell_profit_rate:
                return self._half_sell(price, timestamp, cci, profit_rate)

        # 2. 물타기
        if stage < s.max_stage:
            next_stage = stage + 1
            if stage == 0:
                loss = position.loss_rate(price, reference=position.first_entry_price)
                basis = "최초 진입가"
            else:
                loss = position.loss_rate(price)
                basis = "평균단가"
            if loss >= s.loss_threshold_for(next_stage):
                amount = self.policy.stage_amount(position, next_stage)
                return self._enter_stage(
                    next_stage, amount, price, timestamp, cci,
                    f"{basis} 대비 {loss:.2f}% 손실 - {next_stage}단계 물타기",
                )
            return None

        # 3. 최종 단계 손절
        loss = position.loss_rate(price)
        if loss >= s.stop_loss_percent:
            return self._close(TradeType.STOP_LOSS, price, timestamp, cci,
                               f"최종 {stage}단계에서 {loss:.2f}% 손실 (손절)")
        return None

    def _evaluate_short(self, price: float, timestamp: int, cci: float) -> TradeExecution | None:
        s = self.settings
        position = self.position

        profit_rate = position.profit_rate(price)
        if profit_rate >= s.profit_target:
            return self._close(TradeType.PROFIT_EXIT, price, timestamp, cci,
                               f"숏 목표 수익 {profit_rate:.2f}% 달성 (익절)")

        loss = position.loss_rate(price)
        if loss >= s.stop_loss_percent:
            return self._close(TradeType.STOP_LOSS, price, timestamp, cci,
                               f"숏 {loss:.2f}% 손실 (손절)")
        return None

    # ─── 청산 ─────────────────────────────────────────────────────────────

    def force_close(self, price: float, timestamp: int, cci: float) -> TradeExecution | None:
        """데이터 종료 시 마지막 종가로 강제 청산. 열린 포지션이 없으면 None."""
        if self.position is None:
            return None
        return self._close(TradeType.FORCE_CLOSE, price, timestamp, cci, "데이터 종료로 강제 청산")

    def _half_sell(self, price: float, timestamp: int, cci: float, profit_rate: float) -> TradeExecution:
        position = self.position
        stage_before = position.current_stage
        average = position.average_price
        coins, cost = position.reduce_half()

        trade = self._exit_trade(
            TradeType.HALF_SELL, stage_before, average, price, coins, cost, timestamp, cci,
            profit_rate, f"{stage_before}단계에서 수익 {profit_rate:.2f}% - 절반 매도",
        )
        self._record(trade)
        return trade

    def _close(self, trade_type: TradeType, price: float, timestamp: int, cci: float,
               reason: str) -> TradeExecution:
        position = self.position
        trade = self._exit_trade(
            trade_type, position.current_stage, position.average_price, price,
            position.total_coins, position.total_amount, timestamp, cci,
            position.profit_rate(price), reason,
        )
        self._record(trade)

        result = build_position_result(self._position_trades, position.symbol)
        self.results.append(result)
        logger.debug(
            f"포지션 #{result.position_id} 종료: {result.direction.value} "
            f"최대 {result.max_stage}단계, 순손익 {result.total_profit:,.2f} ({result.duration})"
        )
        self.position = None
        self._position_trades = []
        return trade

    def _exit_trade(
        self,
        trade_type: TradeType,
        stage: int,
        average_price: float,
        price: float,
        coins: float,
        cost_basis: float,
        timestamp: int,
        cci: float,
        profit_rate: float,
        reason: str,
    ) -> TradeExecution:
        position = self.position
        proceeds = coins * price
        if position.direction is Direction.LONG:
            gross = proceeds - cost_basis
        else:
            gross = cost_basis - proceeds
        fee = proceeds * self.settings.fee_rate / 100

        return TradeExecution(
            position_id=position.position_id,
            trade_type=trade_type,
            direction=position.direction,
            stage=stage,
            entry_price=average_price,
            exit_price=price,
            amount=proceeds,
            coins=coins,
            fee=fee,
            gross_profit=gross,
            net_profit=gross - fee,
            timestamp=timestamp,
            entry_cci=position.entry_cci,
            exit_cci=cci,
            profit_rate=profit_rate,
            reason=reason,
        )

    def _record(self, trade: TradeExecution) -> None:
        self.trades.append(trade)
        self._position_trades.append(trade)
        logger.debug(
            f"[{format_timestamp(trade.timestamp)}] {trade.trade_type.value} "
            f"{trade.direction.value} #{trade.position_id} {trade.stage}단계 "
            f"{trade.amount:,.2f} @ {trade.exit_price or trade.entry_price:,.4f} ({trade.reason})"
        )


def _entry_reason(direction: Direction, settings: StrategySettings) -> str:
    if direction is Direction.LONG:
        return (f"CCI -{settings.entry_threshold:g} 이탈 후 -{settings.exit_threshold:g} 복귀 "
                f"(과매도 회복, 롱 진입)")
    return (f"CCI +{settings.entry_threshold:g} 이탈 후 +{settings.exit_threshold:g} 복귀 "
            f"(과매수 반락, 숏 진입)")
