"""
백테스트 성과 집계 모듈.

[ 역할 ]
    거래 기록(TradeExecution 목록)을 받아 포지션별 결과와 전체 성과 지표를 계산.
    aggregate() 함수가 핵심. 실행 종료 후 1회만 호출되는 순수 함수.

[ 계산하는 지표 ]
    - 총 손익 / 수수료 / 최종 자본 / 총 수익률
    - 승률, 수익 팩터 (포지션 순손익 기준)
    - MDD (시드머니에서 시작해 거래 순서대로 잔고를 재생)
    - 평균 수익/손실, 평균 보유시간, 최대 도달 단계
    - 연속 승/패

[ 예외 상황 ]
    - 거래 0건: 모든 수치 0, final_capital == seed_money (NaN 없음)
    - 손실 합계 0 & 이익 > 0: profit_factor = PROFIT_FACTOR_CAP (무한대 대신)

[ 호출하는 곳 ]
    - backtest/position_manager.py: 포지션 종료 시 build_position_result()
    - backtest/engine.py::BacktestEngine.run() 완료 시 aggregate()
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from itertools import groupby
from typing import Any

from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction
from cci_trading.data.position import TradeExecution, TradeType

# 손실이 전혀 없을 때의 수익 팩터. JSON 직렬화를 위해 inf 대신 유한값 사용.
PROFIT_FACTOR_CAP = 999.99

_MS_PER_HOUR = 60 * 60 * 1000


def format_timestamp(timestamp: int, fmt: str = "%m-%d %H:%M") -> str:
    """ms epoch → UTC 문자열."""
    return datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc).strftime(fmt)


def format_duration(duration_ms: int) -> str:
    """보유 기간 문자열 (예: '2일 3시간', '5시간 10분', '45분')."""
    minutes = duration_ms // (1000 * 60)
    hours, minutes = divmod(minutes, 60)
    if hours > 24:
        return f"{hours // 24}일 {hours % 24}시간"
    if hours > 0:
        return f"{hours}시간 {minutes}분"
    return f"{minutes}분"


@dataclass(frozen=True)
class PositionResult:
    """종료된 포지션 1개의 요약. 포지션이 완전히 청산될 때만 생성."""
    position_id: int
    direction: Direction
    symbol: str
    max_stage: int
    invested_amount: float     # 진입에 투입한 금액 합계
    gross_profit: float
    total_fees: float
    total_profit: float        # gross_profit - total_fees
    exit_reason: TradeType     # 마지막 청산 거래 종류
    start_time: int
    end_time: int
    trades: tuple[TradeExecution, ...] = ()

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    @property
    def duration(self) -> str:
        return format_duration(self.duration_ms)

    @property
    def profit_rate(self) -> float:
        """투입금액 대비 순수익률 (%)."""
        if self.invested_amount <= 0:
            return 0.0
        return self.total_profit / self.invested_amount * 100

    @property
    def is_win(self) -> bool:
        return self.total_profit > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "position_id": self.position_id,
            "direction": self.direction.value,
            "symbol": self.symbol,
            "max_stage": self.max_stage,
            "invested_amount": self.invested_amount,
            "gross_profit": self.gross_profit,
            "total_fees": self.total_fees,
            "total_profit": self.total_profit,
            "profit_rate": self.profit_rate,
            "exit_reason": self.exit_reason.value,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "duration": self.duration,
            "trades": [t.to_dict() for t in self.trades],
        }


def build_position_result(trades: list[TradeExecution], symbol: str) -> PositionResult:
    """한 포지션의 거래 목록(진입 ~ 전량 청산)으로 PositionResult 생성."""
    if not trades:
        raise ValueError("포지션 거래 기록이 비어 있습니다")
    if not trades[-1].trade_type.is_full_exit:
        raise ValueError(f"포지션 #{trades[0].position_id}가 청산되지 않았습니다")

    gross = sum(t.gross_profit for t in trades)
    fees = sum(t.fee for t in trades)
    return PositionResult(
        position_id=trades[0].position_id,
        direction=trades[0].direction,
        symbol=symbol,
        max_stage=max(t.stage for t in trades if t.trade_type.is_entry),
        invested_amount=sum(t.amount for t in trades if t.trade_type.is_entry),
        gross_profit=gross,
        total_fees=fees,
        total_profit=gross - fees,
        exit_reason=trades[-1].trade_type,
        start_time=trades[0].timestamp,
        end_time=trades[-1].timestamp,
        trades=tuple(trades),
    )


@dataclass
class BacktestResult:
    """백테스트 최종 결과. summary()로 포맷된 리포트 출력 가능."""
    symbol: str = ""
    timeframe: str = ""
    seed_money: float = 0.0
    candle_count: int = 0
    total_positions: int = 0        # 종료된 포지션 수
    winning_positions: int = 0
    losing_positions: int = 0
    long_positions: int = 0
    short_positions: int = 0
    total_trades: int = 0           # 개별 자금 이동 수 (진입 + 청산)
    total_profit: float = 0.0       # 순손익 (수수료 차감)
    total_fees: float = 0.0
    max_drawdown: float = 0.0       # 최대 낙폭 MDD (%)
    final_capital: float = 0.0
    total_return: float = 0.0       # 총 수익률 (%)
    win_rate: float = 0.0           # 승률 (%)
    profit_factor: float = 0.0      # 총이익 / 총손실
    avg_profit: float = 0.0         # 수익 포지션 평균 이익
    avg_loss: float = 0.0           # 손실 포지션 평균 손실
    avg_holding_hours: float = 0.0
    max_stage_reached: int = 0
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0
    synthetic_data: bool = False    # 대체(샘플) 데이터로 실행했는지
    positions: list[PositionResult] = field(default_factory=list)
    trades: list[TradeExecution] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON 직렬화 가능한 딕셔너리 변환."""
        data = asdict(self)
        data["positions"] = [p.to_dict() for p in self.positions]
        data["trades"] = [t.to_dict() for t in self.trades]
        return data

    def summary(self) -> str:
        """성과 요약 문자열."""
        lines = [
            "=" * 50,
            f"CCI 물타기 백테스트 리포트 ({self.symbol} {self.timeframe})",
            "=" * 50,
            f"캔들 수:         {self.candle_count:>10d}",
            f"시드머니:        {self.seed_money:>10,.2f}",
            f"최종 자본:       {self.final_capital:>10,.2f}",
            f"총 손익:         {self.total_profit:>10,.2f}",
            f"총 수익률:       {self.total_return:>10.2f}%",
            f"총 수수료:       {self.total_fees:>10,.2f}",
            f"최대 낙폭(MDD):  {self.max_drawdown:>10.2f}%",
            "-" * 50,
            f"포지션 수:       {self.total_positions:>10d}  (롱 {self.long_positions} / 숏 {self.short_positions})",
            f"거래 횟수:       {self.total_trades:>10d}",
            f"승률:            {self.win_rate:>10.2f}%",
            f"수익 포지션:     {self.winning_positions:>10d}",
            f"손실 포지션:     {self.losing_positions:>10d}",
            f"평균 수익:       {self.avg_profit:>10,.2f}",
            f"평균 손실:       {self.avg_loss:>10,.2f}",
            f"수익 팩터:       {self.profit_factor:>10.2f}",
            "-" * 50,
            f"최대 도달 단계:  {self.max_stage_reached:>10d}",
            f"평균 보유시간:   {self.avg_holding_hours:>10.1f}h",
            f"최대 연속 수익:  {self.max_consecutive_wins:>10d}",
            f"최대 연속 손실:  {self.max_consecutive_losses:>10d}",
            "=" * 50,
        ]
        if self.synthetic_data:
            lines.insert(3, "※ 실제 시세 조회 실패로 샘플 데이터를 사용한 결과입니다")
        return "\n".join(lines)


def group_positions(trades: list[TradeExecution], symbol: str) -> list[PositionResult]:
    """거래 목록을 position_id별로 묶어 종료된 포지션의 결과 목록 생성.

    아직 청산되지 않은 포지션(마지막 거래가 전량 청산이 아님)은 제외.
    """
    results = []
    for _, group in groupby(trades, key=lambda t: t.position_id):
        position_trades = list(group)
        if position_trades[-1].trade_type.is_full_exit:
            results.append(build_position_result(position_trades, symbol))
    return results


def calculate_max_drawdown(trades: list[TradeExecution], seed_money: float) -> float:
    """거래 순서대로 잔고를 재생하며 고점 대비 최대 낙폭(%) 계산."""
    peak = seed_money
    balance = seed_money
    max_dd = 0.0
    for trade in trades:
        balance += trade.net_profit
        if balance > peak:
            peak = balance
        if peak > 0:
            dd = (peak - balance) / peak * 100
            if dd > max_dd:
                max_dd = dd
    return max_dd


def aggregate(
    trades: list[TradeExecution],
    settings: StrategySettings,
    positions: list[PositionResult] | None = None,
    candle_count: int = 0,
    synthetic_data: bool = False,
) -> BacktestResult:
    """성과 지표 계산. engine.py에서 백테스트 완료 후 호출됨.

    Args:
        trades: 전체 거래 기록 (timestamp 비내림차순, 재정렬/중복제거하지 않음)
        settings: 전략 설정 (seed_money 등)
        positions: 종료된 포지션 결과. None이면 trades에서 재구성
        candle_count: 입력 캔들 수 (리포트용)
        synthetic_data: 샘플 데이터 사용 여부 (리포트용)

    Raises:
        ValueError: trades가 시간 순서가 아닐 때
    """
    for prev, cur in zip(trades, trades[1:]):
        if cur.timestamp < prev.timestamp:
            raise ValueError("거래 기록은 timestamp 오름차순이어야 합니다")

    if positions is None:
        positions = group_positions(trades, settings.symbol)

    result = BacktestResult(
        symbol=settings.symbol,
        timeframe=settings.timeframe,
        seed_money=settings.seed_money,
        candle_count=candle_count,
        synthetic_data=synthetic_data,
        positions=list(positions),
        trades=list(trades),
    )

    # ─── 자본 / 손익 ────────────────────────────────────────────────────
    result.total_trades = len(trades)
    result.total_profit = sum(t.net_profit for t in trades)
    result.total_fees = sum(t.fee for t in trades)
    result.final_capital = settings.seed_money + result.total_profit
    result.total_return = result.total_profit / settings.seed_money * 100
    result.max_drawdown = calculate_max_drawdown(trades, settings.seed_money)

    if not positions:
        return result

    # ─── 포지션 기반 지표 ────────────────────────────────────────────────
    profits = [p.total_profit for p in positions]
    winners = [p for p in profits if p > 0]
    losers = [p for p in profits if p <= 0]

    result.total_positions = len(positions)
    result.winning_positions = len(winners)
    result.losing_positions = len(losers)
    result.long_positions = sum(1 for p in positions if p.direction is Direction.LONG)
    result.short_positions = result.total_positions - result.long_positions
    result.win_rate = len(winners) / len(positions) * 100

    if winners:
        result.avg_profit = sum(winners) / len(winners)
    if losers:
        result.avg_loss = sum(losers) / len(losers)

    total_gain = sum(winners)
    total_loss = abs(sum(losers))
    if total_loss > 0:
        result.profit_factor = total_gain / total_loss
    elif total_gain > 0:
        result.profit_factor = PROFIT_FACTOR_CAP

    result.avg_holding_hours = sum(p.duration_ms for p in positions) / len(positions) / _MS_PER_HOUR
    result.max_stage_reached = max(p.max_stage for p in positions)

    # 연속 승패
    consecutive_wins = 0
    consecutive_losses = 0
    for p in profits:
        if p > 0:
            consecutive_wins += 1
            consecutive_losses = 0
        else:
            consecutive_losses += 1
            consecutive_wins = 0
        result.max_consecutive_wins = max(result.max_consecutive_wins, consecutive_wins)
        result.max_consecutive_losses = max(result.max_consecutive_losses, consecutive_losses)

    return result
