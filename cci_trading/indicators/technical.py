"""
기술적 지표 계산 모듈 (CCI, RSI).

[ 역할 ]
    캔들 시퀀스를 받아 지표 값을 계산하는 순수 함수 모음.
    같은 입력이면 항상 같은 출력 (부수효과 없음).

[ 계산 방식 ]
    CCI = (TP - SMA(TP)) / (0.015 * 평균절대편차)
        TP(Typical Price) = (고가 + 저가 + 종가) / 3
        윈도우: 현재 캔들을 포함한 최근 period개
    RSI = 100 - 100 / (1 + 평균상승 / 평균하락)
        평균은 Wilder 방식 RMA (첫 period개는 단순평균으로 시작, alpha = 1/period)

[ 예외 상황 처리 ]
    - 캔들 수 < period: CCI는 빈 리스트 (오류 아님)
    - 평균절대편차 0 (윈도우 내 TP가 모두 같음): CCI 0.0
    - RSI 데이터 부족: 50.0 (중립), 평균하락 0: 100.0

[ 호출하는 곳 ]
    - backtest/engine.py::BacktestEngine.run()에서 전체 CCI 시퀀스 계산
    - monitoring/monitor.py::evaluate_config()에서 최신 CCI/RSI 계산
"""

from dataclasses import dataclass

import numpy as np

from cci_trading.core.data_provider import Candle

CCI_CONSTANT = 0.015   # CCI 정규화 상수 (변경 금지)
RSI_NEUTRAL = 50.0


@dataclass(frozen=True)
class IndicatorSample:
    """CCI 계산이 가능한 캔들 1개에 대응하는 지표 샘플."""
    timestamp: int
    price: float       # 종가
    volume: float
    cci_value: float


def compute_cci(candles: list[Candle], period: int) -> list[float]:
    """CCI 시퀀스 계산.

    Args:
        candles: timestamp 오름차순 캔들
        period: CCI 기간

    Returns:
        길이 len(candles) - period + 1 의 CCI 리스트.
        i번째 값은 candles[i + period - 1]에서 끝나는 윈도우의 CCI.
        캔들이 period개 미만이면 빈 리스트.
    """
    if period <= 0:
        raise ValueError(f"period는 0보다 커야 합니다: {period}")
    if len(candles) < period:
        return []

    typical = np.array([c.typical_price for c in candles], dtype=np.float64)
    windows = np.lib.stride_tricks.sliding_window_view(typical, period)

    sma = windows.mean(axis=1)
    mean_deviation = np.abs(windows - sma[:, None]).mean(axis=1)

    # 윈도우 내 TP가 모두 같으면 부동소수 오차와 무관하게 정확히 0.0
    flat = (windows.max(axis=1) == windows.min(axis=1)) | (mean_deviation == 0.0)
    safe_deviation = np.where(flat, 1.0, mean_deviation)
    cci = (windows[:, -1] - sma) / (CCI_CONSTANT * safe_deviation)
    cci = np.where(flat, 0.0, cci)

    return [float(v) for v in cci]


def build_indicator_samples(candles: list[Candle], period: int) -> list[IndicatorSample]:
    """캔들 + CCI를 묶은 IndicatorSample 시퀀스. 길이 = len(candles) - period + 1."""
    cci_values = compute_cci(candles, period)
    offset = period - 1
    return [
        IndicatorSample(
            timestamp=candles[i + offset].timestamp,
            price=candles[i + offset].close,
            volume=candles[i + offset].volume,
            cci_value=value,
        )
        for i, value in enumerate(cci_values)
    ]


def latest_cci(candles: list[Candle], period: int) -> float | None:
    """마지막 캔들 기준 CCI. 데이터 부족이면 None."""
    if len(candles) < period:
        return None
    return compute_cci(candles[-period:], period)[-1]


def compute_rsi(closes: list[float], period: int = 14) -> float:
    """마지막 시점의 RSI (Wilder RMA).

    Args:
        closes: 종가 시퀀스 (오래된 것부터)
        period: RSI 기간

    Returns:
        0~100 RSI. 종가가 period + 1개 미만이면 50.0.
    """
    if period <= 0:
        raise ValueError(f"period는 0보다 커야 합니다: {period}")
    if len(closes) < period + 1:
        return RSI_NEUTRAL

    changes = np.diff(np.asarray(closes, dtype=np.float64))
    gains = np.where(changes > 0, changes, 0.0)
    losses = np.where(changes < 0, -changes, 0.0)

    # 첫 RMA 값은 단순평균으로 시작
    avg_gain = float(gains[:period].mean())
    avg_loss = float(losses[:period].mean())

    alpha = 1.0 / period
    for gain, loss in zip(gains[period:], losses[period:]):
        avg_gain = alpha * float(gain) + (1 - alpha) * avg_gain
        avg_loss = alpha * float(loss) + (1 - alpha) * avg_loss

    if avg_loss == 0.0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))
