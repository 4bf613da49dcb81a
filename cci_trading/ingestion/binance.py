"""
바이낸스 K-line 캔들 수집 모듈.

[ 역할 ]
    GET /api/v3/klines 로 캔들을 조회하는 CandleSource 구현.
    1000개 제한이 있으므로 endTime을 앞으로 당기며 역방향 페이지네이션.

[ 재시도 ]
    네트워크 오류 / HTTP 418, 429, 5xx 는 지수 백오프로 최대 max_retries회 재시도.
    그 외 HTTP 오류는 즉시 DataSourceError (상태 코드별 한글 안내 포함).

[ 진행 중 캔들 ]
    바이낸스는 아직 닫히지 않은 마지막 캔들도 돌려준다.
    include_in_progress=False(기본)면 close_time이 현재 시각 이후인 캔들은 제외.

[ 호출하는 곳 ]
    - run_backtest.py --source binance
    - scripts/run_monitor.py, scripts/ingest_candles.py
"""

import logging
import random
import time
from typing import Any, Callable

import httpx

from cci_trading.core.data_provider import Candle, CandleSource, Interval, normalize_candles
from cci_trading.core.errors import DataSourceError

logger = logging.getLogger("cci_trading.ingestion")

BINANCE_BASE_URL = "https://api.binance.com"
KLINES_PATH = "/api/v3/klines"
MAX_LIMIT = 1000
RETRY_STATUS = {418, 429, 500, 502, 503, 504}

_STATUS_MESSAGES = {
    400: "잘못된 요청 (400): 심볼명이나 시간프레임을 확인해주세요",
    403: "접근 금지 (403): IP 제한이 있을 수 있습니다",
    418: "IP 차단 (418): 요청 한도를 반복해서 초과했습니다",
    429: "요청 한도 초과 (429): 잠시 후 다시 시도해주세요",
    500: "서버 오류 (500): 바이낸스 서버에 문제가 있습니다",
}


def describe_status(status_code: int) -> str:
    """HTTP 상태 코드 → 한글 안내 문구."""
    return _STATUS_MESSAGES.get(status_code, f"HTTP {status_code} 오류")


def parse_kline(row: list[Any]) -> tuple[Candle, int] | None:
    """kline 배열 → (Candle, close_time). 형식이 맞지 않으면 None."""
    try:
        candle = Candle(
            timestamp=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )
    except (IndexError, TypeError, ValueError):
        return None
    close_time = int(row[6]) if len(row) > 6 else candle.timestamp
    return candle, close_time


class BinanceCandleSource(CandleSource):
    """바이낸스 현물 K-line 캔들 소스.

    사용 예:
        source = BinanceCandleSource()
        candles = source.fetch_candles("BTCUSDT", Interval.H4, 2190)
    """

    name = "binance"

    def __init__(
        self,
        base_url: str = BINANCE_BASE_URL,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_base: float = 0.5,
        include_in_progress: bool = False,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.client = client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.include_in_progress = include_in_progress
        self._sleep = sleep
        self._clock = clock

    # ─── HTTP ─────────────────────────────────────────────────────────────

    def _delay(self, attempt: int) -> float:
        return min(self.backoff_base * (2 ** attempt), 8.0) + random.uniform(0, 0.05)

    def _request(self, params: dict[str, Any], symbol: str, interval: Interval) -> list[list[Any]]:
        attempt = 0
        while True:
            try:
                resp = self.client.get(KLINES_PATH, params=params)
            except httpx.HTTPError as e:
                if attempt >= self.max_retries:
                    raise DataSourceError(
                        f"바이낸스 API 네트워크 오류 ({attempt + 1}회 시도): {e}",
                        symbol=symbol, interval=interval.value,
                    ) from e
                logger.warning(f"네트워크 오류, 재시도 {attempt + 1}/{self.max_retries}: {e}")
                self._sleep(self._delay(attempt))
                attempt += 1
                continue

            if resp.status_code in RETRY_STATUS and attempt < self.max_retries:
                logger.warning(
                    f"HTTP {resp.status_code}, 재시도 {attempt + 1}/{self.max_retries}"
                )
                self._sleep(self._delay(attempt))
                attempt += 1
                continue

            if resp.status_code != 200:
                raise DataSourceError(
                    f"바이낸스 API 호출 실패: {describe_status(resp.status_code)} "
                    f"(symbol={symbol}, interval={interval.value}, 상세: {resp.text[:200]})",
                    symbol=symbol, interval=interval.value, status_code=resp.status_code,
                )

            try:
                payload = resp.json()
            except ValueError as e:
                raise DataSourceError(
                    f"바이낸스 응답을 해석할 수 없습니다: {e}",
                    symbol=symbol, interval=interval.value, status_code=resp.status_code,
                ) from e
            if not isinstance(payload, list):
                raise DataSourceError(
                    f"예상하지 못한 바이낸스 응답 형식: {str(payload)[:200]}",
                    symbol=symbol, interval=interval.value, status_code=resp.status_code,
                )
            return payload

    # ─── CandleSource ────────────────────────────────────────────────────

    def fetch_candles(self, symbol: str, interval: Interval, count: int) -> list[Candle]:
        """최근 count개 캔들 조회 (1000개 단위 역방향 페이지네이션)."""
        if count <= 0:
            return []

        # 진행 중 캔들을 빼면 1개가 모자랄 수 있어 하나 더 받는다
        target = count if self.include_in_progress else count + 1
        collected: list[tuple[Candle, int]] = []
        end_time: int | None = None
        request_count = 0

        while len(collected) < target:
            limit = min(target - len(collected), MAX_LIMIT)
            params: dict[str, Any] = {"symbol": symbol, "interval": interval.value, "limit": limit}
            if end_time is not None:
                params["endTime"] = end_time

            request_count += 1
            rows = self._request(params, symbol, interval)

            page = []
            for row in rows:
                parsed = parse_kline(row)
                if parsed is None:
                    logger.warning(f"캔들 파싱 오류, 건너뜀: {str(row)[:100]}")
                    continue
                page.append(parsed)

            if not page:
                break
            collected = page + collected
            end_time = page[0][0].timestamp - 1
            if len(rows) < limit:
                break  # 더 오래된 데이터 없음

        if not self.include_in_progress:
            now_ms = int(self._clock() * 1000)
            collected = [(c, close_time) for c, close_time in collected if close_time < now_ms]

        candles = normalize_candles([c for c, _ in collected])[-count:]
        if not candles:
            logger.warning(f"{symbol} {interval.value}: 받은 캔들이 없습니다 (요청 {request_count}회)")
        else:
            logger.debug(f"{symbol} {interval.value}: {len(candles)}개 수집 (요청 {request_count}회)")
        return candles

    def close(self) -> None:
        self.client.close()
