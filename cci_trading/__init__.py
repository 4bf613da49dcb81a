"""
=============================================================================
CCI 물타기 전략 백테스트 / 시세포착 시스템 (CCI Trading)
=============================================================================

[ 시스템 전체 구조 ]

    run_backtest.py (진입점)
         │
         ├── utils/config.py        ← config.yaml 설정 로드
         ├── utils/logger.py        ← 로깅
         │
         ├── data/market_data.py    ← 캔들 조회 (캐싱 + 샘플 폴백)
         │     └── ingestion/binance.py, ingestion/yahoo_finance.py,
         │         data/clickhouse_provider.py, data/sample_data.py
         │
         └── backtest/engine.py     ← 백테스트 실행 엔진
               │
               ├── indicators/technical.py     ← CCI / RSI 계산
               ├── signals/detector.py         ← 돌파-재진입 신호 감지
               ├── backtest/position_manager.py← 익절/절반매도/물타기/손절 상태머신
               │     └── strategies/           ← 물타기 금액 정책 (레지스트리)
               └── backtest/metrics.py         ← 성과 지표 계산

    scripts/run_monitor.py (시세포착 진입점)
         │
         └── monitoring/monitor.py  ← 설정별 최신 CCI 점검 → 신호 저장/알림
               ├── storage/         ← 설정 / 신호 / 돌파 상태 저장소
               └── monitoring/notifier.py


[ 핵심 추상 클래스 (core/) - 모든 구현체의 부모 ]

    core/data_provider.py::CandleSource → ingestion/binance.py::BinanceCandleSource
                                        → ingestion/yahoo_finance.py::YahooCandleSource
                                        → data/clickhouse_provider.py::ClickHouseCandleSource
                                        → data/mock_provider.py::MockCandleSource (테스트용)

    core/trading_strategy.py::StagePolicy → strategies/stage_policies.py

    storage/signal_store.py::SignalStore  → MemorySignalStore, ClickHouseSignalStore


[ 데이터 흐름 (백테스트) ]

    1. config.yaml에서 전략 파라미터 로드 → StrategySettings.validate()
    2. CandleSource가 캔들 제공 (I/O는 여기서 한 번만)
    3. CCI 시퀀스 계산 → 샘플마다 신호 감지
    4. PositionManager가 진입/물타기/청산 실행, TradeExecution 기록
    5. metrics.py가 거래 결과로 성과 지표 계산
"""
