import pytest

from cci_trading.core.settings import StrategySettings
from cci_trading.core.trading_strategy import Direction
from cci_trading.signals.detector import (
    BreakoutState,
    BreakoutTracker,
    CrossoverDetector,
    create_detector,
    detect_entry,
    signal_confidence,
)

SETTINGS = StrategySettings(entry_threshold=110, exit_threshold=100)


def test_detect_entry_long_and_short():
    assert detect_entry(-150, -95, SETTINGS) is Direction.LONG
    assert detect_entry(150, 95, SETTINGS) is Direction.SHORT


def test_detect_entry_boundaries():
    assert detect_entry(-150, -100, SETTINGS) is Direction.LONG
    assert detect_entry(-110, -95, SETTINGS) is None       # 이전 값이 -110 미만이어야 함
    assert detect_entry(-150, -101, SETTINGS) is None
    assert detect_entry(110, 95, SETTINGS) is None
    assert detect_entry(0, 0, SETTINGS) is None


CCI_GRID = [-300.0, -150.0, -110.5, -110.0, -100.0, -95.0, 0.0, 95.0, 100.0, 110.0, 110.5, 150.0, 300.0]


def _expected(previous, current):
    long_fires = previous < -110 and current >= -100
    short_fires = previous > 110 and current <= 100
    assert not (long_fires and short_fires)
    if long_fires:
        return Direction.LONG
    if short_fires:
        return Direction.SHORT
    return None


@pytest.mark.parametrize("mode", ["crossover", "excursion"])
@pytest.mark.parametrize("previous", CCI_GRID)
@pytest.mark.parametrize("current", CCI_GRID)
def test_at_most_one_direction_per_pair(mode, previous, current):
    detector = create_detector(SETTINGS.with_overrides(signal_mode=mode))
    fired = [d for d in (detector.step(previous), detector.step(current)) if d is not None]

    assert len(fired) <= 1
    assert (fired[0] if fired else None) is _expected(previous, current)
    assert detect_entry(previous, current, SETTINGS) is _expected(previous, current)


def test_tracker_fires_once_per_excursion():
    tracker = BreakoutTracker(110, 100)
    fired = [tracker.step(v) for v in (-50, -150, -120, -95, -95, -80)]
    assert fired == [None, None, None, Direction.LONG, None, None]
    assert tracker.state is BreakoutState.NO_BREAKOUT


def test_tracker_does_not_need_consecutive_samples():
    tracker = BreakoutTracker(110, 100)
    crossover = CrossoverDetector(SETTINGS)
    values = (-150, -105, -95)
    assert [tracker.step(v) for v in values] == [None, None, Direction.LONG]
    assert [crossover.step(v) for v in values] == [None, None, None]


def test_tracker_short_side():
    tracker = BreakoutTracker(110, 100)
    fired = [tracker.step(v) for v in (120, 180, 130, 100)]
    assert fired == [None, None, None, Direction.SHORT]
    assert tracker.signal_extreme == 180


def test_tracker_threshold_is_strict():
    tracker = BreakoutTracker(110, 100)
    assert tracker.step(-110) is None
    assert tracker.state is BreakoutState.NO_BREAKOUT


def test_tracker_rearms_on_opposite_side_in_same_step():
    tracker = BreakoutTracker(110, 100, state=BreakoutState.LONG_BREAKOUT, extreme_cci=-130)
    assert tracker.step(150) is Direction.LONG
    assert tracker.state is BreakoutState.SHORT_BREAKOUT
    assert tracker.step(90) is Direction.SHORT


def test_tracker_confidence_uses_excursion_extreme():
    tracker = BreakoutTracker(110, 100)
    for v in (-130, -165, -140, -90):
        tracker.step(v)
    assert tracker.confidence() == pytest.approx(165 / 220)


def test_signal_confidence_is_clamped():
    assert signal_confidence(-500, 110) == 1.0
    assert signal_confidence(0, 110) == 0.0
    assert signal_confidence(100, 0) == 0.0


def test_crossover_detector_confidence():
    detector = CrossoverDetector(SETTINGS)
    detector.step(-176)
    assert detector.step(-90) is Direction.LONG
    assert detector.confidence() == pytest.approx(176 / 220)


def test_create_detector_by_mode():
    assert isinstance(create_detector(SETTINGS), BreakoutTracker)
    assert isinstance(create_detector(SETTINGS.with_overrides(signal_mode="crossover")), CrossoverDetector)
    with pytest.raises(ValueError):
        create_detector(SETTINGS.with_overrides(signal_mode="unknown"))
