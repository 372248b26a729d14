"""
Unit tests for guided breathing feedback.

Tests pattern selection, phase timing and detection, deviation scoring,
feedback history and session statistics.
"""

import pytest

from bequalize.analysis.breathing_feedback import (
    BREATHING_PATTERNS,
    BreathingFeedbackManager,
    classify_deviation,
    detect_phase,
    expected_phase,
    feedback_message,
    feedback_type,
    patterns_for,
)
from bequalize.analysis.types import RespiratoryMetrics
from bequalize.constants import (
    BreathingPhase,
    DeviationSeverity,
    DeviationType,
    ExerciseType,
    FeedbackType,
)


def _metrics(rate: float, regularity: float = 0.9, filtered=None) -> RespiratoryMetrics:
    return RespiratoryMetrics(
        breathing_rate_bpm=rate,
        regularity=regularity,
        filtered_signal=filtered or [],
        peak_indices=[0, 100],
    )


@pytest.fixture
def manager():
    return BreathingFeedbackManager()


class TestPatterns:
    def test_library(self):
        assert len(BREATHING_PATTERNS) == 5
        assert [p.name for p in patterns_for(ExerciseType.ROMBERG_EYES_OPEN)] == [
            "Normal Standing Balance",
            "Anxiety Management",
        ]

    def test_cycle_duration(self):
        anxiety = patterns_for(ExerciseType.ROMBERG_EYES_OPEN)[1]
        assert anxiety.cycle_duration_s == 12.0
        assert anxiety.target_rate_bpm == 5

    def test_exercise_without_patterns(self):
        assert patterns_for(ExerciseType.BREATH_HOLD) == []

    @pytest.mark.parametrize(
        "elapsed,phase",
        [
            (0.0, BreathingPhase.INHALE),
            (2.0, BreathingPhase.INHALE),
            (2.5, BreathingPhase.HOLD),
            (4.0, BreathingPhase.EXHALE),
            (6.0, BreathingPhase.EXHALE),
            (7.5, BreathingPhase.INHALE),
        ],
    )
    def test_expected_phase(self, elapsed, phase):
        dynamic = patterns_for(ExerciseType.SINGLE_LEG_STAND)[0]
        assert expected_phase(elapsed, dynamic).phase is phase


class TestDetectPhase:
    def test_too_few_samples_is_rest(self):
        assert detect_phase([1.0] * 9) is BreathingPhase.REST

    def test_rising_is_inhale(self):
        assert detect_phase([float(i) for i in range(30)]) is BreathingPhase.INHALE

    def test_falling_is_exhale(self):
        assert detect_phase([float(-i) for i in range(30)]) is BreathingPhase.EXHALE

    def test_flat_is_hold(self):
        assert detect_phase([2000.0 + 0.1 * i for i in range(25)]) is BreathingPhase.HOLD

    def test_uses_latest_window_only(self):
        signal = [float(-i) for i in range(100)] + [float(i) for i in range(25)]
        assert detect_phase(signal) is BreathingPhase.INHALE


class TestDeviation:
    @pytest.mark.parametrize(
        "rate,regularity,kind,severity",
        [
            (12.0, 0.9, DeviationType.CORRECT, DeviationSeverity.MILD),
            (14.0, 0.9, DeviationType.CORRECT, DeviationSeverity.MILD),
            (15.0, 0.9, DeviationType.TOO_FAST, DeviationSeverity.MODERATE),
            (20.0, 0.9, DeviationType.TOO_FAST, DeviationSeverity.SEVERE),
            (9.0, 0.9, DeviationType.TOO_SLOW, DeviationSeverity.MODERATE),
            (5.0, 0.9, DeviationType.TOO_SLOW, DeviationSeverity.SEVERE),
            (9.0, 0.5, DeviationType.IRREGULAR, DeviationSeverity.MODERATE),
        ],
    )
    def test_classify(self, rate, regularity, kind, severity):
        deviation = classify_deviation(rate, regularity, target_rate_bpm=12)

        assert deviation.deviation_type is kind
        assert deviation.severity is severity
        assert deviation.rate_deviation_bpm == pytest.approx(rate - 12)

    def test_feedback_types(self):
        assert feedback_type(classify_deviation(12, 0.9, 12)) is FeedbackType.POSITIVE
        assert feedback_type(classify_deviation(16, 0.9, 12)) is FeedbackType.WARNING
        assert feedback_type(classify_deviation(20, 0.9, 12)) is FeedbackType.ALERT

    def test_messages(self):
        correct = feedback_message(classify_deviation(12, 0.9, 12), BreathingPhase.EXHALE)
        severe = feedback_message(classify_deviation(20, 0.9, 12), BreathingPhase.INHALE)
        slow = feedback_message(classify_deviation(8, 0.9, 12), BreathingPhase.HOLD)
        irregular = feedback_message(classify_deviation(8, 0.2, 12), BreathingPhase.INHALE)

        assert correct == "Great breathing! Continue exhaling steadily."
        assert severe.startswith("Breathing too fast!")
        assert "hold phase" in slow
        assert irregular.endswith("smooth inhaling.")


class TestBreathingFeedbackManager:
    def test_process_without_session(self, manager):
        assert not manager.is_active
        assert manager.process(_metrics(12), now_s=1.0) is None
        assert manager.statistics(now_s=1.0) is None

    def test_selects_exercise_pattern(self, manager):
        pattern = manager.start_session(ExerciseType.SINGLE_LEG_STAND, now_s=0.0)

        assert pattern.name == "Dynamic Balance"
        assert manager.is_active

    def test_selects_named_pattern(self, manager):
        pattern = manager.start_session(
            ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0, pattern_name="Anxiety Management"
        )
        assert pattern.target_rate_bpm == 5

    def test_unknown_name_falls_back_to_first_for_exercise(self, manager):
        pattern = manager.start_session(
            ExerciseType.ROMBERG_EYES_CLOSED, now_s=0.0, pattern_name="Dynamic Balance"
        )
        assert pattern.name == "Focused Balance"

    def test_exercise_without_patterns_uses_default(self, manager):
        pattern = manager.start_session(ExerciseType.WEIGHT_SHIFTING, now_s=0.0)
        assert pattern == BREATHING_PATTERNS[0]

    def test_on_target_feedback(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=10.0)

        feedback = manager.process(_metrics(12.5), now_s=11.0)

        assert feedback.is_on_target
        assert feedback.feedback_type is FeedbackType.POSITIVE
        assert feedback.expected_phase.phase is BreathingPhase.INHALE
        assert feedback.time_s == 11.0

    def test_detected_phase_from_filtered_signal(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0)
        falling = [2100.0 - 2 * i for i in range(50)]

        feedback = manager.process(_metrics(12, filtered=falling), now_s=1.0)

        assert feedback.current_phase is BreathingPhase.EXHALE

    def test_cycles_counted(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0)

        for t in [1.0, 3.0, 5.0, 6.0, 10.0]:
            manager.process(_metrics(12), now_s=t)

        # Cycle is 5 s: completes at t=5 and again at t=10
        assert manager.session.total_cycles == 2

    def test_history_bounded(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0)

        for i in range(30):
            manager.process(_metrics(12), now_s=i * 0.5)

        assert len(manager.session.history) == 20
        assert manager.session.history.latest(1)[0].time_s == 14.5

    def test_statistics(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0)
        for t, rate in [(1.0, 12.0), (2.0, 12.0), (3.0, 15.0), (4.0, 25.0)]:
            manager.process(_metrics(rate), now_s=t)

        stats = manager.statistics(now_s=8.0)

        assert stats.pattern_name == "Normal Standing Balance"
        assert stats.session_duration_s == 8.0
        assert stats.total_feedback == 4
        assert stats.positive_feedback == 2
        assert stats.warning_feedback == 1
        assert stats.alert_feedback == 1
        assert stats.on_target_percentage == 50.0
        assert stats.average_rate_deviation_bpm == pytest.approx(4.0)

    def test_stop_session(self, manager):
        manager.start_session(ExerciseType.ROMBERG_EYES_OPEN, now_s=0.0)
        manager.process(_metrics(12), now_s=1.0)

        manager.stop_session()

        assert not manager.is_active
        assert manager.process(_metrics(12), now_s=2.0) is None
        assert manager.statistics(now_s=2.0).total_feedback == 1

    def test_unknown_exercise_raises(self, manager):
        with pytest.raises(ValueError):
            manager.start_session("Cartwheels", now_s=0.0)
