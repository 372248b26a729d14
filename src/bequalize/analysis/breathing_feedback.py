"""
Guided breathing feedback.

Compares live respiratory metrics against a paced breathing pattern chosen
for the current exercise. Time is passed in by the caller in seconds so the
same session can be replayed from a recording.
"""

import logging

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict, Field

from bequalize.analysis.buffers import RingBuffer
from bequalize.analysis.types import RespiratoryMetrics
from bequalize.constants import BreathingFeedbackConstants as BFC
from bequalize.constants import (
    BreathingPhase,
    DeviationSeverity,
    DeviationType,
    ExerciseType,
    FeedbackType,
)

logger = logging.getLogger(__name__)


class PatternPhase(BaseModel):
    """One timed phase of a breathing cycle."""

    model_config = ConfigDict(frozen=True)

    phase: BreathingPhase
    duration_s: float = Field(ge=0)


class BreathingPattern(BaseModel):
    """Paced breathing pattern tied to an exercise."""

    model_config = ConfigDict(frozen=True)

    name: str
    exercise_type: ExerciseType
    phases: tuple[PatternPhase, ...]
    target_rate_bpm: float = Field(gt=0)
    description: str = ""

    @property
    def cycle_duration_s(self) -> float:
        return sum(phase.duration_s for phase in self.phases)


class BreathingDeviation(BaseModel):
    rate_deviation_bpm: float = Field(description="Measured minus target rate")
    phase_deviation_s: float = 0.0
    deviation_type: DeviationType
    severity: DeviationSeverity


class BreathingFeedback(BaseModel):
    """Feedback for one respiratory metrics update."""

    is_on_target: bool
    current_phase: BreathingPhase
    expected_phase: PatternPhase
    deviation: BreathingDeviation
    message: str
    feedback_type: FeedbackType
    time_s: float


class BreathingSessionStatistics(BaseModel):
    pattern_name: str
    session_duration_s: float = Field(ge=0)
    total_cycles: int = Field(ge=0)
    total_feedback: int = Field(ge=0)
    positive_feedback: int = Field(ge=0)
    warning_feedback: int = Field(ge=0)
    alert_feedback: int = Field(ge=0)
    on_target_percentage: float = Field(ge=0, le=100)
    average_rate_deviation_bpm: float = Field(ge=0)


def _pattern(
    name: str,
    exercise_type: ExerciseType,
    phases: list[tuple[BreathingPhase, float]],
    target_rate_bpm: float,
    description: str,
) -> BreathingPattern:
    return BreathingPattern(
        name=name,
        exercise_type=exercise_type,
        phases=tuple(PatternPhase(phase=p, duration_s=d) for p, d in phases),
        target_rate_bpm=target_rate_bpm,
        description=description,
    )


BREATHING_PATTERNS: tuple[BreathingPattern, ...] = (
    _pattern(
        "Normal Standing Balance",
        ExerciseType.ROMBERG_EYES_OPEN,
        [(BreathingPhase.INHALE, 2.0), (BreathingPhase.EXHALE, 3.0)],
        12,
        "Calm, natural breathing for balance assessment",
    ),
    _pattern(
        "Focused Balance",
        ExerciseType.ROMBERG_EYES_CLOSED,
        [(BreathingPhase.INHALE, 2.5), (BreathingPhase.EXHALE, 3.5)],
        10,
        "Slower, deeper breathing for eyes-closed balance",
    ),
    _pattern(
        "Dynamic Balance",
        ExerciseType.SINGLE_LEG_STAND,
        [
            (BreathingPhase.INHALE, 2.0),
            (BreathingPhase.HOLD, 1.0),
            (BreathingPhase.EXHALE, 3.0),
        ],
        10,
        "Controlled breathing with brief hold for dynamic balance",
    ),
    _pattern(
        "Anxiety Management",
        ExerciseType.ROMBERG_EYES_OPEN,
        [
            (BreathingPhase.INHALE, 4.0),
            (BreathingPhase.HOLD, 2.0),
            (BreathingPhase.EXHALE, 6.0),
        ],
        5,
        "4-2-6 breathing pattern for anxiety and stress management",
    ),
    _pattern(
        "Recovery Breathing",
        ExerciseType.ROMBERG_EYES_CLOSED,
        [
            (BreathingPhase.INHALE, 3.0),
            (BreathingPhase.HOLD, 1.0),
            (BreathingPhase.EXHALE, 4.0),
            (BreathingPhase.REST, 1.0),
        ],
        7,
        "Extended breathing pattern for post-exercise recovery",
    ),
)

_GERUNDS = {
    BreathingPhase.INHALE: "inhaling",
    BreathingPhase.HOLD: "holding",
    BreathingPhase.EXHALE: "exhaling",
    BreathingPhase.REST: "resting",
}


def patterns_for(exercise_type: ExerciseType | str) -> list[BreathingPattern]:
    """Patterns defined for an exercise, in declaration order."""
    exercise_type = ExerciseType(exercise_type)
    return [p for p in BREATHING_PATTERNS if p.exercise_type == exercise_type]


def expected_phase(cycle_elapsed_s: float, pattern: BreathingPattern) -> PatternPhase:
    """Phase the pattern prescribes at a point in the cycle; wraps to the first."""
    boundary = 0.0
    for phase in pattern.phases:
        boundary += phase.duration_s
        if cycle_elapsed_s <= boundary:
            return phase
    return pattern.phases[0]


def detect_phase(filtered_signal: list[float]) -> BreathingPhase:
    """
    Infer the current phase from the trend of the latest filtered samples.

    A rising signal is an inhale and a falling one an exhale; a near-flat
    trend is a hold. Too little data reads as rest.
    """
    recent = filtered_signal[-BFC.PHASE_WINDOW_SAMPLES :]
    if len(recent) < BFC.PHASE_MIN_SAMPLES:
        return BreathingPhase.REST

    change = recent[-1] - recent[0]
    if abs(change) / len(recent) < BFC.HOLD_CHANGE_PER_SAMPLE:
        return BreathingPhase.HOLD
    return BreathingPhase.INHALE if change > 0 else BreathingPhase.EXHALE


def classify_deviation(
    rate_bpm: float, regularity: float, target_rate_bpm: float
) -> BreathingDeviation:
    """
    Classify a measured rate against the pattern target.

    Args:
        rate_bpm: Measured breathing rate
        regularity: Breathing regularity 0-1
        target_rate_bpm: Pattern target rate

    Returns:
        BreathingDeviation with type and severity
    """
    deviation = rate_bpm - target_rate_bpm
    magnitude = abs(deviation)

    if magnitude <= BFC.MILD_DEVIATION_BPM:
        deviation_type = DeviationType.CORRECT
    elif deviation > 0:
        deviation_type = DeviationType.TOO_FAST
    elif regularity < BFC.REGULARITY_THRESHOLD:
        deviation_type = DeviationType.IRREGULAR
    else:
        deviation_type = DeviationType.TOO_SLOW

    if magnitude <= BFC.MILD_DEVIATION_BPM:
        severity = DeviationSeverity.MILD
    elif magnitude <= BFC.MODERATE_DEVIATION_BPM:
        severity = DeviationSeverity.MODERATE
    else:
        severity = DeviationSeverity.SEVERE

    return BreathingDeviation(
        rate_deviation_bpm=deviation,
        deviation_type=deviation_type,
        severity=severity,
    )


def feedback_message(deviation: BreathingDeviation, phase: BreathingPhase) -> str:
    """Coaching message for a deviation during the expected phase."""
    if deviation.deviation_type == DeviationType.CORRECT:
        return f"Great breathing! Continue {_GERUNDS[phase]} steadily."
    if deviation.deviation_type == DeviationType.TOO_FAST:
        if deviation.severity == DeviationSeverity.SEVERE:
            return (
                "Breathing too fast! Slow down to reduce anxiety. "
                f"Current phase: {phase.value}"
            )
        return f"Slow your breathing pace. Focus on the {phase.value} phase."
    if deviation.deviation_type == DeviationType.TOO_SLOW:
        return (
            "Increase your breathing rate slightly. "
            f"You're in the {phase.value} phase."
        )
    return f"Try to breathe more regularly. Focus on smooth {_GERUNDS[phase]}."


def feedback_type(deviation: BreathingDeviation) -> FeedbackType:
    if deviation.deviation_type == DeviationType.CORRECT:
        return FeedbackType.POSITIVE
    if deviation.severity == DeviationSeverity.SEVERE:
        return FeedbackType.ALERT
    return FeedbackType.WARNING


@dataclass
class BreathingSession:
    """Mutable state of one guided breathing session."""

    pattern: BreathingPattern
    start_s: float
    cycle_start_s: float
    total_cycles: int = 0
    active: bool = True
    history: RingBuffer[BreathingFeedback] = field(
        default_factory=lambda: RingBuffer(BFC.HISTORY_SIZE)
    )


class BreathingFeedbackManager:
    """
    Runs guided breathing sessions and scores each metrics update.

    Example:
        >>> manager = BreathingFeedbackManager()
        >>> pattern = manager.start_session(ExerciseType.SINGLE_LEG_STAND, now_s=0.0)
        >>> pattern.target_rate_bpm
        10.0
    """

    def __init__(self):
        self._session: BreathingSession | None = None

    @property
    def session(self) -> BreathingSession | None:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.active

    def start_session(
        self,
        exercise_type: ExerciseType | str,
        now_s: float,
        pattern_name: str | None = None,
    ) -> BreathingPattern:
        """
        Start a session with the pattern for an exercise.

        Args:
            exercise_type: Exercise being performed
            now_s: Current time (seconds)
            pattern_name: Preferred pattern; falls back to the exercise's first
                pattern, then to the first pattern overall

        Returns:
            The selected pattern

        Raises:
            ValueError: If exercise_type is not a known exercise
        """
        available = patterns_for(exercise_type)
        selected = None
        if pattern_name is not None:
            selected = next((p for p in available if p.name == pattern_name), None)
        if selected is None:
            selected = available[0] if available else BREATHING_PATTERNS[0]

        self._session = BreathingSession(
            pattern=selected, start_s=now_s, cycle_start_s=now_s
        )
        logger.info(
            f"Started breathing session: {selected.name} "
            f"({selected.target_rate_bpm:g} bpm)"
        )
        return selected

    def stop_session(self) -> None:
        if self._session is None:
            return
        self._session.active = False
        logger.info(f"Stopped breathing session after {self._session.total_cycles} cycles")

    def process(self, metrics: RespiratoryMetrics, now_s: float) -> BreathingFeedback | None:
        """
        Score one metrics update against the active pattern.

        Args:
            metrics: Latest respiratory metrics
            now_s: Current time (seconds)

        Returns:
            Feedback, or None when no session is active
        """
        session = self._session
        if session is None or not session.active:
            return None

        pattern = session.pattern
        cycle_elapsed = now_s - session.cycle_start_s
        expected = expected_phase(cycle_elapsed, pattern)
        deviation = classify_deviation(
            metrics.breathing_rate_bpm, metrics.regularity, pattern.target_rate_bpm
        )

        feedback = BreathingFeedback(
            is_on_target=(
                deviation.deviation_type == DeviationType.CORRECT
                and deviation.severity == DeviationSeverity.MILD
            ),
            current_phase=detect_phase(metrics.filtered_signal),
            expected_phase=expected,
            deviation=deviation,
            message=feedback_message(deviation, expected.phase),
            feedback_type=feedback_type(deviation),
            time_s=now_s,
        )
        session.history.append(feedback)

        if cycle_elapsed >= pattern.cycle_duration_s:
            session.total_cycles += 1
            session.cycle_start_s = now_s
            logger.debug(f"Completed breathing cycle {session.total_cycles}")

        return feedback

    def statistics(self, now_s: float) -> BreathingSessionStatistics | None:
        """Summary of the current or last session, or None if none was started."""
        session = self._session
        if session is None:
            return None

        history = session.history.to_list()
        counts = {kind: 0 for kind in FeedbackType}
        for item in history:
            counts[item.feedback_type] += 1

        total = len(history)
        average_deviation = (
            sum(abs(item.deviation.rate_deviation_bpm) for item in history) / total
            if total
            else 0.0
        )
        return BreathingSessionStatistics(
            pattern_name=session.pattern.name,
            session_duration_s=max(0.0, now_s - session.start_s),
            total_cycles=session.total_cycles,
            total_feedback=total,
            positive_feedback=counts[FeedbackType.POSITIVE],
            warning_feedback=counts[FeedbackType.WARNING],
            alert_feedback=counts[FeedbackType.ALERT],
            on_target_percentage=(
                counts[FeedbackType.POSITIVE] / total * 100 if total else 0.0
            ),
            average_rate_deviation_bpm=average_deviation,
        )
