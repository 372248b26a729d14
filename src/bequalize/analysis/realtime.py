"""
Real-time sliding-window processing of the sensor stream.

The processor fuses each packet into an orientation, keeps the last 5 s of
packets and orientations in fixed-capacity ring buffers, and once 1 s of
data is buffered runs the respiratory and postural extractors to produce a
live insights record (stability, breathing quality, posture alert, progress,
recommendations and confidence).
"""

import logging
import time

from collections.abc import Iterable, Iterator
from typing import NamedTuple

import numpy as np

from bequalize.analysis.buffers import RingBuffer
from bequalize.analysis.fusion import OrientationFusion
from bequalize.analysis.postural import PosturalFeatureExtractor
from bequalize.analysis.respiratory import RespiratorySignalProcessor
from bequalize.analysis.types import (
    ExerciseProgress,
    OrientationEstimate,
    PostureAlert,
    PosturalFeatures,
    ProcessingMetrics,
    RealTimeInsights,
    RespiratoryMetrics,
)
from bequalize.config import ProcessingConfig
from bequalize.constants import (
    AlertSeverity,
    AlertType,
    ExerciseType,
    ProcessorState,
)
from bequalize.constants import RealTimeConstants as RTC
from bequalize.types import SensorSample

logger = logging.getLogger(__name__)

__all__ = ["RealTimeSlidingProcessor", "breathing_quality"]

COLLECTING_MESSAGE = "Collecting data..."
IDLE_MESSAGE = "Start an exercise to begin monitoring"

ALERT_MESSAGES = {
    AlertType.EXCESSIVE_SWAY: (
        "Excessive body sway detected. Try to maintain a more stable posture."
    ),
    AlertType.POOR_BALANCE: (
        "Balance instability detected. Focus on maintaining your center of balance."
    ),
    AlertType.ASYMMETRIC_POSTURE: (
        "Asymmetric posture detected. Try to distribute your weight evenly."
    ),
}


class FeatureSnapshot(NamedTuple):
    """One entry of the feature history ring."""

    timestamp: int
    postural: PosturalFeatures
    respiratory: RespiratoryMetrics


def _rate_score(rate: float) -> float:
    low, high = RTC.IDEAL_RATE_MIN_BPM, RTC.IDEAL_RATE_MAX_BPM
    if low <= rate <= high:
        return 1.0
    if rate < low:
        return max(0.0, 1 - (low - rate) / low)
    return max(0.0, 1 - (rate - high) / high)


def _ie_score(ie_ratio: float) -> float:
    return max(0.0, 1 - abs(ie_ratio - RTC.IDEAL_IE_RATIO) / RTC.IE_TOLERANCE)


def breathing_quality(metrics: RespiratoryMetrics) -> float:
    """
    Mean of rate, regularity and I:E scores, 0 when no breathing is detected.

    The rate score is 1 inside 12-20 bpm and falls off linearly outside; the
    I:E score is 1 at 0.55 and reaches 0 at ±0.2.
    """
    if not metrics.has_breathing:
        return 0.0
    quality = (
        _rate_score(metrics.breathing_rate_bpm)
        + metrics.regularity
        + _ie_score(metrics.ie_ratio)
    ) / 3
    return float(np.clip(quality, 0.0, 1.0))


class RealTimeSlidingProcessor:
    """
    Live processor for one exercise at a time.

    At most one feature pass runs at a time. A sample delivered while a pass
    is in flight is buffered and picked up by the next pass; it never starts
    a second pass.

    Example:
        >>> processor = RealTimeSlidingProcessor()
        >>> processor.start_exercise(ExerciseType.ROMBERG_EYES_OPEN)
        >>> for sample in stream:
        ...     insights = processor.process_sample(sample)
        >>> print(f"Stability: {insights.current_stability:.2f}")
    """

    def __init__(self, config: ProcessingConfig | None = None):
        """
        Initialize the processor.

        Args:
            config: Processing parameters; defaults when omitted
        """
        self.config = config or ProcessingConfig()
        cfg = self.config

        self.fusion = OrientationFusion(
            cfg.fusion_method,
            sample_rate=cfg.sample_rate,
            alpha=cfg.complementary_alpha,
            process_noise=cfg.kalman_process_noise,
            measurement_noise=cfg.kalman_measurement_noise,
        )
        self.respiratory = RespiratorySignalProcessor(
            sample_rate=cfg.sample_rate,
            buffer_seconds=cfg.respiratory_buffer_seconds,
            cutoff_hz=cfg.respiratory_cutoff_hz,
        )
        self.extractor = PosturalFeatureExtractor(
            sample_rate=cfg.sample_rate, min_samples=cfg.postural_min_samples
        )

        self.samples: RingBuffer[SensorSample] = RingBuffer(cfg.buffer_capacity)
        self.orientations: RingBuffer[OrientationEstimate] = RingBuffer(
            cfg.buffer_capacity
        )
        self.feature_history: RingBuffer[FeatureSnapshot] = RingBuffer(
            cfg.feature_history_size
        )
        self._pending_stretch: RingBuffer[int] = RingBuffer(cfg.buffer_capacity)

        self._state = ProcessorState.IDLE
        self._processing = False
        self._exercise_type: ExerciseType | None = None
        self._exercise_start_ms: int | None = None
        self._latest: RealTimeInsights | None = None
        self._last_latency_ms = 0.0
        self._passes = 0

        logger.info(
            f"RealTimeSlidingProcessor initialized "
            f"({self.samples.capacity} sample window, "
            f"{cfg.feature_window_samples} sample feature threshold)"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ProcessorState:
        return self._state

    @property
    def is_processing(self) -> bool:
        """True while a feature pass is in flight."""
        return self._processing

    @property
    def exercise_type(self) -> ExerciseType | None:
        return self._exercise_type

    def start_exercise(self, exercise_type: ExerciseType | str) -> None:
        """
        Begin a new exercise; clears all buffers and filter state.

        Raises:
            ValueError: If exercise_type is not a known exercise
        """
        exercise = ExerciseType(exercise_type)
        self._clear()
        self._exercise_type = exercise
        self._state = ProcessorState.FILLING_BUFFER
        logger.info(f"Exercise started: {exercise.value}")

    def stop_exercise(self) -> None:
        """Stop consuming samples. Buffers are kept until the next start."""
        if self._exercise_type is not None:
            logger.info(f"Exercise stopped: {self._exercise_type.value}")
        self._state = ProcessorState.IDLE
        self._exercise_type = None
        self._exercise_start_ms = None

    def reset(self) -> None:
        """Return to idle with empty buffers and fresh filter state."""
        self._clear()
        self._state = ProcessorState.IDLE
        self._exercise_type = None
        self._latest = None

    def _clear(self) -> None:
        self.samples.clear()
        self.orientations.clear()
        self.feature_history.clear()
        self._pending_stretch.clear()
        self.fusion.reset()
        self.respiratory.reset()
        self._processing = False
        self._exercise_start_ms = None
        self._latest = None
        self._last_latency_ms = 0.0
        self._passes = 0

    # ------------------------------------------------------------------
    # Sample intake
    # ------------------------------------------------------------------

    def process_sample(self, sample: SensorSample) -> RealTimeInsights:
        """
        Buffer one packet and, when eligible, run a feature pass.

        Args:
            sample: Incoming sensor packet

        Returns:
            Fresh insights when a pass ran; otherwise the latest insights
            (or a collecting/idle record)
        """
        if self._state is ProcessorState.IDLE:
            return self._placeholder_insights(sample.timestamp, [IDLE_MESSAGE])

        if self._exercise_start_ms is None:
            self._exercise_start_ms = sample.timestamp

        self.samples.append(sample)
        self.orientations.append(self.fusion.update(sample))
        self._pending_stretch.append(sample.stretch_value)

        if len(self.samples) < self.config.feature_window_samples:
            return self._placeholder_insights(sample.timestamp, [COLLECTING_MESSAGE])

        if self._processing:
            logger.debug("Feature pass in flight; sample buffered only")
            return self._latest or self._placeholder_insights(
                sample.timestamp, [COLLECTING_MESSAGE]
            )

        self._state = ProcessorState.STEADY_STATE
        self._processing = True
        started = time.perf_counter()
        try:
            insights = self._run_feature_pass(sample.timestamp)
        finally:
            self._processing = False
            self._last_latency_ms = (time.perf_counter() - started) * 1000.0

        self._latest = insights
        return insights

    def process_stream(self, samples: Iterable[SensorSample]) -> Iterator[RealTimeInsights]:
        """Yield insights for each sample of a stream, in order."""
        for sample in samples:
            yield self.process_sample(sample)

    @property
    def latest_insights(self) -> RealTimeInsights | None:
        return self._latest

    # ------------------------------------------------------------------
    # Feature pass
    # ------------------------------------------------------------------

    def _extract_features(self) -> tuple[PosturalFeatures, RespiratoryMetrics]:
        new_stretch = self._pending_stretch.to_list()
        self._pending_stretch.clear()
        respiratory = self.respiratory.process(new_stretch)
        postural = self.extractor.extract(self.orientations.to_list())
        return postural, respiratory

    def _run_feature_pass(self, timestamp: int) -> RealTimeInsights:
        postural, respiratory = self._extract_features()
        postural_ready = len(self.orientations) >= self.extractor.min_samples

        if postural_ready:
            self.feature_history.append(FeatureSnapshot(timestamp, postural, respiratory))

        stability = postural.stability_index
        quality = breathing_quality(respiratory)
        alert = self._posture_alert(postural, timestamp) if postural_ready else None

        insights = RealTimeInsights(
            state=self._state,
            current_stability=stability,
            breathing_quality=quality,
            posture_alert=alert,
            exercise_progress=self._exercise_progress(timestamp, stability, quality),
            recommendations=self._recommendations(postural, respiratory, postural_ready),
            confidence=self._confidence(respiratory),
            timestamp=timestamp,
            postural_features=postural,
            respiratory_metrics=respiratory,
        )
        self._passes += 1
        logger.debug(
            f"Feature pass {self._passes}: stability={stability:.3f}, "
            f"breathing={quality:.3f}, alert={alert.type.value if alert else None}"
        )
        return insights

    def _posture_alert(self, features: PosturalFeatures, timestamp: int) -> PostureAlert | None:
        """At most one alert: excessive sway, then poor balance, then asymmetry."""
        cfg = self.config

        total_sway = features.total_sway
        if total_sway > cfg.sway_alert_threshold_cm:
            ratio = total_sway / cfg.sway_alert_threshold_cm
            if ratio >= RTC.SWAY_HIGH_RATIO:
                severity = AlertSeverity.HIGH
            elif ratio >= RTC.SWAY_MEDIUM_RATIO:
                severity = AlertSeverity.MEDIUM
            else:
                severity = AlertSeverity.LOW
            return self._alert(AlertType.EXCESSIVE_SWAY, severity, timestamp)

        threshold = cfg.stability_alert_threshold
        if features.stability_index < threshold:
            if features.stability_index < threshold * RTC.BALANCE_HIGH_FRACTION:
                severity = AlertSeverity.HIGH
            elif features.stability_index < threshold * RTC.BALANCE_MEDIUM_FRACTION:
                severity = AlertSeverity.MEDIUM
            else:
                severity = AlertSeverity.LOW
            return self._alert(AlertType.POOR_BALANCE, severity, timestamp)

        # Below the floor in either direction the AP/ML ratio is noise
        minor, major = sorted((features.ap_sway, features.ml_sway))
        if minor > RTC.ASYMMETRY_MIN_SWAY_CM:
            skew = major / minor
            if skew > RTC.ASYMMETRY_RATIO:
                if skew >= RTC.ASYMMETRY_HIGH_RATIO:
                    severity = AlertSeverity.HIGH
                elif skew >= RTC.ASYMMETRY_MEDIUM_RATIO:
                    severity = AlertSeverity.MEDIUM
                else:
                    severity = AlertSeverity.LOW
                return self._alert(AlertType.ASYMMETRIC_POSTURE, severity, timestamp)

        return None

    @staticmethod
    def _alert(kind: AlertType, severity: AlertSeverity, timestamp: int) -> PostureAlert:
        return PostureAlert(
            type=kind,
            severity=severity,
            message=ALERT_MESSAGES[kind],
            timestamp=timestamp,
        )

    def _exercise_progress(
        self, timestamp: int, stability: float, quality: float
    ) -> ExerciseProgress:
        start = self._exercise_start_ms if self._exercise_start_ms is not None else timestamp
        duration = max(0.0, (timestamp - start) / 1000.0)
        quality_score = (stability + quality) / 2
        return ExerciseProgress(
            exercise_type=self._exercise_type,
            duration_s=duration,
            quality_score=quality_score,
            completion_percentage=min(100.0, duration / RTC.TARGET_EXERCISE_SECONDS * 100),
            target_met=quality_score > 0.6
            and stability > self.config.stability_alert_threshold,
        )

    def _recommendations(
        self,
        postural: PosturalFeatures,
        respiratory: RespiratoryMetrics,
        postural_ready: bool,
    ) -> list[str]:
        recommendations: list[str] = []

        if postural_ready:
            if postural.stability_index < self.config.stability_alert_threshold:
                recommendations.append("Focus on maintaining a stable, upright posture")
            if postural.total_sway > self.config.sway_alert_threshold_cm:
                recommendations.append("Reduce body sway by engaging your core muscles")

        if respiratory.has_breathing:
            if respiratory.breathing_rate_bpm > 25:
                recommendations.append("Slow down your breathing rate")
            elif respiratory.breathing_rate_bpm < 10:
                recommendations.append("Increase your breathing rate slightly")
            if respiratory.regularity < RTC.BREATHING_QUALITY_THRESHOLD:
                recommendations.append("Try to maintain a more regular breathing pattern")
            if respiratory.ie_ratio > 0.8:
                recommendations.append("Extend your exhalation phase")
            elif respiratory.ie_ratio < 0.3:
                recommendations.append("Extend your inhalation phase")

        if not recommendations:
            recommendations.append("Great job! Continue maintaining your current form")
        return recommendations

    # ------------------------------------------------------------------
    # Confidence
    # ------------------------------------------------------------------

    def data_quality(self) -> float:
        """
        Timing consistency of the last 10 samples.

        Each inter-sample gap outside [0.5, 1.5] x the nominal period costs
        0.1; fewer than 5 samples score 0.1.
        """
        recent = self.samples.latest(RTC.QUALITY_WINDOW)
        if len(recent) < RTC.QUALITY_MIN_SAMPLES:
            return RTC.MIN_CONFIDENCE

        period_ms = 1000.0 / self.config.sample_rate
        low = period_ms * RTC.QUALITY_MIN_GAP_FACTOR
        high = period_ms * RTC.QUALITY_MAX_GAP_FACTOR

        score = 1.0
        for previous, current in zip(recent, recent[1:]):
            gap = current.timestamp - previous.timestamp
            if gap < low or gap > high:
                score -= RTC.QUALITY_GAP_PENALTY
        return max(RTC.MIN_CONFIDENCE, score)

    def _feature_consistency(self) -> float:
        recent = self.feature_history.latest(RTC.CONSISTENCY_WINDOW)
        if len(recent) < RTC.CONSISTENCY_MIN_SAMPLES:
            return RTC.CONSISTENCY_DEFAULT
        scores = np.array([snap.postural.stability_index for snap in recent])
        return max(RTC.MIN_CONFIDENCE, 1.0 - float(scores.var()))

    @staticmethod
    def _signal_strength(respiratory: RespiratoryMetrics) -> float:
        if respiratory.amplitude == 0:
            return RTC.MIN_CONFIDENCE
        amplitude_score = min(1.0, respiratory.amplitude / RTC.SIGNAL_AMPLITUDE_SCALE)
        return (amplitude_score + respiratory.regularity) / 2

    def _confidence(self, respiratory: RespiratoryMetrics) -> float:
        confidence = (
            self.data_quality()
            + self._feature_consistency()
            + self._signal_strength(respiratory)
        ) / 3
        return float(np.clip(confidence, RTC.MIN_CONFIDENCE, 1.0))

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def _placeholder_insights(self, timestamp: int, recommendations: list[str]) -> RealTimeInsights:
        return RealTimeInsights(
            state=self._state,
            exercise_progress=ExerciseProgress(exercise_type=self._exercise_type),
            recommendations=recommendations,
            confidence=RTC.MIN_CONFIDENCE,
            timestamp=timestamp,
        )

    def _measured_sampling_rate(self) -> float:
        buffered = self.samples.to_list()
        if len(buffered) < 2:
            return float(self.config.sample_rate)
        span_ms = buffered[-1].timestamp - buffered[0].timestamp
        if span_ms <= 0:
            return float(self.config.sample_rate)
        return (len(buffered) - 1) / (span_ms / 1000.0)

    def processing_metrics(self) -> ProcessingMetrics:
        """Buffer fill, last pass latency, data quality and measured rate."""
        return ProcessingMetrics(
            buffer_utilization=len(self.samples) / self.samples.capacity,
            processing_latency_ms=self._last_latency_ms,
            data_quality=self.data_quality(),
            sampling_rate_hz=self._measured_sampling_rate(),
            passes_completed=self._passes,
        )
