"""
Unit tests for the real-time sliding-window processor.

Tests the idle/filling/steady lifecycle, bounded buffers, the single
in-flight feature pass, posture alerts, progress and confidence.
"""

import pytest

from bequalize.analysis.realtime import (
    COLLECTING_MESSAGE,
    IDLE_MESSAGE,
    RealTimeSlidingProcessor,
    breathing_quality,
)
from bequalize.analysis.types import PosturalFeatures, RespiratoryMetrics
from bequalize.config import ProcessingConfig
from bequalize.constants import (
    AlertSeverity,
    AlertType,
    ExerciseType,
    FusionMethod,
    ProcessorState,
)
from bequalize.types import SensorSample, Vector3
from tests.helpers.synthetic_data import generate_sensor_samples, tilt_to_accel


def _level_samples(n: int, period_ms: int = 20) -> list[SensorSample]:
    return [
        SensorSample(timestamp=i * period_ms, accel=Vector3(z=1.0), stretch_value=2000)
        for i in range(n)
    ]


@pytest.fixture
def processor():
    processor = RealTimeSlidingProcessor()
    processor.start_exercise(ExerciseType.ROMBERG_EYES_OPEN)
    return processor


class TestLifecycle:
    """Test state transitions driven by start/stop."""

    def test_starts_idle(self):
        assert RealTimeSlidingProcessor().state is ProcessorState.IDLE

    def test_idle_ignores_samples(self, sensor_stream):
        processor = RealTimeSlidingProcessor()

        insights = processor.process_sample(sensor_stream[0])

        assert insights.state is ProcessorState.IDLE
        assert insights.recommendations == [IDLE_MESSAGE]
        assert len(processor.samples) == 0

    def test_filling_until_feature_window(self, processor, sensor_stream):
        for sample in sensor_stream[:49]:
            insights = processor.process_sample(sample)

        assert processor.state is ProcessorState.FILLING_BUFFER
        assert insights.recommendations == [COLLECTING_MESSAGE]
        assert insights.postural_features is None

        insights = processor.process_sample(sensor_stream[49])

        assert processor.state is ProcessorState.STEADY_STATE
        assert insights.state is ProcessorState.STEADY_STATE
        assert insights.postural_features is not None

    def test_start_exercise_accepts_display_name(self):
        processor = RealTimeSlidingProcessor()
        processor.start_exercise("Single Leg Stand")
        assert processor.exercise_type is ExerciseType.SINGLE_LEG_STAND

    def test_unknown_exercise_raises(self):
        with pytest.raises(ValueError):
            RealTimeSlidingProcessor().start_exercise("Handstand")

    def test_stop_returns_to_idle(self, processor, sensor_stream):
        for sample in sensor_stream[:60]:
            processor.process_sample(sample)

        processor.stop_exercise()
        processor.process_sample(sensor_stream[60])

        assert processor.state is ProcessorState.IDLE
        assert len(processor.samples) == 60

    def test_start_clears_previous_exercise(self, processor, sensor_stream):
        for sample in sensor_stream[:120]:
            processor.process_sample(sample)

        processor.start_exercise(ExerciseType.SINGLE_LEG_STAND)

        assert len(processor.samples) == 0
        assert len(processor.feature_history) == 0
        assert processor.respiratory.buffer_status()["size"] == 0
        assert processor.state is ProcessorState.FILLING_BUFFER

    def test_reset(self, processor, sensor_stream):
        for sample in sensor_stream[:120]:
            processor.process_sample(sample)

        processor.reset()

        assert processor.state is ProcessorState.IDLE
        assert processor.latest_insights is None
        assert len(processor.orientations) == 0


class TestBuffers:
    """Test fixed-capacity buffering."""

    def test_buffers_never_exceed_capacity(self, processor):
        stream = generate_sensor_samples(duration_s=30.0)

        for sample in stream:
            processor.process_sample(sample)
            assert len(processor.samples) <= 250
            assert len(processor.orientations) <= 250

        assert len(processor.samples) == 250
        assert len(processor.feature_history) == 100
        assert processor.samples.latest(1)[0] == stream[-1]

    def test_history_only_holds_ready_windows(self, processor, sensor_stream):
        for sample in sensor_stream[:99]:
            processor.process_sample(sample)
        assert len(processor.feature_history) == 0

        processor.process_sample(sensor_stream[99])
        assert len(processor.feature_history) == 1

    def test_respiratory_fed_each_value_once(self, processor, sensor_stream):
        for sample in sensor_stream[:300]:
            processor.process_sample(sample)

        assert processor.respiratory.buffer_status()["size"] == 300


class TestReentrancy:
    """Test that feature passes never overlap."""

    def test_reentrant_sample_is_buffered_only(self, processor, sensor_stream, monkeypatch):
        for sample in sensor_stream[:60]:
            processor.process_sample(sample)

        original = processor._extract_features
        extra = sensor_stream[61]
        observed = []

        def reentrant_extract():
            observed.append(processor.is_processing)
            processor.process_sample(extra)
            return original()

        monkeypatch.setattr(processor, "_extract_features", reentrant_extract)
        passes_before = processor.processing_metrics().passes_completed

        processor.process_sample(sensor_stream[60])

        assert observed == [True]
        assert processor.processing_metrics().passes_completed == passes_before + 1
        assert processor.samples.latest(1)[0] == extra
        assert not processor.is_processing

    def test_flag_cleared_when_pass_fails(self, processor, sensor_stream, monkeypatch):
        for sample in sensor_stream[:49]:
            processor.process_sample(sample)

        def broken_extract():
            raise RuntimeError("extractor failure")

        monkeypatch.setattr(processor, "_extract_features", broken_extract)

        with pytest.raises(RuntimeError):
            processor.process_sample(sensor_stream[49])
        assert not processor.is_processing


class TestPostureAlerts:
    """Test alert selection and severity."""

    def test_no_alert_before_postural_minimum(self, processor):
        stream = generate_sensor_samples(duration_s=2.0, sway_deg=15.0)

        for sample in stream[:99]:
            insights = processor.process_sample(sample)

        assert insights.posture_alert is None

    def test_excessive_sway_alert(self, processor):
        stream = generate_sensor_samples(duration_s=4.0, sway_deg=10.0)

        for sample in stream:
            insights = processor.process_sample(sample)

        assert insights.posture_alert is not None
        assert insights.posture_alert.type is AlertType.EXCESSIVE_SWAY
        assert insights.posture_alert.timestamp == stream[-1].timestamp

    def test_level_stream_has_no_alert(self, processor):
        for sample in _level_samples(200):
            insights = processor.process_sample(sample)

        assert insights.posture_alert is None
        assert insights.current_stability == 1.0

    @pytest.mark.parametrize(
        "sway,severity",
        [(4.0, AlertSeverity.LOW), (6.0, AlertSeverity.MEDIUM), (8.0, AlertSeverity.HIGH)],
    )
    def test_sway_severity(self, processor, sway, severity):
        features = PosturalFeatures(stability_index=0.9, ap_sway=sway, ml_sway=sway)

        alert = processor._posture_alert(features, timestamp=1000)

        assert alert.type is AlertType.EXCESSIVE_SWAY
        assert alert.severity is severity

    @pytest.mark.parametrize(
        "stability,severity",
        [(0.25, AlertSeverity.LOW), (0.2, AlertSeverity.MEDIUM), (0.1, AlertSeverity.HIGH)],
    )
    def test_poor_balance_severity(self, processor, stability, severity):
        features = PosturalFeatures(stability_index=stability, ap_sway=1.0, ml_sway=1.0)

        alert = processor._posture_alert(features, timestamp=1000)

        assert alert.type is AlertType.POOR_BALANCE
        assert alert.severity is severity

    def test_asymmetric_posture(self, processor):
        features = PosturalFeatures(stability_index=0.8, ap_sway=3.5, ml_sway=0.5)

        alert = processor._posture_alert(features, timestamp=1000)

        assert alert.type is AlertType.ASYMMETRIC_POSTURE
        assert alert.severity is AlertSeverity.HIGH

    def test_balanced_posture_has_no_alert(self, processor):
        features = PosturalFeatures(stability_index=0.8, ap_sway=1.0, ml_sway=1.2)
        assert processor._posture_alert(features, timestamp=1000) is None

    def test_zero_ml_sway_skips_asymmetry(self, processor):
        features = PosturalFeatures(stability_index=0.8, ap_sway=1.0, ml_sway=0.0)
        assert processor._posture_alert(features, timestamp=1000) is None

    @pytest.mark.parametrize(
        "ap_sway,ml_sway", [(0.0, 0.05), (0.0, 1.0), (0.02, 0.5), (0.08, 0.0)]
    )
    def test_negligible_sway_axis_skips_asymmetry(self, processor, ap_sway, ml_sway):
        features = PosturalFeatures(stability_index=0.8, ap_sway=ap_sway, ml_sway=ml_sway)
        assert processor._posture_alert(features, timestamp=1000) is None

    @pytest.mark.parametrize("method", [FusionMethod.COMPLEMENTARY, FusionMethod.KALMAN])
    @pytest.mark.parametrize("roll,pitch", [(10.0, 8.0), (10.0, 0.0)])
    def test_static_mount_tilt_raises_no_alerts(self, method, roll, pitch):
        processor = RealTimeSlidingProcessor(ProcessingConfig(fusion_method=method))
        processor.start_exercise(ExerciseType.ROMBERG_EYES_OPEN)
        accel = tilt_to_accel(roll, pitch)
        stream = [
            SensorSample(timestamp=i * 20, accel=accel, stretch_value=2000)
            for i in range(400)
        ]

        alerts = [processor.process_sample(sample).posture_alert for sample in stream]

        assert alerts == [None] * len(stream)
        assert processor.latest_insights.postural_features.total_sway < 0.01


class TestBreathingQuality:
    """Test the breathing quality score."""

    def test_no_breathing_scores_zero(self):
        assert breathing_quality(RespiratoryMetrics()) == 0.0

    def test_ideal_breathing_scores_one(self):
        metrics = RespiratoryMetrics(
            breathing_rate_bpm=15.0,
            regularity=1.0,
            ie_ratio=0.55,
            peak_indices=[10, 210, 410],
        )
        assert breathing_quality(metrics) == pytest.approx(1.0)

    def test_fast_irregular_breathing_scores_low(self):
        metrics = RespiratoryMetrics(
            breathing_rate_bpm=30.0,
            regularity=0.3,
            ie_ratio=1.5,
            peak_indices=[10, 110, 210],
        )
        assert breathing_quality(metrics) < 0.5


class TestProgressAndMetrics:
    """Test exercise progress, confidence and processing metrics."""

    def test_progress_uses_sample_time(self, processor, sensor_stream):
        for sample in sensor_stream:
            insights = processor.process_sample(sample)

        elapsed_s = (sensor_stream[-1].timestamp - sensor_stream[0].timestamp) / 1000
        progress = insights.exercise_progress
        assert progress.duration_s == pytest.approx(elapsed_s)
        assert progress.completion_percentage == pytest.approx(elapsed_s / 60 * 100)
        assert progress.exercise_type is ExerciseType.ROMBERG_EYES_OPEN

    def test_progress_capped_at_hundred(self, processor):
        stream = _level_samples(60, period_ms=2000)

        for sample in stream:
            insights = processor.process_sample(sample)

        assert insights.exercise_progress.completion_percentage == 100.0

    def test_confidence_bounds(self, processor, sensor_stream):
        for sample in sensor_stream:
            insights = processor.process_sample(sample)
            assert 0.1 <= insights.confidence <= 1.0

    def test_regular_timing_has_full_data_quality(self, processor, sensor_stream):
        for sample in sensor_stream[:20]:
            processor.process_sample(sample)

        assert processor.data_quality() == pytest.approx(1.0)

    def test_irregular_timing_lowers_data_quality(self, processor):
        for sample in _level_samples(20, period_ms=40):
            processor.process_sample(sample)

        assert processor.data_quality() == pytest.approx(0.1)

    def test_processing_metrics(self, processor, sensor_stream):
        for sample in sensor_stream:
            processor.process_sample(sample)

        metrics = processor.processing_metrics()

        assert metrics.buffer_utilization == 1.0
        assert metrics.sampling_rate_hz == pytest.approx(50.0, rel=0.01)
        assert metrics.processing_latency_ms >= 0
        assert metrics.data_quality == pytest.approx(1.0)
        assert metrics.passes_completed == len(sensor_stream) - 49

    def test_kalman_config(self, sensor_stream):
        processor = RealTimeSlidingProcessor(
            ProcessingConfig(fusion_method=FusionMethod.KALMAN)
        )
        processor.start_exercise(ExerciseType.ROMBERG_EYES_OPEN)

        for sample in sensor_stream[:120]:
            processor.process_sample(sample)

        assert all(o.confidence is not None for o in processor.orientations)
