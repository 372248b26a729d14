"""Analysis algorithm type definitions."""

from pydantic import BaseModel, ConfigDict, Field

from bequalize.constants import (
    AlertSeverity,
    AlertType,
    ExerciseType,
    ProcessorState,
)
from bequalize.types import Vector3

# ============================================================================
# Orientation Types
# ============================================================================


class OrientationEstimate(BaseModel):
    """
    Fused orientation for one sensor sample.

    Attributes:
        roll: Rotation about the forward axis (degrees, medio-lateral sway)
        pitch: Rotation about the lateral axis (degrees, antero-posterior sway)
        yaw: Rotation about the vertical axis (degrees, gyro integration only)
        angular_velocity: Raw gyroscope vector, when the filter reports it
        confidence: Filter confidence 0-1, when the filter reports it
        timestamp: Timestamp of the source sample (ms)
    """

    model_config = ConfigDict(frozen=True)

    roll: float
    pitch: float
    yaw: float = 0.0
    angular_velocity: Vector3 | None = None
    confidence: float | None = Field(default=None, ge=0, le=1)
    timestamp: int = 0


# ============================================================================
# Respiratory Types
# ============================================================================


class RespiratoryMetrics(BaseModel):
    """
    Breathing metrics derived from the elastometer ring buffer.

    Every field is zero (and every list empty) when fewer than the minimum
    number of samples are buffered.
    """

    breathing_rate_bpm: float = Field(default=0.0, ge=0, description="Breaths/min")
    amplitude: float = Field(default=0.0, ge=0, description="Peak-valley amplitude")
    ie_ratio: float = Field(default=0.0, ge=0, description="Inspiration:expiration")
    regularity: float = Field(default=0.0, ge=0, le=1, description="1/(1+CV)")
    filtered_signal: list[float] = Field(default_factory=list)
    peak_indices: list[int] = Field(default_factory=list)
    valley_indices: list[int] = Field(default_factory=list)
    signal_quality: float = Field(default=0.0, ge=0, le=1)

    @property
    def has_breathing(self) -> bool:
        """True when at least one full breath cycle was detected."""
        return self.breathing_rate_bpm > 0 and len(self.peak_indices) >= 2


# ============================================================================
# Postural Types
# ============================================================================


class FrequencyAnalysis(BaseModel):
    """Autocorrelation scan of the combined sway signal."""

    frequencies: list[float] = Field(default_factory=list, description="Hz")
    magnitudes: list[float] = Field(default_factory=list)
    dominant_frequency: float = Field(default=0.0, ge=0, description="Hz")
    spectral_centroid: float = Field(default=0.0, ge=0, description="Hz")


class StabilogramDiffusion(BaseModel):
    """
    Stabilogram diffusion summary.

    Attributes:
        short_term_slope: MSD slope before the critical point (cm²/s)
        long_term_slope: MSD slope after the critical point (cm²/s)
        critical_point: Lag of the short/long-term transition (seconds)
        diffusion_coefficient: Mean of the two slopes
    """

    short_term_slope: float = 0.0
    long_term_slope: float = 0.0
    critical_point: float = 0.0
    diffusion_coefficient: float = 0.0


class PosturalFeatures(BaseModel):
    """
    Sway metrics for one window of orientation estimates.

    sway_area_cm2 is floored at 0.1 whenever features were computed; the
    insufficient-data record is all zero.
    """

    sway_path_length_cm: float = Field(default=0.0, ge=0)
    sway_area_cm2: float = Field(default=0.0, ge=0)
    sway_velocity_cm_s: float = Field(default=0.0, ge=0)
    frequency_peaks: list[float] = Field(default_factory=list)
    stability_index: float = Field(default=0.0, ge=0, le=1)
    ap_sway: float = Field(default=0.0, ge=0, description="Std of AP COP (cm)")
    ml_sway: float = Field(default=0.0, ge=0, description="Std of ML COP (cm)")
    dominant_frequency: float = Field(default=0.0, ge=0)
    spectral_centroid: float = Field(default=0.0, ge=0)
    stabilogram_diffusion: StabilogramDiffusion | None = None

    @property
    def total_sway(self) -> float:
        """Combined AP/ML sway magnitude (cm)."""
        return float((self.ap_sway**2 + self.ml_sway**2) ** 0.5)


class SensoryWeights(BaseModel):
    """Relative reliance on each sensory system; the three weights sum to 1."""

    visual: float = Field(ge=0, le=1)
    proprioceptive: float = Field(ge=0, le=1)
    vestibular: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1)


class SwayDataPoint(BaseModel):
    """COP displacement sample in millimetres."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    timestamp: int = 0


class ConfidenceEllipse(BaseModel):
    """
    95% confidence ellipse of a COP trajectory.

    Centre and semi-axes share the trajectory unit (mm for sessions);
    area_cm2 = π·sqrt(λ1·λ2·5.991) converted to cm² and floored at 0.1.
    """

    model_config = ConfigDict(frozen=True)

    center_x: float = 0.0
    center_y: float = 0.0
    semi_axis_a: float = Field(default=0.0, ge=0)
    semi_axis_b: float = Field(default=0.0, ge=0)
    rotation: float = Field(default=0.0, description="Radians")
    area_cm2: float = Field(default=0.0, ge=0)


# ============================================================================
# Real-Time Types
# ============================================================================


class PostureAlert(BaseModel):
    """Single posture warning raised during live monitoring."""

    type: AlertType
    severity: AlertSeverity
    message: str
    timestamp: int


class ExerciseProgress(BaseModel):
    """Progress through the current exercise."""

    exercise_type: ExerciseType | None = None
    duration_s: float = Field(default=0.0, ge=0)
    quality_score: float = Field(default=0.0, ge=0, le=1)
    completion_percentage: float = Field(default=0.0, ge=0, le=100)
    target_met: bool = False


class RealTimeInsights(BaseModel):
    """Live summary emitted by the sliding processor."""

    state: ProcessorState
    current_stability: float = Field(default=0.0, ge=0, le=1)
    breathing_quality: float = Field(default=0.0, ge=0, le=1)
    posture_alert: PostureAlert | None = None
    exercise_progress: ExerciseProgress = Field(default_factory=ExerciseProgress)
    recommendations: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0, le=1)
    timestamp: int = 0
    postural_features: PosturalFeatures | None = None
    respiratory_metrics: RespiratoryMetrics | None = None


class ProcessingMetrics(BaseModel):
    """Health of the live processing loop."""

    buffer_utilization: float = Field(ge=0, le=1)
    processing_latency_ms: float = Field(ge=0)
    data_quality: float = Field(ge=0, le=1)
    sampling_rate_hz: float = Field(ge=0)
    passes_completed: int = Field(default=0, ge=0)
