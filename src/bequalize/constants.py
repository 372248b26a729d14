"""
Constants and enumerations for Bequalize signal processing.

Grouped by the analysis stage that consumes them. Clinical thresholds follow
the posturography norms used for pre/post vestibular rehabilitation testing.
"""

import math

from enum import Enum
from pathlib import Path

# ============================================================================
# Enumerations
# ============================================================================


class FusionMethod(str, Enum):
    """Orientation fusion strategy."""

    COMPLEMENTARY = "complementary"
    KALMAN = "kalman"


class TestType(str, Enum):
    """Position of a test session relative to an intervention."""

    __test__ = False  # keep pytest from collecting this enum

    PRE = "pre"
    POST = "post"


class ImprovementCategory(str, Enum):
    """Clinical category of a pre/post sway area change."""

    SIGNIFICANT_IMPROVEMENT = "significant_improvement"
    IMPROVEMENT = "improvement"
    STABLE = "stable"
    DETERIORATION = "deterioration"
    SIGNIFICANT_DETERIORATION = "significant_deterioration"


class TrendDirection(str, Enum):
    """Longitudinal direction of sway area across sessions."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class AlertType(str, Enum):
    """Posture alert kinds raised by the real-time processor."""

    EXCESSIVE_SWAY = "excessive_sway"
    POOR_BALANCE = "poor_balance"
    ASYMMETRIC_POSTURE = "asymmetric_posture"


class AlertSeverity(str, Enum):
    """Posture alert severity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProcessorState(str, Enum):
    """Lifecycle state of the real-time sliding processor."""

    IDLE = "idle"
    FILLING_BUFFER = "filling_buffer"
    STEADY_STATE = "steady_state"


class ExerciseType(str, Enum):
    """Balance and breathing exercises supported by the device protocol."""

    ROMBERG_EYES_OPEN = "Romberg Test (Eyes Open)"
    ROMBERG_EYES_CLOSED = "Romberg Test (Eyes Closed)"
    SINGLE_LEG_STAND = "Single Leg Stand"
    WEIGHT_SHIFTING = "Weight Shifting Exercises"
    LIMITS_OF_STABILITY = "Limits of Stability Test"
    DIAPHRAGMATIC_BREATHING = "Guided Diaphragmatic Breathing"
    CONTROLLED_DEEP_BREATHING = "Controlled Deep Breathing"
    RESPIRATORY_COHERENCE = "Respiratory Coherence"
    BREATH_HOLD = "Breath-Hold Exercises"


class SensoryCondition(str, Enum):
    """Standing conditions used for sensory-integration testing."""

    FIRM_EYES_OPEN = "firm_eyes_open"
    FIRM_EYES_CLOSED = "firm_eyes_closed"
    FOAM_EYES_OPEN = "foam_eyes_open"
    FOAM_EYES_CLOSED = "foam_eyes_closed"


class BreathingPhase(str, Enum):
    """Phase of a guided breathing cycle."""

    INHALE = "inhale"
    HOLD = "hold"
    EXHALE = "exhale"
    REST = "rest"


class DeviationType(str, Enum):
    """How a measured breathing rate departs from the guided target."""

    TOO_FAST = "too_fast"
    TOO_SLOW = "too_slow"
    IRREGULAR = "irregular"
    CORRECT = "correct"


class DeviationSeverity(str, Enum):
    """Size of a breathing rate deviation."""

    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"


class FeedbackType(str, Enum):
    """Tone of a breathing feedback message."""

    POSITIVE = "positive"
    WARNING = "warning"
    ALERT = "alert"


# ============================================================================
# Sensor Stream
# ============================================================================

SAMPLE_RATE_HZ = 50
SAMPLE_PERIOD_MS = 1000 / SAMPLE_RATE_HZ


# ============================================================================
# Analysis Algorithm Constants
# ============================================================================


class FusionConstants:
    """Constants for orientation fusion (analysis/fusion)."""

    COMPLEMENTARY_ALPHA = 0.98

    # Kalman noise diagonals: [roll, pitch, roll_rate, pitch_rate] / [roll, pitch]
    PROCESS_NOISE = (0.01, 0.01, 0.1, 0.1)
    MEASUREMENT_NOISE = (0.1, 0.1)
    INITIAL_COVARIANCE = 1.0

    SINGULAR_DETERMINANT = 1e-10


class RespiratoryConstants:
    """Constants for respiratory signal processing (respiratory.py)."""

    BUFFER_SECONDS = 10
    MIN_SAMPLES = 100
    LOWPASS_CUTOFF_HZ = 2.0

    PEAK_STD_FACTOR = 0.3

    MIN_RATE_BPM = 5.0
    MAX_RATE_BPM = 30.0
    DEFAULT_RATE_BPM = 12.0
    DEFAULT_IE_RATIO = 0.5

    MIN_PEAKS_FOR_REGULARITY = 3
    SIGNAL_QUALITY_SCALE = 10.0


class PosturalConstants:
    """Constants for postural feature extraction (postural.py)."""

    MIN_SAMPLES = 100
    DEVICE_HEIGHT_CM = 100.0
    ANGLE_TO_CM = DEVICE_HEIGHT_CM * math.pi / 180.0

    # Chi-square value for 95% confidence with 2 degrees of freedom
    CHI_SQUARE_95 = 5.991
    MIN_SWAY_AREA_CM2 = 0.1
    ROTATION_COVARIANCE_EPSILON = 1e-6

    FREQ_MIN_HZ = 0.1
    FREQ_MAX_HZ = 5.0
    FREQ_STEP_HZ = 0.1
    MAX_FREQUENCY_PEAKS = 3

    DIFFUSION_MAX_LAG = 100
    DIFFUSION_LAG_DIVISOR = 4
    DIFFUSION_MIN_SEGMENT = 3

    ROMBERG_MIN = 0.5
    ROMBERG_MAX = 10.0

    SENSORY_WEIGHT_MIN = 0.1
    SENSORY_WEIGHT_MAX = 0.8
    SENSORY_MAX_CONDITIONS = 4
    SENSORY_CONFIDENCE_SCALE = 10.0
    SENSORY_MIN_CONFIDENCE = 0.1


class RealTimeConstants:
    """Constants for the sliding-window processor (realtime.py)."""

    BUFFER_SECONDS = 5
    FEATURE_WINDOW_SECONDS = 1
    FEATURE_HISTORY_SIZE = 100

    STABILITY_ALERT_THRESHOLD = 0.3
    SWAY_ALERT_THRESHOLD_CM = 5.0
    BREATHING_QUALITY_THRESHOLD = 0.7
    ASYMMETRY_RATIO = 3.0
    ASYMMETRY_MIN_SWAY_CM = 0.1

    # Severity steps: exceed ratio for sway, fraction of threshold for balance
    SWAY_HIGH_RATIO = 2.0
    SWAY_MEDIUM_RATIO = 1.5
    BALANCE_HIGH_FRACTION = 0.5
    BALANCE_MEDIUM_FRACTION = 0.75
    ASYMMETRY_HIGH_RATIO = 6.0
    ASYMMETRY_MEDIUM_RATIO = 4.5

    IDEAL_RATE_MIN_BPM = 12.0
    IDEAL_RATE_MAX_BPM = 20.0
    IDEAL_IE_RATIO = 0.55
    IE_TOLERANCE = 0.2

    TARGET_EXERCISE_SECONDS = 60.0

    QUALITY_WINDOW = 10
    QUALITY_MIN_SAMPLES = 5
    QUALITY_GAP_PENALTY = 0.1
    QUALITY_MIN_GAP_FACTOR = 0.5
    QUALITY_MAX_GAP_FACTOR = 1.5

    CONSISTENCY_WINDOW = 5
    CONSISTENCY_MIN_SAMPLES = 3
    CONSISTENCY_DEFAULT = 0.5

    SIGNAL_AMPLITUDE_SCALE = 200.0

    MIN_CONFIDENCE = 0.1


class ClinicalConstants:
    """Clinical thresholds for pre/post comparison (comparison.py)."""

    NORMAL_AREA_MIN_CM2 = 10.0
    NORMAL_AREA_MAX_CM2 = 20.0
    PATHOLOGICAL_AREA_CM2 = 50.0
    SIGNIFICANT_CHANGE_PERCENT = 25.0
    MODERATE_CHANGE_PERCENT = 10.0

    # Reference area for the normalized ellipse area (midpoint of normal range)
    NORMALIZATION_AREA_CM2 = 15.0

    TREND_WINDOW = 3
    MIN_TREND_SESSIONS = 3
    TREND_CHANGE_FRACTION = 0.10

    PROGRESS_SCALE = 50.0

    MM_PER_CM = 10.0
    MM2_PER_CM2 = 100.0


class BreathingFeedbackConstants:
    """Constants for guided breathing feedback (breathing_feedback.py)."""

    MILD_DEVIATION_BPM = 2.0
    MODERATE_DEVIATION_BPM = 5.0

    REGULARITY_THRESHOLD = 0.7
    PHASE_WINDOW_SAMPLES = 25
    PHASE_MIN_SAMPLES = 10
    HOLD_CHANGE_PER_SAMPLE = 0.5  # filtered units per sample
    HISTORY_SIZE = 20


# ============================================================================
# Feature Vector Normalization Ranges
# ============================================================================

DEFAULT_RESPIRATORY_SIGNAL_QUALITY = 0.8


# ============================================================================
# Config and Logging
# ============================================================================

DEFAULT_CONFIG_DIR = Path.home() / ".bequalize"
DEFAULT_LOG_DIR = DEFAULT_CONFIG_DIR / "logs"
DEFAULT_LOG_FILE = "bequalize.log"
DEFAULT_LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_LOG_BACKUP_COUNT = 5
