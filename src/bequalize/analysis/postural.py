"""
Postural sway feature extraction.

This module converts a window of roll/pitch estimates into an approximate
centre-of-pressure (COP) trajectory and derives the clinical sway metrics:
path length, 95% confidence ellipse area, mean velocity, directional sway,
an autocorrelation frequency summary, a stability index and stabilogram
diffusion. It also provides the Romberg ratio and a sensory-integration
weighting over several standing conditions.

Roll maps to the medio-lateral (x) axis and pitch to the antero-posterior
(y) axis.
"""

import logging
import math

from collections.abc import Sequence

import numpy as np

from bequalize.analysis.types import (
    ConfidenceEllipse,
    FrequencyAnalysis,
    OrientationEstimate,
    PosturalFeatures,
    SensoryWeights,
    StabilogramDiffusion,
)
from bequalize.constants import SAMPLE_RATE_HZ
from bequalize.constants import ClinicalConstants as CC
from bequalize.constants import PosturalConstants as PC

logger = logging.getLogger(__name__)

__all__ = [
    "PosturalFeatureExtractor",
    "confidence_ellipse",
    "cop_trajectory",
    "sway_area",
]

FLAT_X_EPSILON = 1e-12


# ============================================================================
# Trajectory Geometry
# ============================================================================


def cop_trajectory(
    orientations: Sequence[OrientationEstimate],
) -> tuple[np.ndarray, np.ndarray]:
    """
    Approximate COP displacement in centimetres.

    Small-angle arc length of a point DEVICE_HEIGHT_CM above the ground:
    displacement = angle_deg * height * π/180.

    Returns:
        Tuple of (x_ml, y_ap) arrays in cm
    """
    roll = np.array([o.roll for o in orientations], dtype=float)
    pitch = np.array([o.pitch for o in orientations], dtype=float)
    return roll * PC.ANGLE_TO_CM, pitch * PC.ANGLE_TO_CM


def _covariance_eigenvalues(x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, float, float, float]:
    """Sample covariance (n-1) eigenvalues, descending, with the raw terms."""
    cov = np.cov(np.vstack([x, y]), ddof=1)
    eigenvalues = np.linalg.eigvalsh(cov)[::-1]
    return np.clip(eigenvalues, 0.0, None), cov[0, 0], cov[1, 1], cov[0, 1]


def sway_area(x: np.ndarray, y: np.ndarray) -> float:
    """
    95% confidence ellipse area in the square of the input unit.

    area = π·sqrt(λ1·λ2·5.991), floored at 0.1.
    """
    if len(x) < 3:
        return PC.MIN_SWAY_AREA_CM2
    eigenvalues, _, _, _ = _covariance_eigenvalues(np.asarray(x), np.asarray(y))
    area = math.pi * math.sqrt(eigenvalues[0] * eigenvalues[1] * PC.CHI_SQUARE_95)
    return max(PC.MIN_SWAY_AREA_CM2, area)


def confidence_ellipse(x_mm: Sequence[float], y_mm: Sequence[float]) -> ConfidenceEllipse:
    """
    Full 95% confidence ellipse geometry for a trajectory in millimetres.

    Args:
        x_mm: Medio-lateral displacement (mm)
        y_mm: Antero-posterior displacement (mm)

    Returns:
        ConfidenceEllipse with centre and semi-axes in mm, rotation in
        radians and area in cm² (floored at 0.1). Fewer than 3 points give
        a degenerate ellipse at the mean.
    """
    x = np.asarray(x_mm, dtype=float)
    y = np.asarray(y_mm, dtype=float)
    if x.size == 0:
        return ConfidenceEllipse(area_cm2=PC.MIN_SWAY_AREA_CM2)

    center_x, center_y = float(x.mean()), float(y.mean())
    if x.size < 3:
        return ConfidenceEllipse(
            center_x=center_x, center_y=center_y, area_cm2=PC.MIN_SWAY_AREA_CM2
        )

    eigenvalues, cov_xx, cov_yy, cov_xy = _covariance_eigenvalues(x, y)
    semi_a = math.sqrt(eigenvalues[0] * PC.CHI_SQUARE_95)
    semi_b = math.sqrt(eigenvalues[1] * PC.CHI_SQUARE_95)

    if abs(cov_xy) < PC.ROTATION_COVARIANCE_EPSILON:
        rotation = 0.0
    else:
        rotation = 0.5 * math.atan2(2 * cov_xy, cov_xx - cov_yy)

    area_mm2 = math.pi * math.sqrt(eigenvalues[0] * eigenvalues[1] * PC.CHI_SQUARE_95)
    area_cm2 = max(PC.MIN_SWAY_AREA_CM2, area_mm2 / CC.MM2_PER_CM2)

    return ConfidenceEllipse(
        center_x=center_x,
        center_y=center_y,
        semi_axis_a=semi_a,
        semi_axis_b=semi_b,
        rotation=rotation,
        area_cm2=area_cm2,
    )


def _path_length(x: np.ndarray, y: np.ndarray) -> float:
    return float(np.sum(np.hypot(np.diff(x), np.diff(y))))


def _slope(x: np.ndarray, y: np.ndarray) -> float:
    """Least-squares slope, 0 for fewer than 2 points or a flat x."""
    if len(x) < 2 or np.ptp(x) < FLAT_X_EPSILON:
        return 0.0
    return float(np.polyfit(x, y, 1)[0])


class PosturalFeatureExtractor:
    """
    Computes sway features from windows of orientation estimates.

    Stateless between calls: identical windows always give identical
    features.

    Example:
        >>> extractor = PosturalFeatureExtractor()
        >>> features = extractor.extract(orientations)
        >>> print(f"Sway area: {features.sway_area_cm2:.2f} cm²")
    """

    def __init__(
        self,
        sample_rate: float = SAMPLE_RATE_HZ,
        min_samples: int = PC.MIN_SAMPLES,
        compute_diffusion: bool = True,
    ):
        """
        Initialize the extractor.

        Args:
            sample_rate: Orientation sample rate (Hz)
            min_samples: Minimum window; shorter windows give the zero record
            compute_diffusion: Attach stabilogram diffusion to features
        """
        self.sample_rate = sample_rate
        self.min_samples = min_samples
        self.compute_diffusion = compute_diffusion
        self.frequencies = np.round(
            np.arange(
                PC.FREQ_MIN_HZ,
                PC.FREQ_MAX_HZ + PC.FREQ_STEP_HZ / 2,
                PC.FREQ_STEP_HZ,
            ),
            1,
        )
        logger.info(
            f"PosturalFeatureExtractor initialized (min window {min_samples} samples)"
        )

    def extract(self, orientations: Sequence[OrientationEstimate]) -> PosturalFeatures:
        """
        Extract sway features for one window.

        Args:
            orientations: Orientation estimates, oldest first

        Returns:
            PosturalFeatures; all zero when the window is shorter than
            min_samples
        """
        n = len(orientations)
        if n < self.min_samples:
            logger.debug(f"Postural window too short ({n} < {self.min_samples})")
            return PosturalFeatures()

        x, y = cop_trajectory(orientations)
        path_length = _path_length(x, y)
        elapsed = (n - 1) / self.sample_rate

        roll = np.array([o.roll for o in orientations], dtype=float)
        pitch = np.array([o.pitch for o in orientations], dtype=float)
        freq = self.frequency_analysis(roll, pitch)

        diffusion = self.stabilogram_diffusion(x, y) if self.compute_diffusion else None

        return PosturalFeatures(
            sway_path_length_cm=path_length,
            sway_area_cm2=sway_area(x, y),
            sway_velocity_cm_s=path_length / elapsed if elapsed > 0 else 0.0,
            frequency_peaks=self._frequency_peaks(freq),
            stability_index=self._stability_index(x, y, freq.dominant_frequency),
            ap_sway=float(y.std()),
            ml_sway=float(x.std()),
            dominant_frequency=freq.dominant_frequency,
            spectral_centroid=freq.spectral_centroid,
            stabilogram_diffusion=diffusion,
        )

    def frequency_analysis(self, roll: np.ndarray, pitch: np.ndarray) -> FrequencyAnalysis:
        """
        Autocorrelation magnitude of the combined sway at 0.1-5.0 Hz.

        The combined sway sqrt(roll² + pitch²) is mean-removed; at each
        candidate frequency f the lag is p = fs/f samples and the magnitude
        is |Σ s[i]·s[i+⌊p⌋]| / (n - p), zero when p >= n.
        """
        combined = np.hypot(roll, pitch)
        s = combined - combined.mean()
        n = len(s)

        magnitudes = np.zeros(len(self.frequencies))
        for k, f in enumerate(self.frequencies):
            period = self.sample_rate / f
            if period >= n:
                continue
            lag = int(math.floor(period))
            count = int(math.ceil(n - period))
            correlation = float(np.dot(s[:count], s[lag : lag + count]))
            magnitudes[k] = abs(correlation) / (n - period)

        total = float(magnitudes.sum())
        if total > 0:
            dominant = float(self.frequencies[int(np.argmax(magnitudes))])
            centroid = float(np.dot(self.frequencies, magnitudes) / total)
        else:
            dominant = 0.0
            centroid = 0.0

        return FrequencyAnalysis(
            frequencies=self.frequencies.tolist(),
            magnitudes=magnitudes.tolist(),
            dominant_frequency=dominant,
            spectral_centroid=centroid,
        )

    @staticmethod
    def _frequency_peaks(freq: FrequencyAnalysis) -> list[float]:
        magnitudes = np.asarray(freq.magnitudes)
        order = np.argsort(-magnitudes, kind="stable")
        peaks = [freq.frequencies[i] for i in order if magnitudes[i] > 0]
        return peaks[: PC.MAX_FREQUENCY_PEAKS]

    @staticmethod
    def _stability_index(x: np.ndarray, y: np.ndarray, dominant_frequency: float) -> float:
        sway_magnitude = math.sqrt(float(x.var() + y.var()))
        frequency_term = 1.0 / (1.0 + dominant_frequency)
        magnitude_term = 1.0 / (1.0 + sway_magnitude)
        return float(np.clip((frequency_term + magnitude_term) / 2, 0.0, 1.0))

    def stabilogram_diffusion(self, x: np.ndarray, y: np.ndarray) -> StabilogramDiffusion:
        """
        Mean-squared displacement vs lag, split at the largest slope change.

        Lags run from 1 to min(100, n // 4) samples. The critical point is
        the split index in [3, len - 3) that maximizes the difference between
        the right- and left-hand regression slopes.

        Returns:
            StabilogramDiffusion with slopes in cm²/s and the critical point
            in seconds
        """
        n = len(x)
        max_lag = min(PC.DIFFUSION_MAX_LAG, n // PC.DIFFUSION_LAG_DIVISOR)
        if max_lag < 1:
            return StabilogramDiffusion()

        lags = np.arange(1, max_lag + 1)
        msd = np.array(
            [np.mean((x[lag:] - x[:-lag]) ** 2 + (y[lag:] - y[:-lag]) ** 2) for lag in lags]
        )
        intervals = lags / self.sample_rate

        size = len(intervals)
        critical = size // 2
        best_change = 0.0
        for i in range(PC.DIFFUSION_MIN_SEGMENT, size - PC.DIFFUSION_MIN_SEGMENT):
            change = abs(
                _slope(intervals[i:], msd[i:]) - _slope(intervals[:i], msd[:i])
            )
            if change > best_change:
                best_change = change
                critical = i

        short_slope = _slope(intervals[:critical], msd[:critical])
        long_slope = _slope(intervals[critical:], msd[critical:])

        return StabilogramDiffusion(
            short_term_slope=short_slope,
            long_term_slope=long_slope,
            critical_point=float(intervals[critical]) if critical < size else 0.0,
            diffusion_coefficient=(short_slope + long_slope) / 2,
        )

    def romberg_ratio(
        self,
        eyes_open: Sequence[OrientationEstimate],
        eyes_closed: Sequence[OrientationEstimate],
    ) -> float:
        """
        Eyes-closed over eyes-open sway area, clamped to [0.5, 10].

        Returns 1.0 when either window is shorter than the minimum.
        """
        if len(eyes_open) < self.min_samples or len(eyes_closed) < self.min_samples:
            return 1.0

        open_area = self.extract(eyes_open).sway_area_cm2
        closed_area = self.extract(eyes_closed).sway_area_cm2
        if open_area <= 0:
            return 1.0

        return float(np.clip(closed_area / open_area, PC.ROMBERG_MIN, PC.ROMBERG_MAX))

    def sensory_integration(
        self, conditions: Sequence[Sequence[OrientationEstimate]]
    ) -> SensoryWeights:
        """
        Estimate visual/proprioceptive/vestibular reliance.

        Conditions are ordered firm-eyes-open, firm-eyes-closed,
        foam-eyes-open, foam-eyes-closed; two to four may be supplied.

        Args:
            conditions: One orientation window per condition

        Returns:
            SensoryWeights whose three weights sum to 1

        Raises:
            ValueError: If more than four conditions are supplied
        """
        if len(conditions) > PC.SENSORY_MAX_CONDITIONS:
            raise ValueError(
                f"Sensory integration takes at most {PC.SENSORY_MAX_CONDITIONS} "
                f"conditions, got {len(conditions)}"
            )
        if len(conditions) < 2:
            third = 1.0 / 3.0
            return SensoryWeights(
                visual=third,
                proprioceptive=third,
                vestibular=third,
                confidence=PC.SENSORY_MIN_CONFIDENCE,
            )

        stability = np.array([self.extract(c).stability_index for c in conditions])

        def bounded(value: float) -> float:
            return float(np.clip(value, PC.SENSORY_WEIGHT_MIN, PC.SENSORY_WEIGHT_MAX))

        visual = bounded(abs(stability[0] - stability[1]))
        if len(stability) >= 3:
            proprioceptive = bounded(abs(stability[0] - stability[2]))
        else:
            proprioceptive = 1.0 / 3.0
        vestibular = bounded(stability.mean())

        total = visual + proprioceptive + vestibular
        confidence = 1.0 / (1.0 + float(stability.var()) * PC.SENSORY_CONFIDENCE_SCALE)

        return SensoryWeights(
            visual=visual / total,
            proprioceptive=proprioceptive / total,
            vestibular=vestibular / total,
            confidence=float(np.clip(confidence, PC.SENSORY_MIN_CONFIDENCE, 1.0)),
        )
