"""
Normalized 32-dimensional feature vector for external risk scorers.

Layout: 16 postural, 8 respiratory, 4 temporal, 4 demographic values, each
min/max normalized and clamped to [0, 1].
"""

import numpy as np

from pydantic import BaseModel, Field

from bequalize.analysis.types import PosturalFeatures, RespiratoryMetrics
from bequalize.constants import DEFAULT_RESPIRATORY_SIGNAL_QUALITY

ELDERLY_AGE = 65
SEVERE_CONDITION = 3


class FeatureVector(BaseModel):
    """Feature groups in scorer input order."""

    postural: list[float] = Field(min_length=16, max_length=16)
    respiratory: list[float] = Field(min_length=8, max_length=8)
    temporal: list[float] = Field(min_length=4, max_length=4)
    demographic: list[float] = Field(min_length=4, max_length=4)

    @property
    def values(self) -> list[float]:
        """Flattened vector (32 values)."""
        return self.postural + self.respiratory + self.temporal + self.demographic

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=float)


def normalize(value: float, low: float, high: float) -> float:
    """(value - low) / (high - low), clamped to [0, 1]."""
    return float(np.clip((value - low) / (high - low), 0.0, 1.0))


def _index_slope(values: list[float]) -> float:
    """Least-squares slope of values against their index."""
    if len(values) < 2:
        return 0.0
    return float(np.polyfit(np.arange(len(values), dtype=float), values, 1)[0])


def build_feature_vector(
    postural: PosturalFeatures,
    respiratory: RespiratoryMetrics,
    age: float = 50,
    severity: float = 1,
) -> FeatureVector:
    """
    Flatten extractor outputs and demographics into the scorer input.

    Args:
        postural: Postural features for the window
        respiratory: Respiratory metrics for the window
        age: Patient age (years)
        severity: Vestibular condition severity (1-5)

    Returns:
        FeatureVector whose values are all within [0, 1]
    """
    peaks = list(postural.frequency_peaks)
    peak = [peaks[i] if i < len(peaks) else 0.0 for i in range(4)]
    diffusion = postural.stabilogram_diffusion

    postural_vector = [
        normalize(postural.stability_index, 0, 1),
        normalize(postural.sway_area_cm2, 0, 20),
        normalize(postural.sway_velocity_cm_s, 0, 10),
        normalize(postural.sway_path_length_cm, 0, 500),
        normalize(postural.ap_sway, 0, 10),
        normalize(postural.ml_sway, 0, 10),
        normalize(peak[0], 0, 5),
        normalize(peak[1], 0, 5),
        normalize(peak[2], 0, 5),
        normalize(peak[3], 0, 3),
        normalize(diffusion.short_term_slope if diffusion else 0.0, 0, 2),
        normalize(diffusion.long_term_slope if diffusion else 0.0, 0, 2),
        normalize(diffusion.critical_point if diffusion else 0.0, 0, 10),
        normalize(diffusion.diffusion_coefficient if diffusion else 0.0, 0, 1),
        normalize(postural.total_sway, 0, 15),
        normalize(len(peaks), 0, 10),
    ]

    filtered = respiratory.filtered_signal
    signal_range = max(filtered) - min(filtered) if filtered else 0.0
    signal_quality = respiratory.signal_quality or DEFAULT_RESPIRATORY_SIGNAL_QUALITY

    respiratory_vector = [
        normalize(respiratory.breathing_rate_bpm, 10, 30),
        normalize(respiratory.amplitude, 0, 100),
        normalize(respiratory.ie_ratio, 0.5, 2.0),
        normalize(respiratory.regularity, 0, 1),
        normalize(len(respiratory.peak_indices), 0, 50),
        normalize(len(respiratory.valley_indices), 0, 50),
        normalize(signal_quality, 0, 1),
        normalize(signal_range, 0, 200),
    ]

    rate = respiratory.breathing_rate_bpm
    fatigue = ((1 - postural.stability_index) + normalize(rate, 12, 30)) / 2
    temporal_vector = [
        normalize(_index_slope(peaks), -0.1, 0.1),
        normalize(float(np.std([postural.sway_area_cm2, postural.sway_velocity_cm_s])), 0, 1),
        normalize(normalize(rate, 15, 25), 0, 1),
        normalize(fatigue, 0, 1),
    ]

    demographic_vector = [
        normalize(age, 20, 90),
        normalize(severity, 1, 5),
        1.0 if age > ELDERLY_AGE else 0.0,
        1.0 if severity > SEVERE_CONDITION else 0.0,
    ]

    return FeatureVector(
        postural=postural_vector,
        respiratory=respiratory_vector,
        temporal=temporal_vector,
        demographic=demographic_vector,
    )
