"""
Unit tests for postural sway feature extraction.

Tests COP conversion, ellipse geometry, sway metrics, frequency summary,
stabilogram diffusion, Romberg ratio and sensory integration.
"""

import math

import numpy as np
import pytest

from bequalize.analysis.postural import (
    PosturalFeatureExtractor,
    _slope,
    confidence_ellipse,
    cop_trajectory,
    sway_area,
)
from bequalize.analysis.types import OrientationEstimate, PosturalFeatures
from tests.helpers.synthetic_data import generate_sway_orientations


def _static(n: int = 200, roll: float = 0.0, pitch: float = 0.0) -> list[OrientationEstimate]:
    return [OrientationEstimate(roll=roll, pitch=pitch, timestamp=i * 20) for i in range(n)]


class TestCopTrajectory:
    """Test angle to centimetre conversion."""

    def test_one_degree_is_arc_length_at_device_height(self):
        x, y = cop_trajectory([OrientationEstimate(roll=1.0, pitch=-2.0)])

        assert x[0] == pytest.approx(100 * math.pi / 180)
        assert y[0] == pytest.approx(-2 * 100 * math.pi / 180)

    def test_roll_maps_to_x_and_pitch_to_y(self):
        x, y = cop_trajectory([OrientationEstimate(roll=3.0, pitch=0.0)])
        assert x[0] > 0
        assert y[0] == 0


class TestConfidenceEllipse:
    """Test the full ellipse geometry."""

    def test_area_matches_sway_area(self):
        orientations = generate_sway_orientations(duration_s=5.0)
        x_cm, y_cm = cop_trajectory(orientations)

        ellipse = confidence_ellipse(x_cm * 10, y_cm * 10)

        assert ellipse.area_cm2 == pytest.approx(sway_area(x_cm, y_cm), rel=1e-9)

    def test_axis_aligned_ellipse(self):
        theta = np.linspace(0, 2 * np.pi, 400, endpoint=False)
        x = 20 * np.cos(theta)
        y = 10 * np.sin(theta)

        ellipse = confidence_ellipse(x, y)

        assert ellipse.rotation == 0.0
        assert ellipse.semi_axis_a > ellipse.semi_axis_b
        assert ellipse.semi_axis_a / ellipse.semi_axis_b == pytest.approx(2.0, rel=1e-6)
        assert ellipse.center_x == pytest.approx(0.0, abs=1e-9)

    def test_diagonal_ellipse_rotation(self):
        t = np.linspace(-10, 10, 200)
        wobble = np.where(np.arange(200) % 2 == 0, 0.5, -0.5)

        ellipse = confidence_ellipse(t, t + wobble)

        assert ellipse.rotation == pytest.approx(math.pi / 4, abs=0.05)

    def test_fewer_than_three_points_is_degenerate(self):
        ellipse = confidence_ellipse([1.0, 3.0], [2.0, 4.0])

        assert ellipse.center_x == 2.0
        assert ellipse.center_y == 3.0
        assert ellipse.semi_axis_a == 0.0
        assert ellipse.area_cm2 == 0.1

    def test_area_floor(self):
        ellipse = confidence_ellipse([5.0] * 10, [5.0] * 10)
        assert ellipse.area_cm2 == 0.1


class TestExtract:
    """Test the sway feature record."""

    def test_short_window_returns_zero_record(self):
        extractor = PosturalFeatureExtractor()

        features = extractor.extract(generate_sway_orientations(duration_s=1.98))

        assert features == PosturalFeatures()
        assert features.sway_area_cm2 == 0

    def test_area_monotonic_in_amplitude(self):
        extractor = PosturalFeatureExtractor()

        areas = [
            extractor.extract(generate_sway_orientations(amplitude_deg=a)).sway_area_cm2
            for a in (0.5, 1.0, 2.0, 4.0)
        ]

        assert areas == sorted(areas)
        assert len(set(areas)) == 4

    def test_area_scales_with_square_of_amplitude(self):
        extractor = PosturalFeatureExtractor()

        small = extractor.extract(generate_sway_orientations(amplitude_deg=1.0))
        large = extractor.extract(generate_sway_orientations(amplitude_deg=2.0))

        assert large.sway_area_cm2 / small.sway_area_cm2 == pytest.approx(4.0, rel=1e-6)

    def test_deterministic(self, steady_orientations):
        extractor = PosturalFeatureExtractor()

        assert extractor.extract(steady_orientations) == extractor.extract(
            steady_orientations
        )

    def test_static_window(self):
        extractor = PosturalFeatureExtractor()

        features = extractor.extract(_static())

        assert features.sway_area_cm2 == 0.1
        assert features.sway_path_length_cm == 0.0
        assert features.sway_velocity_cm_s == 0.0
        assert features.frequency_peaks == []
        assert features.dominant_frequency == 0.0
        assert features.stability_index == 1.0

    def test_velocity_is_path_over_elapsed_time(self, steady_orientations):
        features = PosturalFeatureExtractor().extract(steady_orientations)

        elapsed = (len(steady_orientations) - 1) / 50
        assert features.sway_velocity_cm_s == pytest.approx(
            features.sway_path_length_cm / elapsed
        )

    def test_directional_sway(self):
        orientations = generate_sway_orientations(pitch_scale=0.25)

        features = PosturalFeatureExtractor().extract(orientations)

        assert features.ml_sway > features.ap_sway > 0
        assert features.total_sway == pytest.approx(
            math.hypot(features.ap_sway, features.ml_sway)
        )

    @pytest.mark.parametrize("amplitude", [0.1, 1.0, 5.0, 20.0])
    def test_stability_index_in_unit_interval(self, amplitude):
        features = PosturalFeatureExtractor().extract(
            generate_sway_orientations(amplitude_deg=amplitude, noise_deg=0.2, seed=7)
        )
        assert 0.0 <= features.stability_index <= 1.0

    def test_larger_sway_is_less_stable(self):
        extractor = PosturalFeatureExtractor()

        calm = extractor.extract(generate_sway_orientations(amplitude_deg=0.5))
        wobbly = extractor.extract(generate_sway_orientations(amplitude_deg=5.0))

        assert wobbly.stability_index < calm.stability_index

    def test_frequency_peaks(self, steady_orientations):
        features = PosturalFeatureExtractor().extract(steady_orientations)

        assert 0 < len(features.frequency_peaks) <= 3
        assert all(0.1 <= f <= 5.0 for f in features.frequency_peaks)
        assert features.frequency_peaks[0] == features.dominant_frequency


class TestFrequencyAnalysis:
    """Test the autocorrelation scan."""

    def test_candidate_grid(self):
        extractor = PosturalFeatureExtractor()
        freq = extractor.frequency_analysis(np.zeros(200), np.zeros(200))

        assert len(freq.frequencies) == 50
        assert freq.frequencies[0] == 0.1
        assert freq.frequencies[-1] == 5.0

    def test_flat_signal_has_no_dominant_frequency(self):
        freq = PosturalFeatureExtractor().frequency_analysis(np.zeros(200), np.zeros(200))

        assert freq.dominant_frequency == 0.0
        assert freq.spectral_centroid == 0.0
        assert all(m == 0 for m in freq.magnitudes)

    def test_periods_longer_than_window_are_zero(self):
        t = np.arange(100) / 50
        roll = 10 + np.sin(2 * np.pi * 1.0 * t)

        freq = PosturalFeatureExtractor().frequency_analysis(roll, np.zeros(100))

        # 0.1-0.5 Hz need lags of 100-500 samples
        assert freq.magnitudes[:5] == [0.0] * 5
        assert any(m > 0 for m in freq.magnitudes[5:])

    def test_centroid_within_grid(self, steady_orientations):
        roll = np.array([o.roll for o in steady_orientations])
        pitch = np.array([o.pitch for o in steady_orientations])

        freq = PosturalFeatureExtractor().frequency_analysis(roll, pitch)

        assert 0.1 <= freq.spectral_centroid <= 5.0


class TestStabilogramDiffusion:
    """Test MSD slope analysis."""

    def test_computed_by_default(self, steady_orientations):
        features = PosturalFeatureExtractor().extract(steady_orientations)

        diffusion = features.stabilogram_diffusion
        assert diffusion is not None
        assert 0 < diffusion.critical_point <= 2.0
        assert diffusion.diffusion_coefficient == pytest.approx(
            (diffusion.short_term_slope + diffusion.long_term_slope) / 2
        )

    def test_can_be_disabled(self, steady_orientations):
        extractor = PosturalFeatureExtractor(compute_diffusion=False)
        assert extractor.extract(steady_orientations).stabilogram_diffusion is None

    def test_linear_drift_has_growing_msd(self):
        x = np.linspace(0, 5, 400)
        y = np.zeros(400)

        diffusion = PosturalFeatureExtractor().stabilogram_diffusion(x, y)

        assert diffusion.short_term_slope > 0
        assert diffusion.long_term_slope > 0

    def test_slope_fit(self):
        lags = np.arange(1, 11) / 50

        assert _slope(lags, 3.0 * lags + 0.5) == pytest.approx(3.0)
        assert _slope(np.full(5, 0.2), np.arange(5.0)) == 0.0
        assert _slope(lags[:1], lags[:1]) == 0.0


class TestRombergRatio:
    """Test eyes-closed over eyes-open ratio."""

    def test_ratio_of_areas(self):
        extractor = PosturalFeatureExtractor()
        eyes_open = generate_sway_orientations(amplitude_deg=1.0)
        eyes_closed = generate_sway_orientations(amplitude_deg=2.0)

        assert extractor.romberg_ratio(eyes_open, eyes_closed) == pytest.approx(4.0)

    def test_clamped_to_upper_bound(self):
        extractor = PosturalFeatureExtractor()
        eyes_open = generate_sway_orientations(amplitude_deg=0.5)
        eyes_closed = generate_sway_orientations(amplitude_deg=10.0)

        assert extractor.romberg_ratio(eyes_open, eyes_closed) == 10.0

    def test_clamped_to_lower_bound(self):
        extractor = PosturalFeatureExtractor()
        eyes_open = generate_sway_orientations(amplitude_deg=4.0)
        eyes_closed = generate_sway_orientations(amplitude_deg=1.0)

        assert extractor.romberg_ratio(eyes_open, eyes_closed) == 0.5

    def test_short_window_gives_one(self):
        extractor = PosturalFeatureExtractor()
        eyes_open = generate_sway_orientations(duration_s=1.0)
        eyes_closed = generate_sway_orientations(amplitude_deg=3.0)

        assert extractor.romberg_ratio(eyes_open, eyes_closed) == 1.0


class TestSensoryIntegration:
    """Test sensory weighting across standing conditions."""

    def test_fewer_than_two_conditions(self):
        weights = PosturalFeatureExtractor().sensory_integration(
            [generate_sway_orientations()]
        )

        assert weights.visual == pytest.approx(1 / 3)
        assert weights.proprioceptive == pytest.approx(1 / 3)
        assert weights.vestibular == pytest.approx(1 / 3)
        assert weights.confidence == 0.1

    def test_more_than_four_conditions_raises(self):
        window = generate_sway_orientations(duration_s=2.0)

        with pytest.raises(ValueError):
            PosturalFeatureExtractor().sensory_integration([window] * 5)

    @pytest.mark.parametrize("count", [2, 3, 4])
    def test_weights_sum_to_one(self, count):
        windows = [
            generate_sway_orientations(amplitude_deg=0.5 * (i + 1)) for i in range(count)
        ]

        weights = PosturalFeatureExtractor().sensory_integration(windows)

        total = weights.visual + weights.proprioceptive + weights.vestibular
        assert total == pytest.approx(1.0)
        assert 0.1 <= weights.confidence <= 1.0

    def test_identical_conditions_full_confidence(self):
        window = generate_sway_orientations()

        weights = PosturalFeatureExtractor().sensory_integration([window] * 4)

        assert weights.confidence == pytest.approx(1.0)
