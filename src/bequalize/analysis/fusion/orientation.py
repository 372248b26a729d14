"""Orientation fusion front end that dispatches on the configured method."""

import logging

from collections.abc import Iterable
from dataclasses import replace

from bequalize.analysis.fusion.complementary import (
    accelerometer_angles,
    complementary_update,
)
from bequalize.analysis.fusion.kalman import kalman_confidence, kalman_update
from bequalize.analysis.fusion.types import ComplementaryState, KalmanState
from bequalize.analysis.types import OrientationEstimate
from bequalize.constants import SAMPLE_RATE_HZ, FusionMethod
from bequalize.constants import FusionConstants as FC
from bequalize.types import SensorSample

logger = logging.getLogger(__name__)


class OrientationFusion:
    """
    Stateful roll/pitch/yaw estimator for a single sensor stream.

    Owns exactly one filter state, chosen by method at construction. Each
    call to update() advances that state; estimates carry the timestamp of
    the sample they were computed from.

    Example:
        >>> fusion = OrientationFusion(FusionMethod.KALMAN)
        >>> estimates = [fusion.update(sample) for sample in samples]
        >>> print(f"Final roll: {estimates[-1].roll:.2f}°")
    """

    def __init__(
        self,
        method: FusionMethod | str = FusionMethod.COMPLEMENTARY,
        *,
        sample_rate: float = SAMPLE_RATE_HZ,
        alpha: float = FC.COMPLEMENTARY_ALPHA,
        process_noise: tuple[float, ...] = FC.PROCESS_NOISE,
        measurement_noise: tuple[float, ...] = FC.MEASUREMENT_NOISE,
    ):
        """
        Initialize the fusion filter.

        Args:
            method: "complementary" or "kalman"
            sample_rate: Nominal sample rate (Hz)
            alpha: Complementary gyro weight
            process_noise: Kalman Q diagonal (4 entries)
            measurement_noise: Kalman R diagonal (2 entries)

        Raises:
            ValueError: If method is not a known fusion method
        """
        self.method = FusionMethod(method)
        self.dt = 1.0 / sample_rate
        self.alpha = alpha
        self.process_noise = tuple(process_noise)
        self.measurement_noise = tuple(measurement_noise)
        self._complementary: ComplementaryState | None = None
        self._kalman: KalmanState | None = None
        self._seeded = False
        self.reset()
        logger.info(f"OrientationFusion initialized with {self.method.value} filter")

    def reset(self) -> None:
        """
        Re-initialize the filter state to defaults.

        The next update() seeds roll and pitch from that sample's gravity
        vector, so a sensor mounted at a static tilt starts at its tilt
        instead of converging from level.
        """
        if self.method is FusionMethod.KALMAN:
            self._kalman = KalmanState.from_noise(
                self.process_noise, self.measurement_noise, self.dt
            )
            self._complementary = None
        else:
            self._complementary = ComplementaryState(alpha=self.alpha, dt=self.dt)
            self._kalman = None
        self._seeded = False

    def _seed(self, sample: SensorSample) -> None:
        roll, pitch = accelerometer_angles(sample.accel)
        if self._kalman is not None:
            x = self._kalman.x.copy()
            x[0], x[1] = roll, pitch
            self._kalman = replace(self._kalman, x=x)
        elif self._complementary is not None:
            self._complementary = replace(self._complementary, roll=roll, pitch=pitch)
        self._seeded = True
        logger.debug(f"Fusion seeded from gravity: roll={roll:.2f}°, pitch={pitch:.2f}°")

    def update(self, sample: SensorSample, dt: float | None = None) -> OrientationEstimate:
        """
        Fuse one sample into the running estimate.

        Args:
            sample: Sensor packet
            dt: Complementary sample period override (seconds)

        Returns:
            OrientationEstimate for this sample
        """
        if not self._seeded:
            self._seed(sample)

        if self._kalman is not None:
            self._kalman = kalman_update(self._kalman, sample.accel)
            return OrientationEstimate(
                roll=float(self._kalman.x[0]),
                pitch=float(self._kalman.x[1]),
                yaw=0.0,
                angular_velocity=sample.gyro,
                confidence=kalman_confidence(self._kalman),
                timestamp=sample.timestamp,
            )

        assert self._complementary is not None
        self._complementary = complementary_update(
            self._complementary, sample.accel, sample.gyro, dt
        )
        return OrientationEstimate(
            roll=self._complementary.roll,
            pitch=self._complementary.pitch,
            yaw=self._complementary.yaw,
            timestamp=sample.timestamp,
        )

    def process(self, samples: Iterable[SensorSample]) -> list[OrientationEstimate]:
        """Fuse a batch of samples in order."""
        return [self.update(sample) for sample in samples]

    @property
    def state(self) -> ComplementaryState | KalmanState:
        """Current filter state."""
        current = self._kalman if self._kalman is not None else self._complementary
        assert current is not None
        return current


def orientations_from_accelerometer(
    samples: Iterable[SensorSample],
) -> list[OrientationEstimate]:
    """
    Accelerometer-only roll/pitch for each sample, with no filtering.

    Used for static balance recordings where gravity alone gives the tilt.
    """
    estimates = []
    for sample in samples:
        roll, pitch = accelerometer_angles(sample.accel)
        estimates.append(
            OrientationEstimate(
                roll=roll,
                pitch=pitch,
                angular_velocity=sample.gyro,
                timestamp=sample.timestamp,
            )
        )
    return estimates
