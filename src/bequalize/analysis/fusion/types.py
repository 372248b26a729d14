"""Filter state containers for orientation fusion."""

from dataclasses import dataclass, field

import numpy as np

from bequalize.constants import SAMPLE_RATE_HZ
from bequalize.constants import FusionConstants as FC


@dataclass
class ComplementaryState:
    """Previous fused angles (degrees) carried between samples."""

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    alpha: float = FC.COMPLEMENTARY_ALPHA
    dt: float = 1.0 / SAMPLE_RATE_HZ


def _diag(values: tuple[float, ...]) -> np.ndarray:
    return np.diag(np.asarray(values, dtype=float))


@dataclass
class KalmanState:
    """
    4-state Kalman filter over [roll, pitch, roll_rate, pitch_rate].

    Attributes:
        x: State vector (degrees, degrees/s)
        P: State covariance (4x4)
        Q: Process noise covariance (4x4)
        R: Measurement noise covariance (2x2)
        dt: Sample period (seconds)
    """

    x: np.ndarray = field(default_factory=lambda: np.zeros(4))
    P: np.ndarray = field(
        default_factory=lambda: np.eye(4) * FC.INITIAL_COVARIANCE
    )
    Q: np.ndarray = field(default_factory=lambda: _diag(FC.PROCESS_NOISE))
    R: np.ndarray = field(default_factory=lambda: _diag(FC.MEASUREMENT_NOISE))
    dt: float = 1.0 / SAMPLE_RATE_HZ

    @classmethod
    def from_noise(
        cls,
        process_noise: tuple[float, ...] = FC.PROCESS_NOISE,
        measurement_noise: tuple[float, ...] = FC.MEASUREMENT_NOISE,
        dt: float = 1.0 / SAMPLE_RATE_HZ,
    ) -> "KalmanState":
        """Build a fresh state from noise diagonals."""
        if len(process_noise) != 4 or len(measurement_noise) != 2:
            raise ValueError(
                "Kalman noise needs 4 process and 2 measurement diagonal entries, "
                f"got {len(process_noise)} and {len(measurement_noise)}"
            )
        return cls(Q=_diag(process_noise), R=_diag(measurement_noise), dt=dt)

    @property
    def F(self) -> np.ndarray:
        """Constant-velocity transition matrix."""
        return np.array(
            [
                [1.0, 0.0, self.dt, 0.0],
                [0.0, 1.0, 0.0, self.dt],
                [0.0, 0.0, 1.0, 0.0],
                [0.0, 0.0, 0.0, 1.0],
            ]
        )

    @property
    def H(self) -> np.ndarray:
        """Observation matrix selecting roll and pitch."""
        return np.hstack([np.eye(2), np.zeros((2, 2))])
