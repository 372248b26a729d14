"""
Orientation fusion filters.

Provides factory functions to instantiate a fusion filter by method name.
"""

from typing import Any

from bequalize.constants import FusionMethod

from .complementary import accelerometer_angles, complementary_update
from .kalman import kalman_confidence, kalman_update
from .matrix import UnsupportedMatrixShapeError, invert_2x2
from .orientation import OrientationFusion, orientations_from_accelerometer
from .types import ComplementaryState, KalmanState

__all__ = [
    "AVAILABLE_METHODS",
    "ComplementaryState",
    "KalmanState",
    "OrientationFusion",
    "UnsupportedMatrixShapeError",
    "accelerometer_angles",
    "complementary_update",
    "get_fusion",
    "invert_2x2",
    "kalman_confidence",
    "kalman_update",
    "orientations_from_accelerometer",
]

AVAILABLE_METHODS: dict[str, FusionMethod] = {
    method.value: method for method in FusionMethod
}


def get_fusion(name: str, **kwargs: Any) -> OrientationFusion:
    """
    Factory function to get a fusion filter by name.

    Args:
        name: Method name ("complementary" or "kalman")
        **kwargs: Filter parameters passed to OrientationFusion

    Returns:
        OrientationFusion instance

    Raises:
        ValueError: If method name is not recognized
    """
    if name not in AVAILABLE_METHODS:
        raise ValueError(
            f"Unknown fusion method: {name}. Available: {list(AVAILABLE_METHODS.keys())}"
        )
    return OrientationFusion(AVAILABLE_METHODS[name], **kwargs)
