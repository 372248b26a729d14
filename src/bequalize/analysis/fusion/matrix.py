"""Small matrix helpers for the Kalman measurement update."""

import logging

import numpy as np

from bequalize.constants import FusionConstants as FC

logger = logging.getLogger(__name__)


class UnsupportedMatrixShapeError(ValueError):
    """Raised when the closed-form inverse is asked for a non-2x2 matrix."""


def invert_2x2(matrix: np.ndarray) -> np.ndarray:
    """
    Invert a 2x2 matrix in closed form.

    Only the 2x2 innovation covariance of the roll/pitch measurement is ever
    inverted, so no general solver is provided.

    Args:
        matrix: Array of shape (2, 2)

    Returns:
        The inverse, or the 2x2 identity when |det| < 1e-10

    Raises:
        UnsupportedMatrixShapeError: If matrix is not 2x2

    Example:
        >>> invert_2x2(np.array([[2.0, 0.0], [0.0, 4.0]]))
        array([[0.5 , 0.  ],
               [0.  , 0.25]])
    """
    m = np.asarray(matrix, dtype=float)
    if m.shape != (2, 2):
        raise UnsupportedMatrixShapeError(
            f"Closed-form inverse supports 2x2 matrices only, got shape {m.shape}"
        )

    a, b = m[0]
    c, d = m[1]
    det = a * d - b * c

    if abs(det) < FC.SINGULAR_DETERMINANT:
        logger.debug(f"Singular 2x2 matrix (det={det:.3e}), using identity")
        return np.eye(2)

    return np.array([[d, -b], [-c, a]]) / det
