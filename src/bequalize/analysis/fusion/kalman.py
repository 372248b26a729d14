"""Kalman filter for roll/pitch estimation with noise handling."""

import numpy as np

from bequalize.analysis.fusion.complementary import accelerometer_angles
from bequalize.analysis.fusion.matrix import invert_2x2
from bequalize.analysis.fusion.types import KalmanState
from bequalize.types import Vector3


def kalman_update(state: KalmanState, accel: Vector3) -> KalmanState:
    """
    Run one predict/update cycle.

    The accelerometer roll/pitch is the 2-D measurement. The innovation
    covariance S is inverted with the closed-form 2x2 helper, which falls
    back to identity when S is singular.

    Args:
        state: Previous filter state
        accel: Accelerometer reading

    Returns:
        New state with updated x and P (Q, R, dt carried over)
    """
    F, H = state.F, state.H

    x_pred = F @ state.x
    P_pred = F @ state.P @ F.T + state.Q

    z = np.array(accelerometer_angles(accel))
    innovation = z - H @ x_pred
    S = H @ P_pred @ H.T + state.R
    K = P_pred @ H.T @ invert_2x2(S)

    x_new = x_pred + K @ innovation
    P_new = (np.eye(4) - K @ H) @ P_pred

    return KalmanState(x=x_new, P=P_new, Q=state.Q, R=state.R, dt=state.dt)


def kalman_confidence(state: KalmanState) -> float:
    """Confidence as 1 / (1 + trace(P))."""
    return float(1.0 / (1.0 + np.trace(state.P)))
