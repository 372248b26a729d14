"""
Complementary filter for IMU orientation.

The gyroscope carries short-term changes and the accelerometer's gravity
direction anchors the long-term estimate.
"""

import math

from bequalize.analysis.fusion.types import ComplementaryState
from bequalize.types import Vector3


def accelerometer_angles(accel: Vector3) -> tuple[float, float]:
    """
    Roll and pitch implied by the gravity vector.

    Args:
        accel: Accelerometer reading

    Returns:
        Tuple of (roll, pitch) in degrees
    """
    roll = math.degrees(math.atan2(accel.y, accel.z))
    pitch = math.degrees(math.atan2(-accel.x, math.hypot(accel.y, accel.z)))
    return roll, pitch


def complementary_update(
    state: ComplementaryState,
    accel: Vector3,
    gyro: Vector3,
    dt: float | None = None,
) -> ComplementaryState:
    """
    Advance the complementary filter by one sample.

    Args:
        state: Previous filter state
        accel: Accelerometer reading
        gyro: Gyroscope reading (deg/s)
        dt: Sample period override (seconds); defaults to state.dt

    Returns:
        New state holding the fused roll, pitch and yaw (degrees)
    """
    step = state.dt if dt is None else dt
    accel_roll, accel_pitch = accelerometer_angles(accel)

    gyro_roll = state.roll + gyro.x * step
    gyro_pitch = state.pitch + gyro.y * step
    gyro_yaw = state.yaw + gyro.z * step

    alpha = state.alpha
    return ComplementaryState(
        roll=alpha * gyro_roll + (1 - alpha) * accel_roll,
        pitch=alpha * gyro_pitch + (1 - alpha) * accel_pitch,
        yaw=gyro_yaw,  # unobservable from gravity
        alpha=alpha,
        dt=state.dt,
    )
