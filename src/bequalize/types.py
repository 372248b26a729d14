"""Core sensor type definitions."""

from pydantic import BaseModel, ConfigDict, Field


class Vector3(BaseModel):
    """Three-axis sensor reading."""

    model_config = ConfigDict(frozen=True)

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0


class SensorSample(BaseModel):
    """
    One packet from the belt sensor, nominally produced at 50 Hz.

    Attributes:
        timestamp: Acquisition time (milliseconds)
        battery_percent: Battery charge (0-100)
        button_bitmask: 0 = none, 1 = button 1, 2 = button 2, 3 = both
        accel: Accelerometer reading (scaled units, gravity on z at rest)
        gyro: Gyroscope reading (deg/s)
        stretch_value: Raw elastometer (respiratory stretch) value
        temperature_c: Sensor temperature (Celsius)
    """

    model_config = ConfigDict(frozen=True)

    timestamp: int = Field(ge=0, description="Acquisition time (ms)")
    battery_percent: int = Field(default=100, ge=0, le=100, description="Battery (%)")
    button_bitmask: int = Field(default=0, ge=0, le=3, description="Button state")
    accel: Vector3 = Field(description="Accelerometer reading")
    gyro: Vector3 = Field(default_factory=Vector3, description="Gyroscope (deg/s)")
    stretch_value: int = Field(default=0, description="Elastometer value")
    temperature_c: float = Field(default=36.5, description="Temperature (Celsius)")
