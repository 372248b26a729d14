"""Configuration management for Bequalize."""

import logging
import os
import tomllib

from pathlib import Path
from typing import Any

import tomli_w

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bequalize.constants import DEFAULT_CONFIG_DIR, SAMPLE_RATE_HZ, FusionMethod
from bequalize.constants import ClinicalConstants as CC
from bequalize.constants import FusionConstants as FC
from bequalize.constants import PosturalConstants as PC
from bequalize.constants import RealTimeConstants as RTC
from bequalize.constants import RespiratoryConstants as RC

logger = logging.getLogger(__name__)

PROCESSING_SECTION = "processing"


class ProcessingConfig(BaseModel):
    """
    Tunable parameters for the processing core.

    Defaults come from constants.py; the [processing] table of the config
    file overrides individual fields.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Sensor stream
    sample_rate: float = Field(default=SAMPLE_RATE_HZ, gt=0, description="Hz")

    # Orientation fusion
    fusion_method: FusionMethod = Field(default=FusionMethod.COMPLEMENTARY)
    complementary_alpha: float = Field(
        default=FC.COMPLEMENTARY_ALPHA, ge=0, le=1, description="Gyro trust factor"
    )
    kalman_process_noise: tuple[float, float, float, float] = Field(
        default=FC.PROCESS_NOISE, description="Q diagonal"
    )
    kalman_measurement_noise: tuple[float, float] = Field(
        default=FC.MEASUREMENT_NOISE, description="R diagonal"
    )

    # Windows
    buffer_seconds: float = Field(default=RTC.BUFFER_SECONDS, gt=0)
    feature_window_seconds: float = Field(default=RTC.FEATURE_WINDOW_SECONDS, gt=0)
    feature_history_size: int = Field(default=RTC.FEATURE_HISTORY_SIZE, gt=0)
    respiratory_buffer_seconds: float = Field(default=RC.BUFFER_SECONDS, gt=0)
    respiratory_cutoff_hz: float = Field(default=RC.LOWPASS_CUTOFF_HZ, gt=0)
    postural_min_samples: int = Field(default=PC.MIN_SAMPLES, ge=3)

    # Live alert thresholds
    stability_alert_threshold: float = Field(
        default=RTC.STABILITY_ALERT_THRESHOLD, ge=0, le=1
    )
    sway_alert_threshold_cm: float = Field(default=RTC.SWAY_ALERT_THRESHOLD_CM, gt=0)

    # Clinical thresholds
    normal_area_min_cm2: float = Field(default=CC.NORMAL_AREA_MIN_CM2, ge=0)
    normal_area_max_cm2: float = Field(default=CC.NORMAL_AREA_MAX_CM2, gt=0)
    pathological_area_cm2: float = Field(default=CC.PATHOLOGICAL_AREA_CM2, gt=0)
    significant_change_percent: float = Field(
        default=CC.SIGNIFICANT_CHANGE_PERCENT, gt=0
    )
    trend_window: int = Field(default=CC.TREND_WINDOW, ge=1)

    @property
    def buffer_capacity(self) -> int:
        """Sliding buffer size in samples."""
        return int(self.buffer_seconds * self.sample_rate)

    @property
    def feature_window_samples(self) -> int:
        """Samples needed before a feature pass may run."""
        return int(self.feature_window_seconds * self.sample_rate)

    @property
    def respiratory_capacity(self) -> int:
        """Respiratory ring buffer size in samples."""
        return int(self.respiratory_buffer_seconds * self.sample_rate)


def get_config_path() -> Path:
    """Location of the user config file, ~/.bequalize/config.toml."""
    return DEFAULT_CONFIG_DIR / "config.toml"


def load_config() -> dict[str, Any]:
    """
    Read the whole config file.

    Returns:
        Parsed TOML tables. A missing file gives an empty dict, as does an
        unreadable or malformed one (after a warning is logged).
    """
    path = get_config_path()
    if not path.exists():
        return {}

    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config {path}: {e}")
        return {}


def save_config(config: dict[str, Any]) -> None:
    """
    Write the config file atomically.

    The TOML is written to a sibling .toml.tmp file which then replaces the
    real file, so a crash never leaves a half-written config behind.

    Args:
        config: Tables to write

    Raises:
        PermissionError: The config directory or file is not writable
    """
    path = get_config_path()

    try:
        os.makedirs(path.parent, exist_ok=True)
    except PermissionError as e:
        raise PermissionError(f"Config directory {path.parent} is not writable: {e}") from e

    staging = path.with_suffix(".toml.tmp")
    try:
        with staging.open("wb") as fh:
            tomli_w.dump(config, fh)
        os.replace(staging, path)
    except Exception:
        staging.unlink(missing_ok=True)
        raise


def set_processing_value(key: str, value: Any) -> ProcessingConfig:
    """
    Set one [processing] field in the config file.

    The value is validated against ProcessingConfig before anything is
    written.

    Args:
        key: ProcessingConfig field name
        value: New value

    Returns:
        The resulting validated configuration

    Raises:
        KeyError: If key is not a ProcessingConfig field
        ValidationError: If the value is invalid for that field
    """
    if key not in ProcessingConfig.model_fields:
        raise KeyError(key)

    config = load_config()
    section = dict(config.get(PROCESSING_SECTION, {}))
    section[key] = value

    validated = ProcessingConfig(**section)
    config[PROCESSING_SECTION] = {
        k: v for k, v in validated.model_dump(mode="json").items() if k in section
    }
    save_config(config)
    return validated


def unset_processing_value(key: str) -> None:
    """
    Remove one [processing] override from the config file.

    If the section becomes empty it is removed. If config becomes empty,
    deletes the config file.
    """
    config = load_config()
    section = config.get(PROCESSING_SECTION, {})

    if key in section:
        del section[key]

        if not section:
            del config[PROCESSING_SECTION]

        if not config:
            config_path = get_config_path()
            if config_path.exists():
                config_path.unlink()
        else:
            save_config(config)


def load_processing_config(**overrides: Any) -> ProcessingConfig:
    """
    Build the effective ProcessingConfig.

    Precedence: explicit overrides > config file [processing] > defaults.
    Invalid file content is reported and ignored.

    Args:
        **overrides: Field values that take precedence over the file

    Returns:
        Validated ProcessingConfig

    Raises:
        ValidationError: If the explicit overrides are invalid
    """
    section = load_config().get(PROCESSING_SECTION, {})
    if not isinstance(section, dict):
        logger.warning(f"Ignoring non-table [{PROCESSING_SECTION}] config entry")
        section = {}

    try:
        base = ProcessingConfig(**section)
    except ValidationError as e:
        logger.warning(f"Invalid [{PROCESSING_SECTION}] config, using defaults: {e}")
        base = ProcessingConfig()

    if not overrides:
        return base
    return ProcessingConfig(**{**base.model_dump(), **overrides})
