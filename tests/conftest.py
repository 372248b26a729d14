"""Pytest configuration and fixtures for Bequalize tests."""

import pytest

from bequalize.config import ProcessingConfig
from tests.helpers.synthetic_data import (
    generate_breathing_signal,
    generate_sensor_samples,
    generate_sway_orientations,
)


def pytest_configure(config):
    """Register custom test markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests that do not require external dependencies"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests combining multiple components"
    )
    config.addinivalue_line(
        "markers", "cli: Tests that drive the command-line interface"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take significant time (>5 seconds)"
    )


@pytest.fixture(autouse=True)
def isolated_config_dir(tmp_path, monkeypatch):
    """Point the config file and log directory at a per-test temp directory."""
    config_dir = tmp_path / "bequalize-home"
    monkeypatch.setattr("bequalize.config.DEFAULT_CONFIG_DIR", config_dir)
    monkeypatch.setattr("bequalize.logging_config.DEFAULT_LOG_DIR", config_dir / "logs")
    # Each CLI invocation binds its handlers to this test's streams and log dir
    monkeypatch.setattr("bequalize.logging_config._logging_configured", False)
    return config_dir


@pytest.fixture
def processing_config():
    """Default processing configuration."""
    return ProcessingConfig()


@pytest.fixture
def steady_orientations():
    """10 s of gentle, roughly circular sway at 50 Hz."""
    return generate_sway_orientations(duration_s=10.0, amplitude_deg=1.0)


@pytest.fixture
def breathing_signal():
    """20 s of 15 bpm breathing on the stretch channel."""
    return generate_breathing_signal(duration_s=20.0, rate_bpm=15.0)


@pytest.fixture
def sensor_stream():
    """10 s of packets with sway and 15 bpm breathing."""
    return generate_sensor_samples(duration_s=10.0, sway_deg=1.0, breathing_rate_bpm=15.0)
