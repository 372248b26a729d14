"""
Bequalize: postural-stability and respiratory analysis core

Turns 50 Hz inertial and stretch-sensor samples into sway, balance and
breathing metrics, and compares pre/post intervention test sessions.
"""

from importlib import import_module
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from typing import Any

try:
    __version__ = get_version("bequalize")
except PackageNotFoundError:
    __version__ = "dev"

_LAZY_ATTRIBUTES = {
    "OrientationFusion": "bequalize.analysis.fusion",
    "PosturalFeatureExtractor": "bequalize.analysis.postural",
    "RealTimeSlidingProcessor": "bequalize.analysis.realtime",
    "RespiratorySignalProcessor": "bequalize.analysis.respiratory",
    "SessionComparator": "bequalize.analysis.comparison",
}

__all__ = ["__version__", *_LAZY_ATTRIBUTES]


def __getattr__(name: str) -> Any:
    """Lazy load the processing classes so importing the package stays cheap."""
    if name in _LAZY_ATTRIBUTES:
        return getattr(import_module(_LAZY_ATTRIBUTES[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
