"""
Respiratory signal processing for the elastometer (stretch) channel.

This module low-pass filters the chest-belt stretch signal and derives
breathing rate, amplitude, inspiration:expiration ratio, regularity and a
signal quality score from detected breath peaks and valleys.
"""

import logging

from collections.abc import Iterable

import numpy as np

from scipy import signal

from bequalize.analysis.buffers import NumericRingBuffer
from bequalize.analysis.types import RespiratoryMetrics
from bequalize.constants import SAMPLE_RATE_HZ
from bequalize.constants import RespiratoryConstants as RC

logger = logging.getLogger(__name__)

__all__ = [
    "RespiratorySignalProcessor",
    "RespiratoryMetrics",
    "analyze_breathing",
    "moving_average",
    "find_peaks",
    "find_valleys",
]


def moving_average(values: np.ndarray, window: int) -> np.ndarray:
    """
    Trailing moving average; the first window-1 outputs average what exists.

    Args:
        values: Input signal
        window: Window length in samples (>= 1)

    Returns:
        Filtered signal of the same length
    """
    window = max(1, int(window))
    x = np.asarray(values, dtype=float)
    if x.size == 0:
        return x

    # Window sums are exact for integer input
    sums = np.convolve(x, np.ones(window))[: x.size]
    counts = np.minimum(np.arange(1, x.size + 1), window)
    return sums / counts


def find_peaks(values: np.ndarray, std_factor: float = RC.PEAK_STD_FACTOR) -> np.ndarray:
    """
    Local maxima above mean + std_factor * std.

    A flat-topped crest (equal neighbouring samples, common once integer
    stretch values are averaged) counts once, at its middle sample.
    """
    x = np.asarray(values, dtype=float)
    if x.size < 3:
        return np.array([], dtype=int)
    threshold = x.mean() + std_factor * x.std()
    peaks, _ = signal.find_peaks(x)
    return peaks[x[peaks] > threshold]


def find_valleys(values: np.ndarray, std_factor: float = RC.PEAK_STD_FACTOR) -> np.ndarray:
    """Local minima below mean - std_factor * std."""
    x = np.asarray(values, dtype=float)
    if x.size < 3:
        return np.array([], dtype=int)
    threshold = x.mean() - std_factor * x.std()
    valleys, _ = signal.find_peaks(-x)
    return valleys[x[valleys] < threshold]


def _breathing_rate(peaks: np.ndarray, sample_rate: float) -> float:
    if len(peaks) < 2:
        return RC.DEFAULT_RATE_BPM

    mean_interval = float(np.mean(np.diff(peaks)))
    if mean_interval <= 0:
        return RC.DEFAULT_RATE_BPM

    rate = 60.0 / (mean_interval / sample_rate)
    return float(np.clip(rate, RC.MIN_RATE_BPM, RC.MAX_RATE_BPM))


def _amplitude(filtered: np.ndarray, peaks: np.ndarray, valleys: np.ndarray) -> float:
    if len(peaks) == 0 or len(valleys) == 0:
        return 0.0
    return float(abs(filtered[peaks].mean() - filtered[valleys].mean()))


def _ie_ratio(peaks: np.ndarray, valleys: np.ndarray) -> float:
    if len(peaks) < 2 or len(valleys) < 2:
        return RC.DEFAULT_IE_RATIO

    cycles = min(len(peaks) - 1, len(valleys) - 1)
    inspiration = 0
    expiration = 0
    for i in range(cycles):
        inspiration += abs(int(peaks[i]) - int(valleys[i]))
        expiration += abs(int(valleys[i + 1]) - int(peaks[i]))

    if cycles == 0 or expiration == 0:
        return RC.DEFAULT_IE_RATIO
    return inspiration / expiration


def _regularity(peaks: np.ndarray) -> float:
    if len(peaks) < RC.MIN_PEAKS_FOR_REGULARITY:
        return 0.0

    intervals = np.diff(peaks).astype(float)
    mean = intervals.mean()
    if mean <= 0:
        return 0.0
    cv = intervals.std() / mean
    return float(1.0 / (1.0 + cv))


def _signal_quality(filtered: np.ndarray) -> float:
    std = float(filtered.std())
    if std == 0:
        return 0.0
    snr = abs(float(filtered.mean())) / std
    return float(np.clip(snr / RC.SIGNAL_QUALITY_SCALE, 0.0, 1.0))


def analyze_breathing(
    values: np.ndarray,
    sample_rate: float = SAMPLE_RATE_HZ,
    cutoff_hz: float = RC.LOWPASS_CUTOFF_HZ,
    min_samples: int = RC.MIN_SAMPLES,
) -> RespiratoryMetrics:
    """
    Compute breathing metrics for a window of raw stretch values.

    Args:
        values: Raw elastometer values, oldest first
        sample_rate: Sample rate (Hz)
        cutoff_hz: Moving-average low-pass cutoff (Hz)
        min_samples: Below this many values, the zero record is returned

    Returns:
        RespiratoryMetrics; breathing_rate_bpm is within [5, 30] whenever
        enough samples were supplied
    """
    raw = np.asarray(values, dtype=float)
    if raw.size < min_samples:
        return RespiratoryMetrics()

    window = int(sample_rate / cutoff_hz)
    filtered = moving_average(raw, window)

    peaks = find_peaks(filtered)
    valleys = find_valleys(filtered)

    return RespiratoryMetrics(
        breathing_rate_bpm=_breathing_rate(peaks, sample_rate),
        amplitude=_amplitude(filtered, peaks, valleys),
        ie_ratio=_ie_ratio(peaks, valleys),
        regularity=_regularity(peaks),
        filtered_signal=filtered.tolist(),
        peak_indices=peaks.tolist(),
        valley_indices=valleys.tolist(),
        signal_quality=_signal_quality(filtered),
    )


class RespiratorySignalProcessor:
    """
    Rolling breathing analysis over the last 10 s of stretch values.

    Example:
        >>> processor = RespiratorySignalProcessor()
        >>> metrics = processor.process([s.stretch_value for s in samples])
        >>> if metrics.has_breathing:
        ...     print(f"{metrics.breathing_rate_bpm:.1f} bpm")
    """

    def __init__(
        self,
        sample_rate: float = SAMPLE_RATE_HZ,
        buffer_seconds: float = RC.BUFFER_SECONDS,
        cutoff_hz: float = RC.LOWPASS_CUTOFF_HZ,
    ):
        """
        Initialize the processor.

        Args:
            sample_rate: Stretch channel sample rate (Hz)
            buffer_seconds: Ring buffer length (seconds)
            cutoff_hz: Low-pass cutoff (Hz)
        """
        self.sample_rate = sample_rate
        self.cutoff_hz = cutoff_hz
        self.buffer = NumericRingBuffer(int(buffer_seconds * sample_rate))
        logger.info(
            f"RespiratorySignalProcessor initialized "
            f"({self.buffer.capacity} sample buffer, {cutoff_hz} Hz cutoff)"
        )

    def process(self, values: Iterable[float]) -> RespiratoryMetrics:
        """
        Append new stretch values and analyze the buffered window.

        Args:
            values: New raw stretch values in arrival order

        Returns:
            RespiratoryMetrics for the whole buffer (zero record while fewer
            than 100 values are buffered)
        """
        self.buffer.extend(values)
        metrics = analyze_breathing(
            self.buffer.to_array(), self.sample_rate, self.cutoff_hz
        )
        logger.debug(
            f"Respiratory pass: {len(self.buffer)} samples, "
            f"rate={metrics.breathing_rate_bpm:.1f} bpm"
        )
        return metrics

    def buffer_status(self) -> dict[str, float | int]:
        """Buffered sample count, capacity and covered duration."""
        return {
            "size": len(self.buffer),
            "capacity": self.buffer.capacity,
            "duration_s": len(self.buffer) / self.sample_rate,
        }

    def reset(self) -> None:
        """Drop all buffered values."""
        self.buffer.clear()
