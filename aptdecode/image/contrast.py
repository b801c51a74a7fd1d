"""Global contrast stretch to 8-bit grey levels."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

import numpy as np

from aptdecode.apt.types import TelemetryFrame

CONTRAST_MODES = ("percent", "minmax", "telemetry")
DEFAULT_PERCENTILES = (1.0, 99.0)


def stretch(values: np.ndarray, low: float, high: float) -> np.ndarray:
    """Map [low, high] linearly onto 0..255, clipping outside; flat input maps to 0."""
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0 or not high > low:
        return np.zeros(values.shape, dtype=np.uint8)
    scaled = np.clip((values - low) / (high - low), 0.0, 1.0)
    return np.round(scaled * 255.0).astype(np.uint8)


def percent_levels(values: np.ndarray, percentiles: Tuple[float, float] = DEFAULT_PERCENTILES) -> Tuple[float, float]:
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return 0.0, 0.0
    low, high = np.percentile(values, percentiles)
    return float(low), float(high)


def minmax_levels(values: np.ndarray) -> Tuple[float, float]:
    values = np.asarray(values, dtype=np.float64)
    if values.size == 0:
        return 0.0, 0.0
    return float(values.min()), float(values.max())


def telemetry_levels(frames: Iterable[Optional[TelemetryFrame]]) -> Optional[Tuple[float, float]]:
    """Black and white levels averaged over the located frames, if any."""
    found = [frame for frame in frames if frame is not None]
    if not found:
        return None
    black = float(np.mean([frame.black for frame in found]))
    white = float(np.mean([frame.white for frame in found]))
    if not white > black:
        return None
    return black, white
