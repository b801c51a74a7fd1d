"""Telemetry wedge frame location.

Each channel's telemetry column repeats a 128-line frame of sixteen 8-line
wedges. Wedges 1..8 step through 1/8..8/8 of full scale and wedge 9 is zero
modulation, so the first nine wedges form a known staircase that can be
located by correlation against the per-row telemetry series.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from aptdecode.apt.constants import REFERENCE_WEDGES, TELEMETRY_FRAME_LINES, WEDGE_COUNT, WEDGE_LINES
from aptdecode.apt.types import TelemetryFrame

MIN_FRAME_SCORE = 0.9


def reference_staircase() -> np.ndarray:
    levels = np.append(np.arange(1, 9, dtype=np.float64) / 8.0, 0.0)
    return np.repeat(levels, WEDGE_LINES)


def wedge_means(series: np.ndarray, start: int) -> np.ndarray:
    """Mean of the central rows of each of the 16 wedges from ``start``."""
    values = np.asarray(series, dtype=np.float64)
    means = np.empty(WEDGE_COUNT, dtype=np.float64)
    for i in range(WEDGE_COUNT):
        lo = start + i * WEDGE_LINES + 1
        means[i] = float(np.mean(values[lo : lo + WEDGE_LINES - 2]))
    return means


def find_frame(series: np.ndarray, channel: str, min_score: float = MIN_FRAME_SCORE) -> Optional[TelemetryFrame]:
    """Locate the best-matching complete telemetry frame, or None."""
    values = np.asarray(series, dtype=np.float64)
    rows = values.size
    if rows < TELEMETRY_FRAME_LINES:
        return None

    reference = reference_staircase()
    reference = reference - reference.mean()
    ref_norm = float(np.linalg.norm(reference))
    k = REFERENCE_WEDGES * WEDGE_LINES

    best_row, best_score = -1, -np.inf
    for start in range(0, rows - TELEMETRY_FRAME_LINES + 1):
        window = values[start : start + k]
        centred = window - window.mean()
        norm = float(np.linalg.norm(centred))
        if norm <= 0.0:
            continue
        score = float(np.dot(centred, reference)) / (norm * ref_norm)
        if score > best_score:
            best_row, best_score = start, score

    if best_row < 0 or best_score < min_score:
        return None
    wedges = wedge_means(values, best_row)
    return TelemetryFrame(channel=channel, start_row=best_row, wedges=tuple(float(w) for w in wedges))
