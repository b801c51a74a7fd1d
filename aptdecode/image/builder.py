"""Turn a synchronized envelope into an 8-bit APT image."""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from aptdecode.apt.constants import (
    DEFAULT_DRIFT,
    LINE_PIXELS,
    LINES_PER_SECOND,
    TELEMETRY_A_COLUMNS,
    TELEMETRY_B_COLUMNS,
    TELEMETRY_MARGIN,
)
from aptdecode.apt.telemetry import find_frame
from aptdecode.apt.types import Image, ImageQuality, LineMark, Signal, TelemetryFrame
from aptdecode.util.errors import ConfigError
from aptdecode.util.logging import get_logger

from .contrast import (
    CONTRAST_MODES,
    DEFAULT_PERCENTILES,
    minmax_levels,
    percent_levels,
    stretch,
    telemetry_levels,
)

logger = get_logger(__name__)


def build_rows(envelope: np.ndarray, marks: Sequence[LineMark]) -> np.ndarray:
    """Sample each line between consecutive marks at the 2080 pixel centres."""
    values = np.asarray(envelope, dtype=np.float64)
    if len(marks) < 2 or values.size == 0:
        return np.zeros((0, LINE_PIXELS), dtype=np.float64)
    offsets = np.array([mark.offset for mark in marks], dtype=np.float64)
    starts = offsets[:-1]
    steps = np.diff(offsets) / LINE_PIXELS
    centres = np.arange(LINE_PIXELS, dtype=np.float64) + 0.5
    positions = starts[:, None] + centres[None, :] * steps[:, None] - 0.5
    sampled = np.interp(positions.ravel(), np.arange(values.size, dtype=np.float64), values)
    return sampled.reshape(starts.size, LINE_PIXELS)


def telemetry_columns(rows: np.ndarray, margin: int = TELEMETRY_MARGIN) -> np.ndarray:
    """Per-row mean of the centre of each channel's telemetry column."""
    rows = np.asarray(rows, dtype=np.float64)
    out = np.zeros((rows.shape[0], 2), dtype=np.float64)
    if rows.shape[0] == 0:
        return out
    for i, cols in enumerate((TELEMETRY_A_COLUMNS, TELEMETRY_B_COLUMNS)):
        out[:, i] = rows[:, cols.start + margin : cols.stop - margin].mean(axis=1)
    return out


def assess_quality(marks: Sequence[LineMark], period: int, tolerance: int) -> ImageQuality:
    row_marks = list(marks[:-1])
    if not row_marks:
        return ImageQuality()
    detected = [mark.score for mark in row_marks if not mark.estimated]
    spans = np.diff([mark.offset for mark in marks])
    irregular = int(np.count_nonzero(np.abs(spans - period) > tolerance))
    return ImageQuality(
        lines=len(row_marks),
        estimated_lines=sum(1 for mark in row_marks if mark.estimated),
        low_confidence_lines=sum(1 for mark in row_marks if mark.low_confidence),
        irregular_lines=irregular,
        min_score=float(min(detected)) if detected else 0.0,
        max_score=float(max(detected)) if detected else 0.0,
        mean_score=float(np.mean(detected)) if detected else 0.0,
    )


class ImageBuilder:
    """Builds one Image per envelope; options are fixed per builder."""

    def __init__(
        self,
        rate: int,
        *,
        contrast: str = "percent",
        rotate: bool = False,
        drift: float = DEFAULT_DRIFT,
        percentiles: Tuple[float, float] = DEFAULT_PERCENTILES,
    ) -> None:
        if contrast not in CONTRAST_MODES:
            raise ConfigError(
                f"unknown contrast mode {contrast!r}; expected one of {', '.join(CONTRAST_MODES)}",
                stage="image",
                parameter="contrast",
            )
        low, high = percentiles
        if not 0.0 <= low < high <= 100.0:
            raise ConfigError(f"invalid percentiles {percentiles!r}", stage="image", parameter="percentiles")
        self.rate = int(rate)
        self.period = self.rate // LINES_PER_SECOND
        self.tolerance = max(1, int(round(drift * self.period)))
        self.contrast = contrast
        self.rotate = bool(rotate)
        self.percentiles = (float(low), float(high))

    def _levels(self, rows: np.ndarray, frames: Dict[str, Optional[TelemetryFrame]]) -> Tuple[str, float, float]:
        if self.contrast == "telemetry":
            levels = telemetry_levels(frames.values())
            if levels is not None:
                return "telemetry", levels[0], levels[1]
            logger.warning("No telemetry frame found; falling back to percentile contrast")
            return ("percent",) + percent_levels(rows, self.percentiles)
        if self.contrast == "minmax":
            return ("minmax",) + minmax_levels(rows)
        return ("percent",) + percent_levels(rows, self.percentiles)

    def build(self, envelope: Signal, marks: Sequence[LineMark]) -> Image:
        rows = build_rows(envelope.samples, marks)
        telemetry = telemetry_columns(rows)
        frames: Dict[str, Optional[TelemetryFrame]] = {
            "A": find_frame(telemetry[:, 0], "A"),
            "B": find_frame(telemetry[:, 1], "B"),
        }
        mode, low, high = self._levels(rows, frames)
        pixels = stretch(rows, low, high)
        if self.rotate:
            pixels = pixels[::-1, ::-1]
            telemetry = telemetry[::-1]
        quality = assess_quality(list(marks), self.period, self.tolerance)
        logger.info(
            "Image built: %d lines (%d estimated), contrast=%s [%.4f, %.4f]",
            quality.lines,
            quality.estimated_lines,
            mode,
            low,
            high,
            extra={"stage": "image", "lines": quality.lines},
        )
        return Image(pixels=pixels, telemetry=telemetry, quality=quality, contrast=mode, telemetry_frames=frames)
