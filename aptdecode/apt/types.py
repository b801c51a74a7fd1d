"""Dataclasses shared across the resampler, detector, image and pipeline layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from aptdecode.apt.constants import (
    IMAGE_A_COLUMNS,
    IMAGE_B_COLUMNS,
    PIXEL_RATE,
    SYNC_A_PIXELS,
    SYNC_B_PIXELS,
)


def _frozen_array(values, dtype) -> np.ndarray:
    arr = np.asarray(values, dtype=dtype)
    if arr.flags.writeable:
        arr = arr.copy()
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class Signal:
    """Real-valued samples at an integer sample rate. Never mutated in place."""

    samples: np.ndarray
    rate: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "samples", _frozen_array(self.samples, np.float64).reshape(-1))
        object.__setattr__(self, "rate", int(self.rate))

    def __len__(self) -> int:
        return int(self.samples.size)

    @property
    def duration_s(self) -> float:
        return len(self) / float(self.rate) if self.rate > 0 else 0.0


@dataclass(frozen=True)
class SyncPattern:
    """Sync train template for one channel, one character per pixel."""

    channel: str
    pixels: str

    @classmethod
    def for_channel(cls, channel: str) -> "SyncPattern":
        key = channel.upper()
        if key == "A":
            return cls("A", SYNC_A_PIXELS)
        if key == "B":
            return cls("B", SYNC_B_PIXELS)
        raise ValueError(f"unknown APT channel {channel!r}")

    def levels(self) -> np.ndarray:
        return np.array([1.0 if c == "1" else 0.0 for c in self.pixels])

    def at_rate(self, rate: int) -> np.ndarray:
        """Zero-mean template with each pixel repeated ``rate / 4160`` times."""
        if rate % PIXEL_RATE:
            raise ValueError(f"rate {rate} is not a multiple of {PIXEL_RATE}")
        template = np.repeat(self.levels(), rate // PIXEL_RATE)
        return template - template.mean()


@dataclass(frozen=True)
class LineMark:
    """Start of one line in the envelope."""

    offset: int
    score: float
    estimated: bool = False
    threshold: float = 0.5

    @property
    def low_confidence(self) -> bool:
        return self.estimated or not (self.score >= self.threshold)


@dataclass(frozen=True)
class TelemetryFrame:
    channel: str
    start_row: int
    wedges: Tuple[float, ...]

    @property
    def black(self) -> float:
        """Wedge 9, zero modulation."""
        return self.wedges[8]

    @property
    def white(self) -> float:
        """Wedge 8, full-scale modulation."""
        return self.wedges[7]


@dataclass(frozen=True)
class ImageQuality:
    lines: int = 0
    estimated_lines: int = 0
    low_confidence_lines: int = 0
    irregular_lines: int = 0
    min_score: float = 0.0
    max_score: float = 0.0
    mean_score: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "lines": self.lines,
            "estimated_lines": self.estimated_lines,
            "low_confidence_lines": self.low_confidence_lines,
            "irregular_lines": self.irregular_lines,
            "min_score": self.min_score,
            "max_score": self.max_score,
            "mean_score": self.mean_score,
        }


@dataclass(frozen=True, eq=False)
class Image:
    """Decoded raster with per-row telemetry and quality metadata."""

    pixels: np.ndarray
    telemetry: np.ndarray
    quality: ImageQuality
    contrast: str = "percent"
    telemetry_frames: Dict[str, Optional[TelemetryFrame]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "pixels", _frozen_array(self.pixels, np.uint8))
        object.__setattr__(self, "telemetry", _frozen_array(self.telemetry, np.float64))

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim == 2 else 0

    @property
    def channel_a(self) -> np.ndarray:
        return self.pixels[:, IMAGE_A_COLUMNS]

    @property
    def channel_b(self) -> np.ndarray:
        return self.pixels[:, IMAGE_B_COLUMNS]
