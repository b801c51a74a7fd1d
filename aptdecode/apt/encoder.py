"""Synthetic APT transmissions for tests and receiver checks.

``build_frame`` lays out video lines (sync, space/minute marker, image,
telemetry wedges for each channel) at 8-bit levels; ``modulate`` turns the
raster into a 2400 Hz AM subcarrier at an arbitrary sample rate.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from aptdecode.apt.constants import (
    CARRIER_FREQ,
    IMAGE_WIDTH,
    LINE_PIXELS,
    PIXEL_RATE,
    SPACE_WIDTH,
    SYNC_A_PIXELS,
    SYNC_B_PIXELS,
    TELEMETRY_FRAME_LINES,
    TELEMETRY_WIDTH,
    WEDGE_LINES,
)
from aptdecode.apt.types import Signal

LOW = 11
HIGH = 244

# wedge indices (1..8) sent in blocks 10..15, then the sensor id block
CALIBRATION_WEDGES = (2, 5, 7, 3, 6, 1)
SENSOR_ID_A = 3
SENSOR_ID_B = 4

LINES_PER_MINUTE = 120


def wedge_level(k: int) -> int:
    """Video level of wedge ``k`` eighths of full scale (0 is wedge 9)."""
    if not 0 <= k <= 8:
        raise ValueError(f"wedge index {k} outside 0..8")
    return int(round(LOW + (k / 8.0) * (HIGH - LOW)))


def telemetry_blocks(sensor_id: int) -> np.ndarray:
    """Levels of the 16 telemetry blocks of one channel."""
    if not 1 <= sensor_id <= 6:
        raise ValueError(f"sensor id wedge {sensor_id} outside 1..6")
    indices = list(range(1, 9)) + [0] + list(CALIBRATION_WEDGES) + [sensor_id]
    return np.array([wedge_level(k) for k in indices], dtype=np.uint8)


def _sync_field(pixels: str, height: int) -> np.ndarray:
    line = np.array([HIGH if c == "1" else LOW for c in pixels], dtype=np.uint8)
    return np.repeat(line[np.newaxis, :], height, axis=0)


def _space_fields(height: int, start_line: int):
    space_a = np.full((height, SPACE_WIDTH), LOW, dtype=np.uint8)
    space_b = np.full((height, SPACE_WIDTH), HIGH, dtype=np.uint8)
    phase = (np.arange(height) + start_line) % LINES_PER_MINUTE
    space_b[phase < 2] = LOW
    space_a[(phase >= 2) & (phase < 4)] = HIGH
    return space_a, space_b


def _telemetry_field(height: int, sensor_id: int, start_line: int) -> np.ndarray:
    blocks = telemetry_blocks(sensor_id)
    within = (np.arange(height) + start_line) % TELEMETRY_FRAME_LINES
    column = blocks[within // WEDGE_LINES]
    return np.repeat(column[:, np.newaxis], TELEMETRY_WIDTH, axis=1)


def build_frame(image_a: np.ndarray, image_b: Optional[np.ndarray] = None, *, start_line: int = 0) -> np.ndarray:
    """Assemble a (rows, 2080) uint8 APT raster from two (rows, 909) images."""
    image_a = np.asarray(image_a, dtype=np.uint8)
    if image_a.ndim != 2 or image_a.shape[1] != IMAGE_WIDTH:
        raise ValueError(f"image A must be (rows, {IMAGE_WIDTH}), got {image_a.shape}")
    height = image_a.shape[0]
    if image_b is None:
        image_b = np.zeros_like(image_a)
    image_b = np.asarray(image_b, dtype=np.uint8)
    if image_b.shape != image_a.shape:
        raise ValueError(f"image B shape {image_b.shape} differs from image A {image_a.shape}")

    space_a, space_b = _space_fields(height, start_line)
    frame = np.hstack(
        [
            _sync_field(SYNC_A_PIXELS, height),
            space_a,
            image_a,
            _telemetry_field(height, SENSOR_ID_A, start_line),
            _sync_field(SYNC_B_PIXELS, height),
            space_b,
            image_b,
            _telemetry_field(height, SENSOR_ID_B, start_line),
        ]
    )
    return frame


def video_levels(frame: np.ndarray, rate: int) -> np.ndarray:
    """Pixel stream held for each sample at ``rate``, scaled to 0..1."""
    pixels = np.asarray(frame, dtype=np.float64).reshape(-1) / 255.0
    count = (pixels.size * int(rate)) // PIXEL_RATE
    index = (np.arange(count, dtype=np.int64) * PIXEL_RATE) // int(rate)
    return pixels[index]


def modulate(
    frame: np.ndarray,
    rate: int,
    *,
    carrier: float = CARRIER_FREQ,
    noise: float = 0.0,
    seed: Optional[int] = None,
    phase: float = 0.0,
) -> Signal:
    """AM-modulate ``frame`` onto the subcarrier, optionally adding white noise."""
    levels = video_levels(frame, rate)
    t = np.arange(levels.size, dtype=np.float64) / float(rate)
    samples = levels * np.sin(2.0 * np.pi * carrier * t + phase)
    if noise > 0:
        rng = np.random.default_rng(seed)
        samples = samples + rng.normal(0.0, noise, samples.size)
    return Signal(samples, int(rate))


def gradient_image(rows: int, width: int = IMAGE_WIDTH) -> np.ndarray:
    """Smooth horizontal ramp with a slow per-row shift, handy for round trips."""
    cols = np.linspace(0.0, 1.0, width)
    shift = np.linspace(0.0, 0.25, max(rows, 1))[:rows, np.newaxis]
    base = np.clip(cols[np.newaxis, :] * 0.75 + shift, 0.0, 1.0)
    return np.round(LOW + base * (HIGH - LOW)).astype(np.uint8)
