"""WAV file reading and writing."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import numpy as np
from scipy.io import wavfile

from aptdecode.apt.types import Signal
from aptdecode.util.errors import InputError, OutputError
from aptdecode.util.logging import get_logger

logger = get_logger(__name__)


def _to_float(data: np.ndarray) -> np.ndarray:
    if data.dtype == np.uint8:
        return (data.astype(np.float64) - 128.0) / 128.0
    if np.issubdtype(data.dtype, np.integer):
        return data.astype(np.float64) / float(-np.iinfo(data.dtype).min)
    return data.astype(np.float64)


def read_wav(path: str | Path, channel: Optional[int] = None) -> Signal:
    """Load a WAV file as a mono Signal scaled to roughly [-1, 1].

    Multi-channel files are averaged unless ``channel`` selects one.
    """
    try:
        rate, data = wavfile.read(str(path))
    except FileNotFoundError as exc:
        raise InputError(f"no such file: {path}", parameter="input") from exc
    except (OSError, ValueError) as exc:
        raise InputError(f"cannot read WAV {path}: {exc}", parameter="input") from exc

    samples = _to_float(np.asarray(data))
    if samples.ndim == 2:
        count = samples.shape[1]
        if channel is None:
            samples = samples.mean(axis=1)
        elif 0 <= channel < count:
            samples = samples[:, channel]
        else:
            raise InputError(f"channel {channel} out of range for {count}-channel file", parameter="channel")
    elif channel not in (None, 0):
        raise InputError(f"channel {channel} out of range for mono file", parameter="channel")
    if samples.size == 0:
        raise InputError(f"WAV file {path} holds no samples", parameter="input")

    logger.info("Loaded %s: %d samples at %d Hz (%.1f s)", path, samples.size, rate, samples.size / float(rate))
    return Signal(samples, int(rate))


def write_wav(path: str | Path, signal: Signal) -> Path:
    """Write ``signal`` as 16-bit PCM, peak-normalized when it would clip."""
    samples = signal.samples
    peak = float(np.max(np.abs(samples))) if samples.size else 0.0
    scale = 1.0 / peak if peak > 1.0 else 1.0
    pcm = np.round(np.clip(samples * scale, -1.0, 1.0) * 32767.0).astype(np.int16)
    target = Path(path)
    try:
        wavfile.write(str(target), int(signal.rate), pcm)
    except OSError as exc:
        raise OutputError(f"cannot write WAV {target}: {exc}", parameter="output") from exc
    logger.info("Wrote %s: %d samples at %d Hz", target, pcm.size, signal.rate)
    return target
