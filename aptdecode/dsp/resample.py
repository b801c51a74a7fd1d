"""Rational L/M sample-rate conversion."""

from __future__ import annotations

import math
from fractions import Fraction
from typing import Optional, Tuple

import numpy as np
from scipy.signal import upfirdn

from aptdecode.apt.profile import Profile
from aptdecode.apt.types import Signal
from aptdecode.util.errors import ResampleError
from aptdecode.util.logging import get_logger
from aptdecode.util.math import ceil_div

from . import blocks
from .filters import FilterBank, FilterSpec, FilterTaps

logger = get_logger(__name__)

MAX_RESAMPLE_FACTOR = 20000
RATE_TOLERANCE = 1e-4


def rational_factors(rate_in: int, rate_out: int, max_factor: int = MAX_RESAMPLE_FACTOR) -> Tuple[int, int]:
    """Return (L, M) with rate_out / rate_in == L / M, approximated if needed."""
    if rate_in <= 0 or rate_out <= 0:
        raise ResampleError(f"sample rates must be positive, got {rate_in} -> {rate_out}", parameter="rate")
    rate_in, rate_out = int(rate_in), int(rate_out)
    g = math.gcd(rate_in, rate_out)
    up, down = rate_out // g, rate_in // g
    if up <= max_factor and down <= max_factor:
        return up, down

    ratio = Fraction(rate_out, rate_in).limit_denominator(max_factor)
    up, down = ratio.numerator, ratio.denominator
    if up < 1 or up > max_factor or down > max_factor:
        raise ResampleError(
            f"cannot express {rate_in} -> {rate_out} Hz with factors up to {max_factor}",
            parameter="rate",
        )
    error = abs(rate_in * up / down - rate_out) / rate_out
    if error > RATE_TOLERANCE:
        raise ResampleError(
            f"best ratio {up}/{down} misses {rate_out} Hz by {error:.2e}",
            parameter="rate",
        )
    logger.warning("Resample ratio %d -> %d Hz approximated as %d/%d (error %.2e)", rate_in, rate_out, up, down, error)
    return up, down


def decode_filter_spec(rate_in: int, rate_out: int, up: int, profile: Profile) -> FilterSpec:
    """Anti-alias filter for the decode path, at the upsampled rate."""
    cutoff_hz = min(float(profile.resample_cutout), min(rate_in, rate_out) / 2.0)
    return FilterSpec.from_hz(cutoff_hz, profile.resample_delta_freq, profile.resample_atten, up * rate_in)


def wav_filter_spec(up: int, down: int, profile: Profile) -> FilterSpec:
    """Filter for WAV conversion; widths are fractions of the narrower band."""
    band = 1.0 / max(up, down)
    delta = float(profile.wav_resample_delta_freq)
    return FilterSpec((1.0 - delta / 2.0) * band, delta * band, float(profile.wav_resample_atten))


def edge_samples(taps: FilterTaps, down: int) -> int:
    """Output samples at each end that carry filter transients."""
    return ceil_div(taps.half_len, max(1, down))


def resample_with_taps(signal: Signal, rate_out: int, up: int, down: int, taps: FilterTaps, workers: int = 1) -> Signal:
    """Polyphase L/M conversion with the filter's group delay removed.

    Output sample n lines up with input time n / rate_out; the output holds
    ceil(len * L / M) samples and the signal is taken as zero outside its
    extent.
    """
    x = signal.samples
    if x.size == 0:
        raise ResampleError("input signal is empty", parameter="samples")
    if up == 1 and down == 1:
        return Signal(x.copy(), rate_out)

    # zero stuffing divides the passband gain by L
    h = np.asarray(taps.taps, dtype=np.float64) * up
    half = taps.half_len
    pad = (-half) % down
    if pad:
        h = np.concatenate([np.zeros(pad), h])
    skip = (half + pad) // down
    n_out = ceil_div(x.size * up, down)

    size = blocks.block_size_for(down)
    starts = blocks.block_starts(x.size, multiple=down)

    def _block(start: int) -> np.ndarray:
        return upfirdn(h, x[start : start + size], up=up, down=down)

    pieces = blocks.run_blocks(_block, starts, workers)
    offsets = [start * up // down for start in starts]
    full = blocks.overlap_add(pieces, offsets, skip + n_out)
    return Signal(full[skip:], rate_out)


def resample(
    signal: Signal,
    rate_out: int,
    *,
    cutoff_hz: float,
    delta_hz: float,
    atten: float,
    workers: int = 1,
    bank: Optional[FilterBank] = None,
    max_factor: int = MAX_RESAMPLE_FACTOR,
) -> Signal:
    """Convert ``signal`` to ``rate_out`` behind a low-pass at ``cutoff_hz``."""
    if len(signal) == 0:
        raise ResampleError("input signal is empty", parameter="samples")
    up, down = rational_factors(signal.rate, rate_out, max_factor)
    if up == 1 and down == 1:
        return Signal(signal.samples.copy(), rate_out)
    spec = FilterSpec.from_hz(cutoff_hz, delta_hz, atten, up * signal.rate)
    taps = (bank or FilterBank()).get(spec)
    return resample_with_taps(signal, rate_out, up, down, taps, workers)


def resample_wav(signal: Signal, rate_out: int, profile: Profile, workers: int = 1) -> Signal:
    """Rate conversion for saved audio, using the profile's ``wav_*`` settings."""
    if len(signal) == 0:
        raise ResampleError("input signal is empty", parameter="samples")
    up, down = rational_factors(signal.rate, rate_out)
    if up == 1 and down == 1:
        return Signal(signal.samples.copy(), rate_out)
    taps = FilterBank().get(wav_filter_spec(up, down, profile))
    logger.info("Resampling WAV %d -> %d Hz (L=%d M=%d, %d taps)", signal.rate, rate_out, up, down, len(taps))
    return resample_with_taps(signal, rate_out, up, down, taps, workers)
