"""AM envelope detection with an FFT Hilbert transform."""

from __future__ import annotations

from typing import Optional

import numpy as np
from scipy import fft as sp_fft

from aptdecode.apt.constants import ENVELOPE_CUTOFF_HZ, ENVELOPE_DELTA_HZ
from aptdecode.apt.types import Signal
from aptdecode.util.errors import DemodulationError
from aptdecode.util.logging import get_logger

from .blocks import fir_filter
from .filters import FilterBank, FilterSpec

logger = get_logger(__name__)


def analytic_signal(samples: np.ndarray, workers: int = 1) -> np.ndarray:
    """Complex analytic signal of a real sequence, same length as the input."""
    x = np.asarray(samples, dtype=np.float64)
    n = x.size
    if n == 0:
        return np.zeros(0, dtype=np.complex128)
    nfft = sp_fft.next_fast_len(n, real=False)
    spectrum = sp_fft.fft(x, nfft, workers=workers)
    h = np.zeros(nfft, dtype=np.float64)
    if nfft % 2 == 0:
        h[0] = h[nfft // 2] = 1.0
        h[1 : nfft // 2] = 2.0
    else:
        h[0] = 1.0
        h[1 : (nfft + 1) // 2] = 2.0
    return sp_fft.ifft(spectrum * h, workers=workers)[:n]


def envelope_filter_spec(rate: int, atten: float) -> FilterSpec:
    return FilterSpec.from_hz(ENVELOPE_CUTOFF_HZ, ENVELOPE_DELTA_HZ, atten, rate)


def demodulate(
    signal: Signal,
    atten: float,
    *,
    bank: Optional[FilterBank] = None,
    workers: int = 1,
) -> Signal:
    """Return the low-passed AM envelope of ``signal`` at the same rate."""
    x = signal.samples
    if x.size == 0:
        raise DemodulationError("input signal is empty", parameter="samples")
    if not np.all(np.isfinite(x)):
        raise DemodulationError("input signal contains non-finite samples", parameter="samples")
    if not np.any(x):
        raise DemodulationError("input signal has zero energy", parameter="samples")

    taps = (bank or FilterBank()).get(envelope_filter_spec(signal.rate, atten))
    magnitude = np.abs(analytic_signal(x, workers=workers))
    envelope = fir_filter(magnitude, taps.taps, workers=workers)
    logger.debug("Envelope filtered with %d taps at %d Hz", len(taps), signal.rate)
    return Signal(envelope, signal.rate)
