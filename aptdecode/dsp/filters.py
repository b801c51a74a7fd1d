"""Kaiser windowed-sinc FIR low-pass design.

Frequencies are fractions of the Nyquist frequency (fractions of pi radians
per sample); attenuations are positive decibels. The Kaiser window parameter
and length come from Kaiser's closed-form approximations; each design is
checked against its measured frequency response before it is returned.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
from scipy.signal import freqz, kaiser_beta as _scipy_kaiser_beta
from scipy.signal.windows import kaiser

from aptdecode.util.errors import ConfigError
from aptdecode.util.logging import get_logger
from aptdecode.util.math import db20

logger = get_logger(__name__)

DESIGN_STEP_DB = 0.5
MAX_DESIGN_MARGIN_DB = 6.0
MIN_RESPONSE_POINTS = 8192


@dataclass(frozen=True)
class FilterSpec:
    """Low-pass target: cutoff and transition width relative to Nyquist."""

    cutoff: float
    delta: float
    atten: float

    @classmethod
    def from_hz(cls, cutoff_hz: float, delta_hz: float, atten: float, rate: float) -> "FilterSpec":
        if rate <= 0:
            raise ConfigError("sample rate must be positive", stage="filters", parameter="rate")
        nyquist = float(rate) / 2.0
        return cls(float(cutoff_hz) / nyquist, float(delta_hz) / nyquist, float(atten))

    @property
    def stopband_edge(self) -> float:
        return self.cutoff + self.delta / 2.0

    def validate(self) -> "FilterSpec":
        if not self.delta > 0:
            raise ConfigError(f"transition bandwidth must be positive, got {self.delta}", stage="filters", parameter="delta")
        if not self.cutoff > 0:
            raise ConfigError(f"cutoff must be positive, got {self.cutoff}", stage="filters", parameter="cutoff")
        if not self.atten > 0:
            raise ConfigError(f"attenuation must be positive, got {self.atten} dB", stage="filters", parameter="atten")
        if self.stopband_edge >= 1.0:
            raise ConfigError(
                f"stopband edge {self.stopband_edge:.4f} reaches Nyquist (cutoff {self.cutoff:.4f}, delta {self.delta:.4f})",
                stage="filters",
                parameter="cutoff",
            )
        return self


@dataclass(frozen=True, eq=False)
class FilterTaps:
    """Odd-length, symmetric low-pass coefficients for one FilterSpec."""

    spec: FilterSpec
    taps: np.ndarray
    beta: float
    design_atten: float
    achieved_atten: float

    def __len__(self) -> int:
        return int(self.taps.size)

    @property
    def half_len(self) -> int:
        """Group delay in samples."""
        return (self.taps.size - 1) // 2


def kaiser_beta(atten: float) -> float:
    """Kaiser window beta for a stopband attenuation in dB."""
    return float(_scipy_kaiser_beta(float(atten)))


def kaiser_length(atten: float, delta: float) -> int:
    """Odd filter length for ``atten`` dB over a ``delta`` transition band."""
    length = int(math.ceil((atten - 8.0) / (2.285 * math.pi * delta))) + 1
    if length % 2 == 0:
        length += 1
    return max(3, length)


def _windowed_sinc(cutoff: float, atten: float, delta: float) -> Tuple[np.ndarray, float]:
    beta = kaiser_beta(atten)
    length = kaiser_length(atten, delta)
    n = np.arange(length, dtype=np.float64) - (length - 1) / 2.0
    ideal = cutoff * np.sinc(cutoff * n)
    taps = ideal * kaiser(length, beta, sym=True)
    # exact symmetry regardless of libm rounding
    taps = 0.5 * (taps + taps[::-1])
    return taps, beta


def _response_points(length: int, delta: float) -> int:
    wanted = max(MIN_RESPONSE_POINTS, 16 * length, int(math.ceil(16.0 / delta)))
    return 1 << (wanted - 1).bit_length()


def stopband_attenuation(taps: np.ndarray, spec: FilterSpec) -> float:
    """Measured worst-case attenuation (dB) from the stopband edge to Nyquist."""
    taps = np.asarray(taps, dtype=np.float64)
    points = _response_points(taps.size, spec.delta)
    w, h = freqz(taps, worN=points)
    mask = (w / np.pi) >= spec.stopband_edge
    if not bool(np.any(mask)):
        return math.inf
    peak = float(np.max(np.abs(h[mask])))
    if peak <= 0.0:
        return math.inf
    return float(-db20(np.array([peak]))[0])


def design_lowpass(spec: FilterSpec) -> FilterTaps:
    """Design a Kaiser-windowed sinc low-pass filter meeting ``spec``.

    The design attenuation starts at the requested value and is raised in
    DESIGN_STEP_DB steps until the measured stopband meets the request, so
    the returned length is the smallest of that design sequence.
    """
    spec.validate()
    design_atten = spec.atten
    while design_atten <= spec.atten + MAX_DESIGN_MARGIN_DB + 1e-9:
        taps, beta = _windowed_sinc(spec.cutoff, design_atten, spec.delta)
        achieved = stopband_attenuation(taps, spec)
        if achieved >= spec.atten:
            taps.setflags(write=False)
            logger.debug(
                "Lowpass designed: cutoff=%.5f delta=%.5f atten=%.1fdB taps=%d beta=%.3f achieved=%.1fdB",
                spec.cutoff,
                spec.delta,
                spec.atten,
                taps.size,
                beta,
                achieved,
            )
            return FilterTaps(spec=spec, taps=taps, beta=beta, design_atten=design_atten, achieved_atten=achieved)
        design_atten += DESIGN_STEP_DB
    raise ConfigError(
        f"no Kaiser design reaches {spec.atten:.1f} dB for cutoff {spec.cutoff:.4f} and delta {spec.delta:.4f}",
        stage="filters",
        parameter="atten",
    )


class FilterBank:
    """Filter designs cached for the lifetime of one decode run."""

    def __init__(self) -> None:
        self._designs: Dict[FilterSpec, FilterTaps] = {}

    def get(self, spec: FilterSpec) -> FilterTaps:
        design = self._designs.get(spec)
        if design is None:
            design = design_lowpass(spec)
            self._designs[spec] = design
        return design

    def __len__(self) -> int:
        return len(self._designs)

    def __contains__(self, spec: object) -> bool:
        return spec in self._designs
