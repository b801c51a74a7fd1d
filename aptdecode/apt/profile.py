"""Decode profile: the rate and filter settings for one run."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict

from aptdecode.apt.constants import MIN_WORK_RATE, PIXEL_RATE
from aptdecode.util.errors import ConfigError


@dataclass(frozen=True)
class Profile:
    name: str
    work_rate: int
    resample_atten: float
    resample_delta_freq: float
    resample_cutout: float
    demodulation_atten: float
    wav_resample_atten: float
    wav_resample_delta_freq: float

    def validate(self) -> "Profile":
        """Raise ConfigError naming the first invalid setting; return self otherwise."""
        if not isinstance(self.work_rate, int) or isinstance(self.work_rate, bool):
            raise ConfigError(f"work rate must be an integer, got {self.work_rate!r}", parameter="work_rate")
        if self.work_rate % PIXEL_RATE != 0:
            raise ConfigError(
                f"work rate {self.work_rate} Hz is not a multiple of the {PIXEL_RATE} Hz pixel rate",
                parameter="work_rate",
            )
        if self.work_rate < MIN_WORK_RATE:
            raise ConfigError(
                f"work rate {self.work_rate} Hz is below the minimum of {MIN_WORK_RATE} Hz",
                parameter="work_rate",
            )
        for key in ("resample_atten", "demodulation_atten", "wav_resample_atten"):
            value = getattr(self, key)
            if not _positive(value):
                raise ConfigError(f"attenuation must be positive, got {value!r} dB", parameter=key)
        if not _positive(self.resample_delta_freq):
            raise ConfigError(
                f"transition bandwidth must be positive, got {self.resample_delta_freq!r} Hz",
                parameter="resample_delta_freq",
            )
        if not _positive(self.resample_cutout) or self.resample_cutout >= self.work_rate / 2:
            raise ConfigError(
                f"cutout {self.resample_cutout!r} Hz must lie between 0 and {self.work_rate / 2:g} Hz",
                parameter="resample_cutout",
            )
        if not _positive(self.wav_resample_delta_freq) or self.wav_resample_delta_freq >= 1:
            raise ConfigError(
                f"wav transition bandwidth {self.wav_resample_delta_freq!r} must lie between 0 and 1",
                parameter="wav_resample_delta_freq",
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _positive(value: Any) -> bool:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return False
    return math.isfinite(number) and number > 0
