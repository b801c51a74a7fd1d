"""Exception hierarchy shared by the DSP core and the I/O wrappers."""

from __future__ import annotations

from typing import Optional


class APTError(Exception):
    """Base class for every failure raised by aptdecode.

    ``stage`` names the pipeline stage (or I/O step) that failed and
    ``parameter`` the offending setting, when there is one.
    """

    default_stage = "decode"

    def __init__(self, message: str, *, stage: Optional[str] = None, parameter: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage
        self.parameter = parameter

    def __str__(self) -> str:
        text = f"{self.stage}: {self.message}"
        if self.parameter:
            text += f" ({self.parameter})"
        return text


class ConfigError(APTError):
    """Invalid profile or filter specification, raised before any processing."""

    default_stage = "config"


class ResampleError(APTError):
    """Empty input or degenerate rate ratio."""

    default_stage = "resample"


class DemodulationError(APTError):
    """Empty or zero-energy input to the envelope detector."""

    default_stage = "demodulate"


class InputError(APTError):
    """Recording could not be read."""

    default_stage = "input"


class OutputError(APTError):
    """Image or WAV could not be written."""

    default_stage = "output"
