"""Numeric helper functions used across DSP logic."""

import numpy as np


def db20(x: np.ndarray) -> np.ndarray:
    """Return 20 * log10(|x|) with floor to keep inputs positive."""
    return 20.0 * np.log10(np.maximum(np.abs(x), 1e-20))


def ceil_div(a: int, b: int) -> int:
    """Integer ceiling division for non-negative operands."""
    return -(-int(a) // int(b))
