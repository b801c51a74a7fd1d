"""Block decomposition helpers for data-parallel FIR work.

A signal is cut into blocks whose size depends only on the data, never on
the worker count; each block is processed independently and the pieces are
overlap-added in block order. The summation order is therefore fixed and
the result is bit-identical for any number of workers.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

import numpy as np
from scipy.signal import convolve

from aptdecode.util.math import ceil_div

BLOCK_SAMPLES = 1 << 16


def block_size_for(multiple: int = 1, block_size: Optional[int] = None) -> int:
    """Block size (default ``BLOCK_SAMPLES``) rounded up to ``multiple``."""
    size = int(block_size or BLOCK_SAMPLES)
    multiple = max(1, int(multiple))
    return max(multiple, ceil_div(size, multiple) * multiple)


def block_starts(length: int, multiple: int = 1, block_size: Optional[int] = None) -> List[int]:
    """Start offsets of fixed-size blocks covering ``length`` samples."""
    return list(range(0, int(length), block_size_for(multiple, block_size)))


def run_blocks(fn: Callable[[int], np.ndarray], starts: Sequence[int], workers: int = 1) -> List[np.ndarray]:
    """Apply ``fn`` to every block start, preserving order."""
    if workers <= 1 or len(starts) <= 1:
        return [fn(start) for start in starts]
    with ThreadPoolExecutor(max_workers=int(workers)) as pool:
        return list(pool.map(fn, starts))


def overlap_add(pieces: Sequence[np.ndarray], offsets: Sequence[int], length: int) -> np.ndarray:
    """Sum pieces into a zero buffer at their offsets, dropping overflow."""
    out = np.zeros(int(length), dtype=np.float64)
    for piece, offset in zip(pieces, offsets):
        stop = min(out.size, offset + piece.size)
        if stop > offset:
            out[offset:stop] += piece[: stop - offset]
    return out


def fir_filter(samples: np.ndarray, taps: np.ndarray, workers: int = 1) -> np.ndarray:
    """Apply a linear-phase FIR with its group delay removed.

    Output has the input's length; samples outside the input are zero.
    """
    x = np.asarray(samples, dtype=np.float64)
    h = np.asarray(taps, dtype=np.float64)
    if x.size == 0:
        return np.zeros(0, dtype=np.float64)
    half = (h.size - 1) // 2
    size = block_size_for()
    starts = block_starts(x.size)

    def _block(start: int) -> np.ndarray:
        return convolve(x[start : start + size], h, mode="full", method="auto")

    pieces = run_blocks(_block, starts, workers)
    full = overlap_add(pieces, starts, x.size + h.size - 1)
    return full[half : half + x.size]
