"""Line synchronization against the APT sync train.

The detector walks the correlation score sequence once:

- SEEKING: no lock yet (or lost). Without a previous mark, the first offset
  scoring above the threshold is refined to the best score over the next
  line period. After a loss, the search covers a full period centred on the
  expected offset.
- TRACKING: the next mark is searched within the drift tolerance around one
  period after the previous mark.
- DONE: the next expected offset lies beyond the envelope. A line that
  ends up to the drift tolerance past the last sample is still closed, with
  an estimated mark clamped to the envelope length.

A miss never fails the decode: an estimated mark is placed where the line
should have started and the walk continues.
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional

import numpy as np
from scipy.signal import correlate

from aptdecode.apt.constants import (
    DEFAULT_DRIFT,
    DEFAULT_RESYNC_AFTER,
    DEFAULT_SYNC_THRESHOLD,
    LINES_PER_SECOND,
    PIXEL_RATE,
)
from aptdecode.apt.types import LineMark, Signal, SyncPattern
from aptdecode.util.errors import ConfigError
from aptdecode.util.logging import get_logger

logger = get_logger(__name__)


class SyncState(Enum):
    SEEKING = "seeking"
    TRACKING = "tracking"
    DONE = "done"


def correlation_scores(envelope: np.ndarray, template: np.ndarray) -> np.ndarray:
    """Normalized cross-correlation of ``template`` at every valid offset.

    Scores lie in [-1, 1]; windows without variance score zero.
    """
    x = np.asarray(envelope, dtype=np.float64)
    t = np.asarray(template, dtype=np.float64)
    t = t - t.mean()
    k = t.size
    if k == 0 or x.size < k:
        return np.zeros(0, dtype=np.float64)

    # centring keeps the running sums small
    x = x - x.mean()
    numerator = correlate(x, t, mode="valid", method="fft")
    c1 = np.concatenate(([0.0], np.cumsum(x)))
    c2 = np.concatenate(([0.0], np.cumsum(x * x)))
    s1 = c1[k:] - c1[:-k]
    s2 = c2[k:] - c2[:-k]
    spread = np.maximum(s2 - s1 * s1 / k, 0.0)
    denom = np.sqrt(spread) * float(np.linalg.norm(t))

    floor = 1e-12 * k * max(1.0, float(np.max(np.abs(x))) ** 2)
    scores = np.zeros(numerator.size, dtype=np.float64)
    ok = spread > floor
    scores[ok] = numerator[ok] / denom[ok]
    return np.clip(scores, -1.0, 1.0)


def fixed_line_marks(length: int, rate: int) -> List[LineMark]:
    """Marks every line period from offset zero, all estimated."""
    period = int(rate) // LINES_PER_SECOND
    return [LineMark(offset, 0.0, estimated=True) for offset in range(0, int(length) + 1, period)]


class SyncDetector:
    def __init__(
        self,
        rate: int,
        *,
        threshold: float = DEFAULT_SYNC_THRESHOLD,
        drift: float = DEFAULT_DRIFT,
        resync_after: int = DEFAULT_RESYNC_AFTER,
        channel: str = "A",
        guard: int = 0,
    ) -> None:
        if rate <= 0 or rate % PIXEL_RATE:
            raise ConfigError(f"sync rate {rate} Hz is not a multiple of {PIXEL_RATE} Hz", stage="sync", parameter="rate")
        if not 0.0 < threshold <= 1.0:
            raise ConfigError(f"threshold must lie in (0, 1], got {threshold}", stage="sync", parameter="threshold")
        if drift < 0:
            raise ConfigError(f"drift must not be negative, got {drift}", stage="sync", parameter="drift")
        if resync_after < 1:
            raise ConfigError(f"resync_after must be at least 1, got {resync_after}", stage="sync", parameter="resync_after")
        try:
            pattern = SyncPattern.for_channel(channel)
        except ValueError as exc:
            raise ConfigError(str(exc), stage="sync", parameter="channel") from exc

        self.rate = int(rate)
        self.period = self.rate // LINES_PER_SECOND
        self.threshold = float(threshold)
        self.tolerance = max(1, int(round(drift * self.period)))
        self.resync_after = int(resync_after)
        self.guard = max(0, int(guard))
        self.pattern = pattern
        self.template = pattern.at_rate(self.rate)
        self.state = SyncState.SEEKING

    def _mark(self, scores: np.ndarray, offset: int, estimated: bool) -> LineMark:
        score = float(scores[offset]) if 0 <= offset < scores.size else 0.0
        return LineMark(int(offset), score, estimated=estimated, threshold=self.threshold)

    def _usable(self, scores: np.ndarray, length: int) -> np.ndarray:
        usable = scores.copy()
        if self.guard:
            usable[: self.guard] = -np.inf
            tail = max(0, length - self.guard - self.template.size + 1)
            usable[tail:] = -np.inf
        return usable

    def _peak(self, usable: np.ndarray, lo: int, hi: int) -> Optional[int]:
        """Best local maximum above threshold within [lo, hi], if any."""
        lo = max(lo, 0)
        hi = min(hi, usable.size - 1)
        if hi < lo:
            return None
        window = usable[lo : hi + 1]
        idx = lo + int(np.argmax(window))
        value = usable[idx]
        if not value >= self.threshold:
            return None
        if idx > 0 and usable[idx - 1] > value:
            return None
        if idx + 1 < usable.size and usable[idx + 1] > value:
            return None
        return idx

    def _first_lock(self, usable: np.ndarray) -> Optional[int]:
        above = np.flatnonzero(usable >= self.threshold)
        if above.size == 0:
            return None
        start = int(above[0])
        window = usable[start : start + self.period]
        return start + int(np.argmax(window))

    def detect(self, envelope: Signal) -> List[LineMark]:
        """Return line marks covering the whole envelope, in offset order."""
        if envelope.rate != self.rate:
            raise ConfigError(
                f"envelope rate {envelope.rate} Hz does not match detector rate {self.rate} Hz",
                stage="sync",
                parameter="rate",
            )
        length = len(envelope)
        scores = correlation_scores(envelope.samples, self.template)
        usable = self._usable(scores, length)
        period = self.period

        self.state = SyncState.SEEKING
        first = self._first_lock(usable)
        if first is None:
            logger.warning("No sync above %.2f found; slicing fixed line periods", self.threshold)
            self.state = SyncState.DONE
            return [self._mark(scores, offset, True) for offset in range(0, length + 1, period)]

        marks = [self._mark(scores, offset, True) for offset in range(first % period, first, period)]
        marks.append(self._mark(scores, first, False))
        self.state = SyncState.TRACKING
        last = first
        misses = 0
        resyncs = 0

        while True:
            expected = last + period
            if expected > length:
                if expected <= length + self.tolerance:
                    marks.append(self._mark(scores, length, True))
                self.state = SyncState.DONE
                break
            if self.state is SyncState.TRACKING:
                lo, hi = expected - self.tolerance, expected + self.tolerance
            else:
                lo, hi = expected - period // 2, expected + period // 2 - 1
            found = self._peak(usable, max(lo, last + 1), hi)
            if found is not None:
                marks.append(self._mark(scores, found, False))
                last = found
                misses = 0
                if self.state is SyncState.SEEKING:
                    resyncs += 1
                    logger.debug("Sync reacquired at offset %d", found)
                    self.state = SyncState.TRACKING
                continue

            marks.append(self._mark(scores, expected, True))
            last = expected
            misses += 1
            if self.state is SyncState.TRACKING and misses >= self.resync_after:
                logger.debug("Sync lost after %d misses near offset %d", misses, expected)
                self.state = SyncState.SEEKING

        estimated = sum(1 for mark in marks if mark.estimated)
        logger.info(
            "Sync: %d marks, %d detected, %d estimated, %d reacquisitions",
            len(marks),
            len(marks) - estimated,
            estimated,
            resyncs,
        )
        return marks
