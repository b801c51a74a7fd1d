"""Decode pipeline: filters, resample, demodulate, sync, image."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from aptdecode.apt.constants import DEFAULT_SYNC_THRESHOLD
from aptdecode.apt.profile import Profile
from aptdecode.apt.types import Image, LineMark, Signal
from aptdecode.dsp.demod import demodulate, envelope_filter_spec
from aptdecode.dsp.filters import FilterBank, FilterTaps
from aptdecode.dsp.resample import decode_filter_spec, edge_samples, rational_factors, resample_with_taps
from aptdecode.dsp.sync import SyncDetector, fixed_line_marks
from aptdecode.image.builder import ImageBuilder
from aptdecode.util.errors import ConfigError, ResampleError
from aptdecode.util.logging import get_logger, stage_timer

logger = get_logger(__name__)


class Stage(str, Enum):
    FILTERS = "filters"
    RESAMPLE = "resample"
    DEMODULATE = "demodulate"
    SYNC = "sync"
    IMAGE = "image"


# share of the total work attributed to each stage, in order
STAGE_WEIGHTS: Dict[Stage, float] = {
    Stage.FILTERS: 0.05,
    Stage.RESAMPLE: 0.40,
    Stage.DEMODULATE: 0.25,
    Stage.SYNC: 0.20,
    Stage.IMAGE: 0.10,
}


class DecodeStatus(str, Enum):
    COMPLETE = "complete"
    CANCELLED = "cancelled"


@dataclass
class DecodeProgress:
    """Progress report pushed after each stage."""

    stage: str
    fraction: float
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"stage": self.stage, "fraction": round(self.fraction, 4)}
        if self.message:
            result["message"] = self.message
        return result


@dataclass
class DecodeResult:
    status: DecodeStatus
    image: Optional[Image] = None
    stage: Optional[str] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def cancelled(self) -> bool:
        return self.status is DecodeStatus.CANCELLED


ProgressCallback = Callable[[DecodeProgress], None]


class Decoder:
    """Run the full decode of one buffered recording for a profile.

    ``cancel`` is any object with ``is_set()`` (usually a threading.Event);
    it is checked between stages, and a set flag discards the partial work.
    """

    def __init__(
        self,
        profile: Profile,
        *,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[Any] = None,
        workers: int = 1,
        sync: bool = True,
        contrast: str = "percent",
        rotate: bool = False,
        threshold: float = DEFAULT_SYNC_THRESHOLD,
        channel: str = "A",
    ) -> None:
        self.profile = profile.validate()
        if int(workers) < 1:
            raise ConfigError(f"workers must be at least 1, got {workers}", parameter="workers")
        if not 0.0 < float(threshold) <= 1.0:
            raise ConfigError(f"sync threshold must lie in (0, 1], got {threshold}", parameter="threshold")
        self.progress = progress
        self.cancel = cancel
        self.workers = int(workers)
        self.sync = bool(sync)
        self.threshold = float(threshold)
        self.channel = channel
        self.builder = ImageBuilder(profile.work_rate, contrast=contrast, rotate=rotate)
        self._done = 0.0

    def _emit(self, stage: Stage, message: str = "") -> None:
        self._done = min(1.0, self._done + STAGE_WEIGHTS[stage])
        if not self.progress:
            return
        try:
            self.progress(DecodeProgress(stage=stage.value, fraction=self._done, message=message))
        except Exception as exc:
            logger.error("Error in progress callback: %s", exc)

    def _cancelled(self) -> bool:
        return bool(self.cancel is not None and self.cancel.is_set())

    def _stop(self, stage: Optional[Stage], diagnostics: Dict[str, Any]) -> DecodeResult:
        name = stage.value if stage else None
        logger.info("Decode cancelled after stage %s", name or "start", extra={"stage": name})
        return DecodeResult(DecodeStatus.CANCELLED, image=None, stage=name, diagnostics=diagnostics)

    def run(self, signal: Signal) -> DecodeResult:
        profile = self.profile
        work_rate = profile.work_rate
        diagnostics: Dict[str, Any] = {"profile": profile.name, "input_rate": signal.rate, "work_rate": work_rate}
        durations: Dict[str, float] = {}
        diagnostics["durations_ms"] = durations
        self._done = 0.0
        if self._cancelled():
            return self._stop(None, diagnostics)
        if len(signal) == 0:
            raise ResampleError("input signal is empty", parameter="samples")

        bank = FilterBank()

        with stage_timer(logger, Stage.FILTERS.value, profile=profile.name) as timer:
            up, down = rational_factors(signal.rate, work_rate)
            resample_taps: Optional[FilterTaps] = None
            if (up, down) != (1, 1):
                resample_taps = bank.get(decode_filter_spec(signal.rate, work_rate, up, profile))
            envelope_taps = bank.get(envelope_filter_spec(work_rate, profile.demodulation_atten))
            guard = envelope_taps.half_len + (edge_samples(resample_taps, down) if resample_taps else 0)
        durations[Stage.FILTERS.value] = timer.duration_ms
        diagnostics.update(
            {
                "up": up,
                "down": down,
                "resample_taps": len(resample_taps) if resample_taps else 0,
                "envelope_taps": len(envelope_taps),
                "edge_samples": guard,
            }
        )
        logger.debug(
            "Filters ready: L=%d M=%d resample taps=%d envelope taps=%d",
            up,
            down,
            diagnostics["resample_taps"],
            len(envelope_taps),
            extra=timer.extra(),
        )
        self._emit(Stage.FILTERS, f"{len(bank)} filters designed")
        if self._cancelled():
            return self._stop(Stage.FILTERS, diagnostics)

        with stage_timer(logger, Stage.RESAMPLE.value, input_rate=signal.rate, work_rate=work_rate) as timer:
            if resample_taps is None:
                resampled = Signal(signal.samples, work_rate)
            else:
                resampled = resample_with_taps(signal, work_rate, up, down, resample_taps, self.workers)
        durations[Stage.RESAMPLE.value] = timer.duration_ms
        logger.info(
            "Resampled %d Hz -> %d Hz (%d samples)",
            signal.rate,
            work_rate,
            len(resampled),
            extra=timer.extra(),
        )
        self._emit(Stage.RESAMPLE, f"{len(resampled)} samples at {work_rate} Hz")
        if self._cancelled():
            return self._stop(Stage.RESAMPLE, diagnostics)

        with stage_timer(logger, Stage.DEMODULATE.value, work_rate=work_rate) as timer:
            envelope = demodulate(resampled, profile.demodulation_atten, bank=bank, workers=self.workers)
        durations[Stage.DEMODULATE.value] = timer.duration_ms
        self._emit(Stage.DEMODULATE)
        if self._cancelled():
            return self._stop(Stage.DEMODULATE, diagnostics)

        with stage_timer(logger, Stage.SYNC.value) as timer:
            marks: List[LineMark]
            if self.sync:
                detector = SyncDetector(work_rate, threshold=self.threshold, channel=self.channel, guard=guard)
                marks = detector.detect(envelope)
            else:
                marks = fixed_line_marks(len(envelope), work_rate)
        durations[Stage.SYNC.value] = timer.duration_ms
        diagnostics["marks"] = len(marks)
        self._emit(Stage.SYNC, f"{max(0, len(marks) - 1)} lines")
        if self._cancelled():
            return self._stop(Stage.SYNC, diagnostics)

        with stage_timer(logger, Stage.IMAGE.value, marks=len(marks)) as timer:
            image = self.builder.build(envelope, marks)
        durations[Stage.IMAGE.value] = timer.duration_ms
        diagnostics["quality"] = image.quality.to_dict()
        self._emit(Stage.IMAGE, f"{image.height} lines")
        if self._cancelled():
            return self._stop(Stage.IMAGE, diagnostics)

        logger.info(
            "Decode complete: %d lines, %d low confidence",
            image.quality.lines,
            image.quality.low_confidence_lines,
            extra={"profile": profile.name, "lines": image.quality.lines, "duration_ms": round(sum(durations.values()), 1)},
        )
        return DecodeResult(DecodeStatus.COMPLETE, image=image, stage=Stage.IMAGE.value, diagnostics=diagnostics)


def decode(signal: Signal, profile: Profile, **options: Any) -> DecodeResult:
    """Decode ``signal`` with a one-off Decoder; options as for Decoder."""
    return Decoder(profile, **options).run(signal)
