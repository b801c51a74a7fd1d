import math

import numpy as np
import pytest

from aptdecode.apt.types import Signal
from aptdecode.dsp import blocks
from aptdecode.dsp.resample import (
    MAX_RESAMPLE_FACTOR,
    rational_factors,
    resample,
    resample_wav,
)
from aptdecode.io.profiles import default_profiles
from aptdecode.util.errors import ResampleError


def _tone(freq: float, rate: int, seconds: float) -> Signal:
    t = np.arange(int(rate * seconds)) / float(rate)
    return Signal(np.sin(2 * np.pi * freq * t), rate)


def test_rational_factors_reduce_by_gcd() -> None:
    assert rational_factors(48000, 12480) == (13, 50)
    assert rational_factors(11025, 12480) == (832, 735)
    assert rational_factors(12480, 12480) == (1, 1)


def test_rational_factors_approximate_large_ratios() -> None:
    up, down = rational_factors(48001, 12480)
    assert up <= MAX_RESAMPLE_FACTOR and down <= MAX_RESAMPLE_FACTOR
    assert abs(48001 * up / down - 12480) / 12480 < 1e-4


def test_rational_factors_reject_degenerate_ratios() -> None:
    with pytest.raises(ResampleError):
        rational_factors(1, 10 ** 9, max_factor=100)
    with pytest.raises(ResampleError):
        rational_factors(0, 12480)


def test_dc_level_survives_resampling() -> None:
    signal = Signal(np.full(8000, 0.6), 8320)
    out = resample(signal, 12480, cutoff_hz=3000, delta_hz=1000, atten=60)
    assert out.rate == 12480
    assert len(out) == math.ceil(len(signal) * 3 / 2)
    interior = out.samples[300:-300]
    assert np.max(np.abs(interior - 0.6)) < 5e-3


def test_sine_round_trip_preserves_frequency_and_shape() -> None:
    original = _tone(500.0, 12480, 1.0)
    up = resample(original, 16640, cutoff_hz=4800, delta_hz=1000, atten=60)
    back = resample(up, 12480, cutoff_hz=4800, delta_hz=1000, atten=60)
    assert len(back) == len(original)
    spectrum = np.abs(np.fft.rfft(back.samples))
    freqs = np.fft.rfftfreq(len(back), 1.0 / 12480)
    assert freqs[int(np.argmax(spectrum))] == pytest.approx(500.0, abs=1.0)
    error = np.abs(back.samples[500:-500] - original.samples[500:-500])
    assert float(np.max(error)) < 0.02


def test_output_aligns_with_input_time() -> None:
    original = _tone(300.0, 24960, 0.5)
    out = resample(original, 12480, cutoff_hz=4800, delta_hz=1000, atten=50)
    expected = original.samples[::2]
    assert len(out) == len(expected)
    assert np.max(np.abs(out.samples[200:-200] - expected[200:-200])) < 0.01


def test_identity_rate_returns_copy() -> None:
    signal = _tone(1000.0, 12480, 0.1)
    out = resample(signal, 12480, cutoff_hz=4800, delta_hz=1000, atten=30)
    assert np.array_equal(out.samples, signal.samples)
    assert out.samples is not signal.samples


def test_empty_input_raises() -> None:
    with pytest.raises(ResampleError):
        resample(Signal(np.zeros(0), 11025), 12480, cutoff_hz=4800, delta_hz=1000, atten=30)


def test_block_processing_is_worker_invariant(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(blocks, "BLOCK_SAMPLES", 4096)
    rng = np.random.default_rng(7)
    signal = Signal(rng.normal(size=50_000), 11025)
    single = resample(signal, 12480, cutoff_hz=4800, delta_hz=1000, atten=30, workers=1)
    many = resample(signal, 12480, cutoff_hz=4800, delta_hz=1000, atten=30, workers=4)
    assert np.array_equal(single.samples, many.samples)


def test_blocked_and_unblocked_results_agree(monkeypatch: pytest.MonkeyPatch) -> None:
    rng = np.random.default_rng(3)
    signal = Signal(rng.normal(size=20_000), 8320)
    whole = resample(signal, 12480, cutoff_hz=3000, delta_hz=1000, atten=40)
    monkeypatch.setattr(blocks, "BLOCK_SAMPLES", 1000)
    pieces = resample(signal, 12480, cutoff_hz=3000, delta_hz=1000, atten=40)
    assert np.allclose(whole.samples, pieces.samples, atol=1e-10)


def test_resample_wav_uses_profile_settings() -> None:
    profile = default_profiles()["standard"]
    signal = _tone(1000.0, 12480, 0.5)
    out = resample_wav(signal, 11025, profile)
    assert out.rate == 11025
    assert len(out) == math.ceil(len(signal) * 735 / 832)
    rms_in = float(np.sqrt(np.mean(signal.samples[1000:-1000] ** 2)))
    rms_out = float(np.sqrt(np.mean(out.samples[1000:-1000] ** 2)))
    assert rms_out == pytest.approx(rms_in, rel=0.02)


def test_block_starts_follow_rounded_block_size() -> None:
    assert blocks.block_size_for(50, 4096) == 4100
    assert blocks.block_size_for(1, 4096) == 4096
    assert blocks.block_size_for(5000, 4096) == 5000
    assert blocks.block_starts(10000, multiple=50, block_size=4096) == [0, 4100, 8200]
    assert blocks.block_starts(0, multiple=50, block_size=4096) == []


def test_block_size_defaults_to_module_setting(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(blocks, "BLOCK_SAMPLES", 1000)
    assert blocks.block_size_for(7) == 1001
    assert blocks.block_starts(2500, multiple=7) == [0, 1001, 2002]
