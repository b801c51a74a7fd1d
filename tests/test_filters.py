import numpy as np
import pytest
from scipy.signal import freqz

from aptdecode.dsp.filters import (
    FilterBank,
    FilterSpec,
    design_lowpass,
    kaiser_beta,
    kaiser_length,
    stopband_attenuation,
)
from aptdecode.util.errors import ConfigError


def _measured_stopband_db(taps: np.ndarray, spec: FilterSpec) -> float:
    w, h = freqz(taps, worN=1 << 16)
    mask = w / np.pi >= spec.cutoff + spec.delta / 2
    return float(-20.0 * np.log10(np.max(np.abs(h[mask]))))


@pytest.mark.parametrize(
    "cutoff, delta, atten",
    [(0.25, 0.1, 30.0), (1.0 / 3.0, 1.0 / 30.0, 40.0), (0.4, 0.05, 60.0), (0.1, 0.02, 25.0)],
)
def test_design_is_odd_symmetric_and_meets_stopband(cutoff: float, delta: float, atten: float) -> None:
    spec = FilterSpec(cutoff, delta, atten)
    design = design_lowpass(spec)
    taps = design.taps
    assert taps.size % 2 == 1
    assert taps.size >= kaiser_length(atten, delta)
    assert np.array_equal(taps, taps[::-1])
    assert _measured_stopband_db(taps, spec) >= atten - 0.05
    assert design.achieved_atten >= atten
    assert abs(float(np.sum(taps)) - 1.0) < 10 ** (-atten / 20.0) * 2


def test_design_is_deterministic() -> None:
    spec = FilterSpec(0.3, 0.05, 45.0)
    assert np.array_equal(design_lowpass(spec).taps, design_lowpass(spec).taps)


def test_taps_are_read_only() -> None:
    design = design_lowpass(FilterSpec(0.3, 0.1, 30.0))
    with pytest.raises(ValueError):
        design.taps[0] = 1.0


def test_kaiser_beta_regions() -> None:
    assert kaiser_beta(20.0) == 0.0
    assert kaiser_beta(30.0) == pytest.approx(0.5842 * 9.0 ** 0.4 + 0.07886 * 9.0)
    assert kaiser_beta(60.0) == pytest.approx(0.1102 * (60.0 - 8.7))


def test_kaiser_length_is_odd_and_at_least_three() -> None:
    assert kaiser_length(30.0, 0.1) % 2 == 1
    assert kaiser_length(5.0, 0.5) == 3
    assert kaiser_length(60.0, 0.01) > kaiser_length(60.0, 0.1)


@pytest.mark.parametrize(
    "spec, parameter",
    [
        (FilterSpec(0.3, 0.0, 30.0), "delta"),
        (FilterSpec(0.3, -0.1, 30.0), "delta"),
        (FilterSpec(0.0, 0.1, 30.0), "cutoff"),
        (FilterSpec(1.0, 0.1, 30.0), "cutoff"),
        (FilterSpec(0.95, 0.2, 30.0), "cutoff"),
        (FilterSpec(0.3, 0.1, 0.0), "atten"),
    ],
)
def test_invalid_specs_raise_config_error(spec: FilterSpec, parameter: str) -> None:
    with pytest.raises(ConfigError) as excinfo:
        design_lowpass(spec)
    assert excinfo.value.parameter == parameter


def test_from_hz_normalizes_to_nyquist() -> None:
    spec = FilterSpec.from_hz(2080, 1000, 25, 12480)
    assert spec.cutoff == pytest.approx(2080 / 6240)
    assert spec.delta == pytest.approx(1000 / 6240)
    assert spec.atten == 25.0


def test_stopband_attenuation_reports_design_margin() -> None:
    spec = FilterSpec(0.2, 0.1, 50.0)
    design = design_lowpass(spec)
    assert stopband_attenuation(design.taps, spec) == pytest.approx(design.achieved_atten)


def test_filter_bank_reuses_designs() -> None:
    bank = FilterBank()
    spec = FilterSpec(0.25, 0.1, 30.0)
    first = bank.get(spec)
    second = bank.get(FilterSpec(0.25, 0.1, 30.0))
    assert first is second
    assert len(bank) == 1
    assert spec in bank
