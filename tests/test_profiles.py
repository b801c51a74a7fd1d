import json
from dataclasses import replace
from pathlib import Path

import pytest

from aptdecode.config import env_profile, env_settings, env_workers
from aptdecode.io.profiles import (
    DEFAULT_PROFILE,
    default_profiles,
    get_profile,
    load_profiles,
    serialize_profiles,
)
from aptdecode.util.errors import APTError, ConfigError


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "settings.toml"
    path.write_text(text, encoding="utf-8")
    return path


def test_builtin_profiles_are_valid() -> None:
    profiles = default_profiles()
    assert set(profiles) == {"standard", "fast", "slow"}
    for profile in profiles.values():
        assert profile.validate() is profile
    assert profiles[DEFAULT_PROFILE].work_rate == 12480


@pytest.mark.parametrize(
    "changes, parameter",
    [
        ({"work_rate": 12000}, "work_rate"),
        ({"work_rate": 8320}, "work_rate"),
        ({"resample_atten": 0.0}, "resample_atten"),
        ({"demodulation_atten": -3.0}, "demodulation_atten"),
        ({"wav_resample_atten": float("nan")}, "wav_resample_atten"),
        ({"resample_delta_freq": 0.0}, "resample_delta_freq"),
        ({"resample_cutout": 7000.0}, "resample_cutout"),
        ({"wav_resample_delta_freq": 1.0}, "wav_resample_delta_freq"),
    ],
)
def test_invalid_profiles_name_the_parameter(changes, parameter: str) -> None:
    profile = replace(default_profiles()["standard"], **changes)
    with pytest.raises(ConfigError) as excinfo:
        profile.validate()
    assert excinfo.value.parameter == parameter
    assert parameter in str(excinfo.value)


def test_unknown_profile_name() -> None:
    with pytest.raises(ConfigError):
        get_profile("turbo")
    assert get_profile("Standard").name == "standard"


def test_load_profiles_merges_over_builtins(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
default_profile = "custom"

[profiles.custom]
work_rate = 16640
resample_atten = 35
resample_delta_freq = 800
resample_cutout = 4800
demodulation_atten = 28
wav_resample_atten = 40
wav_resample_delta_freq = 0.1

[profiles.standard]
demodulation_atten = 30
""",
    )
    profiles, default = load_profiles(path)
    assert default == "custom"
    assert profiles["custom"].work_rate == 16640
    assert profiles["standard"].demodulation_atten == 30
    assert profiles["standard"].work_rate == 12480
    assert "fast" in profiles


def test_load_profiles_reads_default_inside_profiles_table(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
# noaa-apt settings

check_updates = true

[profiles]

default_profile = "fast"
note = "scalars other than default_profile are skipped"

    [profiles.standard]

    work_rate = 12480
    resample_atten = 30
    resample_delta_freq = 1000
    resample_cutout = 4800
    demodulation_atten = 25
    wav_resample_atten = 40
    wav_resample_delta_freq = 0.1

    [profiles.fast]

    work_rate = 16640
    resample_atten = 30
    resample_delta_freq = 3000
    resample_cutout = 4800
    demodulation_atten = 23
    wav_resample_atten = 30
    wav_resample_delta_freq = 0.2

    [profiles.slow]

    work_rate = 20800
    resample_atten = 40
    resample_delta_freq = 500
    resample_cutout = 4800
    demodulation_atten = 25
    wav_resample_atten = 50
    wav_resample_delta_freq = 0.05
""",
    )
    profiles, default = load_profiles(path)
    assert default == "fast"
    assert set(profiles) == {"standard", "fast", "slow"}
    assert profiles == default_profiles()


def test_top_level_default_profile_wins(tmp_path: Path) -> None:
    path = _write(tmp_path, 'default_profile = "slow"\n\n[profiles]\ndefault_profile = "fast"\n')
    _, default = load_profiles(path)
    assert default == "slow"


def test_load_profiles_rejects_non_string_default(tmp_path: Path) -> None:
    path = _write(tmp_path, "[profiles]\ndefault_profile = 3\n")
    with pytest.raises(ConfigError) as excinfo:
        load_profiles(path)
    assert excinfo.value.parameter == "default_profile"


def test_load_profiles_rejects_bad_values(tmp_path: Path) -> None:
    path = _write(tmp_path, "[profiles.bad]\nwork_rate = 12000\n")
    with pytest.raises(ConfigError):
        load_profiles(path)


def test_load_profiles_rejects_unknown_keys(tmp_path: Path) -> None:
    path = _write(tmp_path, "[profiles.standard]\ngain = 3\n")
    with pytest.raises(ConfigError) as excinfo:
        load_profiles(path)
    assert excinfo.value.parameter == "gain"


def test_load_profiles_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_profiles(tmp_path / "absent.toml")


def test_serialize_profiles_is_json_ready() -> None:
    payload = serialize_profiles()
    names = [p["name"] for p in payload["profiles"]]
    assert names == sorted(names)
    assert json.loads(json.dumps(payload)) == payload


def test_config_errors_format_stage_and_parameter() -> None:
    error = ConfigError("bad value", parameter="work_rate")
    assert isinstance(error, APTError)
    assert str(error) == "config: bad value (work_rate)"


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APTDECODE_PROFILE", "fast")
    monkeypatch.setenv("APTDECODE_WORKERS", "4")
    monkeypatch.delenv("APTDECODE_SETTINGS", raising=False)
    assert env_profile() == "fast"
    assert env_workers() == 4
    assert env_settings() is None
    monkeypatch.setenv("APTDECODE_WORKERS", "many")
    assert env_workers(2) == 2
