"""Built-in decode profiles and TOML settings loading."""

from __future__ import annotations

import tomllib
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from aptdecode.apt.profile import Profile
from aptdecode.util.errors import ConfigError
from aptdecode.util.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PROFILE = "standard"

_NUMERIC_FIELDS = [f.name for f in fields(Profile) if f.name != "name"]


def default_profiles() -> Dict[str, Profile]:
    profiles = [
        Profile(
            name="standard",
            work_rate=12480,
            resample_atten=30.0,
            resample_delta_freq=1000.0,
            resample_cutout=4800.0,
            demodulation_atten=25.0,
            wav_resample_atten=40.0,
            wav_resample_delta_freq=0.1,
        ),
        Profile(
            name="fast",
            work_rate=16640,
            resample_atten=30.0,
            resample_delta_freq=3000.0,
            resample_cutout=4800.0,
            demodulation_atten=23.0,
            wav_resample_atten=30.0,
            wav_resample_delta_freq=0.2,
        ),
        Profile(
            name="slow",
            work_rate=20800,
            resample_atten=40.0,
            resample_delta_freq=500.0,
            resample_cutout=4800.0,
            demodulation_atten=25.0,
            wav_resample_atten=50.0,
            wav_resample_delta_freq=0.05,
        ),
    ]
    return {p.name.lower(): p for p in profiles}


def get_profile(name: str, profiles: Optional[Mapping[str, Profile]] = None) -> Profile:
    table = profiles if profiles is not None else default_profiles()
    profile = table.get(name.lower())
    if profile is None:
        known = ", ".join(sorted(table))
        raise ConfigError(f"unknown profile {name!r} (known: {known})", parameter="profile")
    return profile


def profile_from_mapping(name: str, values: Mapping[str, Any], base: Optional[Profile] = None) -> Profile:
    """Build and validate a profile from a settings table.

    Keys missing from ``values`` are taken from ``base`` when given.
    """
    unknown = sorted(set(values) - set(_NUMERIC_FIELDS))
    if unknown:
        raise ConfigError(f"profile {name!r} has unknown keys: {', '.join(unknown)}", parameter=unknown[0])
    kwargs: Dict[str, Any] = {"name": name}
    for key in _NUMERIC_FIELDS:
        if key in values:
            kwargs[key] = values[key]
        elif base is not None:
            kwargs[key] = getattr(base, key)
        else:
            raise ConfigError(f"profile {name!r} is missing {key}", parameter=key)
    value = kwargs["work_rate"]
    if isinstance(value, float) and value.is_integer():
        kwargs["work_rate"] = int(value)
    return Profile(**kwargs).validate()


def load_profiles(path: str | Path) -> Tuple[Dict[str, Profile], str]:
    """Read profiles from a TOML settings file merged over the built-ins.

    Layout::

        default_profile = "standard"

        [profiles.custom]
        work_rate = 16640
        resample_atten = 35
        ...

    Tables named like a built-in profile override only the keys they set.
    ``default_profile`` may also sit inside the ``[profiles]`` table; the
    top-level key wins when both are present. Other scalars in ``[profiles]``
    are ignored.
    """
    try:
        with open(path, "rb") as fh:
            data = tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"settings file not found: {path}", parameter="settings") from exc
    except (OSError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"cannot read settings file {path}: {exc}", parameter="settings") from exc

    profiles = default_profiles()
    tables = data.get("profiles", {})
    if not isinstance(tables, dict):
        raise ConfigError("'profiles' must be a table", parameter="profiles")
    nested_default: Optional[str] = None
    for raw_name, values in tables.items():
        if raw_name == "default_profile":
            if not isinstance(values, str):
                raise ConfigError("default_profile must be a string", parameter="default_profile")
            nested_default = values
            continue
        if not isinstance(values, dict):
            logger.warning("Ignoring non-table entry %r in [profiles] of %s", raw_name, path)
            continue
        name = str(raw_name).lower()
        profiles[name] = profile_from_mapping(name, values, base=profiles.get(name))

    default = data.get("default_profile", nested_default or DEFAULT_PROFILE)
    if not isinstance(default, str):
        raise ConfigError("default_profile must be a string", parameter="default_profile")
    default = default.lower()
    if default not in profiles:
        raise ConfigError(f"default profile {default!r} is not defined", parameter="default_profile")
    return profiles, default


def serialize_profiles(profiles: Optional[Mapping[str, Profile]] = None) -> Dict[str, Any]:
    """Return ordered JSON-serializable description of the profiles."""

    table = profiles if profiles is not None else default_profiles()
    ordered = sorted(table.values(), key=lambda p: p.name.lower())
    return {"profiles": [prof.to_dict() for prof in ordered]}
