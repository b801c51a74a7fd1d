"""
Environment parsing for aptdecode.

All APTDECODE_* environment variables are read here; the CLI imports these
helpers rather than reading os.environ directly. Values are read at call
time so a running test can patch the environment.
"""
from __future__ import annotations

import os
from typing import Optional


def _int_env(name: str, default: int) -> int:
    """Parse a positive integer from environment, returning default on missing/invalid."""
    val = os.getenv(name)
    if not val:
        return default
    try:
        return max(1, int(float(val)))
    except ValueError:
        return default


def _str_env(name: str) -> Optional[str]:
    val = os.getenv(name, "").strip()
    return val or None


def env_profile() -> Optional[str]:
    """Profile name from APTDECODE_PROFILE."""
    return _str_env("APTDECODE_PROFILE")


def env_settings() -> Optional[str]:
    """TOML settings path from APTDECODE_SETTINGS."""
    return _str_env("APTDECODE_SETTINGS")


def env_workers(default: int = 1) -> int:
    """Worker threads from APTDECODE_WORKERS."""
    return _int_env("APTDECODE_WORKERS", default)
