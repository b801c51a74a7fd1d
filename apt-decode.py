#!/usr/bin/env python3
"""
aptdecode - Entry point.

Thin shim that runs the package CLI from a source checkout.

Run:
    python apt-decode.py decode pass.wav -o pass.png --profile standard

Environment:
    APTDECODE_PROFILE     Default profile name
    APTDECODE_SETTINGS    TOML settings file with extra profiles
    APTDECODE_WORKERS     Worker threads for block filtering
    APTDECODE_LOG_LEVEL   Console log level (APTDECODE_DEBUG=1 for DEBUG)
"""
from __future__ import annotations

import sys

from aptdecode.cli import main

if __name__ == "__main__":
    sys.exit(main())
