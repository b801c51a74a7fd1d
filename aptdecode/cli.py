#!/usr/bin/env python3
"""aptdecode command line entrypoint (package module)."""

from __future__ import annotations

import argparse
import concurrent.futures
import json
import sys
import threading
from typing import Dict, List, Optional, Tuple

from aptdecode.apt.profile import Profile
from aptdecode.config import env_profile, env_settings, env_workers
from aptdecode.dsp.resample import resample_wav
from aptdecode.image.contrast import CONTRAST_MODES
from aptdecode.io.audio import read_wav, write_wav
from aptdecode.io.profiles import DEFAULT_PROFILE, default_profiles, get_profile, load_profiles, serialize_profiles
from aptdecode.io.raster import write_png
from aptdecode.pipeline.runner import DecodeProgress, DecodeResult, Decoder, ProgressCallback
from aptdecode.util.errors import APTError, ConfigError, InputError, OutputError
from aptdecode.util.exit_codes import ExitCode
from aptdecode.util.logging import configure_logging, get_logger, log_exception

logger = get_logger(__name__)


def run(args: argparse.Namespace) -> int:
    """Top-level CLI dispatcher; returns a process exit code."""
    configure_logging(level=args.log_level, json_file=args.log_json, use_color=not args.no_color)
    try:
        profiles, default_name = _profile_table(args.settings)
        if args.list_profiles:
            _emit_profiles_json(profiles)
            return ExitCode.SUCCESS
        profile = get_profile(args.profile or default_name, profiles)
        if args.command == "decode":
            return _run_decode(args, profile)
        if args.command == "resample":
            return _run_resample(args, profile)
    except ConfigError as exc:
        return _fail(ExitCode.CONFIG_ERROR, exc)
    except InputError as exc:
        return _fail(ExitCode.INPUT_ERROR, exc)
    except OutputError as exc:
        return _fail(ExitCode.GENERAL_ERROR, exc)
    except APTError as exc:
        log_exception(logger, "Decode failed", error_type=type(exc).__name__, stage=exc.stage)
        return _fail(ExitCode.DECODE_ERROR, exc)
    return ExitCode.INVALID_ARGS


def _fail(code: int, exc: APTError) -> int:
    print(f"[error] {ExitCode.message(code)}: {exc}", file=sys.stderr)
    return code


def _profile_table(settings: Optional[str]) -> Tuple[Dict[str, Profile], str]:
    if settings:
        return load_profiles(settings)
    return default_profiles(), DEFAULT_PROFILE


def _print_progress(progress: DecodeProgress) -> None:
    text = f"[{progress.stage}] {progress.fraction * 100:5.1f}%"
    if progress.message:
        text += f" {progress.message}"
    print(text, flush=True)


def _print_progress_json(progress: DecodeProgress) -> None:
    print(json.dumps(progress.to_dict(), sort_keys=True), flush=True)


def _progress_printer(args: argparse.Namespace) -> Optional[ProgressCallback]:
    if args.quiet:
        return None
    return _print_progress_json if args.progress_json else _print_progress


def _wait(decoder: Decoder, signal, cancel: threading.Event) -> DecodeResult:
    """Run the decoder off the main thread so Ctrl-C becomes a cancel request."""
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        future = pool.submit(decoder.run, signal)
        try:
            while True:
                try:
                    return future.result(timeout=0.25)
                except concurrent.futures.TimeoutError:
                    continue
        except KeyboardInterrupt:
            print("[decode] interrupt received, stopping after the current stage", file=sys.stderr, flush=True)
            cancel.set()
            return future.result()


def _run_decode(args: argparse.Namespace, profile: Profile) -> int:
    signal = read_wav(args.input, channel=args.channel)
    print(
        f"[decode] {args.input}: {signal.duration_s:.1f} s at {signal.rate} Hz, profile '{profile.name}'",
        flush=True,
    )
    cancel = threading.Event()
    decoder = Decoder(
        profile,
        progress=_progress_printer(args),
        cancel=cancel,
        workers=args.workers,
        sync=not args.no_sync,
        contrast=args.contrast,
        rotate=args.rotate,
        threshold=args.threshold,
    )
    result = _wait(decoder, signal, cancel)
    if result.cancelled:
        print(f"[decode] cancelled after stage '{result.stage}'", file=sys.stderr, flush=True)
        return ExitCode.CANCELLED
    image = result.image
    if image is None:
        raise APTError(f"decode finished with status '{result.status.value}' but produced no image", stage=result.stage)
    if image.height == 0:
        raise InputError("recording is shorter than one APT line", parameter="input")
    write_png(args.output, image)
    quality = image.quality
    print(
        f"[decode] wrote {args.output}: {image.height} lines, "
        f"{quality.low_confidence_lines} low confidence, mean sync score {quality.mean_score:.3f}",
        flush=True,
    )
    if args.diagnostics:
        print(json.dumps(result.diagnostics, indent=2, sort_keys=True, default=str))
    return ExitCode.SUCCESS


def _run_resample(args: argparse.Namespace, profile: Profile) -> int:
    signal = read_wav(args.input, channel=args.channel)
    resampled = resample_wav(signal, args.rate, profile, workers=args.workers)
    write_wav(args.output, resampled)
    print(f"[resample] wrote {args.output}: {len(resampled)} samples at {resampled.rate} Hz", flush=True)
    return ExitCode.SUCCESS


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected an integer, got {text!r}")
    if value < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value}")
    return value


def _common_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("input", help="Input WAV recording")
    p.add_argument("-o", "--output", required=True, help="Output file")
    p.add_argument("--channel", type=int, default=None, help="Use one channel of a multi-channel WAV (default: average)")
    p.add_argument("--workers", type=_positive_int, default=None, help="Worker threads for block filtering (env APTDECODE_WORKERS)")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]

    p = argparse.ArgumentParser(
        prog="aptdecode",
        description="Decode NOAA APT weather satellite recordings into images",
    )
    p.add_argument("--profile", default=None, help="Decode profile name (env APTDECODE_PROFILE, default 'standard')")
    p.add_argument("--settings", default=None, help="TOML settings file with extra profiles (env APTDECODE_SETTINGS)")
    p.add_argument("--list-profiles", dest="list_profiles", action="store_true", help="Print decode profiles as JSON and exit")
    p.add_argument("--log-level", dest="log_level", default=None, help="Console log level (DEBUG, INFO, WARNING, ERROR)")
    p.add_argument("--log-json", dest="log_json", default=None, help="Append JSON-lines logs to this file")
    p.add_argument("--no-color", dest="no_color", action="store_true", help="Disable coloured log output")

    sub = p.add_subparsers(dest="command")

    d = sub.add_parser("decode", help="Decode a WAV recording to a PNG image")
    _common_options(d)
    d.add_argument("--contrast", choices=CONTRAST_MODES, default="percent", help="Contrast adjustment (default percent)")
    d.add_argument("--rotate", action="store_true", help="Rotate the image 180 degrees (south-bound pass)")
    d.add_argument("--no-sync", dest="no_sync", action="store_true", help="Slice fixed line periods instead of detecting sync")
    d.add_argument("--threshold", type=float, default=0.5, help="Sync correlation threshold in (0, 1] (default 0.5)")
    d.add_argument("--quiet", action="store_true", help="Do not print stage progress")
    d.add_argument("--progress-json", dest="progress_json", action="store_true", help="Print stage progress as JSON lines")
    d.add_argument("--diagnostics", action="store_true", help="Print decode diagnostics as JSON")

    r = sub.add_parser("resample", help="Resample a WAV recording")
    _common_options(r)
    r.add_argument("--rate", type=_positive_int, required=True, help="Output sample rate in Hz")

    args = p.parse_args(argv)

    if not args.list_profiles and not args.command:
        p.error("a command (decode, resample) is required unless --list-profiles is used")
    if args.profile is None:
        args.profile = env_profile()
    if args.settings is None:
        args.settings = env_settings()
    if getattr(args, "workers", None) is None:
        args.workers = env_workers()
    return args


def _emit_profiles_json(profiles: Dict[str, Profile]) -> None:
    payload = serialize_profiles(profiles)
    print(json.dumps(payload, indent=2, sort_keys=True))


def main(argv: Optional[List[str]] = None) -> int:
    return int(run(parse_args(argv)))


if __name__ == "__main__":
    sys.exit(main())
