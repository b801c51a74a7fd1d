import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image as PILImage
from scipy.io import wavfile

from aptdecode import cli
from aptdecode.apt.encoder import build_frame, gradient_image, modulate
from aptdecode.cli import main
from aptdecode.pipeline.runner import DecodeResult, DecodeStatus
from aptdecode.util.exit_codes import ExitCode


def _write_recording(path: Path, rows: int = 6, rate: int = 11025, stereo: bool = False) -> Path:
    signal = modulate(build_frame(gradient_image(rows)), rate)
    pcm = np.round(signal.samples * 0.9 * 32767).astype(np.int16)
    if stereo:
        pcm = np.stack([pcm, pcm], axis=1)
    wavfile.write(str(path), rate, pcm)
    return path


def test_decode_writes_png(tmp_path: Path) -> None:
    wav = _write_recording(tmp_path / "pass.wav")
    png = tmp_path / "pass.png"
    code = main(["decode", str(wav), "-o", str(png), "--quiet"])
    assert code == ExitCode.SUCCESS
    with PILImage.open(png) as img:
        assert img.mode == "L"
        assert img.size == (2080, 6)


def test_decode_stereo_channel_selection(tmp_path: Path) -> None:
    wav = _write_recording(tmp_path / "stereo.wav", stereo=True)
    png = tmp_path / "stereo.png"
    assert main(["decode", str(wav), "-o", str(png), "--channel", "1", "--quiet"]) == ExitCode.SUCCESS
    assert main(["decode", str(wav), "-o", str(png), "--channel", "5", "--quiet"]) == ExitCode.INPUT_ERROR


def test_list_profiles_prints_json(capsys: pytest.CaptureFixture) -> None:
    assert main(["--list-profiles"]) == ExitCode.SUCCESS
    payload = json.loads(capsys.readouterr().out)
    assert {p["name"] for p in payload["profiles"]} == {"standard", "fast", "slow"}


def test_unknown_profile_is_config_error(tmp_path: Path) -> None:
    wav = _write_recording(tmp_path / "pass.wav", rows=2)
    code = main(["--profile", "turbo", "decode", str(wav), "-o", str(tmp_path / "out.png")])
    assert code == ExitCode.CONFIG_ERROR


def test_missing_input_is_input_error(tmp_path: Path) -> None:
    code = main(["decode", str(tmp_path / "absent.wav"), "-o", str(tmp_path / "out.png")])
    assert code == ExitCode.INPUT_ERROR


def test_silent_recording_is_decode_error(tmp_path: Path) -> None:
    wav = tmp_path / "silence.wav"
    wavfile.write(str(wav), 12480, np.zeros(12480, dtype=np.int16))
    code = main(["decode", str(wav), "-o", str(tmp_path / "out.png"), "--quiet"])
    assert code == ExitCode.DECODE_ERROR


def test_resample_command(tmp_path: Path) -> None:
    wav = _write_recording(tmp_path / "pass.wav", rows=2, rate=12480)
    out = tmp_path / "out.wav"
    assert main(["resample", str(wav), "-o", str(out), "--rate", "11025"]) == ExitCode.SUCCESS
    rate, data = wavfile.read(str(out))
    assert rate == 11025
    assert data.dtype == np.int16
    assert data.size == int(np.ceil(2 * 6240 * 735 / 832))


def test_missing_command_is_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == ExitCode.INVALID_ARGS


def test_errors_print_exit_code_message(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    code = main(["decode", str(tmp_path / "absent.wav"), "-o", str(tmp_path / "out.png")])
    assert code == ExitCode.INPUT_ERROR
    err = capsys.readouterr().err
    assert f"[error] {ExitCode.message(ExitCode.INPUT_ERROR)}:" in err
    assert "absent.wav" in err


def test_exit_code_messages() -> None:
    assert ExitCode.message(ExitCode.CONFIG_ERROR) == "Invalid profile or filter configuration"
    assert ExitCode.message(ExitCode.CANCELLED) == "Cancelled"
    assert ExitCode.message(77) == "Unknown exit code 77"


def test_progress_json_lines(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    wav = _write_recording(tmp_path / "pass.wav", rows=3, rate=12480)
    png = tmp_path / "pass.png"
    assert main(["decode", str(wav), "-o", str(png), "--progress-json"]) == ExitCode.SUCCESS
    lines = [line for line in capsys.readouterr().out.splitlines() if line.startswith("{")]
    records = [json.loads(line) for line in lines]
    assert [r["stage"] for r in records] == ["filters", "resample", "demodulate", "sync", "image"]
    assert records[-1]["fraction"] == pytest.approx(1.0)


def test_decode_without_image_is_decode_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    wav = _write_recording(tmp_path / "pass.wav", rows=2, rate=12480)
    monkeypatch.setattr(cli, "_wait", lambda decoder, signal, cancel: DecodeResult(DecodeStatus.COMPLETE))
    code = main(["decode", str(wav), "-o", str(tmp_path / "out.png"), "--quiet"])
    assert code == ExitCode.DECODE_ERROR
    assert not (tmp_path / "out.png").exists()
