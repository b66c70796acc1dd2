import json
import math
from pathlib import Path

import numpy as np
import pytest
from scipy.io import wavfile

from fcmd.cli import main, parse_args
from fcmd.discrimination.types import TargetType, ToneAnalysis, VDIResult
from fcmd.io.profiles import default_profiles, serialize_profiles
from fcmd.io.sources import TARGET_RESPONSES, SyntheticBlockSource, WavBlockSource, to_float_mono
from fcmd.pipeline.runner import DetectorRunner
from fcmd.util.exit_codes import ExitCode
from fcmd.util.frame_logger import FrameLogger

SMALL_RUN = ["--sample-rate", "8000", "--max-freq", "3000", "--tones", "4", "--duration", "1"]


def _read_jsonl(path: Path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def test_serialize_profiles_is_sorted_with_frequencies() -> None:
    payload = serialize_profiles()
    names = [p["name"] for p in payload["profiles"]]
    assert names == sorted(names)
    coin = next(p for p in payload["profiles"] if p["name"] == "coin_shoot")
    assert len(coin["frequencies_hz"]) == 8
    assert coin["frequencies_hz"][0] == 1000.0
    assert coin["frequencies_hz"][-1] == 10000.0
    single = default_profiles()["single_tone"]
    assert single.frequencies() == [1000.0]


def test_parse_args_defaults() -> None:
    args = parse_args(["--simulate"])
    assert args.tones == 8
    assert args.min_freq == 1000.0
    assert args.max_freq == 10000.0
    assert args.gb_mode == "off"
    assert args.jsonl is None
    assert not hasattr(args, "_cli_overrides")


def test_profile_fills_unset_values_only() -> None:
    args = parse_args(["--simulate", "--profile", "relic", "--tones", "4"])
    assert args.tones == 4
    assert args.max_freq == 5000.0
    assert args.gb_mode == "manual_tracking"
    assert args.update_rate == 20.0


def test_unknown_profile_and_missing_source_are_usage_errors() -> None:
    with pytest.raises(SystemExit):
        parse_args(["--simulate", "--profile", "nope"])
    with pytest.raises(SystemExit):
        parse_args([])
    assert main([]) == ExitCode.INVALID_ARGS
    assert main(["--simulate", "--duration", "10x"]) == ExitCode.INVALID_ARGS


def test_list_profiles_prints_json(capsys) -> None:
    assert main(["--list-profiles"]) == ExitCode.SUCCESS
    out = capsys.readouterr().out
    payload = json.loads(out)
    assert {p["name"] for p in payload["profiles"]} == set(default_profiles())


def test_simulated_run_writes_frames_and_audio(tmp_path: Path) -> None:
    frames = tmp_path / "frames.jsonl"
    tx = tmp_path / "tx.wav"
    feedback = tmp_path / "feedback.wav"
    code = main(
        ["--simulate", *SMALL_RUN, "--jsonl", str(frames), "--write-tx", str(tx), "--feedback-wav", str(feedback)]
    )
    assert code == ExitCode.SUCCESS

    records = _read_jsonl(frames)
    assert records
    assert [r["frame_idx"] for r in records] == list(range(len(records)))
    assert all(r["event"] == "frame" for r in records)
    assert len(records[0]["tones"]) == 4
    assert records[-1]["vdi"]["target_type"] in {t.value for t in TargetType}
    assert "depth" in records[-1]["vdi"]
    assert records[-1]["gb"] == "GB: OFF"

    for path in (tx, feedback):
        rate, data = wavfile.read(str(path))
        assert rate == 8000
        assert data.shape[0] == 8000


def test_pump_window_sets_manual_baseline() -> None:
    args = parse_args(
        ["--simulate", *SMALL_RUN, "--gb-mode", "manual", "--pump-seconds", "0.5", "--target-type", "none"]
    )
    runner = DetectorRunner(args)
    summary = runner.run()
    assert summary.blocks == 8
    assert summary.frames > 0
    assert summary.gb_status == "GB: MANUAL"
    baseline = runner.ground_balance.manual_baseline
    assert baseline is not None
    assert len(baseline) == 4


def test_wav_run(tmp_path: Path) -> None:
    path = tmp_path / "rx.wav"
    t = np.arange(8000) / 8000.0
    tone = (0.5 * np.cos(2 * np.pi * 1000.0 * t) * 32767).astype(np.int16)
    wavfile.write(str(path), 8000, np.stack([tone, tone], axis=1))
    frames = tmp_path / "frames.jsonl"
    code = main(["--wav", str(path), "--min-freq", "1000", "--max-freq", "3000", "--tones", "3", "--jsonl", str(frames)])
    assert code == ExitCode.SUCCESS
    last = _read_jsonl(frames)[-1]
    assert last["tones"][0]["amplitude"] == pytest.approx(0.5, abs=0.05)


def test_missing_wav_is_input_error(tmp_path: Path) -> None:
    assert main(["--wav", str(tmp_path / "absent.wav")]) == ExitCode.INPUT_ERROR


def test_wav_source_blocks_and_normalisation(tmp_path: Path) -> None:
    path = tmp_path / "short.wav"
    wavfile.write(str(path), 8000, np.full(2500, 16384, dtype=np.int16))
    src = WavBlockSource(str(path), 1024)
    sizes = [b.size for b in src.blocks()]
    assert sizes == [1024, 1024, 452]
    assert src.duration_s == pytest.approx(2500 / 8000)
    assert to_float_mono(np.array([[16384, 0]], dtype=np.int16))[0] == pytest.approx(0.5)
    assert to_float_mono(np.array([128, 255], dtype=np.uint8))[0] == 0.0


def test_synthetic_source_is_quiet_before_first_pass() -> None:
    src = SyntheticBlockSource(8000, [1000.0, 2000.0], 512, 2.0, soil_strength=0.0, quiet_s=1.0)
    assert not np.any(src.envelope(np.array([0.0, 0.5, 0.99])))
    assert src.envelope(np.array([2.0]))[0] == pytest.approx(1.0)
    blocks = list(src.blocks())
    assert sum(b.size for b in blocks) == 16000
    assert not np.any(blocks[0])
    with pytest.raises(ValueError):
        SyntheticBlockSource(8000, [1000.0], 512, 1.0, target="meteorite")


def test_frame_logger_numbers_frames_and_mirrors(tmp_path: Path) -> None:
    primary = tmp_path / "a" / "frames.jsonl"
    mirror = tmp_path / "b" / "frames.jsonl"
    logger = FrameLogger(primary, mirror_paths=[mirror, primary])
    assert logger.mirror_paths == [mirror.absolute()]
    tones = [ToneAnalysis(1000.0, 0.2, 0.0, 0.1, 0.0)]
    logger.log_frame(tones, None)
    logger.log_frame(tones, VDIResult(85, 0.9, TargetType.HIGH_CONDUCTOR, 0.0, 0.9))
    for path in (primary, mirror):
        records = _read_jsonl(path)
        assert [r["frame_idx"] for r in records] == [0, 1]
        assert records[0]["vdi"] is None
        assert records[1]["vdi"]["value"] == 85
        assert len({r["run_id"] for r in records}) == 1


def test_exit_code_messages() -> None:
    assert ExitCode.message(ExitCode.INPUT_ERROR) == "Sample source unreadable"
    assert ExitCode.message(42) == "Unknown exit code 42"


def test_target_models_set_the_raw_reflection() -> None:
    freqs = [1000.0, 2000.0, 4000.0]
    amps, phases = TARGET_RESPONSES["ferrous"].tone_profile(freqs, 0.4)
    assert amps[0] == pytest.approx(0.4)
    assert amps[-1] == pytest.approx(0.2)
    assert phases[0] == 0.0
    assert np.all(np.diff(phases) < 0)
    assert phases[-1] == pytest.approx(math.radians(-24.0))

    coin_amps, coin_phases = TARGET_RESPONSES["coin"].tone_profile(freqs, 0.4)
    assert coin_amps[-1] / coin_amps[0] == pytest.approx(1.8)
    assert not np.any(coin_phases)
    assert TARGET_RESPONSES["gold"].tone_profile([], 0.4)[0].size == 0

    # Integer tones complete whole cycles at t = 2 s, the first pass peak.
    src = SyntheticBlockSource(8000, freqs, 512, 2.5, target="ferrous", soil_strength=0.0, quiet_s=1.0)
    signal = np.concatenate(list(src.blocks()))
    assert signal[16000] == pytest.approx(float(np.sum(amps * np.cos(phases))), abs=1e-9)


def test_jsonl_mirror_receives_the_same_frames(tmp_path: Path) -> None:
    frames = tmp_path / "frames.jsonl"
    mirror = tmp_path / "copy" / "frames.jsonl"
    code = main(["--simulate", *SMALL_RUN, "--jsonl", str(frames), "--jsonl-mirror", str(mirror)])
    assert code == ExitCode.SUCCESS
    primary = _read_jsonl(frames)
    copied = _read_jsonl(mirror)
    assert primary
    assert copied == primary

    assert main(["--simulate", *SMALL_RUN, "--jsonl-mirror", str(mirror)]) == ExitCode.INVALID_ARGS
