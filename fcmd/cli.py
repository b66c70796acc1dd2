#!/usr/bin/env python3
"""fcmd detector CLI entrypoint (package module)."""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, List, Optional, Set

from fcmd.config import (
    BLOCK_SIZE,
    DEFAULT_MAX_FREQUENCY_HZ,
    DEFAULT_MIN_FREQUENCY_HZ,
    DEFAULT_TONE_COUNT,
    DEFAULT_UPDATE_RATE_HZ,
    SAMPLE_RATE,
)
from fcmd.io.profiles import default_profiles, serialize_profiles
from fcmd.io.sources import TARGET_RESPONSES
from fcmd.pipeline.runner import DetectorRunner
from fcmd.util.duration import parse_duration_to_seconds
from fcmd.util.exit_codes import ExitCode
from fcmd.util.logging import configure_logging, get_logger, log_exception

logger = get_logger(__name__)

GB_MODE_CHOICES = ["off", "manual", "auto", "manual_tracking"]


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    if argv is None:
        argv = sys.argv[1:]

    p = argparse.ArgumentParser(
        prog="fcmd",
        description="Multi-frequency metal detector pipeline: demodulation, ground balance, VDI and depth",
        argument_default=argparse.SUPPRESS,
    )
    source = p.add_mutually_exclusive_group()
    source.add_argument("--wav", type=str, help="Process the receive channel of this WAV file (first channel if stereo)")
    source.add_argument("--simulate", action="store_true", help="Synthesise a coil sweeping over soil and a target")

    p.add_argument("--profile", type=str, help="Detector profile name to pre-load defaults (see --list-profiles)")
    p.add_argument("--list-profiles", dest="list_profiles", action="store_true", help="Print built-in detector profiles as JSON and exit")

    p.add_argument("--min-freq", dest="min_freq", type=float, help=f"Lowest tone in Hz (default {DEFAULT_MIN_FREQUENCY_HZ:.0f})")
    p.add_argument("--max-freq", dest="max_freq", type=float, help=f"Highest tone in Hz (default {DEFAULT_MAX_FREQUENCY_HZ:.0f})")
    p.add_argument("--tones", type=int, help=f"Number of tones, 1-24 (default {DEFAULT_TONE_COUNT})")
    p.add_argument("--spacing", choices=["log", "linear"], help="Tone spacing across the band (default log)")
    p.add_argument("--update-rate", dest="update_rate", type=float, help=f"Frame callback rate in Hz (default {DEFAULT_UPDATE_RATE_HZ:g})")
    p.add_argument("--block-size", dest="block_size", type=int, help=f"Samples per block (default {BLOCK_SIZE})")
    p.add_argument("--sample-rate", dest="sample_rate", type=int, help=f"Sample rate for --simulate in Hz (default {SAMPLE_RATE})")

    p.add_argument("--gb-mode", dest="gb_mode", choices=GB_MODE_CHOICES, help="Ground balance mode (default off)")
    p.add_argument("--gb-offset", dest="gb_offset", type=int, help="Ground balance offset, -50..50 (default 0)")
    p.add_argument(
        "--pump-seconds",
        dest="pump_seconds",
        type=float,
        help="Capture the manual ground balance over the first N seconds (manual modes only)",
    )

    p.add_argument("--duration", type=str, help="Length of a simulated run (e.g., '5', '10s', '1m') (default 5s)")
    p.add_argument(
        "--target-type",
        dest="target_type",
        choices=sorted(TARGET_RESPONSES),
        help="Simulated target reflection model, not a guaranteed class (default coin)",
    )
    p.add_argument("--target-strength", dest="target_strength", type=float, help="Peak simulated target amplitude per tone (default 0.4)")
    p.add_argument("--soil-strength", dest="soil_strength", type=float, help="Simulated soil amplitude per tone (default 0.05)")
    p.add_argument("--noise", type=float, help="Gaussian noise standard deviation for --simulate (default 0)")
    p.add_argument("--seed", type=int, help="Random seed for simulated noise")

    p.add_argument("--jsonl", type=str, help="Emit frames as line-delimited JSON to this path")
    p.add_argument(
        "--jsonl-mirror",
        dest="jsonl_mirror",
        action="append",
        help="Also append frames to this path (repeatable; requires --jsonl)",
    )
    p.add_argument("--feedback-wav", dest="feedback_wav", type=str, help="Render the target-indication tone to this WAV file")
    p.add_argument("--write-tx", dest="write_tx", type=str, help="Render the multi-tone transmit waveform to this WAV file")
    p.add_argument("--log-level", dest="log_level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Console log level")
    p.add_argument("--log-json", dest="log_json", type=str, help="Also write JSON-formatted logs to this path")

    args = p.parse_args(argv)
    args._cli_overrides = set()

    _set_default(args, args._cli_overrides, "wav", None)
    _set_default(args, args._cli_overrides, "simulate", False)
    _set_default(args, args._cli_overrides, "profile", None)
    _set_default(args, args._cli_overrides, "list_profiles", False)
    _set_default(args, args._cli_overrides, "min_freq", DEFAULT_MIN_FREQUENCY_HZ)
    _set_default(args, args._cli_overrides, "max_freq", DEFAULT_MAX_FREQUENCY_HZ)
    _set_default(args, args._cli_overrides, "tones", DEFAULT_TONE_COUNT)
    _set_default(args, args._cli_overrides, "spacing", "log")
    _set_default(args, args._cli_overrides, "update_rate", DEFAULT_UPDATE_RATE_HZ)
    _set_default(args, args._cli_overrides, "block_size", BLOCK_SIZE)
    _set_default(args, args._cli_overrides, "sample_rate", SAMPLE_RATE)
    _set_default(args, args._cli_overrides, "gb_mode", "off")
    _set_default(args, args._cli_overrides, "gb_offset", 0)
    _set_default(args, args._cli_overrides, "pump_seconds", 0.0)
    _set_default(args, args._cli_overrides, "duration", None)
    _set_default(args, args._cli_overrides, "target_type", "coin")
    _set_default(args, args._cli_overrides, "target_strength", 0.4)
    _set_default(args, args._cli_overrides, "soil_strength", 0.05)
    _set_default(args, args._cli_overrides, "noise", 0.0)
    _set_default(args, args._cli_overrides, "seed", None)
    _set_default(args, args._cli_overrides, "jsonl", None)
    _set_default(args, args._cli_overrides, "jsonl_mirror", None)
    _set_default(args, args._cli_overrides, "feedback_wav", None)
    _set_default(args, args._cli_overrides, "write_tx", None)
    _set_default(args, args._cli_overrides, "log_level", None)
    _set_default(args, args._cli_overrides, "log_json", None)

    if not args.list_profiles and not args.wav and not args.simulate:
        p.error("one of --wav or --simulate is required unless --list-profiles is used")

    _apply_profile(args, p)

    if hasattr(args, "_cli_overrides"):
        delattr(args, "_cli_overrides")

    if not args.list_profiles:
        if args.block_size <= 0:
            p.error("--block-size must be > 0")
        if args.sample_rate <= 0:
            p.error("--sample-rate must be > 0")
        if args.update_rate <= 0:
            p.error("--update-rate must be > 0")
        if args.pump_seconds < 0:
            p.error("--pump-seconds must be >= 0")
        if args.noise < 0:
            p.error("--noise must be >= 0")
        if args.jsonl_mirror and not args.jsonl:
            p.error("--jsonl-mirror requires --jsonl")

    if args.duration:
        try:
            parse_duration_to_seconds(args.duration)
        except argparse.ArgumentTypeError as exc:
            p.error(str(exc))

    return args


def _set_default(args: argparse.Namespace, overrides: Set[str], attr: str, value: Any) -> None:
    if hasattr(args, attr):
        overrides.add(attr)
    else:
        setattr(args, attr, value)


def _apply_profile(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    profile_name = getattr(args, "profile", None)
    if not profile_name:
        return
    profile = default_profiles().get(str(profile_name).lower())
    if not profile:
        parser.error(f"Unknown detector profile '{profile_name}'. Use --list-profiles to inspect options.")

    overrides: Set[str] = getattr(args, "_cli_overrides", set())

    def maybe_set(attr: str, value: Any) -> None:
        if value is None:
            return
        if attr in overrides:
            return
        setattr(args, attr, value)

    maybe_set("min_freq", profile.min_freq_hz)
    maybe_set("max_freq", profile.max_freq_hz)
    maybe_set("tones", profile.tones)
    maybe_set("spacing", profile.spacing)
    maybe_set("update_rate", profile.update_rate_hz)
    maybe_set("gb_mode", profile.gb_mode)
    maybe_set("gb_offset", profile.gb_offset)

    logger.info("Applied profile '%s'", profile.name)


def _emit_profiles_json() -> None:
    payload = serialize_profiles()
    print(json.dumps(payload, indent=2, sort_keys=True))


def main(argv: Optional[List[str]] = None) -> int:
    try:
        args = parse_args(argv)
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else ExitCode.INVALID_ARGS

    configure_logging(level=args.log_level, json_file=args.log_json)

    if args.list_profiles:
        _emit_profiles_json()
        return ExitCode.SUCCESS

    try:
        runner = DetectorRunner(args)
    except OSError:
        log_exception(logger, f"Could not open frame log {args.jsonl}", error_type="output")
        return ExitCode.OUTPUT_ERROR

    try:
        source = runner.open_source()
    except (OSError, ValueError):
        log_exception(logger, f"Could not read {args.wav}", error_type="wav_read")
        return ExitCode.INPUT_ERROR

    try:
        runner.run(source)
    except OSError:
        log_exception(logger, "Could not write output", error_type="output")
        return ExitCode.OUTPUT_ERROR
    except Exception as exc:
        log_exception(logger, "Run failed", error_type=type(exc).__name__)
        return ExitCode.GENERAL_ERROR
    return ExitCode.SUCCESS


if __name__ == "__main__":
    sys.exit(main())
