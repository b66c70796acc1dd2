"""
Configuration constants and environment parsing for fcmd.

All FCMD_* environment variables are parsed here and exported as module-level
constants. Pipeline components and the CLI import from this module rather than
reading os.environ directly.
"""
from __future__ import annotations

import os


def _int_env(name: str, default: int) -> int:
    """Parse an integer from environment, returning default on missing/invalid."""
    val = os.getenv(name)
    if not val:
        return default
    try:
        return max(1, int(float(val)))
    except Exception:
        return default


def _float_env(name: str, default: float) -> float:
    """Parse a positive float from environment, returning default on missing/invalid."""
    val = os.getenv(name)
    if not val:
        return default
    try:
        parsed = float(val)
    except Exception:
        return default
    return parsed if parsed > 0 else default


# ---------------------------------------------------------------------------
# Audio transport
# ---------------------------------------------------------------------------
SAMPLE_RATE: int = _int_env("FCMD_SAMPLE_RATE", 44100)
"""Sample rate of the receive channel in Hz."""

BLOCK_SIZE: int = _int_env("FCMD_BLOCK_SIZE", 1024)
"""Mono samples per block delivered by the audio transport."""


# ---------------------------------------------------------------------------
# Callback pacing
# ---------------------------------------------------------------------------
DEFAULT_UPDATE_RATE_HZ: float = _float_env("FCMD_UPDATE_RATE_HZ", 30.0)
"""Target rate at which composed frames are handed to the callback."""

ASSUMED_BLOCK_RATE_HZ: float = 47.0
"""Block rate assumed until the first wall-clock second has been measured."""

RATE_CHANGE_TOLERANCE: float = 0.1
"""Relative change in measured block rate that triggers an interval update."""

MIN_UPDATE_RATE_HZ: float = 0.1


# ---------------------------------------------------------------------------
# Frequency plan
# ---------------------------------------------------------------------------
MIN_FREQUENCY_HZ: float = 20.0
MAX_FREQUENCY_HZ: float = 20000.0
MAX_TONES: int = 24
DEFAULT_MIN_FREQUENCY_HZ: float = 1000.0
DEFAULT_MAX_FREQUENCY_HZ: float = 10000.0
DEFAULT_TONE_COUNT: int = 8


# ---------------------------------------------------------------------------
# Ground balance
# ---------------------------------------------------------------------------
GB_CAPTURE_CAPACITY: int = _int_env("FCMD_GB_CAPTURE_CAPACITY", 256)
"""Maximum analysis vectors retained during a manual pump capture."""

GB_OFFSET_LIMIT: int = 50
"""Ground-balance offset is clamped to +/- this value (maps to +/- 45 degrees)."""
