"""Numeric helper functions used across DSP logic."""

from __future__ import annotations

import math

import numpy as np


def db20(x: float) -> float:
    """Return 20 * log10(x) with a floor to keep inputs positive."""
    return 20.0 * math.log10(max(float(x), 1e-10))


def clamp(value: float, low: float, high: float) -> float:
    return float(min(max(value, low), high))


def iq_amplitude(i: float, q: float) -> float:
    """Tone amplitude from filtered mixer outputs (x2 restores the mixing loss)."""
    return 2.0 * math.hypot(i, q)


def iq_phase(i: float, q: float) -> float:
    return math.atan2(q, i)


def round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def mean_amplitude(values) -> float:
    """Mean of a sequence of amplitudes; 0.0 for an empty sequence."""
    arr = np.asarray(list(values), dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(np.mean(arr))
