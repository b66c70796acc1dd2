"""Transmit tone plans and the multi-tone excitation synthesizer."""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np

from fcmd.config import MAX_FREQUENCY_HZ, MAX_TONES, MIN_FREQUENCY_HZ

TWO_PI = 2.0 * math.pi


def clamp_frequency_plan(min_hz: float, max_hz: float, count: int) -> Tuple[float, float, int]:
    """Clamp a requested (min, max, count) plan to what the hardware path supports."""
    low = float(np.clip(min_hz, MIN_FREQUENCY_HZ, MAX_FREQUENCY_HZ))
    high = float(np.clip(max_hz, low, MAX_FREQUENCY_HZ))
    tones = int(np.clip(int(count), 1, MAX_TONES))
    return low, high, tones


def log_spaced_frequencies(min_hz: float, max_hz: float, count: int) -> List[float]:
    """Logarithmically spaced tones from min to max; a single tone sits at min."""
    low, high, tones = clamp_frequency_plan(min_hz, max_hz, count)
    if tones == 1:
        return [low]
    return [float(f) for f in np.geomspace(low, high, tones)]


def linear_spaced_frequencies(min_hz: float, max_hz: float, count: int) -> List[float]:
    low, high, tones = clamp_frequency_plan(min_hz, max_hz, count)
    if tones == 1:
        return [low]
    return [float(f) for f in np.linspace(low, high, tones)]


class MultiToneGenerator:
    """Phase-continuous sum of sine tones, scaled by 1/N to avoid clipping."""

    def __init__(self, sample_rate: int, frequencies: Sequence[float]):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = int(sample_rate)
        self.frequencies = [float(f) for f in frequencies]
        self._increments = np.array([TWO_PI * f / self.sample_rate for f in self.frequencies], dtype=np.float64)
        self._phases = np.zeros(len(self.frequencies), dtype=np.float64)

    @classmethod
    def log_spaced(cls, min_hz: float, max_hz: float, count: int, sample_rate: int) -> "MultiToneGenerator":
        return cls(sample_rate, log_spaced_frequencies(min_hz, max_hz, count))

    @classmethod
    def linear_spaced(cls, min_hz: float, max_hz: float, count: int, sample_rate: int) -> "MultiToneGenerator":
        return cls(sample_rate, linear_spaced_frequencies(min_hz, max_hz, count))

    def generate(self, num_samples: int) -> np.ndarray:
        n = max(0, int(num_samples))
        if not self.frequencies or n == 0:
            return np.zeros(n, dtype=np.float32)
        steps = np.arange(n, dtype=np.float64)
        # (tones, samples) phase grid
        grid = self._phases[:, None] + self._increments[:, None] * steps[None, :]
        out = np.sin(grid).sum(axis=0) / len(self.frequencies)
        self._phases = (self._phases + self._increments * n) % TWO_PI
        return out.astype(np.float32)

    def reset(self) -> None:
        self._phases[:] = 0.0
