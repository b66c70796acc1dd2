"""Block sources feeding the pipeline: recorded WAV files and a synthetic coil."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple

import numpy as np
from scipy.io import wavfile

TWO_PI = 2.0 * math.pi


def to_float_mono(data: np.ndarray) -> np.ndarray:
    """Normalise integer PCM to [-1, 1] and keep the first (receive) channel."""
    arr = np.asarray(data)
    if arr.ndim > 1:
        arr = arr[:, 0]
    if arr.dtype == np.uint8:
        return (arr.astype(np.float64) - 128.0) / 128.0
    if np.issubdtype(arr.dtype, np.integer):
        return arr.astype(np.float64) / float(np.iinfo(arr.dtype).max + 1)
    return arr.astype(np.float64)


class WavBlockSource:
    """Yield fixed-size mono blocks from a WAV file; the last block may be short."""

    def __init__(self, path: str, block_size: int):
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")
        self.path = path
        self.block_size = int(block_size)
        rate, data = wavfile.read(path)
        if rate <= 0:
            raise ValueError(f"{path}: invalid sample rate {rate}")
        self.sample_rate = int(rate)
        self._samples = to_float_mono(data)

    @property
    def duration_s(self) -> float:
        return self._samples.size / float(self.sample_rate)

    def blocks(self) -> Iterator[np.ndarray]:
        for start in range(0, self._samples.size, self.block_size):
            yield self._samples[start : start + self.block_size]


@dataclass(frozen=True)
class TargetResponse:
    """Per-tone reflection of a buried object.

    ``phase_slope_deg_per_khz`` sets how the received phase moves across the
    plan; ``hf_ratio`` is the highest tone's amplitude relative to the lowest,
    with geometric interpolation in between.
    """

    name: str
    phase_slope_deg_per_khz: float
    hf_ratio: float

    def tone_profile(self, frequencies: Sequence[float], strength: float) -> Tuple[np.ndarray, np.ndarray]:
        """Per-tone amplitude and phase (radians) of the raw reflection.

        The name describes the object being modelled, not a guaranteed
        classification: the VDI and class a run reports also depend on the tone
        plan and on leakage between neighbouring tones through the demodulator
        filters.
        """
        freqs = np.asarray(frequencies, dtype=np.float64)
        if freqs.size == 0:
            return np.zeros(0), np.zeros(0)
        pos = np.zeros(1) if freqs.size == 1 else np.linspace(0.0, 1.0, freqs.size)
        amps = strength * np.power(self.hf_ratio, pos)
        phases = np.radians(self.phase_slope_deg_per_khz * (freqs - freqs[0]) / 1000.0)
        return amps, phases


TARGET_RESPONSES: Dict[str, TargetResponse] = {
    "none": TargetResponse("none", 0.0, 1.0),
    "ferrous": TargetResponse("ferrous", -8.0, 0.5),
    "foil": TargetResponse("foil", 0.5, 0.3),
    "brass": TargetResponse("brass", 0.2, 0.5),
    "gold": TargetResponse("gold", 0.1, 0.9),
    "coin": TargetResponse("coin", 0.0, 1.8),
}


class SyntheticBlockSource:
    """Simulate the receive channel while the coil sweeps over soil and a target.

    The soil contributes a constant response at ``soil_phase_deg`` on every
    tone. The target response is scaled by a raised-cosine pass every
    ``sweep_period_s`` seconds, starting after ``quiet_s`` seconds of soil only
    (room for a pump capture).

    ``target`` selects a raw reflection model from :data:`TARGET_RESPONSES`.
    At the default plan a "coin" or "gold" pass can still read as a low
    conductor; see :meth:`TargetResponse.tone_profile`.
    """

    def __init__(
        self,
        sample_rate: int,
        frequencies: Sequence[float],
        block_size: int,
        duration_s: float,
        *,
        target: str = "coin",
        target_strength: float = 0.4,
        soil_strength: float = 0.05,
        soil_phase_deg: float = -80.0,
        noise_level: float = 0.0,
        sweep_period_s: float = 2.0,
        quiet_s: float = 1.0,
        seed: Optional[int] = None,
    ):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        if block_size <= 0:
            raise ValueError(f"block_size must be positive, got {block_size}")
        if target not in TARGET_RESPONSES:
            raise ValueError(f"Unknown target '{target}' (choose from {', '.join(sorted(TARGET_RESPONSES))})")
        self.sample_rate = int(sample_rate)
        self.frequencies = [float(f) for f in frequencies]
        self.block_size = int(block_size)
        self.duration_s = max(0.0, float(duration_s))
        self.target = TARGET_RESPONSES[target]
        self.target_strength = 0.0 if target == "none" else float(target_strength)
        self.soil_strength = float(soil_strength)
        self.soil_phase = math.radians(soil_phase_deg)
        self.noise_level = max(0.0, float(noise_level))
        self.sweep_period_s = max(1e-3, float(sweep_period_s))
        self.quiet_s = max(0.0, float(quiet_s))
        self._rng = np.random.default_rng(seed)
        self._amps, self._phases = self._target_profile()

    def _target_profile(self):
        return self.target.tone_profile(self.frequencies, self.target_strength)

    def envelope(self, t: np.ndarray) -> np.ndarray:
        """Target pass envelope in [0, 1]; zero during the quiet lead-in."""
        since = t - self.quiet_s
        cycle = np.mod(since, self.sweep_period_s) / self.sweep_period_s
        env = 0.5 - 0.5 * np.cos(TWO_PI * cycle)
        return np.where(since < 0.0, 0.0, env)

    def blocks(self) -> Iterator[np.ndarray]:
        total = int(round(self.duration_s * self.sample_rate))
        freqs = np.asarray(self.frequencies, dtype=np.float64)
        for start in range(0, total, self.block_size):
            n = min(self.block_size, total - start)
            t = (start + np.arange(n, dtype=np.float64)) / self.sample_rate
            carrier = TWO_PI * freqs[:, None] * t[None, :]
            target = (self._amps[:, None] * np.cos(carrier + self._phases[:, None])).sum(axis=0)
            soil = (self.soil_strength * np.cos(carrier + self.soil_phase)).sum(axis=0)
            block = self.envelope(t) * target + soil
            if self.noise_level > 0.0:
                block = block + self._rng.normal(0.0, self.noise_level, size=n)
            yield block
