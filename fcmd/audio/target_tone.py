"""Audio feedback: map VDI onto a pentatonic pitch, pulsed when confidence is low."""

from __future__ import annotations

import math
from typing import List

import numpy as np

TWO_PI = 2.0 * math.pi

# C4..A6, two and a half octaves of the major pentatonic scale.
PENTATONIC_SCALE_HZ: List[float] = [
    261.63, 293.66, 329.63, 392.00, 440.00,
    523.25, 587.33, 659.25, 783.99, 880.00,
    1046.50, 1174.66, 1318.51, 1567.98, 1760.00,
]
NOTE_NAMES: List[str] = [
    "C4", "D4", "E4", "G4", "A4",
    "C5", "D5", "E5", "G5", "A5",
    "C6", "D6", "E6", "G6", "A6",
]

VDI_MAX = 99
PULSE_HZ = 3.0
CONTINUOUS_CONFIDENCE = 0.7
SILENT_CONFIDENCE = 0.1
FREQUENCY_SMOOTHING = 0.1
HEADROOM = 0.3


def vdi_to_frequency(vdi: int) -> float:
    """Interpolate between neighbouring scale notes for a smooth pitch sweep."""
    norm = min(max(int(vdi), 0), VDI_MAX) / float(VDI_MAX)
    exact = norm * (len(PENTATONIC_SCALE_HZ) - 1)
    lower = min(int(exact), len(PENTATONIC_SCALE_HZ) - 1)
    upper = min(lower + 1, len(PENTATONIC_SCALE_HZ) - 1)
    frac = exact - lower
    return PENTATONIC_SCALE_HZ[lower] * (1.0 - frac) + PENTATONIC_SCALE_HZ[upper] * frac


def note_name(vdi: int) -> str:
    norm = min(max(int(vdi), 0), VDI_MAX) / float(VDI_MAX)
    idx = min(int(norm * (len(NOTE_NAMES) - 1)), len(NOTE_NAMES) - 1)
    return NOTE_NAMES[idx]


class TargetToneGenerator:
    """Synthesise the target-indication tone block by block.

    Pitch follows the VDI; loudness follows confidence. Below
    CONTINUOUS_CONFIDENCE the tone is amplitude-modulated by a 3 Hz envelope.
    """

    def __init__(self, sample_rate: int = 48000):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.sample_rate = int(sample_rate)
        self.enabled = False
        self.volume = 1.0
        self.vdi = 0
        self.confidence = 0.0
        self.target_frequency = vdi_to_frequency(0)
        self._smoothed_frequency = 0.0
        self._phase = 0.0
        self._pulse_phase = 0.0

    @property
    def current_frequency(self) -> float:
        return self._smoothed_frequency

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)

    def set_volume(self, volume: float) -> None:
        self.volume = float(min(max(volume, 0.0), 1.0))

    def update_vdi(self, vdi: int, confidence: float) -> None:
        self.vdi = int(min(max(int(vdi), 0), VDI_MAX))
        self.confidence = float(min(max(confidence, 0.0), 1.0))
        self.target_frequency = vdi_to_frequency(self.vdi)

    def generate(self, num_samples: int) -> np.ndarray:
        n = max(0, int(num_samples))
        if self._smoothed_frequency == 0.0:
            self._smoothed_frequency = vdi_to_frequency(self.vdi)
        self._smoothed_frequency += (self.target_frequency - self._smoothed_frequency) * FREQUENCY_SMOOTHING

        steps = np.arange(n, dtype=np.float64)
        pulsing = self.confidence < CONTINUOUS_CONFIDENCE
        pulse_inc = TWO_PI * PULSE_HZ / self.sample_rate
        tone_inc = TWO_PI * self._smoothed_frequency / self.sample_rate

        if not self.enabled:
            envelope = np.zeros(n)
        elif pulsing:
            envelope = np.clip(np.sin(self._pulse_phase + pulse_inc * steps) * 0.5 + 0.5, 0.0, 1.0)
        else:
            envelope = np.ones(n)

        if self.enabled and self.confidence > SILENT_CONFIDENCE:
            level = (0.2 + 0.8 * self.confidence) * self.volume * HEADROOM
        else:
            level = 0.0

        out = np.sin(self._phase + tone_inc * steps) * envelope * level
        self._phase = (self._phase + tone_inc * n) % TWO_PI
        if pulsing:
            self._pulse_phase = (self._pulse_phase + pulse_inc * n) % TWO_PI
        return out.astype(np.float32)
