"""Quadrature (IQ) demodulation of the receive channel at the transmit tones."""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

import numpy as np
from scipy.signal import lfilter

from fcmd.discrimination.types import ToneAnalysis
from fcmd.util.math import iq_amplitude, iq_phase

TWO_PI = 2.0 * math.pi

# Single-pole low-pass coefficient; ~10 Hz effective bandwidth at typical block rates.
FILTER_ALPHA = 0.01


class ToneDemodulator:
    """Mix one reference tone down to DC and low-pass the I/Q products.

    The oscillator phase and the filter state carry over between calls, so
    consecutive blocks behave as one continuous stream.
    """

    def __init__(self, frequency: float, sample_rate: int, alpha: float = FILTER_ALPHA):
        if sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {sample_rate}")
        self.frequency = float(frequency)
        self.sample_rate = int(sample_rate)
        self.alpha = float(alpha)
        self.phase_increment = TWO_PI * self.frequency / self.sample_rate
        self._b = np.array([self.alpha])
        self._a = np.array([1.0, -(1.0 - self.alpha)])
        self._phase = 0.0
        self._iq = 0j  # filtered I + jQ after the last consumed sample

    @property
    def phase(self) -> float:
        return self._phase

    def analyze(self, samples: Sequence[float]) -> ToneAnalysis:
        x = np.asarray(samples, dtype=np.float64).ravel()
        n = x.size
        if n:
            phases = self._phase + self.phase_increment * np.arange(n)
            # i = x*cos(phase), q = -x*sin(phase)
            mixed = x * np.exp(-1j * phases)
            zi = np.array([(1.0 - self.alpha) * self._iq], dtype=np.complex128)
            filtered, _ = lfilter(self._b, self._a, mixed, zi=zi)
            self._iq = complex(filtered[-1])
            self._phase = (self._phase + self.phase_increment * n) % TWO_PI
        return self._snapshot()

    def _snapshot(self) -> ToneAnalysis:
        i = self._iq.real
        q = self._iq.imag
        return ToneAnalysis(
            frequency=self.frequency,
            amplitude=iq_amplitude(i, q),
            phase=iq_phase(i, q),
            in_phase=i,
            quadrature=q,
        )

    def reset(self) -> None:
        self._phase = 0.0
        self._iq = 0j


class MultiFrequencyDemodulator:
    """Independent tone demodulators sharing each input block."""

    def __init__(self, sample_rate: int, frequencies: Sequence[float]):
        self.sample_rate = int(sample_rate)
        self._frequencies = [float(f) for f in frequencies]
        self._demodulators = [ToneDemodulator(f, self.sample_rate) for f in self._frequencies]
        # Lazily built second bank for the transmit-reference channel.
        self._reference: List[ToneDemodulator] = []

    @property
    def frequencies(self) -> List[float]:
        return list(self._frequencies)

    def analyze_mono(self, samples: Sequence[float]) -> List[ToneAnalysis]:
        block = np.asarray(samples, dtype=np.float64).ravel()
        return [demod.analyze(block) for demod in self._demodulators]

    def analyze_stereo(
        self, left: Sequence[float], right: Sequence[float]
    ) -> Tuple[List[ToneAnalysis], List[ToneAnalysis]]:
        """Analyse the receive (left) and transmit-reference (right) channels."""
        if not self._reference:
            self._reference = [ToneDemodulator(f, self.sample_rate) for f in self._frequencies]
        right_block = np.asarray(right, dtype=np.float64).ravel()
        return self.analyze_mono(left), [demod.analyze(right_block) for demod in self._reference]

    def reset(self) -> None:
        for demod in self._demodulators:
            demod.reset()
        for demod in self._reference:
            demod.reset()
