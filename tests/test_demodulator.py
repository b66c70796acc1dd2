import math

import numpy as np
import pytest

from fcmd.dsp.demodulator import MultiFrequencyDemodulator, ToneDemodulator

FS = 44100


def _cosine(freq: float, amplitude: float, phase: float, n: int, fs: int = FS) -> np.ndarray:
    t = np.arange(n, dtype=np.float64) / fs
    return amplitude * np.cos(2.0 * np.pi * freq * t + phase)


def test_single_tone_converges_to_amplitude_and_phase() -> None:
    demod = ToneDemodulator(1000.0, FS)
    result = demod.analyze(_cosine(1000.0, 0.5, 0.3, FS))
    assert result.frequency == 1000.0
    assert result.amplitude == pytest.approx(0.5, abs=0.05)
    assert result.phase == pytest.approx(0.3, abs=0.1)


def test_blocked_input_matches_single_pass() -> None:
    signal = _cosine(2500.0, 0.4, -1.0, 8192)
    whole = ToneDemodulator(2500.0, FS).analyze(signal)
    blocked = ToneDemodulator(2500.0, FS)
    for start in range(0, signal.size, 1024):
        last = blocked.analyze(signal[start : start + 1024])
    assert last.in_phase == pytest.approx(whole.in_phase, abs=1e-9)
    assert last.quadrature == pytest.approx(whole.quadrature, abs=1e-9)


def test_zero_input_gives_zero_amplitude() -> None:
    result = ToneDemodulator(1000.0, FS).analyze(np.zeros(2048))
    assert result.amplitude == 0.0


def test_zero_blocks_after_a_tone_never_raise_amplitude() -> None:
    demod = ToneDemodulator(1000.0, FS)
    previous = demod.analyze(_cosine(1000.0, 0.5, 0.0, 8192)).amplitude
    assert previous == pytest.approx(0.5, abs=0.05)
    for _ in range(8):
        amplitude = demod.analyze(np.zeros(256)).amplitude
        assert amplitude <= previous
        previous = amplitude
    assert previous < 0.01


def test_matched_tone_settles_within_a_few_blocks() -> None:
    demod = ToneDemodulator(1000.0, FS)
    signal = _cosine(1000.0, 0.5, 0.0, 256 * 16)
    amplitudes = [demod.analyze(signal[start : start + 256]).amplitude for start in range(0, signal.size, 256)]
    for amplitude in amplitudes[8:]:
        assert amplitude == pytest.approx(0.5, abs=0.05)


def test_empty_block_returns_previous_state() -> None:
    demod = ToneDemodulator(1000.0, FS)
    first = demod.analyze(_cosine(1000.0, 0.5, 0.0, 4096))
    phase_before = demod.phase
    again = demod.analyze([])
    assert again == first
    assert demod.phase == phase_before


def test_phase_wraps_into_one_turn() -> None:
    demod = ToneDemodulator(9000.0, FS)
    demod.analyze(np.zeros(10000))
    assert 0.0 <= demod.phase < 2.0 * math.pi


def test_reset_clears_filter_and_oscillator() -> None:
    demod = ToneDemodulator(1000.0, FS)
    demod.analyze(_cosine(1000.0, 0.5, 0.0, 4096))
    demod.reset()
    assert demod.phase == 0.0
    assert demod.analyze([]).amplitude == 0.0


def test_non_positive_sample_rate_rejected() -> None:
    with pytest.raises(ValueError):
        ToneDemodulator(1000.0, 0)


def test_multi_frequency_separates_tones() -> None:
    bank = MultiFrequencyDemodulator(FS, [1000.0, 5000.0])
    signal = _cosine(1000.0, 0.3, 0.0, FS) + _cosine(5000.0, 0.6, 0.0, FS)
    low, high = bank.analyze_mono(signal)
    assert low.amplitude == pytest.approx(0.3, abs=0.05)
    assert high.amplitude == pytest.approx(0.6, abs=0.05)
    assert bank.frequencies == [1000.0, 5000.0]


def test_stereo_channels_are_independent() -> None:
    bank = MultiFrequencyDemodulator(FS, [2000.0])
    left = _cosine(2000.0, 0.5, 0.0, FS)
    right = _cosine(2000.0, 0.2, 0.0, FS)
    rx, ref = bank.analyze_stereo(left, right)
    assert rx[0].amplitude == pytest.approx(0.5, abs=0.05)
    assert ref[0].amplitude == pytest.approx(0.2, abs=0.05)

    bank.reset()
    rx, ref = bank.analyze_stereo([], [])
    assert rx[0].amplitude == 0.0
    assert ref[0].amplitude == 0.0
