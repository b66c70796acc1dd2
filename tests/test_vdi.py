import math
from typing import Sequence

import pytest

from fcmd.discrimination.types import TargetType, ToneAnalysis, VDIResult
from fcmd.discrimination.vdi import (
    DiscriminationEngine,
    classify_target,
    conductivity_index,
    describe_target,
    phase_consistency,
    raw_vdi,
)
from fcmd.dsp.tones import log_spaced_frequencies


def _tones(freqs: Sequence[float], amplitudes: Sequence[float], phases_deg: Sequence[float]):
    out = []
    for f, a, p in zip(freqs, amplitudes, phases_deg):
        rad = math.radians(p)
        out.append(
            ToneAnalysis(
                frequency=f,
                amplitude=a,
                phase=rad,
                in_phase=0.5 * a * math.cos(rad),
                quadrature=0.5 * a * math.sin(rad),
            )
        )
    return out


@pytest.mark.parametrize(
    "vdi,slope,expected",
    [
        (30, -5.0, TargetType.FERROUS),
        (30, 0.0, TargetType.LOW_CONDUCTOR),
        (31, -5.0, TargetType.LOW_CONDUCTOR),
        (45, 0.0, TargetType.LOW_CONDUCTOR),
        (46, 0.0, TargetType.MID_CONDUCTOR),
        (49, 0.0, TargetType.MID_CONDUCTOR),
        (50, 0.0, TargetType.GOLD_RANGE),
        (69, 0.0, TargetType.GOLD_RANGE),
        (70, 0.0, TargetType.HIGH_CONDUCTOR),
        (99, 0.0, TargetType.HIGH_CONDUCTOR),
    ],
)
def test_classification_boundaries(vdi: int, slope: float, expected: TargetType) -> None:
    assert classify_target(vdi, slope, consistency=1.0) is expected


def test_low_phase_consistency_is_unknown() -> None:
    assert classify_target(80, 0.0, consistency=0.29) is TargetType.UNKNOWN
    assert classify_target(80, 0.0, consistency=0.3) is TargetType.HIGH_CONDUCTOR


def test_raw_vdi_ferrous_branch() -> None:
    assert raw_vdi(-8.0, 0.9, 0.3) == 6
    assert raw_vdi(-20.0, 0.9, 0.3) == 0
    assert raw_vdi(-20.0, 0.9, 0.05) == 0


def test_raw_vdi_amplitude_nudge_and_clamp() -> None:
    assert raw_vdi(0.0, 0.0, 0.3) == 30
    assert raw_vdi(0.0, 0.0, 0.05) == 25
    assert raw_vdi(0.0, 0.0, 0.6) == 35
    assert raw_vdi(0.0, 1.0, 0.6) == 99


def test_raw_vdi_rounds_half_up() -> None:
    # 30 + 0.5 * 69 = 64.5
    assert raw_vdi(0.0, 0.5, 0.3) == 65


def test_vdi_non_decreasing_in_conductivity() -> None:
    values = [raw_vdi(1.0, c / 20.0, 0.3) for c in range(21)]
    assert values == sorted(values)
    assert all(0 <= v <= 99 for v in values)


def test_conductivity_with_two_tones_compares_endpoints() -> None:
    tones = _tones([1000.0, 8000.0], [0.2, 0.3], [0.0, 0.0])
    assert conductivity_index(tones) == pytest.approx(0.75)


def test_conductivity_neutral_for_weak_low_tones() -> None:
    tones = _tones([1000.0, 2000.0, 4000.0], [0.0005, 0.3, 0.3], [0.0, 0.0, 0.0])
    assert conductivity_index(tones) == 0.5


def test_phase_consistency_bounds() -> None:
    freqs = log_spaced_frequencies(1000.0, 10000.0, 8)
    assert phase_consistency(_tones(freqs, [0.3] * 8, [0.0] * 8)) == pytest.approx(1.0)
    assert phase_consistency(_tones(freqs, [0.3] * 8, [170.0, -170.0] * 4)) == 0.0


def test_high_conductor_scenario() -> None:
    freqs = log_spaced_frequencies(1000.0, 10000.0, 8)
    amps = [0.4, 0.4, 0.64, 0.64, 0.64, 0.64, 0.72, 0.72]
    result = DiscriminationEngine().calculate(_tones(freqs, amps, [0.0] * 8))
    assert result.conductivity_index == pytest.approx(0.9)
    assert result.phase_slope == pytest.approx(0.0)
    assert 85 <= result.vdi <= 99
    assert result.vdi == 97
    assert result.target_type is TargetType.HIGH_CONDUCTOR
    assert result.confidence == pytest.approx(0.88)
    assert result.confidence > 0.7


def test_ferrous_scenario() -> None:
    freqs = log_spaced_frequencies(1000.0, 10000.0, 8)
    phases = [-8.0 * (f - 1000.0) / 1000.0 for f in freqs]
    result = DiscriminationEngine().calculate(_tones(freqs, [0.3] * 8, phases))
    assert result.phase_slope == pytest.approx(-8.0)
    assert result.vdi == 6
    assert result.target_type is TargetType.FERROUS


def test_scattered_phases_are_unknown() -> None:
    freqs = log_spaced_frequencies(1000.0, 10000.0, 8)
    result = DiscriminationEngine().calculate(_tones(freqs, [0.3] * 8, [170.0, -170.0] * 4))
    assert result.target_type is TargetType.UNKNOWN
    assert result.confidence == pytest.approx(0.09)


def test_empty_input_is_neutral() -> None:
    result = DiscriminationEngine().calculate([])
    assert result == VDIResult(50, 0.0, TargetType.UNKNOWN, 0.0, 0.0)
    assert result.depth_estimate is None


def test_describe_target() -> None:
    result = VDIResult(85, 0.9, TargetType.HIGH_CONDUCTOR, 0.0, 0.9)
    assert describe_target(result) == "High Conductor (Cu/Ag) | Confidence: High"
    weak = VDIResult(20, 0.2, TargetType.FERROUS, -6.0, 0.5)
    assert describe_target(weak) == "Ferrous (Iron/Steel) | Confidence: Very Low"
