"""VDI discrimination: phase slope and conductivity across the tone vector."""

from __future__ import annotations

import logging
from typing import Callable, List, Sequence, Tuple

import numpy as np

from fcmd.discrimination.types import TargetType, ToneAnalysis, VDIResult
from fcmd.util.logging import get_logger
from fcmd.util.math import clamp, mean_amplitude, round_half_up

logger = get_logger(__name__)

VDI_MIN = 0
VDI_MAX = 99

FERROUS_MAX = 30
LOW_CONDUCTOR_MAX = 45
GOLD_RANGE_MIN = 50
GOLD_RANGE_MAX = 70
HIGH_CONDUCTOR_MIN = 70

# Slope below this (deg/kHz) is required for a FERROUS call.
FERROUS_SLOPE = -3.0
# Slope at which the ferrous branch bottoms out at VDI 0.
FERROUS_FULL_SLOPE = -10.0
NON_FERROUS_BASE = 30
NON_FERROUS_SPAN = 69

# Empirical amplitude nudge: strong signals read slightly higher, weak ones lower.
# Tuning values without a physical derivation; keep unless recalibrated.
AMPLITUDE_NUDGE = 5
STRONG_SIGNAL = 0.5
WEAK_SIGNAL = 0.1

MIN_PHASE_CONSISTENCY = 0.3
LOW_AMPLITUDE_FLOOR = 0.001
NEUTRAL_CONDUCTIVITY = 0.5

_Rule = Tuple[Callable[[int, float], bool], TargetType]

# Evaluated top to bottom, first match wins. 70 therefore lands in HIGH_CONDUCTOR
# before the gold band can claim it, and 50..69 is GOLD_RANGE rather than MID.
CLASSIFICATION_RULES: Tuple[_Rule, ...] = (
    (lambda vdi, slope: vdi <= FERROUS_MAX and slope < FERROUS_SLOPE, TargetType.FERROUS),
    (lambda vdi, slope: vdi <= LOW_CONDUCTOR_MAX, TargetType.LOW_CONDUCTOR),
    (lambda vdi, slope: vdi >= HIGH_CONDUCTOR_MIN, TargetType.HIGH_CONDUCTOR),
    (lambda vdi, slope: GOLD_RANGE_MIN <= vdi <= GOLD_RANGE_MAX, TargetType.GOLD_RANGE),
    (lambda vdi, slope: LOW_CONDUCTOR_MAX < vdi < HIGH_CONDUCTOR_MIN, TargetType.MID_CONDUCTOR),
)


def _third(n: int) -> int:
    # Two tones still compare first against last.
    return max(1, n // 3)


def phase_slope(analysis: Sequence[ToneAnalysis]) -> float:
    """Endpoint phase slope in degrees per kHz between the lowest and highest tone."""
    if len(analysis) < 2:
        return 0.0
    lowest = analysis[0]
    highest = analysis[-1]
    freq_khz = (highest.frequency - lowest.frequency) / 1000.0
    if freq_khz == 0:
        return 0.0
    return (highest.phase_degrees() - lowest.phase_degrees()) / freq_khz


def conductivity_index(analysis: Sequence[ToneAnalysis]) -> float:
    """High-third over low-third mean amplitude, clamped to [0, 2] and halved."""
    if len(analysis) < 2:
        return NEUTRAL_CONDUCTIVITY
    k = _third(len(analysis))
    low_amp = mean_amplitude(t.amplitude for t in analysis[:k])
    high_amp = mean_amplitude(t.amplitude for t in analysis[-k:])
    if low_amp < LOW_AMPLITUDE_FLOOR:
        return NEUTRAL_CONDUCTIVITY
    return clamp(high_amp / low_amp, 0.0, 2.0) / 2.0


def phase_consistency(analysis: Sequence[ToneAnalysis]) -> float:
    """1 - (population std-dev of phases in degrees / 90), clamped to [0, 1]."""
    if len(analysis) < 2:
        return 0.0
    phases = np.array([t.phase_degrees() for t in analysis], dtype=np.float64)
    std = float(np.std(phases))
    return 1.0 - clamp(std / 90.0, 0.0, 1.0)


def raw_vdi(slope: float, conductivity: float, avg_amplitude: float) -> int:
    if slope < 0:
        normalized = clamp(slope / FERROUS_FULL_SLOPE, 0.0, 1.0)
        vdi = round_half_up(FERROUS_MAX * (1.0 - normalized))
    else:
        vdi = round_half_up(NON_FERROUS_BASE + conductivity * NON_FERROUS_SPAN)
    if avg_amplitude > STRONG_SIGNAL:
        vdi += AMPLITUDE_NUDGE
    elif avg_amplitude < WEAK_SIGNAL:
        vdi -= AMPLITUDE_NUDGE
    return int(min(max(vdi, VDI_MIN), VDI_MAX))


def classify_target(vdi: int, slope: float, consistency: float) -> TargetType:
    if consistency < MIN_PHASE_CONSISTENCY:
        return TargetType.UNKNOWN
    for predicate, target in CLASSIFICATION_RULES:
        if predicate(vdi, slope):
            return target
    return TargetType.UNKNOWN


def confidence_score(avg_amplitude: float, consistency: float) -> float:
    return 0.3 * clamp(avg_amplitude, 0.0, 1.0) + 0.7 * consistency


def describe_target(result: VDIResult) -> str:
    if result.confidence > 0.8:
        conf = "High"
    elif result.confidence > 0.5:
        conf = "Medium"
    elif result.confidence > 0.3:
        conf = "Low"
    else:
        conf = "Very Low"
    return f"{result.target_type.description} | Confidence: {conf}"


class DiscriminationEngine:
    """Turn a balanced tone vector (ascending frequency) into a VDIResult."""

    def calculate(self, analysis: Sequence[ToneAnalysis]) -> VDIResult:
        if not analysis:
            return VDIResult(50, 0.0, TargetType.UNKNOWN, 0.0, 0.0)

        tones: List[ToneAnalysis] = list(analysis)
        slope = phase_slope(tones)
        avg_amplitude = mean_amplitude(t.amplitude for t in tones)
        conductivity = conductivity_index(tones)
        consistency = phase_consistency(tones)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "VDI inputs: avgAmp=%.4f phaseSlope=%.2f deg/kHz conductivity=%.2f consistency=%.3f",
                avg_amplitude,
                slope,
                conductivity,
                consistency,
            )

        vdi = raw_vdi(slope, conductivity, avg_amplitude)
        target = classify_target(vdi, slope, consistency)
        confidence = confidence_score(avg_amplitude, consistency)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "VDI result: vdi=%d confidence=%.1f%% type=%s",
                vdi,
                confidence * 100.0,
                target.value,
                extra={"vdi": vdi},
            )
        return VDIResult(vdi, confidence, target, slope, conductivity)
