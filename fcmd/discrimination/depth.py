"""Categorical depth estimation.

Signal strength alone cannot separate a large deep target from a small
shallow one, and orientation, soil moisture and mineralisation all move the
reading. The estimator therefore combines three cues and only reports an
ordinal band:

1. Average amplitude across tones, mapped through an inverse power law.
2. Low/high frequency amplitude ratio: skin effect attenuates the high tones
   faster as depth increases.
3. Expected target size from the VDI classification, trusted only when the
   VDI itself is reasonably confident.

Thresholds are conservative; bury test targets at known depths and use
:meth:`DepthEstimator.calibrate` to tune them for a given soil.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence

from fcmd.discrimination.types import DepthCategory, DepthEstimate, TargetType, ToneAnalysis, VDIResult
from fcmd.util.logging import get_logger
from fcmd.util.math import clamp, mean_amplitude

logger = get_logger(__name__)

SURFACE_THRESHOLD = 1.2
SHALLOW_THRESHOLD = 2.2
MEDIUM_THRESHOLD = 3.8
DEEP_THRESHOLD = 6.0

# Signal ~ 1/depth^n with n near 2.85; 0.35 is its inverse after field tuning.
# Empirical constant; keep unless recalibrated against buried targets.
AMPLITUDE_EXPONENT = 0.35

MIN_AMPLITUDE = 0.02
WEAK_SIGNAL_CONFIDENCE = 0.1
WEAK_SIGNAL_DEPTH_FACTOR = 999.0

FREQ_RATIO_MIN = 0.8
FREQ_RATIO_MAX = 2.5
HIGH_AMPLITUDE_FLOOR = 0.001

MIN_VDI_CONFIDENCE = 0.4
MAX_CONFIDENCE = 0.9

SIZE_NORMALIZATION: Dict[TargetType, float] = {
    TargetType.HIGH_CONDUCTOR: 1.5,  # coins: copper, silver
    TargetType.MID_CONDUCTOR: 1.2,   # brass, zinc
    TargetType.FERROUS: 1.3,         # bottle caps to nails
    TargetType.GOLD_RANGE: 1.0,      # jewelry
    TargetType.LOW_CONDUCTOR: 0.8,   # foil, small aluminium
    TargetType.UNKNOWN: 1.0,
}

_CATEGORY_BOUNDS = (
    (SURFACE_THRESHOLD, DepthCategory.SURFACE),
    (SHALLOW_THRESHOLD, DepthCategory.SHALLOW),
    (MEDIUM_THRESHOLD, DepthCategory.MEDIUM),
    (DEEP_THRESHOLD, DepthCategory.DEEP),
)


def classify_depth(depth_factor: float) -> DepthCategory:
    for bound, category in _CATEGORY_BOUNDS:
        if depth_factor < bound:
            return category
    return DepthCategory.VERY_DEEP


def frequency_ratio(analysis: Sequence[ToneAnalysis]) -> float:
    """Low-third over high-third mean amplitude; 1.0 below three tones."""
    if len(analysis) < 3:
        return 1.0
    k = len(analysis) // 3
    low_amp = mean_amplitude(t.amplitude for t in analysis[:k])
    high_amp = mean_amplitude(t.amplitude for t in analysis[-k:])
    if high_amp < HIGH_AMPLITUDE_FLOOR:
        return 1.0
    return clamp(low_amp / high_amp, FREQ_RATIO_MIN, FREQ_RATIO_MAX)


def size_normalization(vdi_result: Optional[VDIResult]) -> float:
    if vdi_result is None or vdi_result.confidence < MIN_VDI_CONFIDENCE:
        return 1.0
    return SIZE_NORMALIZATION.get(vdi_result.target_type, 1.0)


def accuracy_note() -> str:
    return (
        "Depth estimation is approximate due to:\n"
        "  - Unknown target size and orientation\n"
        "  - Variable soil conditions\n"
        "  - Ground mineral interference\n"
        "\n"
        "Categories are more reliable than exact measurements.\n"
        "Calibrate with test targets for best accuracy."
    )


class DepthEstimator:
    def estimate(self, analysis: Sequence[ToneAnalysis], vdi_result: Optional[VDIResult] = None) -> DepthEstimate:
        if not analysis:
            return DepthEstimate(DepthCategory.VERY_DEEP, 0.0, 0.0, 0.0)

        avg_amplitude = mean_amplitude(t.amplitude for t in analysis)
        if avg_amplitude < MIN_AMPLITUDE:
            return DepthEstimate(
                DepthCategory.VERY_DEEP,
                WEAK_SIGNAL_CONFIDENCE,
                WEAK_SIGNAL_DEPTH_FACTOR,
                avg_amplitude,
            )

        ratio = frequency_ratio(analysis)
        size = size_normalization(vdi_result)
        depth_factor = (1.0 / avg_amplitude ** AMPLITUDE_EXPONENT) * ratio / size

        base_confidence = vdi_result.confidence if vdi_result is not None else 0.5
        amplitude_confidence = clamp(avg_amplitude * 2.0, 0.0, 1.0)
        confidence = clamp(0.6 * base_confidence + 0.4 * amplitude_confidence, 0.0, MAX_CONFIDENCE)

        return DepthEstimate(classify_depth(depth_factor), confidence, depth_factor, avg_amplitude)

    def calibrate(
        self,
        analysis: Sequence[ToneAnalysis],
        vdi_result: Optional[VDIResult],
        actual_depth_inches: float,
    ) -> float:
        """Return the raw depth factor for a target buried at a known depth."""
        estimate = self.estimate(analysis, vdi_result)
        logger.info(
            "Calibration: actual=%.1f\" estimated=%s depthFactor=%.2f amplitude=%.3f",
            float(actual_depth_inches),
            estimate.category.display_name,
            estimate.depth_factor,
            estimate.amplitude,
        )
        return estimate.depth_factor
