"""Dataclasses shared across demodulation, ground balance, and discrimination layers."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from fcmd.util.math import db20


@dataclass(frozen=True)
class ToneAnalysis:
    frequency: float
    amplitude: float
    phase: float  # radians, [-pi, pi]
    in_phase: float
    quadrature: float

    def phase_degrees(self) -> float:
        return math.degrees(self.phase)

    def amplitude_db(self) -> float:
        """Amplitude in dB relative to full scale."""
        return db20(self.amplitude)


class TargetType(str, Enum):
    FERROUS = "FERROUS"
    LOW_CONDUCTOR = "LOW_CONDUCTOR"
    MID_CONDUCTOR = "MID_CONDUCTOR"
    GOLD_RANGE = "GOLD_RANGE"
    HIGH_CONDUCTOR = "HIGH_CONDUCTOR"
    UNKNOWN = "UNKNOWN"

    @property
    def description(self) -> str:
        return _TARGET_DESCRIPTIONS[self]


_TARGET_DESCRIPTIONS = {
    TargetType.FERROUS: "Ferrous (Iron/Steel)",
    TargetType.LOW_CONDUCTOR: "Low Conductor (Foil/Small Al)",
    TargetType.MID_CONDUCTOR: "Mid Conductor (Brass/Zinc)",
    TargetType.HIGH_CONDUCTOR: "High Conductor (Cu/Ag)",
    TargetType.GOLD_RANGE: "Gold Range (Au jewelry)",
    TargetType.UNKNOWN: "Unknown",
}


class DepthCategory(Enum):
    """Ordinal depth bands, shallowest first."""

    SURFACE = ("Surface", "0-2\"", "●●●●")
    SHALLOW = ("Shallow", "2-4\"", "●●●○")
    MEDIUM = ("Medium", "4-6\"", "●●○○")
    DEEP = ("Deep", "6-8\"", "●○○○")
    VERY_DEEP = ("Very Deep", "8\"+", "○○○○")

    def __init__(self, display_name: str, depth_range: str, indicator: str) -> None:
        self.display_name = display_name
        self.depth_range = depth_range
        self.indicator = indicator

    @property
    def rank(self) -> int:
        return list(DepthCategory).index(self)


@dataclass(frozen=True)
class DepthEstimate:
    category: DepthCategory
    confidence: float  # [0, 0.9], always below the VDI ceiling
    depth_factor: float
    amplitude: float

    def display_string(self) -> str:
        if self.confidence > 0.7:
            conf = "High"
        elif self.confidence > 0.5:
            conf = "Med"
        elif self.confidence > 0.3:
            conf = "Low"
        else:
            conf = "Very Low"
        cat = self.category
        return f"{cat.indicator} {cat.display_name} ({cat.depth_range}) | Conf: {conf}"


@dataclass(frozen=True)
class VDIResult:
    vdi: int
    confidence: float
    target_type: TargetType
    phase_slope: float  # degrees per kHz
    conductivity_index: float
    depth_estimate: Optional[DepthEstimate] = None

    def with_depth(self, depth: DepthEstimate) -> "VDIResult":
        return replace(self, depth_estimate=depth)
