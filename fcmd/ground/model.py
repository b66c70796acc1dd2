"""Ground balance model definitions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from fcmd.discrimination.types import ToneAnalysis


class GroundBalanceMode(str, Enum):
    OFF = "OFF"
    MANUAL = "MANUAL"  # pump-and-set
    AUTO_TRACKING = "AUTO_TRACKING"
    MANUAL_TRACKING = "MANUAL_TRACKING"  # manual preset, then tracked

    @property
    def tracks(self) -> bool:
        return self in (GroundBalanceMode.AUTO_TRACKING, GroundBalanceMode.MANUAL_TRACKING)

    @classmethod
    def parse(cls, text: str) -> "GroundBalanceMode":
        """Accept enum names plus the short CLI spellings (off/manual/auto/manual_tracking)."""
        key = str(text).strip().upper().replace("-", "_").replace("+", "_")
        aliases = {"AUTO": cls.AUTO_TRACKING, "TRACKING": cls.AUTO_TRACKING, "MAN_TRK": cls.MANUAL_TRACKING}
        if key in aliases:
            return aliases[key]
        return cls(key)


@dataclass(frozen=True)
class GroundBalancePoint:
    """Estimated soil response at one frequency."""

    frequency: float
    in_phase: float
    quadrature: float
    amplitude: float
    phase: float

    @classmethod
    def from_tone(cls, tone: ToneAnalysis) -> "GroundBalancePoint":
        return cls(
            frequency=tone.frequency,
            in_phase=tone.in_phase,
            quadrature=tone.quadrature,
            amplitude=tone.amplitude,
            phase=tone.phase,
        )


@dataclass(frozen=True)
class GroundBalanceSettings:
    """User-facing controls, swapped as a whole so the audio thread never sees a torn update."""

    mode: GroundBalanceMode = GroundBalanceMode.OFF
    offset: int = 0
