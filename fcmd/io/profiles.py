"""Detector profile dataclasses and helpers."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from fcmd.dsp.tones import linear_spaced_frequencies, log_spaced_frequencies


@dataclass
class DetectorProfile:
    name: str
    min_freq_hz: float
    max_freq_hz: float
    tones: int
    spacing: str = "log"  # "log" or "linear"
    update_rate_hz: Optional[float] = None
    gb_mode: Optional[str] = None
    gb_offset: Optional[int] = None
    description: str = ""

    def frequencies(self) -> List[float]:
        if self.spacing == "linear":
            return linear_spaced_frequencies(self.min_freq_hz, self.max_freq_hz, self.tones)
        return log_spaced_frequencies(self.min_freq_hz, self.max_freq_hz, self.tones)


def default_profiles() -> Dict[str, DetectorProfile]:
    profiles = [
        DetectorProfile(
            name="coin_shoot",
            min_freq_hz=1000.0,
            max_freq_hz=10000.0,
            tones=8,
            update_rate_hz=30.0,
            gb_mode="auto",
            description="Parks and lawns: wide log-spaced plan, automatic ground tracking",
        ),
        DetectorProfile(
            name="relic",
            min_freq_hz=1000.0,
            max_freq_hz=5000.0,
            tones=6,
            update_rate_hz=20.0,
            gb_mode="manual_tracking",
            description="Deep iron-rich sites: low tones for depth, pumped baseline with tracking",
        ),
        DetectorProfile(
            name="mineralized",
            min_freq_hz=1000.0,
            max_freq_hz=20000.0,
            tones=12,
            update_rate_hz=30.0,
            gb_mode="manual",
            gb_offset=0,
            description="Hot soil and wet sand: dense plan, fixed pumped baseline",
        ),
        DetectorProfile(
            name="gold_prospecting",
            min_freq_hz=4000.0,
            max_freq_hz=20000.0,
            tones=10,
            spacing="linear",
            update_rate_hz=40.0,
            gb_mode="manual_tracking",
            description="Small high-frequency targets, linear spacing across the upper band",
        ),
        DetectorProfile(
            name="single_tone",
            min_freq_hz=1000.0,
            max_freq_hz=1000.0,
            tones=1,
            update_rate_hz=30.0,
            gb_mode="off",
            description="One tone, amplitude/phase only (no discrimination)",
        ),
    ]
    return {p.name.lower(): p for p in profiles}


def serialize_profiles() -> Dict[str, Any]:
    """Return ordered JSON-serializable description of built-in profiles."""

    ordered = sorted(default_profiles().values(), key=lambda p: p.name.lower())
    payload = {
        "profiles": [
            {**asdict(prof), "frequencies_hz": [round(f, 1) for f in prof.frequencies()]}
            for prof in ordered
        ]
    }
    return payload
