"""Ground balance: capture, track, and cancel the soil response per frequency."""

from __future__ import annotations

import math
import threading
from collections import deque
from dataclasses import replace
from typing import Deque, List, Optional, Sequence, Tuple

from fcmd.config import GB_CAPTURE_CAPACITY, GB_OFFSET_LIMIT
from fcmd.discrimination.types import ToneAnalysis
from fcmd.ground.model import GroundBalanceMode, GroundBalancePoint, GroundBalanceSettings
from fcmd.util.logging import get_logger
from fcmd.util.math import iq_amplitude, iq_phase

logger = get_logger(__name__)

# Per-block weight of the newest vector in the tracking baseline (0.05 %).
TRACKING_ALPHA = 0.0005
# Any channel above this raw amplitude freezes tracking so a target is not learned as soil.
FREEZE_THRESHOLD = 0.3

Baseline = Tuple[GroundBalancePoint, ...]


def offset_radians(offset: int) -> float:
    """Map an offset in [-50, 50] onto a phase rotation of +/- 45 degrees."""
    return (offset / float(GB_OFFSET_LIMIT)) * (math.pi / 4.0)


def subtract_baseline(
    analysis: Sequence[ToneAnalysis],
    baseline: Sequence[GroundBalancePoint],
    offset: int = 0,
) -> List[ToneAnalysis]:
    """Subtract the offset-rotated baseline from each tone; unmatched tones pass through."""
    theta = offset_radians(offset)
    cos_t = math.cos(theta)
    sin_t = math.sin(theta)
    out: List[ToneAnalysis] = []
    for idx, tone in enumerate(analysis):
        if idx >= len(baseline):
            out.append(tone)
            continue
        base = baseline[idx]
        rot_i = base.in_phase * cos_t - base.quadrature * sin_t
        rot_q = base.in_phase * sin_t + base.quadrature * cos_t
        new_i = tone.in_phase - rot_i
        new_q = tone.quadrature - rot_q
        out.append(
            ToneAnalysis(
                frequency=tone.frequency,
                amplitude=iq_amplitude(new_i, new_q),
                phase=iq_phase(new_i, new_q),
                in_phase=new_i,
                quadrature=new_q,
            )
        )
    return out


def average_captures(
    captures: Sequence[Sequence[ToneAnalysis]],
    frequencies: Sequence[float] = (),
) -> Baseline:
    """Average I and Q per frequency across captured vectors.

    Amplitude and phase are recomputed from the averaged I/Q rather than
    averaged directly, which would smear wrapped phases.
    """
    if not captures:
        return ()
    points: List[GroundBalancePoint] = []
    for idx in range(len(captures[0])):
        tones = [vec[idx] for vec in captures if idx < len(vec)]
        avg_i = sum(t.in_phase for t in tones) / len(tones)
        avg_q = sum(t.quadrature for t in tones) / len(tones)
        freq = frequencies[idx] if idx < len(frequencies) else tones[0].frequency
        points.append(
            GroundBalancePoint(
                frequency=float(freq),
                in_phase=avg_i,
                quadrature=avg_q,
                amplitude=iq_amplitude(avg_i, avg_q),
                phase=iq_phase(avg_i, avg_q),
            )
        )
    return tuple(points)


class GroundBalanceEngine:
    """Maintain manual and tracking soil baselines and cancel them from live analysis.

    Controls (mode, offset, capture start/stop) may be driven from a UI thread
    while the audio thread calls :meth:`apply_ground_balance`. Mode and offset
    live in an immutable :class:`GroundBalanceSettings` swapped under the lock;
    baselines and the capture buffer share that lock, held only for the
    short bookkeeping section of each block.
    """

    def __init__(self, frequencies: Sequence[float] = (), *, capture_capacity: int = GB_CAPTURE_CAPACITY):
        self.frequencies = [float(f) for f in frequencies]
        self._settings = GroundBalanceSettings()
        self._lock = threading.Lock()
        self._manual_baseline: Optional[Baseline] = None
        self._tracking_baseline: Optional[Baseline] = None
        self._capturing = False
        self._captures: Deque[Tuple[ToneAnalysis, ...]] = deque(maxlen=max(1, int(capture_capacity)))
        self._tracking_frozen = False

    # -----------------
    # Controls
    # -----------------

    @property
    def settings(self) -> GroundBalanceSettings:
        return self._settings

    @property
    def mode(self) -> GroundBalanceMode:
        return self._settings.mode

    @property
    def offset(self) -> int:
        return self._settings.offset

    def set_mode(self, mode: GroundBalanceMode) -> None:
        mode = GroundBalanceMode(mode)
        with self._lock:
            if mode is GroundBalanceMode.AUTO_TRACKING:
                # Relearn the soil from scratch.
                self._tracking_baseline = None
            self._settings = replace(self._settings, mode=mode)
        logger.info("Ground balance mode set to %s", mode.value, extra={"mode": mode.value})

    def set_offset(self, offset: int) -> None:
        value = int(max(-GB_OFFSET_LIMIT, min(GB_OFFSET_LIMIT, int(round(offset)))))
        with self._lock:
            self._settings = replace(self._settings, offset=value)

    def start_manual_capture(self) -> None:
        with self._lock:
            self._captures.clear()
            self._capturing = True
        logger.info("Manual ground balance capture started")

    def stop_manual_capture(self) -> None:
        with self._lock:
            if not self._capturing:
                return
            self._capturing = False
            captured = list(self._captures)
            self._captures.clear()
            if not captured:
                logger.info("Manual ground balance capture stopped with no samples")
                return
            baseline = average_captures(captured, self.frequencies)
            self._manual_baseline = baseline
            if self._settings.mode is GroundBalanceMode.MANUAL_TRACKING:
                self._tracking_baseline = baseline
        logger.info(
            "Manual ground balance captured from %d samples",
            len(captured),
            extra={"mode": self._settings.mode.value},
        )

    def reset(self) -> None:
        with self._lock:
            self._manual_baseline = None
            self._tracking_baseline = None
            self._captures.clear()
            self._capturing = False
            self._tracking_frozen = False

    # -----------------
    # State inspection
    # -----------------

    @property
    def is_capturing(self) -> bool:
        return self._capturing

    @property
    def captured_count(self) -> int:
        return len(self._captures)

    @property
    def tracking_frozen(self) -> bool:
        return self._tracking_frozen

    @property
    def manual_baseline(self) -> Optional[Baseline]:
        return self._manual_baseline

    @property
    def tracking_baseline(self) -> Optional[Baseline]:
        return self._tracking_baseline

    def status_string(self) -> str:
        settings = self._settings
        offset = settings.offset
        offset_str = f" ({'+' if offset > 0 else ''}{offset})" if offset != 0 else ""
        frozen = " [FROZEN]" if self._tracking_frozen else ""
        mode = settings.mode
        if mode is GroundBalanceMode.MANUAL:
            return f"GB: MANUAL{offset_str}" if self._manual_baseline is not None else "GB: MANUAL (Not Set)"
        if mode is GroundBalanceMode.AUTO_TRACKING:
            if self._tracking_baseline is not None:
                return f"GB: AUTO{frozen}{offset_str}"
            return "GB: AUTO (Learning...)"
        if mode is GroundBalanceMode.MANUAL_TRACKING:
            if self._manual_baseline is not None:
                return f"GB: MAN+TRK{frozen}{offset_str}"
            return "GB: MAN+TRK (Not Set)"
        return "GB: OFF"

    # -----------------
    # Per-block processing
    # -----------------

    def apply_ground_balance(self, analysis: Sequence[ToneAnalysis]) -> List[ToneAnalysis]:
        settings = self._settings
        with self._lock:
            if self._capturing:
                self._captures.append(tuple(analysis))
            if settings.mode is GroundBalanceMode.OFF:
                return list(analysis)
            if settings.mode.tracks:
                self._update_tracking_baseline(analysis)
            baseline = self._active_baseline(settings.mode)
        if baseline is None:
            return list(analysis)
        return subtract_baseline(analysis, baseline, settings.offset)

    def _active_baseline(self, mode: GroundBalanceMode) -> Optional[Baseline]:
        if mode is GroundBalanceMode.MANUAL:
            return self._manual_baseline
        if mode is GroundBalanceMode.AUTO_TRACKING:
            return self._tracking_baseline
        if mode is GroundBalanceMode.MANUAL_TRACKING:
            if self._tracking_baseline is not None:
                return self._tracking_baseline
            return self._manual_baseline
        return None

    def _update_tracking_baseline(self, analysis: Sequence[ToneAnalysis]) -> None:
        max_amplitude = max((t.amplitude for t in analysis), default=0.0)
        self._tracking_frozen = max_amplitude > FREEZE_THRESHOLD
        if self._tracking_frozen:
            return
        if self._tracking_baseline is None:
            self._tracking_baseline = tuple(GroundBalancePoint.from_tone(t) for t in analysis)
            logger.info("Tracking baseline initialised over %d tones", len(analysis))
            return
        a = TRACKING_ALPHA
        updated: List[GroundBalancePoint] = []
        for idx, base in enumerate(self._tracking_baseline):
            if idx >= len(analysis):
                updated.append(base)
                continue
            cur = analysis[idx]
            updated.append(
                GroundBalancePoint(
                    frequency=base.frequency,
                    in_phase=a * cur.in_phase + (1.0 - a) * base.in_phase,
                    quadrature=a * cur.quadrature + (1.0 - a) * base.quadrature,
                    amplitude=a * cur.amplitude + (1.0 - a) * base.amplitude,
                    phase=a * cur.phase + (1.0 - a) * base.phase,
                )
            )
        self._tracking_baseline = tuple(updated)
