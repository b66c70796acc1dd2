"""Per-block sequencing of demodulation, ground balance, discrimination and depth."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple

from fcmd.config import (
    ASSUMED_BLOCK_RATE_HZ,
    DEFAULT_UPDATE_RATE_HZ,
    MIN_UPDATE_RATE_HZ,
    RATE_CHANGE_TOLERANCE,
)
from fcmd.discrimination.depth import DepthEstimator
from fcmd.discrimination.types import ToneAnalysis, VDIResult
from fcmd.discrimination.vdi import DiscriminationEngine
from fcmd.dsp.demodulator import MultiFrequencyDemodulator
from fcmd.ground.balance import GroundBalanceEngine
from fcmd.util.logging import get_logger
from fcmd.util.math import round_half_up

logger = get_logger(__name__)

FrameCallback = Callable[[List[ToneAnalysis], Optional[VDIResult]], None]
Frame = Tuple[List[ToneAnalysis], Optional[VDIResult]]

RATE_WINDOW_S = 1.0


def compute_update_interval(block_rate_hz: float, update_rate_hz: float) -> int:
    """Blocks between callbacks so emissions land near the requested rate."""
    if update_rate_hz <= 0:
        return 1
    return max(1, round_half_up(block_rate_hz / update_rate_hz))


@dataclass
class PipelineStats:
    blocks_processed: int = 0
    frames_emitted: int = 0
    measured_block_rate: float = 0.0
    update_interval: int = 1
    avg_process_ms: float = 0.0
    max_process_ms: float = 0.0

    @property
    def effective_update_rate(self) -> float:
        return self.measured_block_rate / max(1, self.update_interval)


class PipelineOrchestrator:
    """Own the DSP chain for one receive stream and pace callback delivery.

    ``process_block`` runs synchronously on the thread that delivers audio and
    must not be re-entered concurrently. The callback runs on that same thread.
    Ground balance state survives :meth:`reset` so a user's baseline outlives a
    stream restart.
    """

    def __init__(
        self,
        sample_rate: int,
        frequencies: Sequence[float],
        callback: Optional[FrameCallback] = None,
        *,
        update_rate_hz: float = DEFAULT_UPDATE_RATE_HZ,
        ground_balance: Optional[GroundBalanceEngine] = None,
        assumed_block_rate_hz: float = ASSUMED_BLOCK_RATE_HZ,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.sample_rate = int(sample_rate)
        self.frequencies = [float(f) for f in frequencies]
        self.demodulator = MultiFrequencyDemodulator(self.sample_rate, self.frequencies)
        self.ground_balance = ground_balance or GroundBalanceEngine(self.frequencies)
        self.discriminator = DiscriminationEngine()
        self.depth_estimator = DepthEstimator()
        self.callback = callback
        self._clock = clock
        self._assumed_block_rate = float(assumed_block_rate_hz)
        self._update_rate_hz = max(MIN_UPDATE_RATE_HZ, float(update_rate_hz))
        self.stats = PipelineStats()
        self.last_frame: Optional[Frame] = None
        self._reset_pacing()

    # -----------------
    # Configuration
    # -----------------

    @property
    def update_rate_hz(self) -> float:
        return self._update_rate_hz

    @property
    def update_interval(self) -> int:
        return self._update_interval

    @property
    def measured_block_rate(self) -> Optional[float]:
        return self._measured_rate

    def set_callback(self, callback: Optional[FrameCallback]) -> None:
        self.callback = callback

    def set_update_rate(self, hz: float) -> None:
        self._update_rate_hz = max(MIN_UPDATE_RATE_HZ, float(hz))
        self._update_interval = compute_update_interval(self._rate_basis, self._update_rate_hz)
        self.stats.update_interval = self._update_interval

    def reset(self) -> None:
        """Clear demodulator state and rate counters; ground balance is left alone."""
        self.demodulator.reset()
        self.stats = PipelineStats()
        self.last_frame = None
        self._reset_pacing()

    def _reset_pacing(self) -> None:
        self._frame_count = 0
        self._window_start: Optional[float] = None
        self._window_blocks = 0
        self._window_process_ms = 0.0
        self._window_emitted = 0
        self._measured_rate: Optional[float] = None
        self._rate_basis = self._assumed_block_rate
        self._update_interval = compute_update_interval(self._rate_basis, self._update_rate_hz)
        self.stats.update_interval = self._update_interval

    # -----------------
    # Per-block processing
    # -----------------

    def compose(self, samples: Sequence[float]) -> Frame:
        """Run the DSP chain on one block without pacing or callback side effects."""
        raw = self.demodulator.analyze_mono(samples)
        balanced = self.ground_balance.apply_ground_balance(raw)
        vdi: Optional[VDIResult] = None
        if len(balanced) >= 2:
            vdi = self.discriminator.calculate(balanced)
            vdi = vdi.with_depth(self.depth_estimator.estimate(balanced, vdi))
        return balanced, vdi

    def process_block(self, samples: Sequence[float]) -> Frame:
        t0 = time.perf_counter()
        frame = self.compose(samples)
        self.last_frame = frame
        process_ms = (time.perf_counter() - t0) * 1000.0

        self._record_timing(process_ms)
        self._track_block_rate()

        self._frame_count += 1
        if self._frame_count >= self._update_interval:
            self._frame_count = 0
            frame_idx = self.stats.frames_emitted
            self.stats.frames_emitted += 1
            self._window_emitted += 1
            logger.debug(
                "Frame %d emitted",
                frame_idx,
                extra={"frame_idx": frame_idx, "vdi": frame[1].vdi if frame[1] is not None else None},
            )
            if self.callback is not None:
                self.callback(frame[0], frame[1])
        return frame

    def _record_timing(self, process_ms: float) -> None:
        stats = self.stats
        stats.blocks_processed += 1
        n = stats.blocks_processed
        stats.avg_process_ms += (process_ms - stats.avg_process_ms) / n
        stats.max_process_ms = max(stats.max_process_ms, process_ms)
        self._window_process_ms += process_ms

    def _track_block_rate(self) -> None:
        now = self._clock()
        if self._window_start is None:
            self._window_start = now
            return
        self._window_blocks += 1
        elapsed = now - self._window_start
        if elapsed < RATE_WINDOW_S:
            return
        rate = self._window_blocks / elapsed
        self._on_rate_measured(rate, elapsed)
        self._window_start = now
        self._window_blocks = 0
        self._window_process_ms = 0.0
        self._window_emitted = 0

    def _on_rate_measured(self, rate: float, elapsed: float) -> None:
        self._measured_rate = rate
        self.stats.measured_block_rate = rate
        if self._rate_basis <= 0 or abs(rate - self._rate_basis) / self._rate_basis > RATE_CHANGE_TOLERANCE:
            previous = self._update_interval
            self._rate_basis = rate
            self._update_interval = compute_update_interval(rate, self._update_rate_hz)
            self.stats.update_interval = self._update_interval
            if self._update_interval != previous:
                logger.info(
                    "Measured block rate %.1f Hz; update interval %d -> %d blocks",
                    rate,
                    previous,
                    self._update_interval,
                )
        blocks = max(1, self._window_blocks)
        logger.debug(
            "[perf] block_rate=%.2f Hz interval=%d emit_rate=%.2f Hz process_ms avg=%.3f max=%.3f",
            rate,
            self._update_interval,
            self._window_emitted / elapsed,
            self._window_process_ms / blocks,
            self.stats.max_process_ms,
            extra={"duration_ms": self._window_process_ms / blocks},
        )
