"""High-level runner that feeds a block source through the detector pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np
from scipy.io import wavfile

from fcmd.audio.target_tone import TargetToneGenerator
from fcmd.discrimination.types import ToneAnalysis, VDIResult
from fcmd.discrimination.vdi import describe_target
from fcmd.dsp.tones import (
    MultiToneGenerator,
    clamp_frequency_plan,
    linear_spaced_frequencies,
    log_spaced_frequencies,
)
from fcmd.ground.balance import GroundBalanceEngine
from fcmd.ground.model import GroundBalanceMode
from fcmd.io.sources import SyntheticBlockSource, WavBlockSource
from fcmd.pipeline.orchestrator import PipelineOrchestrator
from fcmd.util.duration import parse_duration_to_seconds
from fcmd.util.frame_logger import FrameLogger
from fcmd.util.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SIMULATION_S = 5.0


@dataclass
class RunSummary:
    blocks: int = 0
    frames: int = 0
    last_vdi: Optional[int] = None
    last_target: Optional[str] = None
    last_depth: Optional[str] = None
    gb_status: str = "GB: OFF"
    interrupted: bool = False


def frequency_plan(min_hz: float, max_hz: float, count: int, spacing: str = "log") -> List[float]:
    lo, hi, n = clamp_frequency_plan(min_hz, max_hz, count)
    if spacing == "linear":
        return linear_spaced_frequencies(lo, hi, n)
    return log_spaced_frequencies(lo, hi, n)


class DetectorRunner:
    """Bind CLI args to a block source, the orchestrator and the frame log."""

    def __init__(self, args):
        self.args = args
        self.frequencies = frequency_plan(
            args.min_freq,
            args.max_freq,
            args.tones,
            getattr(args, "spacing", "log"),
        )
        self.frame_logger: Optional[FrameLogger] = None
        if getattr(args, "jsonl", None):
            self.frame_logger = FrameLogger(args.jsonl, mirror_paths=getattr(args, "jsonl_mirror", None))
        self.ground_balance = GroundBalanceEngine(self.frequencies)
        self.orchestrator: Optional[PipelineOrchestrator] = None
        self.feedback: Optional[TargetToneGenerator] = None
        self.summary = RunSummary()
        self._sample_rate = int(getattr(args, "sample_rate", 0) or 0)

    def open_source(self):
        """Open the WAV file or build the simulator; read errors propagate to the caller."""
        args = self.args
        if getattr(args, "wav", None):
            src = WavBlockSource(args.wav, args.block_size)
            logger.info(
                "Reading %s (%.1f s at %d Hz)",
                args.wav,
                src.duration_s,
                src.sample_rate,
            )
            return src
        duration_s = parse_duration_to_seconds(getattr(args, "duration", None))
        if duration_s is None:
            duration_s = DEFAULT_SIMULATION_S
        src = SyntheticBlockSource(
            args.sample_rate,
            self.frequencies,
            args.block_size,
            duration_s,
            target=args.target_type,
            target_strength=args.target_strength,
            soil_strength=args.soil_strength,
            noise_level=args.noise,
            seed=getattr(args, "seed", None),
        )
        logger.info(
            "Simulating %.1f s: target=%s strength=%.2f soil=%.2f noise=%.3f",
            duration_s,
            args.target_type,
            src.target_strength,
            src.soil_strength,
            src.noise_level,
        )
        return src

    def _configure_ground_balance(self) -> int:
        """Apply mode/offset and return the number of blocks to pump over (0 for none)."""
        args = self.args
        mode = GroundBalanceMode.parse(args.gb_mode)
        self.ground_balance.set_mode(mode)
        self.ground_balance.set_offset(args.gb_offset)
        pump_s = float(getattr(args, "pump_seconds", 0.0) or 0.0)
        if pump_s <= 0.0 or mode not in (GroundBalanceMode.MANUAL, GroundBalanceMode.MANUAL_TRACKING):
            return 0
        return max(1, int(math.ceil(pump_s * self._sample_rate / float(args.block_size))))

    def _on_frame(self, tones: List[ToneAnalysis], vdi: Optional[VDIResult]) -> None:
        self.summary.frames += 1
        if vdi is not None:
            self.summary.last_vdi = vdi.vdi
            self.summary.last_target = vdi.target_type.value
            if vdi.depth_estimate is not None:
                self.summary.last_depth = vdi.depth_estimate.category.display_name
            if self.feedback is not None:
                self.feedback.update_vdi(vdi.vdi, vdi.confidence)
        if self.frame_logger is not None:
            self.frame_logger.log_frame(tones, vdi, gb=self.ground_balance.status_string())

    def run(self, src=None) -> RunSummary:
        args = self.args
        if src is None:
            src = self.open_source()
        self._sample_rate = src.sample_rate
        if src.sample_rate != getattr(args, "sample_rate", src.sample_rate):
            logger.debug("Source sample rate %d Hz overrides configured rate", src.sample_rate)

        self.orchestrator = PipelineOrchestrator(
            src.sample_rate,
            self.frequencies,
            self._on_frame,
            update_rate_hz=args.update_rate,
            ground_balance=self.ground_balance,
        )
        pump_blocks = self._configure_ground_balance()
        logger.info(
            "Pipeline: %d tones %.0f-%.0f Hz, block=%d, update=%.1f Hz, %s",
            len(self.frequencies),
            self.frequencies[0],
            self.frequencies[-1],
            args.block_size,
            args.update_rate,
            self.ground_balance.status_string(),
        )

        tx: Optional[MultiToneGenerator] = None
        tx_chunks: List[np.ndarray] = []
        if getattr(args, "write_tx", None):
            tx = MultiToneGenerator(src.sample_rate, self.frequencies)
        feedback_chunks: List[np.ndarray] = []
        if getattr(args, "feedback_wav", None):
            self.feedback = TargetToneGenerator(src.sample_rate)
            self.feedback.set_enabled(True)

        if pump_blocks:
            self.ground_balance.start_manual_capture()

        try:
            for block in src.blocks():
                self.orchestrator.process_block(block)
                self.summary.blocks += 1
                if pump_blocks and self.summary.blocks == pump_blocks:
                    self.ground_balance.stop_manual_capture()
                if tx is not None:
                    tx_chunks.append(tx.generate(len(block)))
                if self.feedback is not None:
                    feedback_chunks.append(self.feedback.generate(len(block)))
        except KeyboardInterrupt:
            self.summary.interrupted = True
            logger.info("Interrupted after %d blocks", self.summary.blocks)
        finally:
            if self.ground_balance.is_capturing:
                self.ground_balance.stop_manual_capture()

        if tx is not None:
            _write_wav(args.write_tx, src.sample_rate, tx_chunks)
            logger.info("Transmit waveform written to %s", args.write_tx)
        if self.feedback is not None:
            _write_wav(args.feedback_wav, src.sample_rate, feedback_chunks)
            logger.info("Target tone written to %s", args.feedback_wav)

        self.summary.gb_status = self.ground_balance.status_string()
        self._log_summary()
        return self.summary

    def _log_summary(self) -> None:
        s = self.summary
        stats = self.orchestrator.stats if self.orchestrator is not None else None
        if stats is not None:
            logger.debug(
                "Processed %d blocks, avg %.3f ms, max %.3f ms",
                stats.blocks_processed,
                stats.avg_process_ms,
                stats.max_process_ms,
            )
        last = self.orchestrator.last_frame if self.orchestrator is not None else None
        if last is not None and last[1] is not None:
            detail = describe_target(last[1])
        else:
            detail = "no discrimination"
        logger.info(
            "Done: %d blocks, %d frames, last VDI=%s (%s) depth=%s, %s",
            s.blocks,
            s.frames,
            s.last_vdi if s.last_vdi is not None else "-",
            detail,
            s.last_depth or "-",
            s.gb_status,
            extra={"vdi": s.last_vdi},
        )


def _write_wav(path: str, sample_rate: int, chunks: List[np.ndarray]) -> None:
    data = np.concatenate(chunks).astype(np.float32) if chunks else np.zeros(0, dtype=np.float32)
    wavfile.write(path, int(sample_rate), data)

