"""JSON-lines log of emitted pipeline frames."""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from fcmd.discrimination.types import ToneAnalysis, VDIResult
from fcmd.util.time import utc_now_str


def frame_record(tones: Sequence[ToneAnalysis], vdi: Optional[VDIResult]) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "tones": [
            {
                "frequency_hz": round(t.frequency, 3),
                "amplitude": t.amplitude,
                "phase_deg": t.phase_degrees(),
            }
            for t in tones
        ],
        "vdi": None,
    }
    if vdi is not None:
        record["vdi"] = {
            "value": vdi.vdi,
            "confidence": vdi.confidence,
            "target_type": vdi.target_type.value,
            "phase_slope": vdi.phase_slope,
            "conductivity_index": vdi.conductivity_index,
        }
        depth = vdi.depth_estimate
        if depth is not None:
            record["vdi"]["depth"] = {
                "category": depth.category.name,
                "range": depth.category.depth_range,
                "confidence": depth.confidence,
                "depth_factor": depth.depth_factor,
            }
    return record


class FrameLogger:
    """Append one JSON object per emitted frame to the primary path and any mirrors.

    Write failures propagate to the caller.
    """

    def __init__(self, log_path: Path, mirror_paths: Optional[List[Path]] = None):
        self.log_path = Path(log_path).expanduser()
        self.mirror_paths: List[Path] = []
        seen = {str(self.log_path.absolute())}
        for mirror in mirror_paths or []:
            resolved = Path(mirror).expanduser().absolute()
            if str(resolved) in seen:
                continue
            self.mirror_paths.append(resolved)
            seen.add(str(resolved))
        for path in [self.log_path] + self.mirror_paths:
            path.parent.mkdir(parents=True, exist_ok=True)
        self.run_id = f"run-{int(time.time() * 1000)}-pid{os.getpid()}"
        self.frame_idx = 0

    def log(self, event: str, **fields: Any) -> None:
        record = {
            "ts": utc_now_str(),
            "run_id": self.run_id,
            "event": event,
            **fields,
        }
        line = json.dumps(record) + "\n"
        for target in [self.log_path] + self.mirror_paths:
            with target.open("a", encoding="utf-8") as fh:
                fh.write(line)

    def log_frame(self, tones: Sequence[ToneAnalysis], vdi: Optional[VDIResult], **extra: Any) -> None:
        self.log("frame", frame_idx=self.frame_idx, **frame_record(tones, vdi), **extra)
        self.frame_idx += 1
