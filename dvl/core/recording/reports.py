# dvl/core/recording/reports.py
from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from dvl.core.recording.async_writer import AsyncWriter
from dvl.interfaces.report_sink import ReportSink
from dvl.model.report import DeadReckoningReport, VelocityReport


def _utc_compact_ts() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


class ReportRecorder(ReportSink):
    """
    Records telemetry reports as JSON lines.

    Policy:
      - One file per report kind per recorder, created on the first report
      - Files live under: base_dir/<kind>_<start_ts>.jsonl
    """

    def __init__(self, base_dir: Path, *, flush_interval_s: float = 0.5):
        self._base_dir = Path(base_dir)
        self._flush_interval_s = float(flush_interval_s)
        self._run_ts = _utc_compact_ts()

        self._lock = threading.Lock()
        self._writers: Dict[str, AsyncWriter] = {}
        self._active = True

    def path_for(self, kind: str) -> Path:
        return self._base_dir / f"{kind}_{self._run_ts}.jsonl"

    def on_velocity(self, report: VelocityReport) -> None:
        self._record("velocity", report.as_dict())

    def on_dead_reckoning(self, report: DeadReckoningReport) -> None:
        self._record("dead_reckoning", report.as_dict())

    def close(self) -> None:
        with self._lock:
            self._active = False
            writers = list(self._writers.values())
            self._writers.clear()

        for w in writers:
            w.close()

    def _record(self, kind: str, doc: dict) -> None:
        writer = self._writer_for(kind)
        if writer is not None:
            writer.write(json.dumps(doc))

    def _writer_for(self, kind: str) -> Optional[AsyncWriter]:
        with self._lock:
            if not self._active:
                return None
            writer = self._writers.get(kind)
            if writer is None:
                writer = AsyncWriter(self.path_for(kind), flush_interval=self._flush_interval_s)
                self._writers[kind] = writer
            return writer
