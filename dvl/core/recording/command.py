# dvl/core/recording/command.py
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from dvl.interfaces.command_sink import CommandEvent, CommandSink
from dvl.core.recording.async_writer import AsyncWriter


@dataclass
class CommandTraceLogger(CommandSink):
    """
    Logs every command event and, if file_path is set, appends it to a
    JSON-lines trace file.
    """

    logger: logging.Logger
    file_path: Optional[Path] = None
    flush_interval_s: float = 0.5

    def __post_init__(self) -> None:
        self._writer: Optional[AsyncWriter] = None
        if self.file_path is not None:
            self._writer = AsyncWriter(
                path=Path(self.file_path),
                flush_interval=self.flush_interval_s,
                logger=self.logger,
            )

    def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            self._writer = None

    def on_command(self, event: CommandEvent) -> None:
        self.logger.debug("CMD_EVENT name=%s kind=%s id=%s", event.name, event.kind, event.request_id)
        if self._writer is None:
            return

        out = {
            "name": event.name,
            "kind": event.kind,
            "request_id": event.request_id,
            "payload": dict(event.payload) if event.payload is not None else None,
            "ts_utc": event.ts_utc or datetime.now(timezone.utc).isoformat(),
        }
        out = {k: v for k, v in out.items() if v is not None}

        self._writer.write(json.dumps(out, ensure_ascii=False, default=str))
