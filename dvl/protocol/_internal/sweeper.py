# dvl/protocol/_internal/sweeper.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dvl.protocol.engine import DvlEngine


class TimeoutSweeper(threading.Thread):
    """Thread that periodically expires commands the device never answered."""

    def __init__(self, engine: "DvlEngine", interval_s: float = 0.1):
        super().__init__(name="dvl-sweeper", daemon=True)
        self.engine = engine
        self.interval_s = float(interval_s)
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.interval_s):
            try:
                self.engine._sweep_expired()
            except Exception:
                self.engine._log.exception("SWEEPER_EXCEPTION pending=%d", self.engine.pending_count)

    def stop(self) -> None:
        self._stop_event.set()
