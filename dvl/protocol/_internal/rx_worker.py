# dvl/protocol/_internal/rx_worker.py
from __future__ import annotations

import threading
from typing import TYPE_CHECKING

from dvl.transport.errors import TransportError

if TYPE_CHECKING:
    from dvl.protocol.engine import DvlEngine


class RxWorker(threading.Thread):
    """Thread that continuously reads lines from the transport and feeds DvlEngine."""

    def __init__(self, engine: "DvlEngine"):
        super().__init__(name="dvl-rx", daemon=True)
        self.engine = engine
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.engine._pump_rx()
            except TransportError as e:
                self.engine._on_disconnect(e)
                return
            except Exception:
                self.engine._log.exception("RX_WORKER_EXCEPTION pending=%d", self.engine.pending_count)
                self._stop_event.wait(0.01)

    def stop(self) -> None:
        self._stop_event.set()
