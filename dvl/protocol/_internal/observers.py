# dvl/protocol/_internal/observers.py
from __future__ import annotations

import threading
from typing import Callable, Optional

from dvl.model.report import DeadReckoningReport, VelocityReport

VelocityCallback = Callable[[VelocityReport], None]
DeadReckoningCallback = Callable[[DeadReckoningReport], None]


class ObserverRegistry:
    """One callback slot per report type. Attaching replaces; None detaches."""

    def __init__(self):
        self._lock = threading.Lock()
        self._velocity: Optional[VelocityCallback] = None
        self._dead_reckoning: Optional[DeadReckoningCallback] = None

    def set_velocity(self, cb: Optional[VelocityCallback]) -> None:
        with self._lock:
            self._velocity = cb

    def set_dead_reckoning(self, cb: Optional[DeadReckoningCallback]) -> None:
        with self._lock:
            self._dead_reckoning = cb

    def lookup(self, report: object) -> Optional[Callable[[object], None]]:
        with self._lock:
            if isinstance(report, VelocityReport):
                return self._velocity
            if isinstance(report, DeadReckoningReport):
                return self._dead_reckoning
        return None
