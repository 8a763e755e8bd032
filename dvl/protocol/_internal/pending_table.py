# dvl/protocol/_internal/pending_table.py
from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from dvl.protocol.errors import LinkClosed, PendingQueueFull
from .pending_request import PendingRequest


class PendingTable:
    """
    Outstanding commands keyed by command type, oldest first.

    All access goes through one lock and no queue ever leaves this class.
    Removing an entry is what grants the right to complete it: whoever gets
    the request back from pop_oldest/pop_expired/discard/close owns its
    completion, everyone else sees it gone.
    """

    def __init__(self, max_depth: Optional[int] = 15):
        if max_depth is not None and max_depth < 1:
            raise ValueError("max_depth must be >= 1 or None")
        self.max_depth = max_depth

        self._lock = threading.Lock()
        self._queues: Dict[str, Deque[PendingRequest]] = {}
        self._closed_reason: Optional[str] = None

    @property
    def closed_reason(self) -> Optional[str]:
        with self._lock:
            return self._closed_reason

    def add(self, req: PendingRequest) -> None:
        with self._lock:
            if self._closed_reason is not None:
                raise LinkClosed(self._closed_reason)

            queue = self._queues.get(req.cmd_type)
            if queue is None:
                queue = self._queues[req.cmd_type] = deque()
            elif self.max_depth is not None and len(queue) >= self.max_depth:
                raise PendingQueueFull(req.cmd_type, self.max_depth)

            queue.append(req)

    def pop_oldest(self, cmd_type: str) -> Optional[PendingRequest]:
        with self._lock:
            queue = self._queues.get(cmd_type)
            if not queue:
                return None
            req = queue.popleft()
            if not queue:
                del self._queues[cmd_type]
            return req

    def discard(self, req: PendingRequest) -> bool:
        with self._lock:
            queue = self._queues.get(req.cmd_type)
            if not queue:
                return False
            try:
                queue.remove(req)
            except ValueError:
                return False
            if not queue:
                del self._queues[req.cmd_type]
            return True

    def pop_expired(self, now: float) -> List[PendingRequest]:
        expired: List[PendingRequest] = []
        with self._lock:
            for cmd_type in list(self._queues):
                queue = self._queues[cmd_type]
                if not any(r.expired(now) for r in queue):
                    continue

                keep: Deque[PendingRequest] = deque()
                for r in queue:
                    (expired if r.expired(now) else keep).append(r)

                if keep:
                    self._queues[cmd_type] = keep
                else:
                    del self._queues[cmd_type]
        return expired

    def close(self, reason: str) -> List[PendingRequest]:
        """Drain every entry and refuse further adds. Only the first reason sticks."""
        with self._lock:
            if self._closed_reason is None:
                self._closed_reason = reason
            drained = [r for queue in self._queues.values() for r in queue]
            self._queues.clear()
        return drained

    def depth(self, cmd_type: str) -> int:
        with self._lock:
            queue = self._queues.get(cmd_type)
            return len(queue) if queue else 0

    def __len__(self) -> int:
        with self._lock:
            return sum(len(q) for q in self._queues.values())
