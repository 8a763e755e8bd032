# dvl/protocol/_internal/pending_request.py
from __future__ import annotations

import time
from concurrent.futures import Future, InvalidStateError
from typing import Any, Callable, Optional

from dvl.protocol.types import Response


class CommandFuture(Future):
    """Future that remembers the reply timeout its command was issued with."""

    def __init__(self, timeout_s: float):
        super().__init__()
        self.timeout_s = timeout_s


class PendingRequest:
    """
    One in-flight command awaiting its reply.

    The future resolves to a Response, or to None when the command timed out.
    """

    def __init__(self, request_id: int, cmd_type: str, timeout_s: float):
        self.request_id = int(request_id)
        self.cmd_type = str(cmd_type)
        self.timeout_s = float(timeout_s)
        self.issued_at = time.perf_counter()
        self.future: "Future[Optional[Response]]" = CommandFuture(self.timeout_s)

    def expired(self, now: float) -> bool:
        return (now - self.issued_at) >= self.timeout_s

    def add_done_callback(self, cb: Callable[[Future], Any]) -> None:
        """Forward callback registration to the underlying Future."""
        self.future.add_done_callback(cb)

    def result(self, *args: Any, **kwargs: Any) -> Optional[Response]:
        """Forward result() to underlying Future."""
        return self.future.result(*args, **kwargs)

    def done(self) -> bool:
        return self.future.done()

    def complete(self, response: Optional[Response]) -> bool:
        """
        Resolve the request. Returns False if it was already resolved,
        in which case the value is ignored.
        """
        try:
            self.future.set_result(response)
        except InvalidStateError:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"PendingRequest(id={self.request_id}, type='{self.cmd_type}', "
            f"timeout_s={self.timeout_s}, done={self.done()})"
        )
