# dvl/protocol/errors.py
from __future__ import annotations

from typing import Optional

from .types import Response


class ProtocolError(Exception):
    """Base for protocol-level failures (command semantics, correlation)."""

class CommandFailed(ProtocolError):
    def __init__(self, cmd: str, resp: Response):
        super().__init__(f"{cmd} failed ({resp.origin}): {resp.error_message or 'no reason given'}")
        self.cmd = cmd
        self.resp = resp

class CommandTimeout(ProtocolError):
    def __init__(self, cmd: str, timeout_s: Optional[float]):
        super().__init__(f"{cmd} timed out after {timeout_s}s")
        self.cmd = cmd
        self.timeout_s = timeout_s

class PendingQueueFull(ProtocolError):
    def __init__(self, cmd: str, depth: int):
        super().__init__(f"too many outstanding '{cmd}' commands (max {depth})")
        self.cmd = cmd
        self.depth = depth

class LinkClosed(ProtocolError):
    """The engine no longer accepts commands (connection lost or stopped)."""
