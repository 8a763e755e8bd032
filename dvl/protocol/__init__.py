# dvl/protocol/__init__.py

from .types import Response, CommandReply, Unrecognized
from .errors import ProtocolError, CommandFailed, CommandTimeout, PendingQueueFull, LinkClosed
from .parser import ReportParser
from .engine import DvlEngine, EngineStats
from .dvl_client import DvlClient

__all__ = [
    "Response", "CommandReply", "Unrecognized",
    "ProtocolError", "CommandFailed", "CommandTimeout", "PendingQueueFull", "LinkClosed",
    "ReportParser",
    "DvlEngine", "EngineStats",
    "DvlClient"]
