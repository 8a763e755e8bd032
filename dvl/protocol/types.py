# dvl/protocol/types.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from dvl.model.report import DeadReckoningReport, VelocityReport

ORIGIN_DEVICE = "device"
ORIGIN_TRANSPORT = "transport"
ORIGIN_LOCAL = "local"


@dataclass(frozen=True)
class Response:
    """
    Terminal result of a command. A timeout is signalled by None, not by a Response.

    origin tells who produced the outcome: "device" (the DVL replied),
    "transport" (send failed / connection lost) or "local" (rejected before sending).
    """

    success: bool
    error_message: str = ""
    result: Any = None
    origin: str = ORIGIN_DEVICE

    @classmethod
    def transport_failure(cls, message: str) -> "Response":
        return cls(success=False, error_message=message, origin=ORIGIN_TRANSPORT)

    @classmethod
    def local_failure(cls, message: str) -> "Response":
        return cls(success=False, error_message=message, origin=ORIGIN_LOCAL)


@dataclass(frozen=True)
class CommandReply:
    response_to: str
    success: bool
    error_message: str = ""
    result: Any = None

    def to_response(self) -> Response:
        return Response(success=self.success, error_message=self.error_message, result=self.result)


@dataclass(frozen=True)
class Unrecognized:
    line: bytes
    reason: str


Report = Union[VelocityReport, DeadReckoningReport]
Message = Union[VelocityReport, DeadReckoningReport, CommandReply, Unrecognized]
