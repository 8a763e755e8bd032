from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Optional

from dvl.model.report import DeadReckoningReport, ReportDecodeError, VelocityReport

from .types import CommandReply, Message, Unrecognized

TYPE_VELOCITY = "velocity"
TYPE_DEAD_RECKONING = "position_local"
TYPE_RESPONSE = "response"


class ReportParser:
    """
    Turns one inbound line of the DVL JSON protocol into a typed message.

    parse() never raises: anything it cannot make sense of comes back as
    Unrecognized with a short reason.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)

    def parse(self, line: bytes) -> Message:
        try:
            doc = json.loads(line)
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            return Unrecognized(line=bytes(line), reason=f"invalid json: {e}")

        if not isinstance(doc, Mapping):
            return Unrecognized(line=bytes(line), reason="not a json object")

        kind = doc.get("type")
        try:
            if kind == TYPE_VELOCITY:
                return VelocityReport.from_dict(doc)
            if kind == TYPE_DEAD_RECKONING:
                return DeadReckoningReport.from_dict(doc)
            if kind == TYPE_RESPONSE:
                return self._parse_reply(doc)
        except ReportDecodeError as e:
            return Unrecognized(line=bytes(line), reason=f"bad {kind} message: {e}")

        return Unrecognized(line=bytes(line), reason=f"unknown message type {kind!r}")

    @staticmethod
    def _parse_reply(doc: Mapping[str, Any]) -> CommandReply:
        response_to = doc.get("response_to")
        if not isinstance(response_to, str) or not response_to:
            raise ReportDecodeError("field 'response_to' must be a non-empty string")

        success = doc.get("success")
        if not isinstance(success, bool):
            raise ReportDecodeError("field 'success' must be a bool")

        error_message = doc.get("error_message") or ""
        return CommandReply(
            response_to=response_to,
            success=success,
            error_message=str(error_message),
            result=doc.get("result"),
        )
