# dvl/protocol/commands.py
"""
Command payloads of the DVL JSON protocol.

Every command is a single JSON object terminated by a newline, e.g.
``{"command": "trigger_ping"}``. The reply carries the same name in its
"response_to" field, which is what the engine correlates on.
"""
from __future__ import annotations

import json
from typing import Any, Mapping, Union

CALIBRATE_GYRO = "calibrate_gyro"
TRIGGER_PING = "trigger_ping"
RESET_DEAD_RECKONING = "reset_dead_reckoning"
SET_CONFIG = "set_config"
GET_CONFIG = "get_config"

COMMANDS = (CALIBRATE_GYRO, TRIGGER_PING, RESET_DEAD_RECKONING, SET_CONFIG, GET_CONFIG)


def encode_command(name: str) -> bytes:
    return (json.dumps({"command": name}) + "\n").encode("utf-8")


def encode_set_config(config: Union[str, Mapping[str, Any]]) -> bytes:
    """
    Build a set_config payload.

    A mapping is serialised as the "parameters" object. A string is taken as
    the JSON text of that object and embedded as-is; it is not validated.
    """
    if isinstance(config, Mapping):
        params = json.dumps(dict(config))
    else:
        params = str(config).strip()
    return ('{"command": "%s", "parameters": %s}\n' % (SET_CONFIG, params)).encode("utf-8")
