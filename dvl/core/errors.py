# dvl/core/errors.py
from __future__ import annotations


class DvlError(Exception):
    """
    Base class for all expected operational errors of the DVL driver.
    """

    #: Stable machine-readable identifier (for CLI exit mapping etc.)
    code: str = "unknown"

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Configuration / setup errors (no device access yet)
# ---------------------------------------------------------------------------

class ConfigError(DvlError):
    """
    Driver configuration is invalid.

    Examples:
      - config file missing or not valid YAML
      - unknown config key or wrong value type
      - unknown transport driver
    """
    code = "config_error"


# ---------------------------------------------------------------------------
# Connection lifecycle errors
# ---------------------------------------------------------------------------

class DeviceConnectError(DvlError):
    """
    The connection to the DVL could not be opened.

    Examples:
      - host unreachable / connection refused
      - connect timeout
    """
    code = "device_connect_error"


class DeviceDisconnectedError(DvlError):
    """
    The DVL was connected but the connection is gone.
    """
    code = "device_disconnected"


# ---------------------------------------------------------------------------
# Protocol / communication errors
# ---------------------------------------------------------------------------

class ProtocolCommunicationError(DvlError):
    """
    Protocol-level communication failure.

    Examples:
      - engine could not be started
      - command send failed
    """
    code = "protocol_communication_error"


class DeviceNotRespondingError(DvlError):
    """
    The DVL is reachable but does not answer commands in time.
    """
    code = "device_not_responding"


class CommandRejectedError(DvlError):
    """
    The DVL answered a command with success=false.
    """
    code = "command_rejected"
