# dvl/protocol/dvl_client.py
from __future__ import annotations

from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from typing import Any, Mapping, Optional, Union

from . import commands
from ._internal.observers import DeadReckoningCallback, VelocityCallback
from .engine import DEFAULT_CMD_TIMEOUT_S, DvlEngine
from .errors import CommandFailed, CommandTimeout
from .types import Response


class DvlClient:
    """
    User-facing API over DvlEngine.

    Every command returns immediately with a Future that resolves to the
    device's Response, a failure Response, or None if the device did not
    answer within timeout_s.
    """

    def __init__(self, engine: DvlEngine, *, default_timeout_s: float = DEFAULT_CMD_TIMEOUT_S):
        self._engine = engine
        self.default_timeout_s = float(default_timeout_s)

    @property
    def engine(self) -> DvlEngine:
        return self._engine

    def _issue(self, cmd_type: str, payload: bytes, timeout_s: Optional[float]) -> Future[Optional[Response]]:
        timeout_s = self.default_timeout_s if timeout_s is None else timeout_s
        return self._engine.issue_command(cmd_type, payload, timeout_s).future

    def calibrate_gyro(self, timeout_s: Optional[float] = None) -> Future[Optional[Response]]:
        return self._issue(commands.CALIBRATE_GYRO, commands.encode_command(commands.CALIBRATE_GYRO), timeout_s)

    def trigger_ping(self, timeout_s: Optional[float] = None) -> Future[Optional[Response]]:
        """
        Trigger one acoustic ping.

        Only meaningful with acoustic_enabled=false. The DVL queues up to 15
        external triggers and pings them in quick succession.
        """
        return self._issue(commands.TRIGGER_PING, commands.encode_command(commands.TRIGGER_PING), timeout_s)

    def reset_dead_reckoning(self, timeout_s: Optional[float] = None) -> Future[Optional[Response]]:
        return self._issue(
            commands.RESET_DEAD_RECKONING,
            commands.encode_command(commands.RESET_DEAD_RECKONING),
            timeout_s,
        )

    def set_config(self, config: Union[str, Mapping[str, Any]], timeout_s: Optional[float] = None) -> Future[Optional[Response]]:
        """
        Change device configuration, e.g. set_config({"speed_of_sound": 1480}).

        A string is sent verbatim as the "parameters" object.
        """
        return self._issue(commands.SET_CONFIG, commands.encode_set_config(config), timeout_s)

    def get_config(self, timeout_s: Optional[float] = None) -> Future[Optional[Response]]:
        """The current configuration arrives in Response.result."""
        return self._issue(commands.GET_CONFIG, commands.encode_command(commands.GET_CONFIG), timeout_s)

    def attach_velocity_callback(self, callback: Optional[VelocityCallback]) -> None:
        self._engine.attach_velocity_callback(callback)

    def attach_dead_reckoning_callback(self, callback: Optional[DeadReckoningCallback]) -> None:
        self._engine.attach_dead_reckoning_callback(callback)

    # ---------------- Blocking helpers ----------------
    @staticmethod
    def require_ok(resp: Optional[Response], cmd_name: str, *, timeout_s: Optional[float] = None) -> Response:
        if resp is None:
            raise CommandTimeout(cmd_name, timeout_s)
        if not resp.success:
            raise CommandFailed(cmd_name, resp)
        return resp

    def wait_ok(self, future: Future[Optional[Response]], cmd_name: str, timeout_s: Optional[float] = None) -> Response:
        """
        Block until the command completes and return its successful Response.

        The engine bounds every command by the timeout it was issued with
        (carried on the future); the extra margin here only guards against a
        stopped engine. An explicit timeout_s overrides it.
        """
        if timeout_s is None:
            timeout_s = getattr(future, "timeout_s", None)
        if timeout_s is None:
            timeout_s = self.default_timeout_s
        try:
            resp = future.result(timeout=timeout_s + 1.0)
        except FutureTimeoutError:
            raise CommandTimeout(cmd_name, timeout_s) from None
        return self.require_ok(resp, cmd_name, timeout_s=timeout_s)
