# dvl/runtime/device_link.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from dvl.interfaces.command_sink import CommandSink
from dvl.protocol.dvl_client import DvlClient
from dvl.protocol.engine import DvlEngine, EngineStats
from dvl.transport.base import Transport
from dvl.transport.errors import TransportError, TransportOpenError

from dvl.core.errors import DeviceConnectError, ProtocolCommunicationError


@dataclass
class DeviceLink:
    """
    Host/device link managing the transport and the DvlEngine.

    Responsibilities:
      - open/close the underlying transport
      - create/stop the engine threads
      - expose a DvlClient once started
      - translate low-level failures into operator-safe errors
    """

    transport: Transport
    cmd_timeout_s: float = 3.0
    sweep_interval_s: float = 0.1
    max_pending_per_type: Optional[int] = 15
    cmd_sink: Optional[CommandSink] = None
    logger: Optional[logging.Logger] = None

    def __post_init__(self) -> None:
        self._log = self.logger or logging.getLogger(__name__)
        self._engine: Optional[DvlEngine] = None
        self._client: Optional[DvlClient] = None

    @property
    def is_started(self) -> bool:
        return self._engine is not None and self._client is not None

    @property
    def client(self) -> DvlClient:
        if self._client is None:
            raise RuntimeError("DeviceLink not started (client is None)")
        return self._client

    @property
    def connected(self) -> bool:
        return self._engine is not None and self._engine.connected

    def stats(self) -> Optional[EngineStats]:
        return self._engine.stats() if self._engine is not None else None

    def start(self) -> None:
        if self.is_started:
            return

        try:
            self.transport.open()
        except TransportOpenError as e:
            self._log.error("TRANSPORT_OPEN_FAILED err=%s", e)
            raise DeviceConnectError(
                "Could not connect to the DVL.",
                hint=str(e),
                details={"driver": type(self.transport).__name__},
            ) from None
        except TransportError as e:
            self._log.exception("TRANSPORT_OPEN_ERROR")
            raise DeviceConnectError(
                "Transport error while connecting to the DVL.",
                hint=str(e),
                details={"driver": type(self.transport).__name__},
            ) from None

        try:
            self._engine = DvlEngine.create(
                self.transport,
                cmd_timeout_s=self.cmd_timeout_s,
                sweep_interval_s=self.sweep_interval_s,
                max_pending_per_type=self.max_pending_per_type,
                cmd_sink=self.cmd_sink,
                logger=self._log,
            )
            self._client = DvlClient(self._engine, default_timeout_s=self.cmd_timeout_s)
        except Exception as e:
            self._log.exception("ENGINE_INIT_FAILED")
            self._cleanup_after_failed_start()
            raise ProtocolCommunicationError(
                "Failed to start the DVL engine.",
                hint=str(e),
                details={"driver": type(self.transport).__name__},
            ) from None

    def _cleanup_after_failed_start(self) -> None:
        try:
            self.transport.close()
        except Exception:
            self._log.exception("TRANSPORT_CLOSE_FAILED")
        self._engine = None
        self._client = None

    def stop(self) -> None:
        if self._engine is not None:
            try:
                self._engine.stop()
            except Exception:
                self._log.exception("ENGINE_STOP_FAILED")
            self._engine = None

        self._client = None

        try:
            self.transport.close()
        except Exception:
            self._log.exception("TRANSPORT_CLOSE_FAILED")

    def __enter__(self) -> "DeviceLink":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
