# dvl/app/runner.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dvl.app.config import DvlConfig
from dvl.core.errors import ConfigError
from dvl.core.recording.command import CommandTraceLogger
from dvl.runtime.device_link import DeviceLink
from dvl.transport.errors import TransportError
from dvl.transport.registry import TransportDriverRegistry


@dataclass(frozen=True)
class AppRun:
    link: DeviceLink
    cmd_sink: CommandTraceLogger

    def close(self) -> None:
        try:
            self.link.stop()
        finally:
            self.cmd_sink.close()


def build_run(
    cfg: DvlConfig,
    *,
    drivers: Optional[TransportDriverRegistry] = None,
    logger: Optional[logging.Logger] = None,
) -> AppRun:
    """
    Wire transport, command trace and DeviceLink from config.
    Note: does NOT connect; call run.link.start() (or use it as a context manager).
    """
    log = logger or logging.getLogger(__name__)
    drivers = drivers or TransportDriverRegistry.default()

    try:
        transport = drivers.create(cfg.driver, **cfg.transport_params())
    except (TransportError, TypeError) as e:
        raise ConfigError(
            f"Failed to construct transport (driver='{cfg.driver}').",
            hint=str(e) if drivers.has(cfg.driver) else f"Known drivers: {drivers.drivers()}",
            details={"driver": cfg.driver},
        ) from None

    cmd_sink = CommandTraceLogger(
        logger=logging.getLogger("dvl.commands"),
        file_path=Path(cfg.command_trace) if cfg.command_trace else None,
    )

    link = DeviceLink(
        transport=transport,
        cmd_timeout_s=cfg.cmd_timeout_s,
        sweep_interval_s=cfg.sweep_interval_s,
        max_pending_per_type=cfg.max_pending_per_type,
        cmd_sink=cmd_sink,
        logger=log,
    )
    return AppRun(link=link, cmd_sink=cmd_sink)
