# dvl/cli/commands.py
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

from dvl.app.config import DvlConfig
from dvl.app.runner import AppRun, build_run
from dvl.core.errors import (
    CommandRejectedError,
    DeviceDisconnectedError,
    DeviceNotRespondingError,
    ProtocolCommunicationError,
)
from dvl.core.recording.reports import ReportRecorder
from dvl.interfaces.report_sink import ReportSink
from dvl.model.report import DeadReckoningReport, VelocityReport
from dvl.protocol.dvl_client import DvlClient
from dvl.protocol.errors import CommandFailed, CommandTimeout
from dvl.protocol.types import ORIGIN_DEVICE, Response

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ---------------- Report sink ----------------

class PrintReportSink(ReportSink):
    """Print reports to stdout, one line each."""

    def on_velocity(self, report: VelocityReport) -> None:
        valid = "valid" if report.velocity_valid else "no-lock"
        print(
            f"VEL vx={report.vx:+.3f} vy={report.vy:+.3f} vz={report.vz:+.3f} "
            f"fom={report.fom:.3f} alt={report.altitude:.2f} {valid}"
        )

    def on_dead_reckoning(self, report: DeadReckoningReport) -> None:
        print(
            f"DR  x={report.x:+.2f} y={report.y:+.2f} z={report.z:+.2f} std={report.std:.3f} "
            f"rpy=({report.roll:.1f}, {report.pitch:.1f}, {report.yaw:.1f}) status={report.status}"
        )

    def close(self) -> None:
        return None

# ---------------- Logging ----------------

def configure_logging(*, verbose: bool = False, log_file: Optional[Path] = None) -> None:
    root = logging.getLogger()
    level = logging.DEBUG if verbose else logging.WARNING

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(sh)
    for h in root.handlers:
        if type(h) is logging.StreamHandler:
            h.setLevel(level)

    root.setLevel(min(root.level or logging.WARNING, level))

    if log_file is not None:
        configure_file_logging(log_file)


def configure_file_logging(app_log_path: Path) -> None:
    """
    Add a file handler to the root logger (idempotent).
    Kept in CLI (presentation-layer concern).
    """
    root = logging.getLogger()
    app_log_path.parent.mkdir(parents=True, exist_ok=True)
    target = str(app_log_path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(app_log_path, encoding="utf-8", delay=True)
    fh.setLevel(logging.INFO)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(fh)

    if root.level > logging.INFO:
        root.setLevel(logging.INFO)

# ---------------- Command helpers ----------------

def wait_command(client: DvlClient, future, cmd_name: str) -> Response:
    """Block on a command and map protocol outcomes to operator errors."""
    try:
        return client.wait_ok(future, cmd_name)
    except CommandTimeout as e:
        raise DeviceNotRespondingError(
            f"DVL did not answer '{cmd_name}'.",
            hint=f"No reply within {e.timeout_s}s. Check that the DVL is powered and reachable.",
            details={"cmd": cmd_name},
        ) from None
    except CommandFailed as e:
        if e.resp.origin == ORIGIN_DEVICE:
            raise CommandRejectedError(
                f"DVL rejected '{cmd_name}'.",
                hint=e.resp.error_message or None,
                details={"cmd": cmd_name},
            ) from None
        raise ProtocolCommunicationError(
            f"'{cmd_name}' could not be delivered.",
            hint=e.resp.error_message or None,
            details={"cmd": cmd_name, "origin": e.resp.origin},
        ) from None


def _with_client(cfg: DvlConfig, fn: Callable[[AppRun], int]) -> int:
    run = build_run(cfg)
    try:
        run.link.start()
        return fn(run)
    finally:
        run.close()

# ---------------- Commands ----------------

def cmd_stream(args, cfg: DvlConfig) -> int:
    sinks: list[ReportSink] = [PrintReportSink()]
    if args.record:
        sinks.append(ReportRecorder(Path(args.record)))

    def _velocity(report: VelocityReport) -> None:
        for s in sinks:
            s.on_velocity(report)

    def _dead_reckoning(report: DeadReckoningReport) -> None:
        for s in sinks:
            s.on_dead_reckoning(report)

    def _run(run: AppRun) -> int:
        client = run.link.client
        if not args.dead_reckoning_only:
            client.attach_velocity_callback(_velocity)
        if not args.velocity_only:
            client.attach_dead_reckoning_callback(_dead_reckoning)

        t0 = time.monotonic()
        try:
            while args.secs is None or time.monotonic() - t0 < args.secs:
                if not run.link.connected:
                    raise DeviceDisconnectedError(
                        "Connection to the DVL was lost.",
                        hint=f"Check power and network to {cfg.host}:{cfg.port}.",
                    )
                time.sleep(0.2)
        except KeyboardInterrupt:
            pass
        return 0

    try:
        return _with_client(cfg, _run)
    finally:
        for s in sinks:
            s.close()


def cmd_status(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        time.sleep(max(0.0, float(args.secs)))
        st = run.link.stats()
        print(f"DVL:       {cfg.host}:{cfg.port}")
        if st is None:
            print("Link:      not started")
            return 1
        print(f"Link:      connected={st.connected} pending={st.pending}")
        print(f"Reports:   velocity={st.velocity_reports} dead_reckoning={st.dead_reckoning_reports}")
        print(
            f"Replies:   matched={st.replies_matched} unsolicited={st.unsolicited_replies} "
            f"timeouts={st.timeouts} malformed_lines={st.malformed_lines}"
        )
        return 0 if st.connected else 1

    return _with_client(cfg, _run)


def cmd_calibrate_gyro(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        client = run.link.client
        wait_command(client, client.calibrate_gyro(), "calibrate_gyro")
        print("calibrate_gyro: OK")
        return 0

    return _with_client(cfg, _run)


def cmd_reset_dr(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        client = run.link.client
        wait_command(client, client.reset_dead_reckoning(), "reset_dead_reckoning")
        print("reset_dead_reckoning: OK")
        return 0

    return _with_client(cfg, _run)


def cmd_ping(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        client = run.link.client
        futures = [client.trigger_ping() for _ in range(max(1, int(args.count)))]
        failed = 0
        for i, fut in enumerate(futures, start=1):
            resp = fut.result()
            if resp is None:
                failed += 1
                print(f"trigger_ping #{i}: timeout")
            elif not resp.success:
                failed += 1
                print(f"trigger_ping #{i}: failed ({resp.origin}) {resp.error_message}")
            else:
                print(f"trigger_ping #{i}: OK")
        return 1 if failed else 0

    return _with_client(cfg, _run)


def cmd_get_config(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        client = run.link.client
        resp = wait_command(client, client.get_config(), "get_config")
        print(json.dumps(resp.result, indent=2, sort_keys=True))
        return 0

    return _with_client(cfg, _run)


def cmd_set_config(args, cfg: DvlConfig) -> int:
    def _run(run: AppRun) -> int:
        client = run.link.client
        wait_command(client, client.set_config(args.parameters), "set_config")
        print("set_config: OK")
        return 0

    return _with_client(cfg, _run)
