# dvl/protocol/engine.py
from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol as TypingProtocol

from dvl.interfaces.command_sink import CommandEvent, CommandSink
from dvl.model.report import DeadReckoningReport, VelocityReport
from dvl.transport.errors import TransportError

from .errors import LinkClosed, PendingQueueFull
from .parser import ReportParser
from .types import ORIGIN_LOCAL, ORIGIN_TRANSPORT, CommandReply, Message, Response, Unrecognized
from ._internal.observers import DeadReckoningCallback, ObserverRegistry, VelocityCallback
from ._internal.pending_request import PendingRequest
from ._internal.pending_table import PendingTable
from ._internal.rx_worker import RxWorker
from ._internal.sweeper import TimeoutSweeper

DEFAULT_CMD_TIMEOUT_S = 3.0


class TransportIO(TypingProtocol):
    """Minimal I/O interface for DvlEngine."""
    def write(self, data: bytes) -> int: ...
    def read_line(self) -> bytes: ...
    def flush(self) -> None: ...


class MessageParser(TypingProtocol):
    def parse(self, line: bytes) -> Message: ...


@dataclass(frozen=True)
class EngineStats:
    """Counters snapshot, safe to share across threads."""
    connected: bool
    pending: int
    replies_matched: int = 0
    unsolicited_replies: int = 0
    timeouts: int = 0
    malformed_lines: int = 0
    velocity_reports: int = 0
    dead_reckoning_reports: int = 0


class DvlEngine:
    """
    Command/reply correlation engine for the DVL JSON protocol.

    Commands are registered in a PendingTable and answered asynchronously:
    the RX thread completes the oldest outstanding command of the reply's
    type, the sweeper thread completes expired ones with None. Telemetry
    reports go to the callback registered for their type.
    """

    def __init__(
        self,
        transport: TransportIO,
        *,
        parser: Optional[MessageParser] = None,
        cmd_timeout_s: float = DEFAULT_CMD_TIMEOUT_S,
        sweep_interval_s: float = 0.1,
        max_pending_per_type: Optional[int] = 15,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.transport = transport

        self._log = logger or logging.getLogger(__name__)
        self._cmd_sink = cmd_sink

        self.cmd_timeout_s = float(cmd_timeout_s)
        self.sweep_interval_s = float(sweep_interval_s)

        self._parser = parser or ReportParser(logger=self._log)
        self._pending = PendingTable(max_depth=max_pending_per_type)
        self._observers = ObserverRegistry()

        self._rx_thread: Optional[RxWorker] = None
        self._sweeper: Optional[TimeoutSweeper] = None
        self._start_lock = threading.Lock()
        self._stopping = False
        self._connected = True
        # origin of the first cause that closed the pending table
        self._closed_origin: Optional[str] = None

        self._ids = itertools.count(1)
        self._stats_lock = threading.Lock()
        self._counts = {
            "replies_matched": 0,
            "unsolicited_replies": 0,
            "timeouts": 0,
            "malformed_lines": 0,
            "velocity_reports": 0,
            "dead_reckoning_reports": 0,
        }

    # ---------------- State ----------------
    @property
    def running(self) -> bool:
        return self._rx_thread is not None and self._rx_thread.is_alive()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def stats(self) -> EngineStats:
        with self._stats_lock:
            counts = dict(self._counts)
        return EngineStats(connected=self._connected, pending=len(self._pending), **counts)

    def _count(self, key: str) -> None:
        with self._stats_lock:
            self._counts[key] += 1

    # ---------------- Observers ----------------
    def attach_velocity_callback(self, cb: Optional[VelocityCallback]) -> None:
        self._observers.set_velocity(cb)

    def attach_dead_reckoning_callback(self, cb: Optional[DeadReckoningCallback]) -> None:
        self._observers.set_dead_reckoning(cb)

    # ---------------- Command API ----------------
    def issue_command(self, cmd_type: str, payload: bytes, timeout_s: Optional[float] = None) -> PendingRequest:
        """
        Register and send a command. Never blocks on the reply.

        The returned request's future resolves to the device's Response, a
        failure Response (send failure, connection lost, queue full) or None
        on timeout.
        """
        if self._rx_thread is None:
            self.start()

        timeout_s = self.cmd_timeout_s if timeout_s is None else float(timeout_s)
        pending = PendingRequest(next(self._ids), cmd_type, timeout_s)

        if self._cmd_sink:
            self._trace(pending, kind="send", payload={"timeout_s": timeout_s})
            pending.add_done_callback(lambda fut, p=pending: self._trace_done(p, fut))

        try:
            self._pending.add(pending)
        except PendingQueueFull as e:
            self._log.warning("CMD_QUEUE_FULL cmd=%s depth=%d", cmd_type, e.depth)
            pending.complete(Response.local_failure(str(e)))
            return pending
        except LinkClosed as e:
            self._log.warning("CMD_REJECTED_LINK_CLOSED cmd=%s reason=%s", cmd_type, e)
            origin = self._closed_origin or ORIGIN_LOCAL
            pending.complete(Response(success=False, error_message=str(e), origin=origin))
            return pending

        self._log.debug("SENDING_CMD cmd=%s id=%d len=%d", cmd_type, pending.request_id, len(payload))

        try:
            self.transport.write(payload)
            self.transport.flush()
        except TransportError as e:
            self._log.error("CMD_SEND_FAILED cmd=%s id=%d err=%s", cmd_type, pending.request_id, e)
            if self._pending.discard(pending):
                pending.complete(Response.transport_failure(f"send failed: {e}"))

        return pending

    # ---------------- Threads ----------------
    def start(self) -> None:
        with self._start_lock:
            # no restart after stop()
            if self._rx_thread is not None or self._stopping:
                return
            self._rx_thread = RxWorker(self)
            self._sweeper = TimeoutSweeper(self, interval_s=self.sweep_interval_s)
            self._rx_thread.start()
            self._sweeper.start()
        self._log.info("ENGINE_STARTED sweep_interval_s=%.3f", self.sweep_interval_s)

    def stop(self, join_timeout_s: float = 2.0) -> None:
        """Stop both threads and fail whatever is still pending."""
        self._stopping = True
        for worker in (self._rx_thread, self._sweeper):
            if worker is not None:
                worker.stop()
        for worker in (self._rx_thread, self._sweeper):
            if worker is not None and worker is not threading.current_thread():
                worker.join(timeout=join_timeout_s)
                if worker.is_alive():
                    self._log.warning("ENGINE_THREAD_STILL_RUNNING name=%s", worker.name)

        self._connected = False
        self._fail_all("engine stopped", origin=ORIGIN_LOCAL)
        self._log.info("ENGINE_STOPPED")

    # ---------------- RX Pump ----------------
    def _pump_rx(self) -> None:
        line = self.transport.read_line()
        if not line or not line.strip():
            return
        self._handle_message(self._parser.parse(line))

    def _handle_message(self, msg: Message) -> None:
        if isinstance(msg, CommandReply):
            self._complete_reply(msg)
        elif isinstance(msg, (VelocityReport, DeadReckoningReport)):
            self._dispatch_report(msg)
        elif isinstance(msg, Unrecognized):
            self._count("malformed_lines")
            self._log.warning("RX_UNRECOGNIZED reason=%s line=%r", msg.reason, msg.line[:120])
        else:
            self._log.warning("RX_UNEXPECTED_MESSAGE kind=%s", type(msg).__name__)

    def _complete_reply(self, reply: CommandReply) -> None:
        pending = self._pending.pop_oldest(reply.response_to)
        if pending is None:
            self._count("unsolicited_replies")
            self._log.warning(
                "UNSOLICITED_REPLY type=%s success=%s", reply.response_to, reply.success
            )
            return

        self._count("replies_matched")
        if not pending.complete(reply.to_response()):
            self._log.error("DUPLICATE_COMPLETION id=%d type=%s", pending.request_id, pending.cmd_type)

    def _dispatch_report(self, report) -> None:
        if isinstance(report, VelocityReport):
            self._count("velocity_reports")
        else:
            self._count("dead_reckoning_reports")

        cb = self._observers.lookup(report)
        if cb is None:
            return
        try:
            cb(report)
        except Exception:
            self._log.exception("REPORT_CALLBACK_ERROR kind=%s", type(report).__name__)

    # ---------------- Timeouts ----------------
    def _sweep_expired(self, now: Optional[float] = None) -> int:
        now = time.perf_counter() if now is None else now
        expired = self._pending.pop_expired(now)
        for pending in expired:
            self._count("timeouts")
            self._log.info(
                "CMD_TIMEOUT cmd=%s id=%d timeout_s=%.3f", pending.cmd_type, pending.request_id, pending.timeout_s
            )
            pending.complete(None)
        return len(expired)

    # ---------------- Disconnect ----------------
    def _on_disconnect(self, exc: BaseException) -> None:
        self._connected = False
        if self._stopping:
            self._log.debug("RX_STOPPED_ON_TRANSPORT_ERROR err=%s", exc)
        else:
            self._log.warning("CONNECTION_LOST err=%s pending=%d", exc, len(self._pending))
        self._fail_all(f"connection lost: {exc}", origin=ORIGIN_TRANSPORT)

    def _fail_all(self, reason: str, *, origin: str) -> None:
        with self._start_lock:
            if self._closed_origin is None:
                self._closed_origin = origin
        drained = self._pending.close(reason)
        # reuse the stored cause so late commands get the first one
        reason = self._pending.closed_reason or reason
        origin = self._closed_origin
        for pending in drained:
            pending.complete(Response(success=False, error_message=reason, origin=origin))

    # ---------------- Command tracing ----------------
    def _trace(self, pending: PendingRequest, *, kind: str, payload: dict) -> None:
        try:
            self._cmd_sink.on_command(  # type: ignore[union-attr]
                CommandEvent(
                    name=pending.cmd_type,
                    kind=kind,
                    request_id=str(pending.request_id),
                    payload=payload,
                )
            )
        except Exception:
            self._log.exception("CMD_SINK_ERROR cmd=%s", pending.cmd_type)

    def _trace_done(self, pending: PendingRequest, fut) -> None:
        rtt_ms = (time.perf_counter() - pending.issued_at) * 1000.0
        resp: Optional[Response] = fut.result()
        if resp is None:
            self._trace(pending, kind="timeout", payload={"rtt_ms": rtt_ms, "timeout_s": pending.timeout_s})
        elif resp.success:
            self._trace(pending, kind="ok", payload={"rtt_ms": rtt_ms, "result": resp.result})
        else:
            self._trace(
                pending,
                kind="fail",
                payload={"rtt_ms": rtt_ms, "origin": resp.origin, "error": resp.error_message},
            )

    # ---------------- Factory ----------------
    @classmethod
    def create(
        cls,
        transport: TransportIO,
        *,
        cmd_timeout_s: float = DEFAULT_CMD_TIMEOUT_S,
        sweep_interval_s: float = 0.1,
        max_pending_per_type: Optional[int] = 15,
        cmd_sink: Optional[CommandSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "DvlEngine":
        engine = cls(
            transport,
            cmd_timeout_s=cmd_timeout_s,
            sweep_interval_s=sweep_interval_s,
            max_pending_per_type=max_pending_per_type,
            cmd_sink=cmd_sink,
            logger=logger,
        )
        engine.start()
        return engine
