from __future__ import annotations

import logging
from types import SimpleNamespace

import pytest

import dvl.protocol.engine as eng_mod
from dvl.interfaces.command_sink import CommandEvent
from dvl.protocol.types import ORIGIN_LOCAL, ORIGIN_TRANSPORT, Response
from dvl.transport.errors import TransportClosedError, TransportIOError


class RecordingSink:
    def __init__(self):
        self.events: list[CommandEvent] = []

    def on_command(self, event: CommandEvent) -> None:
        self.events.append(event)

    def close(self) -> None:
        return None


# -----------------------------
# Helpers
# -----------------------------

def _make_engine(transport, **kwargs):
    """
    Build a DvlEngine without its threads, so tests drive _pump_rx/_sweep_expired directly.
    """
    engine = eng_mod.DvlEngine(transport, logger=logging.getLogger("test"), **kwargs)
    engine._rx_thread = SimpleNamespace(is_alive=lambda: True)
    return engine


def _pump_all(engine, transport):
    while not transport._lines.empty():
        engine._pump_rx()


# -----------------------------
# Dispatch
# -----------------------------

def test_issue_command_registers_and_sends(fake_transport):
    engine = _make_engine(fake_transport)

    p = engine.issue_command("calibrate_gyro", b'{"command": "calibrate_gyro"}\n', timeout_s=1.0)

    assert fake_transport.writes == [b'{"command": "calibrate_gyro"}\n']
    assert not p.done()
    assert engine.pending_count == 1
    assert p.timeout_s == 1.0


def test_issue_command_uses_default_timeout(fake_transport):
    engine = _make_engine(fake_transport, cmd_timeout_s=3.0)
    p = engine.issue_command("trigger_ping", b"x\n")
    assert p.timeout_s == 3.0


def test_send_failure_resolves_immediately_and_removes_pending(fake_transport):
    engine = _make_engine(fake_transport)
    fake_transport.raise_on_write = TransportIOError("broken pipe")

    p = engine.issue_command("trigger_ping", b"x\n", timeout_s=10.0)

    assert engine.pending_count == 0
    resp = p.result(timeout=0)
    assert resp.success is False
    assert resp.origin == ORIGIN_TRANSPORT
    assert "broken pipe" in resp.error_message


def test_queue_full_resolves_immediately_without_sending(fake_transport):
    engine = _make_engine(fake_transport, max_pending_per_type=1)

    first = engine.issue_command("trigger_ping", b"1\n")
    second = engine.issue_command("trigger_ping", b"2\n")

    assert fake_transport.writes == [b"1\n"]
    assert not first.done()
    resp = second.result(timeout=0)
    assert resp.success is False
    assert resp.origin == ORIGIN_LOCAL


# -----------------------------
# Reply correlation
# -----------------------------

def test_reply_completes_matching_request(fake_transport, docs):
    engine = _make_engine(fake_transport)
    p = engine.issue_command("calibrate_gyro", b"x\n", timeout_s=1.0)

    fake_transport.inject_doc(docs.reply("calibrate_gyro", success=True))
    _pump_all(engine, fake_transport)

    assert p.result(timeout=0) == Response(success=True, error_message="")
    assert engine.pending_count == 0
    assert engine.stats().replies_matched == 1


def test_device_failure_is_passed_through(fake_transport, docs):
    engine = _make_engine(fake_transport)
    p = engine.issue_command("set_config", b"x\n")

    fake_transport.inject_doc(docs.reply("set_config", success=False, error_message="invalid parameter"))
    _pump_all(engine, fake_transport)

    assert p.result(timeout=0) == Response(success=False, error_message="invalid parameter")


def test_replies_match_in_issue_order(fake_transport, docs):
    engine = _make_engine(fake_transport)
    a = engine.issue_command("set_config", b"a\n")
    b = engine.issue_command("set_config", b"b\n")

    fake_transport.inject_doc(docs.reply("set_config", success=True))
    fake_transport.inject_doc(docs.reply("set_config", success=False, error_message="second"))
    _pump_all(engine, fake_transport)

    assert a.result(timeout=0).success is True
    assert b.result(timeout=0) == Response(success=False, error_message="second")


def test_reply_never_completes_other_type(fake_transport, docs):
    engine = _make_engine(fake_transport)
    y = engine.issue_command("calibrate_gyro", b"y\n")
    x = engine.issue_command("trigger_ping", b"x\n")

    fake_transport.inject_doc(docs.reply("trigger_ping"))
    _pump_all(engine, fake_transport)

    assert x.done()
    assert not y.done()
    assert engine.pending_count == 1


def test_unsolicited_reply_is_dropped(fake_transport, docs, caplog):
    engine = _make_engine(fake_transport)

    with caplog.at_level(logging.WARNING, logger="test"):
        fake_transport.inject_doc(docs.reply("reset_dead_reckoning"))
        _pump_all(engine, fake_transport)

    assert engine.stats().unsolicited_replies == 1
    assert "UNSOLICITED_REPLY" in caplog.text


# -----------------------------
# Telemetry
# -----------------------------

def test_reports_go_to_their_callbacks(fake_transport, docs):
    engine = _make_engine(fake_transport)
    vel, dr = [], []
    engine.attach_velocity_callback(vel.append)
    engine.attach_dead_reckoning_callback(dr.append)

    fake_transport.inject_doc(docs.velocity())
    fake_transport.inject_doc(docs.dead_reckoning())
    fake_transport.inject_doc(docs.velocity(vx=1.5))
    _pump_all(engine, fake_transport)

    assert [r.vx for r in vel] == [0.01, 1.5]
    assert len(dr) == 1
    st = engine.stats()
    assert st.velocity_reports == 2
    assert st.dead_reckoning_reports == 1


def test_report_without_callback_is_dropped(fake_transport, docs):
    engine = _make_engine(fake_transport)

    fake_transport.inject_doc(docs.velocity())
    _pump_all(engine, fake_transport)

    assert engine.stats().velocity_reports == 1
    assert engine.pending_count == 0


def test_callback_swap_applies_to_later_reports_only(fake_transport, docs):
    engine = _make_engine(fake_transport)
    old, new = [], []
    engine.attach_velocity_callback(old.append)

    fake_transport.inject_doc(docs.velocity(vx=1.0))
    _pump_all(engine, fake_transport)
    engine.attach_velocity_callback(new.append)
    fake_transport.inject_doc(docs.velocity(vx=2.0))
    _pump_all(engine, fake_transport)

    assert [r.vx for r in old] == [1.0]
    assert [r.vx for r in new] == [2.0]


def test_detach_with_none(fake_transport, docs):
    engine = _make_engine(fake_transport)
    seen = []
    engine.attach_dead_reckoning_callback(seen.append)
    engine.attach_dead_reckoning_callback(None)

    fake_transport.inject_doc(docs.dead_reckoning())
    _pump_all(engine, fake_transport)

    assert seen == []


def test_callback_error_does_not_break_pump(fake_transport, docs):
    engine = _make_engine(fake_transport)

    def boom(_):
        raise RuntimeError("handler failed")

    engine.attach_velocity_callback(boom)
    p = engine.issue_command("trigger_ping", b"x\n")

    fake_transport.inject_doc(docs.velocity())
    fake_transport.inject_doc(docs.reply("trigger_ping"))
    _pump_all(engine, fake_transport)

    assert p.result(timeout=0).success is True


def test_malformed_lines_are_counted_and_skipped(fake_transport, docs):
    engine = _make_engine(fake_transport)
    p = engine.issue_command("trigger_ping", b"x\n")

    fake_transport.inject(b"{garbage")
    fake_transport.inject(b"   ")
    fake_transport.inject_doc({"type": "something_new"})
    fake_transport.inject_doc(docs.reply("trigger_ping"))
    _pump_all(engine, fake_transport)

    assert p.result(timeout=0).success is True
    assert engine.stats().malformed_lines == 2


def test_deeply_nested_line_is_counted_as_malformed(fake_transport, caplog):
    engine = _make_engine(fake_transport)

    with caplog.at_level(logging.WARNING, logger="test"):
        fake_transport.inject(b"[" * 60000)
        _pump_all(engine, fake_transport)

    assert engine.stats().malformed_lines == 1
    assert "RX_UNRECOGNIZED" in caplog.text


# -----------------------------
# Timeouts
# -----------------------------

def test_sweep_expires_with_none(fake_transport):
    engine = _make_engine(fake_transport)
    p = engine.issue_command("trigger_ping", b"x\n", timeout_s=0.2)

    assert engine._sweep_expired(now=p.issued_at + 0.1) == 0
    assert not p.done()

    assert engine._sweep_expired(now=p.issued_at + 0.2) == 1
    assert p.result(timeout=0) is None
    assert engine.pending_count == 0
    assert engine.stats().timeouts == 1


def test_sweep_leaves_live_requests_of_same_type(fake_transport, docs):
    engine = _make_engine(fake_transport)
    short = engine.issue_command("set_config", b"a\n", timeout_s=0.1)
    long = engine.issue_command("set_config", b"b\n", timeout_s=10.0)

    engine._sweep_expired(now=short.issued_at + 1.0)
    fake_transport.inject_doc(docs.reply("set_config"))
    _pump_all(engine, fake_transport)

    assert short.result(timeout=0) is None
    assert long.result(timeout=0).success is True


def test_late_reply_after_timeout_is_unsolicited(fake_transport, docs):
    engine = _make_engine(fake_transport)
    p = engine.issue_command("calibrate_gyro", b"x\n", timeout_s=0.1)

    engine._sweep_expired(now=p.issued_at + 1.0)
    fake_transport.inject_doc(docs.reply("calibrate_gyro"))
    _pump_all(engine, fake_transport)

    assert p.result(timeout=0) is None
    assert engine.stats().unsolicited_replies == 1


# -----------------------------
# Disconnect / stop
# -----------------------------

def test_disconnect_fails_every_pending_request(fake_transport):
    engine = _make_engine(fake_transport)
    a = engine.issue_command("calibrate_gyro", b"a\n")
    b = engine.issue_command("trigger_ping", b"b\n")
    c = engine.issue_command("trigger_ping", b"c\n")

    engine._on_disconnect(TransportClosedError("peer closed connection"))

    for p in (a, b, c):
        resp = p.result(timeout=0)
        assert resp.success is False
        assert resp.origin == ORIGIN_TRANSPORT
        assert "connection lost" in resp.error_message
    assert engine.connected is False
    assert engine.stats().connected is False


def test_commands_after_disconnect_fail_immediately(fake_transport):
    engine = _make_engine(fake_transport)
    engine._on_disconnect(TransportClosedError("peer closed connection"))

    p = engine.issue_command("trigger_ping", b"x\n")

    resp = p.result(timeout=0)
    assert resp.success is False
    assert resp.origin == ORIGIN_TRANSPORT
    assert fake_transport.writes == []


def test_pump_propagates_transport_errors(fake_transport):
    engine = _make_engine(fake_transport)
    fake_transport.disconnect()
    with pytest.raises(TransportClosedError):
        engine._pump_rx()


# -----------------------------
# Command tracing
# -----------------------------

def test_command_sink_sees_send_and_outcome(fake_transport, docs):
    sink = RecordingSink()
    engine = _make_engine(fake_transport, cmd_sink=sink)

    ok = engine.issue_command("calibrate_gyro", b"a\n", timeout_s=1.0)
    late = engine.issue_command("trigger_ping", b"b\n", timeout_s=0.1)

    fake_transport.inject_doc(docs.reply("calibrate_gyro"))
    _pump_all(engine, fake_transport)
    engine._sweep_expired(now=late.issued_at + 1.0)

    kinds = [(e.name, e.kind) for e in sink.events]
    assert kinds == [
        ("calibrate_gyro", "send"),
        ("trigger_ping", "send"),
        ("calibrate_gyro", "ok"),
        ("trigger_ping", "timeout"),
    ]
    assert sink.events[2].request_id == str(ok.request_id)
    assert "rtt_ms" in sink.events[2].payload


def test_command_sink_errors_are_contained(fake_transport):
    class BadSink(RecordingSink):
        def on_command(self, event):
            raise RuntimeError("disk full")

    engine = _make_engine(fake_transport, cmd_sink=BadSink())
    p = engine.issue_command("trigger_ping", b"x\n")
    assert fake_transport.writes == [b"x\n"]
    assert not p.done()


def test_stop_marks_engine_disconnected_and_rejects_locally(fake_transport):
    engine = _make_engine(fake_transport)
    engine._rx_thread = None
    engine.stop()

    assert engine.connected is False
    assert engine.stats().connected is False

    resp = engine.issue_command("trigger_ping", b"x\n").result(timeout=0)
    assert resp.origin == ORIGIN_LOCAL
    assert resp.error_message == "engine stopped"
    assert fake_transport.writes == []


def test_stop_after_disconnect_keeps_transport_origin(fake_transport):
    engine = _make_engine(fake_transport)
    engine._on_disconnect(TransportClosedError("peer closed connection"))
    engine._rx_thread = None
    engine.stop()

    resp = engine.issue_command("trigger_ping", b"x\n").result(timeout=0)
    assert resp.origin == ORIGIN_TRANSPORT
    assert "connection lost" in resp.error_message
