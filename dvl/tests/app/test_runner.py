from __future__ import annotations

import pytest

from dvl.app.config import DvlConfig
from dvl.app.runner import build_run
from dvl.core.errors import ConfigError
from dvl.transport.registry import TransportDriverRegistry
from dvl.transport.tcp import TCPTransport


def test_build_run_wires_transport_and_trace(tmp_path):
    trace = tmp_path / "trace.jsonl"
    cfg = DvlConfig(host="10.1.2.3", cmd_timeout_s=1.5, max_pending_per_type=4, command_trace=str(trace))

    run = build_run(cfg)
    try:
        assert isinstance(run.link.transport, TCPTransport)
        assert run.link.transport.host == "10.1.2.3"
        assert run.link.cmd_timeout_s == 1.5
        assert run.link.max_pending_per_type == 4
        assert run.link.cmd_sink is run.cmd_sink
        assert run.cmd_sink.file_path == trace
        assert not run.link.is_started
    finally:
        run.close()


def test_build_run_uses_custom_registry(fake_transport):
    drivers = TransportDriverRegistry({"fake": lambda **params: fake_transport})

    run = build_run(DvlConfig(driver="fake"), drivers=drivers)
    try:
        assert run.link.transport is fake_transport
    finally:
        run.close()


def test_unknown_driver_is_config_error():
    with pytest.raises(ConfigError) as ei:
        build_run(DvlConfig(driver="uart"))
    assert "tcp" in ei.value.hint


def test_bad_driver_params_are_config_error():
    def strict(host):
        raise AssertionError("not reached")

    drivers = TransportDriverRegistry({"strict": strict})
    with pytest.raises(ConfigError):
        build_run(DvlConfig(driver="strict"), drivers=drivers)
