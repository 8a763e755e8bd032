from __future__ import annotations

import json
import queue
from types import SimpleNamespace

import pytest

from dvl.transport.base import Transport
from dvl.transport.errors import TransportClosedError

_CLOSED = object()


class FakeLineTransport(Transport):
    """
    In-memory Transport stub.

    - inject()/inject_doc() stage inbound lines for read_line()
    - disconnect() makes read_line() raise TransportClosedError
    - writes are recorded in .writes (or raise raise_on_write)
    """

    def __init__(self, poll_s: float = 0.01):
        self.poll_s = poll_s
        self.writes: list[bytes] = []
        self.raise_on_write: Exception | None = None
        self.opened = 0
        self.closed = 0
        self.raise_on_open: Exception | None = None
        self._lines: "queue.Queue[object]" = queue.Queue()

    def open(self) -> None:
        if self.raise_on_open is not None:
            raise self.raise_on_open
        self.opened += 1

    def close(self) -> None:
        self.closed += 1
        self._lines.put(_CLOSED)

    def inject(self, line: bytes) -> None:
        self._lines.put(line)

    def inject_doc(self, doc: dict) -> None:
        self._lines.put(json.dumps(doc).encode("utf-8"))

    def disconnect(self) -> None:
        self._lines.put(_CLOSED)

    def read_line(self) -> bytes:
        try:
            item = self._lines.get(timeout=self.poll_s)
        except queue.Empty:
            return b""
        if item is _CLOSED:
            # stay closed for any later read
            self._lines.put(_CLOSED)
            raise TransportClosedError("peer closed connection")
        return item  # type: ignore[return-value]

    def write(self, data: bytes) -> int:
        if self.raise_on_write is not None:
            raise self.raise_on_write
        self.writes.append(data)
        return len(data)

    def flush(self) -> None:
        return None


def velocity_doc(**overrides) -> dict:
    doc = {
        "type": "velocity",
        "time": 106.3,
        "vx": 0.01,
        "vy": -0.02,
        "vz": 0.003,
        "fom": 0.002,
        "covariance": [[1e-6, 0.0, 0.0], [0.0, 1e-6, 0.0], [0.0, 0.0, 1e-7]],
        "altitude": 1.25,
        "transducers": [
            {"id": i, "velocity": 0.01 * i, "distance": 1.3, "rssi": -30.5, "nsd": -95.0, "beam_valid": True}
            for i in range(4)
        ],
        "velocity_valid": True,
        "status": 0,
        "time_of_validity": 1638191471563017,
        "time_of_transmission": 1638191471752336,
        "format": "json_v3.1",
    }
    doc.update(overrides)
    return doc


def dead_reckoning_doc(**overrides) -> dict:
    doc = {
        "type": "position_local",
        "ts": 49056.809,
        "x": 12.43,
        "y": 7.91,
        "z": 0.5,
        "std": 0.31,
        "roll": 0.5,
        "pitch": -1.2,
        "yaw": 88.0,
        "status": 0,
        "format": "json_v3.1",
    }
    doc.update(overrides)
    return doc


def reply_doc(response_to: str, success: bool = True, error_message: str = "", result=None) -> dict:
    return {
        "type": "response",
        "response_to": response_to,
        "success": success,
        "error_message": error_message,
        "result": result,
        "format": "json_v3.1",
    }


@pytest.fixture
def fake_transport() -> FakeLineTransport:
    return FakeLineTransport()


@pytest.fixture
def docs() -> SimpleNamespace:
    return SimpleNamespace(velocity=velocity_doc, dead_reckoning=dead_reckoning_doc, reply=reply_doc)
