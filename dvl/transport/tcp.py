# dvl/transport/tcp.py
from __future__ import annotations

import logging
import socket
import threading
import time
from typing import Optional

from .base import Transport
from .errors import TransportClosedError, TransportIOError, TransportOpenError

DEFAULT_PORT = 16171


class TCPTransport(Transport):
    """
    TCP transport for the DVL JSON protocol.

    Lines are terminated by "\\n" (a trailing "\\r" is stripped). read_line()
    waits at most read_timeout_s and returns b"" on timeout so the reader
    thread can observe a stop request.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        connect_timeout_s: float = 5.0,
        read_timeout_s: float = 0.2,
        write_timeout_s: float = 2.0,
        max_line_bytes: int = 65536,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.port = int(port)
        self.connect_timeout_s = float(connect_timeout_s)
        self.read_timeout_s = float(read_timeout_s)
        self.write_timeout_s = float(write_timeout_s)
        self.max_line_bytes = int(max_line_bytes)
        self.sock: Optional[socket.socket] = None

        self._log = logger or logging.getLogger(__name__)
        self._rx_buf = bytearray()
        self._tx_lock = threading.Lock()

    def open(self) -> None:
        try:
            self.sock = socket.create_connection((self.host, self.port), timeout=self.connect_timeout_s)
            self.sock.settimeout(self.read_timeout_s)
        except OSError as e:
            self.sock = None
            raise TransportOpenError(f"could not connect to {self.host}:{self.port}: {e}") from None
        self._rx_buf.clear()

    def close(self) -> None:
        if self.sock is not None:
            try:
                self.sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                self.sock.close()
            finally:
                self.sock = None

    def is_open(self) -> bool:
        return self.sock is not None

    def read_line(self) -> bytes:
        line = self._take_line()
        if line is not None:
            return line

        sock = self.sock
        if sock is None:
            raise TransportIOError("read while transport not open")

        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            return b""
        except OSError as e:
            raise TransportIOError(f"TCP read failed: {e}") from None

        if not chunk:
            raise TransportClosedError(f"connection closed by {self.host}:{self.port}")

        self._rx_buf.extend(chunk)
        if len(self._rx_buf) > self.max_line_bytes and b"\n" not in self._rx_buf:
            self._log.warning("RX_LINE_TOO_LONG len=%d, dropping buffer", len(self._rx_buf))
            self._rx_buf.clear()
            return b""

        return self._take_line() or b""

    def write(self, data: bytes) -> int:
        """
        Send all of data within write_timeout_s.

        The socket timeout is the short read timeout, so a stalled send is
        retried from the first unsent byte until the write deadline passes.
        """
        sock = self.sock
        if sock is None:
            raise TransportIOError("write while transport not open")

        view = memoryview(data)
        deadline = time.monotonic() + self.write_timeout_s
        with self._tx_lock:
            while view:
                try:
                    sent = sock.send(view)
                except socket.timeout:
                    if time.monotonic() >= deadline:
                        raise TransportIOError(
                            f"TCP write timed out after {self.write_timeout_s}s "
                            f"({len(data) - len(view)}/{len(data)} bytes sent)"
                        ) from None
                    continue
                except OSError as e:
                    raise TransportIOError(f"TCP write failed: {e}") from None
                view = view[sent:]
        return len(data)

    def flush(self) -> None:
        if self.sock is None:
            raise TransportIOError("flush while transport not open")

    def _take_line(self) -> Optional[bytes]:
        idx = self._rx_buf.find(b"\n")
        if idx < 0:
            return None
        line = bytes(self._rx_buf[:idx])
        del self._rx_buf[: idx + 1]
        return line.rstrip(b"\r")
