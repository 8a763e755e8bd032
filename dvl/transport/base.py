from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class Transport(ABC):
    """
    Abstract line-oriented transport interface (TCP, replay, etc.).

    Contract:
      - open()/close() manage the underlying connection.
      - read_line() returns one inbound line without its terminator. It blocks
        for at most the transport's read timeout and returns b"" when no
        complete line arrived in that window.
        Raises TransportClosedError when the peer closed the connection and
        TransportIOError on any other fault.
      - write(data) sends all bytes and returns the number written.
      - flush() forces pending output to be transmitted.
    """

    @abstractmethod
    def open(self) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

    @abstractmethod
    def read_line(self) -> bytes: ...

    @abstractmethod
    def write(self, data: bytes) -> int: ...

    @abstractmethod
    def flush(self) -> None: ...

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.close()
