"""Transport abstractions for the GRBL line protocol (Serial + Mock)

Keep this small and explicit. Real SerialTransport wraps pyserial. MockTransport
is for unit tests and simulates a controller answering line by line.
"""

from __future__ import annotations
import logging
from collections import deque
from typing import List, Optional

logger = logging.getLogger(__name__)

LINE_END = "\n"


class TransportBase:
    def write(self, data: bytes) -> int:  # returns bytes written
        raise NotImplementedError

    def write_line(self, text: str) -> int:
        return self.write((text + LINE_END).encode("ascii"))

    def read_line(self) -> Optional[str]:
        """Return one stripped line, or None if the read timed out empty."""
        raise NotImplementedError

    def set_dtr(self, state: bool):
        raise NotImplementedError

    def close(self):
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        raise NotImplementedError


class SerialTransport(TransportBase):
    def __init__(
        self, port: str = "/dev/ttyUSB0", baudrate: int = 115200, timeout: float = 2.0
    ):
        import serial

        self.port = port
        self._ser = serial.Serial(
            port,
            baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
            xonxoff=False,
            rtscts=False,
        )
        # Arduino Leonardo/Micro only talk once DTR and RTS are asserted
        self._ser.dtr = True
        self._ser.rts = True

    @staticmethod
    def list_ports() -> List[str]:
        """Lists serial device paths known to the OS."""
        from serial.tools import list_ports

        try:
            return [p.device for p in list_ports.comports()]
        except TypeError:
            # pyserial fails this way when it cannot read device properties
            logger.warning("Could not list serial ports (permission problem?)")
            return []

    def write(self, data: bytes) -> int:
        return self._ser.write(data)

    def read_line(self) -> Optional[str]:
        raw = self._ser.readline()
        if not raw:
            return None
        return raw.decode("ascii", errors="replace").strip()

    def set_dtr(self, state: bool):
        self._ser.dtr = state

    def close(self):
        if self._ser.is_open:
            self._ser.close()

    @property
    def is_open(self) -> bool:
        return self._ser.is_open


class MockTransport(TransportBase):
    """Simple mock transport for unit tests and mock-device runs.

    If auto_respond is True, the transport answers every command line with
    "ok" and emits the banner after a soft reset, so higher-level code can
    exercise the full driver without hardware.
    """

    def __init__(
        self,
        auto_respond: bool = False,
        banner: str = "Grbl 1.1h ['$' for help]",
        port: str = "mock",
    ):
        self.port = port
        self._write_log: List[bytes] = []
        self._lines: deque = deque()
        self._auto = auto_respond
        self._banner = banner
        self._open = True
        self.dtr_log: List[bool] = []

    def queue_response(self, *lines):
        """Queue lines for read_line(); an Exception instance is raised instead."""
        self._lines.extend(lines)

    def write(self, data: bytes) -> int:
        if not self._open:
            raise OSError("Mock port closed")
        self._write_log.append(bytes(data))

        if self._auto and data:
            if data == b"\x18":
                self.queue_response(self._banner)
            elif data.endswith(b"\n"):
                self.queue_response("ok")

        return len(data)

    def read_line(self) -> Optional[str]:
        if not self._open:
            raise OSError("Mock port closed")
        if not self._lines:
            return None
        line = self._lines.popleft()
        if isinstance(line, Exception):
            raise line
        return line

    def set_dtr(self, state: bool):
        self.dtr_log.append(state)

    def close(self):
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def writes(self):
        return list(self._write_log)

    @property
    def lines_written(self) -> List[str]:
        """Writes decoded as command lines (raw control bytes excluded)."""
        return [
            w.decode("ascii").rstrip("\n") for w in self._write_log if w.endswith(b"\n")
        ]
