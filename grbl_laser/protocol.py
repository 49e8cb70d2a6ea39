"""GRBL line protocol: connection handshake, acknowledged line session, errors.

The controller accepts one command line at a time and answers each with
"ok". Nothing here understands G-code; this module only guarantees that
every line is confirmed before the next one goes out, and that anything else
ends the session.
"""

from __future__ import annotations
import logging
import time
from enum import Enum, auto
from typing import Optional

ACK = "ok"
SOFT_RESET = b"\x18"
IDENT_ATTEMPTS = 3

logger = logging.getLogger(__name__)


# Exceptions for protocol-level errors
class GrblError(Exception):
    """Base class for GRBL adapter errors."""


class GrblConnectionError(GrblError):
    """Port unavailable, open failure, or no compatible controller found."""


class ProtocolErrorKind(Enum):
    REJECTED = auto()  # controller answered something other than "ok"
    TRANSPORT = auto()  # read/write raised, device probably disconnected
    TIMEOUT = auto()  # no answer within ack_timeout
    SESSION_FAILED = auto()  # send() on a session that already ended
    INVALID_LINE = auto()  # line cannot be encoded for the wire, never written


class GrblProtocolError(GrblError):
    """A line was not acknowledged. Fatal to the session."""

    def __init__(self, message: str, kind: ProtocolErrorKind, response: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.response = response


class IllegalJobError(GrblError):
    """Job cannot be executed on this device (raised before connecting)."""


class GrblJobError(GrblError):
    """Job aborted; `cause` holds the connection or protocol error."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class ConnectionState(Enum):
    DISCONNECTED = auto()
    HANDSHAKING = auto()
    READY = auto()
    FAILED = auto()


class ProgressListener:
    """Receives coarse job progress. The default implementation only logs."""

    def task_changed(self, message: str):
        logger.info(message)

    def progress_changed(self, percent: int):
        logger.debug(f"Progress {percent}%")


class LineSession:
    """Sends one command line at a time and waits for its acknowledgment.

    Every send either fully succeeds (controller answered "ok") or fails the
    session for good: the transport is closed and later sends are refused.

    Args:
        transport: TransportBase the handshake succeeded on
        wait_for_ok: Block for the acknowledgment after every line
        ack_timeout: Seconds to wait for the acknowledgment, None waits forever
        csv_logger: Optional CSVLogger instance for logging every line
    """

    def __init__(self, transport, wait_for_ok: bool = True, ack_timeout: Optional[float] = None, csv_logger=None):
        self.transport = transport
        self.wait_for_ok = wait_for_ok
        self.ack_timeout = ack_timeout
        self.csv_logger = csv_logger
        self.state = ConnectionState.READY
        self.lines_sent = 0
        self.progress_pct: Optional[int] = None  # job progress, logged with each line

    def send(self, line: str, phase: str = "job"):
        if self.state is not ConnectionState.READY:
            raise GrblProtocolError(
                f"Session is {self.state.name.lower()}, refusing to send '{line}'",
                ProtocolErrorKind.SESSION_FAILED,
            )

        t_start = time.time()
        if not line.isascii():
            self._log(phase, line, t_start, 0, "", "ERROR")
            self._fail()
            raise GrblProtocolError(
                f"Line '{line}' is not plain ASCII", ProtocolErrorKind.INVALID_LINE
            )
        logger.debug(f"TX {line}")
        try:
            sent = self.transport.write_line(line)
            answer = self._read_ack() if self.wait_for_ok else ACK
        except OSError as e:
            self._log(phase, line, t_start, 0, "", "ERROR")
            self._fail()
            raise GrblProtocolError(
                f"Connection lost while sending '{line}': {e}", ProtocolErrorKind.TRANSPORT
            ) from e

        if answer is None:
            self._log(phase, line, t_start, sent, "", "TIMEOUT")
            self._fail()
            raise GrblProtocolError(
                f"Grbl did not answer within {self.ack_timeout}s to '{line}'",
                ProtocolErrorKind.TIMEOUT,
            )

        logger.debug(f"RX {answer}")
        if answer != ACK:
            self._log(phase, line, t_start, sent, answer, "ERROR")
            self._fail()
            raise GrblProtocolError(
                f"Grbl did not answer 'ok' to '{line}'.\nAnswered: {answer}",
                ProtocolErrorKind.REJECTED,
                response=answer,
            )

        self.lines_sent += 1
        self._log(phase, line, t_start, sent, answer, "COMPLETE")

    def _read_ack(self) -> Optional[str]:
        deadline = None
        if self.ack_timeout is not None:
            deadline = time.monotonic() + self.ack_timeout
        while True:
            answer = self.transport.read_line()
            if answer is not None:
                return answer
            if deadline is not None and time.monotonic() >= deadline:
                return None

    def _fail(self):
        self.state = ConnectionState.FAILED
        try:
            self.transport.close()
        except OSError as e:
            logger.warning(f"Close after failure: {e}")

    def _log(self, phase, line, t_start, sent, answer, state):
        if self.csv_logger:
            self.csv_logger.log_operation(
                phase=phase,
                command=line,
                duration_ms=(time.time() - t_start) * 1000,
                bytes_sent=sent,
                response=answer,
                state=state,
                progress_pct=self.progress_pct,
            )

    def close(self):
        """Release the transport. Safe to call on a failed session."""
        if self.state is ConnectionState.DISCONNECTED:
            return
        self.state = ConnectionState.DISCONNECTED
        self.transport.close()


def handshake(
    transport,
    identification_line: str = "Grbl",
    homing: bool = False,
    init_delay: int = 5,
    progress: Optional[ProgressListener] = None,
    port_name: str = "",
    wait_for_ok: bool = True,
    ack_timeout: Optional[float] = None,
    csv_logger=None,
) -> LineSession:
    """Bring a freshly opened controller to a known state.

    Boards that reset when the port opens need `init_delay` seconds to boot;
    with `init_delay == 0` a soft reset (Ctrl-X) is sent instead. The banner
    is then searched for in up to three lines, since the first line after
    opening can be garbage. An empty `identification_line` trusts the
    connection blindly.

    Returns a READY LineSession bound to `transport`.

    Raises:
        GrblConnectionError: no line started with `identification_line`
            (the transport is closed before raising)
    """
    progress = progress or ProgressListener()
    port_name = port_name or getattr(transport, "port", "")

    if init_delay > 0:
        for waited in range(init_delay):
            progress.task_changed(f"Waiting {init_delay - waited}s")
            time.sleep(1)
    else:
        logger.info(f"Soft reset on {port_name}")
        transport.write(SOFT_RESET)

    if identification_line:
        progress.task_changed(f"opening '{port_name}'")
        line = None
        for attempt in range(IDENT_ATTEMPTS):
            try:
                line = transport.read_line()
            except OSError as e:
                logger.warning(f"Line read failed on {port_name} (attempt {attempt + 1}): {e}")
                continue
            if line is None:
                logger.debug(f"No banner yet on {port_name} (attempt {attempt + 1})")
                continue
            logger.debug(f"RX {line}")
            if line.startswith(identification_line):
                logger.info(f"Found board on {port_name}: {line}")
                if homing:
                    # board reports once the homing cycle finished
                    try:
                        transport.read_line()
                    except OSError as e:
                        transport.close()
                        raise GrblConnectionError(
                            f"Lost {port_name} while waiting for homing: {e}"
                        ) from e
                break
        else:
            transport.close()
            raise GrblConnectionError(
                f"Does not seem to be a Grbl board on {port_name}\nAnswered: {line}"
            )

    return LineSession(
        transport, wait_for_ok=wait_for_ok, ack_timeout=ack_timeout, csv_logger=csv_logger
    )
