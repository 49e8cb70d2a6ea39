"""GRBL laser driver: connect, translate and send a whole job.

Sequence per job: check job -> apply start point -> connect (handshake) ->
init lines -> every part -> laser off -> post-job lines -> disconnect.
Any failure aborts the rest of the sequence, closes the port and is raised
as GrblJobError carrying the underlying error.
"""

from __future__ import annotations
import atexit
import logging
import signal
import threading
import time
from typing import Callable, Dict, List, Optional

from . import protocol
from .commands import CommandSequence, GcodeCommandBuilder as G
from .config import GrblConfig
from .job import Job, RasterPart, validate_job
from .processing import raster_to_vector
from .protocol import (
    ConnectionState,
    GrblConnectionError,
    GrblError,
    GrblJobError,
    LineSession,
    ProgressListener,
)
from .translator import TranslatorState, VectorTranslator

logger = logging.getLogger(__name__)


def _exit_on_sigterm(signum, frame):
    raise SystemExit(128 + signum)


def exit_on_sigterm():
    """Turn SIGTERM into SystemExit so atexit hooks (and ResetGuard) run.

    Only possible from the main thread; entry points call it at startup.
    """
    signal.signal(signal.SIGTERM, _exit_on_sigterm)


class ResetGuard:
    """Hardware-resets the board if the process dies while a job runs.

    Registered for the lifetime of a connection. Dropping DTR resets
    Arduino-style boards, which stops the laser. Leaving the block normally,
    or with a GrblError, deregisters the hook without firing it. On the main
    thread SIGTERM is turned into SystemExit while armed.
    """

    PULSE_S = 0.5

    def __init__(self, transport):
        self.transport = transport
        self._armed = False
        self._previous_sigterm = None

    def __enter__(self):
        atexit.register(self.reset)
        if threading.current_thread() is threading.main_thread():
            self._previous_sigterm = signal.signal(signal.SIGTERM, _exit_on_sigterm)
        self._armed = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        if exc_type is not None and issubclass(exc_type, (KeyboardInterrupt, SystemExit)):
            self.reset()
        return False

    def release(self):
        if self._armed:
            atexit.unregister(self.reset)
            if self._previous_sigterm is not None:
                signal.signal(signal.SIGTERM, self._previous_sigterm)
                self._previous_sigterm = None
            self._armed = False

    def reset(self):
        logger.warning("Resetting board via DTR")
        try:
            self.transport.set_dtr(False)
            time.sleep(self.PULSE_S)
            self.transport.set_dtr(True)
        except (OSError, ValueError) as e:
            # port already gone; nothing else we can do from here
            logger.error(f"DTR reset failed: {e}")


class GrblLaser:
    """Driver for GRBL based laser cutters.

    Args:
        config: GrblConfig, defaults if omitted
        transport_factory: callable(port) -> TransportBase, serial by default
        csv_logger: Optional CSVLogger instance for logging every line
    """

    def __init__(
        self,
        config: Optional[GrblConfig] = None,
        transport_factory: Optional[Callable] = None,
        csv_logger=None,
    ):
        self.config = config or GrblConfig()
        self.transport_factory = transport_factory or self._open_serial
        self.csv_logger = csv_logger
        self.connection_state = ConnectionState.DISCONNECTED
        self._cancel = threading.Event()

    def _open_serial(self, port: str):
        from .transport import SerialTransport

        try:
            return SerialTransport(
                port=port, baudrate=self.config.baudrate, timeout=self.config.read_timeout
            )
        except (OSError, ValueError) as e:
            raise GrblConnectionError(f"Could not open serial '{port}': {e}") from e

    def candidate_ports(self) -> List[str]:
        if self.config.port == "auto":
            from .transport import SerialTransport

            return SerialTransport.list_ports()
        return [self.config.port]

    def connect(self, progress: Optional[ProgressListener] = None) -> LineSession:
        """Open the configured port (or try every port for "auto") and handshake.

        Raises:
            GrblConnectionError: no port could be opened or none had a
                compatible controller
        """
        progress = progress or ProgressListener()
        auto = self.config.port == "auto"
        error = "No serial port found"

        for port in self.candidate_ports():
            if auto:
                logger.info(f"Auto, testing port: {port}")
            progress.task_changed(port)
            try:
                transport = self.transport_factory(port)
            except GrblConnectionError as e:
                if not auto:
                    raise
                error = str(e)
                continue

            self.connection_state = ConnectionState.HANDSHAKING
            try:
                session = protocol.handshake(
                    transport,
                    identification_line=self.config.identification_line,
                    homing=self.config.homing,
                    init_delay=self.config.init_delay,
                    progress=progress,
                    port_name=port,
                    wait_for_ok=self.config.wait_for_ok,
                    ack_timeout=self.config.ack_timeout,
                    csv_logger=self.csv_logger,
                )
            except GrblConnectionError as e:
                self.connection_state = ConnectionState.DISCONNECTED
                error = str(e)
                continue
            except OSError as e:
                transport.close()
                self.connection_state = ConnectionState.DISCONNECTED
                error = f"IO Error {port}: {e}"
                continue

            self.connection_state = ConnectionState.READY
            logger.info(f"Connected to {port}")
            return session

        raise GrblConnectionError(error)

    def cancel(self):
        """Stop after the part currently being sent; shutdown lines still go out."""
        self._cancel.set()

    def send_job(self, job: Job, progress: Optional[ProgressListener] = None) -> Dict:
        """Send a complete job to the laser.

        A cancel() that arrives before or during the job is honoured; the
        request is cleared once the job is over.

        Returns:
            Dict with 'ok', 'parts_sent', 'parts_total', 'lines_sent',
            'cancelled', 'message'

        Raises:
            IllegalJobError: job rejected before connecting
            GrblJobError: connection, protocol or I/O failure; `cause` holds
                the GrblConnectionError / GrblProtocolError
        """
        try:
            return self._send_job(job, progress or ProgressListener())
        finally:
            self._cancel.clear()

    def _send_job(self, job: Job, progress: ProgressListener) -> Dict:
        progress.progress_changed(0)
        state = TranslatorState.fresh()

        progress.task_changed("checking job")
        validate_job(job, self.config)
        job = job.apply_start_point()

        progress.task_changed("connecting...")
        session = None
        try:
            session = self.connect(progress)
            session.progress_pct = 0
            with ResetGuard(session.transport):
                progress.task_changed("sending")
                result = self._write_job(
                    job, session.send, state, _SessionProgress(progress, session), self._cancel
                )
                session.close()
        except GrblError as e:
            logger.error(f"Job '{job.name}' failed: {e}")
            raise GrblJobError(f"Job '{job.name}' failed: {e}", cause=e) from e
        finally:
            if session is not None:
                session.close()
            self.connection_state = ConnectionState.DISCONNECTED

        progress.task_changed("sent.")
        progress.progress_changed(100)
        result["ok"] = True
        result["lines_sent"] = session.lines_sent
        if result["cancelled"]:
            result["message"] = f"Cancelled after {result['parts_sent']}/{result['parts_total']} parts"
        else:
            result["message"] = f"Sent {result['parts_sent']} parts ({session.lines_sent} lines)"
        return result

    def preview_job(self, job: Job) -> CommandSequence:
        """Produce exactly the lines send_job would send, without a device."""
        validate_job(job, self.config)
        job = job.apply_start_point()
        sequence = CommandSequence(job.name)
        self._write_job(job, sequence.send, TranslatorState.fresh(), ProgressListener())
        return sequence

    def _write_job(self, job: Job, send, state: TranslatorState, progress, cancel=None) -> Dict:
        translator = VectorTranslator(
            lambda line: send(line, phase="job"),
            max_travel_rate=self.config.max_travel_rate,
            max_cut_rate=self.config.max_cut_rate,
        )

        self._write_initialization(send)
        progress.progress_changed(20)

        total = len(job.parts)
        parts_sent = 0
        cancelled = False
        for part in job.parts:
            if cancel is not None and cancel.is_set():
                logger.warning(f"Job '{job.name}' cancelled after {parts_sent}/{total} parts")
                cancelled = True
                break
            if isinstance(part, RasterPart):
                part = raster_to_vector(part)
            translator.translate(part, state)
            parts_sent += 1
            progress.progress_changed(20 + int(parts_sent * 60 / total))

        send(G.laser_off(), phase="shutdown")
        self._write_shutdown(send)
        return {"parts_sent": parts_sent, "parts_total": total, "cancelled": cancelled}

    def _write_initialization(self, send):
        if self.config.homing:
            # '$X' would unlock instead; homing needs $22=1 on the board
            logger.info("Homing...")
            send(G.home(), phase="init")
        for line in G.split_gcode_list(self.config.pre_job_gcode):
            send(line, phase="init")

    def _write_shutdown(self, send):
        for line in G.split_gcode_list(self.config.post_job_gcode):
            send(line, phase="shutdown")


class _SessionProgress(ProgressListener):
    """Forwards progress and stamps it on the session for the CSV log."""

    def __init__(self, inner: ProgressListener, session: LineSession):
        self.inner = inner
        self.session = session

    def task_changed(self, message: str):
        self.inner.task_changed(message)

    def progress_changed(self, percent: int):
        self.session.progress_pct = percent
        self.inner.progress_changed(percent)
