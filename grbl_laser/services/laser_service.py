"""Laser device service for managing device operations"""

from typing import Any, Dict, Optional
import logging
import os
import threading

from ..config import GrblConfig
from ..driver import GrblLaser
from ..job import Job, validate_job
from ..protocol import GrblError, GrblJobError, ProgressListener
from ..transport import MockTransport

logger = logging.getLogger(__name__)


class LaserDeviceManager:
    """Owns the configuration and decides which transport a job gets"""

    def __init__(self, config: Optional[GrblConfig] = None):
        self.mock_mode = os.getenv("GRBL_MOCK_DEVICE", "false").lower() == "true"
        self.config = config or GrblConfig.from_env()
        self.serial_lock = threading.RLock()
        self.last_transport = None

        if self.mock_mode:
            logger.info("LaserDeviceManager initialized with MockTransport")
        else:
            logger.info(f"LaserDeviceManager initialized for {self.config.port}")

    def mock_transport(self, port: str) -> MockTransport:
        self.last_transport = MockTransport(auto_respond=True, port=port)
        return self.last_transport

    def driver(self) -> GrblLaser:
        if not self.mock_mode:
            return GrblLaser(self.config)
        # the mock board answers a soft reset immediately
        config = GrblConfig.from_dict({"init_delay": 0}, base=self.config)
        return GrblLaser(config, transport_factory=self.mock_transport)

    def update_config(self, data: Dict[str, Any]) -> GrblConfig:
        with self.serial_lock:
            self.config = GrblConfig.from_dict(data, base=self.config)
        logger.info(f"Config updated: {sorted(data)}")
        return self.config


class _StatusListener(ProgressListener):
    def __init__(self, service: "LaserService"):
        self.service = service

    def task_changed(self, message: str):
        logger.info(message)
        self.service._update(task=message)

    def progress_changed(self, percent: int):
        self.service._update(progress=percent)


class LaserService:
    """Service for laser jobs; one job at a time, run in a worker thread"""

    def __init__(self, device_manager: LaserDeviceManager):
        self.device = device_manager
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._driver: Optional[GrblLaser] = None
        self._status: Dict[str, Any] = {
            "busy": False,
            "job": None,
            "task": "idle",
            "progress": 0,
            "result": None,
            "error": None,
            "error_kind": None,
        }

    def _update(self, **changes):
        with self._lock:
            self._status.update(changes)

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._status)

    def is_busy(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def preview(self, job: Job) -> Dict[str, Any]:
        sequence = self.device.driver().preview_job(job)
        return sequence.to_dict()

    def start_job(self, job: Job) -> tuple[bool, Optional[str]]:
        """Start sending a job in the background.

        Returns:
            Tuple of (started, error_message)
        """
        if self.is_busy():
            return False, "A job is already running"
        validate_job(job, self.device.config)  # IllegalJobError before going async

        self._driver = self.device.driver()
        self._update(
            busy=True, job=job.name, task="queued", progress=0, result=None, error=None, error_kind=None
        )
        self._thread = threading.Thread(target=self._run, args=(self._driver, job), daemon=True)
        self._thread.start()
        return True, None

    def _run(self, driver: GrblLaser, job: Job):
        listener = _StatusListener(self)
        try:
            with self.device.serial_lock:
                result = driver.send_job(job, listener)
            self._update(result=result)
        except GrblJobError as e:
            logger.error(f"Job failed: {e}")
            self._update(error=str(e), error_kind=describe_failure(e), task="failed")
        except GrblError as e:
            logger.error(f"Job rejected: {e}")
            self._update(error=str(e), error_kind="invalid_job", task="failed")
        except Exception as e:
            logger.exception(f"Job crashed: {e}")
            self._update(error=str(e), error_kind="unknown", task="failed")
        finally:
            self._update(busy=False)

    def cancel(self) -> bool:
        if not self.is_busy() or self._driver is None:
            return False
        self._driver.cancel()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the running job finished; True if nothing is running"""
        if self._thread is not None:
            self._thread.join(timeout)
        return not self.is_busy()


def describe_failure(error: GrblJobError) -> str:
    """Classify a job failure for API clients.

    "no_device" (wrong or no controller), "rejected" (controller refused a
    line), "invalid_job" (a line could not be encoded), "disconnected"
    (I/O fault or silence mid-job).
    """
    from ..protocol import GrblConnectionError, GrblProtocolError, ProtocolErrorKind

    cause = error.cause
    if isinstance(cause, GrblConnectionError):
        return "no_device"
    if isinstance(cause, GrblProtocolError):
        if cause.kind is ProtocolErrorKind.REJECTED:
            return "rejected"
        if cause.kind is ProtocolErrorKind.INVALID_LINE:
            return "invalid_job"
        return "disconnected"
    return "unknown"
