"""CSV logging utilities for protocol operations.

Provides CSVLogger class for tracking every line sent to the controller with
timing and acknowledgment details, so slow or rejected commands can be found
after a job.
"""

from __future__ import annotations
import csv
import time
from datetime import datetime
from pathlib import Path
from typing import Optional

CSV_HEADERS = [
    "job_start",
    "timestamp",
    "elapsed_s",
    "phase",
    "command",
    "duration_ms",
    "bytes_sent",
    "cumulative_bytes",
    "response",
    "state",
    "progress_pct",
]


class CSVLogger:
    """Logs protocol operations to CSV file with timing metrics.

    CSV Format:
        job_start, timestamp, elapsed_s, phase, command, duration_ms,
        bytes_sent, cumulative_bytes, response, state, progress_pct

    Usage:
        logger = CSVLogger("path/to/log.csv")
        logger.log_operation(
            phase="job",
            command="G1 X10.000000 Y0.000000",
            duration_ms=4.2,
            bytes_sent=24,
            response="ok",
        )
        logger.close()
    """

    def __init__(self, csv_path: str):
        """Initialize CSV logger.

        Args:
            csv_path: Path to CSV file (will be created/overwritten)
        """
        self.csv_path = Path(csv_path)
        self.csv_file = open(self.csv_path, "w", newline="")
        self.csv_writer = csv.writer(self.csv_file)
        self.csv_writer.writerow(CSV_HEADERS)

        self.start_time = time.time()
        self.job_start_str = datetime.fromtimestamp(self.start_time).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        self.cumulative_bytes = 0

    def log_operation(
        self,
        phase: str,
        command: str,
        duration_ms: float,
        bytes_sent: int = 0,
        response: str = "",
        state: str = "COMPLETE",
        progress_pct: Optional[int] = None,
    ):
        """Log a protocol operation.

        Args:
            phase: Operation phase (connect, init, job, shutdown)
            command: Command line or operation name
            duration_ms: Time from write until the answer was read
            bytes_sent: Bytes written for this operation
            response: Raw answer from the controller ("ok", "error:20", ...)
            state: COMPLETE, ERROR, TIMEOUT, ...
            progress_pct: Job progress at the time (0-100)
        """
        self.cumulative_bytes += bytes_sent
        elapsed_s = time.time() - self.start_time
        now_str = datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        self.csv_writer.writerow(
            [
                self.job_start_str,
                now_str,
                f"{elapsed_s:.3f}",
                phase,
                command,
                f"{duration_ms:.0f}",
                bytes_sent,
                self.cumulative_bytes,
                response,
                state,
                progress_pct if progress_pct is not None else "",
            ]
        )

        # Flush so a crashed job still leaves a usable log
        self.csv_file.flush()

    def close(self):
        """Close CSV file."""
        if self.csv_file and not self.csv_file.closed:
            self.csv_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
