"""GRBL laser library - transport-based driver for GRBL laser cutters.

Translates vector/raster jobs into GRBL command lines and sends them one at a
time over a serial port, waiting for "ok" after each. Uses a transport
abstraction so everything runs against MockTransport in tests.
"""

from .config import GrblConfig
from .driver import GrblLaser, ResetGuard
from .job import Job, LaserProperty, LineTo, MoveTo, RasterPart, SetProperty, VectorPart
from .protocol import (
    GrblConnectionError,
    GrblError,
    GrblJobError,
    GrblProtocolError,
    IllegalJobError,
    ProtocolErrorKind,
)
from .transport import SerialTransport, MockTransport
from .csv_logger import CSVLogger

__all__ = [
    "GrblLaser",
    "GrblConfig",
    "ResetGuard",
    "Job",
    "VectorPart",
    "RasterPart",
    "MoveTo",
    "LineTo",
    "SetProperty",
    "LaserProperty",
    "GrblError",
    "GrblConnectionError",
    "GrblProtocolError",
    "GrblJobError",
    "IllegalJobError",
    "ProtocolErrorKind",
    "SerialTransport",
    "MockTransport",
    "CSVLogger",
]
__version__ = "0.1.0"
