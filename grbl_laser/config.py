"""Typed device configuration for the GRBL laser driver.

Every recognised option lives on GrblConfig and is checked when the object is
built. `from_dict` accepts loosely typed JSON/form payloads, `from_env` reads
GRBL_* environment variables for the service.
"""

from __future__ import annotations
import os
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple

# Working in mm, absolute distance mode, current position becomes the origin.
# With homing enabled the current position is machine home, so machine
# coordinates become work coordinates (home must be the upper left corner).
DEFAULT_PRE_JOB_GCODE = "G21,G90,G10 P0 L20 X0,G10 L20 Y0"
DEFAULT_POST_JOB_GCODE = "G0 X0 Y0"


@dataclass(frozen=True)
class GrblConfig:
    port: str = "/dev/ttyUSB0"  # "auto" tries every serial port
    baudrate: int = 115200
    bed_width: float = 300.0  # mm
    bed_height: float = 300.0  # mm
    max_cut_rate: float = 1200.0  # mm/min at speed 100%
    max_travel_rate: float = 6000.0  # mm/min for G0 moves
    pre_job_gcode: str = DEFAULT_PRE_JOB_GCODE
    post_job_gcode: str = DEFAULT_POST_JOB_GCODE
    identification_line: str = "Grbl"
    init_delay: int = 5  # seconds to let the board reset, 0 = soft reset
    homing: bool = False  # send $H on init, needs $22=1 on the board
    wait_for_ok: bool = True
    ack_timeout: Optional[float] = None  # None waits forever, "ok" is held while the planner is full
    read_timeout: float = 2.0
    resolutions: Tuple[float, ...] = (500.0,)

    def __post_init__(self):
        if not self.port:
            raise ValueError("port is required")
        if self.baudrate <= 0:
            raise ValueError("baudrate must be positive")
        for name in ("bed_width", "bed_height", "max_cut_rate", "max_travel_rate", "read_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.init_delay < 0:
            raise ValueError("init_delay must be >= 0")
        if self.ack_timeout is not None and self.ack_timeout <= 0:
            raise ValueError("ack_timeout must be positive or None")
        if not self.resolutions or any(r <= 0 for r in self.resolutions):
            raise ValueError("resolutions must be positive DPI values")
        for name in ("pre_job_gcode", "post_job_gcode"):
            if not getattr(self, name).isascii():
                raise ValueError(f"{name} must be plain ASCII G-code")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base: Optional["GrblConfig"] = None) -> "GrblConfig":
        """Build from JSON/form values; unknown keys are rejected."""
        base = base or cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

        values = asdict(base)
        for key, raw in data.items():
            values[key] = _coerce(key, raw, values[key])
        return cls(**values)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "GrblConfig":
        """GRBL_PORT, GRBL_BAUDRATE, GRBL_INIT_DELAY, ... override defaults."""
        environ = os.environ if environ is None else environ
        prefix = "GRBL_"
        data = {}
        for f in fields(cls):
            key = prefix + f.name.upper()
            if key in environ:
                data[f.name] = environ[key]
        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values["resolutions"] = list(self.resolutions)
        return values


def _coerce(field: str, value: Any, current: Any) -> Any:
    """Parse `value` into the type of the field's current value."""
    if field == "ack_timeout":
        if value is None or (isinstance(value, str) and value.strip().lower() in {"", "none", "0"}):
            return None
        return _as_float(value, field)
    if field == "resolutions":
        if isinstance(value, str):
            value = [v for v in value.split(",") if v.strip()]
        try:
            return tuple(float(v) for v in value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{field} must be a list of numbers") from exc
    if isinstance(current, bool):
        return _as_bool(value)
    if isinstance(current, int):
        return _as_int(value, field)
    if isinstance(current, float):
        return _as_float(value, field)
    if value is None:
        return ""
    return str(value)


def _as_int(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be an integer") from exc


def _as_float(value: Any, field: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field} must be a number") from exc


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "y", "on"}
    return bool(value)
