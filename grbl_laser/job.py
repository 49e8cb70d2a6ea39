"""Job data model: parts, vector commands, laser properties.

Everything here is immutable once built; the driver never edits a job, it
derives new ones (start point applied, rasters converted).
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np

from .processing import load_grayscale, mm_to_px, px_to_mm
from .protocol import IllegalJobError


@dataclass(frozen=True)
class LaserProperty:
    """Power and speed in percent, focus as a Z offset in millimetres."""

    power: float = 100.0
    speed: float = 100.0
    focus: float = 0.0

    def with_power(self, power: float) -> "LaserProperty":
        return replace(self, power=power)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "LaserProperty":
        data = data or {}
        return cls(
            power=float(data.get("power", 100.0)),
            speed=float(data.get("speed", 100.0)),
            focus=float(data.get("focus", 0.0)),
        )


@dataclass(frozen=True)
class MoveTo:
    x: float
    y: float


@dataclass(frozen=True)
class LineTo:
    x: float
    y: float


@dataclass(frozen=True)
class SetProperty:
    laser_property: LaserProperty


VectorCommand = Union[MoveTo, LineTo, SetProperty]


@dataclass(frozen=True)
class VectorPart:
    commands: Tuple[VectorCommand, ...]
    dpi: float = 500.0

    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        """(min_x, min_y, max_x, max_y) in device pixels, None if nothing moves."""
        points = [(c.x, c.y) for c in self.commands if not isinstance(c, SetProperty)]
        if not points:
            return None
        xs, ys = zip(*points)
        return min(xs), min(ys), max(xs), max(ys)

    def shifted(self, dx: float, dy: float) -> "VectorPart":
        commands = tuple(
            c if isinstance(c, SetProperty) else type(c)(c.x - dx, c.y - dy)
            for c in self.commands
        )
        return replace(self, commands=commands)


@dataclass(frozen=True, eq=False)
class RasterPart:
    """Grayscale raster placed at (x, y) device pixels; dark pixels burn."""

    pixels: np.ndarray
    x: int = 0
    y: int = 0
    dpi: float = 500.0
    laser_property: LaserProperty = field(default_factory=LaserProperty)

    @classmethod
    def from_image(cls, source, x: int = 0, y: int = 0, dpi: float = 500.0, laser_property=None) -> "RasterPart":
        return cls(
            pixels=load_grayscale(source),
            x=x,
            y=y,
            dpi=dpi,
            laser_property=laser_property or LaserProperty(),
        )

    def bounds(self) -> Optional[Tuple[float, float, float, float]]:
        height, width = self.pixels.shape
        if not width or not height:
            return None
        return self.x, self.y, self.x + width, self.y + height - 1

    def shifted(self, dx: float, dy: float) -> "RasterPart":
        return replace(self, x=self.x - dx, y=self.y - dy)


Part = Union[VectorPart, RasterPart]


@dataclass(frozen=True)
class Job:
    parts: Tuple[Part, ...]
    name: str = "job"
    start_x: float = 0.0  # mm
    start_y: float = 0.0  # mm

    def apply_start_point(self) -> "Job":
        """Return a job whose coordinates are relative to the start point."""
        if not self.start_x and not self.start_y:
            return self
        parts = tuple(
            p.shifted(mm_to_px(self.start_x, p.dpi), mm_to_px(self.start_y, p.dpi))
            for p in self.parts
        )
        return replace(self, parts=parts, start_x=0.0, start_y=0.0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Job":
        """Load the JSON job format.

        {"name": "...", "start": [x_mm, y_mm], "parts": [
            {"type": "vector", "dpi": 500, "commands": [
                {"type": "property", "power": 80, "speed": 50, "focus": 0},
                {"type": "move", "x": 0, "y": 0},
                {"type": "line", "x": 100, "y": 0}]},
            {"type": "raster", "dpi": 500, "x": 0, "y": 0,
             "image": "path/to/image.png", "power": 60, "speed": 100}]}
        """
        if not isinstance(data, dict) or not isinstance(data.get("parts"), list):
            raise IllegalJobError("Job must be an object with a 'parts' list")

        try:
            parts = tuple(_parse_part(raw, idx) for idx, raw in enumerate(data["parts"]))
            start = data.get("start") or (0.0, 0.0)
            if len(start) != 2:
                raise IllegalJobError("'start' must be [x_mm, y_mm]")
            return cls(
                parts=parts,
                name=str(data.get("name", "job")),
                start_x=float(start[0]),
                start_y=float(start[1]),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise IllegalJobError(f"Malformed job: {e!r}") from e


def _parse_part(raw: Dict[str, Any], idx: int) -> Part:
    kind = raw.get("type", "vector")
    dpi = float(raw.get("dpi", 500.0))
    if kind == "vector":
        return VectorPart(commands=_parse_commands(raw.get("commands", []), idx), dpi=dpi)
    if kind == "raster":
        if "image" not in raw:
            raise IllegalJobError(f"Raster part {idx} has no 'image'")
        try:
            pixels = load_grayscale(raw["image"])
        except OSError as e:
            raise IllegalJobError(f"Cannot read image of raster part {idx}: {e}") from e
        return RasterPart(
            pixels=pixels,
            x=int(raw.get("x", 0)),
            y=int(raw.get("y", 0)),
            dpi=dpi,
            laser_property=LaserProperty.from_dict(raw),
        )
    raise IllegalJobError(f"Unknown part type '{kind}' (part {idx})")


def _parse_commands(raw_commands, part_idx: int) -> Tuple[VectorCommand, ...]:
    commands = []
    for raw in raw_commands:
        kind = raw.get("type")
        if kind == "move":
            commands.append(MoveTo(float(raw["x"]), float(raw["y"])))
        elif kind == "line":
            commands.append(LineTo(float(raw["x"]), float(raw["y"])))
        elif kind == "property":
            commands.append(SetProperty(LaserProperty.from_dict(raw)))
        else:
            raise IllegalJobError(f"Unknown command type '{kind}' in part {part_idx}")
    return tuple(commands)


def validate_job(job: Job, config) -> None:
    """Reject jobs the device cannot run.

    Raises:
        IllegalJobError: unsupported resolution, geometry outside the bed,
            power/speed outside 0-100, or a cut before any property was set
    """
    if not job.parts:
        raise IllegalJobError("Job has no parts")

    # translator state carries over between parts, so one property covers later parts
    has_property = False
    for idx, part in enumerate(job.parts):
        if part.dpi not in config.resolutions:
            raise IllegalJobError(
                f"Resolution of {part.dpi} DPI not supported (part {idx}), "
                f"use one of {list(config.resolutions)}"
            )

        box = part.bounds()
        if box is not None:
            min_x, min_y, max_x, max_y = (px_to_mm(v, part.dpi) for v in box)
            if min_x < 0 or min_y < 0 or max_x > config.bed_width or max_y > config.bed_height:
                raise IllegalJobError(
                    f"Part {idx} ({min_x:.1f},{min_y:.1f})-({max_x:.1f},{max_y:.1f}) mm is "
                    f"outside the {config.bed_width}x{config.bed_height} mm bed"
                )

        if isinstance(part, RasterPart):
            _check_property(part.laser_property, idx)
            has_property = True
            continue

        for cmd in part.commands:
            if isinstance(cmd, SetProperty):
                _check_property(cmd.laser_property, idx)
                has_property = True
            elif isinstance(cmd, LineTo) and not has_property:
                raise IllegalJobError(f"Part {idx} cuts before setting power and speed")


def _check_property(prop: LaserProperty, part_idx: int):
    for name in ("power", "speed"):
        value = getattr(prop, name)
        if not 0 <= value <= 100:
            raise IllegalJobError(f"{name} {value} out of range 0-100 (part {part_idx})")
