"""GRBL Command Abstraction Layer

Separates command generation from execution to enable:
- Preview/validation without hardware
- Unit testing of the translator
- Protocol debugging and analysis
"""

from __future__ import annotations
from typing import Any, Dict, List, Optional


class GcodeCommandBuilder:
    """Builds the minimal GRBL line vocabulary used by the laser driver.

    Positions are millimetres and are always written with six decimals,
    feed rates are whole mm/min (truncated toward zero).
    """

    LASER_ON = "M3"
    LASER_OFF = "M5"
    HOME = "$H"

    @staticmethod
    def fmt(value: float) -> str:
        return f"{value:f}"

    @classmethod
    def power_term(cls, power: float) -> str:
        return f" S{cls.fmt(power)}"

    @staticmethod
    def feed_term(feed: float) -> str:
        return f" F{int(feed)}"

    @classmethod
    def laser_on(cls) -> str:
        return cls.LASER_ON

    @classmethod
    def laser_off(cls) -> str:
        return cls.LASER_OFF

    @classmethod
    def home(cls) -> str:
        return cls.HOME

    @classmethod
    def travel(cls, x_mm: float, y_mm: float, append: str = "") -> str:
        """Rapid move with the laser off (G0)."""
        return f"G0 X{cls.fmt(x_mm)} Y{cls.fmt(y_mm)}{append}"

    @classmethod
    def cut(cls, x_mm: float, y_mm: float, append: str = "") -> str:
        """Linear cutting move (G1); `append` carries S/F terms."""
        return f"G1 X{cls.fmt(x_mm)} Y{cls.fmt(y_mm)}{append}"

    @classmethod
    def focus(cls, z_mm: float, append: str = "") -> str:
        return f"G0 Z{cls.fmt(z_mm)}{append}"

    @staticmethod
    def split_gcode_list(gcode: Optional[str]) -> List[str]:
        """Split a comma separated command list, dropping blank entries."""
        if not gcode:
            return []
        return [line.strip() for line in gcode.split(",") if line.strip()]


class CommandSequence:
    """A sequence of command lines representing a complete job.

    Used as the emit target for preview and dry runs; the driver pushes the
    same lines here that it would otherwise send to the controller.
    """

    def __init__(self, description: str = ""):
        self.lines: List[str] = []
        self.description = description
        self.stats = {
            "total_lines": 0,
            "total_bytes": 0,
            "travel_moves": 0,
            "cut_moves": 0,
            "laser_on": 0,
            "laser_off": 0,
            "focus_moves": 0,
        }

    def add(self, line: str, phase: str = "job") -> None:
        """Add a line to the sequence and update stats"""
        self.lines.append(line)
        self.stats["total_lines"] += 1
        self.stats["total_bytes"] += len(line) + 1
        if line == GcodeCommandBuilder.LASER_ON:
            self.stats["laser_on"] += 1
        elif line == GcodeCommandBuilder.LASER_OFF:
            self.stats["laser_off"] += 1
        elif line.startswith("G0 Z"):
            self.stats["focus_moves"] += 1
        elif line.startswith("G0 "):
            self.stats["travel_moves"] += 1
        elif line.startswith("G1 "):
            self.stats["cut_moves"] += 1

    # the driver emits through session.send(line, phase=...) or this
    send = add

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for JSON/API"""
        return {
            "description": self.description,
            "stats": dict(self.stats),
            "lines": list(self.lines),
        }

    def to_text(self) -> str:
        return "\n".join(self.lines) + ("\n" if self.lines else "")

    def summary(self) -> str:
        """Human-readable summary"""
        return "\n".join(
            [
                f"Job: {self.description}",
                f"Lines: {self.stats['total_lines']} ({self.stats['total_bytes']:,} bytes)",
                f"Moves: {self.stats['cut_moves']} cut, {self.stats['travel_moves']} travel, "
                f"{self.stats['focus_moves']} focus",
                f"Laser: {self.stats['laser_on']} on, {self.stats['laser_off']} off",
            ]
        )
