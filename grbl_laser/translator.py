"""Vector command translator: job primitives to GRBL lines.

Power and speed are applied lazily, on the next cutting move, so properties
that are never cut with cost nothing. Focus is applied eagerly because the Z
move must finish before anything is drawn at that depth. Any move that is
not a cut runs with the laser switched off first.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .commands import GcodeCommandBuilder as G
from .job import LineTo, MoveTo, SetProperty, VectorPart
from .processing import px_to_mm

logger = logging.getLogger(__name__)


@dataclass
class TranslatorState:
    """What the controller was last told. None means never sent."""

    current_power: Optional[float] = None
    current_speed: Optional[float] = None
    current_focus: float = 0.0
    next_power: Optional[float] = None
    next_speed: Optional[float] = None
    laser_suspended: bool = False

    @classmethod
    def fresh(cls) -> "TranslatorState":
        return cls()


class VectorTranslator:
    """Emits the lines for a VectorPart through `emit` (session.send or a sink).

    State fields are only updated after `emit` returned, so they never run
    ahead of what the controller acknowledged.

    Args:
        emit: callable taking one command line
        max_travel_rate: feed for non-cutting moves, mm/min
        max_cut_rate: feed at speed 100%, mm/min
    """

    def __init__(self, emit: Callable[[str], None], max_travel_rate: float, max_cut_rate: float):
        self.emit = emit
        self.max_travel_rate = max_travel_rate
        self.max_cut_rate = max_cut_rate

    def translate(self, part: VectorPart, state: TranslatorState) -> int:
        """Translate every command of `part` in order. Returns commands handled."""
        count = 0
        for cmd in part.commands:
            if isinstance(cmd, MoveTo):
                self.move_to(state, cmd.x, cmd.y, part.dpi)
            elif isinstance(cmd, LineTo):
                self.line_to(state, cmd.x, cmd.y, part.dpi)
            elif isinstance(cmd, SetProperty):
                self.set_property(state, cmd.laser_property)
            else:
                raise TypeError(f"Unknown vector command {cmd!r}")
            count += 1
        return count

    def cut_feed(self, speed: float) -> int:
        return int(self.max_cut_rate * speed / 100.0)

    def _suspend(self, state: TranslatorState) -> str:
        """Switch the laser off if needed; returns terms for the next move."""
        if state.laser_suspended:
            return ""
        self.emit(G.laser_off())
        state.laser_suspended = True
        return " S0" + G.feed_term(self.max_travel_rate)

    def move_to(self, state: TranslatorState, x: float, y: float, dpi: float):
        append = self._suspend(state)
        self.emit(G.travel(px_to_mm(x, dpi), px_to_mm(y, dpi), append))

    def line_to(self, state: TranslatorState, x: float, y: float, dpi: float):
        append = ""
        reenabled = state.laser_suspended
        if reenabled:
            self.emit(G.laser_on())
            # restore the cutting feed unless a new one follows on this line
            if state.current_speed is not None and state.next_speed == state.current_speed:
                append += G.feed_term(self.cut_feed(state.current_speed))

        new_power = state.current_power
        if state.next_power is not None and (state.next_power != state.current_power or reenabled):
            append += G.power_term(state.next_power)
            new_power = state.next_power

        new_speed = state.current_speed
        if state.next_speed is not None and state.next_speed != state.current_speed:
            append += G.feed_term(self.cut_feed(state.next_speed))
            new_speed = state.next_speed

        self.emit(G.cut(px_to_mm(x, dpi), px_to_mm(y, dpi), append))
        state.laser_suspended = False
        state.current_power = new_power
        state.current_speed = new_speed

    def set_property(self, state: TranslatorState, prop):
        state.next_power = prop.power
        state.next_speed = prop.speed
        if prop.focus == state.current_focus:
            return
        append = ""
        if not state.laser_suspended:
            self.emit(G.laser_off())
            state.laser_suspended = True
            append = " S0"
        logger.debug(f"Focus {state.current_focus} -> {prop.focus} mm")
        self.emit(G.focus(prop.focus, append))
        state.current_focus = prop.focus
