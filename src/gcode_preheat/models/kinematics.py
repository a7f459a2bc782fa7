"""Kinematic state tracking for duration estimation."""

from dataclasses import dataclass
from typing import Optional

from gcode_preheat.models.instruction import Instruction


@dataclass
class KinematicState:
    """Believed machine position, feedrate and coordinate modes.

    Attributes:
        x, y, z: Tracked position in millimeters
        e: Tracked extruder axis position in millimeters
        feedrate: Last seen feedrate in millimeters per second, or None
        relative_positioning: True after G91, False after G90
        relative_extrusion: True after M83, False after M82
    """

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    e: float = 0.0
    feedrate: Optional[float] = None
    relative_positioning: bool = False
    relative_extrusion: bool = False

    def set_positioning(self, relative: bool) -> None:
        self.relative_positioning = relative

    def set_extrusion(self, relative: bool) -> None:
        self.relative_extrusion = relative

    def update(self, instruction: Instruction) -> None:
        """Move the tracked position to the end point of ``instruction``.

        Axes omitted from the instruction stay where they are.
        """
        self.x = _advance(self.x, instruction.x, self.relative_positioning)
        self.y = _advance(self.y, instruction.y, self.relative_positioning)
        self.z = _advance(self.z, instruction.z, self.relative_positioning)
        self.e = _advance(self.e, instruction.e, self.relative_extrusion)

    def delta(self, instruction: Instruction) -> tuple:
        """Displacement (dx, dy, dz, de) the instruction would cause."""
        return (
            _delta(self.x, instruction.x, self.relative_positioning),
            _delta(self.y, instruction.y, self.relative_positioning),
            _delta(self.z, instruction.z, self.relative_positioning),
            _delta(self.e, instruction.e, self.relative_extrusion),
        )


def _advance(current: float, value: Optional[float], relative: bool) -> float:
    if value is None:
        return current
    return current + value if relative else value


def _delta(current: float, value: Optional[float], relative: bool) -> float:
    if value is None:
        return 0.0
    return value if relative else value - current
