"""G-code instruction model and op-code constants."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from gcode_preheat.models.extruder import Extruder

# Linear moves: timed from distance and feedrate
LINEAR_MOVE_OPS = ("G0", "G1")
# Arc moves: recognized as moves but not timed
ARC_MOVE_OPS = ("G2", "G3")
MOVE_OPS = LINEAR_MOVE_OPS + ARC_MOVE_OPS

ABSOLUTE_POSITIONING = "G90"
RELATIVE_POSITIONING = "G91"
ABSOLUTE_EXTRUSION = "M82"
RELATIVE_EXTRUSION = "M83"

# Firmware retract / unretract
RETRACTION_OPS = ("G10", "G11")

SET_TEMPERATURE = "M104"
WAIT_TEMPERATURE = "M109"
TEMPERATURE_OPS = (SET_TEMPERATURE, WAIT_TEMPERATURE)

# Parameter letters mapped to Instruction fields (lower-cased)
PARAMETER_FIELDS = ("x", "y", "z", "e", "i", "j", "k", "s", "f", "p", "r")


class EntryKind(Enum):
    """What a queue entry represents."""

    INSTRUCTION = "instruction"  # A line read from the input file
    DEACTIVATE = "deactivate"  # A deactivation queued by the scheduler, may be cancelled


@dataclass
class Instruction:
    """One G-code line and everything the scheduler derives from it.

    Note:
        Parameters are ``None`` when absent. The feedrate ``f`` is stored in
        millimeters per second, not the per-minute value written in the file.

    Attributes:
        line: Original line text, written back verbatim
        line_no: 1-based line number in the input file
        op: Upper-cased op code (e.g., "G1", "T0"); empty for blank lines
        comment: Text after the first ';'
        parsed: False when the line could not be parsed and must pass through
        duration: Simulated execution time in seconds
        print_time: Cumulative print time before this instruction runs
        is_toolchange: True when ``op`` selects a configured extruder
        kind: Regular line or scheduler-generated deactivation
        extruder: Key of the extruder active after this instruction, or the
            extruder to power down for a deactivation entry
        prev_extruder: Key of the extruder active before a toolchange
    """

    line: str
    line_no: int
    op: str = ""

    x: Optional[float] = None
    y: Optional[float] = None
    z: Optional[float] = None
    e: Optional[float] = None
    i: Optional[float] = None
    j: Optional[float] = None
    k: Optional[float] = None
    s: Optional[float] = None
    f: Optional[float] = None
    p: Optional[float] = None
    r: Optional[float] = None

    comment: str = ""
    parsed: bool = False

    duration: float = 0.0
    print_time: float = 0.0

    is_toolchange: bool = False
    kind: EntryKind = EntryKind.INSTRUCTION
    extruder: Optional[str] = None
    prev_extruder: Optional[str] = None

    @classmethod
    def deactivate(cls, extruder: Extruder, print_time: float, line_no: int) -> "Instruction":
        """Build a deactivation entry for ``extruder`` stamped at ``print_time``.

        Args:
            extruder: Extruder to power down; must define ``deactivate_gcode``
            print_time: Print time of the toolchange that switched away from it
            line_no: Line number of that toolchange

        Raises:
            ValueError: If the extruder has no deactivation G-code
        """
        if not extruder.deactivate_gcode:
            raise ValueError(f"extruder {extruder.name} has no deactivate gcode")
        gcode = extruder.deactivate_gcode.rstrip("\n")
        return cls(
            line=f"; DEACTIVATE {extruder.name} @ {print_time:.1f}\n{gcode}",
            line_no=line_no,
            parsed=True,
            print_time=print_time,
            kind=EntryKind.DEACTIVATE,
            extruder=extruder.key,
        )

    @property
    def is_deactivate(self) -> bool:
        return self.kind == EntryKind.DEACTIVATE

    def is_move(self) -> bool:
        """Check if this is a linear or arc move."""
        return self.op in MOVE_OPS

    def has_parameters(self) -> bool:
        """Check if any numeric parameter is present."""
        return any(getattr(self, name) is not None for name in PARAMETER_FIELDS)

    def __str__(self) -> str:
        return self.line
