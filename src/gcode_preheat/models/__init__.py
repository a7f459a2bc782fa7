"""Core data models for preheat scheduling.

This package contains the instruction, extruder and kinematic state models.
"""

from gcode_preheat.models.extruder import Extruder, ThermalCosts
from gcode_preheat.models.instruction import EntryKind, Instruction
from gcode_preheat.models.kinematics import KinematicState

__all__ = [
    "Instruction",
    "EntryKind",
    "Extruder",
    "ThermalCosts",
    "KinematicState",
]
