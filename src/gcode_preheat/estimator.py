"""Execution time estimation for G-code instructions."""

import math
from typing import Optional

from gcode_preheat.models.extruder import ThermalCosts
from gcode_preheat.models.instruction import (
    ABSOLUTE_EXTRUSION,
    ABSOLUTE_POSITIONING,
    ARC_MOVE_OPS,
    LINEAR_MOVE_OPS,
    RELATIVE_EXTRUSION,
    RELATIVE_POSITIONING,
    RETRACTION_OPS,
    Instruction,
)
from gcode_preheat.models.kinematics import KinematicState

# Fraction of nominal move time added for acceleration and deceleration
DEFAULT_SPEED_CHANGE_RATIO = 0.4


def calculate_move_distance(instruction: Instruction, state: KinematicState) -> float:
    """Calculate the distance covered by a linear move.

    The extruder axis is folded into the same Euclidean norm as X, Y and Z.
    This is a coarse approximation that keeps retract-only and extrude-only
    moves from being free.

    Args:
        instruction: Parsed move instruction
        state: Kinematic state before the move

    Returns:
        sqrt(dx² + dy² + dz² + de²) in millimeters. Arc moves and anything
        else that is not a linear move return 0.0.

    Examples:
        >>> state = KinematicState(x=0.0, y=0.0)
        >>> move = Instruction(line="G1 X3 Y4", line_no=1, op="G1", x=3.0, y=4.0)
        >>> calculate_move_distance(move, state)
        5.0
    """
    if instruction.op not in LINEAR_MOVE_OPS:
        return 0.0
    return math.sqrt(sum(d * d for d in state.delta(instruction)))


class DurationEstimator:
    """
    Assign simulated execution durations to instructions.

    Consults and updates a KinematicState: mode changes toggle its flags and
    moves advance its position and feedrate.
    """

    def __init__(
        self,
        speed_change_ratio: float = DEFAULT_SPEED_CHANGE_RATIO,
        costs: Optional[ThermalCosts] = None,
    ) -> None:
        """
        Initialize the estimator.

        Args:
            speed_change_ratio: Fraction of nominal move time added to every
                linear move to account for acceleration (default: 0.4)
            costs: Optional fixed durations for toolchanges and retractions

        Raises:
            ValueError: If speed_change_ratio is negative
        """
        if speed_change_ratio < 0:
            raise ValueError(
                f"speed_change_ratio must be non-negative, got {speed_change_ratio}"
            )

        self.speed_change_ratio = speed_change_ratio
        self.costs = costs

    def estimate(self, instruction: Instruction, state: KinematicState) -> float:
        """
        Estimate how long ``instruction`` takes and update ``state``.

        The instruction's ``is_toolchange`` flag must be set before calling.

        Args:
            instruction: Parsed instruction
            state: Kinematic state, mutated in place

        Returns:
            Duration in seconds (never negative)
        """
        op = instruction.op

        if op == ABSOLUTE_EXTRUSION:
            state.set_extrusion(relative=False)
        elif op == RELATIVE_EXTRUSION:
            state.set_extrusion(relative=True)
        elif op == ABSOLUTE_POSITIONING:
            state.set_positioning(relative=False)
        elif op == RELATIVE_POSITIONING:
            state.set_positioning(relative=True)
        elif op in RETRACTION_OPS:
            return self.costs.retraction if self.costs else 0.0
        elif op in LINEAR_MOVE_OPS:
            return self._linear_move(instruction, state)
        elif op in ARC_MOVE_OPS:
            # Arc length is not computed; only the end point is tracked
            if instruction.f is not None:
                state.feedrate = instruction.f
            state.update(instruction)
            return 0.0
        elif instruction.is_toolchange:
            return self.costs.toolchange if self.costs else 0.0

        return 0.0

    def _linear_move(self, instruction: Instruction, state: KinematicState) -> float:
        distance = calculate_move_distance(instruction, state)

        if instruction.f is not None and instruction.f > 0:
            state.feedrate = instruction.f

        duration = 0.0
        if state.feedrate:
            duration = distance / state.feedrate
        duration += duration * self.speed_change_ratio

        state.update(instruction)
        return duration

    def __repr__(self) -> str:
        return (
            f"DurationEstimator(speed_change_ratio={self.speed_change_ratio}, "
            f"costs={self.costs!r})"
        )
