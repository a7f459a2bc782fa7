"""Preheat scheduling over a look-ahead window of G-code.

This module provides the PreheatScheduler class that integrates all components:
- Parsing of each input line
- Duration estimation against the tracked kinematic state
- The look-ahead queue and its flush policy
- Preheat injection and cancellable deactivation at toolchanges

The scheduler holds back the most recent instructions until the time they
span exceeds the longest heat-up time of any extruder. When a toolchange
arrives, the activation G-code of the new extruder is written immediately,
which places it ahead of everything still queued: at least one heat-up time
before the toolchange executes.

Example:
    >>> import io
    >>> from gcode_preheat.models import Extruder
    >>> from gcode_preheat.registry import ExtruderRegistry
    >>>
    >>> registry = ExtruderRegistry([
    ...     Extruder(name="T0", heat_up=20.0, active_gcode="M104 T0 S215"),
    ...     Extruder(name="T1", heat_up=20.0, active_gcode="M104 T1 S215"),
    ... ])
    >>> output = io.StringIO()
    >>> scheduler = PreheatScheduler(registry, output)
    >>> scheduler.run(["T0", "G1 X10 F600", "T1"])
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, TextIO

from gcode_preheat.estimator import DurationEstimator
from gcode_preheat.lookahead import LookaheadQueue
from gcode_preheat.models.extruder import Extruder
from gcode_preheat.models.instruction import (
    TEMPERATURE_OPS,
    WAIT_TEMPERATURE,
    EntryKind,
    Instruction,
)
from gcode_preheat.models.kinematics import KinematicState
from gcode_preheat.parser import parse_instruction
from gcode_preheat.registry import ExtruderRegistry

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Scheduling decisions recorded during a run."""

    TOOLCHANGE = "toolchange"
    PREHEAT = "preheat"
    PREHEAT_SKIPPED = "preheat_skipped"  # Extruder was still hot from an earlier preheat
    DEACTIVATE = "deactivate"
    DEACTIVATE_CANCELLED = "deactivate_cancelled"


@dataclass(frozen=True)
class ScheduleEvent:
    """
    One scheduling decision.

    Attributes:
        kind: What happened
        extruder: Key of the extruder concerned
        time: Print time at which the decision takes effect (for a preheat,
            the time of the queue head it was written ahead of)
        until: For preheats, print time of the toolchange it is for
    """

    kind: EventKind
    extruder: str
    time: float
    until: Optional[float] = None


class PreheatScheduler:
    """Single-pass preheat scheduler.

    Feed it the lines of a G-code file in order, then call finish(). All
    output, original lines and injected directives alike, is written to
    ``output`` one line at a time.

    Args:
        registry: Configured extruders; their scheduling fields are reset
        output: Text stream receiving the processed G-code
        estimator: Duration estimator (default: DurationEstimator())
        debug: Append print-time annotations to moves and toolchanges
        filter_temperature: Drop M104/M109 from the output

    Example:
        >>> scheduler = PreheatScheduler(registry, output_file)
        >>> for line in input_file:
        ...     scheduler.feed(line.rstrip("\\n"))
        >>> scheduler.finish()
    """

    def __init__(
        self,
        registry: ExtruderRegistry,
        output: TextIO,
        estimator: Optional[DurationEstimator] = None,
        debug: bool = False,
        filter_temperature: bool = True,
    ):
        self.registry = registry
        self.output = output
        self.estimator = estimator if estimator is not None else DurationEstimator()
        self.debug = debug
        self.filter_temperature = filter_temperature

        self.kinematics = KinematicState()
        self.queue = LookaheadQueue()
        self.print_time = 0.0
        self.toolchange_count = 0
        self.current: Optional[str] = None
        self.events: List[ScheduleEvent] = []
        self.lines_read = 0

        self.registry.reset()

    def feed(self, line: str) -> None:
        """Parse and process the next input line (without its newline)."""
        self.lines_read += 1
        self.process(parse_instruction(line, self.lines_read))

    def run(self, lines: Iterable[str]) -> None:
        """Process every line, then drain the queue."""
        for line in lines:
            self.feed(line)
        self.finish()

    def process(self, instruction: Instruction) -> None:
        """Process one instruction.

        The pipeline for each instruction:
        1. Temperature commands are dropped (the scheduler owns heating)
        2. Toolchanges are tagged and the duration is estimated
        3. The instruction is stamped with the current print time and queued
        4. Toolchanges inject a preheat and queue a deactivation
        5. The queue head is flushed while the flush policy allows
        """
        if instruction.parsed:
            if self._is_filtered(instruction):
                return
            instruction.is_toolchange = instruction.op in self.registry
            instruction.duration = self.estimator.estimate(instruction, self.kinematics)

        # Print time orders every queued entry; preheat windows are compared against it
        instruction.print_time = self.print_time
        self.queue.push(instruction)
        self.print_time += instruction.duration

        if instruction.is_toolchange:
            self._change_tool(instruction)
        elif instruction.parsed:
            instruction.extruder = self.current

        self._flush()

    def finish(self) -> None:
        """Write out everything still queued."""
        while self.queue:
            self._emit(self.queue.pop())

    def count(self, kind: EventKind) -> int:
        """Count recorded events of one kind."""
        return sum(1 for event in self.events if event.kind == kind)

    def _should_flush(self) -> bool:
        # Before the first toolchange there is nothing to preheat for
        if self.toolchange_count == 0:
            return True
        return self.queue.elapsed_since_head() > self.registry.max_heat_up

    def _flush(self) -> None:
        while len(self.queue) > 1 and self._should_flush():
            self._emit(self.queue.pop())

    def _emit(self, instruction: Instruction) -> None:
        if instruction.kind == EntryKind.DEACTIVATE:
            extruder = self.registry[instruction.extruder]
            if extruder.is_preheated_across(instruction.print_time):
                # A later toolchange needs this extruder hot across this moment
                logger.debug(
                    "cancel deactivate %s @ %.1f: preheated [%.1f -> %.1f]",
                    extruder.name,
                    instruction.print_time,
                    extruder.preheated_at,
                    extruder.preheated_until,
                )
                self._record(EventKind.DEACTIVATE_CANCELLED, extruder, instruction.print_time)
                return
            extruder.deactivated_at = instruction.print_time
            self._record(EventKind.DEACTIVATE, extruder, instruction.print_time)

        self._write(instruction.line + self._annotation(instruction))

    def _change_tool(self, instruction: Instruction) -> None:
        extruder = self.registry[instruction.op]
        previous = self.current

        # The first toolchange only selects the starting extruder
        if self.toolchange_count > 0:
            self._schedule_preheat(extruder, instruction)
            self._schedule_deactivate(previous, extruder, instruction)

        self._record(EventKind.TOOLCHANGE, extruder, instruction.print_time)
        instruction.extruder = extruder.key
        instruction.prev_extruder = previous
        self.current = extruder.key
        self.toolchange_count += 1

    def _schedule_preheat(self, extruder: Extruder, toolchange: Instruction) -> None:
        head = self.queue.front()

        if extruder.is_hot():
            logger.debug(
                "skip preheat for %s @ %.1f: [%s -> %s] / %s",
                extruder.name,
                toolchange.print_time,
                _format_time(extruder.preheated_at),
                _format_time(extruder.preheated_until),
                _format_time(extruder.deactivated_at),
            )
            self._record(EventKind.PREHEAT_SKIPPED, extruder, toolchange.print_time)
        else:
            self._write(
                f"; PREHEAT {extruder.name} [{head.print_time:.1f} -> {toolchange.print_time:.1f}]"
                f" (last {_format_time(extruder.preheated_at)}"
                f" / deactive {_format_time(extruder.deactivated_at)})\n"
                + extruder.active_gcode.rstrip("\n")
            )
            # Takes effect once the queue drains down to the current head
            extruder.preheated_at = head.print_time
            self._record(
                EventKind.PREHEAT, extruder, head.print_time, until=toolchange.print_time
            )

        extruder.preheated_until = toolchange.print_time

    def _schedule_deactivate(
        self, previous: Optional[str], extruder: Extruder, toolchange: Instruction
    ) -> None:
        if previous is None or previous == extruder.key:
            return
        outgoing = self.registry[previous]
        if not outgoing.deactivate_gcode:
            return

        # Only queued: a later toolchange back to this extruder may cancel it
        logger.debug("queue deactivate %s @ %.1f", outgoing.name, toolchange.print_time)
        self.queue.push(Instruction.deactivate(outgoing, toolchange.print_time, toolchange.line_no))

    def _is_filtered(self, instruction: Instruction) -> bool:
        if not self.filter_temperature or instruction.op not in TEMPERATURE_OPS:
            return False
        if instruction.op == WAIT_TEMPERATURE and instruction.has_parameters():
            logger.warning(
                "line %d: dropped %r; manual temperature control conflicts with "
                "injected preheat directives",
                instruction.line_no,
                instruction.line,
            )
        return True

    def _annotation(self, instruction: Instruction) -> str:
        if not self.debug or not instruction.parsed:
            return ""
        if not (instruction.is_move() or instruction.is_toolchange):
            return ""

        note = f"  ; printTime={instruction.print_time:.1f}"
        if instruction.is_toolchange and instruction.prev_extruder is not None:
            previous = self.registry[instruction.prev_extruder]
            note += f" prev={previous.name}"
            if previous.is_preheated_across(instruction.print_time):
                note += (
                    f" preheating [{previous.preheated_at:.1f} -> {previous.preheated_until:.1f}]"
                )
        return note

    def _record(
        self, kind: EventKind, extruder: Extruder, time: float, until: Optional[float] = None
    ) -> None:
        self.events.append(ScheduleEvent(kind=kind, extruder=extruder.key, time=time, until=until))

    def _write(self, text: str) -> None:
        self.output.write(text + "\n")

    def __repr__(self) -> str:
        return (
            f"PreheatScheduler(extruders={self.registry.keys()}, "
            f"max_heat_up={self.registry.max_heat_up}, debug={self.debug})"
        )


def _format_time(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1f}"
