"""End-to-end preheat processing of a G-code file."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, TextIO, Union

from gcode_preheat.config import PreheatConfig
from gcode_preheat.estimator import DurationEstimator
from gcode_preheat.fileio import rewrite_file
from gcode_preheat.models.extruder import Extruder
from gcode_preheat.registry import ExtruderRegistry
from gcode_preheat.scheduler import EventKind, PreheatScheduler, ScheduleEvent

logger = logging.getLogger(__name__)

PREHEAT_SUFFIX = ".preheat"


@dataclass
class PreheatSummary:
    """
    Outcome of one preheat run.

    Attributes:
        output_path: File holding the processed G-code
        lines: Number of input lines read
        print_time: Estimated total print time in seconds
        events: Scheduling decisions in the order they were made
        extruders: Extruder records with their final scheduling state
    """

    output_path: Path
    lines: int
    print_time: float
    events: List[ScheduleEvent] = field(default_factory=list)
    extruders: List[Extruder] = field(default_factory=list)

    def count(self, kind: EventKind) -> int:
        return sum(1 for event in self.events if event.kind == kind)

    @property
    def toolchanges(self) -> int:
        return self.count(EventKind.TOOLCHANGE)

    @property
    def preheats(self) -> int:
        return self.count(EventKind.PREHEAT)

    @property
    def deactivations(self) -> int:
        return self.count(EventKind.DEACTIVATE)

    @property
    def cancelled(self) -> int:
        return self.count(EventKind.DEACTIVATE_CANCELLED)


def preheat_file(
    path: Union[str, Path],
    config: PreheatConfig,
    *,
    no_rename: bool = False,
    debug: bool = False,
) -> PreheatSummary:
    """
    Insert preheat and deactivate directives into a G-code file in place.

    Args:
        path: G-code file to process
        config: Validated preheat configuration
        no_rename: Keep the result at ``<path>.preheat`` and leave the
            original untouched
        debug: Annotate moves and toolchanges with their print time

    Returns:
        PreheatSummary describing the run

    Raises:
        OSError: If the file cannot be read, written or renamed
    """
    registry = ExtruderRegistry(config.extruders)
    estimator = DurationEstimator(
        speed_change_ratio=config.speed_change_ratio, costs=config.costs
    )
    scheduler = None

    def process(lines: Iterator[str], output: TextIO) -> None:
        nonlocal scheduler
        scheduler = PreheatScheduler(
            registry,
            output,
            estimator=estimator,
            debug=debug,
            filter_temperature=config.filter_temperature,
        )
        scheduler.run(lines)

    logger.debug("preheat %s with %r", path, estimator)
    output_path = rewrite_file(path, PREHEAT_SUFFIX, process, rename=not no_rename)

    summary = PreheatSummary(
        output_path=output_path,
        lines=scheduler.lines_read,
        print_time=scheduler.print_time,
        events=list(scheduler.events),
        extruders=list(registry),
    )
    logger.info(
        "processed %d lines (%.1fs): %d toolchanges, %d preheats, "
        "%d deactivations, %d cancelled",
        summary.lines,
        summary.print_time,
        summary.toolchanges,
        summary.preheats,
        summary.deactivations,
        summary.cancelled,
    )
    return summary
