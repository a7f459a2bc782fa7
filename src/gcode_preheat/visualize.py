"""Visualization utilities for preheat schedules.

This module provides functions to visualize when each extruder heater is on,
where toolchanges happen and how many heaters run at the same time.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
import numpy as np

from gcode_preheat.runner import PreheatSummary
from gcode_preheat.scheduler import EventKind, ScheduleEvent


def heater_intervals(
    events: Sequence[ScheduleEvent], end_time: float
) -> Dict[str, List[Tuple[float, float]]]:
    """Derive per-extruder heater-on intervals from scheduling events.

    A heater switches on at the first toolchange (the starting extruder) or
    at a preheat, and off at a deactivation. Intervals still open at the end
    of the print are closed at ``end_time``.

    Args:
        events: Events recorded by the scheduler, in order
        end_time: Total print time in seconds

    Returns:
        Mapping of extruder key to a list of (start, end) intervals in seconds

    Example:
        >>> events = [
        ...     ScheduleEvent(EventKind.TOOLCHANGE, "T0", 0.0),
        ...     ScheduleEvent(EventKind.PREHEAT, "T1", 10.0, until=20.0),
        ...     ScheduleEvent(EventKind.TOOLCHANGE, "T1", 20.0),
        ...     ScheduleEvent(EventKind.DEACTIVATE, "T0", 20.0),
        ... ]
        >>> heater_intervals(events, 30.0)
        {'T0': [(0.0, 20.0)], 'T1': [(10.0, 30.0)]}
    """
    intervals: Dict[str, List[Tuple[float, float]]] = {}
    switched_on: Dict[str, float] = {}
    seen_toolchange = False

    for event in events:
        if event.kind == EventKind.TOOLCHANGE:
            if not seen_toolchange:
                switched_on.setdefault(event.extruder, event.time)
            seen_toolchange = True
        elif event.kind == EventKind.PREHEAT:
            switched_on.setdefault(event.extruder, event.time)
        elif event.kind == EventKind.DEACTIVATE:
            start = switched_on.pop(event.extruder, None)
            if start is not None:
                intervals.setdefault(event.extruder, []).append((start, event.time))

    for key, start in switched_on.items():
        intervals.setdefault(key, []).append((start, max(start, end_time)))

    return intervals


def _heaters_on(
    intervals: Dict[str, List[Tuple[float, float]]], end_time: float
) -> Tuple[np.ndarray, np.ndarray]:
    """Count heaters switched on over time.

    Returns:
        Arrays of change times and the number of heaters on from each time on
    """
    changes = [(0.0, 0)]
    for spans in intervals.values():
        for start, end in spans:
            changes.append((start, 1))
            changes.append((end, -1))
    changes.sort(key=lambda change: (change[0], change[1]))

    times = np.array([time for time, _ in changes] + [end_time])
    counts = np.cumsum([delta for _, delta in changes])
    counts = np.append(counts, counts[-1])
    return times, counts


def plot_schedule(
    summary: PreheatSummary,
    title: Optional[str] = None,
    show: bool = True,
    save_path: Optional[str] = None,
) -> plt.Figure:
    """Plot the heater schedule of a preheat run.

    Creates a two-panel visualization showing:
    - Heater-on intervals per extruder with toolchange markers
    - Number of heaters on over time

    Args:
        summary: Result of preheat_file()
        title: Optional custom title (default: auto-generated)
        show: Whether to display the plot (default: True)
        save_path: Optional path to save the figure

    Returns:
        matplotlib Figure object

    Raises:
        ValueError: If the run contained no toolchanges

    Example:
        >>> from gcode_preheat.runner import preheat_file
        >>> summary = preheat_file("print.gcode", config)
        >>> plot_schedule(summary, show=False, save_path="schedule.png")
    """
    if summary.toolchanges == 0:
        raise ValueError("Cannot plot a schedule without toolchanges")

    end_time = summary.print_time
    intervals = heater_intervals(summary.events, end_time)
    keys = [extruder.key for extruder in summary.extruders]

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 7), sharex=True)

    if title is None:
        title = (
            f"Preheat Schedule\n"
            f"{summary.toolchanges} toolchanges, {summary.preheats} preheats, "
            f"{summary.deactivations} deactivations ({summary.cancelled} cancelled)"
        )

    fig.suptitle(title, fontsize=14, fontweight="bold")

    # Plot 1: Heater timelines
    for row, key in enumerate(keys):
        spans = intervals.get(key, [])
        ax1.broken_barh(
            [(start, end - start) for start, end in spans],
            (row - 0.3, 0.6),
            alpha=0.6,
            label="Heater On" if row == 0 else None,
        )
        changes = np.array(
            [e.time for e in summary.events if e.kind == EventKind.TOOLCHANGE and e.extruder == key]
        )
        if changes.size:
            ax1.plot(
                changes,
                np.full(changes.shape, row),
                "kv",
                label="Toolchange" if row == 0 else None,
            )
    ax1.set_yticks(range(len(keys)))
    ax1.set_yticklabels(keys)
    ax1.set_ylabel("Extruder")
    ax1.set_title("Heater Activity")
    ax1.legend(loc="upper right")
    ax1.grid(True, alpha=0.3)

    # Plot 2: Concurrent heaters
    times, counts = _heaters_on(intervals, end_time)
    ax2.step(times, counts, where="post", color="red", linewidth=2, label="Heaters On")
    ax2.set_ylabel("Heaters On")
    ax2.set_xlabel("Print Time (seconds)")
    ax2.set_title("Concurrent Heaters")
    ax2.set_ylim(-0.1, len(keys) + 0.5)
    ax2.legend()
    ax2.grid(True, alpha=0.3)

    plt.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches="tight")

    if show:
        plt.show()

    return fig
