"""Tests for the preheat scheduler."""

import io
import logging

import pytest

from gcode_preheat.estimator import DurationEstimator
from gcode_preheat.models import Extruder, ThermalCosts
from gcode_preheat.registry import ExtruderRegistry
from gcode_preheat.scheduler import EventKind, PreheatScheduler, ScheduleEvent

# 10 mm/s and no acceleration overhead: every 50mm of X travel is exactly 5s
PRINT_START = ["T0", "G1 X50 F600", "G1 X100", "G1 X150", "G1 X200"]


def make_extruders(deactivate=True):
    return [
        Extruder(
            name="T0",
            heat_up=5.0,
            active_gcode="M104 T0 S215",
            deactivate_gcode="M104 T0 S0" if deactivate else None,
        ),
        Extruder(
            name="T1",
            heat_up=3.0,
            active_gcode="M104 T1 S240",
            deactivate_gcode="M104 T1 S0" if deactivate else None,
        ),
    ]


def run(lines, extruders=None, **kwargs):
    """Run lines through a scheduler and return (output lines, scheduler)."""
    registry = ExtruderRegistry(extruders if extruders is not None else make_extruders())
    kwargs.setdefault("estimator", DurationEstimator(speed_change_ratio=0.0))
    output = io.StringIO()
    scheduler = PreheatScheduler(registry, output, **kwargs)
    scheduler.run(lines)
    return output.getvalue().splitlines(), scheduler


def strip_injected(lines):
    """Remove injected directive blocks from output lines."""
    injected = {"M104 T0 S215", "M104 T1 S240", "M104 T0 S0", "M104 T1 S0"}
    return [
        line
        for line in lines
        if not line.startswith(("; PREHEAT", "; DEACTIVATE")) and line not in injected
    ]


class TestPreheatSchedulerInit:
    """Test PreheatScheduler initialization."""

    def test_default_initialization(self):
        """Test initial scheduling state."""
        scheduler = PreheatScheduler(ExtruderRegistry(make_extruders()), io.StringIO())

        assert scheduler.print_time == 0.0
        assert scheduler.toolchange_count == 0
        assert scheduler.current is None
        assert len(scheduler.queue) == 0
        assert scheduler.events == []
        assert isinstance(scheduler.estimator, DurationEstimator)

    def test_registry_is_reset(self):
        """Test leftover bookkeeping from an earlier run is cleared."""
        extruders = make_extruders()
        extruders[0].preheated_at = 3.0
        extruders[1].deactivated_at = 4.0

        PreheatScheduler(ExtruderRegistry(extruders), io.StringIO())

        assert extruders[0].preheated_at is None
        assert extruders[1].deactivated_at is None

    def test_repr(self):
        """Test string representation."""
        scheduler = PreheatScheduler(ExtruderRegistry(make_extruders()), io.StringIO())
        assert "PreheatScheduler" in repr(scheduler)
        assert "max_heat_up=5.0" in repr(scheduler)


class TestScenarios:
    """End-to-end scheduling scenarios."""

    def test_no_toolchanges_output_equals_input(self):
        """Test a file without toolchanges comes out unchanged."""
        lines = [
            "; generated by slicer",
            "G90",
            "M83",
            "G1 X10 Y10 F3000",
            "G1 X20 E0.5 ; perimeter",
            "",
            "M117 Printing layer 1",
            "G2 X30 Y20 I5 J0",
            "G1 Z0.4",
        ]

        output, scheduler = run(lines, extruders=[make_extruders()[0]])

        assert output == lines
        assert scheduler.count(EventKind.PREHEAT) == 0
        assert scheduler.toolchange_count == 0

    def test_single_toolchange_injects_nothing(self):
        """Test the first toolchange only selects the starting extruder."""
        lines = ["G1 X100 F600", "T1", "G1 X150"]

        output, scheduler = run(lines)

        assert output == lines
        assert scheduler.current == "T1"
        assert scheduler.toolchange_count == 1
        assert [e.kind for e in scheduler.events] == [EventKind.TOOLCHANGE]

    def test_preheat_injected_ahead_of_toolchange(self):
        """Test switching to T1 at t=20 preheats it at t=10 and queues T0 off."""
        output, scheduler = run(PRINT_START + ["T1"])

        assert output == [
            "T0",
            "G1 X50 F600",
            "G1 X100",
            "; PREHEAT T1 [10.0 -> 20.0] (last - / deactive -)",
            "M104 T1 S240",
            "G1 X150",
            "G1 X200",
            "T1",
            "; DEACTIVATE T0 @ 20.0",
            "M104 T0 S0",
        ]

        t0, t1 = scheduler.registry["T0"], scheduler.registry["T1"]
        assert t1.preheated_at == 10.0
        assert t1.preheated_until == 20.0
        assert t0.deactivated_at == 20.0
        assert scheduler.events == [
            ScheduleEvent(EventKind.TOOLCHANGE, "T0", 0.0),
            ScheduleEvent(EventKind.PREHEAT, "T1", 10.0, until=20.0),
            ScheduleEvent(EventKind.TOOLCHANGE, "T1", 20.0),
            ScheduleEvent(EventKind.DEACTIVATE, "T0", 20.0),
        ]

    def test_preheat_leads_by_at_least_max_heat_up(self):
        """Test the injected preheat takes effect one heat-up time early."""
        _, scheduler = run(PRINT_START + ["T1"])

        preheat = next(e for e in scheduler.events if e.kind == EventKind.PREHEAT)
        assert preheat.until - preheat.time >= scheduler.registry.max_heat_up

    def test_switch_back_cancels_deactivation(self):
        """Test returning to T0 at t=22 drops T0's deactivation queued at t=20."""
        output, scheduler = run(PRINT_START + ["T1", "G1 X220", "T0"])

        assert output == [
            "T0",
            "G1 X50 F600",
            "G1 X100",
            "; PREHEAT T1 [10.0 -> 20.0] (last - / deactive -)",
            "M104 T1 S240",
            "G1 X150",
            "; PREHEAT T0 [15.0 -> 22.0] (last - / deactive -)",
            "M104 T0 S215",
            "G1 X200",
            "T1",
            "G1 X220",
            "T0",
            "; DEACTIVATE T1 @ 22.0",
            "M104 T1 S0",
        ]
        assert "M104 T0 S0" not in output

        t0 = scheduler.registry["T0"]
        assert t0.preheated_at == 15.0
        assert t0.preheated_until == 22.0
        assert t0.deactivated_at is None
        assert scheduler.count(EventKind.DEACTIVATE_CANCELLED) == 1
        cancelled = next(
            e for e in scheduler.events if e.kind == EventKind.DEACTIVATE_CANCELLED
        )
        assert cancelled == ScheduleEvent(EventKind.DEACTIVATE_CANCELLED, "T0", 20.0)

    def test_deactivation_emitted_after_long_gap(self):
        """Test a deactivation is emitted when the extruder is not needed soon."""
        lines = PRINT_START + ["T1"] + [f"G1 X{200 - 50 * i}" for i in range(1, 5)] + ["T0"]

        output, scheduler = run(lines)

        assert "M104 T0 S0" in output
        # T0 was deactivated at 20 and needs a fresh preheat for t=40
        assert output.count("M104 T0 S215") == 1
        assert scheduler.registry["T0"].deactivated_at == 20.0
        assert scheduler.registry["T0"].preheated_at == 30.0
        assert "; PREHEAT T0 [30.0 -> 40.0] (last - / deactive 20.0)" in output


class TestPreheatDecision:
    """Test when a preheat is injected or skipped."""

    def test_skip_when_still_hot(self):
        """Test an extruder preheated and never deactivated is not preheated again."""
        moves = ["G1 X0", "G1 X50", "G1 X100", "G1 X150"]
        lines = ["G1 X0 F600", "T0"] + moves + ["T1"] + moves + ["T0"] + moves + ["T1"]

        output, scheduler = run(lines, extruders=make_extruders(deactivate=False))

        assert output.count("M104 T1 S240") == 1
        assert output.count("M104 T0 S215") == 1
        assert scheduler.count(EventKind.PREHEAT) == 2
        assert scheduler.count(EventKind.PREHEAT_SKIPPED) == 1
        skipped = next(e for e in scheduler.events if e.kind == EventKind.PREHEAT_SKIPPED)
        assert skipped.extruder == "T1"

    def test_skip_still_extends_window(self):
        """Test a skipped preheat moves preheated_until to the new toolchange."""
        moves = ["G1 X0", "G1 X50", "G1 X100", "G1 X150"]
        lines = ["G1 X0 F600", "T0"] + moves + ["T1"] + moves + ["T0"] + moves + ["T1"]

        _, scheduler = run(lines, extruders=make_extruders(deactivate=False))

        t1 = scheduler.registry["T1"]
        assert t1.preheated_until == scheduler.events[-1].time
        assert t1.preheated_until >= t1.preheated_at

    def test_preheat_again_after_deactivation(self):
        """Test a deactivated extruder is preheated again, reporting its history."""
        far = [f"G1 X{x}" for x in (50, 100, 150, 200)]
        back = [f"G1 X{x}" for x in (150, 100, 50, 0)]
        lines = ["T0", "G1 X0 F600"] + far + ["T1"] + back + ["T0"] + far + ["T1"]

        output, scheduler = run(lines)

        assert output.count("M104 T1 S240") == 2
        assert scheduler.count(EventKind.PREHEAT_SKIPPED) == 0
        last = [line for line in output if line.startswith("; PREHEAT T1")][-1]
        assert "(last 10.0 / deactive 40.0)" in last

    def test_deactivation_at_preheat_start_is_not_cancelled(self):
        """Test the preheat window excludes its own start time.

        With a toolchange cost longer than every heat-up time, T0 is preheated
        while T1's toolchange is the queue head. The deactivation of T0 queued
        by that same toolchange has the window's start time and is emitted.
        """
        lines = ["T0", "G1 X10 F600", "T1", "T0"]
        estimator = DurationEstimator(speed_change_ratio=0.0, costs=ThermalCosts(toolchange=6.0))

        output, scheduler = run(lines, estimator=estimator)

        assert output == [
            "; PREHEAT T1 [0.0 -> 7.0] (last - / deactive -)",
            "M104 T1 S240",
            "T0",
            "G1 X10 F600",
            "; PREHEAT T0 [7.0 -> 13.0] (last - / deactive -)",
            "M104 T0 S215",
            "T1",
            "; DEACTIVATE T0 @ 7.0",
            "M104 T0 S0",
            "T0",
            "; DEACTIVATE T1 @ 13.0",
            "M104 T1 S0",
        ]
        t0 = scheduler.registry["T0"]
        assert t0.preheated_at == t0.deactivated_at == 7.0
        assert scheduler.count(EventKind.DEACTIVATE_CANCELLED) == 0

    def test_reselecting_current_extruder_queues_no_deactivation(self):
        """Test a toolchange to the active extruder never deactivates it."""
        output, scheduler = run(PRINT_START + ["T0"])

        assert not any(line.startswith("; DEACTIVATE") for line in output)
        assert scheduler.current == "T0"

    def test_no_deactivation_without_text(self):
        """Test extruders without deactivation G-code are never deactivated."""
        output, scheduler = run(PRINT_START + ["T1"], extruders=make_extruders(deactivate=False))

        assert not any(line.startswith("; DEACTIVATE") for line in output)
        assert scheduler.count(EventKind.DEACTIVATE) == 0

    def test_unconfigured_tool_is_not_a_toolchange(self):
        """Test op codes of unknown tools pass through untouched."""
        output, scheduler = run(PRINT_START + ["T5"])

        assert output == PRINT_START + ["T5"]
        assert scheduler.toolchange_count == 1

    def test_toolchange_is_case_insensitive(self):
        """Test lower-case tool selection matches configured extruders."""
        _, scheduler = run(PRINT_START + ["t1"])

        assert scheduler.current == "T1"
        assert scheduler.count(EventKind.PREHEAT) == 1


class TestQueueInvariants:
    """Test properties that hold for any input."""

    LINES = (
        ["; header", "G90", "M82", "G1 X0 Y0 F1200", "T0"]
        + [f"G1 X{i * 7 % 90} Y{i * 13 % 70} E{i * 0.3:.2f}" for i in range(1, 40)]
        + ["T1", "G10", "G11"]
        + [f"G1 X{i * 11 % 90} Y{i * 5 % 70} E{12 + i * 0.2:.2f}" for i in range(1, 30)]
        + ["T0", "; comment only", "M117 Bad param line", "G1 X1", "T1", "G1 X80 Y60", "T0"]
    )

    def test_conservation(self):
        """Test every input line appears exactly once and in order."""
        output, _ = run(self.LINES)
        assert strip_injected(output) == list(self.LINES)

    def test_unparsed_lines_pass_through(self):
        """Test unparsable lines appear verbatim even in debug mode."""
        output, _ = run(self.LINES, debug=True)
        assert "M117 Bad param line" in output
        assert "; comment only" in output

    def test_window_bound(self):
        """Test the queue never spans more than the longest heat-up time."""
        registry = ExtruderRegistry(make_extruders())
        scheduler = PreheatScheduler(
            registry, io.StringIO(), estimator=DurationEstimator(speed_change_ratio=0.4)
        )

        for line in self.LINES:
            scheduler.feed(line)
            if scheduler.toolchange_count > 0:
                assert scheduler.queue.elapsed_since_head() <= registry.max_heat_up
            assert scheduler.queue.queued_time == pytest.approx(
                sum(g.duration for g in scheduler.queue)
            )

        scheduler.finish()
        assert len(scheduler.queue) == 0

    def test_prologue_flushed_eagerly(self):
        """Test only one line is held back before the first toolchange."""
        registry = ExtruderRegistry(make_extruders())
        scheduler = PreheatScheduler(registry, io.StringIO())

        for line in ["G1 X10 F600", "G1 X20", "G1 X30", "G1 X40"]:
            scheduler.feed(line)
            assert len(scheduler.queue) == 1

    def test_queue_in_print_time_order(self):
        """Test queued entries never go back in print time."""
        registry = ExtruderRegistry(make_extruders())
        scheduler = PreheatScheduler(registry, io.StringIO())

        for line in self.LINES:
            scheduler.feed(line)
            times = [g.print_time for g in scheduler.queue]
            assert times == sorted(times)

    def test_print_time_includes_costs(self):
        """Test toolchange and retraction costs add to print time."""
        costs = ThermalCosts(toolchange=10.0, retraction=0.5)
        lines = ["T0", "G1 X50 F600", "G10", "G11", "T1"]

        _, scheduler = run(
            lines, estimator=DurationEstimator(speed_change_ratio=0.0, costs=costs)
        )

        assert scheduler.print_time == pytest.approx(10.0 + 5.0 + 1.0 + 10.0)
        toolchange = [e for e in scheduler.events if e.kind == EventKind.TOOLCHANGE][-1]
        assert toolchange.time == pytest.approx(16.0)


class TestTemperatureFiltering:
    """Test handling of temperature commands in the input."""

    def test_temperature_commands_dropped(self):
        """Test M104 and M109 are removed from the output."""
        lines = ["M104 S200", "G1 X10 F600", "M109", "G1 X20"]

        output, _ = run(lines)

        assert output == ["G1 X10 F600", "G1 X20"]

    def test_wait_with_parameters_warns(self, caplog):
        """Test M109 with a target temperature logs a warning."""
        with caplog.at_level(logging.WARNING, logger="gcode_preheat.scheduler"):
            run(["M109 S210", "G1 X10 F600"])

        assert any("M109 S210" in record.getMessage() for record in caplog.records)
        assert all(record.levelno == logging.WARNING for record in caplog.records)

    def test_bare_wait_does_not_warn(self, caplog):
        """Test M109 without parameters is dropped silently."""
        with caplog.at_level(logging.WARNING, logger="gcode_preheat.scheduler"):
            run(["M109", "M104 S200", "G1 X10 F600"])

        assert caplog.records == []

    def test_filtering_can_be_disabled(self):
        """Test temperature commands pass through when filtering is off."""
        lines = ["M104 S200", "G1 X10 F600", "M109 S200"]

        output, _ = run(lines, filter_temperature=False)

        assert output == lines


class TestDebugAnnotations:
    """Test print-time annotations in debug mode."""

    def test_moves_and_toolchanges_annotated(self):
        """Test annotations on moves, toolchanges and preheat windows."""
        output, _ = run(PRINT_START + ["T1", "G1 X220", "T0", "M106 S255"], debug=True)

        assert output[0] == "T0  ; printTime=0.0"
        assert output[1] == "G1 X50 F600  ; printTime=0.0"
        assert "T1  ; printTime=20.0 prev=T0 preheating [15.0 -> 22.0]" in output
        assert "T0  ; printTime=22.0 prev=T1" in output
        assert output[-1] == "M106 S255"

    def test_no_annotations_by_default(self):
        """Test output carries no annotations unless debug is on."""
        output, _ = run(PRINT_START + ["T1"])
        assert not any("printTime" in line for line in output)
