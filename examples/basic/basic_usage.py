"""Basic usage example.

This example demonstrates:
- Defining extruders with their heat-up times and activation G-code
- Running the preheat scheduler over a short two-tool print
- Inspecting the scheduling decisions
- Plotting the heater schedule

The G-code is written to a temporary file and rewritten in place, the same
way a slicer post-processing script would run.
"""

import tempfile
from pathlib import Path

from gcode_preheat import Extruder, PreheatConfig, ThermalCosts, preheat_file
from gcode_preheat.visualize import plot_schedule

# Alternating perimeters on two tools, 100 mm at 20 mm/s between changes
GCODE = """\
; generated for the preheat example
G90
M83
T0
G1 X0 Y0 F1200
G1 X100 E5
G1 X0 E5
G1 X100 E5
G1 X0 E5
T1
G1 X100 E5
G1 X0 E5
G1 X100 E5
G1 X0 E5
T0
G1 X100 E5
G1 X0 E5
"""


def main():
    """Preheat a small two-tool print."""

    print("=" * 80)
    print("BASIC PREHEAT SCHEDULER USAGE")
    print("=" * 80)

    config = PreheatConfig(
        extruders=[
            Extruder(
                name="T0",
                heat_up=12.0,  # seconds from standby to printing temperature
                active_gcode="M104 T0 S215",
                deactivate_gcode="M104 T0 S150",
            ),
            Extruder(
                name="T1",
                heat_up=8.0,
                active_gcode="M104 T1 S240",
                deactivate_gcode="M104 T1 S170",
            ),
        ],
        costs=ThermalCosts(toolchange=5.0),
        speed_change_ratio=0.4,
    )

    print("\nExtruders:")
    for extruder in config.extruders:
        print(f"  {extruder.name}: heat up {extruder.heat_up:.0f}s, {extruder.active_gcode}")

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "example.gcode"
        path.write_text(GCODE)

        summary = preheat_file(path, config)

        print("\nScheduling decisions:")
        print("  " + "-" * 70)
        for event in summary.events:
            until = f" (toolchange at {event.until:.1f}s)" if event.until is not None else ""
            print(f"  {event.time:>7.1f}s  {event.kind.value:<22} {event.extruder}{until}")

        print(f"\nEstimated print time: {summary.print_time:.1f}s")
        print(
            f"Toolchanges: {summary.toolchanges}, preheats: {summary.preheats}, "
            f"deactivations: {summary.deactivations} ({summary.cancelled} cancelled)"
        )

        print("\nRewritten G-code:")
        print("  " + "-" * 70)
        for line in path.read_text().splitlines():
            print(f"  {line}")

    print("\n" + "=" * 80)
    print("GENERATING PLOT")
    print("=" * 80)
    filename = str(Path(__file__).parent / "basic_usage.png")
    plot_schedule(summary, show=False, save_path=filename)
    print(f"  Plot saved: {filename}")
    print()


if __name__ == "__main__":
    main()
