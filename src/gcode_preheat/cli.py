"""Command line interface: ``gcodeproc preheat`` and ``gcodeproc substitute``."""

import argparse
import logging
import sys
from typing import List, Optional

from gcode_preheat.config import ConfigError, load_config
from gcode_preheat.runner import preheat_file
from gcode_preheat.substitute import load_substitutions, substitute_file

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(logfile: Optional[str] = None) -> None:
    """Configure logging for a command.

    With a log file every message down to DEBUG goes to that file. Without
    one only warnings and errors are shown, on stderr, so slicer post-processing
    output stays quiet.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if logfile:
        handler = logging.FileHandler(logfile, mode="a", encoding="utf-8")
        level = logging.DEBUG
    else:
        handler = logging.StreamHandler()
        level = logging.WARNING

    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    root.setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gcodeproc", description="postprocess gcode")
    commands = parser.add_subparsers(dest="command", metavar="<command>")
    commands.required = True

    preheat = commands.add_parser("preheat", help="preheat the next extruder in the queue")
    preheat.add_argument("--config", required=True, help="config file")
    preheat.add_argument("--log", help="log file")
    preheat.add_argument(
        "--speed-change-ratio",
        type=float,
        default=None,
        help="ratio of time in speed change phase of each move (overrides the config)",
    )
    preheat.add_argument("--plot", metavar="PATH", help="save a heater schedule plot")
    # Debug flags
    preheat.add_argument("--no-rename", action="store_true", help=argparse.SUPPRESS)
    preheat.add_argument("--debug", action="store_true", help=argparse.SUPPRESS)
    preheat.add_argument("gcode", nargs="?", metavar="<gcode file>")
    preheat.set_defaults(handler=_run_preheat)

    substitute = commands.add_parser(
        "substitute", aliases=["sub"], help="substitute a string in a gcode file"
    )
    substitute.add_argument("--config", required=True, help="config file")
    substitute.add_argument("--log", help="log file")
    substitute.add_argument("gcode", nargs="?", metavar="<gcode file>")
    substitute.set_defaults(handler=_run_substitute)

    return parser


def _run_preheat(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    if args.speed_change_ratio is not None:
        if args.speed_change_ratio < 0:
            raise ConfigError(
                f"speed-change-ratio must be non-negative, got {args.speed_change_ratio}"
            )
        config.speed_change_ratio = args.speed_change_ratio

    setup_logging(args.log)

    summary = preheat_file(args.gcode, config, no_rename=args.no_rename, debug=args.debug)

    if args.plot:
        # Imported here so matplotlib is only loaded when plotting
        from gcode_preheat.visualize import plot_schedule

        plot_schedule(summary, show=False, save_path=args.plot)


def _run_substitute(args: argparse.Namespace) -> None:
    substitutions = load_substitutions(args.config)
    setup_logging(args.log)
    substitute_file(args.gcode, substitutions)


def main(argv: Optional[List[str]] = None) -> int:
    """Run the command line interface.

    Returns:
        Process exit status: 0 on success, 1 on any error
    """
    args = build_parser().parse_args(argv)

    if not args.gcode:
        print("error: missing gcode file", file=sys.stderr)
        return 1

    try:
        args.handler(args)
    except (OSError, ValueError) as err:
        logger.error("failed to %s: %s", args.command, err)
        print(f"error: {err}", file=sys.stderr)
        return 1

    return 0
