import argparse
import sys

from blindsolve import __version__
from blindsolve.cli.commands import run_doctor, run_solve


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Path to config.toml")
    parser.add_argument("--json", action="store_true", help="Output result as JSON")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warn", "error"],
        help="Enable logging at the given level",
    )
    parser.add_argument("--api-key", help="astrometry.net API key (overrides config)")
    parser.add_argument("--astap", help="Path to the ASTAP executable (overrides config)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="blindsolve")
    parser.add_argument("--version", action="store_true", help="Show version and exit")

    subparsers = parser.add_subparsers(dest="command")

    doctor_parser = subparsers.add_parser("doctor", help="Check ASTAP and astrometry.net setup")
    _add_common_args(doctor_parser)

    solve_parser = subparsers.add_parser(
        "solve", help="Plate solve an image (ASTAP first, astrometry.net fallback)"
    )
    solve_parser.add_argument("--in", dest="input_image", required=True, help="Input image path")
    solve_parser.add_argument(
        "--write-wcs",
        action="store_true",
        help="Write the solution into the FITS header of the input image",
    )
    solve_parser.add_argument("--verbose", action="store_true", help="Show failure details")
    _add_common_args(solve_parser)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"blindsolve {__version__}")
        return 0

    if args.command == "doctor":
        return run_doctor(args)

    if args.command == "solve":
        return run_solve(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
