from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from night import __version__
from night.config import ConfigError, Options, load
from night.session import RestoreError, run_night
from night.wake import Signal, WakeOutcome

logger = logging.getLogger(__name__)

DESCRIPTION = "Keep the Mac awake, dim display + keyboard to 0, then restore on key press."

EPILOG = """\
behavior:
  1) (optional) start caffeinate -i
  2) set keyboard brightness to 0
  3) set display brightness to 0
  4) wait for any key press
  5) restore brightness and stop caffeinate
"""


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise ConfigError(message)


def _build_parser() -> argparse.ArgumentParser:
    ap = _Parser(
        prog="night",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    ap.add_argument("-v", "--version", action="version", version=__version__)
    ap.add_argument(
        "--no-display", action="store_true", help="Do not change display brightness"
    )
    ap.add_argument(
        "--no-keyboard", action="store_true", help="Do not change keyboard backlight brightness"
    )
    ap.add_argument("--no-caffeinate", action="store_true", help="Do not run caffeinate -i")
    ap.add_argument("-c", "--config", help="YAML settings file")
    return ap


def setup_logging(level: str, log_file: str | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
    )


def describe(outcome: WakeOutcome) -> str:
    if isinstance(outcome, Signal):
        return f"Restored state after {outcome.name}."
    return "Restored state."


def _fail(message: str) -> int:
    print(f"night: {message}", file=sys.stderr)
    return 1


def main(argv: list[str] | None = None) -> int:
    try:
        args = _build_parser().parse_args(argv)
        options = Options(
            display=not args.no_display,
            keyboard=not args.no_keyboard,
            caffeinate=not args.no_caffeinate,
        )
        options.validate()
        settings = load(args.config)
    except ConfigError as e:
        return _fail(str(e))

    try:
        setup_logging(settings.log_level, settings.log_file)
    except OSError as e:
        return _fail(f"Could not open log file: {e}")
    logger.debug("options=%s settings=%s", options, settings)

    try:
        outcome = asyncio.run(run_night(options, settings))
    except KeyboardInterrupt:
        return _fail("interrupted")
    except (RuntimeError, OSError) as e:
        message = str(e)
        if isinstance(e, RestoreError) and e.__cause__ is not None:
            message = f"{message} (after: {e.__cause__})"
        return _fail(message)

    print(describe(outcome))
    return 0
