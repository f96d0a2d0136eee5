"""
Command line entry point: lc3vm IMAGE [IMAGE ...]

Exit status is 0 after HALT, 1 when an image fails to load, 2 for bad
arguments, 3 on a fatal machine error and -2 when interrupted.
"""

import argparse
import logging
import signal
import sys

from ._version import __version__
from .console import TerminalConsole
from .lc3 import LC3, LC3Error, LoadError

log = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_LOAD_FAILED = 1
EXIT_FATAL = 3
EXIT_INTERRUPTED = -2


def build_parser():
    parser = argparse.ArgumentParser(
        prog="lc3vm",
        description="Run LC-3 object images, starting at x3000.")
    parser.add_argument("images", nargs="+", metavar="IMAGE",
                        help="big-endian image file; the first word is the origin")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="increase log output (-v, -vv)")
    parser.add_argument("--trace", action="store_true",
                        help="log every instruction executed")
    parser.add_argument("--version", action="version",
                        version="%(prog)s " + __version__)
    return parser


def setup_logging(verbose, trace=False):
    if trace or verbose > 1:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, stream=sys.stderr,
                        format="%(levelname)s %(name)s: %(message)s")


def main(argv=None, console=None):
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.trace)
    if console is None:
        console = TerminalConsole()

    lc3 = LC3(console=console, on_shutdown=console.restore_input_buffering)
    lc3.trace = args.trace
    for filename in args.images:
        try:
            lc3.load_image_file(filename)
        except LoadError as exc:
            log.error("%s", exc)
            return EXIT_LOAD_FAILED

    def handle_interrupt(signum, frame):
        lc3.shutdown()
        console.write_char(ord("\n"))
        console.flush()
        sys.exit(EXIT_INTERRUPTED)

    previous = signal.signal(signal.SIGINT, handle_interrupt)
    console.disable_input_buffering()
    try:
        lc3.run()
    except LC3Error as exc:
        log.error("%s", exc)
        return EXIT_FATAL
    finally:
        lc3.shutdown()
        signal.signal(signal.SIGINT, previous)
    log.info("halted after %d instructions", lc3.instruction_count)
    return EXIT_OK


def run():
    sys.exit(main())
