#!/usr/bin/env python3
"""
rigcal CLI - camera calibration from chessboards and ArUco marker rigs.

Usage:
    rigcal calibrate SETTINGS.toml   - Run a calibration session
    rigcal --help                    - Show this help

Exit codes:
    0   calibration succeeded
    1   bad settings or unreadable input
    2   a solve failed
"""

import logging
import signal
import sys
import threading

import rigcal.logger
from rigcal.errors import InvalidConfiguration, ResourceUnavailable

logger = rigcal.logger.get(__name__)


def calibrate(settings_path: str, verbose: bool = False) -> int:
    from rigcal.config import load_session_settings
    from rigcal.session import run_session

    if verbose:
        rigcal.logger.setup(logging.DEBUG)

    stop_event = threading.Event()

    def request_stop(signum, frame):
        logger.info("Interrupted; solving with the images gathered so far")
        stop_event.set()

    previous = signal.signal(signal.SIGINT, request_stop)
    try:
        settings = load_session_settings(settings_path)
        result = run_session(settings, stop_event=stop_event)
    except (InvalidConfiguration, ResourceUnavailable) as e:
        logger.error(str(e))
        return 1
    finally:
        signal.signal(signal.SIGINT, previous)

    for failure in result.failures:
        logger.error(f"Calibration problem: {failure}")
    return 0 if result.ok else 2


def main():
    if len(sys.argv) < 2 or sys.argv[1] in ("-h", "--help"):
        print(__doc__)
        print("Options:")
        print("  -v, --verbose   Debug logging")
        print()
        return 0 if len(sys.argv) >= 2 else 1

    command = sys.argv[1]
    args = sys.argv[2:]
    verbose = any(a in ("-v", "--verbose") for a in args)
    args = [a for a in args if a not in ("-v", "--verbose")]

    if command == "calibrate":
        if len(args) != 1:
            print("Usage: rigcal calibrate SETTINGS.toml")
            return 1
        return calibrate(args[0], verbose=verbose)

    else:
        print(f"Unknown command: {command}")
        print("Run 'rigcal --help' for usage")
        return 1


if __name__ == "__main__":
    sys.exit(main())
