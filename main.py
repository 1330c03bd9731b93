#!/usr/bin/env python3
"""
Temperature/Humidity Logger - Main Entry Point

Polls a serial connected temperature/humidity sensor and appends
timestamped records to rotating log files until interrupted.

Usage:
    python main.py --path log --interval 5 --lines-per-file 135000
    python main.py --port /dev/ttyUSB0 --debug
"""

import argparse
import logging
import signal
import sys

from thlogger.config import load_config
from thlogger.errors import LoggerError
from thlogger.poller import create_logger_from_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line overrides. Unset flags fall back to env/.env/defaults."""
    parser = argparse.ArgumentParser(description="Log temperature and humidity from a serial sensor.")
    parser.add_argument("--path", help="Directory for the .log files (default: log)")
    parser.add_argument("--baudrate", type=int, help="Baud rate of the device (default: 9600)")
    parser.add_argument("--port", help="Serial port; searched automatically if omitted")
    parser.add_argument("--interval", type=float, help="Seconds between measurements (default: 5)")
    parser.add_argument(
        "--lines-per-file",
        type=int,
        help="Lines per log file before a new one is started (default: 135000)"
    )
    parser.add_argument("--debug", action="store_true", default=None, help="Verbose port search output")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    try:
        config = load_config(
            LOG_DIR=args.path,
            LOGGER_BAUDRATE=args.baudrate,
            LOGGER_PORT=args.port,
            POLL_INTERVAL_S=args.interval,
            LINES_PER_FILE=args.lines_per_file,
            DEBUG=args.debug
        )
        th_logger = create_logger_from_config(config)
    except LoggerError as e:
        logger.error(str(e))
        return 2

    if config.DEBUG:
        logging.getLogger().setLevel(logging.DEBUG)

    # Setup signal handlers
    def signal_handler(signum, frame):
        logger.info(f"Signal {signum} received")
        th_logger.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        th_logger.run()
    except LoggerError as e:
        logger.error(str(e))
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
