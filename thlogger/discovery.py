"""
Serial port discovery.

Probes every visible serial port with the identity query and returns the
first one that answers like the logger.
"""

import logging
import threading
from typing import Callable, Optional

import serial.tools.list_ports

from .errors import ErrorKind, LoggerError
from .transport import SerialSession

logger = logging.getLogger(__name__)

IDENTITY_QUERY = "I\n"
DEFAULT_IDENTITY = "thlogger\r\n"


def list_serial_ports() -> list[str]:
    """Return device names of all system visible serial ports, in listing order."""
    return [p.device for p in serial.tools.list_ports.comports()]


def probe_port(session: SerialSession, timeout: float = 2.0) -> str:
    """
    Ask an open session for its identity.

    Args:
        session: Open session to probe
        timeout: Seconds to wait for the answer

    Returns:
        Identity line as received, including its terminator
    """
    session.flush_input()
    response = session.query(IDENTITY_QUERY, timeout=timeout)
    logger.debug(f"Got {response!r} from {session.port}")
    return response


def find_port(
    baudrate: int = 9600,
    debug: bool = False,
    expected: str = DEFAULT_IDENTITY,
    settle_delay: float = 2.0,
    timeout: float = 2.0,
    cancel_event: Optional[threading.Event] = None,
    list_ports: Callable[[], list[str]] = list_serial_ports,
    open_session: Callable[..., SerialSession] = SerialSession.open
) -> str:
    """
    Find the port the logger is connected to.

    Ports are tried in listing order and the first exact identity match
    wins. Every session opened here is closed before moving on or returning.

    Args:
        baudrate: Baud rate the device is configured to
        debug: Report every probe step at INFO level
        expected: Identity line the device must answer with
        settle_delay: Seconds to let the device boot after opening
        timeout: Seconds to wait for the identity answer
        cancel_event: Event that aborts the search
        list_ports: Callable returning candidate port names
        open_session: Callable opening a SerialSession

    Returns:
        Port identifier of the logger

    Raises:
        LoggerError: NOT_FOUND after all ports were tried,
            CANCELLED if the search was cancelled
    """
    trace = logger.info if debug else logger.debug
    ports = list_ports()
    logger.info(f"Searching for logger on {len(ports)} port(s)...")

    for port in ports:
        try:
            session = open_session(
                port,
                baudrate,
                settle_delay=settle_delay,
                cancel_event=cancel_event
            )
        except LoggerError as e:
            if e.kind is ErrorKind.CANCELLED:
                raise
            trace(f"Could not open port {port}: {e}")
            continue

        trace(f"{port} is open")

        with session:
            try:
                response = probe_port(session, timeout=timeout)
            except LoggerError as e:
                if e.kind is ErrorKind.CANCELLED:
                    raise
                trace(f"Could not query port {port}: {e}")
                continue

            if response == expected:
                logger.info(f"Found the logger on port {port}")
                return port

            trace(f"Could read from {port} but got wrong identifier {response!r} (expected {expected!r})")

    raise LoggerError(ErrorKind.NOT_FOUND, "Could not find logger on any serial port")
