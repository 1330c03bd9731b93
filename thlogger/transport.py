"""
Serial transport session.

Wraps one open pyserial connection and provides the line oriented
query primitive used by the identity probe and the sensor readings.
"""

import logging
import threading
import time
from typing import Callable, Optional

import serial

from .errors import ErrorKind, LoggerError

logger = logging.getLogger(__name__)


class SerialSession:
    """
    One open serial connection to the logging device.

    Reads are done in short bounded chunks so a missing line terminator
    turns into a timeout instead of a hang, and a cancel request is noticed
    between chunks.
    """

    # pyserial read timeout per byte; bounds how long one read() can block
    READ_CHUNK_TIMEOUT_S: float = 0.05
    WRITE_TIMEOUT_S: float = 2.0

    def __init__(
        self,
        serial_port,
        port: str,
        baudrate: int,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        Initialize session around an already opened port.

        Args:
            serial_port: Open pyserial Serial (or compatible) object
            port: Port identifier (e.g., '/dev/ttyUSB0', 'COM3')
            baudrate: Baud rate the port was opened with
            cancel_event: Event that aborts waits and reads when set
        """
        self._serial = serial_port
        self.port = port
        self.baudrate = baudrate
        self._cancel = cancel_event if cancel_event is not None else threading.Event()

    @classmethod
    def open(
        cls,
        port: str,
        baudrate: int = 9600,
        settle_delay: float = 0.0,
        cancel_event: Optional[threading.Event] = None,
        serial_factory: Callable = serial.Serial
    ) -> 'SerialSession':
        """
        Open a serial port and wait for the device to boot.

        Args:
            port: Port identifier
            baudrate: Baud rate
            settle_delay: Seconds to wait after opening before any traffic
            cancel_event: Event that aborts the settle wait
            serial_factory: Callable creating the pyserial object

        Returns:
            Open SerialSession

        Raises:
            LoggerError: CONNECTION if the port cannot be opened,
                CANCELLED if cancelled during the settle wait
        """
        try:
            serial_port = serial_factory(
                port,
                baudrate,
                timeout=cls.READ_CHUNK_TIMEOUT_S,
                write_timeout=cls.WRITE_TIMEOUT_S
            )
        except (serial.SerialException, OSError, ValueError) as e:
            raise LoggerError(ErrorKind.CONNECTION, f"Could not open {port}: {e}") from e

        session = cls(serial_port, port, baudrate, cancel_event)
        logger.debug(f"Opened {port} @ {baudrate} baud")

        if settle_delay > 0:
            try:
                session.wait(settle_delay)
            except LoggerError:
                session.close()
                raise

        return session

    @property
    def is_open(self) -> bool:
        """Check if the session still holds a port."""
        return self._serial is not None

    def wait(self, seconds: float) -> None:
        """
        Sleep for a number of seconds unless cancelled.

        Raises:
            LoggerError: CANCELLED if the cancel event is set
        """
        if self._cancel.wait(seconds):
            raise LoggerError(ErrorKind.CANCELLED, "Cancelled while waiting for device")

    def _require_open(self):
        if self._serial is None:
            raise LoggerError(ErrorKind.IO, f"Session on {self.port} is closed")
        return self._serial

    def flush_input(self) -> None:
        """Discard unread input so a stale response is not taken as the next answer."""
        ser = self._require_open()
        try:
            ser.reset_input_buffer()
        except Exception as e:  # termios.error on unplug is not an OSError
            raise LoggerError(ErrorKind.IO, f"Flush failed on {self.port}: {e}") from e

    def write(self, message: str) -> None:
        """
        Send a command string.

        Raises:
            LoggerError: IO if the write fails
        """
        ser = self._require_open()
        try:
            ser.write(message.encode('ascii'))
        except Exception as e:  # termios.error on unplug is not an OSError
            raise LoggerError(ErrorKind.IO, f"Write failed on {self.port}: {e}") from e

    def read_line(self, timeout: float = 10.0) -> str:
        """
        Read bytes until a newline arrives.

        Args:
            timeout: Seconds to wait for the terminator

        Returns:
            Decoded line including its terminator

        Raises:
            LoggerError: TIMEOUT if no terminator arrives in time (partial
                data is discarded), IO on read failure, CANCELLED if cancelled
        """
        ser = self._require_open()
        buffer = bytearray()
        deadline = time.monotonic() + timeout

        while True:
            if self._cancel.is_set():
                raise LoggerError(ErrorKind.CANCELLED, "Cancelled while reading")

            try:
                chunk = ser.read(1)
            except Exception as e:  # termios.error on unplug is not an OSError
                raise LoggerError(ErrorKind.IO, f"Read failed on {self.port}: {e}") from e

            if chunk:
                buffer += chunk
                if chunk == b'\n':
                    return buffer.decode('ascii', errors='replace')

            if time.monotonic() > deadline:
                logger.debug(f"Discarding partial response {bytes(buffer)!r} from {self.port}")
                raise LoggerError(
                    ErrorKind.TIMEOUT,
                    f"No response from {self.port} within {timeout}s"
                )

    def query(self, message: str, timeout: float = 2.0) -> str:
        """
        Send a command and read the one line response.

        Args:
            message: Command including its newline (e.g., "T\\n")
            timeout: Seconds to wait for the response line

        Returns:
            Response line including its terminator
        """
        self.write(message)
        return self.read_line(timeout=timeout)

    def close(self) -> None:
        """Release the port. Safe to call more than once."""
        if self._serial is None:
            return

        ser, self._serial = self._serial, None
        try:
            ser.close()
        except Exception as e:
            logger.debug(f"Error while closing {self.port}: {e}")
        logger.debug(f"Closed {self.port}")

    def __enter__(self) -> 'SerialSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
