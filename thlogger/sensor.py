"""
Temperature/humidity sensor protocol.

The device answers "T\\n" and "H\\n" with one decimal number per line
(e.g. "23.21\\r\\n"). Values arrive already converted, so parsing is the
only conversion step.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .errors import ErrorKind, LoggerError
from .transport import SerialSession

TEMPERATURE_QUERY = "T\n"
HUMIDITY_QUERY = "H\n"

FIELD_SEPARATOR = '\t'


@dataclass(frozen=True)
class Reading:
    """One poll result as written to the log file."""

    timestamp: datetime
    temperature: float
    humidity: float

    @staticmethod
    def now() -> datetime:
        """Current local time truncated to the millisecond precision that is logged."""
        t = datetime.now()
        return t.replace(microsecond=t.microsecond // 1000 * 1000)

    @property
    def timestamp_str(self) -> str:
        return self.timestamp.isoformat(timespec='milliseconds')

    def to_line(self) -> str:
        """Format as a tab separated log record including the newline."""
        return (
            f"{self.timestamp_str}{FIELD_SEPARATOR}"
            f"{self.temperature!r}{FIELD_SEPARATOR}"
            f"{self.humidity!r}\n"
        )

    @classmethod
    def from_line(cls, line: str) -> 'Reading':
        """
        Parse a log record back into a Reading.

        Args:
            line: One record as produced by to_line

        Returns:
            Reading with the same timestamp and values

        Raises:
            ValueError: If the line is not a valid record
        """
        fields = line.rstrip('\r\n').split(FIELD_SEPARATOR)
        if len(fields) != 3:
            raise ValueError(f"Expected 3 tab separated fields, got {len(fields)}: {line!r}")

        timestamp, temperature, humidity = fields
        return cls(
            timestamp=datetime.fromisoformat(timestamp),
            temperature=float(temperature),
            humidity=float(humidity)
        )


def parse_value(response: str, name: str = "value") -> float:
    """
    Parse a numeric device response.

    Args:
        response: Raw response line (e.g., "23.21\\r\\n")
        name: Quantity name for the error message

    Returns:
        Parsed value

    Raises:
        LoggerError: IO kind if the response is not a finite number
    """
    try:
        value = float(response.strip())
    except ValueError as e:
        raise LoggerError(ErrorKind.IO, f"Malformed {name} response: {response!r}") from e

    if not math.isfinite(value):
        raise LoggerError(ErrorKind.IO, f"Non-finite {name} response: {response!r}")

    return value


def read_temperature(session: SerialSession, timeout: float = 2.0) -> float:
    """Query the temperature in degrees Celsius."""
    session.flush_input()
    return parse_value(session.query(TEMPERATURE_QUERY, timeout=timeout), "temperature")


def read_rel_humidity(session: SerialSession, timeout: float = 2.0) -> float:
    """Query the relative humidity in percent."""
    session.flush_input()
    return parse_value(session.query(HUMIDITY_QUERY, timeout=timeout), "humidity")


def read_reading(
    session: SerialSession,
    timeout: float = 2.0,
    timestamp: Optional[datetime] = None
) -> Reading:
    """
    Take one complete measurement.

    The Reading is only built after both queries succeeded, so a failure
    halfway never yields a record with one value missing.

    Args:
        session: Open session to the logger
        timeout: Per query response timeout in seconds
        timestamp: Time of the measurement, defaults to now

    Returns:
        Reading with temperature and humidity
    """
    if timestamp is None:
        timestamp = Reading.now()

    temperature = read_temperature(session, timeout=timeout)
    humidity = read_rel_humidity(session, timeout=timeout)

    return Reading(timestamp=timestamp, temperature=temperature, humidity=humidity)
