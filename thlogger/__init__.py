"""Serial temperature/humidity logger with rotating log files."""

__version__ = "0.1.0"
