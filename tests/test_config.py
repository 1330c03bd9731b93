"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from thlogger.config import Config, load_config
from thlogger.errors import ErrorKind, LoggerError


class TestConfig:
    """Tests for Config defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        config = load_config()

        assert config.LOG_DIR == "log"
        assert config.LOG_PREFIX == "hty939"
        assert config.LOGGER_BAUDRATE == 9600
        assert config.LOGGER_PORT is None
        assert config.POLL_INTERVAL_S == 5.0
        assert config.LINES_PER_FILE == 135_000
        assert config.DEBUG is False

    def test_overrides(self):
        """Test keyword overrides."""
        config = load_config(LOG_DIR="data", LOGGER_PORT="/dev/ttyUSB0", LINES_PER_FILE=10)

        assert config.LOG_DIR == "data"
        assert config.LOGGER_PORT == "/dev/ttyUSB0"
        assert config.LINES_PER_FILE == 10

    def test_none_override_ignored(self):
        """Test that unset command line flags keep the defaults."""
        config = load_config(LOG_DIR=None, LOGGER_BAUDRATE=None)

        assert config.LOG_DIR == "log"
        assert config.LOGGER_BAUDRATE == 9600

    def test_environment(self, monkeypatch):
        """Test values from environment variables."""
        monkeypatch.setenv("LOGGER_BAUDRATE", "115200")
        monkeypatch.setenv("DEBUG", "true")

        config = load_config()

        assert config.LOGGER_BAUDRATE == 115200
        assert config.DEBUG is True

    def test_empty_port_means_discover(self):
        """Test that an empty port string selects auto-discovery."""
        assert load_config(LOGGER_PORT="").LOGGER_PORT is None

    def test_identity_line(self):
        """Test the expected identity response."""
        assert load_config().identity_line == "thlogger\r\n"

    @pytest.mark.parametrize("field,value", [
        ("LINES_PER_FILE", 0),
        ("LINES_PER_FILE", -5),
        ("POLL_INTERVAL_S", 0),
        ("LOGGER_BAUDRATE", 0),
        ("LOG_PREFIX", "a/b"),
    ])
    def test_invalid_values(self, field, value):
        """Test that invalid settings are CONFIG errors."""
        with pytest.raises(LoggerError) as exc_info:
            load_config(**{field: value})

        assert exc_info.value.kind is ErrorKind.CONFIG
        assert not exc_info.value.retryable

    def test_frozen(self):
        """Test that the config cannot change during a run."""
        config = Config()

        with pytest.raises(ValidationError):
            config.LOGGER_PORT = "/dev/ttyUSB0"
