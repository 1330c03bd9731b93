"""
Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env file with type validation.
Command line flags are applied on top as keyword overrides.
"""

from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ErrorKind, LoggerError


class Config(BaseSettings):
    """
    Run configuration for the temperature/humidity logger.

    Immutable for the duration of a run. All settings can be configured via
    environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        extra='ignore',
        frozen=True
    )

    # Output
    LOG_DIR: str = "log"
    LOG_PREFIX: str = "hty939"
    LINES_PER_FILE: int = Field(default=135_000, gt=0)

    # Serial Port Configuration
    LOGGER_PORT: Optional[str] = None  # None = auto-discover
    LOGGER_BAUDRATE: int = Field(default=9600, gt=0)
    IDENTITY: str = "thlogger"

    # Timing
    POLL_INTERVAL_S: float = Field(default=5.0, gt=0)
    SETTLE_DELAY_S: float = Field(default=3.0, ge=0)
    PROBE_SETTLE_S: float = Field(default=2.0, ge=0)
    PROBE_TIMEOUT_S: float = Field(default=2.0, gt=0)
    QUERY_TIMEOUT_S: float = Field(default=2.0, gt=0)
    RETRY_DELAY_S: float = Field(default=5.0, ge=0)

    DEBUG: bool = False

    @field_validator('LOGGER_PORT')
    @classmethod
    def empty_port_means_discover(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty port string as 'search automatically'."""
        if v is not None and not v.strip():
            return None
        return v

    @field_validator('LOG_PREFIX')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Validate prefix is usable inside a file name."""
        if not v or '/' in v or '\\' in v:
            raise ValueError(f"Log prefix must be a plain file name part, got {v!r}")
        return v

    @property
    def identity_line(self) -> str:
        """Expected identity probe response including the CR+LF terminator."""
        return f"{self.IDENTITY}\r\n"


def load_config(**overrides) -> Config:
    """
    Load and validate configuration from environment.

    Args:
        **overrides: Field values taking precedence over the environment
            (e.g. LOGGER_PORT='/dev/ttyUSB0'). None values are ignored.

    Returns:
        Validated Config instance

    Raises:
        LoggerError: CONFIG kind if validation fails
    """
    values = {k: v for k, v in overrides.items() if v is not None}
    try:
        return Config(**values)
    except ValidationError as e:
        raise LoggerError(ErrorKind.CONFIG, f"Invalid configuration: {e}") from e
