"""
Polling loop.

Connects to the logger, polls it at a fixed interval and recovers from
transient failures forever. Only a stop request ends the loop.
"""

import logging
import threading
from enum import Enum
from typing import Callable, Optional

from .config import Config
from .discovery import find_port
from .errors import ErrorKind, LoggerError
from .logfiles import LogRotation
from .sensor import Reading, read_reading
from .transport import SerialSession

logger = logging.getLogger(__name__)


class LoopState(Enum):
    """States of the polling loop."""

    CONNECTING = 'connecting'
    POLLING = 'polling'
    TERMINATED = 'terminated'


class THLogger:
    """
    Temperature/humidity logger orchestrator.

    Runs the Connecting -> Polling state machine. Errors are dispatched on
    their ErrorKind: transient ones lead back to Connecting, a stop request
    leads to Terminated and configuration errors are raised to the caller.
    """

    def __init__(
        self,
        config: Config,
        shutdown_event: Optional[threading.Event] = None,
        port_finder: Callable[..., str] = find_port,
        session_opener: Callable[..., SerialSession] = SerialSession.open,
        rotation: Optional[LogRotation] = None
    ):
        """
        Initialize logger.

        Args:
            config: Run configuration
            shutdown_event: Event that stops the loop when set
            port_finder: Callable used to discover the device port
            session_opener: Callable used to open a SerialSession
            rotation: Log rotation manager, built from config if omitted

        Raises:
            LoggerError: CONFIG if the rotation settings are invalid
        """
        self.config = config
        self._shutdown_event = shutdown_event if shutdown_event is not None else threading.Event()
        self._find_port = port_finder
        self._open_session = session_opener
        self.rotation = rotation if rotation is not None else LogRotation(
            config.LOG_DIR,
            config.LINES_PER_FILE,
            prefix=config.LOG_PREFIX
        )

        self.state = LoopState.CONNECTING
        self.records_written = 0
        self.reconnects = 0
        self._session: Optional[SerialSession] = None
        # dropped after the first failure, the device may come back elsewhere
        self._port_override: Optional[str] = config.LOGGER_PORT

    @property
    def session(self) -> Optional[SerialSession]:
        return self._session

    def stop(self) -> None:
        """Request the loop to terminate. Safe to call from a signal handler."""
        self._shutdown_event.set()

    def _connect(self) -> SerialSession:
        """Resolve the port and open a session to it."""
        port = self._port_override
        if port is None:
            port = self._find_port(
                baudrate=self.config.LOGGER_BAUDRATE,
                debug=self.config.DEBUG,
                expected=self.config.identity_line,
                settle_delay=self.config.PROBE_SETTLE_S,
                timeout=self.config.PROBE_TIMEOUT_S,
                cancel_event=self._shutdown_event
            )

        logger.info(f"Connecting to logger on {port} @ {self.config.LOGGER_BAUDRATE} baud")
        session = self._open_session(
            port,
            self.config.LOGGER_BAUDRATE,
            settle_delay=self.config.SETTLE_DELAY_S,
            cancel_event=self._shutdown_event
        )
        logger.info(f"Connected to logger on {port}")
        return session

    def poll_once(self) -> Reading:
        """
        Take one measurement and append it to the active log file.

        Returns:
            The Reading that was written
        """
        if self._session is None:
            raise LoggerError(ErrorKind.IO, "No open session")

        reading = read_reading(self._session, timeout=self.config.QUERY_TIMEOUT_S)
        path = self.rotation.append(reading)
        self.records_written += 1

        logger.debug(
            f"T={reading.temperature} H={reading.humidity} -> "
            f"{path.name} ({self.rotation.line_count} lines)"
        )
        return reading

    def _poll_forever(self) -> None:
        while True:
            self.poll_once()
            if self._shutdown_event.wait(self.config.POLL_INTERVAL_S):
                raise LoggerError(ErrorKind.CANCELLED, "Stop requested")

    def _close_session(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    def _handle_error(self, err: LoggerError) -> LoopState:
        """
        Decide the next state after a failure.

        Args:
            err: Error raised while connecting or polling

        Returns:
            Next loop state

        Raises:
            LoggerError: If the error is not recoverable (CONFIG)
        """
        self._close_session()

        if err.kind is ErrorKind.CANCELLED:
            return LoopState.TERMINATED

        if not err.retryable:
            logger.error(f"{err.kind.name} error: {err}")
            raise err

        self._port_override = None
        self.reconnects += 1

        if self.state is LoopState.CONNECTING:
            delay = self.config.RETRY_DELAY_S
            logger.warning(
                f"Could not connect to the logger ({err}). "
                f"Make sure it is connected. Trying again in {delay}s..."
            )
            if self._shutdown_event.wait(delay):
                return LoopState.TERMINATED
        else:
            logger.warning(f"{err.kind.name} error while polling: {err}. Trying to start over...")

        return LoopState.CONNECTING

    def step(self) -> LoopState:
        """
        Run the current state until it transitions.

        Returns:
            The new state (also stored in self.state)
        """
        if self.state is LoopState.CONNECTING:
            if self._shutdown_event.is_set():
                next_state = LoopState.TERMINATED
            else:
                try:
                    self._session = self._connect()
                    next_state = LoopState.POLLING
                except LoggerError as e:
                    next_state = self._handle_error(e)

        elif self.state is LoopState.POLLING:
            next_state = LoopState.POLLING
            try:
                self._poll_forever()
            except LoggerError as e:
                next_state = self._handle_error(e)

        else:
            next_state = LoopState.TERMINATED

        self.state = next_state
        return next_state

    def run(self) -> None:
        """Run until stopped."""
        logger.info(
            f"Starting logger (dir: {self.config.LOG_DIR}, "
            f"interval: {self.config.POLL_INTERVAL_S}s, "
            f"lines per file: {self.config.LINES_PER_FILE})"
        )

        try:
            while self.state is not LoopState.TERMINATED:
                self.step()
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received")
            self.state = LoopState.TERMINATED
        finally:
            self._close_session()

        logger.info(f"Logging terminated by user ({self.records_written} records written)")


def create_logger_from_config(config: Config, shutdown_event: Optional[threading.Event] = None) -> THLogger:
    """
    Create THLogger from configuration.

    Args:
        config: Config instance
        shutdown_event: Event that stops the loop when set

    Returns:
        Configured THLogger instance
    """
    return THLogger(config, shutdown_event=shutdown_event)
