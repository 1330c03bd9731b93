"""
Log file selection and rotation.

Records go to <prefix>_<timestamp>.log files inside one directory. The
newest file (last in name order) is resumed after a restart as long as it
still has room; otherwise a new file is started.

Rotation is checked before each write, so no file ever holds more than
max_lines records.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import ErrorKind, LoggerError
from .sensor import Reading

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "hty939"
LOGFILE_EXT = ".log"


def _check_max_lines(max_lines: int) -> None:
    # a non-positive limit would create a new empty file on every write
    if max_lines <= 0:
        raise LoggerError(
            ErrorKind.CONFIG,
            f"Number of lines per file has to be > 0, got {max_lines}"
        )


def generate_logfile_name(
    prefix: str = DEFAULT_PREFIX,
    now: Optional[datetime] = None,
    suffix: str = ""
) -> str:
    """
    Build a log file name embedding the current time.

    Colons are replaced by underscores so the name is valid on every
    filesystem, e.g. hty939_2024-03-01T14_05_09.log.

    Args:
        prefix: File name prefix
        now: Time to embed, defaults to now
        suffix: Extra text placed before the extension

    Returns:
        File name (without directory)
    """
    if now is None:
        now = datetime.now()
    datestring = now.isoformat(timespec='seconds').replace(':', '_')
    return f"{prefix}_{datestring}{suffix}{LOGFILE_EXT}"


def count_lines(path: Union[str, Path]) -> int:
    """Count newline terminated lines by scanning the raw bytes."""
    nlines = 0
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1 << 16), b''):
            nlines += chunk.count(b'\n')
    return nlines


def trim_partial_line(path: Union[str, Path]) -> int:
    """
    Cut an unterminated last line left by an interrupted write.

    Args:
        path: Log file to repair

    Returns:
        Number of bytes removed
    """
    with open(path, 'r+b') as f:
        size = f.seek(0, os.SEEK_END)
        pos = size
        keep = 0
        while pos > 0:
            step = min(4096, pos)
            f.seek(pos - step)
            idx = f.read(step).rfind(b'\n')
            if idx >= 0:
                keep = pos - step + idx + 1
                break
            pos -= step

        if keep < size:
            f.truncate(keep)
    return size - keep


def list_logfiles(directory: Union[str, Path], prefix: str = DEFAULT_PREFIX) -> list[Path]:
    """Return log files in the directory sorted by name (oldest first)."""
    directory = Path(directory)
    files = [p for p in directory.glob(f"{prefix}_*{LOGFILE_EXT}") if p.is_file()]
    return sorted(files, key=lambda p: p.name)


def _create_logfile(directory: Path, prefix: str, now: Optional[datetime]) -> Path:
    if now is None:
        now = datetime.now()

    path = directory / generate_logfile_name(prefix, now)
    n = 0
    # two rotations within one second; the suffixed name still sorts last
    while path.exists():
        n += 1
        path = directory / generate_logfile_name(prefix, now, suffix=f"_{n:03d}")

    path.touch()
    return path


def select_file(
    directory: Union[str, Path],
    max_lines: int,
    prefix: str = DEFAULT_PREFIX,
    now: Optional[datetime] = None
) -> tuple[Path, int]:
    """
    Pick the log file to append to.

    Args:
        directory: Log directory, created if missing
        max_lines: Maximum number of lines per file (> 0)
        prefix: Log file name prefix
        now: Time used for a new file name, defaults to now

    Returns:
        Tuple of (path, current line count)

    Raises:
        LoggerError: CONFIG if max_lines <= 0, IO on filesystem errors
    """
    _check_max_lines(max_lines)
    directory = Path(directory)

    try:
        if not directory.is_dir():
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"Did not find log directory {directory}, created it")

        files = list_logfiles(directory, prefix)
        if files:
            latest = files[-1]
            nlines = count_lines(latest)
            logger.info(f"Found {len(files)} log file(s), latest is {latest.name}")

            if nlines < max_lines:
                removed = trim_partial_line(latest)
                if removed:
                    logger.warning(f"Dropped {removed} byte partial record at the end of {latest.name}")
                logger.info(f"Resuming {latest.name} with {nlines} lines")
                return latest, nlines

            logger.info(
                f"{latest.name} already has {nlines} lines "
                f"(maximum is {max_lines}), starting a new file"
            )
        else:
            logger.info(f"Did not find a log file in {directory}")

        path = _create_logfile(directory, prefix, now)
    except OSError as e:
        raise LoggerError(ErrorKind.IO, f"Log file selection failed in {directory}: {e}") from e

    logger.info(f"Writing to new log file {path.name}")
    return path, 0


class LogRotation:
    """
    Owner of the active log file.

    Opens, appends to and closes the file on every write so an abrupt
    termination loses at most the record being written.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        max_lines: int,
        prefix: str = DEFAULT_PREFIX,
        clock: Callable[[], datetime] = datetime.now
    ):
        """
        Initialize rotation manager.

        Args:
            directory: Log directory
            max_lines: Maximum number of lines per file
            prefix: Log file name prefix
            clock: Time source for new file names

        Raises:
            LoggerError: CONFIG if max_lines <= 0
        """
        _check_max_lines(max_lines)
        self.directory = Path(directory)
        self.max_lines = max_lines
        self.prefix = prefix
        self._clock = clock

        self.path: Optional[Path] = None
        self.line_count = 0

    @property
    def is_full(self) -> bool:
        return self.line_count >= self.max_lines

    def select_file(self) -> Path:
        """Select (resume or create) the active file."""
        self.path, self.line_count = select_file(
            self.directory,
            self.max_lines,
            prefix=self.prefix,
            now=self._clock()
        )
        return self.path

    def append(self, reading: Reading) -> Path:
        """
        Append one record, rotating first if the active file is full.

        Args:
            reading: Reading to write

        Returns:
            Path of the file written to

        Raises:
            LoggerError: IO if the write fails
        """
        if self.path is None or self.is_full:
            self.select_file()

        try:
            with open(self.path, 'a', encoding='ascii') as f:
                f.write(reading.to_line())
        except OSError as e:
            raise LoggerError(ErrorKind.IO, f"Could not write to {self.path}: {e}") from e

        self.line_count += 1
        return self.path
