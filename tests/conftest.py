"""
Shared fixtures: an in-memory stand-in for pyserial.
"""

import functools
import time
from typing import Optional

import pytest
import serial

from thlogger.config import load_config
from thlogger.transport import SerialSession

# Protocol answers of a healthy device
DEVICE_RESPONSES = {
    "I\n": "thlogger\r\n",
    "T\n": "23.21\r\n",
    "H\n": "50.21\r\n",
}


class FakeSerial:
    """
    Scripted serial port.

    Each written command looks up its answer in `responses`. An answer can
    be a string, None (device stays silent), a list consumed one entry per
    command, or a callable returning one of those.
    """

    def __init__(self, port="/dev/fake0", baudrate=9600, responses=None, pending=b"", **kwargs):
        self.port = port
        self.baudrate = baudrate
        self.kwargs = kwargs
        self.responses = dict(responses or {})
        self.written: list[bytes] = []
        self.is_open = True
        self.close_calls = 0
        self.fail_write = False
        self.fail_read = False
        self.flush_error: Optional[BaseException] = None
        self._input = bytearray(pending)

    def feed(self, data: bytes) -> None:
        self._input += data

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        if self.fail_write:
            raise serial.SerialException("write failed")
        self.written.append(bytes(data))

        answer = self.responses.get(data.decode('ascii'))
        if callable(answer):
            answer = answer()
        elif isinstance(answer, list):
            answer = answer.pop(0) if answer else None
        if answer is not None:
            self._input += answer.encode('ascii')
        return len(data)

    def read(self, size: int = 1) -> bytes:
        if not self.is_open:
            raise serial.SerialException("Attempting to use a port that is not open")
        if self.fail_read:
            raise serial.SerialException("device reports readiness to read but returned no data")
        if not self._input:
            time.sleep(0.001)
            return b""
        data = bytes(self._input[:size])
        del self._input[:size]
        return data

    def reset_input_buffer(self) -> None:
        if self.flush_error is not None:
            raise self.flush_error
        self._input.clear()

    def close(self) -> None:
        self.is_open = False
        self.close_calls += 1


class FakeSerialFactory:
    """
    Replacement for serial.Serial that hands out FakeSerial objects.

    `devices` maps a port name to a responses dict (reused for every open)
    or to a list of responses dicts (one per open, in order). Ports in
    `unavailable` fail to open. `flush_errors` maps a port to a list of
    exceptions (or None) raised by reset_input_buffer, one per open.
    """

    def __init__(self, devices=None, unavailable=(), pending=None, flush_errors=None):
        self.devices = dict(devices or {})
        self.unavailable = set(unavailable)
        self.pending = dict(pending or {})
        self.flush_errors = {k: list(v) for k, v in (flush_errors or {}).items()}
        self.opened: list[FakeSerial] = []

    def __call__(self, port, baudrate=9600, **kwargs):
        if port in self.unavailable:
            raise serial.SerialException(f"could not open port {port}")

        responses = self.devices.get(port, {})
        if isinstance(responses, list):
            responses = responses.pop(0)

        fake = FakeSerial(
            port,
            baudrate,
            responses=responses,
            pending=self.pending.get(port, b""),
            **kwargs
        )
        errors = self.flush_errors.get(port)
        if errors:
            fake.flush_error = errors.pop(0)
        self.opened.append(fake)
        return fake

    @property
    def opened_ports(self) -> list[str]:
        return [f.port for f in self.opened]

    def session_opener(self):
        """SerialSession.open bound to this factory."""
        return functools.partial(SerialSession.open, serial_factory=self)


@pytest.fixture
def fake_serial():
    """A fake port answering like a healthy device."""
    return FakeSerial(responses=DEVICE_RESPONSES)


@pytest.fixture
def session(fake_serial):
    """An open session on the fake port."""
    s = SerialSession(fake_serial, fake_serial.port, 9600)
    yield s
    s.close()


@pytest.fixture
def fast_config(tmp_path):
    """Config with all delays reduced for tests."""
    def make(**overrides):
        values = dict(
            LOG_DIR=str(tmp_path / "log"),
            SETTLE_DELAY_S=0,
            PROBE_SETTLE_S=0,
            PROBE_TIMEOUT_S=0.1,
            QUERY_TIMEOUT_S=0.1,
            RETRY_DELAY_S=0,
            POLL_INTERVAL_S=0.001,
        )
        values.update(overrides)
        return load_config(**values)
    return make
