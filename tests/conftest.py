"""Shared fakes for cooler tests — no real HID hardware required."""
from __future__ import annotations

import time
from typing import Optional

import pytest

from gaii.constants import REPORT_LENGTH, TEMPERATURE_BYTE_INDEX
from gaii.exceptions import ReadTimeout, WriteFailure
from gaii.hid_device import HidTransport


def make_report(temp: int, length: int = REPORT_LENGTH) -> bytes:
    """Build an input report carrying *temp* at the temperature offset."""
    buf = bytearray(length)
    buf[0] = 0x01
    buf[TEMPERATURE_BYTE_INDEX] = temp
    return bytes(buf)


class FakeClock:
    """Manually advanced monotonic clock with a recording wait()."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.waits: list[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        self.advance(seconds)
        return False


class FakeTransport(HidTransport):
    """Scripted transport.

    ``reads`` items are returned in order: bytes are returned, exception
    instances are raised, callables are invoked and then time out.  Once
    exhausted every read times out.
    """

    def __init__(self, reads=None, open_error: Optional[Exception] = None,
                 writable: bool = True, write_error: Optional[Exception] = None,
                 clock: Optional[FakeClock] = None, read_delay: float = 0.25,
                 idle_sleep: float = 0.0):
        self.reads = list(reads or [])
        self.open_error = open_error
        self._writable = writable
        self.write_error = write_error
        self.clock = clock
        self.read_delay = read_delay
        self.idle_sleep = idle_sleep
        self.opened = False
        self.open_calls = 0
        self.close_calls = 0
        self.writes: list[bytes] = []

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def close(self) -> None:
        self.close_calls += 1
        self.opened = False

    def read(self, length: int = REPORT_LENGTH, timeout_ms=None) -> bytes:
        if self.clock is not None:
            self.clock.advance(self.read_delay)
        if not self.reads:
            if self.idle_sleep:
                time.sleep(self.idle_sleep)
            raise ReadTimeout("scripted timeout")
        item = self.reads.pop(0)
        if isinstance(item, BaseException):
            raise item
        if callable(item):
            item()
            raise ReadTimeout("scripted timeout")
        return item

    def write(self, data: bytes) -> int:
        if self.write_error is not None:
            raise self.write_error
        self.writes.append(bytes(data))
        return len(data)

    @property
    def is_open(self) -> bool:
        return self.opened

    @property
    def writable(self) -> bool:
        return self.opened and self._writable


class TransportFactory:
    """Hands out scripted transports in order, then fresh default ones."""

    def __init__(self, *transports: FakeTransport):
        self.pending = list(transports)
        self.created: list[FakeTransport] = []

    def __call__(self) -> FakeTransport:
        t = self.pending.pop(0) if self.pending else FakeTransport()
        self.created.append(t)
        return t


@pytest.fixture
def clock():
    return FakeClock()
