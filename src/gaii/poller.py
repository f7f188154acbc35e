"""Sensor poll loop — the device connection state machine.

One ``SensorPollLoop`` owns one read stream.  Each connected iteration:

  1. heartbeat  — PWM sync enable every ``cadence_s``
  2. query      — temperature request when the reading is stale,
                  at most once per ``cadence_s``
  3. read       — one report, bounded by the read timeout
  4. decode     — byte 11 becomes the reading when it changed

A read timeout is normal (the controller does not report every cycle).
Any other read error drops the connection: the reading goes to ``None``,
the stream is closed, and the loop reconnects after a fixed delay.

Clock and wait are injectable so tests can drive the cadence without
sleeping.  The wait must return early when a stop is requested.
"""
from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from .commands import PWM_SYNC_ENABLE_REPORT, QUERY_TEMPERATURE_REPORT
from .constants import (
    CADENCE_INTERVAL_S,
    READ_TIMEOUT_MS,
    RECONNECT_DELAY_S,
    REPORT_DUMP_BYTES,
    REPORT_LENGTH,
    TEMPERATURE_BYTE_INDEX,
)
from .exceptions import ConnectError, ReadFailure, ReadTimeout
from .hid_device import HidTransport, create_transport
from .pump import PumpCommandChannel

log = logging.getLogger(__name__)


class LoopState(Enum):
    """Connection state of the poll loop."""
    DISCONNECTED = auto()
    CONNECTED = auto()


class LoopLifecycle(Enum):
    """Lifecycle of the poll loop task."""
    NOT_STARTED = auto()
    RUNNING = auto()
    STOP_REQUESTED = auto()
    STOPPED = auto()


@dataclass
class CadenceState:
    """Timestamps driving outbound commands (clock seconds)."""
    last_change: float = -math.inf
    last_query: float = -math.inf
    last_heartbeat: float = -math.inf


@dataclass
class LoopResult:
    """How ``SensorPollLoop.run()`` ended."""
    stopped: bool = True
    error: Optional[BaseException] = None


def decode_temperature(data: bytes) -> Optional[float]:
    """Temperature byte of a report as float, or None if the report is too short."""
    if len(data) > TEMPERATURE_BYTE_INDEX:
        return float(data[TEMPERATURE_BYTE_INDEX])
    return None


class SensorPollLoop:
    """Reads coolant temperature reports and keeps the controller talking."""

    def __init__(
        self,
        channel: PumpCommandChannel,
        transport_factory: Optional[Callable[[], HidTransport]] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        wait: Optional[Callable[[float], bool]] = None,
        stop_event: Optional[threading.Event] = None,
        read_timeout_ms: int = READ_TIMEOUT_MS,
        cadence_s: float = CADENCE_INTERVAL_S,
        reconnect_delay_s: float = RECONNECT_DELAY_S,
    ) -> None:
        self._channel = channel
        self._factory = transport_factory or create_transport
        self._clock = clock
        self._stop = stop_event or threading.Event()
        self._wait = wait or self._stop.wait
        self.read_timeout_ms = read_timeout_ms
        self.cadence_s = cadence_s
        self.reconnect_delay_s = reconnect_delay_s

        self._transport: Optional[HidTransport] = None
        self.state = LoopState.DISCONNECTED
        self.lifecycle = LoopLifecycle.NOT_STARTED
        self.cadence = CadenceState()
        self.reading: Optional[float] = None
        self.connect_attempts = 0

    # -- Stop signal ------------------------------------------------------

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    def request_stop(self) -> None:
        """Ask the loop to exit.  Interrupts a pending reconnect wait."""
        if self.lifecycle in (LoopLifecycle.NOT_STARTED, LoopLifecycle.RUNNING):
            self.lifecycle = LoopLifecycle.STOP_REQUESTED
        self._stop.set()

    # -- Connection -------------------------------------------------------

    def connect(self) -> bool:
        """Discover the device and open a read stream.

        Returns:
            True when connected.  On failure the reading is cleared and
            the loop stays disconnected.
        """
        self.connect_attempts += 1
        transport = self._factory()
        transport.read_timeout_ms = self.read_timeout_ms
        try:
            transport.open()
        except (ConnectError, OSError, ValueError) as e:
            log.info("Cooler not available (attempt %d): %s", self.connect_attempts, e)
            self.reading = None
            return False

        self._transport = transport
        self.state = LoopState.CONNECTED
        if transport.exclusive:
            # The channel cannot open a second handle; write through ours
            self._channel.attach(transport)
        if self.lifecycle is LoopLifecycle.NOT_STARTED:
            self.lifecycle = LoopLifecycle.RUNNING
        log.info("Cooler stream opened for reading")
        return True

    def disconnect(self) -> None:
        """Close the read stream.  Safe to call from any thread, any number of times."""
        transport, self._transport = self._transport, None
        self.state = LoopState.DISCONNECTED
        if transport is not None:
            if transport.exclusive:
                self._channel.detach(transport)
            transport.close()
            log.info("Cooler stream closed")

    # -- One connected iteration -----------------------------------------

    def step(self) -> None:
        """Run one connected iteration: due commands, one read, decode.

        Raises:
            ReadFailure: The connection is broken and must be reopened.
        """
        self._send_due_commands(self._clock())

        data = self._read_report()
        if data:
            self._apply_report(data, self._clock())

    def _send_due_commands(self, now: float) -> None:
        cad = self.cadence
        if now - cad.last_heartbeat > self.cadence_s:
            self._channel.send(PWM_SYNC_ENABLE_REPORT)
            cad.last_heartbeat = now

        if self.is_stale(now) and now - cad.last_query > self.cadence_s:
            self._channel.send(QUERY_TEMPERATURE_REPORT)
            cad.last_query = now

    def is_stale(self, now: Optional[float] = None) -> bool:
        """Reading unknown, or unchanged for longer than the cadence interval."""
        if now is None:
            now = self._clock()
        return self.reading is None or now - self.cadence.last_change > self.cadence_s

    def _read_report(self) -> bytes:
        transport = self._transport
        if transport is None or not transport.is_open:
            raise ReadFailure("Stream is not open")
        try:
            return transport.read(REPORT_LENGTH, self.read_timeout_ms)
        except ReadTimeout:
            return b''
        except ReadFailure:
            raise
        except (OSError, ValueError) as e:
            raise ReadFailure(str(e)) from e

    def _apply_report(self, data: bytes, now: float) -> None:
        value = decode_temperature(data)
        log.debug(
            "Read %d bytes. Temp@%d=%s. Buffer[:%d]: %s",
            len(data), TEMPERATURE_BYTE_INDEX,
            "N/A" if value is None else f"{value:.0f}",
            REPORT_DUMP_BYTES, data[:REPORT_DUMP_BYTES].hex(' '),
        )
        if value is None or value == self.reading:
            return
        log.info("Coolant temperature %s -> %.0f", self.reading, value)
        self.reading = value
        self.cadence.last_change = now

    # -- Main loop --------------------------------------------------------

    def run(self) -> LoopResult:
        """Poll until a stop is requested.

        Returns:
            LoopResult with ``error`` set if an unexpected exception ended
            the loop.  The stream is always closed and the reading cleared
            on return.
        """
        try:
            while not self._stop.is_set():
                if self.state is LoopState.DISCONNECTED:
                    if not self.connect():
                        self._wait(self.reconnect_delay_s)
                    continue

                try:
                    self.step()
                except ReadFailure as e:
                    log.warning("Cooler read failed, reconnecting in %.1fs: %s",
                                self.reconnect_delay_s, e)
                    self.reading = None
                    self.disconnect()
                    self._wait(self.reconnect_delay_s)
            return LoopResult(stopped=True)
        except Exception as e:
            self.reading = None
            return LoopResult(stopped=False, error=e)
        finally:
            self.reading = None
            self.disconnect()
            self.lifecycle = LoopLifecycle.STOPPED
