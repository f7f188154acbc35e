"""Coolant temperature sensor — the host-visible facade over the poll loop.

Owns one background thread running ``SensorPollLoop.run()``.  The host
reads ``value`` at will and calls ``update()`` periodically; ``update()``
restarts the loop thread if it has died.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .constants import JOIN_TIMEOUT_S, SENSOR_ID, SENSOR_NAME
from .hid_device import HidTransport
from .poller import LoopResult, SensorPollLoop
from .pump import PumpCommandChannel

log = logging.getLogger(__name__)


class CoolantSensor:
    """GA II coolant temperature, read by a background poll loop."""

    id = SENSOR_ID
    name = SENSOR_NAME

    def __init__(
        self,
        channel: PumpCommandChannel,
        transport_factory: Optional[Callable[[], HidTransport]] = None,
        *,
        loop_factory: Optional[Callable[[], SensorPollLoop]] = None,
        join_timeout_s: float = JOIN_TIMEOUT_S,
        autostart: bool = True,
    ) -> None:
        self._channel = channel
        self._transport_factory = transport_factory
        self._loop_factory = loop_factory or self._default_loop
        self._join_timeout_s = join_timeout_s
        self._loop: Optional[SensorPollLoop] = None
        self._thread: Optional[threading.Thread] = None
        self.last_result: Optional[LoopResult] = None
        if autostart:
            self.ensure_running()

    def _default_loop(self) -> SensorPollLoop:
        return SensorPollLoop(self._channel, self._transport_factory)

    @property
    def value(self) -> Optional[float]:
        """Last known coolant temperature, or None while unavailable."""
        loop = self._loop
        return loop.reading if loop is not None else None

    @property
    def loop(self) -> Optional[SensorPollLoop]:
        return self._loop

    @property
    def is_running(self) -> bool:
        thread = self._thread
        return thread is not None and thread.is_alive()

    # -- Lifecycle --------------------------------------------------------

    def ensure_running(self) -> None:
        """Start a fresh poll loop unless one is already alive."""
        if self.is_running:
            return
        if self._loop is not None:
            log.info("Poll loop is not running, restarting")
            self._stop_loop()

        loop = self._loop_factory()
        thread = threading.Thread(
            target=self._run, args=(loop,), name="gaii-poll", daemon=True,
        )
        self._loop = loop
        self._thread = thread
        thread.start()

    def _run(self, loop: SensorPollLoop) -> None:
        result = loop.run()
        self.last_result = result
        if result.error is not None:
            log.error("Poll loop terminated: %s", result.error, exc_info=result.error)
        else:
            log.debug("Poll loop stopped")

    def update(self) -> None:
        """Host probe: keep the background loop alive."""
        self.ensure_running()

    def _stop_loop(self) -> None:
        loop, thread = self._loop, self._thread
        if loop is not None:
            loop.request_stop()
        if thread is not None and thread is not threading.current_thread():
            thread.join(self._join_timeout_s)
            if thread.is_alive():
                log.warning("Poll thread did not exit within %.1fs", self._join_timeout_s)
        self._thread = None
        if loop is not None:
            loop.disconnect()
            loop.reading = None

    def close(self) -> None:
        """Stop the loop (bounded wait) and release the stream.  Idempotent."""
        self._stop_loop()
