"""Pump command channel — write-only dispatch of single reports.

Each ``send()`` opens its own transport, writes one report and closes it
again, independent of the poll loop's read stream.  A long-lived
transport may be injected (or attached later, see ``attach()``) instead;
it is reused while open and never closed by the channel.

Sends are best-effort: failures are logged, kept in ``last_error`` and
returned as ``False``.  Nothing is raised to the caller.  ``try_send()``
returns the failure of that one call, which ``last_error`` cannot do once
another thread sends on the same channel.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from .commands import PWM_SYNC_ENABLE_REPORT, QUERY_TEMPERATURE_REPORT, encode_command, fit_report
from .exceptions import (
    ConnectError,
    DeviceUnavailable,
    NotWritable,
    SendError,
    WriteFailure,
)
from .hid_device import HidTransport, create_transport

log = logging.getLogger(__name__)

# Raw HID/USB library errors that reach the channel untranslated
# (usb.core.USBError is an OSError, usb.core.NoBackendError a ValueError)
_LIBRARY_ERRORS = (OSError, ValueError)


class PumpCommandChannel:
    """Sends command reports to the cooler."""

    def __init__(
        self,
        transport_factory: Optional[Callable[[], HidTransport]] = None,
        transport: Optional[HidTransport] = None,
    ) -> None:
        self._factory = transport_factory or create_transport
        self._transport = transport
        self.last_error: Optional[SendError] = None
        self.sent_count = 0
        self.failed_count = 0

    def send(self, report: bytes) -> bool:
        """Dispatch one report.

        Returns:
            True if the report was written, False otherwise (see ``last_error``).
        """
        return self.try_send(report) is None

    def try_send(self, report: bytes) -> Optional[SendError]:
        """Dispatch one report and return its failure, or None on success."""
        try:
            self._dispatch(fit_report(report))
        except SendError as e:
            self.last_error = e
            self.failed_count += 1
            log.warning("Command %s failed: %s", report[:8].hex(), e)
            return e
        self.last_error = None
        self.sent_count += 1
        log.debug("Command %s sent", report[:8].hex())
        return None

    def attach(self, transport: HidTransport) -> None:
        """Route sends through *transport* while it stays open."""
        self._transport = transport

    def detach(self, transport: HidTransport) -> None:
        """Stop using *transport* (no-op if another one is attached)."""
        if self._transport is transport:
            self._transport = None

    def _dispatch(self, report: bytes) -> None:
        shared = self._transport
        if shared is not None and shared.is_open:
            self._write(shared, report)
            return

        try:
            transport = self._factory()
        except _LIBRARY_ERRORS as e:
            raise DeviceUnavailable(str(e)) from e
        try:
            try:
                transport.open()
            except (ConnectError, *_LIBRARY_ERRORS) as e:
                raise DeviceUnavailable(str(e)) from e
            self._write(transport, report)
        finally:
            transport.close()

    @staticmethod
    def _write(transport: HidTransport, report: bytes) -> None:
        if not transport.writable:
            raise NotWritable("Device stream does not accept writes")
        try:
            transport.write(report)
        except _LIBRARY_ERRORS as e:
            raise WriteFailure(str(e)) from e

    # -- Commands ---------------------------------------------------------

    def send_command(self, command: str) -> bool:
        """Encode a hex command string and send it.

        Raises:
            InvalidEncoding: The string is not a valid command; nothing is sent.
        """
        return self.send(encode_command(command))

    def enable_pwm_sync(self) -> bool:
        """Send the PWM sync enable command (also the heartbeat)."""
        return self.send(PWM_SYNC_ENABLE_REPORT)

    def query_temperature(self) -> bool:
        """Ask the controller for an immediate temperature report."""
        return self.send(QUERY_TEMPERATURE_REPORT)
