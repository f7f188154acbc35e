#!/usr/bin/env python3
"""
HID transport layer for the Lian Li GA II pump controller.

The controller (VID 0x0416, PID 0x7395) exchanges fixed 64-byte reports
over its HID interrupt endpoints.  Reports are passed through verbatim:
byte 0 is the report ID as the host HID stack presents it.

The ``HidTransport`` ABC abstracts the raw I/O so that:
  • Tests can inject a fake transport (no real hardware needed).
  • ``HidApiTransport`` provides HID access via hidapi (default).
  • ``PyUsbTransport`` provides raw interrupt transfers via pyusb.

Both adapters translate library errors into the ``gaii.exceptions``
taxonomy: a read that returns nothing within the timeout raises
``ReadTimeout``, anything else raises ``ReadFailure``.

Linux dependencies:
  • hidapi: ``pip install hidapi`` (needs libhidapi — ``apt install libhidapi-hidraw0``)
  • pyusb:  ``pip install pyusb``  (needs libusb1 — ``apt install libusb-1.0-0``)
"""

from __future__ import annotations

import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

import hid as hidapi
import usb.core
import usb.util

from .constants import BACKENDS, COOLER_PID, COOLER_VID, READ_TIMEOUT_MS, REPORT_LENGTH
from .exceptions import (
    DeviceNotFound,
    ReadFailure,
    ReadTimeout,
    StreamOpenFailure,
    WriteFailure,
)

log = logging.getLogger(__name__)

# hidapi bindings raise OSError (cython-hidapi) or HIDException (hid package)
_HID_ERRORS: tuple = (OSError, ValueError)
if hasattr(hidapi, 'HIDException'):
    _HID_ERRORS = _HID_ERRORS + (hidapi.HIDException,)

# pyusb raises USBError (an OSError) from libusb and NoBackendError
# (a ValueError) when no libusb backend is installed
_USB_ERRORS = (usb.core.USBError, usb.core.NoBackendError)

# USB configuration values
USB_CONFIGURATION = 1
USB_INTERFACE = 0

WRITE_TIMEOUT_MS = 1000


# =========================================================================
# Abstract HID transport
# =========================================================================

class HidTransport(ABC):
    """One opened stream to the cooler — mockable for testing."""

    read_timeout_ms: int = READ_TIMEOUT_MS

    # True when a second handle to the same device cannot be opened while
    # this one is open (a claimed USB interface).  Writers must then share it.
    exclusive: bool = False

    @abstractmethod
    def open(self) -> None:
        """Find the device and open a stream.

        Raises:
            DeviceNotFound: No matching device is attached.
            StreamOpenFailure: The device exists but could not be opened.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the stream.  Safe to call more than once."""

    @abstractmethod
    def read(self, length: int = REPORT_LENGTH, timeout_ms: Optional[int] = None) -> bytes:
        """Read one input report.

        Raises:
            ReadTimeout: Nothing arrived within the timeout.
            ReadFailure: Any other transport error.
        """

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write one output report.  Returns bytes transferred.

        Raises:
            WriteFailure: Transport-level write error.
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the stream is currently open."""

    @property
    def writable(self) -> bool:
        """Whether the open stream accepts output reports."""
        return self.is_open

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


def _matches_device_id(device_id: str, path: Any, serial: Optional[str]) -> bool:
    """Match a configured device id against an HID path or serial number."""
    if not device_id:
        return True
    if isinstance(path, bytes):
        path = path.decode(errors='replace')
    return device_id in (path, serial)


# =========================================================================
# Real transport: HIDAPI
# =========================================================================

class HidApiTransport(HidTransport):
    """HID transport using hidapi (OS HID driver, hidraw on Linux).

    Requires: ``pip install hidapi`` + ``apt install libhidapi-hidraw0``
    """

    def __init__(self, vid: int = COOLER_VID, pid: int = COOLER_PID,
                 device_id: str = "", read_timeout_ms: int = READ_TIMEOUT_MS):
        self._vid = vid
        self._pid = pid
        self._device_id = device_id
        self.read_timeout_ms = read_timeout_ms
        self._device = None
        self._path: Optional[bytes] = None

    def _find_path(self) -> bytes:
        try:
            candidates = hidapi.enumerate(self._vid, self._pid) or []
        except _HID_ERRORS as e:
            raise DeviceNotFound(f"HID enumeration failed: {e}") from e
        for info in candidates:
            path = info.get('path')
            if path and _matches_device_id(
                self._device_id, path, info.get('serial_number'),
            ):
                return path
        raise DeviceNotFound(
            f"HID device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            + (f" id={self._device_id!r}" if self._device_id else "")
        )

    def open(self) -> None:
        """Enumerate by VID/PID and open the first matching path."""
        path = self._find_path()
        log.debug("Opening HID path %r", path)
        try:
            # hid package exposes Device(path=...), cython-hidapi device()+open_path()
            if hasattr(hidapi, 'Device'):
                device = hidapi.Device(path=path)
            else:
                device = hidapi.device()
                device.open_path(path)
        except _HID_ERRORS as e:
            raise StreamOpenFailure(f"Cannot open HID path {path!r}: {e}") from e
        self._device = device
        self._path = path

    def close(self) -> None:
        """Close HID device."""
        if self._device is not None:
            try:
                self._device.close()
            except _HID_ERRORS as e:
                log.debug("HID close: %s", e)
            self._device = None

    def read(self, length: int = REPORT_LENGTH, timeout_ms: Optional[int] = None) -> bytes:
        """Read one input report (blocking up to the read timeout)."""
        if self._device is None:
            raise ReadFailure("Transport not open")
        timeout = self.read_timeout_ms if timeout_ms is None else timeout_ms
        try:
            data = self._device.read(length, timeout)
        except _HID_ERRORS as e:
            raise ReadFailure(f"HID read failed: {e}") from e
        if not data:
            raise ReadTimeout(f"No report within {timeout} ms")
        return bytes(data)

    def write(self, data: bytes) -> int:
        """Write one output report verbatim (byte 0 is the report ID)."""
        if self._device is None:
            raise WriteFailure("Transport not open")
        try:
            written = self._device.write(bytes(data))
        except _HID_ERRORS as e:
            raise WriteFailure(f"HID write failed: {e}") from e
        if written is not None and written < 0:
            raise WriteFailure(f"HID write returned {written}")
        return written

    @property
    def is_open(self) -> bool:
        return self._device is not None

    @property
    def path(self) -> Optional[bytes]:
        """HID path of the opened device, or None."""
        return self._path


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(HidTransport):
    """USB transport using pyusb interrupt transfers.

    1. Find device by VID/PID (and serial, when configured)
    2. Detach the kernel HID driver
    3. SetConfiguration(1), ClaimInterface(0)
    4. Auto-detect IN/OUT endpoints

    Requires: ``pip install pyusb`` + ``apt install libusb-1.0-0``
    """

    exclusive = True

    def __init__(self, vid: int = COOLER_VID, pid: int = COOLER_PID,
                 device_id: str = "", read_timeout_ms: int = READ_TIMEOUT_MS):
        self._vid = vid
        self._pid = pid
        self._device_id = device_id
        self.read_timeout_ms = read_timeout_ms
        self._device = None
        self._is_open = False
        self._ep_out: Optional[int] = None
        self._ep_in: Optional[int] = None

    def _find_device(self):
        try:
            found = list(usb.core.find(
                find_all=True, idVendor=self._vid, idProduct=self._pid,
            ) or [])
        except _USB_ERRORS as e:
            raise DeviceNotFound(f"USB enumeration failed: {e}") from e
        for dev in found:
            if not self._device_id:
                return dev
            if _matches_device_id(self._device_id, _usb_path(dev), _usb_serial(dev)):
                return dev
        raise DeviceNotFound(
            f"USB device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
            + (f" id={self._device_id!r}" if self._device_id else "")
        )

    def open(self) -> None:
        """Find USB device, claim interface, and auto-detect endpoints."""
        device = self._find_device()
        detached = False
        try:
            if device.is_kernel_driver_active(USB_INTERFACE):
                device.detach_kernel_driver(USB_INTERFACE)
                detached = True
                log.debug("Detached kernel driver from interface %d", USB_INTERFACE)
        except (usb.core.USBError, NotImplementedError) as e:
            log.debug("Kernel driver detach: %s", e)

        try:
            device.set_configuration(USB_CONFIGURATION)
            usb.util.claim_interface(device, USB_INTERFACE)
        except usb.core.USBError as e:
            self._release_failed_open(device, detached)
            raise StreamOpenFailure(f"Cannot claim USB interface: {e}") from e

        self._device = device
        self._is_open = True
        self._detect_endpoints()

    @staticmethod
    def _release_failed_open(device, detached: bool) -> None:
        """Undo a half-finished open: free the libusb handle, give the
        interface back to the kernel driver if we took it."""
        if detached:
            try:
                device.attach_kernel_driver(USB_INTERFACE)
            except (usb.core.USBError, NotImplementedError) as e:
                log.debug("Kernel driver re-attach: %s", e)
        usb.util.dispose_resources(device)

    def close(self) -> None:
        """Release interface and dispose resources."""
        if self._device is not None:
            try:
                usb.util.release_interface(self._device, USB_INTERFACE)
            except usb.core.USBError as e:
                log.debug("Release interface: %s", e)
            usb.util.dispose_resources(self._device)
            self._device = None
        self._is_open = False
        self._ep_in = None
        self._ep_out = None

    def _detect_endpoints(self) -> None:
        """Find the interrupt IN/OUT endpoint addresses of interface 0."""
        try:
            cfg = self._device.get_active_configuration()
            intf = cfg[(USB_INTERFACE, 0)]
            for ep in intf:
                direction = usb.util.endpoint_direction(ep.bEndpointAddress)
                if direction == usb.util.ENDPOINT_OUT and self._ep_out is None:
                    self._ep_out = ep.bEndpointAddress
                elif direction == usb.util.ENDPOINT_IN and self._ep_in is None:
                    self._ep_in = ep.bEndpointAddress
            log.debug(
                "Auto-detected endpoints: OUT=0x%02x IN=0x%02x",
                self._ep_out or 0, self._ep_in or 0,
            )
        except (usb.core.USBError, KeyError) as e:
            log.debug("Endpoint auto-detection failed: %s", e)

    def read(self, length: int = REPORT_LENGTH, timeout_ms: Optional[int] = None) -> bytes:
        """Interrupt read from the IN endpoint."""
        if not self._is_open or self._device is None or self._ep_in is None:
            raise ReadFailure("Transport not open")
        timeout = self.read_timeout_ms if timeout_ms is None else timeout_ms
        try:
            data = self._device.read(self._ep_in, length, timeout=timeout)
        except usb.core.USBTimeoutError as e:
            raise ReadTimeout(f"No report within {timeout} ms") from e
        except usb.core.USBError as e:
            raise ReadFailure(f"USB read failed: {e}") from e
        return bytes(data)

    def write(self, data: bytes) -> int:
        """Interrupt write to the OUT endpoint."""
        if not self.writable:
            raise WriteFailure("Transport not open for writing")
        try:
            return self._device.write(self._ep_out, bytes(data), timeout=WRITE_TIMEOUT_MS)
        except usb.core.USBError as e:
            raise WriteFailure(f"USB write failed: {e}") from e

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def writable(self) -> bool:
        return self._is_open and self._ep_out is not None

    @property
    def ep_out(self) -> Optional[int]:
        """Auto-detected OUT endpoint address, or None."""
        return self._ep_out

    @property
    def ep_in(self) -> Optional[int]:
        """Auto-detected IN endpoint address, or None."""
        return self._ep_in


def _usb_path(dev) -> str:
    """Bus/address identifier, as listed by ``find_cooler_devices``."""
    return f"usb:{getattr(dev, 'bus', 0)}:{getattr(dev, 'address', 0)}"


def _usb_serial(dev) -> str:
    serial_idx = getattr(dev, 'iSerialNumber', 0)
    if not serial_idx:
        return ""
    try:
        return usb.util.get_string(dev, serial_idx) or ""
    except (usb.core.USBError, ValueError) as e:
        log.debug("Serial string unavailable: %s", e)
        return ""


# =========================================================================
# Factory
# =========================================================================

_TRANSPORTS = {
    'hidapi': HidApiTransport,
    'pyusb': PyUsbTransport,
}


def create_transport(
    backend: str = 'hidapi',
    vid: int = COOLER_VID,
    pid: int = COOLER_PID,
    device_id: str = "",
    read_timeout_ms: int = READ_TIMEOUT_MS,
) -> HidTransport:
    """Build an unopened transport for *backend* (``hidapi`` or ``pyusb``)."""
    try:
        cls = _TRANSPORTS[backend]
    except KeyError:
        raise ValueError(
            f"Unknown backend {backend!r} (expected one of {', '.join(BACKENDS)})"
        ) from None
    return cls(vid, pid, device_id=device_id, read_timeout_ms=read_timeout_ms)


def transport_factory(backend: str = 'hidapi', device_id: str = "",
                      **kwargs) -> Callable[[], HidTransport]:
    """Return a zero-argument callable producing fresh transports."""
    create_transport(backend, device_id=device_id, **kwargs)  # validate backend early
    return functools.partial(create_transport, backend, device_id=device_id, **kwargs)


# =========================================================================
# Device discovery helper
# =========================================================================

def find_cooler_devices(backend: str = 'hidapi',
                        vid: int = COOLER_VID, pid: int = COOLER_PID) -> list:
    """Scan for attached GA II controllers.

    Returns:
        List of dicts with keys: vid, pid, path, serial, product, backend
    """
    devices = []

    if backend == 'hidapi':
        for info in hidapi.enumerate(vid, pid) or []:
            path = info.get('path') or b''
            if isinstance(path, bytes):
                path = path.decode(errors='replace')
            devices.append({
                'vid': vid,
                'pid': pid,
                'path': path,
                'serial': info.get('serial_number') or "",
                'product': info.get('product_string') or "",
                'backend': 'hidapi',
            })
    elif backend == 'pyusb':
        found = usb.core.find(find_all=True, idVendor=vid, idProduct=pid)
        for dev in found or []:
            devices.append({
                'vid': vid,
                'pid': pid,
                'path': _usb_path(dev),
                'serial': _usb_serial(dev),
                'product': "",
                'backend': 'pyusb',
            })
    else:
        raise ValueError(f"Unknown backend {backend!r}")

    log.debug("Found %d cooler(s) via %s", len(devices), backend)
    return devices
