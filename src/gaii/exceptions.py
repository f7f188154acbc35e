"""Error taxonomy for the cooler driver.

Transport adapters translate library errors into these classes so the
poll loop and the command channel can decide between "keep going",
"reconnect" and "report a failed send" without knowing which HID
backend is in use.
"""


class CoolerError(Exception):
    """Base error for everything raised by gaii."""
    pass


class ConnectError(CoolerError):
    """The device could not be brought into a connected state."""
    pass


class DeviceNotFound(ConnectError):
    """Enumeration returned no matching device."""
    pass


class StreamOpenFailure(ConnectError):
    """Device is present but the stream could not be opened."""
    pass


class ReadTimeout(CoolerError):
    """No report arrived within the read timeout. Expected while idle."""
    pass


class ReadFailure(CoolerError):
    """Transport error while reading; the connection is no longer usable."""
    pass


class InvalidEncoding(CoolerError, ValueError):
    """Malformed command hex string."""
    pass


EncodingError = InvalidEncoding


class SendError(CoolerError):
    """Command dispatch failed."""
    pass


class DeviceUnavailable(SendError):
    """No device handle could be obtained for the write."""
    pass


class NotWritable(SendError):
    """The opened stream refuses writes."""
    pass


class WriteFailure(SendError):
    """Transport-level write error."""
    pass
