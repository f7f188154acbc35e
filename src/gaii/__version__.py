"""gaii-linux version information."""

__version__ = "0.3.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Passive coolant temperature reads (byte 11), reopen on read error
# 0.2.0 - Background poll thread, PWM sync heartbeat and temperature query
#         cadence, interruptible reconnect wait
# 0.3.0 - pyusb backend, device selection by path/serial, JSON config,
#         CLI and REST API
