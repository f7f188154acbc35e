"""
gaii-linux - Lian Li GA II coolant monitor

Keeps a connection to the GA II LCD pump controller (USB HID 0416:7395),
decodes its coolant temperature reports, and sends the PWM sync
heartbeat and temperature queries the firmware needs to keep reporting.

Usage:
    # As a library
    from gaii import GaiiPlugin, SensorsContainer
    plugin = GaiiPlugin()
    plugin.initialize()
    sensor = plugin.load(SensorsContainer())
    sensor.value          # float or None
    plugin.update()       # periodic host probe
    plugin.close()

    # Command line
    gaii detect           # List attached coolers
    gaii monitor          # Print coolant temperature
"""

from gaii.__version__ import __version__
from gaii.commands import encode_command
from gaii.plugin import GaiiPlugin, SensorsContainer
from gaii.poller import SensorPollLoop
from gaii.pump import PumpCommandChannel
from gaii.sensor import CoolantSensor

__all__ = [
    "__version__",
    "encode_command",
    "GaiiPlugin",
    "SensorsContainer",
    "SensorPollLoop",
    "PumpCommandChannel",
    "CoolantSensor",
]
