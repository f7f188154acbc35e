"""Host-facing surface: the four hooks a fan-control host calls.

    initialize()      — build the command channel, send PWM sync enable
    load(container)   — build the sensor and register it with the host
    update()          — periodic probe, restarts a dead poll loop
    close()           — release everything (idempotent)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from .conf import CoolerConfig, load_settings
from .constants import PLUGIN_NAME
from .hid_device import HidTransport, transport_factory
from .pump import PumpCommandChannel
from .sensor import CoolantSensor

log = logging.getLogger(__name__)


@dataclass
class SensorsContainer:
    """Sensors registered with the host for periodic polling."""
    temp_sensors: List[CoolantSensor] = field(default_factory=list)


class GaiiPlugin:
    """Plugin lifecycle for the GA II coolant sensor."""

    name = PLUGIN_NAME

    def __init__(
        self,
        config: Optional[CoolerConfig] = None,
        factory: Optional[Callable[[], HidTransport]] = None,
    ) -> None:
        self.config = config or load_settings()
        self._factory = factory or transport_factory(
            self.config.backend, device_id=self.config.device_id,
        )
        self.channel: Optional[PumpCommandChannel] = None
        self.sensor: Optional[CoolantSensor] = None
        log.debug("%s constructed", self.name)

    def initialize(self) -> None:
        log.info("%s initialize", self.name)
        self.channel = PumpCommandChannel(self._factory)
        if self.config.pwm_sync:
            self.channel.enable_pwm_sync()

    def load(self, container: SensorsContainer) -> CoolantSensor:
        log.info("%s load", self.name)
        if self.channel is None:
            self.initialize()
        self.sensor = CoolantSensor(self.channel, self._factory)
        container.temp_sensors.append(self.sensor)
        return self.sensor

    def update(self) -> None:
        if self.sensor is not None:
            self.sensor.update()

    def close(self) -> None:
        log.info("%s close", self.name)
        sensor, self.sensor = self.sensor, None
        if sensor is not None:
            sensor.close()
