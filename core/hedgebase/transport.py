"""
Sensor transport interface and events.

The BLE stack is an external collaborator. Its callbacks are turned into typed
events and posted to the control queue by TransportEventRelay; no transport
callback touches controller state directly.
"""

import logging
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .exceptions import TransportError
from .models import UNIT_CELSIUS, Reading, TemperatureUnit

logger = logging.getLogger(__name__)

UNIT_PERCENT = "%"
AUX_BATTERY = "battery"


# Transport lifecycle events

@dataclass(frozen=True)
class TransportReady:
    pass


@dataclass(frozen=True)
class TransportInitFailed:
    pass


@dataclass(frozen=True)
class DeviceFound:
    handle: "DeviceHandle"


@dataclass(frozen=True)
class DiscoveryFailed:
    pass


@dataclass(frozen=True)
class DiscoveryFinished:
    pass


# Device listener events

@dataclass(frozen=True)
class SensorConnected:
    handle: "DeviceHandle"


@dataclass(frozen=True)
class SensorDisconnected:
    handle: "DeviceHandle"


@dataclass(frozen=True)
class NewReading:
    handle: "DeviceHandle"
    reading: Reading


@dataclass(frozen=True)
class AuxValue:
    handle: "DeviceHandle"
    kind: str
    value: float
    unit: str
    timestamp: datetime


class TransportEventRelay:
    """Transport and device listener that posts typed events.

    Callbacks may arrive on any thread; post must be thread-safe.
    """

    def __init__(self, post: Callable[[Any], None]):
        self._post = post

    def on_ready(self) -> None:
        self._post(TransportReady())

    def on_init_failed(self) -> None:
        self._post(TransportInitFailed())

    def on_device_found(self, handle: "DeviceHandle") -> None:
        self._post(DeviceFound(handle))

    def on_discovery_failed(self) -> None:
        self._post(DiscoveryFailed())

    def on_discovery_finished(self) -> None:
        self._post(DiscoveryFinished())

    def on_connected(self, handle: "DeviceHandle") -> None:
        self._post(SensorConnected(handle))

    def on_disconnected(self, handle: "DeviceHandle") -> None:
        self._post(SensorDisconnected(handle))

    def on_new_reading(
        self, handle: "DeviceHandle", temperature: float, unit: str, timestamp: datetime
    ) -> None:
        reading = Reading(
            temperature=temperature,
            unit=TemperatureUnit.parse(unit),
            timestamp=timestamp,
        )
        self._post(NewReading(handle, reading))

    def on_aux_value(
        self, handle: "DeviceHandle", kind: str, value: float, unit: str, timestamp: datetime
    ) -> None:
        self._post(AuxValue(handle, kind, value, unit, timestamp))


class DeviceHandle(ABC):
    """A discovered sensor."""

    name: str = "sensor"

    @abstractmethod
    def connect(self) -> bool:
        """Open the link; False or TransportError if it could not be opened."""

    @abstractmethod
    def disconnect(self) -> None:
        ...

    @abstractmethod
    def subscribe(self, listener: TransportEventRelay) -> None:
        """Start delivering connection events and data points to listener."""

    def battery_values(self) -> list[tuple[float, str, datetime]]:
        """Last known (value, unit, timestamp) battery values, if the device caches any."""
        return []

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


class SensorTransport(ABC):
    """BLE gadget manager.

    Radio faults are reported through the callbacks or raised as TransportError.
    """

    def __init__(self):
        self.callbacks: Optional[TransportEventRelay] = None

    def attach(self, callbacks: TransportEventRelay) -> None:
        self.callbacks = callbacks

    @abstractmethod
    def initialize(self) -> None:
        """Prepare the radio; reports on_ready or on_init_failed."""

    @abstractmethod
    def start_discovery(self, timeout: float, name_filter: list[str], id_filter: list[str]) -> bool:
        """Scan for matching devices; False if the scan could not start."""

    @abstractmethod
    def stop_discovery(self) -> None:
        ...

    @abstractmethod
    def release(self) -> None:
        """Release transport resources; initialize must be called again before use."""


# Simulation

ROOM_TEMP_C = 21.0
LAMP_TEMP_C = 32.0
NOISE_C = 0.05
JOIN_TIMEOUT_SECONDS = 2.0


class SimulatedDevice(DeviceHandle):
    """Simulated smart gadget that warms up while the lamp is on.

    Readings follow exponential approach to either the lamp temperature or
    room temperature with a little noise.
    """

    def __init__(
        self,
        lamp_on: Callable[[], bool],
        interval_seconds: float = 5.0,
        initial_temp_c: float = 24.0,
        battery_percent: float = 80.0,
        link_loss_probability: float = 0.0,
    ):
        self.name = "Simulated Smart Humigadget"
        self.lamp_on = lamp_on
        self.interval_seconds = interval_seconds
        self.temperature = initial_temp_c
        self.battery_percent = battery_percent
        self.link_loss_probability = link_loss_probability

        self._listener: Optional[TransportEventRelay] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def connect(self) -> bool:
        self._stop.clear()
        return True

    def disconnect(self) -> None:
        self._stop.set()
        thread = self._thread
        # The reader thread reports its own link loss and must not join itself
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=JOIN_TIMEOUT_SECONDS)
            if thread.is_alive():
                logger.warning(f"{self.name} reader thread did not stop")
        self._thread = None

    def subscribe(self, listener: TransportEventRelay) -> None:
        self._listener = listener
        self._thread = threading.Thread(target=self._run, name="simulated-gadget", daemon=True)
        self._thread.start()

    def battery_values(self) -> list[tuple[float, str, datetime]]:
        return [(self.battery_percent, UNIT_PERCENT, datetime.now(timezone.utc))]

    def step(self, dt: float) -> float:
        target = LAMP_TEMP_C if self.lamp_on() else ROOM_TEMP_C
        self.temperature += (target - self.temperature) * min(1.0, 0.002 * dt)
        self.temperature += random.uniform(-NOISE_C, NOISE_C)
        return self.temperature

    def _run(self) -> None:
        listener = self._listener
        listener.on_connected(self)
        while not self._stop.wait(self.interval_seconds):
            if random.random() < self.link_loss_probability:
                logger.info("Simulated link loss")
                self._stop.set()
                listener.on_disconnected(self)
                return
            temp = self.step(self.interval_seconds)
            listener.on_new_reading(self, round(temp, 2), UNIT_CELSIUS, datetime.now(timezone.utc))
            self.battery_percent = max(0.0, self.battery_percent - 0.01)


class SimulatedTransport(SensorTransport):
    """Transport that always discovers one SimulatedDevice after a short delay."""

    def __init__(self, lamp_on: Callable[[], bool], discovery_delay_seconds: float = 1.0, **device_options):
        super().__init__()
        self.lamp_on = lamp_on
        self.discovery_delay_seconds = discovery_delay_seconds
        self.device_options = device_options
        self._timer: Optional[threading.Timer] = None

    def initialize(self) -> None:
        if self.callbacks is None:
            raise TransportError("Simulated transport has no listener attached")
        self.callbacks.on_ready()

    def start_discovery(self, timeout: float, name_filter: list[str], id_filter: list[str]) -> bool:
        self.stop_discovery()
        self._timer = threading.Timer(self.discovery_delay_seconds, self._discovered)
        self._timer.daemon = True
        self._timer.start()
        return True

    def _discovered(self) -> None:
        device = SimulatedDevice(self.lamp_on, **self.device_options)
        self.callbacks.on_device_found(device)
        self.callbacks.on_discovery_finished()

    def stop_discovery(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def release(self) -> None:
        self.stop_discovery()
