"""
Heat lamp actuators.

An actuator is a single binary output. The hardware profile decides which line
is driven and at which level the lamp is on.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from .exceptions import ConfigurationError
from .hardware import HardwareProfile
from .heater import HeaterController

logger = logging.getLogger(__name__)

GPIO_ROOT = Path("/sys/class/gpio")


class Actuator(ABC):
    """Binary output driving the heat lamp."""

    @abstractmethod
    def set(self, lamp_on: bool) -> None:
        ...

    def close(self) -> None:
        pass


class LoggingActuator(Actuator):
    """Actuator without hardware; remembers and logs the requested state."""

    def __init__(self):
        self.lamp_on: bool | None = None

    def set(self, lamp_on: bool) -> None:
        if lamp_on != self.lamp_on:
            logger.debug(f"Lamp line -> {'on' if lamp_on else 'off'}")
        self.lamp_on = lamp_on


class SysfsGpioActuator(Actuator):
    """Relay on a Linux sysfs GPIO line."""

    def __init__(self, profile: HardwareProfile, gpio_root: Path = GPIO_ROOT):
        if profile.relay_line is None:
            raise ConfigurationError(f"Hardware profile '{profile.name}' has no relay line")

        self.profile = profile
        self.gpio_root = gpio_root
        self._exported: list[int] = []

        try:
            if profile.always_on_line is not None:
                self._setup_line(profile.always_on_line, "high")
            self._setup_line(profile.relay_line, "high" if profile.lamp_on_level else "low")
        except OSError as e:
            raise ConfigurationError(f"Unable to open relay GPIO for '{profile.name}': {e}")

        logger.info(f"Relay switch ready on GPIO {profile.relay_line} ({profile.name})")

    def _line_dir(self, line: int) -> Path:
        return self.gpio_root / f"gpio{line}"

    def _setup_line(self, line: int, direction: str) -> None:
        if not self._line_dir(line).exists():
            (self.gpio_root / "export").write_text(str(line))
            self._exported.append(line)
        # "high"/"low" sets direction out with an initial level
        (self._line_dir(line) / "direction").write_text(direction)

    def set(self, lamp_on: bool) -> None:
        level = self.profile.lamp_on_level if lamp_on else not self.profile.lamp_on_level
        try:
            (self._line_dir(self.profile.relay_line) / "value").write_text("1" if level else "0")
        except OSError as e:
            logger.error(f"Failed to drive relay GPIO {self.profile.relay_line}: {e}")

    def close(self) -> None:
        for line in self._exported:
            try:
                (self.gpio_root / "unexport").write_text(str(line))
            except OSError as e:
                logger.warning(f"Failed to release GPIO {line}: {e}")
        self._exported.clear()


def create_actuator(profile: HardwareProfile) -> Actuator:
    """Build the actuator for a hardware profile."""
    if profile.relay_line is None:
        logger.warning("No relay line in hardware profile, lamp control is simulated")
        return LoggingActuator()
    return SysfsGpioActuator(profile)


def bind_actuator(heater: HeaterController, actuator: Actuator) -> Callable[[], None]:
    """Drive actuator from the heater observable; returns the unsubscribe function."""
    return heater.status.subscribe(actuator.set, replay=True)
