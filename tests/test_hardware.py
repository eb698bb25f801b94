"""Tests for hardware profiles and heat lamp actuators."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.hedgebase.actuator import (
    LoggingActuator,
    SysfsGpioActuator,
    bind_actuator,
    create_actuator,
)
from core.hedgebase.exceptions import ConfigurationError
from core.hedgebase.hardware import get_profile
from core.hedgebase.heater import HeaterController


def _gpio_root(tmp_path: Path, *lines: int) -> Path:
    """Fake sysfs tree with the given lines already exported."""
    for line in lines:
        (tmp_path / f"gpio{line}").mkdir()
    return tmp_path


def test_unknown_profile_rejected() -> None:
    with pytest.raises(ConfigurationError):
        get_profile("toaster")


def test_simulated_profile_uses_logging_actuator() -> None:
    actuator = create_actuator(get_profile("simulated"))
    assert isinstance(actuator, LoggingActuator)


def test_bind_actuator_replays_current_state() -> None:
    heater = HeaterController()
    actuator = LoggingActuator()
    unsubscribe = bind_actuator(heater, actuator)
    assert actuator.lamp_on is True

    heater.off()
    assert actuator.lamp_on is False

    unsubscribe()
    heater.on()
    assert actuator.lamp_on is False


def test_sysfs_actuator_drives_normally_closed_relay(tmp_path: Path) -> None:
    root = _gpio_root(tmp_path, 17, 27)
    actuator = SysfsGpioActuator(get_profile("rpi3"), gpio_root=root)

    assert (root / "gpio27" / "direction").read_text() == "high"
    assert (root / "gpio17" / "direction").read_text() == "low"

    # Lamp on drives the line low
    actuator.set(True)
    assert (root / "gpio17" / "value").read_text() == "0"
    actuator.set(False)
    assert (root / "gpio17" / "value").read_text() == "1"


def test_sysfs_actuator_unavailable_line(tmp_path: Path) -> None:
    # Export succeeds but the line directory never appears
    with pytest.raises(ConfigurationError):
        SysfsGpioActuator(get_profile("rpi3"), gpio_root=tmp_path)
