"""
Derived view state for front ends.

Pure projections of the controller's observables: display text, display
colour and whether the manual heater toggle should be offered.
"""

from dataclasses import dataclass
from typing import Optional

from .models import ConnectionState, SafetyZone
from .observable import ObservableValue, combine

TEXT_SEARCHING = "Searching for sensor..."
TEXT_UNABLE_TO_DISCOVER = "Unable to discover sensor"
TEXT_CONNECTED = "Sensor connected"
TEXT_DISCONNECTED = "Sensor disconnected"


@dataclass(frozen=True)
class Color:
    """RGB colour with components in 0..1."""

    red: float
    green: float
    blue: float

    @property
    def hex(self) -> str:
        return "#{:02x}{:02x}{:02x}".format(
            round(self.red * 255), round(self.green * 255), round(self.blue * 255)
        )


WHITE = Color(1.0, 1.0, 1.0)
RED = Color(1.0, 0.0, 0.0)
BLUE = Color(0.0, 0.0, 1.0)


def display_text(
    connection: ConnectionState,
    device_available: bool,
    sensor_lost: bool,
    temperature: Optional[float],
) -> str:
    """Text for the temperature display.

    After a link loss the display keeps saying so while rediscovery runs.
    """
    if connection is ConnectionState.CONNECTED:
        if temperature is None:
            return TEXT_CONNECTED
        return f"{temperature:.1f}°F"
    if sensor_lost or connection is ConnectionState.DISCONNECTED:
        return TEXT_DISCONNECTED
    if not device_available:
        return TEXT_UNABLE_TO_DISCOVER
    return TEXT_SEARCHING


def display_color(zone: Optional[SafetyZone]) -> Color:
    """Blue when too cold, red when too warm, white otherwise."""
    if zone is None or zone is SafetyZone.COMFORT:
        return WHITE
    if zone < SafetyZone.COMFORT:
        return BLUE
    return RED


def toggle_enabled(connection: ConnectionState, zone: Optional[SafetyZone]) -> bool:
    """Manual control is offered only while the sensor is up and the zone is comfortable."""
    return connection is ConnectionState.CONNECTED and zone is SafetyZone.COMFORT


class ViewState:
    """Observable projections wired to the controller's state."""

    def __init__(
        self,
        connection: ObservableValue[ConnectionState],
        device_available: ObservableValue[bool],
        sensor_lost: ObservableValue[bool],
        temperature: ObservableValue[Optional[float]],
        zone: ObservableValue[Optional[SafetyZone]],
        heater: ObservableValue[bool],
    ):
        self.sensor_connected = connection.map(lambda c: c is ConnectionState.CONNECTED)
        self.heater_status = heater
        self.display_text = combine(display_text, connection, device_available, sensor_lost, temperature)
        self.display_color = zone.map(display_color)
        self.toggle_enabled = combine(toggle_enabled, connection, zone)

    def snapshot(self) -> dict:
        return {
            "sensor_connected": self.sensor_connected.value,
            "heater_on": self.heater_status.value,
            "display_text": self.display_text.value,
            "display_color": self.display_color.value.hex,
            "toggle_enabled": self.toggle_enabled.value,
        }
