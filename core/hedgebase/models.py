"""
Hedgebase Data Models

Readings, zones, alerts and telemetry points shared across the control core.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

UNIT_CELSIUS = "°C"

# Store field names
KEY_ALERT_MESSAGE = "message"
KEY_ALERT_ACTIVE = "active"
KEY_ALERT_TIME_START = "start"
KEY_ALERT_TIME_END = "end"

KEY_TEMP = "temp"
KEY_TIME = "time"
KEY_LAMP = "lamp"


class TemperatureUnit(Enum):
    """Unit reported by the sensor alongside a temperature."""

    CELSIUS = "celsius"
    OTHER = "other"

    @classmethod
    def parse(cls, unit: str | None) -> "TemperatureUnit":
        """Map a raw unit string from the transport to a unit."""
        if unit == UNIT_CELSIUS:
            return cls.CELSIUS
        return cls.OTHER


class SafetyZone(IntEnum):
    """Discretized temperature classification, ordered coldest to hottest."""

    BELOW_SAFE = 0
    BELOW_COMFORT = 1
    COMFORT = 2
    ABOVE_COMFORT = 3
    ABOVE_SAFE = 4


class ConnectionState(Enum):
    """Sensor session state. IDLE is before initialization and after shutdown."""

    IDLE = "idle"
    DISCOVERING = "discovering"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class AlertCategory(Enum):
    """Alert categories, one active document per category."""

    DISCONNECTED = "disconnected"
    TEMPERATURE = "temperature"
    BATTERY = "battery"

    @property
    def path(self) -> str:
        return f"alerts/{self.value}"


@dataclass(frozen=True)
class Reading:
    """A single temperature data point from the sensor."""

    temperature: float
    unit: TemperatureUnit
    timestamp: datetime


@dataclass
class AlertRecord:
    """An alert document, active or archived."""

    category: AlertCategory
    message: str
    active: bool
    start_time: datetime
    end_time: Optional[datetime] = None

    def to_fields(self) -> dict[str, Any]:
        fields: dict[str, Any] = {
            KEY_ALERT_MESSAGE: self.message,
            KEY_ALERT_ACTIVE: self.active,
            KEY_ALERT_TIME_START: self.start_time,
        }
        if self.end_time is not None:
            fields[KEY_ALERT_TIME_END] = self.end_time
        return fields

    @classmethod
    def from_fields(cls, category: AlertCategory, fields: dict[str, Any]) -> "AlertRecord":
        return cls(
            category=category,
            message=str(fields.get(KEY_ALERT_MESSAGE, "")),
            active=fields.get(KEY_ALERT_ACTIVE) is True,
            start_time=fields.get(KEY_ALERT_TIME_START) or datetime.min.replace(tzinfo=timezone.utc),
            end_time=fields.get(KEY_ALERT_TIME_END),
        )


@dataclass(frozen=True)
class TelemetryPoint:
    """A persisted temperature sample with the lamp state at that time."""

    temp: float
    time: datetime  # second resolution
    lamp_on: bool

    def to_fields(self) -> dict[str, Any]:
        return {
            KEY_TEMP: self.temp,
            KEY_TIME: self.time,
            KEY_LAMP: self.lamp_on,
        }
