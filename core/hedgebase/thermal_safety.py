"""
Thermal safety classification.

Two nested ranges drive behaviour. The comfort range is what the controller
keeps the enclosure within by switching the heat lamp. Leaving the safe range
raises a temperature alert.
"""

import math

from .exceptions import InvalidReadingError
from .models import Reading, SafetyZone, TemperatureUnit
from .settings import ThermalThresholds

DEFAULT_THRESHOLDS = ThermalThresholds()

MESSAGE_TOO_COLD = "Temperature is dangerously low!"
MESSAGE_TOO_HOT = "Temperature is dangerously high!"


def celsius_to_fahrenheit(temp: float) -> float:
    """Convert Celsius to Fahrenheit."""
    return temp * 9 / 5 + 32


def to_fahrenheit(reading: Reading) -> float:
    """Reading temperature as Fahrenheit. Non-Celsius units pass through."""
    if reading.unit is TemperatureUnit.CELSIUS:
        return celsius_to_fahrenheit(reading.temperature)
    return reading.temperature


def classify(temp_f: float, thresholds: ThermalThresholds = DEFAULT_THRESHOLDS) -> SafetyZone:
    """Map a Fahrenheit temperature to its safety zone.

    The comfort range is inclusive on both ends; the safe range is inclusive
    on the side facing comfort.

    Raises:
        InvalidReadingError: If the temperature is NaN or infinite
    """
    if not math.isfinite(temp_f):
        raise InvalidReadingError(f"Cannot classify temperature {temp_f}")

    if temp_f < thresholds.safe_low:
        return SafetyZone.BELOW_SAFE
    if temp_f < thresholds.comfort_low:
        return SafetyZone.BELOW_COMFORT
    if temp_f <= thresholds.comfort_high:
        return SafetyZone.COMFORT
    if temp_f <= thresholds.safe_high:
        return SafetyZone.ABOVE_COMFORT
    return SafetyZone.ABOVE_SAFE


def heater_action(zone: SafetyZone) -> bool | None:
    """Requested heater state for a zone, None to leave the heater alone."""
    if zone < SafetyZone.COMFORT:
        return True
    if zone > SafetyZone.COMFORT:
        return False
    return None


def temperature_alert(zone: SafetyZone) -> str | None:
    """Alert message for zones outside the safe range."""
    if zone is SafetyZone.BELOW_SAFE:
        return MESSAGE_TOO_COLD
    if zone is SafetyZone.ABOVE_SAFE:
        return MESSAGE_TOO_HOT
    return None
