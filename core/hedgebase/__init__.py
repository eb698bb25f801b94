"""Hedgebase habitat temperature control package."""

# Define public API
__all__ = [
    "HedgebaseSettings",
    "ThermalThresholds",
    "load_settings",
    "SafetyZone",
    "ConnectionState",
    "AlertCategory",
    "Reading",
    "classify",
    "HeaterController",
    "HabitatController",
    "build_controller",
]

# Import settings
from .settings import HedgebaseSettings, ThermalThresholds, load_settings

# Import models
from .models import AlertCategory, ConnectionState, Reading, SafetyZone

# Import control core
from .thermal_safety import classify
from .heater import HeaterController
from .controller import HabitatController, build_controller
