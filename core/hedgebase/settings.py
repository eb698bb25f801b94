"""
Hedgebase Configuration Settings

User-facing settings are loaded from /data/options.json when running as a
Home Assistant add-on, from config.yaml during development, and finally from
environment variables (.env is honoured via python-dotenv).
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field, fields

import yaml
from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

OPTIONS_PATH = "/data/options.json"
CONFIG_YAML_PATH = os.path.join(os.path.dirname(__file__), "..", "..", "config.yaml")

# BLE sensor advertised names
DEFAULT_NAME_FILTER = [
    "SHTC1 smart gadget",
    "SHTC1 smart gadget\u0002",
    "Smart Humigadget",
    "SensorTag",
]

# BLE service UUIDs of the supported temperature/humidity gadgets
DEFAULT_ID_FILTER = [
    "00002234-b38d-4985-720e-0f993a68ee41",  # SHT3x temperature
    "00001234-b38d-4985-720e-0f993a68ee41",  # SHT3x humidity
    "0000aa20-0000-1000-8000-00805f9b34fb",  # SHTC1 temperature and humidity
    "f000aa20-0451-4000-b000-000000000000",  # SensorTag temperature and humidity
]


def _camel_to_snake(name: str) -> str:
    """Convert camelCase to snake_case."""
    s1 = re.sub("(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub("([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


@dataclass(frozen=True)
class ThermalThresholds:
    """Fahrenheit thresholds bounding the comfort and safe ranges."""

    safe_low: float = 73.0  # Alert below this
    comfort_low: float = 75.0  # Heat lamp on below this
    comfort_high: float = 78.0  # Heat lamp off above this
    safe_high: float = 85.0  # Alert above this

    def __post_init__(self):
        if not (self.safe_low < self.comfort_low < self.comfort_high < self.safe_high):
            raise ConfigurationError(
                "Thresholds must satisfy safe_low < comfort_low < comfort_high < safe_high, "
                f"got {self.safe_low}/{self.comfort_low}/{self.comfort_high}/{self.safe_high}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "ThermalThresholds":
        """Create from dictionary."""
        converted = {_camel_to_snake(k): float(v) for k, v in data.items()}
        return cls(**converted)


@dataclass
class HedgebaseSettings:
    """Runtime configuration for the habitat controller."""

    thresholds: ThermalThresholds = field(default_factory=ThermalThresholds)
    scan_timeout_seconds: float = 60.0  # How long one BLE discovery cycle runs
    debounce_minutes: float = 15.0  # Minimum spacing of telemetry points
    battery_low_percent: float = 25.0
    retry_delay_seconds: float = 5.0  # Pause before a new discovery cycle after a failure
    name_filter: list[str] = field(default_factory=lambda: list(DEFAULT_NAME_FILTER))
    id_filter: list[str] = field(default_factory=lambda: list(DEFAULT_ID_FILTER))
    hardware_profile: str = "simulated"
    store_backend: str = "memory"  # "memory" or "firestore"
    firestore_project: str | None = None
    firestore_token: str | None = None
    command_poll_seconds: float = 5.0

    def __post_init__(self):
        if self.debounce_minutes <= 0:
            raise ConfigurationError(f"debounce_minutes must be positive, got {self.debounce_minutes}")
        if self.store_backend not in ("memory", "firestore"):
            raise ConfigurationError(f"Unknown store backend: {self.store_backend}")
        if self.store_backend == "firestore" and not self.firestore_project:
            raise ConfigurationError("firestore_project is required for the firestore store backend")

    @classmethod
    def from_dict(cls, data: dict) -> "HedgebaseSettings":
        """Create from dictionary."""
        converted = {_camel_to_snake(k): v for k, v in data.items()}

        if "thresholds" in converted and isinstance(converted["thresholds"], dict):
            converted["thresholds"] = ThermalThresholds.from_dict(converted["thresholds"])

        known = {f.name for f in fields(cls)}
        unknown = set(converted) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {sorted(unknown)}")
            converted = {k: v for k, v in converted.items() if k in known}

        return cls(**converted)


def _load_options() -> dict:
    """Load raw options from options.json or config.yaml."""
    try:
        if os.path.exists(OPTIONS_PATH):
            with open(OPTIONS_PATH) as f:
                options = json.load(f)
            logger.debug("Loaded settings from options.json")
            return options
    except (OSError, ValueError) as e:
        logger.warning(f"Failed to load options.json: {e}")

    try:
        if os.path.exists(CONFIG_YAML_PATH):
            with open(CONFIG_YAML_PATH) as f:
                config = yaml.safe_load(f) or {}
            logger.debug("Loaded settings from config.yaml")
            return config.get("options", {})
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"Failed to load config.yaml: {e}")

    return {}


def load_settings() -> HedgebaseSettings:
    """Load settings from options.json/config.yaml, then apply environment overrides.

    Raises:
        ConfigurationError: If the resulting settings are invalid
    """
    options = _load_options()

    load_dotenv()
    env_overrides = {
        "hardware_profile": os.getenv("HEDGEBASE_HARDWARE_PROFILE"),
        "store_backend": os.getenv("HEDGEBASE_STORE"),
        "firestore_project": os.getenv("FIRESTORE_PROJECT"),
        "firestore_token": os.getenv("FIRESTORE_TOKEN"),
    }
    for key, value in env_overrides.items():
        if value:
            options[key] = value

    try:
        return HedgebaseSettings.from_dict(options)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings: {e}")
