"""
Hardware profiles.

Pin mapping for each supported board, chosen once at startup and passed to the
actuator. Line numbers are Linux sysfs GPIO numbers.
"""

from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError


@dataclass(frozen=True)
class HardwareProfile:
    """GPIO lines used to drive the heat lamp relay on a given board."""

    name: str
    relay_line: Optional[int]  # None = no physical relay (log only)
    always_on_line: Optional[int] = None  # Held high for logic-level conversion
    lamp_on_level: bool = False  # Relay is normally closed: lamp on when line is low


PROFILES: dict[str, HardwareProfile] = {
    "simulated": HardwareProfile(name="simulated", relay_line=None),
    "rpi3": HardwareProfile(name="rpi3", relay_line=17, always_on_line=27),
    "imx6ul_pico": HardwareProfile(name="imx6ul_pico", relay_line=172, always_on_line=174),
    "imx7d_pico": HardwareProfile(name="imx7d_pico", relay_line=172, always_on_line=174),
}


def get_profile(name: str) -> HardwareProfile:
    """Look up a hardware profile by name.

    Raises:
        ConfigurationError: If the profile is unknown
    """
    try:
        return PROFILES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown hardware profile '{name}', expected one of {sorted(PROFILES)}"
        )
