"""
Heat lamp controller.

Holds the single authoritative heater intent. Starts on so that the habitat
is heated until a reading says otherwise.
"""

import logging

from .observable import ObservableValue

logger = logging.getLogger(__name__)


class HeaterController:
    """Owns HeaterState; everything else observes it or requests changes."""

    def __init__(self, initial: bool = True):
        self._status: ObservableValue[bool] = ObservableValue(initial)

    @property
    def status(self) -> ObservableValue[bool]:
        """Observable heater state (True = lamp on)."""
        return self._status

    @property
    def is_on(self) -> bool:
        return self._status.value

    def set(self, on: bool) -> None:
        """Request heater state. Subscribers are notified even if unchanged."""
        if on != self._status.value:
            logger.info(f"Heat lamp {'on' if on else 'off'}")
        self._status.set(on)

    def on(self) -> None:
        self.set(True)

    def off(self) -> None:
        self.set(False)
