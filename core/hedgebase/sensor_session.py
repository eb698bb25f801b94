"""
Sensor session state machine.

Owns one sensor connection at a time:

    IDLE -> DISCOVERING -> CONNECTED -> (DISCONNECTED -> DISCOVERING) ...

Discovery and connection failures are reported (Disconnected alert and the
device_available observable) and retried indefinitely; nothing here is fatal.
Only shutdown() returns the session to IDLE.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .alerts import AlertManager
from .exceptions import TransportError
from .models import AlertCategory, ConnectionState
from .observable import ObservableValue
from .settings import HedgebaseSettings
from .transport import (
    AUX_BATTERY,
    DeviceFound,
    DeviceHandle,
    DiscoveryFailed,
    DiscoveryFinished,
    SensorConnected,
    SensorDisconnected,
    SensorTransport,
    TransportEventRelay,
    TransportInitFailed,
    TransportReady,
)

logger = logging.getLogger(__name__)

MESSAGE_CONNECT_FAILED = "Unable to connect to temperature sensor!"
MESSAGE_DISCONNECTED = "Temperature sensor disconnected!"


@dataclass(frozen=True)
class RetryDiscovery:
    """Start a new discovery cycle; ignored if the session moved on meanwhile."""

    generation: int


SESSION_EVENTS = (
    TransportReady,
    TransportInitFailed,
    DeviceFound,
    DiscoveryFailed,
    DiscoveryFinished,
    SensorConnected,
    SensorDisconnected,
    RetryDiscovery,
)


class SensorSession:
    """Lifecycle of the sensor connection, driven by events from the control loop."""

    def __init__(
        self,
        transport: SensorTransport,
        settings: HedgebaseSettings,
        alerts: AlertManager,
        post: Callable[[Any], None],
        call_later: Callable[[float, Any], None],
    ):
        """Initialize sensor session.

        Args:
            transport: BLE transport
            settings: Scan timeout, filters and retry delay
            alerts: Alert manager for the Disconnected category
            post: Thread-safe enqueue onto the control loop
            call_later: Enqueue an event after a delay in seconds
        """
        self.transport = transport
        self.settings = settings
        self.alerts = alerts
        self.call_later = call_later

        self.relay = TransportEventRelay(post)
        self.transport.attach(self.relay)

        self.connection: ObservableValue[ConnectionState] = ObservableValue(ConnectionState.IDLE)
        self.device_available: ObservableValue[bool] = ObservableValue(True)

        self.handle: Optional[DeviceHandle] = None
        self._generation = 0
        self._running = False

    @property
    def state(self) -> ConnectionState:
        return self.connection.value

    def is_current(self, handle: DeviceHandle) -> bool:
        """True if handle is the connected device."""
        return self.handle is not None and handle is self.handle

    def start(self) -> None:
        """IDLE -> DISCOVERING."""
        if self._running:
            logger.warning("Sensor session already running")
            return
        self._running = True
        self._initialize()

    def shutdown(self) -> None:
        """Any state -> IDLE. Later events are dropped."""
        if not self._running:
            return
        self._running = False
        self._teardown()
        self.connection.update(ConnectionState.IDLE)
        logger.info("Sensor session stopped")

    def handle_event(self, event: Any) -> None:
        """Apply a transport event. Must run on the control loop."""
        if not self._running:
            logger.debug(f"Dropping {type(event).__name__} after shutdown")
            return

        if isinstance(event, TransportReady):
            self._start_discovery()
        elif isinstance(event, TransportInitFailed):
            logger.error("Sensor transport init failed")
            self._no_device()
        elif isinstance(event, DeviceFound):
            self._on_device_found(event.handle)
        elif isinstance(event, DiscoveryFailed):
            logger.warning("Sensor discovery failed")
            self._no_device()
        elif isinstance(event, DiscoveryFinished):
            logger.debug("Discovery finished")
            if self.state is ConnectionState.DISCOVERING and self.handle is None:
                self._no_device()
        elif isinstance(event, SensorConnected):
            if self.is_current(event.handle):
                logger.debug(f"Subscribed to {event.handle}")
        elif isinstance(event, SensorDisconnected):
            self._on_link_lost(event.handle)
        elif isinstance(event, RetryDiscovery):
            if event.generation == self._generation and self.handle is None:
                logger.info("Retrying sensor discovery")
                self._teardown()
                self._initialize()
        else:
            logger.warning(f"Unexpected session event {event!r}")

    def _initialize(self) -> None:
        self.connection.update(ConnectionState.DISCOVERING)
        try:
            self.transport.initialize()
        except TransportError as e:
            logger.error(f"Sensor transport init raised: {e}")
            self._no_device()

    def _start_discovery(self) -> None:
        if self.state is not ConnectionState.DISCOVERING:
            return

        logger.debug("Transport ready, start scanning")
        try:
            started = self.transport.start_discovery(
                self.settings.scan_timeout_seconds,
                self.settings.name_filter,
                self.settings.id_filter,
            )
        except TransportError as e:
            logger.error(f"Starting discovery raised: {e}")
            started = False

        if not started:
            logger.error("Could not start discovery")
            self._no_device()

    def _on_device_found(self, handle: DeviceHandle) -> None:
        if self.state is not ConnectionState.DISCOVERING or self.handle is not None:
            logger.debug(f"Ignoring {handle}, not discovering")
            return

        logger.debug(f"Sensor {handle} discovered")
        try:
            connected = handle.connect()
        except TransportError as e:
            logger.warning(f"Connecting to {handle} raised: {e}")
            connected = False

        if not connected:
            logger.info(f"Unable to connect to {handle}")
            self.alerts.raise_alert(AlertCategory.DISCONNECTED, MESSAGE_CONNECT_FAILED)
            return

        logger.info(f"Connected to {handle}")
        self.handle = handle
        self.transport.stop_discovery()
        handle.subscribe(self.relay)

        self.device_available.update(True)
        self.connection.update(ConnectionState.CONNECTED)
        self.alerts.resolve_alert(AlertCategory.DISCONNECTED)

        for value, unit, timestamp in handle.battery_values():
            self.relay.on_aux_value(handle, AUX_BATTERY, value, unit, timestamp)

    def _no_device(self) -> None:
        """Report that no sensor is available and schedule another discovery cycle."""
        self.device_available.update(False)
        self.alerts.raise_alert(AlertCategory.DISCONNECTED, MESSAGE_CONNECT_FAILED)
        self.call_later(self.settings.retry_delay_seconds, RetryDiscovery(self._generation))

    def _on_link_lost(self, handle: DeviceHandle) -> None:
        if not self.is_current(handle) or self.state is not ConnectionState.CONNECTED:
            logger.debug(f"Ignoring disconnect from stale handle {handle}")
            return

        logger.warning(f"Sensor {handle} disconnected")
        self.connection.update(ConnectionState.DISCONNECTED)
        self._teardown()
        self.alerts.raise_alert(AlertCategory.DISCONNECTED, MESSAGE_DISCONNECTED)
        self._initialize()

    def _teardown(self) -> None:
        """Stop discovery, release the transport and drop the current device."""
        self._generation += 1
        try:
            self.transport.stop_discovery()
            self.transport.release()
        except TransportError as e:
            logger.warning(f"Error releasing sensor transport: {e}")

        handle, self.handle = self.handle, None
        if handle is not None:
            try:
                handle.disconnect()
            except TransportError as e:
                logger.warning(f"Error disconnecting {handle}: {e}")
