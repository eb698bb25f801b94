"""
Habitat Controller

Single control loop for the habitat. Transport callbacks, store listeners and
API requests post events onto one asyncio queue; a single consumer applies
them, so no two state mutations ever race. Store writes run as background
tasks on the same loop and never block event processing.

    reading -> classify -> heater + temperature alert
            -> telemetry (debounced)
    heater transition -> forced telemetry write
    remote command -> heater.set / telemetry resend
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from .actuator import Actuator, bind_actuator, create_actuator
from .alerts import AlertManager
from .commands import CommandReceived, RemoteCommandChannel
from .document_store import DocumentStore, InMemoryDocumentStore
from .exceptions import InvalidReadingError
from .firestore_client import FirestoreClient
from .hardware import get_profile
from .heater import HeaterController
from .history import HistoryTracker, history_tracker
from .models import AlertCategory, ConnectionState, Reading, SafetyZone
from .observable import ObservableValue
from .sensor_session import SESSION_EVENTS, SensorSession
from .settings import HedgebaseSettings
from .tasks import BackgroundTasks
from .telemetry import TelemetryLogger
from .thermal_safety import classify, heater_action, temperature_alert, to_fahrenheit
from .transport import UNIT_PERCENT, AuxValue, NewReading, SensorTransport, SimulatedTransport
from .view_state import ViewState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManualHeaterRequest:
    """Heater toggle from a local front end."""

    on: bool


@dataclass(frozen=True)
class ResendRequest:
    """Local request to write the next reading immediately."""

    pass


class HabitatController:
    """Owns all core state and the control queue."""

    def __init__(
        self,
        settings: HedgebaseSettings,
        store: DocumentStore,
        transport: SensorTransport,
        heater: Optional[HeaterController] = None,
        actuator: Optional[Actuator] = None,
        history: Optional[HistoryTracker] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = settings
        self.store = store
        self.actuator = actuator
        self.history = history if history is not None else history_tracker

        self.tasks = BackgroundTasks()
        self.heater = heater or HeaterController()
        clock_kwargs = {"clock": clock} if clock is not None else {}
        self.telemetry = TelemetryLogger(
            store, debounce=timedelta(minutes=settings.debounce_minutes), **clock_kwargs
        )
        self.alerts = AlertManager(store, self.tasks, history=self.history, **clock_kwargs)
        self.session = SensorSession(transport, settings, self.alerts, self.post, self._call_later)
        self.commands = RemoteCommandChannel(
            store, self.heater, self.telemetry, self.post, self.tasks, history=self.history
        )

        self.temperature: ObservableValue[Optional[float]] = ObservableValue(None)
        self.zone: ObservableValue[Optional[SafetyZone]] = ObservableValue(None)
        self.battery_percent: ObservableValue[Optional[float]] = ObservableValue(None)
        self.sensor_lost: ObservableValue[bool] = ObservableValue(False)
        self.view = ViewState(
            self.session.connection,
            self.session.device_available,
            self.sensor_lost,
            self.temperature,
            self.zone,
            self.heater.status,
        )

        self._last_heater = self.heater.is_on
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue] = None
        self._task: Optional[asyncio.Task] = None
        self._timers: set[asyncio.TimerHandle] = set()
        self._unsubscribers: list = []
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the control loop, the command listener and sensor discovery."""
        if self._running:
            logger.warning("Habitat controller already running")
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._running = True

        if self.actuator is not None:
            self._unsubscribers.append(bind_actuator(self.heater, self.actuator))
        self._unsubscribers.append(self.heater.status.subscribe(self._on_heater))
        self._unsubscribers.append(self.session.connection.subscribe(self._on_connection))
        self._unsubscribers.append(self.session.device_available.subscribe(self._on_device_available))

        self._task = asyncio.create_task(self._run_loop())
        self.commands.start()
        self.session.start()

        logger.info("🦔 Habitat controller started")
        logger.info(
            f"   Comfort {self.settings.thresholds.comfort_low}-{self.settings.thresholds.comfort_high}°F, "
            f"safe {self.settings.thresholds.safe_low}-{self.settings.thresholds.safe_high}°F"
        )

    async def stop(self, drain_timeout: float = 5.0):
        """Stop everything; events posted afterwards are dropped.

        Queued events and pending store writes get up to drain_timeout seconds
        to finish first.
        """
        if not self._running:
            return

        try:
            await self.drain(drain_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Store writes still pending after {drain_timeout}s, cancelling")

        self._running = False
        self.session.shutdown()
        self.commands.stop()

        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass

        await self.tasks.close()

        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        logger.info("🦔 Habitat controller stopped")

    # Event intake

    def post(self, event: Any) -> None:
        """Enqueue an event for the control loop. Safe to call from any thread."""
        if not self._running or self._loop is None:
            logger.debug(f"Dropping {type(event).__name__}, controller not running")
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            logger.debug(f"Dropping {type(event).__name__}, event loop closed")

    def _call_later(self, delay: float, event: Any) -> None:
        if not self._running or self._loop is None:
            return
        timer: asyncio.TimerHandle

        def fire():
            self._timers.discard(timer)
            self.post(event)

        timer = self._loop.call_later(delay, fire)
        self._timers.add(timer)

    def request_heater(self, on: bool) -> None:
        self.post(ManualHeaterRequest(on))

    def request_resend(self) -> None:
        self.post(ResendRequest())

    async def drain(self, timeout: float = 5.0) -> None:
        """Wait until queued events and background store operations are done."""

        async def wait():
            while True:
                await self._queue.join()
                await self.tasks.drain()
                # Let puts scheduled by call_soon_threadsafe land
                await asyncio.sleep(0)
                if self._queue.empty() and not self.tasks.pending:
                    return

        await asyncio.wait_for(wait(), timeout)

    async def _run_loop(self):
        logger.debug("Control loop starting")
        while True:
            event = await self._queue.get()
            try:
                if self._running:
                    self.dispatch(event)
            except Exception as e:
                logger.error(f"Error handling {type(event).__name__}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    # Dispatch

    def dispatch(self, event: Any) -> None:
        """Apply one event. Only called from the control loop."""
        if isinstance(event, SESSION_EVENTS):
            self.session.handle_event(event)
        elif isinstance(event, NewReading):
            if self.session.is_current(event.handle):
                self._on_reading(event.reading)
            else:
                logger.debug(f"Dropping reading from stale handle {event.handle}")
        elif isinstance(event, AuxValue):
            if self.session.is_current(event.handle):
                self._on_aux_value(event)
        elif isinstance(event, CommandReceived):
            self.commands.handle(event)
        elif isinstance(event, ManualHeaterRequest):
            logger.info(f"Manual heater request: {'on' if event.on else 'off'}")
            self.history.add_control_event("manual_toggle", f"Lamp toggled {'on' if event.on else 'off'}")
            self.heater.set(event.on)
        elif isinstance(event, ResendRequest):
            self.telemetry.request_resend()
        else:
            logger.warning(f"Unknown event {event!r}")

    def _on_reading(self, reading: Reading) -> None:
        temp_f = to_fahrenheit(reading)
        try:
            zone = classify(temp_f, self.settings.thresholds)
        except InvalidReadingError as e:
            logger.warning(f"Discarding reading: {e}")
            return

        logger.debug(f"New data point: {temp_f:.1f}°F ({zone.name})")
        self.temperature.set(temp_f)
        self.zone.set(zone)

        action = heater_action(zone)
        if action is not None:
            self.heater.set(action)

        message = temperature_alert(zone)
        if message is not None:
            self.alerts.raise_alert(AlertCategory.TEMPERATURE, message)
        elif zone is SafetyZone.COMFORT:
            self.alerts.resolve_alert(AlertCategory.TEMPERATURE)

        self.tasks.spawn(self.telemetry.on_reading(temp_f, self.heater.is_on), name="telemetry")

    def _on_aux_value(self, event: AuxValue) -> None:
        logger.debug(f"Aux value {event.kind}: {event.value} {event.unit} at {event.timestamp}")
        if event.unit != UNIT_PERCENT:
            return

        self.battery_percent.set(event.value)
        if event.value < self.settings.battery_low_percent:
            self.alerts.raise_alert(AlertCategory.BATTERY, f"Sensor battery low: {event.value:g}%")
        else:
            self.alerts.resolve_alert(AlertCategory.BATTERY)

    # Observers

    def _on_heater(self, on: bool) -> None:
        if on == self._last_heater:
            return
        self._last_heater = on
        self.history.add_control_event(
            "heater_on" if on else "heater_off",
            f"Heat lamp turned {'on' if on else 'off'}",
            temperature=self.temperature.value,
        )
        self.tasks.spawn(self.telemetry.force_write(self.temperature.value, on), name="telemetry-forced")

    def _on_connection(self, state: ConnectionState) -> None:
        if state is ConnectionState.CONNECTED:
            self.sensor_lost.update(False)
        elif state is ConnectionState.DISCONNECTED:
            # Fail toward heating while blind
            self.heater.on()
            self.sensor_lost.update(True)
            self.temperature.update(None)
            self.zone.update(None)

    def _on_device_available(self, available: bool) -> None:
        if not available:
            self.heater.on()

    # Status

    def status(self) -> dict:
        zone = self.zone.value
        last_point = self.telemetry.last_point
        return {
            "temperature": self.temperature.value,
            "zone": zone.name if zone is not None else None,
            "heater_on": self.heater.is_on,
            "connection": self.session.state.value,
            "device_available": self.session.device_available.value,
            "battery_percent": self.battery_percent.value,
            "active_alerts": sorted(c.value for c in self.alerts.active_categories),
            "last_telemetry": {
                "temp": last_point.temp,
                "time": last_point.time.isoformat(),
                "lamp": last_point.lamp_on,
            } if last_point else None,
            "view": self.view.snapshot(),
        }


def create_store(settings: HedgebaseSettings) -> DocumentStore:
    """Build the configured document store."""
    if settings.store_backend == "firestore":
        return FirestoreClient(
            settings.firestore_project,
            token=settings.firestore_token,
            poll_interval_seconds=settings.command_poll_seconds,
        )
    logger.warning("Using in-memory document store, data is not persisted")
    return InMemoryDocumentStore()


def build_controller(
    settings: HedgebaseSettings,
    transport: Optional[SensorTransport] = None,
    store: Optional[DocumentStore] = None,
) -> HabitatController:
    """Wire a controller from settings.

    Without an explicit transport the simulated sensor is used.

    Raises:
        ConfigurationError: If the hardware profile or store settings are invalid
    """
    profile = get_profile(settings.hardware_profile)
    actuator = create_actuator(profile)
    heater = HeaterController()
    if transport is None:
        transport = SimulatedTransport(lamp_on=lambda: heater.is_on)
    return HabitatController(
        settings,
        store if store is not None else create_store(settings),
        transport,
        heater=heater,
        actuator=actuator,
    )
