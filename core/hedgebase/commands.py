"""
Remote override commands.

Two command documents are watched in the store:
- commands/lamp     {active, target}: force the heat lamp on or off
- commands/sendTemp {active}:         write the next reading immediately

A command is consumed by applying it and writing active=false back, so a
redelivered snapshot is a no-op. Snapshots are also remembered by update time
to ignore duplicates that arrive before the reset lands.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from .document_store import DocumentSnapshot, DocumentStore, Subscription
from .exceptions import StoreError
from .heater import HeaterController
from .history import HistoryTracker
from .tasks import BackgroundTasks
from .telemetry import TelemetryLogger

logger = logging.getLogger(__name__)

PATH_COMMAND_LAMP = "commands/lamp"
PATH_COMMAND_SEND_TEMP = "commands/sendTemp"

KEY_COMMAND_ACTIVE = "active"
KEY_COMMAND_TARGET = "target"


@dataclass(frozen=True)
class CommandReceived:
    """Listener callback result, posted to the control queue."""

    path: str
    snapshot: Optional[DocumentSnapshot] = None
    error: Optional[Exception] = None


class RemoteCommandChannel:
    """Applies lamp and sendTemp commands exactly once."""

    def __init__(
        self,
        store: DocumentStore,
        heater: HeaterController,
        telemetry: TelemetryLogger,
        post: Callable[[Any], None],
        tasks: BackgroundTasks,
        history: Optional[HistoryTracker] = None,
    ):
        self.store = store
        self.heater = heater
        self.telemetry = telemetry
        self.post = post
        self.tasks = tasks
        self.history = history

        self._subscriptions: list[Subscription] = []
        self._consumed: dict[str, datetime] = {}

    def start(self) -> None:
        """Start listening to both command documents."""
        for path in (PATH_COMMAND_LAMP, PATH_COMMAND_SEND_TEMP):
            self._subscriptions.append(self.store.listen(path, self._listener(path)))
        logger.info("Listening for remote commands")

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()

    def _listener(self, path: str):
        def on_snapshot(snapshot: Optional[DocumentSnapshot], error: Optional[Exception]) -> None:
            self.post(CommandReceived(path=path, snapshot=snapshot, error=error))

        return on_snapshot

    def handle(self, event: CommandReceived) -> bool:
        """Apply a command snapshot. Must run on the control loop.

        Returns:
            True if a command was consumed
        """
        if event.error is not None:
            logger.warning(f"Listen failed for {event.path}: {event.error}")
            return False

        snapshot = event.snapshot
        if snapshot is None or not snapshot.exists or snapshot.get(KEY_COMMAND_ACTIVE) is not True:
            return False

        if snapshot.update_time is not None:
            if self._consumed.get(event.path) == snapshot.update_time:
                logger.debug(f"Ignoring duplicate delivery of {event.path}")
                return False
            self._consumed[event.path] = snapshot.update_time

        if event.path == PATH_COMMAND_LAMP:
            target = snapshot.get(KEY_COMMAND_TARGET)
            if not isinstance(target, bool):
                logger.warning(f"Ignoring lamp command with invalid target {target!r}")
            else:
                logger.info(f"Remote command: lamp {'on' if target else 'off'}")
                self.heater.set(target)
                if self.history:
                    self.history.add_control_event("command_lamp", f"Remote lamp {'on' if target else 'off'}")
        elif event.path == PATH_COMMAND_SEND_TEMP:
            logger.info("Remote command: send temperature")
            self.telemetry.request_resend()
            if self.history:
                self.history.add_control_event("command_send_temp", "Remote telemetry resend")
        else:
            logger.warning(f"Unknown command path {event.path}")
            return False

        self.tasks.spawn(self._reset(event.path, snapshot.fields), name=f"reset-{event.path}")
        return True

    async def _reset(self, path: str, fields: dict[str, Any]) -> None:
        try:
            await self.store.set(path, {**fields, KEY_COMMAND_ACTIVE: False})
        except StoreError as e:
            logger.warning(f"Failed to reset command {path}: {e}")
