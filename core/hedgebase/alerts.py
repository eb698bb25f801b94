"""
Alert lifecycle management.

Each alert category has at most one active document in the store
(alerts/<category>). Clearing an active alert copies it, stamped with an end
time, into the alerts archive collection and deletes the active document.

Every operation starts with a read of the active document and does nothing if
that read fails, so transient store errors never make alerts flap. Setting an
alert that is already active is a no-op for every category, which keeps the
original start time.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from .document_store import DocumentStore
from .exceptions import StoreError
from .history import HistoryTracker
from .models import KEY_ALERT_ACTIVE, AlertCategory, AlertRecord
from .tasks import BackgroundTasks

logger = logging.getLogger(__name__)

PATH_ALERTS = "alerts"


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


class AlertManager:
    """Idempotent set/clear of per-category alert documents."""

    def __init__(
        self,
        store: DocumentStore,
        tasks: Optional[BackgroundTasks] = None,
        history: Optional[HistoryTracker] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize alert manager.

        Args:
            store: Remote document store
            tasks: Task tracker used by raise_alert/resolve_alert
            history: Optional tracker for alert events
            clock: Source of alert timestamps
        """
        self.store = store
        self.tasks = tasks or BackgroundTasks()
        self.history = history
        self.clock = clock

        self._locks = {category: asyncio.Lock() for category in AlertCategory}
        # Last state seen in the store, for status reporting only
        self._known: dict[AlertCategory, bool] = {}

    @property
    def active_categories(self) -> set[AlertCategory]:
        """Categories last seen active in the store."""
        return {category for category, active in self._known.items() if active}

    async def _read(self, category: AlertCategory) -> AlertRecord | None:
        """Active record for category, None if absent.

        Raises:
            StoreError: If the read fails
        """
        snapshot = await self.store.get(category.path)
        if not snapshot.exists:
            return None
        return AlertRecord.from_fields(category, snapshot.fields)

    async def set_alert(self, category: AlertCategory, message: str) -> bool:
        """Create the active alert for category unless one is already active.

        Returns:
            True if a new alert document was written
        """
        async with self._locks[category]:
            try:
                record = await self._read(category)
            except StoreError as e:
                logger.warning(f"Skipping {category.value} alert, read failed: {e}")
                return False

            if record is not None and record.active:
                self._known[category] = True
                logger.debug(f"{category.value} alert already active")
                return False

            logger.info(f"Setting {category.value} alert: {message}")
            record = AlertRecord(category=category, message=message, active=True, start_time=self.clock())
            try:
                await self.store.set(category.path, record.to_fields())
            except StoreError as e:
                # The write may still have landed; the next read decides
                self._known.pop(category, None)
                logger.warning(f"Failed to set {category.value} alert: {e}")
                return False

            self._known[category] = True
            if self.history:
                self.history.add_control_event("alert_set", message, category=category.value)
            return True

    async def clear_alert(self, category: AlertCategory) -> bool:
        """Archive and delete the active alert for category, if there is one.

        Returns:
            True if an active alert was archived and removed
        """
        async with self._locks[category]:
            try:
                snapshot = await self.store.get(category.path)
            except StoreError as e:
                logger.warning(f"Skipping {category.value} alert clear, read failed: {e}")
                return False

            if not snapshot.exists or snapshot.get(KEY_ALERT_ACTIVE) is not True:
                self._known[category] = False
                logger.debug(f"{category.value} alert not set, skipping clear")
                return False

            logger.info(f"Clearing {category.value} alert")
            # Copy cleared alert out of the active namespace; keep any extra fields
            record = AlertRecord.from_fields(category, snapshot.fields)
            record.active = False
            record.end_time = self.clock()
            archived = {**snapshot.fields, **record.to_fields()}

            try:
                await self.store.add(PATH_ALERTS, archived)
                await self.store.delete(category.path)
            except StoreError as e:
                self._known.pop(category, None)
                logger.warning(f"Failed to clear {category.value} alert: {e}")
                return False

            self._known[category] = False
            if self.history:
                self.history.add_control_event("alert_cleared", record.message, category=category.value)
            return True

    def raise_alert(self, category: AlertCategory, message: str) -> None:
        """Schedule set_alert on the control loop."""
        self.tasks.spawn(self.set_alert(category, message), name=f"set-alert-{category.value}")

    def resolve_alert(self, category: AlertCategory) -> None:
        """Schedule clear_alert on the control loop."""
        self.tasks.spawn(self.clear_alert(category), name=f"clear-alert-{category.value}")
