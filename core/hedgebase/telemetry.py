"""
Telemetry logging.

Temperatures are logged to the store twice: appended to the temperatures
collection and mirrored into temperatures/current, which is overwritten on
every write. Writes are spaced at least one debounce interval apart unless a
heater transition or a remote resend request forces one.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .document_store import DocumentStore
from .exceptions import StoreError
from .models import KEY_TIME, TelemetryPoint

logger = logging.getLogger(__name__)

PATH_TEMPS = "temperatures"
PATH_TEMP_CURRENT = f"{PATH_TEMPS}/current"

MIN_INSTANT = datetime.min.replace(tzinfo=timezone.utc)


def utc_now() -> datetime:
    """Current time at second resolution."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TelemetryLogger:
    """Decides which readings become telemetry points and writes them."""

    def __init__(
        self,
        store: DocumentStore,
        debounce: timedelta = timedelta(minutes=15),
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.debounce = debounce
        self.clock = clock

        self.last_confirmed: datetime = MIN_INSTANT
        self.last_point: Optional[TelemetryPoint] = None
        self.write_count = 0

        self._resend_requested = False
        self._force_pending = False  # forced write waiting for a first temperature
        self._lock = asyncio.Lock()

    @property
    def write_pending(self) -> bool:
        """True if the next reading will be written unconditionally."""
        return self._resend_requested or self._force_pending

    def request_resend(self) -> None:
        """Reset the debounce clock so the next reading is written."""
        logger.info("Telemetry resend requested")
        self.last_confirmed = MIN_INSTANT
        self._resend_requested = True

    async def on_reading(self, temp_f: float, lamp_on: bool) -> bool:
        """Write a point for this reading if the debounce window has passed.

        The local clock is checked first. When it is stale the remote current
        snapshot is consulted, so a restart does not duplicate a recent point.
        If that read fails the local clock alone decides.

        Returns:
            True if a point was written
        """
        async with self._lock:
            now = self.clock()

            if self.write_pending:
                return await self._write(temp_f, lamp_on, now)

            if now - self.last_confirmed < self.debounce:
                return False

            try:
                snapshot = await self.store.get(PATH_TEMP_CURRENT)
            except StoreError as e:
                logger.warning(f"Could not check current telemetry, using local clock: {e}")
            else:
                remote_time = snapshot.get(KEY_TIME) if snapshot.exists else None
                if isinstance(remote_time, datetime) and now - _as_utc(remote_time) < self.debounce:
                    logger.debug(f"Remote telemetry is fresh ({remote_time}), skipping")
                    self.last_confirmed = _as_utc(remote_time)
                    return False

            return await self._write(temp_f, lamp_on, now)

    async def force_write(self, temp_f: float | None, lamp_on: bool) -> bool:
        """Write immediately, bypassing the debounce window.

        Without a temperature, or when the store rejects the write, the point is
        written with the next reading instead.
        """
        if temp_f is None:
            self._force_pending = True
            return False

        async with self._lock:
            written = await self._write(temp_f, lamp_on, self.clock())
            if not written:
                # A lost transition is written with the next reading instead
                self._force_pending = True
            return written

    async def _write(self, temp_f: float, lamp_on: bool, now: datetime) -> bool:
        point = TelemetryPoint(temp=round(temp_f, 2), time=now, lamp_on=lamp_on)
        data = point.to_fields()

        logger.debug(f"Recording temperature {point.temp} at {now}")
        try:
            await self.store.add(PATH_TEMPS, data)
        except StoreError as e:
            # Debounce clock untouched: the next reading retries
            logger.warning(f"Failed to record temperature: {e}")
            return False

        # The point is in the log; a stale current slot is refreshed by the next write
        try:
            await self.store.set(PATH_TEMP_CURRENT, data)
        except StoreError as e:
            logger.warning(f"Failed to update current temperature: {e}")

        self.last_confirmed = now
        self.last_point = point
        self.write_count += 1
        self._resend_requested = False
        self._force_pending = False
        return True
