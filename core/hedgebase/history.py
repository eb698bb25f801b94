"""
Control Event History

Simple in-memory record of recent control actions (heater transitions,
alerts, remote commands) for the API. The durable telemetry log lives in the
remote store.
"""

import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone


@dataclass
class ControlEvent:
    """A control action event."""

    timestamp: str  # ISO format
    action: str  # "heater_on", "alert_set", "command_lamp", etc.
    details: str
    category: str | None = None  # Alert category, if any
    temperature: float | None = None  # Fahrenheit


class HistoryTracker:
    """Tracks recent control events."""

    def __init__(self, max_hours: int = 24):
        """Initialize history tracker.

        Args:
            max_hours: How many hours of history to keep
        """
        self.max_hours = max_hours
        self.max_age = timedelta(hours=max_hours)

        self.control_events: deque[ControlEvent] = deque(maxlen=1000)

        self.lock = threading.Lock()

    def add_control_event(
        self,
        action: str,
        details: str,
        category: str | None = None,
        temperature: float | None = None,
        timestamp: datetime | None = None
    ):
        """Log a control action.

        Args:
            action: Action type
            details: Human-readable description
            category: Alert category (if applicable)
            temperature: Temperature at the time (if known)
            timestamp: Optional timestamp (defaults to now)
        """
        ts = timestamp.isoformat() if timestamp else datetime.now(timezone.utc).isoformat()

        event = ControlEvent(
            timestamp=ts,
            action=action,
            details=details,
            category=category,
            temperature=temperature
        )

        with self.lock:
            self.control_events.append(event)
            self._cleanup_old_data()

    def get_control_events(
        self,
        action: str | None = None,
        hours: int | None = None
    ) -> list[dict]:
        """Get control events.

        Args:
            action: Filter by action (None = all actions)
            hours: How many hours back (None = all available)

        Returns:
            List of control events as dicts
        """
        with self.lock:
            events = list(self.control_events)

        if action:
            events = [e for e in events if e.action == action]

        if hours:
            cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
            events = [
                e for e in events
                if datetime.fromisoformat(e.timestamp) > cutoff
            ]

        return [asdict(e) for e in events]

    def clear(self):
        with self.lock:
            self.control_events.clear()

    def _cleanup_old_data(self):
        """Remove events older than max_hours."""
        cutoff = datetime.now(timezone.utc) - self.max_age

        while (self.control_events and
               datetime.fromisoformat(self.control_events[0].timestamp) < cutoff):
            self.control_events.popleft()


# Global instance
history_tracker = HistoryTracker(max_hours=24)
