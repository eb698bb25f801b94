"""Tests for the in-memory control event history."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from core.hedgebase.history import HistoryTracker


def test_filter_by_action() -> None:
    tracker = HistoryTracker()
    tracker.add_control_event("heater_on", "Heat lamp turned on", temperature=72.0)
    tracker.add_control_event("alert_set", "Too cold", category="temperature")

    events = tracker.get_control_events(action="alert_set")
    assert len(events) == 1
    assert events[0]["category"] == "temperature"


def test_old_events_pruned() -> None:
    tracker = HistoryTracker(max_hours=1)
    tracker.add_control_event(
        "heater_on", "old", timestamp=datetime.now(timezone.utc) - timedelta(hours=3)
    )
    tracker.add_control_event("heater_off", "recent")
    assert [e["details"] for e in tracker.get_control_events()] == ["recent"]


def test_hours_window() -> None:
    tracker = HistoryTracker(max_hours=24)
    tracker.add_control_event(
        "heater_on", "earlier", timestamp=datetime.now(timezone.utc) - timedelta(hours=5)
    )
    tracker.add_control_event("heater_off", "now")
    assert len(tracker.get_control_events()) == 2
    assert [e["details"] for e in tracker.get_control_events(hours=2)] == ["now"]


def test_clear() -> None:
    tracker = HistoryTracker()
    tracker.add_control_event("command_lamp", "Remote lamp off")
    tracker.clear()
    assert tracker.get_control_events() == []
