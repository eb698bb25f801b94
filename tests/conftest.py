"""Shared fixtures for the Hedgebase test suite.

Provides fake sensor transport/device doubles, a controllable clock and an
in-memory document store used across the unit and controller tests.
"""

from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# sys.path manipulation so that ``import core.hedgebase...`` resolves when
# running pytest from the project root.
# ---------------------------------------------------------------------------
_ROOT = str(Path(__file__).resolve().parent.parent)
if _ROOT not in sys.path:
    sys.path.insert(0, _ROOT)

from core.hedgebase.document_store import InMemoryDocumentStore
from core.hedgebase.models import AlertCategory
from core.hedgebase.settings import HedgebaseSettings
from core.hedgebase.transport import DeviceHandle, SensorTransport, TransportEventRelay

START = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class MutableClock:
    """Clock returning a fixed instant until advanced."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeDevice(DeviceHandle):
    """Sensor handle driven by the test."""

    def __init__(self, name: str = "fake gadget", connect_result: bool = True,
                 battery: list | None = None):
        self.name = name
        self.connect_result = connect_result
        self.battery = battery or []
        self.listener: TransportEventRelay | None = None
        self.connect_calls = 0
        self.disconnect_calls = 0

    def connect(self) -> bool:
        self.connect_calls += 1
        return self.connect_result

    def disconnect(self) -> None:
        self.disconnect_calls += 1

    def subscribe(self, listener: TransportEventRelay) -> None:
        self.listener = listener

    def battery_values(self):
        return list(self.battery)

    def emit_reading(self, temperature: float, unit: str = "°F",
                     timestamp: datetime = START) -> None:
        self.listener.on_new_reading(self, temperature, unit, timestamp)

    def emit_aux(self, value: float, unit: str = "%", kind: str = "battery") -> None:
        self.listener.on_aux_value(self, kind, value, unit, START)

    def drop(self) -> None:
        self.listener.on_disconnected(self)


class FakeTransport(SensorTransport):
    """Transport recording calls; becomes ready synchronously on initialize."""

    def __init__(self, ready_on_init: bool = True, discovery_result: bool = True):
        super().__init__()
        self.ready_on_init = ready_on_init
        self.discovery_result = discovery_result
        self.initialize_calls = 0
        self.discovery_calls: list[tuple] = []
        self.stop_calls = 0
        self.release_calls = 0

    def initialize(self) -> None:
        self.initialize_calls += 1
        if self.ready_on_init:
            self.callbacks.on_ready()

    def start_discovery(self, timeout, name_filter, id_filter) -> bool:
        self.discovery_calls.append((timeout, list(name_filter), list(id_filter)))
        return self.discovery_result

    def stop_discovery(self) -> None:
        self.stop_calls += 1

    def release(self) -> None:
        self.release_calls += 1

    def find(self, device: FakeDevice) -> None:
        self.callbacks.on_device_found(device)


class FakeAlerts:
    """Records fire-and-forget alert requests."""

    def __init__(self):
        self.raised: list[tuple[AlertCategory, str]] = []
        self.resolved: list[AlertCategory] = []

    def raise_alert(self, category: AlertCategory, message: str) -> None:
        self.raised.append((category, message))

    def resolve_alert(self, category: AlertCategory) -> None:
        self.resolved.append(category)


def archived_alerts(store: InMemoryDocumentStore) -> list[dict]:
    """Archived alert documents (the alerts collection minus active slots)."""
    active_ids = {category.value for category in AlertCategory}
    return [doc for doc_id, doc in store.collection("alerts").items() if doc_id not in active_ids]


def telemetry_log(store: InMemoryDocumentStore) -> list[dict]:
    """Appended telemetry points (the temperatures collection minus current)."""
    return [doc for doc_id, doc in store.collection("temperatures").items() if doc_id != "current"]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> HedgebaseSettings:
    """Default settings with a short retry delay."""
    return HedgebaseSettings(retry_delay_seconds=0.01)


@pytest.fixture()
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture()
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def device() -> FakeDevice:
    return FakeDevice()
