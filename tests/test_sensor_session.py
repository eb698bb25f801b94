"""Tests for the sensor session state machine driven event by event."""

from __future__ import annotations

import pytest

from core.hedgebase.exceptions import TransportError
from core.hedgebase.models import AlertCategory, ConnectionState
from core.hedgebase.sensor_session import (
    MESSAGE_CONNECT_FAILED,
    MESSAGE_DISCONNECTED,
    RetryDiscovery,
    SensorSession,
)
from core.hedgebase.transport import (
    DeviceFound,
    DiscoveryFinished,
    SensorDisconnected,
    TransportInitFailed,
    TransportReady,
)

from conftest import FakeAlerts, FakeDevice, FakeTransport


class SessionHarness:
    """Session whose posted events are queued for the test to apply."""

    def __init__(self, settings, transport: FakeTransport):
        self.transport = transport
        self.alerts = FakeAlerts()
        self.posted: list = []
        self.delayed: list[tuple[float, object]] = []
        self.session = SensorSession(
            transport,
            settings,
            self.alerts,
            self.posted.append,
            lambda delay, event: self.delayed.append((delay, event)),
        )
        self.states: list[ConnectionState] = []
        self.session.connection.subscribe(self.states.append)

    def pump(self) -> None:
        """Apply posted events until the queue is empty."""
        while self.posted:
            self.session.handle_event(self.posted.pop(0))

    def connect(self, device: FakeDevice) -> None:
        self.session.start()
        self.pump()
        self.transport.find(device)
        self.pump()


@pytest.fixture()
def harness(settings, transport) -> SessionHarness:
    return SessionHarness(settings, transport)


def test_start_initializes_and_scans(harness, settings) -> None:
    harness.session.start()
    assert harness.session.state is ConnectionState.DISCOVERING
    assert harness.posted == [TransportReady()]

    harness.pump()
    assert harness.transport.discovery_calls == [
        (settings.scan_timeout_seconds, settings.name_filter, settings.id_filter)
    ]


def test_device_found_connects(harness, device) -> None:
    harness.connect(device)

    assert harness.session.state is ConnectionState.CONNECTED
    assert harness.session.handle is device
    assert device.listener is harness.session.relay
    assert harness.transport.stop_calls == 1
    assert harness.alerts.resolved == [AlertCategory.DISCONNECTED]


def test_battery_values_forwarded_on_connect(harness) -> None:
    device = FakeDevice(battery=[(42.0, "%", None)])
    harness.session.start()
    harness.pump()
    harness.transport.find(device)
    harness.session.handle_event(harness.posted.pop(0))

    aux = harness.posted.pop(0)
    assert aux.handle is device
    assert (aux.kind, aux.value, aux.unit) == ("battery", 42.0, "%")


def test_connect_failure_raises_alert_and_keeps_scanning(harness) -> None:
    harness.session.start()
    harness.pump()
    harness.transport.find(FakeDevice(connect_result=False))
    harness.pump()

    assert harness.session.state is ConnectionState.DISCOVERING
    assert harness.session.handle is None
    assert harness.alerts.raised == [(AlertCategory.DISCONNECTED, MESSAGE_CONNECT_FAILED)]


def test_discovery_not_started_schedules_retry(settings) -> None:
    harness = SessionHarness(settings, FakeTransport(discovery_result=False))
    harness.session.start()
    harness.pump()

    assert harness.session.device_available.value is False
    assert harness.alerts.raised == [(AlertCategory.DISCONNECTED, MESSAGE_CONNECT_FAILED)]
    assert len(harness.delayed) == 1
    delay, retry = harness.delayed[0]
    assert delay == settings.retry_delay_seconds

    harness.session.handle_event(retry)
    assert harness.transport.release_calls == 1
    assert harness.transport.initialize_calls == 2


def test_stale_retry_ignored(harness, device) -> None:
    harness.session.start()
    harness.pump()
    harness.session.handle_event(DiscoveryFinished())
    _, retry = harness.delayed[0]

    # A device turns up before the retry fires
    harness.transport.find(device)
    harness.pump()
    harness.session.handle_event(retry)

    assert harness.session.state is ConnectionState.CONNECTED
    assert harness.transport.initialize_calls == 1


def test_init_failure_reports_no_device(harness) -> None:
    harness.transport.ready_on_init = False
    harness.session.start()
    harness.session.handle_event(TransportInitFailed())

    assert harness.session.device_available.value is False
    assert isinstance(harness.delayed[0][1], RetryDiscovery)


def test_link_loss_reports_and_rediscovers(harness, device) -> None:
    harness.connect(device)
    device.drop()
    harness.pump()

    assert harness.states == [
        ConnectionState.DISCOVERING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.DISCOVERING,
    ]
    assert harness.session.handle is None
    assert device.disconnect_calls == 1
    assert harness.alerts.raised == [(AlertCategory.DISCONNECTED, MESSAGE_DISCONNECTED)]
    assert harness.transport.initialize_calls == 2
    assert len(harness.transport.discovery_calls) == 2


def test_reconnect_after_link_loss(harness, device) -> None:
    harness.connect(device)
    device.drop()
    harness.pump()

    second = FakeDevice(name="second gadget")
    harness.transport.find(second)
    harness.pump()

    assert harness.session.handle is second
    assert harness.session.state is ConnectionState.CONNECTED
    assert harness.alerts.resolved == [AlertCategory.DISCONNECTED, AlertCategory.DISCONNECTED]


def test_disconnect_from_stale_handle_ignored(harness, device) -> None:
    harness.connect(device)
    harness.session.handle_event(SensorDisconnected(FakeDevice(name="other")))
    assert harness.session.state is ConnectionState.CONNECTED


def test_device_found_while_connected_ignored(harness, device) -> None:
    harness.connect(device)
    other = FakeDevice(name="other")
    harness.session.handle_event(DeviceFound(other))
    assert harness.session.handle is device
    assert other.connect_calls == 0


def test_shutdown_returns_to_idle_and_drops_events(harness, device) -> None:
    harness.connect(device)
    harness.session.shutdown()

    assert harness.session.state is ConnectionState.IDLE
    assert device.disconnect_calls == 1

    harness.session.handle_event(TransportReady())
    assert len(harness.transport.discovery_calls) == 1


class FailingTransport(FakeTransport):
    def start_discovery(self, timeout, name_filter, id_filter) -> bool:
        raise TransportError("adapter busy")


class FailingDevice(FakeDevice):
    def connect(self) -> bool:
        raise TransportError("link refused")


def test_discovery_error_treated_as_no_device(settings) -> None:
    harness = SessionHarness(settings, FailingTransport())
    harness.session.start()
    harness.pump()

    assert harness.session.device_available.value is False
    assert isinstance(harness.delayed[0][1], RetryDiscovery)


def test_connect_error_raises_alert(harness) -> None:
    harness.session.start()
    harness.pump()
    harness.transport.find(FailingDevice())
    harness.pump()

    assert harness.session.handle is None
    assert harness.alerts.raised == [(AlertCategory.DISCONNECTED, MESSAGE_CONNECT_FAILED)]
