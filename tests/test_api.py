"""Tests for the HTTP API with a stand-in controller."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend import api
from core.hedgebase.history import HistoryTracker
from core.hedgebase.observable import ObservableValue


class StubView:
    def __init__(self, toggle: bool):
        self.toggle_enabled = ObservableValue(toggle)


class StubController:
    """Records requests instead of posting them to a control loop."""

    def __init__(self, toggle: bool = True):
        self.running = True
        self.view = StubView(toggle)
        self.history = HistoryTracker()
        self.heater_requests: list[bool] = []
        self.resends = 0

    def status(self) -> dict:
        return {"temperature": 76.0, "zone": "COMFORT", "heater_on": True}

    def request_heater(self, on: bool) -> None:
        self.heater_requests.append(on)

    def request_resend(self) -> None:
        self.resends += 1


@pytest.fixture()
def client():
    app = FastAPI()
    app.include_router(api.router)
    yield TestClient(app)
    api.controller = None


def test_health_without_controller(client) -> None:
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["controller_running"] is False


def test_status_unavailable_without_controller(client) -> None:
    assert client.get("/api/status").status_code == 503


def test_status(client) -> None:
    api.controller = StubController()
    response = client.get("/api/status")
    assert response.status_code == 200
    assert response.json()["zone"] == "COMFORT"


def test_heater_toggle(client) -> None:
    controller = StubController(toggle=True)
    api.controller = controller
    response = client.post("/api/heater", json={"on": False})
    assert response.status_code == 200
    assert response.json() == {"success": True, "requested": False}
    assert controller.heater_requests == [False]


def test_heater_toggle_disabled_outside_comfort(client) -> None:
    controller = StubController(toggle=False)
    api.controller = controller
    response = client.post("/api/heater", json={"on": False})
    assert response.status_code == 409
    assert controller.heater_requests == []


def test_heater_request_validation(client) -> None:
    api.controller = StubController()
    assert client.post("/api/heater", json={}).status_code == 422


def test_resend(client) -> None:
    controller = StubController()
    api.controller = controller
    assert client.post("/api/telemetry/resend").json() == {"success": True}
    assert controller.resends == 1


def test_events(client) -> None:
    controller = StubController()
    controller.history.add_control_event("heater_off", "Heat lamp turned off", temperature=80.0)
    api.controller = controller

    response = client.get("/api/events", params={"hours": 2})
    body = response.json()
    assert body["count"] == 1
    assert body["events"][0]["action"] == "heater_off"
    assert client.get("/api/events", params={"hours": 0}).status_code == 422
