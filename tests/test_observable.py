"""Unit tests for ObservableValue, derived values and the heater controller."""

from __future__ import annotations

from core.hedgebase.heater import HeaterController
from core.hedgebase.observable import ObservableValue, combine


class TestObservableValue:
    """Publish/subscribe semantics."""

    def test_set_notifies_even_when_unchanged(self) -> None:
        value = ObservableValue(1)
        seen: list[int] = []
        value.subscribe(seen.append)
        value.set(1)
        value.set(1)
        assert seen == [1, 1]

    def test_update_notifies_only_on_change(self) -> None:
        value = ObservableValue("a")
        seen: list[str] = []
        value.subscribe(seen.append)
        value.update("a")
        value.update("b")
        assert seen == ["b"]

    def test_replay_and_unsubscribe(self) -> None:
        value = ObservableValue(5)
        seen: list[int] = []
        unsubscribe = value.subscribe(seen.append, replay=True)
        assert seen == [5]
        assert value.subscriber_count == 1

        unsubscribe()
        value.set(6)
        assert seen == [5]
        assert value.subscriber_count == 0

    def test_map_republishes_on_change_only(self) -> None:
        value = ObservableValue(1)
        parity = value.map(lambda v: v % 2)
        seen: list[int] = []
        parity.subscribe(seen.append)
        value.set(3)
        value.set(4)
        assert parity.value == 0
        assert seen == [0]

    def test_combine(self) -> None:
        a = ObservableValue(1)
        b = ObservableValue(2)
        total = combine(lambda x, y: x + y, a, b)
        assert total.value == 3
        a.set(10)
        b.set(5)
        assert total.value == 15


class TestHeaterController:
    """Heater intent is on by default and republished on every request."""

    def test_default_on(self) -> None:
        assert HeaterController().is_on is True

    def test_every_request_notifies(self) -> None:
        heater = HeaterController()
        seen: list[bool] = []
        heater.status.subscribe(seen.append)
        heater.set(True)
        heater.set(True)
        heater.off()
        assert seen == [True, True, False]
        assert heater.is_on is False
