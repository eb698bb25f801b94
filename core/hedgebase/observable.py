"""
Observable values.

A value holder that remembers the latest value and calls its subscribers
synchronously, in the mutating thread, every time a value is published.
Subscribers that need slow work must schedule it themselves.
"""

import threading
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

Subscriber = Callable[[T], None]


class ObservableValue(Generic[T]):
    """Latest-value holder with explicit subscribe/unsubscribe."""

    def __init__(self, initial: T):
        self._value = initial
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()  # guards the subscriber list only

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """Store value and notify every subscriber, even if unchanged."""
        self._value = value
        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            callback(value)

    def update(self, value: T) -> None:
        """Store value and notify only when it differs from the current one."""
        if value != self._value:
            self.set(value)

    def subscribe(self, callback: Subscriber, replay: bool = False) -> Callable[[], None]:
        """Register callback; returns a function that unsubscribes it.

        Args:
            callback: Called with each published value
            replay: Immediately call back with the current value
        """
        with self._lock:
            self._subscribers.append(callback)
        if replay:
            callback(self._value)

        def unsubscribe():
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def map(self, fn: Callable[[T], U]) -> "ObservableValue[U]":
        """Derived observable holding fn(value); republishes only on change."""
        derived: ObservableValue[U] = ObservableValue(fn(self._value))
        self.subscribe(lambda v: derived.update(fn(v)))
        return derived

    def __repr__(self) -> str:
        return f"ObservableValue({self._value!r})"


def combine(fn: Callable[..., U], *sources: ObservableValue) -> ObservableValue[U]:
    """Derived observable computed from several sources.

    Recomputed whenever any source publishes; republishes only on change.
    """

    def compute() -> U:
        return fn(*(source.value for source in sources))

    derived: ObservableValue[U] = ObservableValue(compute())
    for source in sources:
        source.subscribe(lambda _v: derived.update(compute()))
    return derived
