"""
Remote document store interface.

Document-oriented key-value store with get/set/add/delete and push listeners.
Paths alternate collection/document ("alerts/battery"); a collection path has
an odd number of segments ("alerts").
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from .exceptions import StoreError


@dataclass(frozen=True)
class DocumentSnapshot:
    """Result of reading one document."""

    path: str
    exists: bool
    fields: dict[str, Any] = field(default_factory=dict)
    update_time: Optional[datetime] = None

    def get(self, key: str, default: Any = None) -> Any:
        return self.fields.get(key, default)


# Listener callback: (snapshot, None) on success, (None, error) on failure
SnapshotCallback = Callable[[Optional[DocumentSnapshot], Optional[Exception]], None]


class Subscription:
    """Handle returned by DocumentStore.listen."""

    def __init__(self, cancel: Callable[[], None]):
        self._cancel = cancel
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


class DocumentStore(ABC):
    """Asynchronous document store. All failures raise StoreError."""

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        ...

    @abstractmethod
    async def set(self, path: str, fields: dict[str, Any]) -> None:
        """Overwrite the document at path."""

    @abstractmethod
    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        """Create a document with a generated id; returns the id."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    def listen(self, path: str, callback: SnapshotCallback) -> Subscription:
        """Push the current snapshot and every later change to callback."""

    async def close(self) -> None:
        pass


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and tests.

    Listeners are called synchronously from the mutating call. Setting
    fail_reads or fail_writes makes the matching operations raise StoreError,
    which lets simulations exercise the fail-open paths.
    """

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}
        self.update_times: dict[str, datetime] = {}
        self._listeners: dict[str, list[SnapshotCallback]] = {}
        self._last_update: datetime | None = None
        self.fail_reads = False
        self.fail_writes = False

    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        # Update times are strictly increasing so snapshots can be told apart
        if self._last_update is not None and now <= self._last_update:
            now = self._last_update + timedelta(microseconds=1)
        self._last_update = now
        return now

    def _snapshot(self, path: str) -> DocumentSnapshot:
        if path in self.documents:
            return DocumentSnapshot(
                path=path,
                exists=True,
                fields=dict(self.documents[path]),
                update_time=self.update_times[path],
            )
        return DocumentSnapshot(path=path, exists=False)

    def _check_write(self, path: str) -> None:
        if self.fail_writes:
            raise StoreError(f"Write to {path} failed")

    def _notify(self, path: str) -> None:
        snapshot = self._snapshot(path)
        for callback in list(self._listeners.get(path, [])):
            callback(snapshot, None)

    async def get(self, path: str) -> DocumentSnapshot:
        if self.fail_reads:
            raise StoreError(f"Read of {path} failed")
        return self._snapshot(path)

    async def set(self, path: str, fields: dict[str, Any]) -> None:
        self._check_write(path)
        self.documents[path] = dict(fields)
        self.update_times[path] = self._now()
        self._notify(path)

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        self._check_write(collection)
        doc_id = uuid.uuid4().hex[:20]
        path = f"{collection}/{doc_id}"
        self.documents[path] = dict(fields)
        self.update_times[path] = self._now()
        return doc_id

    async def delete(self, path: str) -> None:
        self._check_write(path)
        if self.documents.pop(path, None) is not None:
            self.update_times.pop(path, None)
            self._notify(path)

    def listen(self, path: str, callback: SnapshotCallback) -> Subscription:
        self._listeners.setdefault(path, []).append(callback)
        callback(self._snapshot(path), None)

        def cancel():
            callbacks = self._listeners.get(path, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return Subscription(cancel)

    def collection(self, collection: str) -> dict[str, dict[str, Any]]:
        """Documents directly inside a collection keyed by id, oldest first."""
        prefix = f"{collection}/"
        paths = [
            p for p in self.documents
            if p.startswith(prefix) and "/" not in p[len(prefix):]
        ]
        paths.sort(key=lambda p: self.update_times[p])
        return {p[len(prefix):]: dict(self.documents[p]) for p in paths}
