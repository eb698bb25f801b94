"""
Simple Firestore REST client for Hedgebase

Minimal DocumentStore implementation on top of the Firestore REST API.
Requests are blocking and run in a worker thread so the control loop never
waits on the network. Listeners are implemented by polling.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Any

import requests

from .document_store import DocumentSnapshot, DocumentStore, SnapshotCallback, Subscription
from .exceptions import StoreError

logger = logging.getLogger(__name__)

FIRESTORE_URL = "https://firestore.googleapis.com/v1"


def encode_value(value: Any) -> dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        ts = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {"timestampValue": ts}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store value of type {type(value).__name__}")


def encode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: encode_value(value) for key, value in fields.items()}


def parse_timestamp(ts: str) -> datetime:
    """Parse an RFC 3339 timestamp (Firestore uses up to nanosecond precision)."""
    ts = ts.replace("Z", "+00:00")
    # Python only handles microseconds
    ts = re.sub(r"\.(\d{6})\d+", r".\1", ts)
    return datetime.fromisoformat(ts)


def decode_value(value: dict[str, Any]) -> Any:
    """Decode a Firestore typed value."""
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    raise ValueError(f"Unsupported Firestore value: {value}")


def decode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


class FirestoreClient(DocumentStore):
    """Firestore REST API client."""

    def __init__(
        self,
        project: str,
        token: str | None = None,
        database: str = "(default)",
        base_url: str = FIRESTORE_URL,
        poll_interval_seconds: float = 5.0,
    ):
        """Initialize Firestore client.

        Args:
            project: Google Cloud project id
            token: OAuth2 bearer token (None for the emulator)
            database: Firestore database id
            base_url: API root, override to point at the emulator
            poll_interval_seconds: How often listeners poll their document
        """
        self.documents_url = (
            f"{base_url.rstrip('/')}/projects/{project}/databases/{database}/documents"
        )
        self.poll_interval_seconds = poll_interval_seconds
        # Create a session for connection pooling
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})
        # Set default timeout
        self.timeout = 10

        self._poll_tasks: set[asyncio.Task] = set()

    def _url(self, path: str) -> str:
        return f"{self.documents_url}/{path.strip('/')}"

    def _snapshot_from_document(self, path: str, document: dict[str, Any]) -> DocumentSnapshot:
        update_time = document.get("updateTime")
        return DocumentSnapshot(
            path=path,
            exists=True,
            fields=decode_fields(document.get("fields", {})),
            update_time=parse_timestamp(update_time) if update_time else None,
        )

    # Blocking calls, run via asyncio.to_thread

    def _get(self, path: str) -> DocumentSnapshot:
        try:
            response = self.session.get(self._url(path), timeout=self.timeout)
            if response.status_code == 404:
                return DocumentSnapshot(path=path, exists=False)
            response.raise_for_status()
            return self._snapshot_from_document(path, response.json())
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to read {path}: {e}")
        except ValueError as e:
            raise StoreError(f"Malformed document at {path}: {e}")

    def _set(self, path: str, fields: dict[str, Any]) -> None:
        try:
            response = self.session.patch(
                self._url(path), json={"fields": encode_fields(fields)}, timeout=self.timeout
            )
            response.raise_for_status()
            logger.debug(f"Set {path}")
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to write {path}: {e}")

    def _add(self, collection: str, fields: dict[str, Any]) -> str:
        try:
            response = self.session.post(
                self._url(collection), json={"fields": encode_fields(fields)}, timeout=self.timeout
            )
            response.raise_for_status()
            name = response.json().get("name", "")
            doc_id = name.rsplit("/", 1)[-1]
            logger.debug(f"Added {collection}/{doc_id}")
            return doc_id
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to add to {collection}: {e}")
        except ValueError as e:
            raise StoreError(f"Malformed response adding to {collection}: {e}")

    def _delete(self, path: str) -> None:
        try:
            response = self.session.delete(self._url(path), timeout=self.timeout)
            response.raise_for_status()
            logger.debug(f"Deleted {path}")
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to delete {path}: {e}")

    # DocumentStore

    async def get(self, path: str) -> DocumentSnapshot:
        return await asyncio.to_thread(self._get, path)

    async def set(self, path: str, fields: dict[str, Any]) -> None:
        await asyncio.to_thread(self._set, path, fields)

    async def add(self, collection: str, fields: dict[str, Any]) -> str:
        return await asyncio.to_thread(self._add, collection, fields)

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._delete, path)

    def listen(self, path: str, callback: SnapshotCallback) -> Subscription:
        """Poll path and call back on every change. Must be called from the event loop."""
        task = asyncio.get_running_loop().create_task(self._poll(path, callback))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return Subscription(task.cancel)

    async def _poll(self, path: str, callback: SnapshotCallback) -> None:
        last_seen: tuple[bool, datetime | None] | None = None
        while True:
            try:
                snapshot = await self.get(path)
            except StoreError as e:
                callback(None, e)
            else:
                seen = (snapshot.exists, snapshot.update_time)
                if seen != last_seen:
                    last_seen = seen
                    callback(snapshot, None)
            await asyncio.sleep(self.poll_interval_seconds)

    async def close(self) -> None:
        for task in list(self._poll_tasks):
            task.cancel()
        self.session.close()
