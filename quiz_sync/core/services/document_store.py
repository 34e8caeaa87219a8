"""Document store collaborator with real-time change notification."""

from __future__ import annotations

from abc import ABC, abstractmethod
import copy
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from threading import RLock
import time
from typing import Any, Callable, Mapping
from uuid import uuid4

from quiz_sync.core.errors import DocumentNotFoundError, StoreUnavailableError

logger = logging.getLogger(__name__)

Record = dict[str, Any]
RecordFilter = Mapping[str, Any]
ChangeListener = Callable[[list[Record]], None]
Unsubscribe = Callable[[], None]


class _ServerTimestampSentinel:
    """Placeholder replaced by the store with its own timestamp on write."""

    _instance: _ServerTimestampSentinel | None = None

    def __new__(cls) -> _ServerTimestampSentinel:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestampSentinel()


@dataclass(frozen=True, slots=True)
class ServerTimestamp:
    """Store-assigned timestamp, kept in the store's native seconds/nanos form."""

    seconds: int
    nanos: int = 0

    @classmethod
    def from_millis(cls, millis: int) -> ServerTimestamp:
        seconds, remainder = divmod(int(millis), 1000)
        return cls(seconds=seconds, nanos=remainder * 1_000_000)

    def to_millis(self) -> int:
        return self.seconds * 1000 + self.nanos // 1_000_000

    def to_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.to_millis() / 1000, tz=timezone.utc)


def matches_filter(record: Mapping[str, Any], record_filter: RecordFilter | None) -> bool:
    """Equality filter; a set, frozenset, list or tuple value means "field in values"."""
    if not record_filter:
        return True
    for key, expected in record_filter.items():
        value = record.get(key)
        if isinstance(expected, (set, frozenset, list, tuple)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


class DocumentStore(ABC):
    """Minimal document-store contract the quiz services depend on."""

    @abstractmethod
    def create(self, collection: str, data: Mapping[str, Any]) -> str:
        """Insert a new document and return its generated id."""

    @abstractmethod
    def set(self, collection: str, document_id: str, data: Mapping[str, Any]) -> None:
        """Create or fully replace the document with the given id."""

    @abstractmethod
    def get(self, collection: str, document_id: str) -> Record | None:
        """Point read; returns None when the document does not exist."""

    @abstractmethod
    def update(self, collection: str, document_id: str, partial: Mapping[str, Any]) -> None:
        """Merge fields into an existing document; raises DocumentNotFoundError."""

    @abstractmethod
    def delete(self, collection: str, document_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    @abstractmethod
    def get_all(self, collection: str, record_filter: RecordFilter | None = None) -> list[Record]:
        """Return every document matching the filter."""

    @abstractmethod
    def subscribe(
        self,
        collection: str,
        record_filter: RecordFilter | None,
        on_change: ChangeListener,
    ) -> Unsubscribe:
        """Deliver matching records now and after every change to the collection."""

    @abstractmethod
    def server_timestamp(self) -> ServerTimestamp:
        """Return the store's current authoritative time."""


@dataclass(slots=True)
class _Subscription:
    collection: str
    record_filter: RecordFilter | None
    on_change: ChangeListener
    active: bool = True


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-process store used by the service and the tests."""

    def __init__(self, time_source: Callable[[], int] | None = None) -> None:
        self._lock = RLock()
        self._collections: dict[str, dict[str, Record]] = {}
        self._subscriptions: list[_Subscription] = []
        self._time_source = time_source or (lambda: time.time_ns() // 1_000_000)
        self.available: bool = True

    # --- Writes ---

    def create(self, collection: str, data: Mapping[str, Any]) -> str:
        document_id = uuid4().hex
        self.set(collection, document_id, data)
        return document_id

    def set(self, collection: str, document_id: str, data: Mapping[str, Any]) -> None:
        with self._lock:
            self._ensure_available()
            documents = self._collections.setdefault(collection, {})
            record = self._resolve_sentinels(dict(data))
            record["id"] = document_id
            documents[document_id] = record
        self._notify(collection)

    def update(self, collection: str, document_id: str, partial: Mapping[str, Any]) -> None:
        with self._lock:
            self._ensure_available()
            documents = self._collections.get(collection, {})
            if document_id not in documents:
                raise DocumentNotFoundError(collection, document_id)
            documents[document_id].update(self._resolve_sentinels(dict(partial)))
            documents[document_id]["id"] = document_id
        self._notify(collection)

    def delete(self, collection: str, document_id: str) -> None:
        with self._lock:
            self._ensure_available()
            removed = self._collections.get(collection, {}).pop(document_id, None)
        if removed is not None:
            self._notify(collection)

    # --- Reads ---

    def get(self, collection: str, document_id: str) -> Record | None:
        with self._lock:
            self._ensure_available()
            record = self._collections.get(collection, {}).get(document_id)
            return copy.deepcopy(record) if record is not None else None

    def get_all(self, collection: str, record_filter: RecordFilter | None = None) -> list[Record]:
        with self._lock:
            self._ensure_available()
            return self._matching(collection, record_filter)

    def server_timestamp(self) -> ServerTimestamp:
        with self._lock:
            self._ensure_available()
            return ServerTimestamp.from_millis(self._time_source())

    # --- Subscriptions ---

    def subscribe(
        self,
        collection: str,
        record_filter: RecordFilter | None,
        on_change: ChangeListener,
    ) -> Unsubscribe:
        subscription = _Subscription(
            collection=collection,
            record_filter=dict(record_filter) if record_filter else None,
            on_change=on_change,
        )
        with self._lock:
            self._ensure_available()
            self._subscriptions.append(subscription)
            initial = self._matching(collection, subscription.record_filter)
        on_change(initial)

        def unsubscribe() -> None:
            with self._lock:
                subscription.active = False
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def subscriber_count(self, collection: str | None = None) -> int:
        with self._lock:
            return sum(
                1 for sub in self._subscriptions if collection is None or sub.collection == collection
            )

    # --- Internals ---

    def _ensure_available(self) -> None:
        if not self.available:
            raise StoreUnavailableError("Document store is unavailable.")

    def _matching(self, collection: str, record_filter: RecordFilter | None) -> list[Record]:
        documents = self._collections.get(collection, {})
        return [
            copy.deepcopy(record)
            for record in documents.values()
            if matches_filter(record, record_filter)
        ]

    def _resolve_sentinels(self, data: Record) -> Record:
        now: ServerTimestamp | None = None
        resolved: Record = {}
        for key, value in data.items():
            if value is SERVER_TIMESTAMP:
                if now is None:
                    now = ServerTimestamp.from_millis(self._time_source())
                resolved[key] = now
            else:
                resolved[key] = copy.deepcopy(value)
        return resolved

    def _notify(self, collection: str) -> None:
        with self._lock:
            deliveries = [
                (sub, self._matching(collection, sub.record_filter))
                for sub in self._subscriptions
                if sub.collection == collection
            ]
        for subscription, records in deliveries:
            if not subscription.active:
                continue
            try:
                subscription.on_change(records)
            except Exception:
                logger.exception("Change listener for %s failed", collection)
