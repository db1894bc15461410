"""Raw event collection access: incremental reads for aggregation and appends for ingestion."""

from datetime import datetime

from models.events import Event, to_epoch_ms
from storage.document_store import DocumentStore


class EventReader:
    """
    Reads events for an aggregation run. Each read is a single store call so the
    batch is a consistent snapshot. Returned order is not part of the contract.
    """

    def __init__(self, store: DocumentStore, collection: str = "libra"):
        self._store = store
        self._collection = collection

    def fetch_all(self) -> list[Event]:
        return [Event.from_document(doc) for doc in self._store.scan_events(self._collection)]

    def fetch_since(self, ts: datetime) -> list[Event]:
        """Events strictly newer than `ts`; the boundary event itself was already processed."""
        documents = self._store.scan_events(
            self._collection, start_ms=to_epoch_ms(ts), start_exclusive=True
        )
        return [Event.from_document(doc) for doc in documents]


class EventWriter:
    def __init__(self, store: DocumentStore, collection: str = "libra"):
        self._store = store
        self._collection = collection

    def append(self, event: Event) -> str:
        return self._store.insert_event(self._collection, event.to_document(), event.epoch_ms)
