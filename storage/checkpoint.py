"""Checkpoint persistence: the 'last processed' marker plus the carried-forward action rollup."""

from models.rollups import Checkpoint, decode_document
from storage.document_store import DocumentStore

CHECKPOINT_DOC_ID = "metadata"


class CheckpointStore:
    def __init__(self, store: DocumentStore, collection: str = "aggregates"):
        self._store = store
        self._collection = collection

    def load(self) -> Checkpoint | None:
        """
        None means no run has completed yet and the full history must be processed.
        A document that exists but does not decode raises DecodeError: treating
        it as absent would reprocess and double-count everything.
        """
        document = self._store.get_document(self._collection, CHECKPOINT_DOC_ID)
        if document is None:
            return None
        return decode_document(Checkpoint, document, f"{self._collection}/{CHECKPOINT_DOC_ID}")

    def save(self, checkpoint: Checkpoint) -> None:
        self._store.upsert_document(
            self._collection, CHECKPOINT_DOC_ID, checkpoint.model_dump(mode="json")
        )
