"""Single-flight guard for aggregation runs, held in the document store."""

import uuid
from contextlib import contextmanager
from typing import Iterator

import structlog

from errors import AggregationBusyError, StoreError
from storage.document_store import DocumentStore


class SingleFlightLock:
    """
    At most one holder per key across every process sharing the store.

    Acquisition is a conditional write that either succeeds immediately or
    raises AggregationBusyError; callers are rejected, not queued. The TTL
    bounds how long a crashed holder can keep the key, so a long-running
    holder calls renew() before each write it must still own the key for.
    """

    def __init__(self, store: DocumentStore, key: str, ttl_sec: float = 300):
        self.log = structlog.get_logger(component="single-flight-lock")
        self._store = store
        self._key = key
        self._ttl_ms = max(1, int(ttl_sec * 1000))

    @property
    def key(self) -> str:
        return self._key

    def renew(self, token: str) -> None:
        """Push the expiry out by a full TTL, or raise AggregationBusyError if the key was lost."""
        if not self._store.extend_lock(self._key, token, self._ttl_ms):
            self.log.error("lock_lost", key=self._key)
            raise AggregationBusyError(f"lock {self._key!r} expired or was taken over mid-run")

    @contextmanager
    def hold(self) -> Iterator[str]:
        token = uuid.uuid4().hex
        if not self._store.try_lock(self._key, token, self._ttl_ms):
            raise AggregationBusyError(f"an aggregation run already holds {self._key!r}")
        try:
            yield token
        finally:
            try:
                released = self._store.release_lock(self._key, token)
            except StoreError as e:
                # The TTL frees the key; the run's own outcome must not be masked.
                self.log.warning("lock_release_failed", key=self._key, error=str(e))
            else:
                if not released:
                    self.log.warning("lock_expired_before_release", key=self._key)
