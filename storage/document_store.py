"""
Document store handle used by the core.

The core only needs a handful of primitives from the store: keyed documents
with native create-or-replace, an append-only event collection indexed by
timestamp, and a conditional-write lock. `RedisDocumentStore` is the
production backend; `MemoryDocumentStore` backs local runs and tests.
"""

import bisect
import itertools
import json
import threading
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any, Iterator

import redis

from config import Settings
from storage.redis_client import RedisClient


def _loads(payload: str) -> Any:
    """Parse a stored payload; unparseable text is returned as-is for the caller to reject."""
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        return payload


def _score_bounds(
    start_ms: float | None, end_ms: float | None, start_exclusive: bool
) -> tuple[str, str]:
    if start_ms is None:
        lo = "-inf"
    else:
        lo = f"({start_ms!r}" if start_exclusive else repr(start_ms)
    hi = "+inf" if end_ms is None else repr(end_ms)
    return lo, hi


class DocumentStore(ABC):
    """Opaque store handle. All failures surface as StoreError."""

    @abstractmethod
    def get_document(self, collection: str, doc_id: str) -> Any | None:
        """Return the stored document, or None if the slot does not exist."""

    @abstractmethod
    def upsert_document(self, collection: str, doc_id: str, document: dict) -> None:
        """Create or replace a document in a single store operation."""

    @abstractmethod
    def insert_event(self, collection: str, document: dict, epoch_ms: float) -> str:
        """Append a raw event under a generated document id and return the id."""

    @abstractmethod
    def scan_events(
        self,
        collection: str,
        start_ms: float | None = None,
        end_ms: float | None = None,
        *,
        start_exclusive: bool = False,
        descending: bool = False,
        page_size: int | None = None,
    ) -> Iterator[Any]:
        """
        Yield stored event documents whose timestamp lies in the range.
        `end_ms` is always inclusive. With page_size=None the range is read in
        a single store call, which gives a consistent snapshot.
        """

    @abstractmethod
    def try_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        """Take the lock if free. Never blocks."""

    @abstractmethod
    def release_lock(self, key: str, token: str) -> bool:
        """Release the lock only if it is still held under `token`."""

    @abstractmethod
    def extend_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        """Reset the TTL if the lock is still held under `token`; False once it has been lost."""

    @abstractmethod
    def ping(self) -> bool:
        ...

    def close(self):
        pass

    @property
    def circuit_state(self) -> str:
        return "closed"


class RedisDocumentStore(DocumentStore):
    """
    Documents live in string keys `doc:<collection>:<id>` holding JSON.
    Raw events live in a sorted set `events:<collection>` scored by epoch ms.
    """

    def __init__(self, client: RedisClient):
        self._client = client

    @staticmethod
    def _doc_key(collection: str, doc_id: str) -> str:
        return f"doc:{collection}:{doc_id}"

    @staticmethod
    def _events_key(collection: str) -> str:
        return f"events:{collection}"

    def get_document(self, collection: str, doc_id: str) -> Any | None:
        key = self._doc_key(collection, doc_id)
        raw = self._client.execute_with_retry(lambda r: r.get(key))
        return None if raw is None else _loads(raw)

    def upsert_document(self, collection: str, doc_id: str, document: dict) -> None:
        key = self._doc_key(collection, doc_id)
        payload = json.dumps(document)
        self._client.execute_with_retry(lambda r: r.set(key, payload))

    def insert_event(self, collection: str, document: dict, epoch_ms: float) -> str:
        doc_id = uuid.uuid4().hex
        payload = json.dumps({"id": doc_id, **document})
        key = self._events_key(collection)
        self._client.execute_with_retry(lambda r: r.zadd(key, {payload: epoch_ms}))
        return doc_id

    def scan_events(
        self,
        collection: str,
        start_ms: float | None = None,
        end_ms: float | None = None,
        *,
        start_exclusive: bool = False,
        descending: bool = False,
        page_size: int | None = None,
    ) -> Iterator[Any]:
        key = self._events_key(collection)
        lo, hi = _score_bounds(start_ms, end_ms, start_exclusive)

        def _page(r: redis.Redis, offset: int | None):
            kwargs = {} if offset is None else {"start": offset, "num": page_size}
            if descending:
                return r.zrevrangebyscore(key, hi, lo, **kwargs)
            return r.zrangebyscore(key, lo, hi, **kwargs)

        if page_size is None:
            for payload in self._client.execute_with_retry(lambda r: _page(r, None)):
                yield _loads(payload)
            return

        offset = 0
        while True:
            page = self._client.execute_with_retry(lambda r: _page(r, offset))
            for payload in page:
                yield _loads(payload)
            if len(page) < page_size:
                return
            offset += page_size

    def try_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        lock_key = f"lock:{key}"
        return bool(
            self._client.execute_with_retry(
                lambda r: r.set(lock_key, token, nx=True, px=ttl_ms)
            )
        )

    def release_lock(self, key: str, token: str) -> bool:
        lock_key = f"lock:{key}"

        def _release(r: redis.Redis) -> bool:
            with r.pipeline() as pipe:
                try:
                    pipe.watch(lock_key)
                    if pipe.get(lock_key) != token:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(lock_key)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    return False

        return self._client.execute_with_retry(_release)

    def extend_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        lock_key = f"lock:{key}"

        def _extend(r: redis.Redis) -> bool:
            with r.pipeline() as pipe:
                try:
                    pipe.watch(lock_key)
                    if pipe.get(lock_key) != token:
                        pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.pexpire(lock_key, ttl_ms)
                    pipe.execute()
                    return True
                except redis.WatchError:
                    return False

        return self._client.execute_with_retry(_extend)

    def ping(self) -> bool:
        return self._client.ping()

    def close(self):
        self._client.close()

    @property
    def circuit_state(self) -> str:
        return self._client.circuit_state


class MemoryDocumentStore(DocumentStore):
    """Process-local store. Payloads are kept as JSON text, exactly as Redis would hold them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._documents: dict[tuple[str, str], str] = {}
        self._events: dict[str, list[tuple[float, int, str]]] = {}
        self._locks: dict[str, tuple[str, float]] = {}
        self._seq = itertools.count()

    def get_document(self, collection: str, doc_id: str) -> Any | None:
        with self._guard:
            raw = self._documents.get((collection, doc_id))
        return None if raw is None else _loads(raw)

    def upsert_document(self, collection: str, doc_id: str, document: dict) -> None:
        payload = json.dumps(document)
        with self._guard:
            self._documents[(collection, doc_id)] = payload

    def put_raw_document(self, collection: str, doc_id: str, payload: str) -> None:
        with self._guard:
            self._documents[(collection, doc_id)] = payload

    def insert_event(self, collection: str, document: dict, epoch_ms: float) -> str:
        doc_id = uuid.uuid4().hex
        self.insert_raw_event(collection, json.dumps({"id": doc_id, **document}), epoch_ms)
        return doc_id

    def insert_raw_event(self, collection: str, payload: str, epoch_ms: float) -> None:
        with self._guard:
            bisect.insort(self._events.setdefault(collection, []), (epoch_ms, next(self._seq), payload))

    def scan_events(
        self,
        collection: str,
        start_ms: float | None = None,
        end_ms: float | None = None,
        *,
        start_exclusive: bool = False,
        descending: bool = False,
        page_size: int | None = None,
    ) -> Iterator[Any]:
        with self._guard:
            rows = list(self._events.get(collection, []))
        selected = []
        for score, _, payload in rows:
            if start_ms is not None and (score <= start_ms if start_exclusive else score < start_ms):
                continue
            if end_ms is not None and score > end_ms:
                continue
            selected.append(payload)
        if descending:
            selected.reverse()
        for payload in selected:
            yield _loads(payload)

    def try_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        now = time.monotonic()
        with self._guard:
            held = self._locks.get(key)
            if held is not None and held[1] > now:
                return False
            self._locks[key] = (token, now + ttl_ms / 1000)
            return True

    def release_lock(self, key: str, token: str) -> bool:
        with self._guard:
            held = self._locks.get(key)
            if held is None or held[0] != token:
                return False
            del self._locks[key]
            return True

    def extend_lock(self, key: str, token: str, ttl_ms: int) -> bool:
        now = time.monotonic()
        with self._guard:
            held = self._locks.get(key)
            if held is None or held[0] != token or held[1] <= now:
                return False
            self._locks[key] = (token, now + ttl_ms / 1000)
            return True

    def ping(self) -> bool:
        return True


def build_store(settings: Settings) -> DocumentStore:
    if settings.store_backend == "memory":
        return MemoryDocumentStore()
    return RedisDocumentStore(RedisClient(settings))
