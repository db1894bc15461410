from .redis_client import RedisClient
from .document_store import DocumentStore, MemoryDocumentStore, RedisDocumentStore, build_store
from .checkpoint import CheckpointStore
from .events import EventReader, EventWriter
from .rollups import RollupStore

__all__ = [
    "RedisClient",
    "DocumentStore",
    "MemoryDocumentStore",
    "RedisDocumentStore",
    "build_store",
    "CheckpointStore",
    "EventReader",
    "EventWriter",
    "RollupStore",
]
