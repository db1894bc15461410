"""Shared test fixtures."""

import time

import pytest
import redis

from config import Settings
from storage.document_store import MemoryDocumentStore, RedisDocumentStore
from storage.events import EventWriter
from storage.redis_client import RedisClient


@pytest.fixture
def settings():
    """Test settings backed by the in-memory store."""
    return Settings(
        deployment_id="test-deployment",
        store_backend="memory",
        redis_url="redis://localhost:6379/1",
        kafka_bootstrap_servers="localhost:9092",
        query_page_size=2,
        log_level="WARNING",
    )


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def writer(store, settings):
    return EventWriter(store, settings.events_collection)


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def redis_container():
    """Spin up a Redis 7 container and yield its URL. Skips when Docker is unavailable."""
    container_mod = pytest.importorskip("testcontainers.core.container")
    container = container_mod.DockerContainer("redis:7-alpine").with_exposed_ports(6379)
    try:
        container.start()
    except Exception as exc:
        pytest.skip(f"docker unavailable: {exc}")
    try:
        host = container.get_container_host_ip()
        port = container.get_exposed_port(6379)
        r = redis.Redis(host=host, port=int(port))
        max_attempts = 30
        for attempt in range(max_attempts):
            try:
                r.ping()
                break
            except redis.ConnectionError:
                if attempt == max_attempts - 1:
                    raise
                time.sleep(1)
        r.close()
        yield f"redis://{host}:{port}/0"
    finally:
        container.stop()


@pytest.fixture
def redis_settings(settings, redis_container):
    return settings.model_copy(update={"store_backend": "redis", "redis_url": redis_container})


@pytest.fixture
def redis_store(redis_settings):
    client = RedisClient(redis_settings)
    client.execute_with_retry(lambda r: r.flushdb())
    store = RedisDocumentStore(client)
    yield store
    store.close()
