"""Resilient Redis client with connection pooling and circuit breaker."""

import threading
import time
from typing import Any, Callable

import redis

from config import Settings, configure_logging
from errors import CircuitOpenError, StoreError


class CircuitBreaker:
    """
    Guards the store against hammering a Redis that is already down.

    closed:    calls pass; consecutive connection failures are counted.
    open:      after `failure_threshold` failures every call fails fast.
    half_open: once `recovery_timeout` has passed a single trial call is let
               through; its outcome closes or re-opens the circuit.

    Shared by the API's worker threads, so transitions happen under a lock.
    """

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.state = "closed"
        self.failure_count = 0
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._guard = threading.Lock()

    def can_execute(self) -> bool:
        with self._guard:
            if self.state == "closed":
                return True
            if self.state == "open" and time.monotonic() - self._opened_at >= self.recovery_timeout:
                self.state = "half_open"
                self._trial_in_flight = False
            if self.state == "half_open" and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def record_success(self):
        with self._guard:
            self.failure_count = 0
            self.state = "closed"
            self._trial_in_flight = False

    def record_failure(self):
        with self._guard:
            self.failure_count += 1
            self._trial_in_flight = False
            if self.state == "half_open" or self.failure_count >= self.failure_threshold:
                self.state = "open"
                self._opened_at = time.monotonic()


class RedisClient:
    """
    Redis client wrapper with connection pooling, circuit breaker, and bounded
    connection-level retry. Every failure that escapes is a StoreError.
    """

    def __init__(self, settings: Settings, pool: redis.ConnectionPool | None = None):
        self.log = configure_logging("redis-client", settings.log_level)
        self._pool = pool or redis.ConnectionPool.from_url(
            settings.redis_url,
            max_connections=settings.redis_pool_size,
            decode_responses=True,
        )
        self._max_retries = settings.redis_max_retries
        self._circuit = CircuitBreaker(
            failure_threshold=settings.redis_circuit_failure_threshold,
            recovery_timeout=settings.redis_circuit_recovery_sec,
        )
        self.log.info("redis_pool_created", url=settings.redis_url, pool_size=settings.redis_pool_size)

    def get_client(self) -> redis.Redis:
        return redis.Redis(connection_pool=self._pool)

    def execute_with_retry(self, func: Callable[[redis.Redis], Any]) -> Any:
        """
        Run a Redis operation. Only connection and timeout errors are retried,
        and only while the circuit allows it.
        """
        last_error: Exception | None = None
        for attempt in range(self._max_retries):
            if not self._circuit.can_execute():
                raise CircuitOpenError(
                    f"redis circuit is {self._circuit.state} after {self._circuit.failure_count} failures"
                ) from last_error
            try:
                result = func(self.get_client())
            except (redis.ConnectionError, redis.TimeoutError) as e:
                last_error = e
                self._circuit.record_failure()
                if attempt < self._max_retries - 1:
                    backoff = 0.1 * (2 ** attempt)
                    self.log.warning("redis_retry", attempt=attempt + 1, backoff=backoff, error=str(e))
                    time.sleep(backoff)
                continue
            except redis.RedisError as e:
                # Redis answered, so the connection is healthy even though the command failed
                self._circuit.record_success()
                raise StoreError(f"redis command failed: {e}") from e
            self._circuit.record_success()
            return result

        raise StoreError(f"redis unavailable after {self._max_retries} attempts: {last_error}") from last_error

    def ping(self) -> bool:
        try:
            return bool(self.execute_with_retry(lambda r: r.ping()))
        except StoreError:
            return False

    def close(self):
        self._pool.disconnect()
        self.log.info("redis_pool_closed")

    @property
    def circuit_state(self) -> str:
        return self._circuit.state
