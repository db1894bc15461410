"""Dead letter queue for device event payloads that do not decode into an Event."""

from datetime import datetime, timezone
from typing import Any

from kafka import KafkaProducer
from pydantic import BaseModel, Field

from config import Settings, configure_logging
from errors import DecodeError
from ingest.publisher import build_producer


class RejectedEvent(BaseModel):
    """Where a payload came from, why it was refused, and the payload itself."""

    topic: str
    partition: int = -1
    offset: int = -1
    key: str | None = None
    reason: str
    document_id: str | None = None
    payload: Any = None
    rejected_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class DeadLetterQueue:
    def __init__(self, settings: Settings, producer: KafkaProducer | None = None):
        self.log = configure_logging("dlq", settings.log_level)
        self._topic = settings.topic_dlq
        self._producer = producer or build_producer(settings)
        self.rejected = 0

    def reject(
        self,
        payload,
        error: DecodeError,
        topic: str,
        partition: int = -1,
        offset: int = -1,
        key: str | None = None,
    ) -> RejectedEvent:
        record = RejectedEvent(
            topic=topic,
            partition=partition,
            offset=offset,
            key=key,
            reason=str(error),
            document_id=error.document_id,
            payload=payload,
        )
        # Keyed like the source message so a device's rejects stay together
        self._producer.send(self._topic, key=key, value=record.model_dump(mode="json"))
        self.rejected += 1
        self.log.warning("event_dead_lettered", topic=topic, offset=offset, key=key, reason=record.reason)
        return record

    def close(self):
        self._producer.flush(timeout=5)
        self._producer.close(timeout=5)
