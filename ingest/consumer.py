"""Kafka consumer that lands device events in the raw event collection."""

import msgpack
from kafka import KafkaConsumer

from config import Settings, configure_logging
from errors import DecodeError
from ingest.dead_letter import DeadLetterQueue
from models.events import Event
from storage.events import EventWriter


class EventIngestor:
    """Validates one message into an Event and appends it. Raises DecodeError for bad payloads."""

    def __init__(self, writer: EventWriter, settings: Settings):
        self.log = configure_logging("event-ingestor", settings.log_level)
        self._writer = writer
        self._topic = settings.topic_events_raw
        self.ingested = 0

    def handle(self, topic: str, key: str | None, value) -> str | None:
        if topic != self._topic:
            return None
        if not isinstance(value, dict):
            raise DecodeError(f"expected a mapping payload, got {type(value).__name__}")
        event = Event.from_document(value)
        doc_id = self._writer.append(event)
        self.ingested += 1
        return doc_id


def build_consumer(settings: Settings) -> KafkaConsumer:
    return KafkaConsumer(
        settings.topic_events_raw,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        auto_offset_reset=settings.kafka_auto_offset_reset,
        enable_auto_commit=False,
        value_deserializer=lambda m: msgpack.unpackb(m, raw=False),
        max_poll_records=settings.kafka_max_poll_records,
        session_timeout_ms=settings.kafka_session_timeout_ms,
    )


class StreamConsumer:
    """
    Polls batches and hands each message to the ingestor, committing offsets
    only once the whole batch has landed. Payloads that fail validation are
    dead-lettered and the batch carries on. A StoreError propagates before the
    commit, so the batch is redelivered once the store is back.
    """

    def __init__(
        self,
        settings: Settings,
        ingestor: EventIngestor,
        consumer: KafkaConsumer | None = None,
        dlq: DeadLetterQueue | None = None,
    ):
        self.log = configure_logging("event-consumer", settings.log_level)
        self._ingestor = ingestor
        self._consumer = consumer or build_consumer(settings)
        self._dlq = dlq or DeadLetterQueue(settings)
        self._running = True
        self.landed = 0
        self.dead_lettered = 0

    def consume_batch(self, batch: dict) -> None:
        for messages in batch.values():
            for msg in messages:
                key = msg.key.decode("utf-8") if msg.key else None
                try:
                    self._ingestor.handle(msg.topic, key, msg.value)
                except DecodeError as e:
                    self.dead_lettered += 1
                    self._dlq.reject(
                        msg.value,
                        e,
                        topic=msg.topic,
                        partition=msg.partition,
                        offset=msg.offset,
                        key=key,
                    )
                else:
                    self.landed += 1
        self._consumer.commit()

    def run(self):
        self.log.info("consumer_started")
        try:
            while self._running:
                batch = self._consumer.poll(timeout_ms=1000)
                if batch:
                    self.consume_batch(batch)
        finally:
            self.log.info("consumer_closing", landed=self.landed, dead_lettered=self.dead_lettered)
            self._consumer.close()
            self._dlq.close()

    def stop(self, signum=None, frame=None):
        self._running = False
