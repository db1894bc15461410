"""Publishes device events to the raw events topic, MessagePack encoded and keyed by serial number."""

import msgpack
from kafka import KafkaProducer
from kafka.errors import KafkaError

from config import Settings, configure_logging
from models.events import Event


def pack(document: dict) -> bytes:
    return msgpack.packb(document, use_bin_type=True)


def build_producer(settings: Settings, value_serializer=pack) -> KafkaProducer:
    return KafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        value_serializer=value_serializer,
        key_serializer=lambda k: k.encode("utf-8") if k else None,
        batch_size=settings.kafka_producer_batch_size,
        linger_ms=settings.kafka_producer_linger_ms,
        compression_type=settings.kafka_producer_compression,
        acks="all",
        retries=3,
        retry_backoff_ms=200,
    )


class EventPublisher:
    """
    Sends Events in their stored document shape, so a consumer can land the
    payload in the event collection without reshaping it. Keying by serial
    number keeps each dispenser's events ordered within a partition.
    """

    def __init__(self, settings: Settings, producer: KafkaProducer | None = None):
        self.log = configure_logging("event-publisher", settings.log_level)
        self._topic = settings.topic_events_raw
        self._producer = producer or build_producer(settings)
        self.delivered = 0
        self.failed = 0

    def publish(self, event: Event):
        future = self._producer.send(self._topic, key=event.serial_number, value=event.to_document())
        future.add_callback(self._on_delivered).add_errback(self._on_failed, event.serial_number)

    def _on_delivered(self, metadata):
        self.delivered += 1
        if self.delivered % 1000 == 0:
            self.log.info("publish_progress", delivered=self.delivered, failed=self.failed)

    def _on_failed(self, serial_number: str, exc: KafkaError):
        self.failed += 1
        self.log.error("publish_failed", serial_number=serial_number, error=str(exc))

    def close(self):
        self._producer.flush(timeout=10)
        self._producer.close(timeout=10)
        self.log.info("publisher_closed", delivered=self.delivered, failed=self.failed)
