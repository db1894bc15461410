"""Centralized configuration using pydantic-settings. All values are env-configurable."""

from typing import Literal

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from errors import ConfigurationError
from models.events import ActionKind


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    # Deployment
    deployment_id: str

    # Store
    store_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://redis:6379/0"
    redis_pool_size: int = 20
    redis_max_retries: int = 3
    redis_circuit_failure_threshold: int = 5
    redis_circuit_recovery_sec: float = 30.0
    events_collection: str = "libra"
    aggregates_collection: str = "aggregates"

    # Aggregation
    rollup_target_action: ActionKind = ActionKind.SERVED
    run_lock_ttl_sec: float = 300

    # Query
    query_page_size: int = 500
    query_max_limit: int = 1000

    # Kafka ingestion
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_producer_batch_size: int = 16384
    kafka_producer_linger_ms: int = 50
    kafka_producer_compression: str = "lz4"
    kafka_consumer_group: str = "event-ingest"
    kafka_auto_offset_reset: str = "earliest"
    kafka_max_poll_records: int = 500
    kafka_session_timeout_ms: int = 30000
    topic_events_raw: str = "devices.events.raw"
    topic_dlq: str = "pipeline.dlq"

    # Simulator
    sim_num_devices: int = 4
    sim_publish_interval_ms: int = 500
    sim_locations: list[str] = ["Caldo Office", "Lounge"]
    sim_ingredients: list[str] = ["Plastic French Fries", "Fake Broccoli", "Kettle Chips", "Popcorn"]

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Monitoring
    enable_prometheus: bool = True
    log_level: str = "INFO"

    @property
    def lock_key(self) -> str:
        return f"aggregation:{self.deployment_id}"


def load_settings(**overrides) -> Settings:
    """Build settings from the environment, turning validation failures into ConfigurationError."""
    try:
        return Settings(**overrides)
    except ValidationError as e:
        fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ConfigurationError(f"invalid or missing settings: {', '.join(fields)}") from e
