"""Canonical device event schema — single source of truth for the raw event shape."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from errors import DecodeError


class ActionKind(str, Enum):
    SERVED = "Served"
    RAN_OUT = "RanOut"
    HEARTBEAT = "Heartbeat"
    STARTING = "Starting"
    REFILLED = "Refilled"
    OFFLINE = "Offline"


def to_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> float:
    return to_utc(value).timestamp() * 1000


class Device(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    model: str
    serial_number: str = Field(alias="serialNumber")


class Event(BaseModel):
    """
    One append-only device event as stored in the raw events collection.

    Wire names follow the device firmware (`dataAction`, `serialNumber`);
    either the alias or the field name is accepted on input.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    device: Device
    location: str
    ingredient: str
    action: ActionKind = Field(alias="dataAction")
    amount: float
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return to_utc(value)

    @property
    def serial_number(self) -> str:
        return self.device.serial_number

    @property
    def epoch_ms(self) -> float:
        return to_epoch_ms(self.timestamp)

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_document(cls, document: dict) -> "Event":
        try:
            return cls.model_validate(document)
        except ValidationError as e:
            raise DecodeError(
                f"stored row does not match the event shape: {e.error_count()} error(s)",
                document_id=document.get("id") if isinstance(document, dict) else None,
            ) from e
