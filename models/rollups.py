"""Rollup and checkpoint documents maintained by the aggregation engine."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from errors import DecodeError
from models.events import ActionKind, to_utc


class RollupSlot(str, Enum):
    ACTIONS = "actions"
    HOURLY = "hourly"
    DAILY = "daily"
    CATEGORIES = "categories"


# ActionKind -> counter field on ActionRollup
ACTION_FIELDS: dict[ActionKind, str] = {
    ActionKind.SERVED: "served",
    ActionKind.RAN_OUT: "ran_out",
    ActionKind.HEARTBEAT: "heartbeat",
    ActionKind.STARTING: "starting",
    ActionKind.REFILLED: "refilled",
    ActionKind.OFFLINE: "offline",
}


class ActionRollup(BaseModel):
    served: int = Field(default=0, ge=0)
    ran_out: int = Field(default=0, ge=0)
    heartbeat: int = Field(default=0, ge=0)
    starting: int = Field(default=0, ge=0)
    refilled: int = Field(default=0, ge=0)
    offline: int = Field(default=0, ge=0)
    computed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("computed_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)

    @classmethod
    def zero(cls) -> "ActionRollup":
        return cls()

    def count(self, kind: ActionKind) -> int:
        return getattr(self, ACTION_FIELDS[kind])

    def counts(self) -> dict[ActionKind, int]:
        return {kind: self.count(kind) for kind in ActionKind}


class KeyedRollup(BaseModel):
    """
    Counts keyed by some bucket. `enabled` is the operator switch: the
    orchestrator only maintains a keyed rollup whose slot exists and is enabled.
    """

    enabled: bool = True
    counts: dict


class HourlyRollup(KeyedRollup):
    counts: dict[int, int] = Field(default_factory=dict)

    @field_validator("counts")
    @classmethod
    def _valid_hours(cls, value: dict[int, int]) -> dict[int, int]:
        bad = [h for h in value if not 0 <= h <= 23]
        if bad:
            raise ValueError(f"hour keys out of range: {bad}")
        return value


class DailyRollup(KeyedRollup):
    counts: dict[date, int] = Field(default_factory=dict)


class CategoryRollup(KeyedRollup):
    counts: dict[str, int] = Field(default_factory=dict)


class Checkpoint(BaseModel):
    last_processed_timestamp: datetime
    last_action_rollup: ActionRollup

    @field_validator("last_processed_timestamp")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return to_utc(value)


SLOT_MODELS: dict[RollupSlot, type[BaseModel]] = {
    RollupSlot.ACTIONS: ActionRollup,
    RollupSlot.HOURLY: HourlyRollup,
    RollupSlot.DAILY: DailyRollup,
    RollupSlot.CATEGORIES: CategoryRollup,
}

M = TypeVar("M", bound=BaseModel)


def decode_document(model: type[M], document: dict, document_id: str) -> M:
    """Validate a stored document, raising DecodeError instead of a pydantic error."""
    try:
        return model.model_validate(document)
    except ValidationError as e:
        raise DecodeError(
            f"document {document_id!r} does not match {model.__name__}: {e.error_count()} error(s)",
            document_id=document_id,
        ) from e
