"""Filtered reads over the raw event collection."""

from datetime import datetime
from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config import Settings, configure_logging
from errors import DecodeError, InvalidQueryError
from models.events import ActionKind, Event, to_epoch_ms, to_utc
from storage.document_store import DocumentStore


class SortOrder(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


class EventQuery(BaseModel):
    """Conjunctive filter. Unset fields impose no constraint; the time range is inclusive."""

    model_config = ConfigDict(extra="forbid")

    location: str | None = None
    serial_number: str | None = None
    ingredient: str | None = None
    action: ActionKind | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    order: SortOrder = SortOrder.DESCENDING
    limit: int | None = Field(default=None, gt=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return None if value is None else to_utc(value)

    @model_validator(mode="after")
    def _ordered_range(self) -> "EventQuery":
        if self.start_time and self.end_time and self.start_time > self.end_time:
            raise ValueError("start_time must not be after end_time")
        return self

    def predicates(self) -> list[Callable[[Event], bool]]:
        """Row predicates for the fields the store cannot filter on."""
        checks: list[Callable[[Event], bool]] = []
        if self.location is not None:
            checks.append(lambda e: e.location == self.location)
        if self.serial_number is not None:
            checks.append(lambda e: e.device.serial_number == self.serial_number)
        if self.ingredient is not None:
            checks.append(lambda e: e.ingredient == self.ingredient)
        if self.action is not None:
            checks.append(lambda e: e.action == self.action)
        return checks


class LocationQuery(BaseModel):
    model_config = ConfigDict(extra="forbid")

    location: str | None = None
    serial_number: str | None = None

    def to_event_query(self) -> EventQuery:
        return EventQuery(location=self.location, serial_number=self.serial_number)


class QueryExecutor:
    """
    Runs an EventQuery against the store. The time range is pushed down to the
    store's timestamp index; other fields are checked per row. Rows that do not
    decode are skipped with a warning and never count toward the limit.
    Without a limit every matching row is returned; a limit above
    `query_max_limit` is rejected rather than truncated.
    Read-only: never takes the aggregation lock.
    """

    def __init__(self, store: DocumentStore, settings: Settings):
        self.log = configure_logging("query-executor", settings.log_level)
        self._store = store
        self._collection = settings.events_collection
        self._page_size = settings.query_page_size
        self._max_limit = settings.query_max_limit

    def execute(self, query: EventQuery) -> list[Event]:
        if query.limit is not None and query.limit > self._max_limit:
            raise InvalidQueryError(f"limit {query.limit} exceeds the maximum of {self._max_limit}")
        checks = query.predicates()
        documents = self._store.scan_events(
            self._collection,
            start_ms=None if query.start_time is None else to_epoch_ms(query.start_time),
            end_ms=None if query.end_time is None else to_epoch_ms(query.end_time),
            descending=query.order is SortOrder.DESCENDING,
            page_size=self._page_size,
        )

        results: list[Event] = []
        skipped = 0
        for document in documents:
            try:
                event = Event.from_document(document)
            except DecodeError as e:
                skipped += 1
                self.log.warning("event_row_skipped", document_id=e.document_id, error=str(e))
                continue
            if all(check(event) for check in checks):
                results.append(event)
                if query.limit is not None and len(results) >= query.limit:
                    break

        self.log.debug("event_query_executed", returned=len(results), skipped=skipped)
        return results

    def locations(self, query: LocationQuery) -> list[Event]:
        return self.execute(query.to_event_query())
