"""Rollup slot persistence — one document per slot in the aggregates collection."""

import json
from contextlib import nullcontext

from pydantic import BaseModel

from models.rollups import (
    SLOT_MODELS,
    ActionRollup,
    CategoryRollup,
    DailyRollup,
    HourlyRollup,
    KeyedRollup,
    RollupSlot,
    decode_document,
)
from storage.document_store import DocumentStore


class RollupStore:
    """
    Reads and upserts rollup slots. Writes are a single create-or-replace of
    the whole slot document; callers always pass the merged rollup. Given a
    lock, enable/disable run under it and fail with AggregationBusyError while
    an aggregation run is writing.
    """

    def __init__(self, store: DocumentStore, collection: str = "aggregates", lock=None):
        self._store = store
        self._collection = collection
        # SingleFlightLock shared with aggregation runs; guards enable/disable
        self._lock = lock

    def _exclusive(self):
        return self._lock.hold() if self._lock is not None else nullcontext()

    def load(self, slot: RollupSlot) -> BaseModel | None:
        document = self._store.get_document(self._collection, slot.value)
        if document is None:
            return None
        return decode_document(SLOT_MODELS[slot], document, f"{self._collection}/{slot.value}")

    def load_actions(self) -> ActionRollup | None:
        return self.load(RollupSlot.ACTIONS)

    def load_hourly(self) -> HourlyRollup | None:
        return self.load(RollupSlot.HOURLY)

    def load_daily(self) -> DailyRollup | None:
        return self.load(RollupSlot.DAILY)

    def load_categories(self) -> CategoryRollup | None:
        return self.load(RollupSlot.CATEGORIES)

    def upsert(self, slot: RollupSlot, rollup: BaseModel) -> None:
        expected = SLOT_MODELS[slot]
        if not isinstance(rollup, expected):
            raise TypeError(f"slot {slot.value!r} holds {expected.__name__}, got {type(rollup).__name__}")
        # model_dump_json stringifies int and date mapping keys
        self._store.upsert_document(self._collection, slot.value, json.loads(rollup.model_dump_json()))

    def enable(self, slot: RollupSlot) -> BaseModel:
        """Bootstrap an empty keyed rollup, or switch an existing one back on keeping its counts."""
        if slot is RollupSlot.ACTIONS:
            raise ValueError("the actions rollup is always maintained")
        with self._exclusive():
            current = self.load(slot)
            if current is None:
                current = SLOT_MODELS[slot]()
            rollup = current.model_copy(update={"enabled": True})
            self.upsert(slot, rollup)
        return rollup

    def disable(self, slot: RollupSlot) -> BaseModel | None:
        """Stop maintaining a keyed rollup. Counts are kept; a missing slot stays missing."""
        if slot is RollupSlot.ACTIONS:
            raise ValueError("the actions rollup is always maintained")
        with self._exclusive():
            current = self.load(slot)
            if current is None:
                return None
            rollup = current.model_copy(update={"enabled": False})
            self.upsert(slot, rollup)
        return rollup

    @staticmethod
    def is_maintained(rollup: KeyedRollup | None) -> bool:
        return rollup is not None and rollup.enabled
