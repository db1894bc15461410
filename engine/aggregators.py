"""
Incremental aggregators — pure folds of an event batch onto a prior rollup.

Each aggregator starts from the previously persisted rollup (or its empty
value), adds the batch's counts and returns a new rollup. Priors are never
mutated. Keyed rollups carry every prior bucket forward, so a batch with no
matching events yields a rollup equal to the prior. Batch order is irrelevant.
"""

from collections import Counter
from datetime import date, datetime, timezone
from typing import Callable, Hashable, Iterable

from models.events import ActionKind, Event
from models.rollups import (
    ACTION_FIELDS,
    ActionRollup,
    CategoryRollup,
    DailyRollup,
    HourlyRollup,
)


def count_action(events: Iterable[Event], action: ActionKind) -> int:
    return sum(1 for e in events if e.action == action)


def _merge(prior: dict, delta: Counter) -> dict:
    merged = dict(prior)
    for key, n in delta.items():
        merged[key] = merged.get(key, 0) + n
    return merged


def _tally(
    events: Iterable[Event],
    bucket: Callable[[Event], Hashable],
    action: ActionKind | None = None,
) -> Counter:
    return Counter(bucket(e) for e in events if action is None or e.action == action)


def aggregate_actions(
    events: Iterable[Event], prior: ActionRollup | None, now: datetime | None = None
) -> ActionRollup:
    """Add per-kind tallies over every event onto the prior counters and restamp."""
    base = prior or ActionRollup.zero()
    tally = Counter(e.action for e in events)
    update = {field: base.count(kind) + tally[kind] for kind, field in ACTION_FIELDS.items()}
    update["computed_at"] = now or datetime.now(timezone.utc)
    return base.model_copy(update=update)


def aggregate_hourly(
    events: Iterable[Event], action: ActionKind, prior: HourlyRollup | None
) -> HourlyRollup:
    """Count `action` events per UTC hour of day."""
    base = prior or HourlyRollup()
    delta: Counter[int] = _tally(events, lambda e: e.timestamp.hour, action)
    return base.model_copy(update={"counts": _merge(base.counts, delta)})


def aggregate_daily(
    events: Iterable[Event], action: ActionKind, prior: DailyRollup | None
) -> DailyRollup:
    """Count `action` events per UTC calendar date."""
    base = prior or DailyRollup()
    delta: Counter[date] = _tally(events, lambda e: e.timestamp.date(), action)
    return base.model_copy(update={"counts": _merge(base.counts, delta)})


def aggregate_categories(events: Iterable[Event], prior: CategoryRollup | None) -> CategoryRollup:
    """Count events per ingredient across all action kinds."""
    base = prior or CategoryRollup()
    delta: Counter[str] = _tally(events, lambda e: e.ingredient)
    return base.model_copy(update={"counts": _merge(base.counts, delta)})
