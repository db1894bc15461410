"""
Aggregation orchestrator — one incremental run from checkpoint to checkpoint.

    idle → loading_checkpoint → reading_events → aggregating → writing
         → advancing_checkpoint → done

Any store or decode error moves the run to `failed` and is re-raised.
Writes already committed are not rolled back. A stop request is honoured
only before the first write, so rollups never end up ahead of the
checkpoint because of a cancellation.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import structlog

from config import Settings, configure_logging
from engine.aggregators import (
    aggregate_actions,
    aggregate_categories,
    aggregate_daily,
    aggregate_hourly,
)
from engine.locking import SingleFlightLock
from errors import PipelineError, RunCancelledError
from models.rollups import Checkpoint, RollupSlot
from storage.checkpoint import CheckpointStore
from storage.document_store import DocumentStore
from storage.events import EventReader
from storage.rollups import RollupStore


class RunState(str, Enum):
    IDLE = "idle"
    LOADING_CHECKPOINT = "loading_checkpoint"
    READING_EVENTS = "reading_events"
    AGGREGATING = "aggregating"
    WRITING = "writing"
    ADVANCING_CHECKPOINT = "advancing_checkpoint"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class RunReport:
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: RunState = RunState.IDLE
    incremental: bool = False
    events_processed: int = 0
    slots_written: list[str] = field(default_factory=list)
    checkpoint: datetime | None = None
    duration_ms: float = 0.0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "incremental": self.incremental,
            "events_processed": self.events_processed,
            "slots_written": list(self.slots_written),
            "checkpoint": self.checkpoint.isoformat() if self.checkpoint else None,
            "duration_ms": round(self.duration_ms, 1),
            "error": self.error,
        }


@dataclass
class RunStats:
    """In-process counters exposed on the metrics endpoint."""

    runs: dict[str, int] = field(default_factory=dict)
    last_events_processed: int = 0
    last_duration_ms: float = 0.0
    last_finished_at: float = 0.0

    def record(self, report: RunReport):
        self.runs[report.state.value] = self.runs.get(report.state.value, 0) + 1
        self.last_events_processed = report.events_processed
        self.last_duration_ms = report.duration_ms
        self.last_finished_at = time.time()


class AggregationOrchestrator:
    def __init__(self, store: DocumentStore, settings: Settings):
        self.settings = settings
        self.log = configure_logging("aggregation", settings.log_level)
        self._checkpoints = CheckpointStore(store, settings.aggregates_collection)
        self._events = EventReader(store, settings.events_collection)
        self._rollups = RollupStore(store, settings.aggregates_collection)
        self._lock = SingleFlightLock(store, settings.lock_key, settings.run_lock_ttl_sec)
        self._target_action = settings.rollup_target_action
        self._stats_guard = threading.Lock()
        self.stats = RunStats()

    def run(self, should_stop: Callable[[], bool] | None = None) -> RunReport:
        """
        Execute one run. Raises AggregationBusyError if another run holds the
        lock, RunCancelledError if stopped at a safe boundary, and the original
        StoreError/DecodeError on failure.
        """
        report = RunReport()
        with structlog.contextvars.bound_contextvars(run_id=report.run_id), self._lock.hold() as token:
            started = time.perf_counter()
            try:
                self._run_locked(report, token, should_stop or (lambda: False))
            except PipelineError as e:
                if report.state is not RunState.CANCELLED:
                    report.state = RunState.FAILED
                report.error = e.code
                self.log.error(
                    "aggregation_run_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                    events_processed=report.events_processed,
                    slots_written=report.slots_written,
                )
                raise
            finally:
                report.duration_ms = (time.perf_counter() - started) * 1000
                with self._stats_guard:
                    self.stats.record(report)
            return report

    def _enter(self, report: RunReport, state: RunState, should_stop: Callable[[], bool] | None = None):
        if should_stop is not None and should_stop():
            report.state = RunState.CANCELLED
            raise RunCancelledError(f"run stopped before {state.value}")
        report.state = state
        self.log.debug("aggregation_state", state=state.value)

    def _run_locked(self, report: RunReport, token: str, should_stop: Callable[[], bool]):
        self._enter(report, RunState.LOADING_CHECKPOINT, should_stop)
        checkpoint = self._checkpoints.load()

        self._enter(report, RunState.READING_EVENTS, should_stop)
        if checkpoint is None:
            events = self._events.fetch_all()
            prior_actions = None
        else:
            report.incremental = True
            events = self._events.fetch_since(checkpoint.last_processed_timestamp)
            prior_actions = checkpoint.last_action_rollup
        report.events_processed = len(events)
        self.log.info(
            "aggregation_events_fetched",
            count=len(events),
            incremental=report.incremental,
            since=checkpoint.last_processed_timestamp.isoformat() if checkpoint else None,
        )

        if not events:
            report.state = RunState.DONE
            self.log.info("aggregation_noop", reason="no_new_events")
            return

        self._lock.renew(token)
        self._enter(report, RunState.AGGREGATING, should_stop)
        now = datetime.now(timezone.utc)
        pending = [(RollupSlot.ACTIONS, aggregate_actions(events, prior_actions, now))]

        hourly = self._rollups.load_hourly()
        if self._rollups.is_maintained(hourly):
            pending.append((RollupSlot.HOURLY, aggregate_hourly(events, self._target_action, hourly)))
        daily = self._rollups.load_daily()
        if self._rollups.is_maintained(daily):
            pending.append((RollupSlot.DAILY, aggregate_daily(events, self._target_action, daily)))
        categories = self._rollups.load_categories()
        if self._rollups.is_maintained(categories):
            pending.append((RollupSlot.CATEGORIES, aggregate_categories(events, categories)))

        # No stop checks past this point: writes and checkpoint advance go together.
        # Ownership is re-checked before each write phase.
        self._lock.renew(token)
        self._enter(report, RunState.WRITING)
        for slot, rollup in pending:
            self._rollups.upsert(slot, rollup)
            report.slots_written.append(slot.value)
            self.log.info("rollup_written", slot=slot.value)

        self._lock.renew(token)
        self._enter(report, RunState.ADVANCING_CHECKPOINT)
        new_checkpoint = Checkpoint(
            last_processed_timestamp=max(e.timestamp for e in events),
            last_action_rollup=pending[0][1],
        )
        self._checkpoints.save(new_checkpoint)
        report.checkpoint = new_checkpoint.last_processed_timestamp

        report.state = RunState.DONE
        self.log.info(
            "aggregation_run_completed",
            events_processed=report.events_processed,
            slots_written=report.slots_written,
            checkpoint=report.checkpoint.isoformat(),
        )
