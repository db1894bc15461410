from .aggregators import (
    aggregate_actions,
    aggregate_categories,
    aggregate_daily,
    aggregate_hourly,
    count_action,
)
from .locking import SingleFlightLock
from .orchestrator import AggregationOrchestrator, RunReport, RunState
from .query import EventQuery, LocationQuery, QueryExecutor, SortOrder

__all__ = [
    "aggregate_actions",
    "aggregate_categories",
    "aggregate_daily",
    "aggregate_hourly",
    "count_action",
    "SingleFlightLock",
    "AggregationOrchestrator",
    "RunReport",
    "RunState",
    "EventQuery",
    "LocationQuery",
    "QueryExecutor",
    "SortOrder",
]
