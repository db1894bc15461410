"""Prometheus-compatible metrics endpoint."""

import time

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter()


@router.get("/metrics")
async def prometheus_metrics(request: Request):
    """Expose metrics in Prometheus text exposition format."""
    store = request.app.state.store
    stats = request.app.state.orchestrator.stats

    state_map = {"closed": 0, "open": 1, "half_open": 2}
    cb_value = state_map.get(store.circuit_state, 0)
    uptime = time.time() - request.app.state.start_time

    lines = [
        "# HELP aggregation_runs_total Aggregation runs by final state",
        "# TYPE aggregation_runs_total counter",
    ]
    lines += [f'aggregation_runs_total{{state="{state}"}} {n}' for state, n in sorted(stats.runs.items())]
    lines += [
        "",
        "# HELP aggregation_last_events_processed Events processed by the most recent run",
        "# TYPE aggregation_last_events_processed gauge",
        f"aggregation_last_events_processed {stats.last_events_processed}",
        "",
        "# HELP aggregation_last_duration_ms Duration of the most recent run",
        "# TYPE aggregation_last_duration_ms gauge",
        f"aggregation_last_duration_ms {stats.last_duration_ms:.1f}",
        "",
        "# HELP store_circuit_breaker_state Circuit breaker state (0=closed, 1=open, 2=half_open)",
        "# TYPE store_circuit_breaker_state gauge",
        f"store_circuit_breaker_state {cb_value}",
        "",
        "# HELP api_uptime_seconds Seconds since API start",
        "# TYPE api_uptime_seconds gauge",
        f"api_uptime_seconds {uptime:.1f}",
    ]
    return PlainTextResponse("\n".join(lines) + "\n", media_type="text/plain; version=0.0.4")
