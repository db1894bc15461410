"""Aggregation trigger."""

from fastapi import APIRouter, Depends
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_orchestrator
from engine.orchestrator import AggregationOrchestrator

router = APIRouter(prefix="/api/v1")


@router.post("/aggregations/run")
async def run_aggregation(orchestrator: AggregationOrchestrator = Depends(get_orchestrator)):
    """
    Run one incremental aggregation. The run executes on a worker thread and
    always reaches its end even if the client goes away. Errors map to
    409 (busy) or 500 with a stable `error` code.
    """
    report = await run_in_threadpool(orchestrator.run)
    return {"status": "ok", **report.to_dict()}
