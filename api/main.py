"""FastAPI application factory with lifespan management."""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, configure_logging, load_settings
from engine.locking import SingleFlightLock
from engine.orchestrator import AggregationOrchestrator
from engine.query import QueryExecutor
from errors import PipelineError
from storage.document_store import build_store
from storage.rollups import RollupStore
from api.routers import aggregation, events, health, prometheus, rollups

STATUS_BY_CODE = {
    "busy": 409,
    "invalid_query": 422,
    "cancelled": 503,
    "store_unavailable": 500,
    "decode_error": 500,
}


def create_app(settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        resolved = settings or load_settings()
        log = configure_logging("api", resolved.log_level)

        store = build_store(resolved)
        app.state.settings = resolved
        app.state.store = store
        app.state.orchestrator = AggregationOrchestrator(store, resolved)
        app.state.query = QueryExecutor(store, resolved)
        app.state.rollups = RollupStore(
            store,
            resolved.aggregates_collection,
            lock=SingleFlightLock(store, resolved.lock_key, resolved.run_lock_ttl_sec),
        )
        app.state.start_time = time.time()
        log.info("api_started", deployment=resolved.deployment_id, backend=resolved.store_backend)

        yield

        store.close()
        log.info("api_stopped")

    app = FastAPI(
        title="Device Event Rollup API",
        version="1.0.0",
        description="Incremental rollups and filtered reads over device events",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        return JSONResponse(
            status_code=STATUS_BY_CODE.get(exc.code, 500),
            content={"status": "failed", "error": exc.code, "detail": str(exc)},
        )

    app.include_router(health.router)
    app.include_router(aggregation.router)
    app.include_router(events.router)
    app.include_router(rollups.router)
    if settings is None or settings.enable_prometheus:
        app.include_router(prometheus.router)

    return app


app = create_app()
