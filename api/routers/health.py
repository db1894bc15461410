"""Health and readiness check endpoints."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.dependencies import get_store
from storage.document_store import DocumentStore

router = APIRouter()


@router.get("/health")
async def health():
    """Liveness probe — returns 200 if the process is alive."""
    return {"status": "ok"}


@router.get("/ready")
async def ready(store: DocumentStore = Depends(get_store)):
    """Readiness probe — checks document store connectivity."""
    if not store.ping():
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "store": "unreachable"},
        )
    return {
        "status": "ready",
        "store": "connected",
        "circuit_breaker": store.circuit_state,
    }
