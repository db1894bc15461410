"""FastAPI dependency injection."""

from fastapi import Request

from engine.orchestrator import AggregationOrchestrator
from engine.query import QueryExecutor
from storage.document_store import DocumentStore
from storage.rollups import RollupStore


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> AggregationOrchestrator:
    return request.app.state.orchestrator


def get_query(request: Request) -> QueryExecutor:
    return request.app.state.query


def get_rollups(request: Request) -> RollupStore:
    return request.app.state.rollups
