"""Read endpoints over raw device events."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from api.dependencies import get_query
from engine.query import EventQuery, LocationQuery, QueryExecutor, SortOrder
from models.events import ActionKind

router = APIRouter(prefix="/api/v1")


def _dump(events) -> list[dict]:
    return [e.to_document() for e in events]


@router.get("/events")
async def query_events(
    location: str | None = Query(default=None),
    serial_number: str | None = Query(default=None),
    ingredient: str | None = Query(default=None),
    action: ActionKind | None = Query(default=None),
    start_time: datetime | None = Query(default=None, description="Inclusive lower bound (ISO 8601)"),
    end_time: datetime | None = Query(default=None, description="Inclusive upper bound (ISO 8601)"),
    order: SortOrder = Query(default=SortOrder.DESCENDING),
    limit: int | None = Query(default=None, gt=0),
    executor: QueryExecutor = Depends(get_query),
):
    """Events matching every supplied filter, newest first unless order=ascending."""
    try:
        query = EventQuery(
            location=location,
            serial_number=serial_number,
            ingredient=ingredient,
            action=action,
            start_time=start_time,
            end_time=end_time,
            order=order,
            limit=limit,
        )
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    return _dump(executor.execute(query))


@router.get("/locations")
async def query_locations(
    location: str | None = Query(default=None),
    serial_number: str | None = Query(default=None),
    executor: QueryExecutor = Depends(get_query),
):
    """Events for a location and/or device serial number."""
    return _dump(executor.locations(LocationQuery(location=location, serial_number=serial_number)))
