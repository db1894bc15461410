"""Rollup reads and the per-slot maintenance switch."""

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_rollups
from models.rollups import RollupSlot
from storage.rollups import RollupStore

router = APIRouter(prefix="/api/v1/rollups")


@router.get("/{slot}")
async def get_rollup(slot: RollupSlot, rollups: RollupStore = Depends(get_rollups)):
    rollup = rollups.load(slot)
    if rollup is None:
        raise HTTPException(status_code=404, detail=f"rollup {slot.value!r} has not been created")
    return rollup.model_dump(mode="json")


@router.post("/{slot}/enable")
async def enable_rollup(slot: RollupSlot, rollups: RollupStore = Depends(get_rollups)):
    """Start maintaining a keyed rollup from the next run on."""
    if slot is RollupSlot.ACTIONS:
        raise HTTPException(status_code=400, detail="the actions rollup is always maintained")
    return rollups.enable(slot).model_dump(mode="json")


@router.post("/{slot}/disable")
async def disable_rollup(slot: RollupSlot, rollups: RollupStore = Depends(get_rollups)):
    if slot is RollupSlot.ACTIONS:
        raise HTTPException(status_code=400, detail="the actions rollup is always maintained")
    rollup = rollups.disable(slot)
    if rollup is None:
        raise HTTPException(status_code=404, detail=f"rollup {slot.value!r} has not been created")
    return rollup.model_dump(mode="json")
