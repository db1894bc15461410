from .events import ActionKind, Device, Event
from .rollups import (
    ActionRollup,
    CategoryRollup,
    Checkpoint,
    DailyRollup,
    HourlyRollup,
    RollupSlot,
)

__all__ = [
    "ActionKind",
    "Device",
    "Event",
    "ActionRollup",
    "CategoryRollup",
    "Checkpoint",
    "DailyRollup",
    "HourlyRollup",
    "RollupSlot",
]
