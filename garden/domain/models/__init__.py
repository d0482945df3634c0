from .errors import (
    ErrorCode,
    GardenError,
    InvalidInputError,
    ObjectNotFoundError,
    UnknownObjectError,
)
from .garden_state import (
    BatchItemResult,
    BatchSummary,
    EventAction,
    GardenState,
    ObjectDescriptor,
    Occupant,
    PlacementEvent,
    RemovalReason,
    StateSnapshot,
    utcnow,
)

__all__ = [
    "BatchItemResult",
    "BatchSummary",
    "ErrorCode",
    "EventAction",
    "GardenError",
    "GardenState",
    "InvalidInputError",
    "ObjectDescriptor",
    "ObjectNotFoundError",
    "Occupant",
    "PlacementEvent",
    "RemovalReason",
    "StateSnapshot",
    "UnknownObjectError",
    "utcnow",
]
