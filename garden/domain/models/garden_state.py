from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, computed_field
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventAction(str, Enum):
    """Direction of a placement change"""
    ADD = "add"
    REMOVE = "remove"


class RemovalReason(str, Enum):
    """Why an occupant left its slot"""
    DUPLICATE = "duplicate"
    FORCED_DISPLACEMENT = "forced_displacement"
    OLDEST = "oldest"
    MANUAL = "manual"
    CLEARED = "cleared"
    IDLE_CLEANUP = "idle_cleanup"


class Occupant(BaseModel):
    """An object bound to exactly one slot"""
    object_id: str
    slot_id: str


class PlacementEvent(BaseModel):
    """One change to the garden, as seen by the downstream consumer"""
    object_id: str
    slot_id: str
    slot_category: str
    action: EventAction
    reason: Optional[RemovalReason] = None

    @computed_field
    @property
    def data_string(self) -> str:
        """Compact form understood by the visualizer, e.g. "15:M1:M:1" """
        flag = 1 if self.action == EventAction.ADD else 0
        return f"{self.object_id}:{self.slot_id}:{self.slot_category}:{flag}"


class ObjectDescriptor(BaseModel):
    """Object reference returned to callers"""
    id: str
    name: str
    slot_id: str
    slot_category: str
    reason: Optional[RemovalReason] = None


class BatchItemResult(BaseModel):
    """Outcome of one id inside a batch"""
    object_id: str
    success: bool
    message: str
    slot_id: Optional[str] = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int


class StateSnapshot(BaseModel):
    """Detached copy of the garden state"""
    occupants: List[Occupant] = Field(default_factory=list)
    objects: List[str] = Field(default_factory=list)
    slots: List[str] = Field(default_factory=list)
    addition_order: List[str] = Field(default_factory=list)
    timestamps: Dict[str, datetime] = Field(default_factory=dict)
    version: int = 0
    last_modified: datetime
    occupant_count: int = 0
    max_capacity: int


class GardenState(BaseModel):
    """The mutable garden aggregate, owned by the placement engine"""
    occupants: List[Occupant] = Field(default_factory=list)
    addition_order: List[str] = Field(default_factory=list, description="Object ids, oldest first")
    timestamps: Dict[str, datetime] = Field(default_factory=dict)
    version: int = 0
    last_modified: datetime = Field(default_factory=utcnow)

    @property
    def occupant_count(self) -> int:
        return len(self.occupants)

    def contains(self, object_id: str) -> bool:
        """Check whether an object is placed"""
        return object_id in self.timestamps

    def occupant_at(self, slot_id: str) -> Optional[str]:
        for occupant in self.occupants:
            if occupant.slot_id == slot_id:
                return occupant.object_id
        return None

    def occupied_slots(self) -> set:
        return {occupant.slot_id for occupant in self.occupants}

    def place(self, object_id: str, slot_id: str, at: datetime):
        """Bind an object to a slot as the newest arrival"""
        self.occupants.append(Occupant(object_id=object_id, slot_id=slot_id))
        self.addition_order.append(object_id)
        self.timestamps[object_id] = at

    def evict(self, object_id: str) -> Occupant:
        """Unbind an object from its slot and forget its arrival"""
        for index, occupant in enumerate(self.occupants):
            if occupant.object_id == object_id:
                del self.occupants[index]
                break
        else:
            raise KeyError(object_id)

        self.addition_order.remove(object_id)
        self.timestamps.pop(object_id, None)
        return occupant

    def bump_version(self, at: datetime):
        """Record one completed mutation"""
        self.version += 1
        self.last_modified = at

    def snapshot(self, max_capacity: int) -> StateSnapshot:
        """Get a deep copy suitable for callers"""
        occupants = [occupant.model_copy() for occupant in self.occupants]
        return StateSnapshot(
            occupants=occupants,
            objects=[occupant.object_id for occupant in occupants],
            slots=[occupant.slot_id for occupant in occupants],
            addition_order=list(self.addition_order),
            timestamps=dict(self.timestamps),
            version=self.version,
            last_modified=self.last_modified,
            occupant_count=len(occupants),
            max_capacity=max_capacity
        )

    def get_state_summary(self) -> Dict[str, Any]:
        """Get a summary of the current state"""
        return {
            "occupants": len(self.occupants),
            "version": self.version,
            "oldest": self.addition_order[0] if self.addition_order else None,
            "last_modified": self.last_modified.isoformat()
        }
