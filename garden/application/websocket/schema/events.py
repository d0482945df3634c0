from typing import Dict, Any, Optional, List, Literal
from pydantic import BaseModel, Field
from datetime import datetime
from enum import Enum

from garden.domain.models.garden_state import PlacementEvent, StateSnapshot, utcnow


class EventType(str, Enum):
    """WebSocket event types"""
    GARDEN_OBJECT = "garden_object"
    GARDEN_OBJECTS = "garden_objects"
    GARDEN_STATE = "garden_state"
    RELAY_RESPONSE = "relay_response"
    ERROR = "error"
    CONNECTION = "connection"


class BaseEvent(BaseModel):
    """Base event model for all WebSocket messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=utcnow)
    session_id: Optional[str] = None


class GardenObjectEvent(BaseEvent):
    """A single placement change, sent for one-object commands"""
    type: Literal[EventType.GARDEN_OBJECT] = EventType.GARDEN_OBJECT
    address: str = "/garden/object"
    version: int
    payload: PlacementEvent


class GardenObjectsEvent(BaseEvent):
    """Complete ordered change list of a multi-object command"""
    type: Literal[EventType.GARDEN_OBJECTS] = EventType.GARDEN_OBJECTS
    address: str = "/garden/objects"
    version: int
    payload: List[PlacementEvent]
    count: int = 0


class GardenStateEvent(BaseEvent):
    """Full state snapshot, sent when a visualizer connects"""
    type: Literal[EventType.GARDEN_STATE] = EventType.GARDEN_STATE
    payload: StateSnapshot


class RelayResponseEvent(BaseEvent):
    """Reply to a relayed command"""
    type: Literal[EventType.RELAY_RESPONSE] = EventType.RELAY_RESPONSE
    text: str
    object_id: Optional[str] = None
    success: bool = True


class ErrorEvent(BaseEvent):
    """Error event"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    payload: Dict[str, Any]
    error_code: Optional[str] = None


class ConnectionEvent(BaseEvent):
    """Connection status event"""
    type: Literal[EventType.CONNECTION] = EventType.CONNECTION
    status: Literal["connected", "disconnected", "reconnecting"]
    role: Optional[str] = None
