from abc import ABC, abstractmethod
from typing import List, Optional
from datetime import datetime
from enum import Enum

import structlog
from pydantic import BaseModel, Field, computed_field

from garden.domain.models.garden_state import PlacementEvent, utcnow
from garden.infrastructure.observability.logging import garden_logger

logger = structlog.get_logger(__name__)


class Destination(str, Enum):
    """Whether a notification describes a one-object or a multi-object change"""
    SINGLE = "single"
    BATCH = "batch"


ADDRESSES = {
    Destination.SINGLE: "/garden/object",
    Destination.BATCH: "/garden/objects",
}


class GardenNotification(BaseModel):
    """Complete ordered event list produced by one mutation"""
    destination: Destination
    version: int
    events: List[PlacementEvent] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utcnow)

    @computed_field
    @property
    def address(self) -> str:
        return ADDRESSES[self.destination]

    def data_strings(self) -> List[str]:
        return [event.data_string for event in self.events]


class DeliveryReport(BaseModel):
    """Outcome of handing a notification to the emitter"""
    notification: GardenNotification
    success: bool
    error: Optional[str] = None


class NotificationEmitter(ABC):
    """Delivers notifications to the downstream consumer"""

    @abstractmethod
    async def emit(self, notification: GardenNotification) -> None:
        """Deliver one notification, preserving its event order"""
        pass


class LoggingEmitter(NotificationEmitter):
    """Emitter that only writes notifications to the log"""

    async def emit(self, notification: GardenNotification) -> None:
        garden_logger.log_notification(
            notification.address,
            notification.version,
            notification.data_strings()
        )
