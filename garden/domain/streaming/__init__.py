from .dispatcher import NotificationDispatcher
from .notification import (
    ADDRESSES,
    DeliveryReport,
    Destination,
    GardenNotification,
    LoggingEmitter,
    NotificationEmitter,
)

__all__ = [
    "ADDRESSES",
    "DeliveryReport",
    "Destination",
    "GardenNotification",
    "LoggingEmitter",
    "NotificationDispatcher",
    "NotificationEmitter",
]
