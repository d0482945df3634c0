from garden.domain.streaming.notification import Destination, GardenNotification, NotificationEmitter
from garden.infrastructure.observability.logging import garden_logger
from .connection_manager import ConnectionManager, VISUALIZER
from .schema.events import GardenObjectEvent, GardenObjectsEvent


class WebSocketEmitter(NotificationEmitter):
    """Broadcasts garden notifications to every connected visualizer"""

    def __init__(self, connection_manager: ConnectionManager):
        self.connection_manager = connection_manager

    async def emit(self, notification: GardenNotification) -> None:
        """Send single notifications event by event and batches as one message"""

        if notification.destination == Destination.SINGLE:
            for event in notification.events:
                await self.connection_manager.broadcast(
                    GardenObjectEvent(
                        address=notification.address,
                        version=notification.version,
                        payload=event
                    ),
                    role=VISUALIZER
                )
        else:
            await self.connection_manager.broadcast(
                GardenObjectsEvent(
                    address=notification.address,
                    version=notification.version,
                    payload=notification.events,
                    count=len(notification.events)
                ),
                role=VISUALIZER
            )

        garden_logger.log_notification(
            notification.address,
            notification.version,
            notification.data_strings()
        )
