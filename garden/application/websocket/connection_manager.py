from typing import Dict, List, Set, Optional
from fastapi import WebSocket
import asyncio
from datetime import datetime, timezone
import structlog

from .schema.events import BaseEvent, ConnectionEvent, ErrorEvent

logger = structlog.get_logger(__name__)

VISUALIZER = "visualizer"
RELAY = "relay"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConnectionManager:
    """Manages WebSocket connections and message routing"""

    def __init__(self, stale_after_seconds: int = 300):
        self.active_connections: Dict[str, WebSocket] = {}
        self.session_metadata: Dict[str, Dict] = {}
        self.held_events: Dict[str, List[BaseEvent]] = {}
        self.stale_after_seconds = stale_after_seconds
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str, role: str, hold_broadcasts: bool = False):
        """
        Accept a new WebSocket connection.

        With ``hold_broadcasts`` the session's broadcasts are queued until
        ``release`` is called, so a reply sent first is not overtaken.
        """
        await websocket.accept()

        async with self._lock:
            self.active_connections[session_id] = websocket
            self.session_metadata[session_id] = {
                "role": role,
                "connected_at": _now(),
                "last_activity": _now()
            }
            if hold_broadcasts:
                self.held_events[session_id] = []

        # Send connection confirmation
        await self.send_event(
            session_id,
            ConnectionEvent(
                status="connected",
                role=role,
                session_id=session_id
            )
        )

        logger.info("WebSocket connected", session_id=session_id, role=role)

    async def disconnect(self, session_id: str):
        """Disconnect a WebSocket connection"""
        async with self._lock:
            if session_id in self.active_connections:
                ws = self.active_connections.pop(session_id)
                self.session_metadata.pop(session_id, None)
                self.held_events.pop(session_id, None)

                try:
                    await ws.close()
                except Exception as e:
                    logger.debug("Error closing WebSocket", session_id=session_id, error=str(e))

        logger.info("WebSocket disconnected", session_id=session_id)

    def touch(self, session_id: str):
        """Record inbound activity on a session"""
        if session_id in self.session_metadata:
            self.session_metadata[session_id]["last_activity"] = _now()

    async def send_event(self, session_id: str, event: BaseEvent) -> bool:
        """Send an event to a specific session"""
        if session_id not in self.active_connections:
            logger.warning("Attempted to send to disconnected session", session_id=session_id)
            return False

        websocket = self.active_connections[session_id]

        try:
            await websocket.send_json(event.model_dump(mode="json"))
            self.touch(session_id)
            return True

        except Exception as e:
            logger.error("Failed to send event", session_id=session_id, error=str(e))
            await self.disconnect(session_id)
            return False

    async def broadcast(self, event: BaseEvent, role: Optional[str] = VISUALIZER) -> int:
        """Send an event to every session of a role; returns how many received it"""
        sessions = []
        for session_id in sorted(self.get_active_sessions(role)):
            if session_id in self.held_events:
                self.held_events[session_id].append(event)
            else:
                sessions.append(session_id)

        results = await asyncio.gather(
            *(self.send_event(session_id, event) for session_id in sessions),
            return_exceptions=True
        )
        return sum(1 for result in results if result is True)

    async def release(self, session_id: str, after_version: int) -> int:
        """Flush held broadcasts newer than ``after_version`` and stream live from then on"""
        held = self.held_events.get(session_id)
        sent = 0

        # Broadcasts arriving while flushing append to the same list
        while held:
            event = held.pop(0)
            version = getattr(event, "version", None)
            if version is not None and version <= after_version:
                continue
            if not await self.send_event(session_id, event):
                break
            sent += 1

        self.held_events.pop(session_id, None)
        return sent

    async def send_error(self, session_id: str, error_message: str, error_code: Optional[str] = None):
        """Send an error event to a session"""
        error_event = ErrorEvent(
            payload={"message": error_message},
            error_code=error_code,
            session_id=session_id
        )
        await self.send_event(session_id, error_event)

    def get_active_sessions(self, role: Optional[str] = None) -> Set[str]:
        """Get active session IDs, optionally filtered by role"""
        if role:
            return {
                session_id
                for session_id, metadata in self.session_metadata.items()
                if metadata.get("role") == role
            }
        return set(self.active_connections.keys())

    async def disconnect_all(self):
        for session_id in list(self.active_connections.keys()):
            await self.disconnect(session_id)

    async def disconnect_stale(self, role: Optional[str] = RELAY) -> int:
        """Disconnect sessions idle for longer than the stale threshold"""
        # Only relay sessions expire; visualizers are receive-only
        current_time = _now()
        stale_sessions = [
            session_id
            for session_id, metadata in list(self.session_metadata.items())
            if (role is None or metadata.get("role") == role)
            and (current_time - metadata["last_activity"]).total_seconds() > self.stale_after_seconds
        ]

        for session_id in stale_sessions:
            logger.warning("Disconnecting stale session", session_id=session_id)
            await self.disconnect(session_id)

        return len(stale_sessions)

    async def health_check(self, interval_seconds: float = 60):
        """Periodic health check to clean up stale connections"""
        while True:
            try:
                await self.disconnect_stale()
            except Exception as e:
                logger.error("Health check error", error=str(e))

            await asyncio.sleep(interval_seconds)
