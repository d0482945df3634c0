from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from typing import Any
import json
import re
import structlog

from garden.domain.garden.garden_manager import GardenManager
from garden.domain.models.errors import ErrorCode
from .command_parser import RelayCommandTracker, extract_text, parse_command
from .connection_manager import ConnectionManager, RELAY, VISUALIZER
from .schema.events import GardenStateEvent, RelayResponseEvent

logger = structlog.get_logger(__name__)

router = APIRouter()

_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@router.websocket("/ws/visualizer/{session_id}")
async def visualizer_websocket(websocket: WebSocket, session_id: str):
    """Downstream consumer endpoint: current state first, then every notification"""

    if not _SESSION_ID.match(session_id):
        await websocket.close(code=1008, reason="Invalid session ID format")
        return

    connection_manager: ConnectionManager = websocket.app.state.connection_manager
    garden_manager: GardenManager = websocket.app.state.garden_manager

    await connection_manager.connect(websocket, session_id, VISUALIZER, hold_broadcasts=True)

    try:
        # Held broadcasts at or below the snapshot version are already in it
        state = await garden_manager.get_state()
        await connection_manager.send_event(
            session_id,
            GardenStateEvent(payload=state, session_id=session_id)
        )
        await connection_manager.release(session_id, after_version=state.version)

        # Visualizers send nothing meaningful; reading surfaces the disconnect
        while True:
            await websocket.receive_text()
            connection_manager.touch(session_id)

    except WebSocketDisconnect:
        logger.info("Visualizer disconnected", session_id=session_id)
    except Exception as e:
        logger.error("Visualizer WebSocket error", error=str(e), session_id=session_id)
    finally:
        await connection_manager.disconnect(session_id)


@router.websocket("/ws/relay/{session_id}")
async def relay_websocket(websocket: WebSocket, session_id: str):
    """Upstream command endpoint for relayed add and check-garden messages"""

    if not _SESSION_ID.match(session_id):
        await websocket.close(code=1008, reason="Invalid session ID format")
        return

    connection_manager: ConnectionManager = websocket.app.state.connection_manager

    await connection_manager.connect(websocket, session_id, RELAY)

    try:
        while True:
            raw = await websocket.receive_text()
            connection_manager.touch(session_id)

            try:
                message: Any = json.loads(raw)
            except ValueError:
                message = raw

            try:
                await handle_relay_message(websocket, session_id, message)
            except Exception as e:
                logger.error("Error processing relay message", error=str(e), session_id=session_id)
                await connection_manager.send_error(
                    session_id,
                    f"Error processing message: {str(e)}"
                )

    except WebSocketDisconnect:
        logger.info("Relay disconnected", session_id=session_id)
    except Exception as e:
        logger.error("Relay WebSocket error", error=str(e), session_id=session_id)
    finally:
        await connection_manager.disconnect(session_id)


async def handle_relay_message(websocket: WebSocket, session_id: str, message: Any):
    """Apply one relay message and answer on the same socket"""

    connection_manager: ConnectionManager = websocket.app.state.connection_manager
    garden_manager: GardenManager = websocket.app.state.garden_manager
    tracker: RelayCommandTracker = websocket.app.state.relay_tracker

    text = extract_text(message)
    if text is None:
        await connection_manager.send_error(
            session_id,
            "Could not extract text from message",
            ErrorCode.INVALID_INPUT.value
        )
        return

    command = parse_command(text)
    if command is None:
        logger.info("Unrecognised relay message", text=text, session_id=session_id)
        await connection_manager.send_error(
            session_id,
            f'Message text "{text}" does not match any known pattern',
            ErrorCode.INVALID_INPUT.value
        )
        return

    tracker.record(command)

    with structlog.contextvars.bound_contextvars(session_id=command.session_id or session_id):
        if command.action == "add":
            logger.info("Relay add command", object_id=command.object_id)
            result = await garden_manager.add(command.object_id)
            reply = RelayResponseEvent(
                text=f"Response: {result.message}",
                object_id=command.object_id,
                success=result.success,
                session_id=command.session_id
            )
        else:
            logger.info("Relay check-garden command", object_id=command.object_id)
            result = await garden_manager.remove(command.object_id)
            reply = RelayResponseEvent(
                text=f"ACK: check-garden/{command.object_id}",
                object_id=command.object_id,
                success=result.success
            )

    await connection_manager.send_event(session_id, reply)
