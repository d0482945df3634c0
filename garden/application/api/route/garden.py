from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Annotated, Any, Awaitable, Callable, Dict
import structlog

from garden.application.api.schema.requests import SetGardenRequest, normalize_object_ids
from garden.application.websocket.command_parser import RelayCommandTracker
from garden.application.websocket.connection_manager import ConnectionManager, RELAY, VISUALIZER
from garden.domain.garden.garden_manager import GardenManager, OperationResult
from garden.domain.models.errors import ErrorCode, InvalidInputError
from garden.infrastructure.observability.logging import metrics

logger = structlog.get_logger(__name__)

router = APIRouter()

STATUS_CODES = {
    ErrorCode.UNKNOWN_OBJECT: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
}


def get_garden_manager(request: Request) -> GardenManager:
    return request.app.state.garden_manager


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


def get_relay_tracker(request: Request) -> RelayCommandTracker:
    return request.app.state.relay_tracker


GardenManagerDep = Annotated[GardenManager, Depends(get_garden_manager)]


def to_response(result: OperationResult) -> JSONResponse:
    """Render a result with the status code its error code maps to"""

    status_code = 200 if result.success else STATUS_CODES.get(result.error_code, 400)
    return JSONResponse(status_code=status_code, content=result.model_dump(mode="json"))


def error_response(operation: str, message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "operation": operation, "message": message}
    )


async def run_operation(operation: str, call: Callable[[], Awaitable[OperationResult]]) -> JSONResponse:
    try:
        result = await call()
    except Exception as e:
        logger.error("Unexpected error", operation=operation, error=str(e), exc_info=True)
        return error_response(operation, f"Internal server error: {str(e)}")

    return to_response(result)


@router.get("/garden-state")
async def garden_state(garden_manager: GardenManagerDep):
    state = await garden_manager.get_state()
    return {"success": True, "state": state.model_dump(mode="json")}


@router.post("/add/{object_id}")
async def add_object(object_id: str, garden_manager: GardenManagerDep):
    return await run_operation("add", lambda: garden_manager.add(object_id))


@router.post("/remove/{object_id}")
@router.post("/check-garden/{object_id}")
async def remove_object(object_id: str, garden_manager: GardenManagerDep):
    return await run_operation("remove", lambda: garden_manager.remove(object_id))


@router.post("/clear-garden")
async def clear_garden(garden_manager: GardenManagerDep):
    return await run_operation("clear", garden_manager.clear)


@router.post("/set-garden")
async def set_garden(body: SetGardenRequest, garden_manager: GardenManagerDep):
    """Place a list of objects in order, optionally clearing the garden first"""

    try:
        object_ids = normalize_object_ids(body.object_ids, garden_manager.settings.max_capacity)
    except InvalidInputError as e:
        logger.info("Rejected batch request", error=e.message)
        return to_response(OperationResult(
            success=False,
            operation="add_batch",
            message=e.message,
            error_code=e.code
        ))

    return await run_operation(
        "add_batch",
        lambda: garden_manager.add_batch(object_ids, clear_first=body.clear_first)
    )


@router.post("/remove-oldest-half")
async def remove_oldest_half(garden_manager: GardenManagerDep):
    return await run_operation("remove_oldest_half", garden_manager.remove_oldest_half)


@router.post("/reinitialize")
async def reinitialize(garden_manager: GardenManagerDep):
    return await run_operation("reinitialize", garden_manager.reinitialize)


@router.post("/idle-action")
async def idle_action(garden_manager: GardenManagerDep):
    """Run the idle policy immediately; the protection band still applies"""
    return await run_operation("idle_action", garden_manager.run_idle_action)


@router.get("/last-data")
async def last_data(tracker: Annotated[RelayCommandTracker, Depends(get_relay_tracker)]):
    last = tracker.last
    return {
        "lastObjectId": last.object_id,
        "lastSessionId": last.session_id,
        "receivedAt": last.received_at.isoformat() if last.received_at else None
    }


@router.get("/catalog")
async def catalog(garden_manager: GardenManagerDep):
    return garden_manager.engine.catalog.get_info()


@router.get("/health")
async def health(
    garden_manager: GardenManagerDep,
    connection_manager: Annotated[ConnectionManager, Depends(get_connection_manager)]
) -> Dict[str, Any]:
    state = await garden_manager.get_state()
    return {
        "status": "healthy",
        "occupancy": state.occupant_count,
        "max_capacity": state.max_capacity,
        "version": state.version,
        "idle_seconds_remaining": garden_manager.idle_monitor.remaining(),
        "pending_notifications": garden_manager.dispatcher.pending,
        "active_connections": {
            "visualizers": len(connection_manager.get_active_sessions(VISUALIZER)),
            "relays": len(connection_manager.get_active_sessions(RELAY)),
        },
        "metrics": metrics.get_metrics_summary()
    }
