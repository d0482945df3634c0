from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import asyncio
import structlog
import uvicorn

from garden import __version__
from garden.application.api.route.garden import router as garden_router
from garden.application.websocket.command_parser import RelayCommandTracker
from garden.application.websocket.connection_manager import ConnectionManager
from garden.application.websocket.websocket_emitter import WebSocketEmitter
from garden.application.websocket.ws_server import router as ws_router
from garden.domain.garden.garden_manager import GardenManager, OperationResult
from garden.domain.models.errors import ErrorCode
from garden.domain.streaming.dispatcher import NotificationDispatcher
from garden.infrastructure.config.settings import GardenSettings, get_settings
from garden.infrastructure.observability.logging import setup_logging

logger = structlog.get_logger(__name__)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as invalid input failures"""

    details = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    logger.info("Rejected malformed request", path=request.url.path, errors=details)

    result = OperationResult(
        success=False,
        operation=request.url.path.strip("/").split("/")[0] or "request",
        message=f"Invalid request: {details}",
        error_code=ErrorCode.INVALID_INPUT
    )
    return JSONResponse(status_code=400, content=result.model_dump(mode="json"))


def create_app(
    settings: Optional[GardenSettings] = None,
    garden_manager: Optional[GardenManager] = None,
    connection_manager: Optional[ConnectionManager] = None
) -> FastAPI:
    """
    Build the garden server.

    The garden manager's notifications are broadcast to visualizer sockets
    unless a manager with its own dispatcher is passed in.
    """

    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_format, settings.service_name, settings.environment)

    connection_manager = connection_manager or ConnectionManager(
        stale_after_seconds=settings.stale_connection_seconds
    )
    if garden_manager is None:
        dispatcher = NotificationDispatcher(
            emitter=WebSocketEmitter(connection_manager),
            timeout_seconds=settings.notification_timeout_seconds
        )
        garden_manager = GardenManager(settings=settings, dispatcher=dispatcher)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await garden_manager.start()
        health_task = asyncio.create_task(
            connection_manager.health_check(settings.health_check_interval_seconds)
        )
        logger.info(
            "Garden server started",
            environment=settings.environment,
            max_capacity=settings.max_capacity,
            idle_timeout_seconds=settings.idle_timeout_seconds
        )

        yield

        health_task.cancel()
        try:
            await health_task
        except asyncio.CancelledError:
            pass

        await garden_manager.shutdown()
        await connection_manager.disconnect_all()
        logger.info("Garden server stopped")

    app = FastAPI(title="Garden Placement Server", version=__version__, lifespan=lifespan)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.garden_manager = garden_manager
    app.state.connection_manager = connection_manager
    app.state.relay_tracker = RelayCommandTracker()

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.include_router(garden_router)
    app.include_router(ws_router)

    return app


app = create_app()


def main():
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
