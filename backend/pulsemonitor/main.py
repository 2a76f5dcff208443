"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import close_db, init_db
from .errors import ConfigurationError, ConflictError, NotFoundError
from .routers import (
    alerts_router,
    applications_router,
    contact_groups_router,
    contacts_router,
    data_router,
    groups_router,
    incidents_router,
    monitors_router,
    settings_router,
    status_router,
    ws_router,
)
from .services.alerter import NotificationDispatcher
from .services.events import EventBus
from .services.monitor_state import MonitorState
from .services.network_monitor import NetworkMonitor
from .services.persistence import SnapshotStore
from .services.scheduler import SchedulerService
from .services.websocket_manager import ConnectionManager

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting Pulse Monitor")
    state: MonitorState = app.state.monitor_state
    scheduler: SchedulerService = app.state.scheduler

    await init_db()
    logger.info("Database initialized")
    await state.load()

    if settings.monitoring_enabled:
        scheduler.start()
        scheduler.start_all()
        app.state.network_monitor.start(scheduler)

    yield

    # Shutdown
    app.state.network_monitor.stop()
    await scheduler.stop()
    await state.flush()
    await state.events.drain()
    await close_db()
    logger.info("Shutdown complete")


def create_app(
    state: Optional[MonitorState] = None,
    scheduler: Optional[SchedulerService] = None,
    network_monitor: Optional[NetworkMonitor] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Services default to a store-backed state with the live probes; tests pass
    their own.
    """
    app = FastAPI(
        title="Pulse Monitor",
        description="Multi-protocol endpoint monitoring with incidents and alerting",
        version="1.0.0",
        lifespan=lifespan,
    )

    state = state or MonitorState(store=SnapshotStore(), event_bus=EventBus())
    scheduler = scheduler or SchedulerService(state, dispatcher=NotificationDispatcher(state))
    websocket_manager = ConnectionManager()
    state.events.subscribe(websocket_manager.handle_event)

    app.state.monitor_state = state
    app.state.scheduler = scheduler
    app.state.network_monitor = network_monitor or NetworkMonitor(state, scheduler.dispatcher)
    app.state.websocket_manager = websocket_manager

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(status_code=422, content={"detail": exc.errors})

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    app.include_router(applications_router)
    app.include_router(groups_router)
    app.include_router(monitors_router)
    app.include_router(contacts_router)
    app.include_router(contact_groups_router)
    app.include_router(alerts_router)
    app.include_router(incidents_router)
    app.include_router(settings_router)
    app.include_router(status_router)
    app.include_router(data_router)
    app.include_router(ws_router)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "monitoring": scheduler.running,
            "websocket_clients": websocket_manager.connection_count,
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
