"""FastAPI application entry point for the Dineflow order service."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.deps import ConnectionManager
from .api.routes import notifications, orders, restaurants, staff, websocket
from .config import Settings, get_settings, setup_logging
from .core.orchestrator import OrderOrchestrator
from .core.reconciler import StatusReconciler
from .exceptions import (
    Conflict,
    DineflowError,
    InvalidTransition,
    NotFound,
    PersistenceUnavailable,
    ValidationError,
)
from .services.notification import NotificationService
from .services.order_store import InMemoryOrderStore, OrderStore
from .services.sql_store import SqlOrderStore

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    NotFound: 404,
    ValidationError: 422,
    InvalidTransition: 409,
    Conflict: 409,
    PersistenceUnavailable: 503,
}


def build_store(settings: Settings) -> OrderStore:
    if settings.store_backend == "memory":
        return InMemoryOrderStore()
    return SqlOrderStore(settings.database_url, echo=settings.database_echo)


async def dineflow_error_handler(request: Request, exc: DineflowError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": exc.message, "context": exc.detail},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup/shutdown."""
    settings = app.state.settings
    logger.info("Starting %s...", settings.app_name)

    await app.state.store.init()
    app.state.reconciler.start()

    # Start background services
    notification_task = asyncio.create_task(app.state.notifier.start())

    yield

    # Shutdown
    logger.info("Shutting down...")
    app.state.reconciler.stop()
    await app.state.notifier.stop()
    notification_task.cancel()
    try:
        await notification_task
    except asyncio.CancelledError:
        pass
    await app.state.store.close()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[OrderStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging()

    app = FastAPI(
        title=settings.app_name,
        description="Restaurant order fan-out to cooks and waiters",
        version=settings.app_version,
        lifespan=lifespan,
    )

    # Wired eagerly so the app also serves without a lifespan run
    manager = ConnectionManager()
    app.state.settings = settings
    app.state.connection_manager = manager
    app.state.store = store or build_store(settings)
    app.state.notifier = NotificationService(
        broadcaster=manager.broadcast,
        max_history=settings.notification_history_size,
        default_icon=settings.notification_icon,
    )
    app.state.orchestrator = OrderOrchestrator(app.state.store, app.state.notifier)
    app.state.reconciler = StatusReconciler(app.state.orchestrator, app.state.store)

    app.add_exception_handler(DineflowError, dineflow_error_handler)

    # CORS middleware for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(restaurants.router, prefix=settings.api_prefix)
    app.include_router(staff.router, prefix=settings.api_prefix)
    app.include_router(orders.router, prefix=settings.api_prefix)
    app.include_router(notifications.router, prefix=settings.api_prefix)
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "status": "running",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dineflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().debug,
    )
