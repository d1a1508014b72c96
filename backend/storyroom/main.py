"""FastAPI application entrypoint."""
from __future__ import annotations

from collections.abc import Callable
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI

from .api.routes.auth import router as auth_router
from .api.routes.health import router as health_router
from .api.routes.invites import router as invites_router
from .api.routes.rooms import router as rooms_router
from .core.config import AppSettings, get_settings
from .core.cors import install_cors
from .core.errors import register_error_handlers
from .core.logging import get_logger, setup_logging
from .core.room_store import build_room_store
from .core.store import close_kv_store, connect_kv_store
from .services.rooms import RoomCoordinator
from .services.sweeper import run_sweeper

logger = get_logger(__name__)


def coordinator_factory(settings: AppSettings) -> Callable[[], RoomCoordinator]:
    """Build coordinators for background work outside a request."""

    def build() -> RoomCoordinator:
        store = build_room_store(settings, connect_kv_store(settings))
        return RoomCoordinator(store, settings=settings)

    return build


def create_app(settings: AppSettings | None = None) -> FastAPI:
    """Application factory used by ASGI servers."""
    injected = settings is not None
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ARG001 - FastAPI lifespan signature
        async with AsyncExitStack() as stack:
            stack.push_async_callback(close_kv_store)
            if settings.enable_room_sweeper:
                await stack.enter_async_context(
                    run_sweeper(coordinator_factory(settings), interval=settings.room_sweep_interval)
                )
            yield

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    if injected:
        app.dependency_overrides[get_settings] = lambda: settings
    register_error_handlers(app)
    install_cors(app, settings)

    app.include_router(health_router, prefix=f"{settings.api_prefix}/health", tags=["health"])
    app.include_router(auth_router, prefix=settings.api_prefix)
    app.include_router(invites_router, prefix=settings.api_prefix)
    app.include_router(rooms_router, prefix=settings.api_prefix)

    logger.info("%s ready (%s)", settings.app_name, settings.environment)
    return app


app = create_app()
