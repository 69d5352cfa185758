from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from services.common import (
    DEFAULT_APP_NAME,
    ServiceSettings,
    build_app,
    configure_logging,
    create_engine,
    dispose_engines,
    get_session_factory,
    get_settings,
    resolve_database_url,
)

from .api.carts import router as carts_router
from .api.health import router as health_router
from .api.orders import router as orders_router
from .errors import register_error_handlers

SERVICE_NAME = "Cart Service"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./cart_service.db"


def create_app(settings: ServiceSettings | None = None) -> FastAPI:
    """Create the Cart Service FastAPI application."""

    resolved_settings = settings or get_settings()
    if resolved_settings.app_name == DEFAULT_APP_NAME:
        resolved_settings = resolved_settings.model_copy(update={"app_name": SERVICE_NAME})
    configure_logging(resolved_settings)
    database_url = resolve_database_url(resolved_settings, DEFAULT_DATABASE_URL)
    engine = create_engine(database_url, echo=resolved_settings.database_echo)
    session_factory = get_session_factory(database_url)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine
        app.state.session_factory = session_factory
        try:
            yield
        finally:
            await dispose_engines()

    app = build_app(resolved_settings, lifespan=lifespan)
    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(carts_router)
    app.include_router(orders_router)
    return app


app = create_app()


if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(app, host=settings.service_host, port=settings.service_port)
