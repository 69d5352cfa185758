"""Shared infrastructure for the commerce services."""

from .config import DEFAULT_APP_NAME, ServiceSettings, get_settings
from .instrumentation import build_app, instrument_app
from .logging import bind_user_id, configure_logging
from .database import (
    create_engine,
    dispose_engines,
    get_session_factory,
    ping_database,
    resolve_database_url,
    unit_of_work,
)
from .tracing import traced_operation

__all__ = [
    "ServiceSettings",
    "get_settings",
    "build_app",
    "instrument_app",
    "bind_user_id",
    "configure_logging",
    "DEFAULT_APP_NAME",
    "create_engine",
    "dispose_engines",
    "get_session_factory",
    "ping_database",
    "resolve_database_url",
    "unit_of_work",
    "traced_operation",
]
