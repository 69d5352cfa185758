import logging
from contextvars import ContextVar
from typing import Literal

try:  # pragma: no cover - logging works without tracing dependency
    from opentelemetry import trace
except ModuleNotFoundError:  # pragma: no cover - executed when tracing libs missing
    trace = None  # type: ignore[assignment]

from .config import ServiceSettings


_PLACEHOLDER = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | trace_id=%(trace_id)s span_id=%(span_id)s "
    "user_id=%(user_id)s | %(message)s"
)

_current_user_id: ContextVar[str | None] = ContextVar("current_user_id", default=None)


def bind_user_id(user_id: int | str | None) -> None:
    """Attach the authenticated user to log records emitted in this context."""

    _current_user_id.set(None if user_id is None else str(user_id))


def _format_trace_id(value: int, length: int) -> str:
    return format(value, f"0{length}x")


class RequestContextFilter(logging.Filter):
    """Populate trace/span identifiers and the current user on every record."""

    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - exercised in tests
        record.user_id = _current_user_id.get() or _PLACEHOLDER
        if trace is None:
            record.trace_id = _PLACEHOLDER
            record.span_id = _PLACEHOLDER
            return True

        span = trace.get_current_span()
        span_context = span.get_span_context() if span is not None else None
        if span_context is not None and span_context.is_valid:
            record.trace_id = _format_trace_id(span_context.trace_id, 32)
            record.span_id = _format_trace_id(span_context.span_id, 16)
        else:
            record.trace_id = _PLACEHOLDER
            record.span_id = _PLACEHOLDER
        return True


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging level and format."""

    logging_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = settings.log_level
    logging.basicConfig(level=logging_level, format=_LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging_level)
    existing_filter = next(
        (f for f in root_logger.filters if isinstance(f, RequestContextFilter)),
        None,
    )
    context_filter = existing_filter or RequestContextFilter()
    if existing_filter is None:
        root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(context_filter)
    if settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)
