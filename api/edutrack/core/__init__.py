# Core infrastructure
from edutrack.core.context import (
    clear_context,
    get_context,
    get_request_id,
    get_trace_id,
    get_user_id,
    progress_scope,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from edutrack.core.exceptions import (
    ConflictError,
    DomainError,
    InvalidStateError,
    NotFoundError,
)
from edutrack.core.logging import configure_structlog, get_logger
from edutrack.core.middleware import RequestContextMiddleware


__all__ = [
    "ConflictError",
    "DomainError",
    "InvalidStateError",
    "NotFoundError",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "get_user_id",
    "progress_scope",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
