"""Request context management using contextvars.

Each request gets a unique ID and optional user/trace information that the
logging processors attach to every event emitted in the call stack.
Progress operations additionally bind the enrollment and lesson they act on.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4

import structlog


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_user_id() -> str | None:
    """Get the current user ID."""
    return user_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    """Set the authenticated user ID for the current context."""
    user_id_var.set(str(user_id) if user_id is not None else None)


def get_trace_id() -> str | None:
    """Get the current trace ID."""
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set the distributed tracing ID for the current context."""
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """Get the non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    user_id = get_user_id()
    if user_id:
        context["user_id"] = user_id

    trace_id = get_trace_id()
    if trace_id:
        context["trace_id"] = trace_id

    return context


def clear_context() -> None:
    """Clear all context variables at the end of a request."""
    request_id_var.set("")
    user_id_var.set(None)
    trace_id_var.set(None)
    structlog.contextvars.clear_contextvars()


@contextmanager
def progress_scope(
    enrollment_id: UUID,
    lesson_id: UUID | None = None,
    **extra: Any,
) -> Iterator[None]:
    """Bind progress identifiers to every log event inside the block.

    Usage:
        with progress_scope(enrollment_id, lesson_id, signal="complete"):
            logger.info("lesson_completed")  # carries enrollment_id, lesson_id
    """
    bindings: dict[str, Any] = {"enrollment_id": str(enrollment_id)}
    if lesson_id is not None:
        bindings["lesson_id"] = str(lesson_id)
    bindings.update(extra)

    with structlog.contextvars.bound_contextvars(**bindings):
        yield
