"""FastAPI dependencies for progress tracking.

Provides dependency injection for:
- Progress service
- Domain error translation
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from edutrack.core.exceptions import (
    ConflictError,
    DomainError,
    InvalidStateError,
    NotFoundError,
)

from .service import ProgressService


async def get_progress_service(request: Request) -> ProgressService:
    """Get progress service from app state."""
    app_state = request.app.state
    if not hasattr(app_state, "progress_service") or not app_state.progress_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Progress service not available",
        )
    return app_state.progress_service


# Type alias for dependency injection
ProgressServiceDep = Annotated[ProgressService, Depends(get_progress_service)]


# Payload validation (422) happens in the request schemas
_STATUS_BY_ERROR: list[tuple[type[DomainError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStateError, status.HTTP_409_CONFLICT),
    (ConflictError, status.HTTP_409_CONFLICT),
]


def handle_domain_error(error: DomainError) -> HTTPException:
    """Convert domain errors to HTTP exceptions."""
    status_code = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
