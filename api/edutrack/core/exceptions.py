"""Domain error taxonomy shared by the catalog, activity and progress packages.

Routers translate these into HTTP responses; services raise them synchronously.
"""


class DomainError(Exception):
    """Base domain error."""

    def __init__(self, message: str, code: str = "domain_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(DomainError):
    """A referenced lesson, topic, module or enrollment does not exist."""


class InvalidStateError(DomainError):
    """The referenced entity exists but cannot accept the requested change."""


class ConflictError(DomainError):
    """Concurrent modification that could not be absorbed."""
