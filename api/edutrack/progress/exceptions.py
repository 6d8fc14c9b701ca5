"""Progress tracking errors.

Catalog lookups raise their own NotFound errors (see
``edutrack.catalog.resolver``); these cover enrollments, progress records
and rejected signals.
"""

from edutrack.core.exceptions import ConflictError, InvalidStateError, NotFoundError


class EnrollmentNotFoundError(NotFoundError):
    """Enrollment does not exist or does not belong to the student."""

    def __init__(self, message: str = "Enrollment not found"):
        super().__init__(message, "enrollment_not_found")


class LessonProgressNotFoundError(NotFoundError):
    """No progress has been recorded for the lesson."""

    def __init__(self, message: str = "Lesson progress not found"):
        super().__init__(message, "progress_not_found")


class EnrollmentInactiveError(InvalidStateError):
    """Enrollment exists but no longer accepts progress."""

    def __init__(self, message: str = "Enrollment is not active"):
        super().__init__(message, "enrollment_inactive")


class LessonNotPublishedError(InvalidStateError):
    """Lesson exists but is not published."""

    def __init__(self, message: str = "Lesson is not published"):
        super().__init__(message, "lesson_not_published")


class LessonNotInModuleError(InvalidStateError):
    """Lesson belongs to a different module than the enrollment."""

    def __init__(self, message: str = "Lesson does not belong to the enrolled module"):
        super().__init__(message, "lesson_not_in_module")


class InvalidSignalError(InvalidStateError):
    """Signal does not apply to the lesson type or carries invalid values."""

    def __init__(self, message: str = "Invalid progress signal"):
        super().__init__(message, "invalid_signal")


class AlreadyEnrolledError(ConflictError):
    """Student already has an enrollment for the module."""

    def __init__(self, message: str = "Student already enrolled in module"):
        super().__init__(message, "already_enrolled")


class ProgressLockTimeoutError(ConflictError):
    """Another writer held the progress lock for too long."""

    def __init__(self, message: str = "Progress is being updated, retry shortly"):
        super().__init__(message, "progress_locked")
