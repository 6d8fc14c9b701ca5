"""Progress tracking API endpoints.

Provides routes for:
- Lesson signals (start, complete, video, quiz) and admin reset
- Module snapshots, student overviews and module statistics
- Enrollment management and reconciliation
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from edutrack.auth.dependencies import AdminUser, CurrentUser, TeacherUser
from edutrack.auth.permissions import is_at_least_teacher
from edutrack.auth.schemas import AuthenticatedUser
from edutrack.core.exceptions import DomainError

from .dependencies import ProgressServiceDep, handle_domain_error
from .exceptions import EnrollmentInactiveError
from .models import ModuleEnrollment
from .schemas import (
    CascadeResponse,
    CompleteLessonRequest,
    EnrollmentListResponse,
    EnrollmentResponse,
    EnrollRequest,
    LessonProgressResponse,
    ModuleProgressResponse,
    ModuleStatsResponse,
    QuizResultResponse,
    QuizSubmitRequest,
    StartLessonRequest,
    StudentProgressResponse,
    VideoProgressRequest,
)
from .service import ProgressService


router = APIRouter(prefix="/v1/progress", tags=["progress"])
enrollments_router = APIRouter(prefix="/v1/enrollments", tags=["enrollments"])


# ==============================================================================
# Access Validation Helpers
# ==============================================================================


async def authorize_enrollment(
    enrollment_id: UUID,
    user: AuthenticatedUser,
    progress_service: ProgressService,
    require_active: bool = True,
) -> ModuleEnrollment:
    """Load an enrollment the caller may act on.

    Students act on their own enrollments; teachers and admins on any.
    Signals additionally require the catalog precondition that the
    enrollment exists, belongs to its student and is active.

    Raises:
        HTTPException 404: Enrollment does not exist
        HTTPException 403: Enrollment belongs to another student
        HTTPException 409: Enrollment is inactive
    """
    try:
        enrollment = await progress_service.get_enrollment(enrollment_id)
    except DomainError as e:
        raise handle_domain_error(e) from e

    if enrollment.student_id != user.id and not is_at_least_teacher(user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Enrollment belongs to another student",
        )

    if require_active:
        active = await progress_service.resolver.enrollment_exists_and_active(
            enrollment.id, enrollment.student_id
        )
        if not active:
            raise handle_domain_error(EnrollmentInactiveError())

    return enrollment


def ensure_can_view_student(user: AuthenticatedUser, student_id: UUID) -> None:
    """Raise 403 unless the caller is the student or at least a teacher."""
    if not user.can_view_student(student_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot view another student's progress",
        )


# ==============================================================================
# Lesson Signal Endpoints
# ==============================================================================


@router.post(
    "/lessons/{lesson_id}/start",
    response_model=LessonProgressResponse,
    summary="Start a lesson",
)
async def start_lesson(
    lesson_id: UUID,
    data: StartLessonRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressResponse:
    """Record the first interaction with a lesson. Does not affect rollups."""
    enrollment = await authorize_enrollment(data.enrollment_id, user, progress_service)

    try:
        progress = await progress_service.start_lesson(
            lesson_id=lesson_id,
            student_id=enrollment.student_id,
            enrollment_id=enrollment.id,
        )
        return LessonProgressResponse.from_entity(progress)
    except DomainError as e:
        raise handle_domain_error(e) from e


@router.post(
    "/lessons/{lesson_id}/complete",
    response_model=LessonProgressResponse,
    summary="Mark lesson as complete",
)
async def complete_lesson(
    lesson_id: UUID,
    data: CompleteLessonRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressResponse:
    """Complete a lesson and recompute topic and module progress."""
    enrollment = await authorize_enrollment(data.enrollment_id, user, progress_service)

    try:
        progress = await progress_service.complete_lesson(
            lesson_id=lesson_id,
            enrollment_id=enrollment.id,
            score=data.score,
            watch_time=data.watch_time,
        )
        return LessonProgressResponse.from_entity(progress)
    except DomainError as e:
        raise handle_domain_error(e) from e


@router.post(
    "/lessons/{lesson_id}/video",
    response_model=LessonProgressResponse,
    summary="Update video progress",
)
async def update_video_progress(
    lesson_id: UUID,
    data: VideoProgressRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> LessonProgressResponse:
    """Record watch time and resume position. Never completes the lesson."""
    enrollment = await authorize_enrollment(data.enrollment_id, user, progress_service)

    try:
        progress = await progress_service.update_video_progress(
            lesson_id=lesson_id,
            enrollment_id=enrollment.id,
            watch_time=data.watch_time,
            last_position=data.last_position,
        )
        return LessonProgressResponse.from_entity(progress)
    except DomainError as e:
        raise handle_domain_error(e) from e


@router.post(
    "/lessons/{lesson_id}/quiz",
    response_model=QuizResultResponse,
    summary="Submit quiz result",
)
async def submit_quiz(
    lesson_id: UUID,
    data: QuizSubmitRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> QuizResultResponse:
    """Record a quiz or assignment attempt."""
    enrollment = await authorize_enrollment(data.enrollment_id, user, progress_service)

    try:
        result = await progress_service.update_quiz_progress(
            lesson_id=lesson_id,
            student_id=enrollment.student_id,
            enrollment_id=enrollment.id,
            score=data.score,
            passed=data.passed,
        )
        return QuizResultResponse.from_result(result)
    except DomainError as e:
        raise handle_domain_error(e) from e


@router.delete(
    "/lessons/{lesson_id}/reset",
    response_model=LessonProgressResponse,
    summary="Reset lesson progress (admin)",
)
async def reset_lesson_progress(
    lesson_id: UUID,
    progress_service: ProgressServiceDep,
    user: AdminUser,
    enrollment_id: UUID = Query(..., description="Module enrollment UUID"),
) -> LessonProgressResponse:
    """Return a lesson to not-started and recompute rollups."""
    try:
        progress = await progress_service.reset_lesson_progress(
            lesson_id=lesson_id,
            enrollment_id=enrollment_id,
            reset_by=user.id,
        )
        return LessonProgressResponse.from_entity(progress)
    except DomainError as e:
        raise handle_domain_error(e) from e


# ==============================================================================
# Progress Query Endpoints
# ==============================================================================


@router.get(
    "/lessons/{lesson_id}",
    response_model=LessonProgressResponse | None,
    summary="Get lesson progress",
)
async def get_lesson_progress(
    lesson_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
    enrollment_id: UUID = Query(..., description="Module enrollment UUID"),
) -> LessonProgressResponse | None:
    """Get progress for one lesson; null when the lesson was never touched."""
    enrollment = await authorize_enrollment(
        enrollment_id, user, progress_service, require_active=False
    )

    progress = await progress_service.get_lesson_progress(lesson_id, enrollment.id)
    return LessonProgressResponse.from_entity(progress) if progress else None


@router.get(
    "/modules/{module_id}",
    response_model=ModuleProgressResponse,
    summary="Get module progress",
)
async def get_module_progress(
    module_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
    student_id: UUID | None = Query(
        default=None, description="Student to inspect (teachers and admins)"
    ),
) -> ModuleProgressResponse:
    """Enrollment, topic and lesson progress plus recent activity."""
    target = student_id or user.id
    ensure_can_view_student(user, target)

    try:
        return await progress_service.get_module_progress(module_id, target)
    except DomainError as e:
        raise handle_domain_error(e) from e


@router.get(
    "/modules/{module_id}/stats",
    response_model=ModuleStatsResponse,
    summary="Get module statistics (teacher)",
)
async def get_module_stats(
    module_id: UUID,
    progress_service: ProgressServiceDep,
    user: TeacherUser,
) -> ModuleStatsResponse:
    """Per-student progress and aggregates for a module."""
    return await progress_service.get_module_progress_stats(module_id)


@router.get(
    "/students/{student_id}",
    response_model=StudentProgressResponse,
    summary="Get student overview",
)
async def get_student_progress(
    student_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> StudentProgressResponse:
    """All enrollments of a student, most recently accessed first."""
    ensure_can_view_student(user, student_id)
    return await progress_service.get_student_overall_progress(student_id)


@router.post(
    "/enrollments/{enrollment_id}/reconcile",
    response_model=CascadeResponse,
    summary="Rebuild rollups for an enrollment (admin)",
)
async def reconcile_enrollment(
    enrollment_id: UUID,
    progress_service: ProgressServiceDep,
    user: AdminUser,
) -> CascadeResponse:
    """Recompute every topic rollup and the module rollup of an enrollment."""
    try:
        result = await progress_service.reconcile_enrollment(enrollment_id)
        return CascadeResponse.from_result(result)
    except DomainError as e:
        raise handle_domain_error(e) from e


# ==============================================================================
# Enrollment Endpoints
# ==============================================================================


@enrollments_router.post(
    "",
    response_model=EnrollmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Enroll in a module",
)
async def enroll(
    data: EnrollRequest,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Enroll the current user in a module."""
    try:
        enrollment = await progress_service.enroll_student(data.module_id, user.id)
        return EnrollmentResponse.from_entity(enrollment)
    except DomainError as e:
        raise handle_domain_error(e) from e


@enrollments_router.get(
    "/my",
    response_model=EnrollmentListResponse,
    summary="List my enrollments",
)
async def list_my_enrollments(
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentListResponse:
    """Current user's enrollments, most recently accessed first."""
    enrollments = await progress_service.list_student_enrollments(user.id)
    return EnrollmentListResponse(
        enrollments=[EnrollmentResponse.from_entity(e) for e in enrollments],
        total=len(enrollments),
    )


@enrollments_router.get(
    "/{enrollment_id}",
    response_model=EnrollmentResponse,
    summary="Get enrollment",
)
async def get_enrollment(
    enrollment_id: UUID,
    progress_service: ProgressServiceDep,
    user: CurrentUser,
) -> EnrollmentResponse:
    """Get an enrollment with its module progress."""
    enrollment = await authorize_enrollment(
        enrollment_id, user, progress_service, require_active=False
    )
    return EnrollmentResponse.from_entity(enrollment)
