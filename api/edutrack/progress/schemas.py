"""Pydantic schemas for progress tracking.

Request and response models for:
- Lesson signals (start, complete, video, quiz)
- Enrollments
- Module snapshots, student overviews and teacher statistics
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from edutrack.activity.models import ActivityKind, ActivityRecord

from .models import (
    CascadeResult,
    LessonProgress,
    LessonProgressStatus,
    ModuleEnrollment,
    ModuleEnrollmentProgress,
    QuizResult,
    TopicProgress,
)


# ==============================================================================
# Lesson Signal Schemas
# ==============================================================================


class StartLessonRequest(BaseModel):
    """Request to start a lesson."""

    enrollment_id: UUID = Field(..., description="Module enrollment UUID")


class CompleteLessonRequest(BaseModel):
    """Request to mark a lesson complete."""

    enrollment_id: UUID = Field(..., description="Module enrollment UUID")
    score: int | None = Field(default=None, ge=0, le=100, description="Score 0-100")
    watch_time: int | None = Field(
        default=None, ge=0, description="Watch time in seconds"
    )


class VideoProgressRequest(BaseModel):
    """Periodic video progress report (never completes the lesson)."""

    enrollment_id: UUID = Field(..., description="Module enrollment UUID")
    watch_time: int = Field(..., ge=0, description="Accumulated watch time in seconds")
    last_position: int = Field(..., ge=0, description="Playback position in seconds")


class QuizSubmitRequest(BaseModel):
    """Quiz or assignment submission."""

    enrollment_id: UUID = Field(..., description="Module enrollment UUID")
    score: int = Field(..., ge=0, le=100, description="Score 0-100")
    passed: bool | None = Field(
        default=None, description="Explicit pass/fail, overrides the threshold"
    )


class LessonProgressResponse(BaseModel):
    """Lesson progress response."""

    model_config = ConfigDict(from_attributes=True)

    enrollment_id: UUID
    lesson_id: UUID
    student_id: UUID
    module_id: UUID
    topic_id: UUID
    status: LessonProgressStatus
    is_completed: bool
    completed_at: datetime | None = None
    watch_time_seconds: int = 0
    last_position_seconds: int = Field(default=0, description="Resume position")
    score: int | None = None
    attempts_count: int = 0
    started_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: LessonProgress) -> "LessonProgressResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class QuizResultResponse(BaseModel):
    """Outcome of a quiz submission."""

    score: int
    passed: bool
    attempts_count: int
    progress: LessonProgressResponse

    @classmethod
    def from_result(cls, result: QuizResult) -> "QuizResultResponse":
        return cls(
            score=result.score,
            passed=result.passed,
            attempts_count=result.attempts_count,
            progress=LessonProgressResponse.from_entity(result.progress),
        )


# ==============================================================================
# Rollup Schemas
# ==============================================================================


class TopicProgressResponse(BaseModel):
    """Topic rollup response."""

    topic_id: UUID
    completed_lessons: int
    total_lessons: int
    percentage: int = Field(description="0-100 percentage")
    is_completed: bool
    completed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: TopicProgress) -> "TopicProgressResponse":
        """Create response from entity."""
        return cls(
            topic_id=entity.topic_id,
            completed_lessons=entity.completed_lessons,
            total_lessons=entity.total_lessons,
            percentage=entity.percentage,
            is_completed=entity.is_completed,
            completed_at=entity.completed_at,
        )


class ModuleRollupResponse(BaseModel):
    """Module rollup columns."""

    percentage: int = Field(description="0-100 percentage")
    completed_lessons: int
    total_lessons: int
    is_completed: bool
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ModuleEnrollmentProgress) -> "ModuleRollupResponse":
        return cls(**entity.to_dict())


class CascadeResponse(BaseModel):
    """Rollups rewritten by a reconciliation."""

    topics: list[TopicProgressResponse]
    module: ModuleRollupResponse | None = None

    @classmethod
    def from_result(cls, result: CascadeResult) -> "CascadeResponse":
        return cls(
            topics=[TopicProgressResponse.from_entity(t) for t in result.topics],
            module=(
                ModuleRollupResponse.from_entity(result.module)
                if result.module
                else None
            ),
        )


# ==============================================================================
# Enrollment Schemas
# ==============================================================================


class EnrollRequest(BaseModel):
    """Request to enroll in a module."""

    module_id: UUID = Field(..., description="Module UUID")


class EnrollmentResponse(BaseModel):
    """Enrollment with module progress."""

    id: UUID
    module_id: UUID
    student_id: UUID
    is_active: bool
    enrolled_at: datetime
    percentage: int = Field(description="0-100 percentage")
    completed_lessons: int
    total_lessons: int
    is_completed: bool
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None

    @classmethod
    def from_entity(cls, entity: ModuleEnrollment) -> "EnrollmentResponse":
        """Create response from entity."""
        return cls(**entity.to_dict())


class EnrollmentListResponse(BaseModel):
    """List of enrollments."""

    enrollments: list[EnrollmentResponse]
    total: int


# ==============================================================================
# Module Snapshot Schemas
# ==============================================================================


class ActivityResponse(BaseModel):
    """Activity history entry."""

    activity_id: UUID
    kind: ActivityKind
    topic_id: UUID | None = None
    lesson_id: UUID | None = None
    title: str
    description: str = ""
    metadata: dict[str, str] = Field(default_factory=dict)
    created_at: datetime

    @classmethod
    def from_record(cls, record: ActivityRecord) -> "ActivityResponse":
        return cls(
            activity_id=record.activity_id,
            kind=record.kind,
            topic_id=record.topic_id,
            lesson_id=record.lesson_id,
            title=record.title,
            description=record.description,
            metadata=record.metadata,
            created_at=record.created_at,
        )


class ModuleProgressStats(BaseModel):
    """Lesson and topic counters for one enrollment."""

    total_lessons: int
    completed_lessons: int
    in_progress_lessons: int
    not_started_lessons: int
    total_topics: int = Field(description="Topics with published lessons")
    completed_topics: int
    total_watch_time_seconds: int
    average_score: float | None = None


class ModuleProgressResponse(BaseModel):
    """Read-only snapshot of a student's progress in a module."""

    enrollment: EnrollmentResponse
    topic_progress: list[TopicProgressResponse]
    lesson_progress: list[LessonProgressResponse]
    recent_activity: list[ActivityResponse]
    stats: ModuleProgressStats


# ==============================================================================
# Student Overview Schemas
# ==============================================================================


class StudentProgressSummary(BaseModel):
    """Counters across all of a student's enrollments."""

    total_modules: int
    completed_modules: int
    in_progress_modules: int
    not_started_modules: int
    overall_percentage: int = Field(description="Mean module percentage")


class StudentProgressResponse(BaseModel):
    """Student overview, most recently accessed enrollment first."""

    student_id: UUID
    enrollments: list[EnrollmentResponse]
    summary: StudentProgressSummary


# ==============================================================================
# Teacher Statistics Schemas
# ==============================================================================


class StudentModuleProgress(BaseModel):
    """One student's row in the module statistics."""

    student_id: UUID
    enrollment_id: UUID
    is_active: bool
    percentage: int
    completed_lessons: int
    total_lessons: int
    is_completed: bool
    last_accessed_at: datetime | None = None


class ModuleStatsResponse(BaseModel):
    """Module-wide progress statistics."""

    module_id: UUID
    total_students: int
    active_students: int
    completed_students: int
    average_progress: float = Field(description="Mean percentage across students")
    completion_rate: float = Field(description="Completed students / total, in %")
    students: list[StudentModuleProgress]
