"""Database models for lesson progress and rollups.

Cassandra table definitions for:
- Lesson progress: one row per (enrollment, lesson), authoritative input
- Topic progress: materialized rollup per (enrollment, topic)
- Module enrollments: enrollment row carrying the module rollup columns
- Lookup tables: enrollments by student and by module

Rollups are derived data: they can always be rebuilt from lesson_progress
and the catalog's containment graph.
"""

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from edutrack.catalog.models import LessonRef


class LessonProgressStatus(str, Enum):
    """Lesson progress status."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition: one enrollment, so a module's whole lesson set is one read
LESSON_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lesson_progress (
    enrollment_id UUID,
    lesson_id UUID,
    student_id UUID,
    module_id UUID,
    topic_id UUID,
    status TEXT,
    completed_at TIMESTAMP,
    watch_time_seconds INT,
    last_position_seconds INT,
    score INT,
    attempts_count INT,
    started_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((enrollment_id), lesson_id)
)
"""

# Materialized topic rollup, written by recompute only
TOPIC_PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.topic_progress (
    enrollment_id UUID,
    topic_id UUID,
    completed_lessons INT,
    total_lessons INT,
    percentage INT,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((enrollment_id), topic_id)
)
"""

# Enrollment with the embedded module rollup
MODULE_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.module_enrollments (
    id UUID PRIMARY KEY,
    module_id UUID,
    student_id UUID,
    is_active BOOLEAN,
    enrolled_at TIMESTAMP,
    percentage INT,
    completed_lessons INT,
    total_lessons INT,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    last_accessed_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

# Lookup: "which modules is this student enrolled in?"
ENROLLMENTS_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_student (
    student_id UUID,
    module_id UUID,
    enrollment_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((student_id), module_id)
)
"""

# Lookup: "who is enrolled in this module?"
ENROLLMENTS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.enrollments_by_module (
    module_id UUID,
    enrollment_id UUID,
    student_id UUID,
    enrolled_at TIMESTAMP,
    PRIMARY KEY ((module_id), enrollment_id)
)
"""

PROGRESS_TABLES_CQL = [
    LESSON_PROGRESS_TABLE_CQL,
    TOPIC_PROGRESS_TABLE_CQL,
    MODULE_ENROLLMENTS_TABLE_CQL,
    ENROLLMENTS_BY_STUDENT_TABLE_CQL,
    ENROLLMENTS_BY_MODULE_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class LessonProgress:
    """A student's progress on one lesson within one enrollment.

    Attributes:
        enrollment_id: Enrollment UUID (partition key)
        lesson_id: Lesson UUID
        student_id: Student UUID
        module_id: Module containing the lesson
        topic_id: Topic containing the lesson
        status: not_started, in_progress or completed
        completed_at: First completion timestamp (null unless completed)
        watch_time_seconds: Accumulated watch time, never decreases until reset
        last_position_seconds: Last playback position for resume
        score: Latest quiz/assignment score (0-100)
        attempts_count: Number of quiz/assignment submissions
        started_at: First interaction timestamp
        updated_at: Last touched timestamp
    """

    enrollment_id: UUID
    lesson_id: UUID
    student_id: UUID
    module_id: UUID
    topic_id: UUID
    status: LessonProgressStatus = LessonProgressStatus.NOT_STARTED
    completed_at: datetime | None = None
    watch_time_seconds: int = 0
    last_position_seconds: int = 0
    score: int | None = None
    attempts_count: int = 0
    started_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.status = LessonProgressStatus(self.status)
        self.completed_at = ensure_utc_aware(self.completed_at)
        self.started_at = ensure_utc_aware(self.started_at)
        self.updated_at = ensure_utc_aware(self.updated_at)

    @property
    def is_completed(self) -> bool:
        """Check if lesson is completed."""
        return self.status == LessonProgressStatus.COMPLETED

    @classmethod
    def not_started(
        cls, enrollment_id: UUID, student_id: UUID, lesson: LessonRef
    ) -> "LessonProgress":
        """Blank record for a lesson nobody has touched yet."""
        return cls(
            enrollment_id=enrollment_id,
            lesson_id=lesson.id,
            student_id=student_id,
            module_id=lesson.module_id,
            topic_id=lesson.topic_id,
        )

    def reset(self, at: datetime) -> "LessonProgress":
        """Copy of this record returned to not-started."""
        return replace(
            self,
            status=LessonProgressStatus.NOT_STARTED,
            completed_at=None,
            watch_time_seconds=0,
            last_position_seconds=0,
            score=None,
            attempts_count=0,
            started_at=None,
            updated_at=at,
        )

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        """Create LessonProgress instance from Cassandra row."""
        return cls(
            enrollment_id=row.enrollment_id,
            lesson_id=row.lesson_id,
            student_id=row.student_id,
            module_id=row.module_id,
            topic_id=row.topic_id,
            status=row.status or LessonProgressStatus.NOT_STARTED.value,
            completed_at=row.completed_at,
            watch_time_seconds=row.watch_time_seconds or 0,
            last_position_seconds=row.last_position_seconds or 0,
            score=row.score,
            attempts_count=row.attempts_count or 0,
            started_at=row.started_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enrollment_id": self.enrollment_id,
            "lesson_id": self.lesson_id,
            "student_id": self.student_id,
            "module_id": self.module_id,
            "topic_id": self.topic_id,
            "status": self.status.value,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "watch_time_seconds": self.watch_time_seconds,
            "last_position_seconds": self.last_position_seconds,
            "score": self.score,
            "attempts_count": self.attempts_count,
            "started_at": self.started_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return (
            f"<LessonProgress enrollment={self.enrollment_id} "
            f"lesson={self.lesson_id} {self.status.value}>"
        )


@dataclass
class TopicProgress:
    """Materialized topic rollup for one enrollment."""

    enrollment_id: UUID
    topic_id: UUID
    completed_lessons: int = 0
    total_lessons: int = 0
    percentage: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.completed_at = ensure_utc_aware(self.completed_at)
        self.updated_at = ensure_utc_aware(self.updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "TopicProgress":
        """Create TopicProgress instance from Cassandra row."""
        return cls(
            enrollment_id=row.enrollment_id,
            topic_id=row.topic_id,
            completed_lessons=row.completed_lessons or 0,
            total_lessons=row.total_lessons or 0,
            percentage=row.percentage or 0,
            is_completed=bool(row.is_completed),
            completed_at=row.completed_at,
            updated_at=row.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "enrollment_id": self.enrollment_id,
            "topic_id": self.topic_id,
            "completed_lessons": self.completed_lessons,
            "total_lessons": self.total_lessons,
            "percentage": self.percentage,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ModuleEnrollmentProgress:
    """Module rollup columns embedded in the enrollment row."""

    percentage: int = 0
    completed_lessons: int = 0
    total_lessons: int = 0
    is_completed: bool = False
    completed_at: datetime | None = None
    last_accessed_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.completed_at = ensure_utc_aware(self.completed_at)
        self.last_accessed_at = ensure_utc_aware(self.last_accessed_at)
        self.updated_at = ensure_utc_aware(self.updated_at)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "percentage": self.percentage,
            "completed_lessons": self.completed_lessons,
            "total_lessons": self.total_lessons,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "last_accessed_at": self.last_accessed_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ModuleEnrollment:
    """A student's enrollment in a module.

    Attributes:
        id: Enrollment UUID
        module_id: Module UUID
        student_id: Student UUID
        is_active: Whether the enrollment still accepts progress
        enrolled_at: Enrollment timestamp
        progress: Module rollup (recompute-owned except last_accessed_at)
    """

    module_id: UUID
    student_id: UUID
    id: UUID = field(default_factory=uuid4)
    is_active: bool = True
    enrolled_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    progress: ModuleEnrollmentProgress = field(default_factory=ModuleEnrollmentProgress)

    def __post_init__(self) -> None:
        self.enrolled_at = ensure_utc_aware(self.enrolled_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "ModuleEnrollment":
        """Create ModuleEnrollment instance from Cassandra row."""
        return cls(
            id=row.id,
            module_id=row.module_id,
            student_id=row.student_id,
            is_active=row.is_active if row.is_active is not None else True,
            enrolled_at=row.enrolled_at,
            progress=ModuleEnrollmentProgress(
                percentage=row.percentage or 0,
                completed_lessons=row.completed_lessons or 0,
                total_lessons=row.total_lessons or 0,
                is_completed=bool(row.is_completed),
                completed_at=row.completed_at,
                last_accessed_at=row.last_accessed_at,
                updated_at=row.updated_at,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (progress columns flattened)."""
        return {
            "id": self.id,
            "module_id": self.module_id,
            "student_id": self.student_id,
            "is_active": self.is_active,
            "enrolled_at": self.enrolled_at,
            **self.progress.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"<ModuleEnrollment student={self.student_id} module={self.module_id} "
            f"{self.progress.percentage}%>"
        )


# ==============================================================================
# Operation Results
# ==============================================================================


@dataclass(frozen=True)
class QuizResult:
    """Outcome of one quiz or assignment submission."""

    score: int
    passed: bool
    attempts_count: int
    progress: LessonProgress


@dataclass
class CascadeResult:
    """Rollups written by one cascade (missing units are skipped)."""

    topics: list[TopicProgress] = field(default_factory=list)
    module: ModuleEnrollmentProgress | None = None
