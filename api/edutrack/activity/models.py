"""Activity history models and CQL table definitions.

Activity entries are an append-only audit trail of learning events. Each
event type is its own frozen dataclass; ``ActivityEvent`` is their union.

Tables:
- activity_history: entries per (student, module), newest first
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar
from uuid import UUID

from edutrack.progress.models import ensure_utc_aware


class ActivityKind(str, Enum):
    """Activity entry discriminator."""

    LESSON_STARTED = "lesson_started"
    LESSON_COMPLETED = "lesson_completed"
    QUIZ_ATTEMPTED = "quiz_attempted"
    LESSON_PROGRESS_RESET = "lesson_progress_reset"
    TOPIC_COMPLETED = "topic_completed"
    MODULE_COMPLETED = "module_completed"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Partition: one student's history inside one module
# Clustering: TIMEUUID descending so "recent activity" is a LIMIT query
ACTIVITY_HISTORY_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.activity_history (
    student_id UUID,
    module_id UUID,
    activity_id TIMEUUID,
    kind TEXT,
    enrollment_id UUID,
    topic_id UUID,
    lesson_id UUID,
    title TEXT,
    description TEXT,
    metadata MAP<TEXT, TEXT>,
    created_at TIMESTAMP,
    PRIMARY KEY ((student_id, module_id), activity_id)
) WITH CLUSTERING ORDER BY (activity_id DESC)
"""

ACTIVITY_TABLES_CQL = [
    ACTIVITY_HISTORY_TABLE_CQL,
]


# ==============================================================================
# Event Variants
# ==============================================================================


@dataclass(frozen=True, kw_only=True)
class _Activity:
    """Fields every activity carries."""

    kind: ClassVar[ActivityKind]

    student_id: UUID
    module_id: UUID
    enrollment_id: UUID

    topic_id: UUID | None = None
    lesson_id: UUID | None = None

    @property
    def title(self) -> str:
        raise NotImplementedError

    @property
    def description(self) -> str:
        return ""

    def metadata(self) -> dict[str, str]:
        return {}


@dataclass(frozen=True, kw_only=True)
class LessonStarted(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.LESSON_STARTED

    topic_id: UUID
    lesson_id: UUID
    lesson_title: str
    lesson_type: str

    @property
    def title(self) -> str:
        return f"Started lesson: {self.lesson_title}"

    @property
    def description(self) -> str:
        return f"Began {self.lesson_type} lesson"

    def metadata(self) -> dict[str, str]:
        return {"lesson_type": self.lesson_type}


@dataclass(frozen=True, kw_only=True)
class LessonCompleted(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.LESSON_COMPLETED

    topic_id: UUID
    lesson_id: UUID
    lesson_title: str
    lesson_type: str
    score: int | None = None
    watch_time_seconds: int | None = None

    @property
    def title(self) -> str:
        return f"Completed lesson: {self.lesson_title}"

    @property
    def description(self) -> str:
        suffix = f" with score {self.score}%" if self.score is not None else ""
        return f"Finished {self.lesson_type} lesson{suffix}"

    def metadata(self) -> dict[str, str]:
        data = {"lesson_type": self.lesson_type}
        if self.score is not None:
            data["score"] = str(self.score)
        if self.watch_time_seconds is not None:
            data["watch_time_seconds"] = str(self.watch_time_seconds)
        return data


@dataclass(frozen=True, kw_only=True)
class QuizAttempted(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.QUIZ_ATTEMPTED

    topic_id: UUID
    lesson_id: UUID
    lesson_title: str
    score: int
    passed: bool
    attempts_count: int

    @property
    def title(self) -> str:
        return f"Quiz attempt: {self.lesson_title}"

    @property
    def description(self) -> str:
        outcome = "passed" if self.passed else "not passed"
        return f"Scored {self.score}% ({outcome})"

    def metadata(self) -> dict[str, str]:
        return {
            "score": str(self.score),
            "passed": str(self.passed).lower(),
            "attempts_count": str(self.attempts_count),
        }


@dataclass(frozen=True, kw_only=True)
class LessonProgressReset(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.LESSON_PROGRESS_RESET

    topic_id: UUID
    lesson_id: UUID
    lesson_title: str
    reset_by: UUID | None = None

    @property
    def title(self) -> str:
        return f"Progress reset: {self.lesson_title}"

    def metadata(self) -> dict[str, str]:
        return {"reset_by": str(self.reset_by)} if self.reset_by else {}


@dataclass(frozen=True, kw_only=True)
class TopicCompleted(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.TOPIC_COMPLETED

    topic_id: UUID
    total_lessons: int

    @property
    def title(self) -> str:
        return "Completed topic"

    @property
    def description(self) -> str:
        return f"Finished all {self.total_lessons} lessons in topic"

    def metadata(self) -> dict[str, str]:
        return {"total_lessons": str(self.total_lessons)}


@dataclass(frozen=True, kw_only=True)
class ModuleCompleted(_Activity):
    kind: ClassVar[ActivityKind] = ActivityKind.MODULE_COMPLETED

    total_lessons: int
    total_topics: int

    @property
    def title(self) -> str:
        return "Completed module"

    @property
    def description(self) -> str:
        return f"Finished all {self.total_lessons} lessons in module"

    def metadata(self) -> dict[str, str]:
        return {
            "total_lessons": str(self.total_lessons),
            "total_topics": str(self.total_topics),
        }


ActivityEvent = (
    LessonStarted
    | LessonCompleted
    | QuizAttempted
    | LessonProgressReset
    | TopicCompleted
    | ModuleCompleted
)


# ==============================================================================
# Stored Entry
# ==============================================================================


@dataclass
class ActivityRecord:
    """One persisted activity_history row."""

    student_id: UUID
    module_id: UUID
    activity_id: UUID
    kind: ActivityKind
    enrollment_id: UUID | None = None
    topic_id: UUID | None = None
    lesson_id: UUID | None = None
    title: str = ""
    description: str = ""
    metadata: dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_event(
        cls, event: ActivityEvent, activity_id: UUID, created_at: datetime
    ) -> "ActivityRecord":
        """Flatten an event variant into a storable entry."""
        return cls(
            student_id=event.student_id,
            module_id=event.module_id,
            activity_id=activity_id,
            kind=event.kind,
            enrollment_id=event.enrollment_id,
            topic_id=event.topic_id,
            lesson_id=event.lesson_id,
            title=event.title,
            description=event.description,
            metadata=event.metadata(),
            created_at=created_at,
        )

    @classmethod
    def from_row(cls, row: Any) -> "ActivityRecord":
        """Create ActivityRecord from Cassandra row."""
        return cls(
            student_id=row.student_id,
            module_id=row.module_id,
            activity_id=row.activity_id,
            kind=ActivityKind(row.kind),
            enrollment_id=row.enrollment_id,
            topic_id=row.topic_id,
            lesson_id=row.lesson_id,
            title=row.title or "",
            description=row.description or "",
            metadata=dict(row.metadata or {}),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "activity_id": self.activity_id,
            "kind": self.kind.value,
            "student_id": self.student_id,
            "module_id": self.module_id,
            "enrollment_id": self.enrollment_id,
            "topic_id": self.topic_id,
            "lesson_id": self.lesson_id,
            "title": self.title,
            "description": self.description,
            "metadata": self.metadata,
            "created_at": self.created_at,
        }
