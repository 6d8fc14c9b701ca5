"""Shared fixtures: in-memory catalog, progress store and activity log."""

import os


os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("REDIS_ENABLED", "false")

import copy
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from uuid import UUID, uuid4

import pytest
from cassandra.util import uuid_from_time
from fastapi.testclient import TestClient

from edutrack.activity.models import ActivityEvent, ActivityRecord
from edutrack.auth.permissions import UserRole
from edutrack.auth.security import create_access_token
from edutrack.catalog.models import LessonRef, LessonType
from edutrack.catalog.resolver import ModuleNotFoundError, TopicNotFoundError
from edutrack.progress.exceptions import LessonProgressNotFoundError
from edutrack.progress.models import (
    LessonProgress,
    ModuleEnrollment,
    ModuleEnrollmentProgress,
    TopicProgress,
)
from edutrack.progress.service import ProgressService


# ==============================================================================
# In-memory Catalog
# ==============================================================================


class FakeResolver:
    """HierarchyResolver over plain dicts.

    Enrollment checks read ``enrollments``, shared with the fake store.
    """

    def __init__(self, enrollments: dict[UUID, ModuleEnrollment] | None = None):
        self.enrollments = enrollments if enrollments is not None else {}
        self.modules: dict[UUID, list[UUID]] = {}
        self.topics: dict[UUID, list[UUID]] = {}
        self.lessons: dict[UUID, LessonRef] = {}

    def add_module(self) -> UUID:
        module_id = uuid4()
        self.modules[module_id] = []
        return module_id

    def add_topic(self, module_id: UUID) -> UUID:
        topic_id = uuid4()
        self.modules[module_id].append(topic_id)
        self.topics[topic_id] = []
        return topic_id

    def add_lesson(
        self,
        topic_id: UUID,
        lesson_type: LessonType = LessonType.TEXT,
        is_published: bool = True,
        title: str = "Lesson",
    ) -> LessonRef:
        module_id = next(m for m, topics in self.modules.items() if topic_id in topics)
        lesson = LessonRef(
            id=uuid4(),
            topic_id=topic_id,
            module_id=module_id,
            title=title,
            lesson_type=lesson_type,
            is_published=is_published,
        )
        self.topics[topic_id].append(lesson.id)
        self.lessons[lesson.id] = lesson
        return lesson

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None:
        return self.lessons.get(lesson_id)

    async def get_topic_ids_for_module(self, module_id: UUID) -> list[UUID]:
        if module_id not in self.modules:
            raise ModuleNotFoundError
        return list(self.modules[module_id])

    async def get_lesson_ids_for_topic(self, topic_id: UUID) -> set[UUID]:
        if topic_id not in self.topics:
            raise TopicNotFoundError
        return {
            lesson_id
            for lesson_id in self.topics[topic_id]
            if self.lessons[lesson_id].is_published
        }

    async def get_lesson_count_for_topic(self, topic_id: UUID) -> int:
        return len(await self.get_lesson_ids_for_topic(topic_id))

    async def get_lesson_ids_for_module(self, module_id: UUID) -> set[UUID]:
        lesson_ids: set[UUID] = set()
        for topic_id in await self.get_topic_ids_for_module(module_id):
            lesson_ids |= await self.get_lesson_ids_for_topic(topic_id)
        return lesson_ids

    async def enrollment_exists_and_active(
        self, enrollment_id: UUID, student_id: UUID
    ) -> bool:
        enrollment = self.enrollments.get(enrollment_id)
        return (
            enrollment is not None
            and enrollment.student_id == student_id
            and enrollment.is_active
        )


# ==============================================================================
# In-memory Store
# ==============================================================================


class FakeProgressStore:
    """Dict-backed stand-in for CassandraProgressStore.

    Reads return copies, like rows coming back from the database.
    """

    def __init__(self) -> None:
        self.lessons: dict[tuple[UUID, UUID], LessonProgress] = {}
        self.topics: dict[tuple[UUID, UUID], TopicProgress] = {}
        self.enrollments: dict[UUID, ModuleEnrollment] = {}
        self.module_writes = 0
        self.topic_writes = 0

    async def get_lesson_progress(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        record = self.lessons.get((enrollment_id, lesson_id))
        return replace(record) if record else None

    async def save_lesson_progress(self, progress: LessonProgress) -> None:
        self.lessons[(progress.enrollment_id, progress.lesson_id)] = replace(progress)

    async def list_lesson_progress(self, enrollment_id: UUID) -> list[LessonProgress]:
        return [
            replace(record)
            for (eid, _), record in self.lessons.items()
            if eid == enrollment_id
        ]

    async def list_lesson_progress_for_lessons(
        self, enrollment_id: UUID, lesson_ids: Iterable[UUID]
    ) -> list[LessonProgress]:
        ids = set(lesson_ids)
        return [
            record
            for record in await self.list_lesson_progress(enrollment_id)
            if record.lesson_id in ids
        ]

    async def reset_lesson_progress(
        self, enrollment_id: UUID, lesson_id: UUID, at: datetime | None = None
    ) -> LessonProgress:
        existing = await self.get_lesson_progress(enrollment_id, lesson_id)
        if existing is None:
            raise LessonProgressNotFoundError
        progress = existing.reset(at or datetime.now(UTC))
        await self.save_lesson_progress(progress)
        return progress

    async def get_topic_progress(
        self, enrollment_id: UUID, topic_id: UUID
    ) -> TopicProgress | None:
        record = self.topics.get((enrollment_id, topic_id))
        return replace(record) if record else None

    async def save_topic_progress(self, progress: TopicProgress) -> None:
        self.topic_writes += 1
        self.topics[(progress.enrollment_id, progress.topic_id)] = replace(progress)

    async def list_topic_progress(self, enrollment_id: UUID) -> list[TopicProgress]:
        return [
            replace(record)
            for (eid, _), record in self.topics.items()
            if eid == enrollment_id
        ]

    async def create_enrollment(self, enrollment: ModuleEnrollment) -> ModuleEnrollment:
        self.enrollments[enrollment.id] = copy.deepcopy(enrollment)
        return enrollment

    async def get_enrollment(self, enrollment_id: UUID) -> ModuleEnrollment | None:
        enrollment = self.enrollments.get(enrollment_id)
        return copy.deepcopy(enrollment) if enrollment else None

    async def get_enrollment_for_student(
        self, module_id: UUID, student_id: UUID
    ) -> ModuleEnrollment | None:
        for enrollment in self.enrollments.values():
            if (enrollment.module_id, enrollment.student_id) == (module_id, student_id):
                return copy.deepcopy(enrollment)
        return None

    async def list_student_enrollments(
        self, student_id: UUID
    ) -> list[ModuleEnrollment]:
        return [
            copy.deepcopy(e)
            for e in self.enrollments.values()
            if e.student_id == student_id
        ]

    async def list_module_enrollments(self, module_id: UUID) -> list[ModuleEnrollment]:
        return [
            copy.deepcopy(e)
            for e in self.enrollments.values()
            if e.module_id == module_id
        ]

    async def save_module_progress(
        self, enrollment_id: UUID, progress: ModuleEnrollmentProgress
    ) -> None:
        self.module_writes += 1
        enrollment = self.enrollments.get(enrollment_id)
        if enrollment is not None:
            enrollment.progress = replace(
                progress, last_accessed_at=enrollment.progress.last_accessed_at
            )

    async def touch_enrollment(
        self, enrollment_id: UUID, at: datetime | None = None
    ) -> None:
        enrollment = self.enrollments.get(enrollment_id)
        if enrollment is not None:
            enrollment.progress.last_accessed_at = at or datetime.now(UTC)


# ==============================================================================
# In-memory Activity Log
# ==============================================================================


@dataclass
class FakeActivityLog:
    """Collects recorded activities; set ``fail`` to simulate a broken sink."""

    records: list[ActivityRecord] = field(default_factory=list)
    fail: bool = False

    async def record(self, event: ActivityEvent) -> ActivityRecord:
        if self.fail:
            msg = "activity sink unavailable"
            raise RuntimeError(msg)
        now = datetime.now(UTC)
        record = ActivityRecord.from_event(event, uuid_from_time(now), now)
        self.records.append(record)
        return record

    async def list_for_module(
        self, student_id: UUID, module_id: UUID, limit: int = 10
    ) -> list[ActivityRecord]:
        matching = [
            r
            for r in reversed(self.records)
            if r.student_id == student_id and r.module_id == module_id
        ]
        return matching[:limit]

    def kinds(self) -> list[str]:
        return [r.kind.value for r in self.records]


# ==============================================================================
# Fixtures
# ==============================================================================


@pytest.fixture
def resolver(store: FakeProgressStore) -> FakeResolver:
    return FakeResolver(store.enrollments)


@pytest.fixture
def store() -> FakeProgressStore:
    return FakeProgressStore()


@pytest.fixture
def activity() -> FakeActivityLog:
    return FakeActivityLog()


@pytest.fixture
def progress_service(
    store: FakeProgressStore, resolver: FakeResolver, activity: FakeActivityLog
) -> ProgressService:
    """ProgressService wired to in-memory collaborators and local locks."""
    return ProgressService(store=store, resolver=resolver, activity=activity)


@pytest.fixture
def student_id() -> UUID:
    return uuid4()


@pytest.fixture
def client(progress_service: ProgressService) -> TestClient:
    """Test client without the lifespan, so no database connection is attempted."""
    from edutrack.main import create_app

    app = create_app()
    app.state.progress_service = progress_service
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Build an Authorization header carrying a freshly signed access token."""

    def _headers(user_id: UUID, role: UserRole = UserRole.STUDENT) -> dict[str, str]:
        token = create_access_token(
            {"sub": str(user_id), "email": f"{user_id}@example.com", "role": role.value}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
