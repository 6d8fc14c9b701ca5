"""Progress store: Cassandra persistence for lesson records and rollups.

Every write is a single-row upsert, so concurrent first interactions with the
same (enrollment, lesson) converge on one row. Enrollments are dual-written
to the by-student and by-module lookup tables.
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog

from .exceptions import LessonProgressNotFoundError
from .models import (
    LessonProgress,
    ModuleEnrollment,
    ModuleEnrollmentProgress,
    TopicProgress,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class CassandraProgressStore:
    """Persistence for LessonProgress, TopicProgress and enrollments."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Lesson Progress
        self._get_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE enrollment_id = ? AND lesson_id = ?
        """)

        self._list_lesson_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE enrollment_id = ?
        """)

        self._list_lesson_progress_in = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lesson_progress
            WHERE enrollment_id = ? AND lesson_id IN ?
        """)

        self._upsert_lesson_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.lesson_progress
            (enrollment_id, lesson_id, student_id, module_id, topic_id, status,
             completed_at, watch_time_seconds, last_position_seconds, score,
             attempts_count, started_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Topic Progress
        self._get_topic_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.topic_progress
            WHERE enrollment_id = ? AND topic_id = ?
        """)

        self._list_topic_progress = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.topic_progress
            WHERE enrollment_id = ?
        """)

        self._upsert_topic_progress = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.topic_progress
            (enrollment_id, topic_id, completed_lessons, total_lessons, percentage,
             is_completed, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Enrollments
        self._get_enrollment = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.module_enrollments WHERE id = ?
        """)

        self._insert_enrollment = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.module_enrollments
            (id, module_id, student_id, is_active, enrolled_at, percentage,
             completed_lessons, total_lessons, is_completed, completed_at,
             last_accessed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._update_module_progress = self.session.prepare(f"""
            UPDATE {self.keyspace}.module_enrollments
            SET percentage = ?, completed_lessons = ?, total_lessons = ?,
                is_completed = ?, completed_at = ?, updated_at = ?
            WHERE id = ?
        """)

        self._touch_enrollment = self.session.prepare(f"""
            UPDATE {self.keyspace}.module_enrollments
            SET last_accessed_at = ?
            WHERE id = ?
        """)

        # Enrollment lookups (dual-write)
        self._insert_enrollment_by_student = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_student
            (student_id, module_id, enrollment_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)

        self._get_enrollment_by_student = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ? AND module_id = ?
        """)

        self._list_enrollments_by_student = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_student
            WHERE student_id = ?
        """)

        self._insert_enrollment_by_module = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.enrollments_by_module
            (module_id, enrollment_id, student_id, enrolled_at)
            VALUES (?, ?, ?, ?)
        """)

        self._list_enrollments_by_module = self.session.prepare(f"""
            SELECT enrollment_id FROM {self.keyspace}.enrollments_by_module
            WHERE module_id = ?
        """)

    # ==========================================================================
    # Lesson Progress
    # ==========================================================================

    async def get_lesson_progress(
        self, enrollment_id: UUID, lesson_id: UUID
    ) -> LessonProgress | None:
        """Get the progress record for one lesson, if any."""
        result = await self.session.aexecute(
            self._get_lesson_progress, [enrollment_id, lesson_id]
        )
        row = result.one()
        return LessonProgress.from_row(row) if row else None

    async def save_lesson_progress(self, progress: LessonProgress) -> None:
        """Upsert one lesson progress row."""
        await self.session.aexecute(
            self._upsert_lesson_progress,
            [
                progress.enrollment_id,
                progress.lesson_id,
                progress.student_id,
                progress.module_id,
                progress.topic_id,
                progress.status.value,
                progress.completed_at,
                progress.watch_time_seconds,
                progress.last_position_seconds,
                progress.score,
                progress.attempts_count,
                progress.started_at,
                progress.updated_at,
            ],
        )

    async def list_lesson_progress(self, enrollment_id: UUID) -> list[LessonProgress]:
        """Every lesson record of an enrollment."""
        rows = await self.session.aexecute(
            self._list_lesson_progress, [enrollment_id]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def list_lesson_progress_for_lessons(
        self, enrollment_id: UUID, lesson_ids: Iterable[UUID]
    ) -> list[LessonProgress]:
        """Lesson records of an enrollment restricted to a lesson set."""
        ids = list(lesson_ids)
        if not ids:
            return []
        rows = await self.session.aexecute(
            self._list_lesson_progress_in, [enrollment_id, ids]
        )
        return [LessonProgress.from_row(row) for row in rows]

    async def reset_lesson_progress(
        self, enrollment_id: UUID, lesson_id: UUID, at: datetime | None = None
    ) -> LessonProgress:
        """Return a lesson record to not-started.

        Raises:
            LessonProgressNotFoundError: If no record exists
        """
        existing = await self.get_lesson_progress(enrollment_id, lesson_id)
        if existing is None:
            raise LessonProgressNotFoundError

        progress = existing.reset(at or datetime.now(UTC))
        await self.save_lesson_progress(progress)

        logger.info(
            "lesson_progress_reset",
            enrollment_id=str(enrollment_id),
            lesson_id=str(lesson_id),
        )

        return progress

    # ==========================================================================
    # Topic Progress
    # ==========================================================================

    async def get_topic_progress(
        self, enrollment_id: UUID, topic_id: UUID
    ) -> TopicProgress | None:
        """Get the materialized rollup for one topic, if any."""
        result = await self.session.aexecute(
            self._get_topic_progress, [enrollment_id, topic_id]
        )
        row = result.one()
        return TopicProgress.from_row(row) if row else None

    async def save_topic_progress(self, progress: TopicProgress) -> None:
        """Upsert one topic rollup."""
        await self.session.aexecute(
            self._upsert_topic_progress,
            [
                progress.enrollment_id,
                progress.topic_id,
                progress.completed_lessons,
                progress.total_lessons,
                progress.percentage,
                progress.is_completed,
                progress.completed_at,
                progress.updated_at,
            ],
        )

    async def list_topic_progress(self, enrollment_id: UUID) -> list[TopicProgress]:
        """Every topic rollup of an enrollment."""
        rows = await self.session.aexecute(self._list_topic_progress, [enrollment_id])
        return [TopicProgress.from_row(row) for row in rows]

    # ==========================================================================
    # Enrollments
    # ==========================================================================

    async def create_enrollment(self, enrollment: ModuleEnrollment) -> ModuleEnrollment:
        """Insert an enrollment into the main and lookup tables."""
        progress = enrollment.progress

        # Dual write: main table + lookup tables
        await self.session.aexecute(
            self._insert_enrollment,
            [
                enrollment.id,
                enrollment.module_id,
                enrollment.student_id,
                enrollment.is_active,
                enrollment.enrolled_at,
                progress.percentage,
                progress.completed_lessons,
                progress.total_lessons,
                progress.is_completed,
                progress.completed_at,
                progress.last_accessed_at,
                enrollment.enrolled_at,
            ],
        )

        await self.session.aexecute(
            self._insert_enrollment_by_student,
            [
                enrollment.student_id,
                enrollment.module_id,
                enrollment.id,
                enrollment.enrolled_at,
            ],
        )

        await self.session.aexecute(
            self._insert_enrollment_by_module,
            [
                enrollment.module_id,
                enrollment.id,
                enrollment.student_id,
                enrollment.enrolled_at,
            ],
        )

        return enrollment

    async def get_enrollment(self, enrollment_id: UUID) -> ModuleEnrollment | None:
        """Get an enrollment with its module rollup."""
        result = await self.session.aexecute(self._get_enrollment, [enrollment_id])
        row = result.one()
        return ModuleEnrollment.from_row(row) if row else None

    async def get_enrollment_for_student(
        self, module_id: UUID, student_id: UUID
    ) -> ModuleEnrollment | None:
        """Get a student's enrollment in a module."""
        result = await self.session.aexecute(
            self._get_enrollment_by_student, [student_id, module_id]
        )
        row = result.one()
        return await self.get_enrollment(row.enrollment_id) if row else None

    async def list_student_enrollments(
        self, student_id: UUID
    ) -> list[ModuleEnrollment]:
        """Every enrollment of a student."""
        rows = await self.session.aexecute(
            self._list_enrollments_by_student, [student_id]
        )
        return await self._load_enrollments(row.enrollment_id for row in rows)

    async def list_module_enrollments(self, module_id: UUID) -> list[ModuleEnrollment]:
        """Every enrollment in a module."""
        rows = await self.session.aexecute(
            self._list_enrollments_by_module, [module_id]
        )
        return await self._load_enrollments(row.enrollment_id for row in rows)

    async def _load_enrollments(
        self, enrollment_ids: Iterable[UUID]
    ) -> list[ModuleEnrollment]:
        """Resolve lookup-table ids against the main table."""
        enrollments = []
        for enrollment_id in enrollment_ids:
            enrollment = await self.get_enrollment(enrollment_id)
            if enrollment is None:
                logger.warning(
                    "enrollment_lookup_orphaned", enrollment_id=str(enrollment_id)
                )
                continue
            enrollments.append(enrollment)
        return enrollments

    async def save_module_progress(
        self, enrollment_id: UUID, progress: ModuleEnrollmentProgress
    ) -> None:
        """Write the module rollup columns, leaving last_accessed_at alone."""
        await self.session.aexecute(
            self._update_module_progress,
            [
                progress.percentage,
                progress.completed_lessons,
                progress.total_lessons,
                progress.is_completed,
                progress.completed_at,
                progress.updated_at,
                enrollment_id,
            ],
        )

    async def touch_enrollment(
        self, enrollment_id: UUID, at: datetime | None = None
    ) -> None:
        """Record a completion event for "resume learning" ordering."""
        await self.session.aexecute(
            self._touch_enrollment, [at or datetime.now(UTC), enrollment_id]
        )
