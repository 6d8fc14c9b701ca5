"""Hierarchy resolver: read-only adapter over the catalog tables.

Supplies the lesson -> topic -> module containment graph and lesson counts
to the rollup engine, plus the enrollment precondition check used by the
HTTP layer. Only published lessons count towards topic and module totals.
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

import structlog

from edutrack.core.exceptions import NotFoundError

from .models import LessonRef


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class LessonNotFoundError(NotFoundError):
    """Lesson does not exist in the catalog."""

    def __init__(self, message: str = "Lesson not found"):
        super().__init__(message, "lesson_not_found")


class TopicNotFoundError(NotFoundError):
    """Topic does not exist in the catalog."""

    def __init__(self, message: str = "Topic not found"):
        super().__init__(message, "topic_not_found")


class ModuleNotFoundError(NotFoundError):  # noqa: A001
    """Module does not exist in the catalog."""

    def __init__(self, message: str = "Module not found"):
        super().__init__(message, "module_not_found")


# ==============================================================================
# Resolver Interface
# ==============================================================================


class HierarchyResolver(Protocol):
    """Containment graph consumed by the progress core."""

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None: ...

    async def get_topic_ids_for_module(self, module_id: UUID) -> list[UUID]: ...

    async def get_lesson_count_for_topic(self, topic_id: UUID) -> int: ...

    async def get_lesson_ids_for_topic(self, topic_id: UUID) -> set[UUID]: ...

    async def get_lesson_ids_for_module(self, module_id: UUID) -> set[UUID]: ...

    async def enrollment_exists_and_active(
        self, enrollment_id: UUID, student_id: UUID
    ) -> bool: ...


# ==============================================================================
# Cassandra Implementation
# ==============================================================================


class CassandraHierarchyResolver:
    """HierarchyResolver backed by the catalog's Cassandra tables."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._get_lesson = self.session.prepare(f"""
            SELECT id, topic_id, module_id, title, lesson_type, is_published
            FROM {self.keyspace}.lessons WHERE id = ?
        """)

        self._get_topic = self.session.prepare(f"""
            SELECT id, module_id FROM {self.keyspace}.topics WHERE id = ?
        """)

        self._get_module = self.session.prepare(f"""
            SELECT id FROM {self.keyspace}.modules WHERE id = ?
        """)

        self._get_topic_lessons = self.session.prepare(f"""
            SELECT lesson_id, is_published FROM {self.keyspace}.lessons_by_topic
            WHERE topic_id = ?
        """)

        self._get_module_topics = self.session.prepare(f"""
            SELECT topic_id FROM {self.keyspace}.topics_by_module
            WHERE module_id = ?
        """)

        self._get_enrollment_owner = self.session.prepare(f"""
            SELECT student_id, is_active FROM {self.keyspace}.module_enrollments
            WHERE id = ?
        """)

    async def get_lesson(self, lesson_id: UUID) -> LessonRef | None:
        """Get a lesson with its topic and module ids."""
        result = await self.session.aexecute(self._get_lesson, [lesson_id])
        row = result.one()
        return LessonRef.from_row(row) if row else None

    async def get_topic_ids_for_module(self, module_id: UUID) -> list[UUID]:
        """Get the module's topic ids in display order.

        Raises:
            ModuleNotFoundError: If the module does not exist
        """
        result = await self.session.aexecute(self._get_module, [module_id])
        if result.one() is None:
            raise ModuleNotFoundError

        rows = await self.session.aexecute(self._get_module_topics, [module_id])
        return [row.topic_id for row in rows]

    async def get_lesson_ids_for_topic(self, topic_id: UUID) -> set[UUID]:
        """Get the ids of the topic's published lessons.

        Raises:
            TopicNotFoundError: If the topic does not exist
        """
        result = await self.session.aexecute(self._get_topic, [topic_id])
        if result.one() is None:
            raise TopicNotFoundError

        rows = await self.session.aexecute(self._get_topic_lessons, [topic_id])
        return {row.lesson_id for row in rows if row.is_published is not False}

    async def get_lesson_count_for_topic(self, topic_id: UUID) -> int:
        """Count the topic's published lessons."""
        return len(await self.get_lesson_ids_for_topic(topic_id))

    async def get_lesson_ids_for_module(self, module_id: UUID) -> set[UUID]:
        """Get every published lesson id under every topic of the module."""
        lesson_ids: set[UUID] = set()
        for topic_id in await self.get_topic_ids_for_module(module_id):
            try:
                lesson_ids |= await self.get_lesson_ids_for_topic(topic_id)
            except TopicNotFoundError:
                # Lookup row outlived its topic; the catalog sweep removes it
                logger.warning(
                    "dangling_topic_reference",
                    module_id=str(module_id),
                    topic_id=str(topic_id),
                )
        return lesson_ids

    async def enrollment_exists_and_active(
        self, enrollment_id: UUID, student_id: UUID
    ) -> bool:
        """Check the enrollment exists, belongs to the student and is active."""
        result = await self.session.aexecute(
            self._get_enrollment_owner, [enrollment_id]
        )
        row = result.one()
        return bool(row and row.student_id == student_id and row.is_active)
