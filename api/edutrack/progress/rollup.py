"""Rollup engine: topic and module completion derived from lesson records.

Recompute reads the unit's lesson set from the hierarchy resolver and the
enrollment's lesson rows from the store, and overwrites the materialized
rollup. The result depends only on those two inputs, so running it twice,
or concurrently, leaves the same row behind.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog

from edutrack.catalog.resolver import HierarchyResolver

from .models import LessonProgress, ModuleEnrollmentProgress, TopicProgress
from .store import CassandraProgressStore


logger = structlog.get_logger(__name__)

# A unit with any incomplete lesson never reports 100
INCOMPLETE_CAP = 99


@dataclass(frozen=True)
class RollupSnapshot:
    completed: int
    total: int
    percentage: int
    is_completed: bool
    completed_at: datetime | None
    updated_at: datetime | None = None


def completion_percentage(completed: int, total: int) -> int:
    """Round-half-up percentage, capped at 99 while anything is incomplete."""
    if total <= 0:
        return 0
    percentage = (200 * completed + total) // (2 * total)
    if completed < total:
        return min(percentage, INCOMPLETE_CAP)
    return percentage


def compute_rollup(
    lesson_ids: set[UUID], records: Iterable[LessonProgress]
) -> RollupSnapshot:
    """Count completed lessons of ``lesson_ids`` among ``records``.

    Records for lessons outside the set are ignored. ``completed_at`` is the
    latest lesson completion when every lesson is complete, else None.
    ``updated_at`` is the latest touch of a counted lesson record, so the
    snapshot never depends on when it was computed.
    """
    counted = [record for record in records if record.lesson_id in lesson_ids]
    completions: dict[UUID, datetime | None] = {
        record.lesson_id: record.completed_at
        for record in counted
        if record.is_completed
    }
    touches = [record.updated_at for record in counted if record.updated_at]

    total = len(lesson_ids)
    completed = len(completions)
    is_completed = total > 0 and completed == total

    completed_at = None
    if is_completed:
        stamps = [stamp for stamp in completions.values() if stamp is not None]
        completed_at = max(stamps) if stamps else None

    return RollupSnapshot(
        completed=completed,
        total=total,
        percentage=completion_percentage(completed, total),
        is_completed=is_completed,
        completed_at=completed_at,
        updated_at=max(touches) if touches else None,
    )


class RollupEngine:
    """Recomputes and persists topic and module rollups."""

    def __init__(self, store: CassandraProgressStore, resolver: HierarchyResolver):
        self.store = store
        self.resolver = resolver

    async def recompute_topic(
        self, topic_id: UUID, enrollment_id: UUID
    ) -> TopicProgress | None:
        """Rebuild one topic rollup.

        Returns None, writing nothing, for a topic without lessons.

        Raises:
            TopicNotFoundError: If the topic does not exist
        """
        if await self.resolver.get_lesson_count_for_topic(topic_id) == 0:
            logger.debug("topic_rollup_skipped_empty", topic_id=str(topic_id))
            return None

        lesson_ids = await self.resolver.get_lesson_ids_for_topic(topic_id)
        records = await self.store.list_lesson_progress_for_lessons(
            enrollment_id, lesson_ids
        )
        snapshot = compute_rollup(lesson_ids, records)

        progress = TopicProgress(
            enrollment_id=enrollment_id,
            topic_id=topic_id,
            completed_lessons=snapshot.completed,
            total_lessons=snapshot.total,
            percentage=snapshot.percentage,
            is_completed=snapshot.is_completed,
            completed_at=snapshot.completed_at,
            updated_at=snapshot.updated_at,
        )
        await self.store.save_topic_progress(progress)

        logger.info(
            "topic_rollup_recomputed",
            topic_id=str(topic_id),
            enrollment_id=str(enrollment_id),
            completed=snapshot.completed,
            total=snapshot.total,
            percentage=snapshot.percentage,
        )

        return progress

    async def recompute_module(
        self, module_id: UUID, enrollment_id: UUID
    ) -> ModuleEnrollmentProgress | None:
        """Rebuild the module rollup from the module's full lesson set.

        Topic rollups are not consulted. Returns None, writing nothing, for a
        module without lessons.

        Raises:
            ModuleNotFoundError: If the module does not exist
        """
        lesson_ids = await self.resolver.get_lesson_ids_for_module(module_id)
        if not lesson_ids:
            logger.debug("module_rollup_skipped_empty", module_id=str(module_id))
            return None

        records = await self.store.list_lesson_progress(enrollment_id)
        snapshot = compute_rollup(lesson_ids, records)

        progress = ModuleEnrollmentProgress(
            percentage=snapshot.percentage,
            completed_lessons=snapshot.completed,
            total_lessons=snapshot.total,
            is_completed=snapshot.is_completed,
            completed_at=snapshot.completed_at,
            updated_at=snapshot.updated_at,
        )
        await self.store.save_module_progress(enrollment_id, progress)

        logger.info(
            "module_rollup_recomputed",
            module_id=str(module_id),
            enrollment_id=str(enrollment_id),
            completed=snapshot.completed,
            total=snapshot.total,
            percentage=snapshot.percentage,
        )

        return progress
