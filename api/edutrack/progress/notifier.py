"""Transition notifier.

Brackets each rollup recompute under the unit's lock: read the previous
completion flag, recompute, compare. An incomplete -> complete transition
emits exactly one TopicCompleted or ModuleCompleted activity; a
complete -> incomplete transition (reset, revoking retake) is only logged.

The comparison happens under the lock, so two concurrent cascades over the
same unit cannot both observe the transition. Activity emission is
best-effort: a failed write is logged and the progress write stands.
"""

from uuid import UUID

import structlog

from edutrack.activity.models import ActivityEvent, ModuleCompleted, TopicCompleted
from edutrack.activity.service import ActivityLog
from edutrack.catalog.resolver import HierarchyResolver
from edutrack.core.redis import module_lock_key, topic_lock_key

from .locks import KeyedLockManager
from .models import ModuleEnrollment, ModuleEnrollmentProgress, TopicProgress
from .rollup import RollupEngine
from .store import CassandraProgressStore


logger = structlog.get_logger(__name__)


class TransitionNotifier:
    """Runs recomputes and reports completion transitions."""

    def __init__(
        self,
        store: CassandraProgressStore,
        engine: RollupEngine,
        resolver: HierarchyResolver,
        activity: ActivityLog,
        locks: KeyedLockManager,
    ):
        self.store = store
        self.engine = engine
        self.resolver = resolver
        self.activity = activity
        self.locks = locks

    async def recompute_topic(
        self, topic_id: UUID, enrollment: ModuleEnrollment
    ) -> TopicProgress | None:
        """Recompute a topic rollup and emit TopicCompleted on transition."""
        async with self.locks.hold(topic_lock_key(topic_id, enrollment.id)):
            previous = await self.store.get_topic_progress(enrollment.id, topic_id)
            was_completed = previous.is_completed if previous else False
            current = await self.engine.recompute_topic(topic_id, enrollment.id)

        if current is None:
            return None

        if not was_completed and current.is_completed:
            await self.emit(
                TopicCompleted(
                    student_id=enrollment.student_id,
                    module_id=enrollment.module_id,
                    enrollment_id=enrollment.id,
                    topic_id=topic_id,
                    total_lessons=current.total_lessons,
                )
            )
            logger.info(
                "topic_completed",
                topic_id=str(topic_id),
                enrollment_id=str(enrollment.id),
            )
        elif was_completed and not current.is_completed:
            logger.info(
                "topic_completion_revoked",
                topic_id=str(topic_id),
                enrollment_id=str(enrollment.id),
            )

        return current

    async def recompute_module(
        self, enrollment: ModuleEnrollment
    ) -> ModuleEnrollmentProgress | None:
        """Recompute the module rollup and emit ModuleCompleted on transition."""
        lock_key = module_lock_key(enrollment.module_id, enrollment.id)
        async with self.locks.hold(lock_key):
            latest = await self.store.get_enrollment(enrollment.id)
            was_completed = latest.progress.is_completed if latest else False
            current = await self.engine.recompute_module(
                enrollment.module_id, enrollment.id
            )

        if current is None:
            return None

        if not was_completed and current.is_completed:
            topic_ids = await self.resolver.get_topic_ids_for_module(
                enrollment.module_id
            )
            await self.emit(
                ModuleCompleted(
                    student_id=enrollment.student_id,
                    module_id=enrollment.module_id,
                    enrollment_id=enrollment.id,
                    total_lessons=current.total_lessons,
                    total_topics=len(topic_ids),
                )
            )
            logger.info(
                "module_completed",
                module_id=str(enrollment.module_id),
                enrollment_id=str(enrollment.id),
            )
        elif was_completed and not current.is_completed:
            logger.info(
                "module_completion_revoked",
                module_id=str(enrollment.module_id),
                enrollment_id=str(enrollment.id),
            )

        return current

    async def emit(self, event: ActivityEvent) -> None:
        """Record an activity, logging instead of raising on failure."""
        try:
            await self.activity.record(event)
        except Exception:
            logger.exception(
                "activity_emit_failed",
                kind=event.kind.value,
                enrollment_id=str(event.enrollment_id),
            )
