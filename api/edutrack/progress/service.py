"""Progress service layer.

Business logic for:
- Lesson signals: start, complete, video ticks, quiz submissions, reset
- The rollup cascade: lesson write -> topic rollup -> module rollup
- Enrollments and read-only progress views

Each write runs the evaluator under the (lesson, enrollment) lock, persists
the record, then cascades through the transition notifier. A cascade step
that hits missing catalog data or a busy unit lock is logged and skipped; the
lesson write stands and the next event or a reconciliation repairs the
rollups.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import redis.asyncio as redis
import structlog

from edutrack.activity.models import (
    LessonCompleted,
    LessonProgressReset,
    LessonStarted,
    QuizAttempted,
)
from edutrack.activity.service import ActivityLog
from edutrack.catalog.models import LessonRef
from edutrack.catalog.resolver import (
    CassandraHierarchyResolver,
    HierarchyResolver,
    LessonNotFoundError,
    TopicNotFoundError,
)
from edutrack.config import Settings
from edutrack.core.context import progress_scope
from edutrack.core.exceptions import NotFoundError
from edutrack.core.redis import lesson_lock_key

from .evaluator import (
    CompletionDecision,
    CompletionPolicy,
    ProgressSignal,
    evaluate,
)
from .exceptions import (
    AlreadyEnrolledError,
    EnrollmentInactiveError,
    EnrollmentNotFoundError,
    LessonNotInModuleError,
    LessonNotPublishedError,
    ProgressLockTimeoutError,
)
from .locks import KeyedLockManager
from .models import (
    CascadeResult,
    LessonProgress,
    LessonProgressStatus,
    ModuleEnrollment,
    QuizResult,
)
from .notifier import TransitionNotifier
from .rollup import RollupEngine, completion_percentage
from .schemas import (
    ActivityResponse,
    EnrollmentResponse,
    LessonProgressResponse,
    ModuleProgressResponse,
    ModuleProgressStats,
    ModuleStatsResponse,
    StudentModuleProgress,
    StudentProgressResponse,
    StudentProgressSummary,
    TopicProgressResponse,
)
from .store import CassandraProgressStore


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


class ProgressService:
    """Service for lesson progress tracking and rollups."""

    def __init__(
        self,
        store: CassandraProgressStore,
        resolver: HierarchyResolver,
        activity: ActivityLog,
        locks: KeyedLockManager | None = None,
        policy: CompletionPolicy | None = None,
        recent_activity_limit: int = 10,
    ):
        self.store = store
        self.resolver = resolver
        self.activity = activity
        self.locks = locks or KeyedLockManager()
        self.policy = policy or CompletionPolicy()
        self.recent_activity_limit = recent_activity_limit
        self.engine = RollupEngine(store, resolver)
        self.notifier = TransitionNotifier(
            store, self.engine, resolver, activity, self.locks
        )

    # ==========================================================================
    # Enrollment Operations
    # ==========================================================================

    async def enroll_student(
        self, module_id: UUID, student_id: UUID
    ) -> ModuleEnrollment:
        """Enroll a student in a module.

        Raises:
            ModuleNotFoundError: If the module does not exist
            AlreadyEnrolledError: If the student is already enrolled
        """
        lesson_ids = await self.resolver.get_lesson_ids_for_module(module_id)

        existing = await self.store.get_enrollment_for_student(module_id, student_id)
        if existing:
            raise AlreadyEnrolledError

        enrollment = ModuleEnrollment(module_id=module_id, student_id=student_id)
        enrollment.progress.total_lessons = len(lesson_ids)
        await self.store.create_enrollment(enrollment)

        logger.info(
            "student_enrolled",
            student_id=str(student_id),
            module_id=str(module_id),
            enrollment_id=str(enrollment.id),
        )

        return enrollment

    async def get_enrollment(self, enrollment_id: UUID) -> ModuleEnrollment:
        """Get an enrollment by id.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
        """
        enrollment = await self.store.get_enrollment(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError
        return enrollment

    async def list_student_enrollments(
        self, student_id: UUID
    ) -> list[ModuleEnrollment]:
        """A student's enrollments, most recently accessed first."""
        enrollments = await self.store.list_student_enrollments(student_id)
        return sorted(
            enrollments,
            key=lambda e: (e.progress.last_accessed_at or _EPOCH, e.enrolled_at),
            reverse=True,
        )

    # ==========================================================================
    # Lesson Signals
    # ==========================================================================

    async def start_lesson(
        self, lesson_id: UUID, student_id: UUID, enrollment_id: UUID
    ) -> LessonProgress:
        """Record the first interaction with a lesson.

        Starting an already started or completed lesson changes nothing but
        ``updated_at``. No rollup runs.
        """
        enrollment, lesson = await self._load_context(
            lesson_id, enrollment_id, student_id=student_id
        )

        with progress_scope(enrollment_id, lesson_id, signal="start"):
            decision = await self._apply(enrollment, lesson, ProgressSignal.start())

            if decision.first_interaction:
                await self.notifier.emit(
                    LessonStarted(
                        **self._activity_ids(enrollment, lesson),
                        lesson_title=lesson.title,
                        lesson_type=lesson.lesson_type.value,
                    )
                )
                logger.info("lesson_started")

        return decision.progress

    async def complete_lesson(
        self,
        lesson_id: UUID,
        enrollment_id: UUID,
        score: int | None = None,
        watch_time: int | None = None,
    ) -> LessonProgress:
        """Mark a lesson complete and cascade to topic and module."""
        enrollment, lesson = await self._load_context(lesson_id, enrollment_id)

        with progress_scope(enrollment_id, lesson_id, signal="complete"):
            decision = await self._apply(
                enrollment,
                lesson,
                ProgressSignal.complete(score=score, watch_time_seconds=watch_time),
            )

            if decision.completion_changed:
                await self.notifier.emit(
                    LessonCompleted(
                        **self._activity_ids(enrollment, lesson),
                        lesson_title=lesson.title,
                        lesson_type=lesson.lesson_type.value,
                        score=score,
                        watch_time_seconds=watch_time,
                    )
                )
                logger.info("lesson_completed", score=score)

            await self.store.touch_enrollment(
                enrollment.id, decision.progress.updated_at
            )
            await self._run_cascade(enrollment, lesson.topic_id)

        return decision.progress

    async def update_video_progress(
        self,
        lesson_id: UUID,
        enrollment_id: UUID,
        watch_time: int,
        last_position: int,
    ) -> LessonProgress:
        """Record watch time and resume position. Never completes, never cascades."""
        enrollment, lesson = await self._load_context(lesson_id, enrollment_id)

        with progress_scope(enrollment_id, lesson_id, signal="video_tick"):
            decision = await self._apply(
                enrollment,
                lesson,
                ProgressSignal.video_tick(watch_time, last_position),
            )
            logger.debug(
                "video_progress_updated",
                watch_time_seconds=decision.progress.watch_time_seconds,
                last_position_seconds=decision.progress.last_position_seconds,
            )

        return decision.progress

    async def update_quiz_progress(
        self,
        lesson_id: UUID,
        student_id: UUID,
        enrollment_id: UUID,
        score: int,
        passed: bool | None = None,
    ) -> QuizResult:
        """Record a quiz or assignment submission.

        Every submission counts as an attempt. The cascade runs when the
        submission passes or when it changed the completion flag.
        """
        enrollment, lesson = await self._load_context(
            lesson_id, enrollment_id, student_id=student_id
        )

        with progress_scope(enrollment_id, lesson_id, signal="quiz_submit"):
            decision = await self._apply(
                enrollment, lesson, ProgressSignal.quiz_submit(score, passed)
            )
            result = QuizResult(
                score=score,
                passed=bool(decision.passed),
                attempts_count=decision.progress.attempts_count,
                progress=decision.progress,
            )

            await self.notifier.emit(
                QuizAttempted(
                    **self._activity_ids(enrollment, lesson),
                    lesson_title=lesson.title,
                    score=result.score,
                    passed=result.passed,
                    attempts_count=result.attempts_count,
                )
            )
            logger.info(
                "quiz_attempted",
                score=score,
                passed=result.passed,
                attempts_count=result.attempts_count,
            )

            if result.passed:
                await self.store.touch_enrollment(
                    enrollment.id, decision.progress.updated_at
                )
            if decision.triggers_rollup:
                await self._run_cascade(enrollment, lesson.topic_id)

        return result

    async def reset_lesson_progress(
        self,
        lesson_id: UUID,
        enrollment_id: UUID,
        reset_by: UUID | None = None,
    ) -> LessonProgress:
        """Return a lesson to not-started and recompute its rollups.

        Privileged operation; works on inactive enrollments too.

        Raises:
            LessonProgressNotFoundError: If the lesson was never started
        """
        enrollment, lesson = await self._load_context(
            lesson_id, enrollment_id, require_active=False
        )

        with progress_scope(enrollment_id, lesson_id, signal="reset"):
            async with self.locks.hold(lesson_lock_key(lesson_id, enrollment_id)):
                progress = await self.store.reset_lesson_progress(
                    enrollment_id, lesson_id, datetime.now(UTC)
                )

            await self.notifier.emit(
                LessonProgressReset(
                    **self._activity_ids(enrollment, lesson),
                    lesson_title=lesson.title,
                    reset_by=reset_by,
                )
            )
            await self._run_cascade(enrollment, lesson.topic_id)

        return progress

    # ==========================================================================
    # Read Operations
    # ==========================================================================

    async def get_lesson_progress(
        self, lesson_id: UUID, enrollment_id: UUID
    ) -> LessonProgress | None:
        """Get the record for one lesson, or None if never touched."""
        return await self.store.get_lesson_progress(enrollment_id, lesson_id)

    async def get_module_progress(
        self, module_id: UUID, student_id: UUID
    ) -> ModuleProgressResponse:
        """Read-only snapshot: enrollment, rollups, lesson records, activity.

        Raises:
            EnrollmentNotFoundError: If the student is not enrolled
            ModuleNotFoundError: If the module no longer exists
        """
        enrollment = await self.store.get_enrollment_for_student(module_id, student_id)
        if enrollment is None:
            raise EnrollmentNotFoundError

        topics = await self.store.list_topic_progress(enrollment.id)
        topic_ids = await self._rollup_topic_ids(module_id)
        lessons = await self.store.list_lesson_progress(enrollment.id)
        recent = await self.activity.list_for_module(
            student_id, module_id, self.recent_activity_limit
        )

        completed = sum(1 for p in lessons if p.is_completed)
        in_progress = sum(
            1 for p in lessons if p.status == LessonProgressStatus.IN_PROGRESS
        )
        total = max(enrollment.progress.total_lessons, completed + in_progress)
        scores = [p.score for p in lessons if p.score is not None]

        stats = ModuleProgressStats(
            total_topics=len(topic_ids),
            completed_topics=sum(
                1 for t in topics if t.is_completed and t.topic_id in topic_ids
            ),
            total_lessons=total,
            completed_lessons=completed,
            in_progress_lessons=in_progress,
            not_started_lessons=total - completed - in_progress,
            total_watch_time_seconds=sum(p.watch_time_seconds for p in lessons),
            average_score=round(sum(scores) / len(scores), 2) if scores else None,
        )

        return ModuleProgressResponse(
            enrollment=EnrollmentResponse.from_entity(enrollment),
            topic_progress=[TopicProgressResponse.from_entity(t) for t in topics],
            lesson_progress=[LessonProgressResponse.from_entity(p) for p in lessons],
            recent_activity=[ActivityResponse.from_record(r) for r in recent],
            stats=stats,
        )

    async def get_student_overall_progress(
        self, student_id: UUID
    ) -> StudentProgressResponse:
        """Every enrollment of a student with summary counters."""
        enrollments = await self.list_student_enrollments(student_id)

        completed = sum(1 for e in enrollments if e.progress.is_completed)
        not_started = sum(
            1
            for e in enrollments
            if e.progress.completed_lessons == 0 and not e.progress.is_completed
        )
        total_percentage = sum(e.progress.percentage for e in enrollments)

        summary = StudentProgressSummary(
            total_modules=len(enrollments),
            completed_modules=completed,
            in_progress_modules=len(enrollments) - completed - not_started,
            not_started_modules=not_started,
            overall_percentage=completion_percentage(
                total_percentage, 100 * len(enrollments)
            )
            if enrollments
            else 0,
        )

        return StudentProgressResponse(
            student_id=student_id,
            enrollments=[EnrollmentResponse.from_entity(e) for e in enrollments],
            summary=summary,
        )

    async def get_module_progress_stats(self, module_id: UUID) -> ModuleStatsResponse:
        """Per-student progress and aggregates for a module (teacher view)."""
        enrollments = await self.store.list_module_enrollments(module_id)

        total = len(enrollments)
        completed = sum(1 for e in enrollments if e.progress.is_completed)
        average = (
            sum(e.progress.percentage for e in enrollments) / total if total else 0.0
        )

        students = [
            StudentModuleProgress(
                student_id=e.student_id,
                enrollment_id=e.id,
                is_active=e.is_active,
                percentage=e.progress.percentage,
                completed_lessons=e.progress.completed_lessons,
                total_lessons=e.progress.total_lessons,
                is_completed=e.progress.is_completed,
                last_accessed_at=e.progress.last_accessed_at,
            )
            for e in sorted(
                enrollments, key=lambda e: e.progress.percentage, reverse=True
            )
        ]

        return ModuleStatsResponse(
            module_id=module_id,
            total_students=total,
            active_students=sum(1 for e in enrollments if e.is_active),
            completed_students=completed,
            average_progress=round(average, 2),
            completion_rate=round(100 * completed / total, 2) if total else 0.0,
            students=students,
        )

    # ==========================================================================
    # Reconciliation
    # ==========================================================================

    async def reconcile_enrollment(self, enrollment_id: UUID) -> CascadeResult:
        """Recompute every topic of the enrolled module, then the module.

        Raises:
            EnrollmentNotFoundError: If the enrollment does not exist
            ModuleNotFoundError: If the module no longer exists
        """
        enrollment = await self.get_enrollment(enrollment_id)
        result = CascadeResult()

        with progress_scope(enrollment_id, signal="reconcile"):
            for topic_id in await self.resolver.get_topic_ids_for_module(
                enrollment.module_id
            ):
                try:
                    topic = await self.notifier.recompute_topic(topic_id, enrollment)
                except NotFoundError as e:
                    logger.warning(
                        "rollup_skipped",
                        unit="topic",
                        topic_id=str(topic_id),
                        reason=e.code,
                    )
                    continue
                if topic is not None:
                    result.topics.append(topic)

            result.module = await self.notifier.recompute_module(enrollment)

            logger.info(
                "enrollment_reconciled",
                topics=len(result.topics),
                module_percentage=result.module.percentage if result.module else None,
            )

        return result

    # ==========================================================================
    # Internals
    # ==========================================================================

    async def _load_context(
        self,
        lesson_id: UUID,
        enrollment_id: UUID,
        student_id: UUID | None = None,
        require_active: bool = True,
    ) -> tuple[ModuleEnrollment, LessonRef]:
        """Resolve and validate the enrollment and lesson a signal targets."""
        enrollment = await self.store.get_enrollment(enrollment_id)
        if enrollment is None or (
            student_id is not None and enrollment.student_id != student_id
        ):
            raise EnrollmentNotFoundError
        if require_active and not enrollment.is_active:
            raise EnrollmentInactiveError

        lesson = await self.resolver.get_lesson(lesson_id)
        if lesson is None:
            raise LessonNotFoundError
        if lesson.module_id != enrollment.module_id:
            raise LessonNotInModuleError
        if require_active and not lesson.is_published:
            raise LessonNotPublishedError

        return enrollment, lesson

    async def _rollup_topic_ids(self, module_id: UUID) -> set[UUID]:
        """Topics of the module that have published lessons, hence a rollup."""
        topic_ids: set[UUID] = set()
        for topic_id in await self.resolver.get_topic_ids_for_module(module_id):
            try:
                if await self.resolver.get_lesson_count_for_topic(topic_id) > 0:
                    topic_ids.add(topic_id)
            except TopicNotFoundError:
                logger.debug("dangling_topic_skipped", topic_id=str(topic_id))
        return topic_ids

    async def _apply(
        self,
        enrollment: ModuleEnrollment,
        lesson: LessonRef,
        signal: ProgressSignal,
    ) -> CompletionDecision:
        """Evaluate and persist one signal under the lesson lock."""
        async with self.locks.hold(lesson_lock_key(lesson.id, enrollment.id)):
            current = await self.store.get_lesson_progress(enrollment.id, lesson.id)
            if current is None:
                current = LessonProgress.not_started(
                    enrollment.id, enrollment.student_id, lesson
                )
            decision = evaluate(
                current, lesson.lesson_type, signal, self.policy, datetime.now(UTC)
            )
            await self.store.save_lesson_progress(decision.progress)
        return decision

    async def _run_cascade(
        self, enrollment: ModuleEnrollment, topic_id: UUID
    ) -> CascadeResult:
        """Topic rollup, then module rollup.

        Missing catalog data or a busy unit lock skips a step. The lesson
        record is already saved, so the next event or a reconciliation
        repairs the skipped rollup.
        """
        result = CascadeResult()

        try:
            topic = await self.notifier.recompute_topic(topic_id, enrollment)
        except (NotFoundError, ProgressLockTimeoutError) as e:
            logger.warning(
                "rollup_skipped", unit="topic", topic_id=str(topic_id), reason=e.code
            )
        else:
            if topic is not None:
                result.topics.append(topic)

        try:
            result.module = await self.notifier.recompute_module(enrollment)
        except (NotFoundError, ProgressLockTimeoutError) as e:
            logger.warning(
                "rollup_skipped",
                unit="module",
                module_id=str(enrollment.module_id),
                reason=e.code,
            )

        return result

    @staticmethod
    def _activity_ids(
        enrollment: ModuleEnrollment, lesson: LessonRef
    ) -> dict[str, UUID]:
        return {
            "student_id": enrollment.student_id,
            "module_id": enrollment.module_id,
            "enrollment_id": enrollment.id,
            "topic_id": lesson.topic_id,
            "lesson_id": lesson.id,
        }


def create_progress_service(
    session: "Session",
    settings: Settings,
    redis_client: redis.Redis | None = None,
) -> ProgressService:
    """Wire a ProgressService against Cassandra and, optionally, Redis locks."""
    keyspace = settings.cassandra_keyspace
    use_redis = redis_client if settings.progress_distributed_locks else None

    return ProgressService(
        store=CassandraProgressStore(session, keyspace),
        resolver=CassandraHierarchyResolver(session, keyspace),
        activity=ActivityLog(session, keyspace),
        locks=KeyedLockManager(
            redis_client=use_redis,
            timeout=settings.progress_lock_timeout_seconds,
            blocking_timeout=settings.progress_lock_blocking_timeout_seconds,
        ),
        policy=CompletionPolicy.from_settings(settings),
        recent_activity_limit=settings.progress_recent_activity_limit,
    )
