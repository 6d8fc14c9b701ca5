"""Completion evaluator.

Pure decision function: given the current lesson record, the lesson type and
an incoming signal, produce the next record plus the flags the caller needs
to decide on a rollup. No I/O happens here.

Completion policy per lesson type:
- text, pdf, external link, live session: complete on an explicit ``complete``
- video: ``video_tick`` tracks watch time and position only; completion
  still needs ``complete``
- quiz, assignment: ``quiz_submit`` completes when the score reaches the pass
  threshold, unless the caller passes an explicit ``passed`` override
- ``complete`` is accepted for every lesson type
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from edutrack.catalog.models import LessonType
from edutrack.config import Settings

from .exceptions import InvalidSignalError
from .models import LessonProgress, LessonProgressStatus


MIN_SCORE = 0
MAX_SCORE = 100


class SignalKind(str, Enum):
    """Kinds of progress signal a lesson can receive."""

    START = "start"
    COMPLETE = "complete"
    VIDEO_TICK = "video_tick"
    QUIZ_SUBMIT = "quiz_submit"


@dataclass(frozen=True)
class ProgressSignal:
    """One client action on a lesson."""

    kind: SignalKind
    score: int | None = None
    watch_time_seconds: int | None = None
    last_position_seconds: int | None = None
    passed: bool | None = None

    @classmethod
    def start(cls) -> "ProgressSignal":
        return cls(SignalKind.START)

    @classmethod
    def complete(
        cls, score: int | None = None, watch_time_seconds: int | None = None
    ) -> "ProgressSignal":
        return cls(
            SignalKind.COMPLETE, score=score, watch_time_seconds=watch_time_seconds
        )

    @classmethod
    def video_tick(
        cls, watch_time_seconds: int, last_position_seconds: int
    ) -> "ProgressSignal":
        return cls(
            SignalKind.VIDEO_TICK,
            watch_time_seconds=watch_time_seconds,
            last_position_seconds=last_position_seconds,
        )

    @classmethod
    def quiz_submit(cls, score: int, passed: bool | None = None) -> "ProgressSignal":
        return cls(SignalKind.QUIZ_SUBMIT, score=score, passed=passed)


@dataclass(frozen=True)
class CompletionPolicy:
    """Tunable parts of the completion rules."""

    quiz_pass_threshold: int = 60
    retake_revokes_completion: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionPolicy":
        return cls(
            quiz_pass_threshold=settings.progress_quiz_pass_threshold,
            retake_revokes_completion=settings.progress_retake_revokes_completion,
        )


@dataclass(frozen=True)
class CompletionDecision:
    """Evaluator output.

    Attributes:
        progress: The record to persist
        previous_status: Record status before the signal
        triggers_rollup: Whether topic and module must be recomputed
        passed: Pass/fail outcome (quiz submissions only)
    """

    progress: LessonProgress
    previous_status: LessonProgressStatus
    triggers_rollup: bool
    passed: bool | None = None

    @property
    def was_completed(self) -> bool:
        return self.previous_status == LessonProgressStatus.COMPLETED

    @property
    def first_interaction(self) -> bool:
        return self.previous_status == LessonProgressStatus.NOT_STARTED

    @property
    def is_completed(self) -> bool:
        return self.progress.is_completed

    @property
    def completion_changed(self) -> bool:
        return self.was_completed != self.progress.is_completed


# ==============================================================================
# Validation
# ==============================================================================


def _validate(signal: ProgressSignal, lesson_type: LessonType) -> None:
    """Reject signals that do not apply to the lesson or carry bad values."""
    if signal.score is not None and not MIN_SCORE <= signal.score <= MAX_SCORE:
        msg = f"Score must be between {MIN_SCORE} and {MAX_SCORE}"
        raise InvalidSignalError(msg)

    for name in ("watch_time_seconds", "last_position_seconds"):
        value = getattr(signal, name)
        if value is not None and value < 0:
            msg = f"{name} cannot be negative"
            raise InvalidSignalError(msg)

    if signal.kind == SignalKind.VIDEO_TICK:
        if not lesson_type.is_video:
            msg = f"Video progress does not apply to {lesson_type.value} lessons"
            raise InvalidSignalError(msg)
        if signal.watch_time_seconds is None or signal.last_position_seconds is None:
            msg = "Video progress requires watch time and position"
            raise InvalidSignalError(msg)

    if signal.kind == SignalKind.QUIZ_SUBMIT:
        if not lesson_type.is_assessment:
            msg = f"Quiz submissions do not apply to {lesson_type.value} lessons"
            raise InvalidSignalError(msg)
        if signal.score is None:
            msg = "Quiz submissions require a score"
            raise InvalidSignalError(msg)


# ==============================================================================
# Evaluation
# ==============================================================================


def _started(current: LessonProgress, at: datetime) -> LessonProgress:
    """Current record moved out of not-started, keeping any completion."""
    status = current.status
    if status == LessonProgressStatus.NOT_STARTED:
        status = LessonProgressStatus.IN_PROGRESS
    return replace(
        current,
        status=status,
        started_at=current.started_at or at,
        updated_at=at,
    )


def _completed(current: LessonProgress, at: datetime) -> LessonProgress:
    """Current record marked completed; the first completion time sticks."""
    return replace(
        current,
        status=LessonProgressStatus.COMPLETED,
        completed_at=current.completed_at if current.is_completed else at,
        started_at=current.started_at or at,
        updated_at=at,
    )


def evaluate(
    current: LessonProgress,
    lesson_type: LessonType,
    signal: ProgressSignal,
    policy: CompletionPolicy,
    at: datetime,
) -> CompletionDecision:
    """Decide the next lesson record for a signal.

    Args:
        current: Existing record, or ``LessonProgress.not_started(...)``
        lesson_type: Type of the lesson the record belongs to
        signal: Incoming signal
        policy: Pass threshold and retake policy
        at: Timestamp to stamp on the new record

    Raises:
        InvalidSignalError: Signal does not apply or carries invalid values
    """
    _validate(signal, lesson_type)
    was_completed = current.is_completed

    if signal.kind == SignalKind.START:
        return CompletionDecision(
            progress=_started(current, at),
            previous_status=current.status,
            triggers_rollup=False,
        )

    if signal.kind == SignalKind.VIDEO_TICK:
        progress = replace(
            _started(current, at),
            watch_time_seconds=max(
                current.watch_time_seconds, signal.watch_time_seconds or 0
            ),
            last_position_seconds=signal.last_position_seconds or 0,
        )
        return CompletionDecision(
            progress=progress,
            previous_status=current.status,
            triggers_rollup=False,
        )

    if signal.kind == SignalKind.COMPLETE:
        progress = replace(
            _completed(current, at),
            score=signal.score if signal.score is not None else current.score,
            watch_time_seconds=max(
                current.watch_time_seconds, signal.watch_time_seconds or 0
            ),
        )
        return CompletionDecision(
            progress=progress,
            previous_status=current.status,
            triggers_rollup=True,
        )

    # SignalKind.QUIZ_SUBMIT
    score = signal.score if signal.score is not None else 0
    passed = (
        signal.passed
        if signal.passed is not None
        else score >= policy.quiz_pass_threshold
    )

    if passed:
        progress = _completed(current, at)
    elif was_completed and not policy.retake_revokes_completion:
        progress = replace(current, updated_at=at)
    else:
        progress = replace(
            _started(current, at),
            status=LessonProgressStatus.IN_PROGRESS,
            completed_at=None,
        )

    progress = replace(
        progress,
        score=score,
        attempts_count=current.attempts_count + 1,
    )
    return CompletionDecision(
        progress=progress,
        previous_status=current.status,
        triggers_rollup=passed or was_completed != progress.is_completed,
        passed=passed,
    )
