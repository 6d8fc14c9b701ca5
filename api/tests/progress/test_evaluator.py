"""Tests for the completion evaluator."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from edutrack.catalog.models import LessonRef, LessonType
from edutrack.progress.evaluator import (
    CompletionPolicy,
    ProgressSignal,
    evaluate,
)
from edutrack.progress.exceptions import InvalidSignalError
from edutrack.progress.models import LessonProgress, LessonProgressStatus


T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
T1 = T0 + timedelta(minutes=5)
T2 = T0 + timedelta(minutes=10)

POLICY = CompletionPolicy()


def blank(lesson_type: LessonType = LessonType.TEXT) -> LessonProgress:
    lesson = LessonRef(
        id=uuid4(),
        topic_id=uuid4(),
        module_id=uuid4(),
        title="Lesson",
        lesson_type=lesson_type,
    )
    return LessonProgress.not_started(uuid4(), uuid4(), lesson)


class TestStart:
    """START moves a record out of not-started without cascading."""

    def test_first_start(self) -> None:
        decision = evaluate(
            blank(), LessonType.TEXT, ProgressSignal.start(), POLICY, T0
        )

        assert decision.progress.status == LessonProgressStatus.IN_PROGRESS
        assert decision.progress.started_at == T0
        assert decision.first_interaction is True
        assert decision.triggers_rollup is False

    def test_restart_keeps_started_at(self) -> None:
        first = evaluate(blank(), LessonType.TEXT, ProgressSignal.start(), POLICY, T0)
        second = evaluate(
            first.progress, LessonType.TEXT, ProgressSignal.start(), POLICY, T1
        )

        assert second.progress.started_at == T0
        assert second.progress.updated_at == T1
        assert second.first_interaction is False

    def test_start_does_not_uncomplete(self) -> None:
        done = evaluate(blank(), LessonType.TEXT, ProgressSignal.complete(), POLICY, T0)
        again = evaluate(
            done.progress, LessonType.TEXT, ProgressSignal.start(), POLICY, T1
        )

        assert again.progress.is_completed
        assert again.progress.completed_at == T0


class TestComplete:
    """COMPLETE works for every lesson type and always cascades."""

    @pytest.mark.parametrize("lesson_type", list(LessonType))
    def test_any_type(self, lesson_type: LessonType) -> None:
        decision = evaluate(
            blank(lesson_type), lesson_type, ProgressSignal.complete(), POLICY, T0
        )

        assert decision.progress.is_completed
        assert decision.progress.completed_at == T0
        assert decision.progress.started_at == T0
        assert decision.triggers_rollup is True
        assert decision.completion_changed is True

    def test_second_complete_keeps_first_timestamp(self) -> None:
        first = evaluate(
            blank(), LessonType.TEXT, ProgressSignal.complete(score=70), POLICY, T0
        )
        second = evaluate(
            first.progress, LessonType.TEXT, ProgressSignal.complete(), POLICY, T1
        )

        assert second.progress.completed_at == T0
        assert second.progress.score == 70
        assert second.completion_changed is False
        assert second.triggers_rollup is True

    def test_watch_time_never_decreases(self) -> None:
        ticked = evaluate(
            blank(LessonType.VIDEO),
            LessonType.VIDEO,
            ProgressSignal.video_tick(300, 290),
            POLICY,
            T0,
        )
        done = evaluate(
            ticked.progress,
            LessonType.VIDEO,
            ProgressSignal.complete(watch_time_seconds=100),
            POLICY,
            T1,
        )

        assert done.progress.watch_time_seconds == 300


class TestVideoTick:
    """VIDEO_TICK records playback only."""

    def test_tick(self) -> None:
        decision = evaluate(
            blank(LessonType.VIDEO),
            LessonType.VIDEO,
            ProgressSignal.video_tick(120, 118),
            POLICY,
            T0,
        )

        assert decision.progress.status == LessonProgressStatus.IN_PROGRESS
        assert decision.progress.watch_time_seconds == 120
        assert decision.progress.last_position_seconds == 118
        assert decision.triggers_rollup is False

    def test_seek_back_moves_position_not_watch_time(self) -> None:
        first = evaluate(
            blank(LessonType.VIDEO),
            LessonType.VIDEO,
            ProgressSignal.video_tick(600, 600),
            POLICY,
            T0,
        )
        second = evaluate(
            first.progress,
            LessonType.VIDEO,
            ProgressSignal.video_tick(200, 30),
            POLICY,
            T1,
        )

        assert second.progress.watch_time_seconds == 600
        assert second.progress.last_position_seconds == 30

    def test_tick_after_completion_stays_completed(self) -> None:
        done = evaluate(
            blank(LessonType.YOUTUBE_LIVE),
            LessonType.YOUTUBE_LIVE,
            ProgressSignal.complete(),
            POLICY,
            T0,
        )
        ticked = evaluate(
            done.progress,
            LessonType.YOUTUBE_LIVE,
            ProgressSignal.video_tick(10, 10),
            POLICY,
            T1,
        )

        assert ticked.progress.is_completed
        assert ticked.triggers_rollup is False

    def test_rejected_for_text(self) -> None:
        with pytest.raises(InvalidSignalError):
            evaluate(
                blank(), LessonType.TEXT, ProgressSignal.video_tick(10, 10), POLICY, T0
            )


class TestQuizSubmit:
    """QUIZ_SUBMIT scores attempts against the pass threshold."""

    def test_pass_at_threshold(self) -> None:
        decision = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(60),
            POLICY,
            T0,
        )

        assert decision.passed is True
        assert decision.progress.is_completed
        assert decision.progress.attempts_count == 1
        assert decision.triggers_rollup is True

    def test_fail_below_threshold(self) -> None:
        decision = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(59),
            POLICY,
            T0,
        )

        assert decision.passed is False
        assert decision.progress.status == LessonProgressStatus.IN_PROGRESS
        assert decision.progress.score == 59
        assert decision.triggers_rollup is False

    def test_explicit_passed_overrides_threshold(self) -> None:
        decision = evaluate(
            blank(LessonType.ASSIGNMENT),
            LessonType.ASSIGNMENT,
            ProgressSignal.quiz_submit(40, passed=True),
            POLICY,
            T0,
        )

        assert decision.passed is True
        assert decision.progress.is_completed

    def test_custom_threshold(self) -> None:
        decision = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(75),
            CompletionPolicy(quiz_pass_threshold=80),
            T0,
        )

        assert decision.passed is False

    def test_fail_then_pass(self) -> None:
        failed = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(40),
            POLICY,
            T0,
        )
        passed = evaluate(
            failed.progress, LessonType.QUIZ, ProgressSignal.quiz_submit(85), POLICY, T1
        )

        assert passed.progress.attempts_count == 2
        assert passed.progress.score == 85
        assert passed.progress.completed_at == T1
        assert passed.progress.started_at == T0

    def test_failing_retake_keeps_completion(self) -> None:
        passed = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(90),
            POLICY,
            T0,
        )
        retake = evaluate(
            passed.progress, LessonType.QUIZ, ProgressSignal.quiz_submit(20), POLICY, T1
        )

        assert retake.progress.is_completed
        assert retake.progress.completed_at == T0
        assert retake.progress.score == 20
        assert retake.progress.attempts_count == 2
        assert retake.triggers_rollup is False

    def test_failing_retake_revokes_when_configured(self) -> None:
        policy = CompletionPolicy(retake_revokes_completion=True)
        passed = evaluate(
            blank(LessonType.QUIZ),
            LessonType.QUIZ,
            ProgressSignal.quiz_submit(90),
            policy,
            T0,
        )
        retake = evaluate(
            passed.progress, LessonType.QUIZ, ProgressSignal.quiz_submit(20), policy, T2
        )

        assert retake.progress.status == LessonProgressStatus.IN_PROGRESS
        assert retake.progress.completed_at is None
        assert retake.completion_changed is True
        assert retake.triggers_rollup is True

    def test_rejected_for_video(self) -> None:
        with pytest.raises(InvalidSignalError):
            evaluate(
                blank(LessonType.VIDEO),
                LessonType.VIDEO,
                ProgressSignal.quiz_submit(80),
                POLICY,
                T0,
            )


class TestValidation:
    """Out-of-range values are rejected before any state changes."""

    @pytest.mark.parametrize("score", [-1, 101])
    def test_score_out_of_range(self, score: int) -> None:
        with pytest.raises(InvalidSignalError, match="Score"):
            evaluate(
                blank(),
                LessonType.TEXT,
                ProgressSignal.complete(score=score),
                POLICY,
                T0,
            )

    def test_negative_watch_time(self) -> None:
        with pytest.raises(InvalidSignalError, match="negative"):
            evaluate(
                blank(LessonType.VIDEO),
                LessonType.VIDEO,
                ProgressSignal.video_tick(-5, 0),
                POLICY,
                T0,
            )
