"""Tests for activity events and the Cassandra activity log."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from edutrack.activity.models import (
    ActivityKind,
    ActivityRecord,
    LessonCompleted,
    LessonProgressReset,
    QuizAttempted,
    TopicCompleted,
)
from edutrack.activity.service import ActivityLog


def ids() -> dict:
    return {
        "student_id": uuid4(),
        "module_id": uuid4(),
        "enrollment_id": uuid4(),
    }


class TestEvents:
    """Event variants render their own title, description and metadata."""

    def test_lesson_completed_with_score(self) -> None:
        event = LessonCompleted(
            **ids(),
            topic_id=uuid4(),
            lesson_id=uuid4(),
            lesson_title="Pharmacology 101",
            lesson_type="video",
            score=88,
            watch_time_seconds=600,
        )

        assert event.kind == ActivityKind.LESSON_COMPLETED
        assert event.title == "Completed lesson: Pharmacology 101"
        assert event.description == "Finished video lesson with score 88%"
        assert event.metadata() == {
            "lesson_type": "video",
            "score": "88",
            "watch_time_seconds": "600",
        }

    def test_quiz_attempt_outcome(self) -> None:
        event = QuizAttempted(
            **ids(),
            topic_id=uuid4(),
            lesson_id=uuid4(),
            lesson_title="Checkpoint",
            score=45,
            passed=False,
            attempts_count=3,
        )

        assert event.description == "Scored 45% (not passed)"
        assert event.metadata()["passed"] == "false"

    def test_reset_without_actor_has_no_metadata(self) -> None:
        event = LessonProgressReset(
            **ids(), topic_id=uuid4(), lesson_id=uuid4(), lesson_title="Intro"
        )

        assert event.metadata() == {}

    def test_record_from_event(self) -> None:
        base = ids()
        topic_id = uuid4()
        event = TopicCompleted(**base, topic_id=topic_id, total_lessons=5)
        now = datetime.now(UTC)

        record = ActivityRecord.from_event(event, uuid4(), now)

        assert record.kind == ActivityKind.TOPIC_COMPLETED
        assert record.topic_id == topic_id
        assert record.lesson_id is None
        assert record.description == "Finished all 5 lessons in topic"
        assert record.to_dict()["kind"] == "topic_completed"


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(return_value=Mock())
    session.aexecute = AsyncMock(return_value=[])
    return session


class TestActivityLog:
    """Append and read against a mocked session."""

    @pytest.mark.asyncio
    async def test_record_inserts_row(self, mock_session) -> None:
        log = ActivityLog(mock_session, "test_keyspace")
        event = TopicCompleted(**ids(), topic_id=uuid4(), total_lessons=2)

        record = await log.record(event)

        params = mock_session.aexecute.call_args.args[1]
        assert params[0] == event.student_id
        assert params[3] == "topic_completed"
        assert params[9] == {"total_lessons": "2"}
        assert record.activity_id.version == 1

    @pytest.mark.asyncio
    async def test_record_propagates_driver_errors(self, mock_session) -> None:
        mock_session.aexecute.side_effect = RuntimeError("timeout")
        log = ActivityLog(mock_session, "test_keyspace")

        with pytest.raises(RuntimeError):
            await log.record(TopicCompleted(**ids(), topic_id=uuid4(), total_lessons=1))

    @pytest.mark.asyncio
    async def test_list_for_module(self, mock_session) -> None:
        student_id, module_id = uuid4(), uuid4()
        mock_session.aexecute.return_value = [
            SimpleNamespace(
                student_id=student_id,
                module_id=module_id,
                activity_id=uuid4(),
                kind="module_completed",
                enrollment_id=uuid4(),
                topic_id=None,
                lesson_id=None,
                title="Completed module",
                description=None,
                metadata=None,
                created_at=datetime(2024, 5, 1, 12, 0),
            )
        ]
        log = ActivityLog(mock_session, "test_keyspace")

        records = await log.list_for_module(student_id, module_id, limit=5)

        assert mock_session.aexecute.call_args.args[1] == [student_id, module_id, 5]
        assert records[0].kind == ActivityKind.MODULE_COMPLETED
        assert records[0].metadata == {}
        assert records[0].created_at.tzinfo is UTC
