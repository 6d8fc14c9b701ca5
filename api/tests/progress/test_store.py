"""Tests for CassandraProgressStore against a mocked session."""

from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock
from uuid import uuid4

import pytest
from cassandra.cluster import Session

from edutrack.progress.exceptions import LessonProgressNotFoundError
from edutrack.progress.models import (
    LessonProgressStatus,
    ModuleEnrollment,
    ModuleEnrollmentProgress,
)
from edutrack.progress.store import CassandraProgressStore


@pytest.fixture
def mock_session():
    """Mock Cassandra session."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda cql: Mock(cql=cql))
    session.aexecute = AsyncMock(return_value=[])
    return session


@pytest.fixture
def store(mock_session) -> CassandraProgressStore:
    return CassandraProgressStore(mock_session, "test_keyspace")


def single(row):
    """Result set whose one() returns ``row``."""
    return Mock(one=Mock(return_value=row))


def lesson_row(**overrides):
    values = {
        "enrollment_id": uuid4(),
        "lesson_id": uuid4(),
        "student_id": uuid4(),
        "module_id": uuid4(),
        "topic_id": uuid4(),
        "status": "completed",
        "completed_at": datetime(2024, 5, 1, 12, 0),
        "watch_time_seconds": None,
        "last_position_seconds": None,
        "score": 75,
        "attempts_count": None,
        "started_at": datetime(2024, 5, 1, 11, 0),
        "updated_at": datetime(2024, 5, 1, 12, 0),
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def enrollment_row(**overrides):
    values = {
        "id": uuid4(),
        "module_id": uuid4(),
        "student_id": uuid4(),
        "is_active": None,
        "enrolled_at": datetime(2024, 4, 1),
        "percentage": 50,
        "completed_lessons": 2,
        "total_lessons": 4,
        "is_completed": None,
        "completed_at": None,
        "last_accessed_at": None,
        "updated_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


class TestLessonProgress:
    """Lesson record reads and writes."""

    def test_statements_use_keyspace(self, mock_session, store) -> None:
        prepared = [call.args[0] for call in mock_session.prepare.call_args_list]
        assert all("test_keyspace." in cql for cql in prepared)

    @pytest.mark.asyncio
    async def test_get_missing(self, mock_session, store) -> None:
        mock_session.aexecute.return_value = single(None)

        assert await store.get_lesson_progress(uuid4(), uuid4()) is None

    @pytest.mark.asyncio
    async def test_get_parses_row(self, mock_session, store) -> None:
        row = lesson_row()
        mock_session.aexecute.return_value = single(row)

        progress = await store.get_lesson_progress(row.enrollment_id, row.lesson_id)

        assert progress.status == LessonProgressStatus.COMPLETED
        assert progress.completed_at.tzinfo is UTC
        assert progress.watch_time_seconds == 0
        assert progress.attempts_count == 0
        assert progress.score == 75

    @pytest.mark.asyncio
    async def test_save_binds_status_value(self, mock_session, store) -> None:
        mock_session.aexecute.return_value = single(lesson_row())
        progress = await store.get_lesson_progress(uuid4(), uuid4())

        await store.save_lesson_progress(progress)

        params = mock_session.aexecute.call_args.args[1]
        assert params[0] == progress.enrollment_id
        assert params[5] == "completed"

    @pytest.mark.asyncio
    async def test_restricted_list_skips_query_for_empty_set(
        self, mock_session, store
    ) -> None:
        mock_session.aexecute.reset_mock()

        assert await store.list_lesson_progress_for_lessons(uuid4(), set()) == []
        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reset_missing_raises(self, mock_session, store) -> None:
        mock_session.aexecute.return_value = single(None)

        with pytest.raises(LessonProgressNotFoundError):
            await store.reset_lesson_progress(uuid4(), uuid4())

    @pytest.mark.asyncio
    async def test_reset_writes_blank_record(self, mock_session, store) -> None:
        mock_session.aexecute.return_value = single(lesson_row())

        progress = await store.reset_lesson_progress(uuid4(), uuid4())

        assert progress.status == LessonProgressStatus.NOT_STARTED
        assert progress.score is None
        assert progress.completed_at is None
        assert progress.started_at is None
        assert progress.attempts_count == 0
        assert progress.watch_time_seconds == 0
        params = mock_session.aexecute.call_args.args[1]
        assert params[5] == "not_started"


class TestEnrollments:
    """Enrollment rows and their lookup tables."""

    @pytest.mark.asyncio
    async def test_create_writes_three_tables(self, mock_session, store) -> None:
        mock_session.aexecute.reset_mock()
        enrollment = ModuleEnrollment(module_id=uuid4(), student_id=uuid4())

        await store.create_enrollment(enrollment)

        assert mock_session.aexecute.await_count == 3

    @pytest.mark.asyncio
    async def test_get_parses_defaults(self, mock_session, store) -> None:
        mock_session.aexecute.return_value = single(enrollment_row())

        enrollment = await store.get_enrollment(uuid4())

        assert enrollment.is_active is True
        assert enrollment.progress.is_completed is False
        assert enrollment.progress.percentage == 50
        assert enrollment.enrolled_at.tzinfo is UTC

    @pytest.mark.asyncio
    async def test_get_for_student_follows_lookup(self, mock_session, store) -> None:
        row = enrollment_row()
        mock_session.aexecute.side_effect = [
            single(SimpleNamespace(enrollment_id=row.id)),
            single(row),
        ]

        enrollment = await store.get_enrollment_for_student(
            row.module_id, row.student_id
        )

        assert enrollment.id == row.id

    @pytest.mark.asyncio
    async def test_orphaned_lookup_rows_are_skipped(
        self, mock_session, store
    ) -> None:
        row = enrollment_row()
        orphan_id = uuid4()
        mock_session.aexecute.side_effect = [
            [
                SimpleNamespace(enrollment_id=orphan_id),
                SimpleNamespace(enrollment_id=row.id),
            ],
            single(None),
            single(row),
        ]

        enrollments = await store.list_module_enrollments(row.module_id)

        assert [e.id for e in enrollments] == [row.id]

    @pytest.mark.asyncio
    async def test_module_progress_update_leaves_last_access(
        self, mock_session, store
    ) -> None:
        enrollment_id = uuid4()
        progress = ModuleEnrollmentProgress(
            percentage=100,
            completed_lessons=4,
            total_lessons=4,
            is_completed=True,
            updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        )

        await store.save_module_progress(enrollment_id, progress)

        statement, params = mock_session.aexecute.call_args.args
        assert "last_accessed_at" not in statement.cql
        assert params[:4] == [100, 4, 4, True]
        assert params[5] == progress.updated_at
        assert params[-1] == enrollment_id
