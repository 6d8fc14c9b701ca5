"""Activity history service.

Appends activity entries and reads a student's recent history for a module.
Writes are single-row inserts keyed by a TIMEUUID, so concurrent writers
never collide.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import UUID

import structlog
from cassandra.util import uuid_from_time

from .models import ActivityEvent, ActivityRecord


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)


class ActivityLog:
    """Cassandra-backed append-only activity log."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        self._insert_activity = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.activity_history
            (student_id, module_id, activity_id, kind, enrollment_id, topic_id,
             lesson_id, title, description, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._list_activity = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.activity_history
            WHERE student_id = ? AND module_id = ?
            LIMIT ?
        """)

    async def record(self, event: ActivityEvent) -> ActivityRecord:
        """Append one activity entry.

        Raises whatever the driver raises; callers that treat the audit
        trail as best-effort catch and log.
        """
        now = datetime.now(UTC)
        record = ActivityRecord.from_event(event, uuid_from_time(now), now)

        await self.session.aexecute(
            self._insert_activity,
            [
                record.student_id,
                record.module_id,
                record.activity_id,
                record.kind.value,
                record.enrollment_id,
                record.topic_id,
                record.lesson_id,
                record.title,
                record.description,
                record.metadata,
                record.created_at,
            ],
        )

        logger.debug(
            "activity_recorded",
            kind=record.kind.value,
            student_id=str(record.student_id),
            module_id=str(record.module_id),
        )

        return record

    async def list_for_module(
        self,
        student_id: UUID,
        module_id: UUID,
        limit: int = 10,
    ) -> list[ActivityRecord]:
        """Most recent entries for a student in a module, newest first."""
        rows = await self.session.aexecute(
            self._list_activity, [student_id, module_id, limit]
        )
        return [ActivityRecord.from_row(row) for row in rows]
