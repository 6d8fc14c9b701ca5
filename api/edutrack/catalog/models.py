"""Catalog models consumed by progress tracking.

The catalog subsystem owns modules, topics and lessons; this package only
reads them. Containment is module -> topic -> lesson.

Cassandra tables:
- modules / topics / lessons: main tables keyed by id
- topics_by_module / lessons_by_topic: ordered lookup tables for containment
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID


class LessonType(str, Enum):
    """Lesson content type."""

    VIDEO = "video"
    YOUTUBE_LIVE = "youtube_live"
    TEXT = "text"
    PDF = "pdf"
    EXTERNAL_LINK = "external_link"
    QUIZ = "quiz"
    ASSIGNMENT = "assignment"

    @property
    def is_video(self) -> bool:
        """Lessons that report playback position and watch time."""
        return self in (LessonType.VIDEO, LessonType.YOUTUBE_LIVE)

    @property
    def is_assessment(self) -> bool:
        """Lessons completed by a scored submission."""
        return self in (LessonType.QUIZ, LessonType.ASSIGNMENT)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.modules (
    id UUID PRIMARY KEY,
    title TEXT,
    status TEXT,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

TOPICS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.topics (
    id UUID PRIMARY KEY,
    module_id UUID,
    title TEXT,
    order_index INT,
    created_at TIMESTAMP
)
"""

# Topics of a module in display order
TOPICS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.topics_by_module (
    module_id UUID,
    order_index INT,
    topic_id UUID,
    PRIMARY KEY ((module_id), order_index, topic_id)
) WITH CLUSTERING ORDER BY (order_index ASC, topic_id ASC)
"""

LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons (
    id UUID PRIMARY KEY,
    topic_id UUID,
    module_id UUID,
    title TEXT,
    lesson_type TEXT,
    is_published BOOLEAN,
    order_index INT,
    created_at TIMESTAMP
)
"""

# Lessons of a topic in display order (publication flag denormalized for counts)
LESSONS_BY_TOPIC_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_topic (
    topic_id UUID,
    order_index INT,
    lesson_id UUID,
    is_published BOOLEAN,
    PRIMARY KEY ((topic_id), order_index, lesson_id)
) WITH CLUSTERING ORDER BY (order_index ASC, lesson_id ASC)
"""

CATALOG_TABLES_CQL = [
    MODULES_TABLE_CQL,
    TOPICS_TABLE_CQL,
    TOPICS_BY_MODULE_TABLE_CQL,
    LESSONS_TABLE_CQL,
    LESSONS_BY_TOPIC_TABLE_CQL,
]


# ==============================================================================
# Read Models
# ==============================================================================


@dataclass(frozen=True)
class LessonRef:
    """A lesson and its position in the containment graph."""

    id: UUID
    topic_id: UUID
    module_id: UUID
    title: str
    lesson_type: LessonType
    is_published: bool = True

    @classmethod
    def from_row(cls, row: Any) -> "LessonRef":
        """Create LessonRef from Cassandra row."""
        return cls(
            id=row.id,
            topic_id=row.topic_id,
            module_id=row.module_id,
            title=row.title or "",
            lesson_type=LessonType(row.lesson_type),
            is_published=row.is_published if row.is_published is not None else True,
        )
