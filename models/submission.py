"""Submission and segment models.

A submission (essay) owns its segments.  Segments are produced once by the
paragraph feed and are immutable afterwards; ``order`` is 1-based and
gap-free within a submission.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SegmentKind(str, Enum):
    """Structural role of a segment inside an essay."""

    INTRODUCTION = "introduction"
    TOPIC_SENTENCE = "topic-sentence"
    MAIN_POINT = "main-point"
    CONCLUSION = "conclusion"
    UNKNOWN = "unknown"

    @classmethod
    def normalize(cls, raw: str) -> SegmentKind:
        """Map free-form type labels (``"Main Point"``, ``"intro"``) to a kind."""
        value = raw.strip().lower().replace(" ", "-").replace("_", "-")
        if value == "intro":
            value = cls.INTRODUCTION.value
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class Submission(BaseModel):
    """A writing submission (essay)."""

    id: int
    uuid: str
    essay_type: str = "task-2"
    question: str = ""
    content: str = ""
    # Set on cloned/finalized copies; points back at the source essay
    original_id: int | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class Segment(BaseModel):
    """A titled structural piece of a submission."""

    id: int | None = None
    essay_id: int
    type: SegmentKind = SegmentKind.UNKNOWN
    title: str
    content: str
    order: int = Field(ge=1)
    created_at: datetime = Field(default_factory=_utcnow)
