"""Feedback record models.

One record per (target, criteria, source).  Its three content fields are
filled incrementally as the chain-of-thought, scoring and feedback sub-steps
of the same criteria run; a non-empty field is never overwritten.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from models.feed import StepKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Source(str, Enum):
    """Provenance of a feedback record."""

    AI = "ai"
    HUMAN = "human"


class FeedbackTarget(BaseModel):
    """What a record is attached to: the whole essay or one segment."""

    model_config = {"frozen": True}

    kind: Literal["essay", "segment"]
    id: int

    @classmethod
    def essay(cls, essay_id: int) -> FeedbackTarget:
        return cls(kind="essay", id=essay_id)

    @classmethod
    def segment(cls, segment_id: int) -> FeedbackTarget:
        return cls(kind="segment", id=segment_id)


class FeedbackRecord(BaseModel):
    """Persisted output of the sub-steps of one feed for one target."""

    id: int | None = None
    target: FeedbackTarget
    feedback_criteria: str
    source: Source = Source.AI
    feedback_language: str = "en"
    cot_content: str = ""
    score_content: str = ""
    feedback_content: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def content_for(self, step: StepKind) -> str:
        return getattr(self, step.content_field) or ""


class CachedContent(BaseModel):
    """Content the cache gate found for a step; the step is not re-run."""

    content: str
    source: Source = Source.AI
    reused: bool = True
    segment_count: int | None = None


class SaveOutcome(BaseModel):
    """Result of a conditional write of one content field.

    ``skipped`` means another writer had already filled the field;
    ``content`` then holds that existing value.
    """

    status: Literal["created", "updated", "skipped"]
    content: str
    source: Source = Source.AI
    record_id: int | None = None
    segment_count: int | None = None

    @property
    def skipped(self) -> bool:
        return self.status == "skipped"
