"""Feed (step definition) models.

A feed is one configured unit of pipeline work: which rubric criteria it
covers, which part of the submission it applies to, where it sits in the
processing order, and which sub-steps (chain-of-thought, scoring, feedback)
it runs.  Feeds are configuration; the pipeline only consumes them.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from models.submission import SegmentKind

DEFAULT_CRITERIA = "general"


class StepKind(str, Enum):
    """Sub-step of a feed; each fills one content field of a feedback record."""

    CHAIN_OF_THOUGHT = "chain-of-thought"
    SCORING = "scoring"
    FEEDBACK = "feedback"

    @property
    def content_field(self) -> str:
        return _CONTENT_FIELDS[self]


_CONTENT_FIELDS = {
    StepKind.CHAIN_OF_THOUGHT: "cot_content",
    StepKind.SCORING: "score_content",
    StepKind.FEEDBACK: "feedback_content",
}


# Segment kinds a feed may target directly (``unknown`` is never a target)
_SEGMENT_SCOPES = {
    SegmentKind.INTRODUCTION,
    SegmentKind.TOPIC_SENTENCE,
    SegmentKind.MAIN_POINT,
    SegmentKind.CONCLUSION,
}


class FeedScope(BaseModel):
    """Closed variant over Essay | Paragraph | Segment(kind).

    Built from the ``apply_to`` strings used in feed configuration; any
    other string is rejected at load time.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["essay", "paragraph", "segment"]
    segment_kind: SegmentKind | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_apply_to(cls, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        raw = value.strip().lower()
        if raw in ("essay", "paragraph"):
            return {"kind": raw}
        try:
            segment_kind = SegmentKind(raw)
        except ValueError:
            raise ValueError(f"Unknown apply_to value: {value!r}") from None
        if segment_kind not in _SEGMENT_SCOPES:
            raise ValueError(f"Unknown apply_to value: {value!r}")
        return {"kind": "segment", "segment_kind": segment_kind}

    @model_validator(mode="after")
    def _check_segment_kind(self) -> FeedScope:
        if (self.kind == "segment") != (self.segment_kind is not None):
            raise ValueError("segment_kind is required for, and only for, segment scope")
        return self

    @classmethod
    def essay(cls) -> FeedScope:
        return cls(kind="essay")

    @classmethod
    def paragraph(cls) -> FeedScope:
        return cls(kind="paragraph")

    @classmethod
    def segment(cls, segment_kind: SegmentKind) -> FeedScope:
        return cls(kind="segment", segment_kind=segment_kind)

    @property
    def apply_to(self) -> str:
        """The configuration string this scope was parsed from."""
        if self.kind == "segment":
            return self.segment_kind.value
        return self.kind


class FeedDefinition(BaseModel):
    """A configured feedback step, as consumed by the orchestrator."""

    id: int
    feed_name: str = ""
    feed_title: str = "Feedback"
    process_order: int = 0
    apply_to: FeedScope
    feedback_criteria: str = DEFAULT_CRITERIA
    steps: list[StepKind] = Field(default_factory=lambda: [StepKind.FEEDBACK])
    # Prompt templates, style, language prompts, score_regex, model overrides
    meta: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _default_criteria(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("feedback_criteria"):
            data = {**data, "feedback_criteria": DEFAULT_CRITERIA}
        return data

    @field_serializer("apply_to")
    def _serialize_scope(self, scope: FeedScope) -> str:
        return scope.apply_to
