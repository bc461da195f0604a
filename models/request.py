"""Request models for the feedback stream."""

from __future__ import annotations

from pydantic import Field

from models.base import CamelModel


class FeedbackStreamRequest(CamelModel):
    """What a client asks for when it opens a feedback stream."""

    uuid: str = Field(..., min_length=1)
    # Restricts segment-scoped feeds to the segment with this order
    segment_order: int | None = Field(default=None, ge=1)
    language: str = "en"
    feedback_style: str = ""
    # Tutor guidance for the feed with this id; its output is stored as human
    feed_id: int | None = None
    guide_score: str = ""
    guide_feedback: str = ""

    def guides(self, feed_id: int) -> bool:
        return self.feed_id == feed_id and bool(
            self.guide_score.strip() or self.guide_feedback.strip()
        )
