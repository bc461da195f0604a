"""Idempotency gate: find content a step already produced.

Consulted before every step.  A hit means the step is not run again, which
is what makes re-opening a stream (reconnects, duplicate tabs) cheap and
free of duplicate records.

Resolution by scope:

- essay:     human record, then AI record, keyed by the submission.
- paragraph: existing segments, rendered back into text.
- segment:   human record, then AI record, keyed by the segment.

Human content always wins: a tutor's correction must never be hidden by
an AI result, however recent.
"""

from __future__ import annotations

import logging

from models.feed import FeedDefinition, StepKind
from models.feedback import CachedContent, FeedbackTarget, Source
from models.submission import Segment, Submission
from services.feedback_store import FeedbackStore
from services.segment_extractor import PARAGRAPH_SEPARATOR

logger = logging.getLogger(__name__)

# Lookup order for record-backed scopes
_SOURCE_PRECEDENCE = (Source.HUMAN, Source.AI)


def render_segments(segments: list[Segment]) -> str:
    """Render stored segments the way the paragraph step reports them."""
    return PARAGRAPH_SEPARATOR.join(f"# {s.title}\n\n{s.content}" for s in segments)


class StepCache:
    """Read-only view over the store answering "has this step run already?"."""

    def __init__(self, store: FeedbackStore):
        self._store = store

    async def get_existing_content(
        self,
        step: StepKind,
        feed: FeedDefinition,
        submission: Submission,
        segment: Segment | None = None,
        *,
        human_only: bool = False,
    ) -> CachedContent | None:
        """Stored content for this step, or ``None`` when it still has to run.

        With *human_only* only the human record counts as a hit.
        """
        sources = _SOURCE_PRECEDENCE[:1] if human_only else _SOURCE_PRECEDENCE
        scope = feed.apply_to
        if scope.kind == "essay":
            return await self._find_record_content(
                step, feed, FeedbackTarget.essay(submission.id), sources
            )
        if scope.kind == "paragraph":
            return await self._find_segments_content(submission)
        if scope.kind == "segment":
            if segment is None or segment.id is None:
                return None
            return await self._find_record_content(
                step, feed, FeedbackTarget.segment(segment.id), sources
            )
        raise ValueError(f"Unhandled feed scope: {scope.kind}")

    async def _find_record_content(
        self,
        step: StepKind,
        feed: FeedDefinition,
        target: FeedbackTarget,
        sources: tuple[Source, ...] = _SOURCE_PRECEDENCE,
    ) -> CachedContent | None:
        for source in sources:
            record = await self._store.find_feedback(target, feed.feedback_criteria, source)
            if record is None:
                continue
            content = record.content_for(step)
            if content:
                logger.debug(
                    "[Cache] Hit %s/%s for %s %s (source=%s)",
                    feed.feedback_criteria,
                    step.value,
                    target.kind,
                    target.id,
                    source.value,
                )
                return CachedContent(content=content, source=source)
        return None

    async def _find_segments_content(self, submission: Submission) -> CachedContent | None:
        segments = await self._store.find_segments(submission.id)
        if not segments:
            return None
        logger.debug(
            "[Cache] Reusing %d segments for essay %s", len(segments), submission.id
        )
        return CachedContent(
            content=render_segments(segments),
            segment_count=len(segments),
        )
