"""Persisting step output with the read-then-conditionally-write rule.

A step's content lands in the matching feedback record only if that field
is still empty.  When another session got there first the new content is
discarded and the stored value is reported instead, exactly as a cache hit
would be.  The paragraph feed writes segments rather than a record, and
only for a submission that has none yet.
"""

from __future__ import annotations

import logging

from errors.exceptions import MalformedSegmentationOutput, MissingSegmentTarget
from models.feed import FeedDefinition, StepKind
from models.feedback import FeedbackRecord, FeedbackTarget, SaveOutcome, Source
from models.submission import Segment, Submission
from services.feedback_store import FeedbackStore
from services.segment_extractor import (
    SegmentDraft,
    parse_markdown_output,
    parse_segmentation_output,
)
from services.step_cache import render_segments

logger = logging.getLogger(__name__)


class FeedbackPersistence:
    def __init__(self, store: FeedbackStore):
        self._store = store

    async def save_step_content(
        self,
        step: StepKind,
        feed: FeedDefinition,
        submission: Submission,
        content: str,
        *,
        segment: Segment | None = None,
        source: Source = Source.AI,
        language: str = "en",
    ) -> SaveOutcome:
        """Fill the ``step`` field of the (target, criteria, source) record.

        Raises:
            MissingSegmentTarget: a segment-scoped feed without a stored segment.
        """
        target = self._target_for(feed, submission, segment)
        criteria = feed.feedback_criteria

        existing = await self._store.find_feedback(target, criteria, source)
        if existing is not None and existing.content_for(step):
            logger.info(
                "[Feedback] %s/%s already filled on %s %s, keeping stored content",
                criteria,
                step.value,
                target.kind,
                target.id,
            )
            return SaveOutcome(
                status="skipped",
                content=existing.content_for(step),
                source=source,
                record_id=existing.id,
            )

        record = FeedbackRecord(
            target=target,
            feedback_criteria=criteria,
            source=source,
            feedback_language=language,
            **{step.content_field: content},
        )
        stored = await self._store.upsert_feedback(record)

        # Lost a race between our read and the store's write
        if stored.content_for(step) != content:
            return SaveOutcome(
                status="skipped",
                content=stored.content_for(step),
                source=source,
                record_id=stored.id,
            )
        return SaveOutcome(
            status="updated" if existing is not None else "created",
            content=content,
            source=source,
            record_id=stored.id,
        )

    async def save_paragraph_output(
        self, feed: FeedDefinition, submission: Submission, output: str
    ) -> SaveOutcome | None:
        """Turn the paragraph feed's output into stored segments.

        Returns ``None`` (no-op) when the output cannot be parsed.  When the
        submission already has segments nothing is written and the stored
        segments are reported as ``skipped``.
        """
        existing = await self._store.find_segments(submission.id)
        if existing:
            logger.info(
                "[Feedback] Essay %s already has %d segments, not duplicating",
                submission.id,
                len(existing),
            )
            return SaveOutcome(
                status="skipped",
                content=render_segments(existing),
                segment_count=len(existing),
            )

        try:
            drafts = self._parse(feed, output)
        except MalformedSegmentationOutput as e:
            logger.warning(
                "[Feedback] Ignoring malformed segmentation for essay %s: %s",
                submission.id,
                e.message,
            )
            return None

        stored, created = await self._store.create_segments(
            submission.id,
            [
                Segment(
                    essay_id=submission.id,
                    type=draft.type,
                    title=draft.title,
                    content=draft.content,
                    order=draft.order,
                )
                for draft in drafts
            ],
        )
        if not created:
            logger.info(
                "[Feedback] Another session segmented essay %s first, keeping its %d segments",
                submission.id,
                len(stored),
            )
            return SaveOutcome(
                status="skipped",
                content=render_segments(stored),
                segment_count=len(stored),
            )

        logger.info("[Feedback] Created %d segments for essay %s", len(stored), submission.id)
        return SaveOutcome(
            status="created",
            content=render_segments(stored),
            segment_count=len(stored),
        )

    @staticmethod
    def _parse(feed: FeedDefinition, output: str) -> list[SegmentDraft]:
        if feed.meta.get("segment_format") == "markdown":
            return parse_markdown_output(output)
        return parse_segmentation_output(output)

    @staticmethod
    def _target_for(
        feed: FeedDefinition, submission: Submission, segment: Segment | None
    ) -> FeedbackTarget:
        scope = feed.apply_to
        if scope.kind == "essay":
            return FeedbackTarget.essay(submission.id)
        if scope.kind == "segment":
            if segment is None or segment.id is None:
                raise MissingSegmentTarget(scope.apply_to)
            return FeedbackTarget.segment(segment.id)
        if scope.kind == "paragraph":
            raise ValueError("Paragraph output is stored as segments, not records")
        raise ValueError(f"Unhandled feed scope: {scope.kind}")
