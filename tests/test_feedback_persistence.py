"""Tests for FeedbackPersistence (fill-empty-only writes, segment creation)."""

from __future__ import annotations

import asyncio

import pytest

from errors.exceptions import MissingSegmentTarget
from models.feed import StepKind
from models.feedback import FeedbackRecord, FeedbackTarget, Source
from models.submission import Segment, SegmentKind
from services.feedback_persistence import FeedbackPersistence
from tests.conftest import SEGMENTATION_JSON, build_feed


# ── save_step_content ───────────────────────────────────────


class TestSaveStepContent:
    @pytest.mark.asyncio
    async def test_created_then_updated(self, store, submission):
        feed = build_feed(12, criteria="range-of-vocab", steps=["scoring", "feedback"])
        persistence = FeedbackPersistence(store)

        first = await persistence.save_step_content(StepKind.SCORING, feed, submission, "7")
        assert first.status == "created"
        second = await persistence.save_step_content(StepKind.FEEDBACK, feed, submission, "Nice words")
        assert second.status == "updated"
        assert second.record_id == first.record_id

        record = await store.find_feedback(FeedbackTarget.essay(submission.id), "range-of-vocab", Source.AI)
        assert record.score_content == "7"
        assert record.feedback_content == "Nice words"

    @pytest.mark.asyncio
    async def test_populated_field_is_skipped(self, store, submission):
        feed = build_feed(12, criteria="range-of-vocab")
        persistence = FeedbackPersistence(store)
        await persistence.save_step_content(StepKind.FEEDBACK, feed, submission, "first")

        outcome = await persistence.save_step_content(StepKind.FEEDBACK, feed, submission, "second")
        assert outcome.status == "skipped"
        assert outcome.skipped
        assert outcome.content == "first"

    @pytest.mark.asyncio
    async def test_concurrent_writer_wins(self, store, submission):
        """Another session fills the field between our read and our write."""
        feed = build_feed(12, criteria="range-of-vocab")
        persistence = FeedbackPersistence(store)
        real_find = store.find_feedback

        async def find_then_race(target, criteria, source):
            found = await real_find(target, criteria, source)
            await store.upsert_feedback(
                FeedbackRecord(target=target, feedback_criteria=criteria, source=source, feedback_content="theirs")
            )
            return found

        store.find_feedback = find_then_race
        outcome = await persistence.save_step_content(StepKind.FEEDBACK, feed, submission, "ours")
        assert outcome.status == "skipped"
        assert outcome.content == "theirs"

    @pytest.mark.asyncio
    async def test_human_source(self, store, submission):
        feed = build_feed(12, criteria="range-of-vocab")
        outcome = await FeedbackPersistence(store).save_step_content(
            StepKind.FEEDBACK, feed, submission, "Tutor note", source=Source.HUMAN, language="vi"
        )
        assert outcome.source == Source.HUMAN
        record = await store.find_feedback(FeedbackTarget.essay(submission.id), "range-of-vocab", Source.HUMAN)
        assert record.feedback_language == "vi"

    @pytest.mark.asyncio
    async def test_segment_scope_keys_by_segment(self, store, submission):
        feed = build_feed(21, apply_to="introduction", criteria="relevance")
        segment = await store.create_segment(
            Segment(essay_id=submission.id, type=SegmentKind.INTRODUCTION, title="Introduction", content="i", order=1)
        )
        await FeedbackPersistence(store).save_step_content(
            StepKind.FEEDBACK, feed, submission, "Relevant", segment=segment
        )
        record = await store.find_feedback(FeedbackTarget.segment(segment.id), "relevance", Source.AI)
        assert record.feedback_content == "Relevant"

    @pytest.mark.asyncio
    async def test_segment_scope_without_segment(self, store, submission):
        feed = build_feed(21, apply_to="introduction")
        with pytest.raises(MissingSegmentTarget):
            await FeedbackPersistence(store).save_step_content(StepKind.FEEDBACK, feed, submission, "x")


# ── save_paragraph_output ───────────────────────────────────


class TestSaveParagraphOutput:
    @pytest.mark.asyncio
    async def test_creates_segments(self, store, submission):
        feed = build_feed(1, apply_to="paragraph")
        outcome = await FeedbackPersistence(store).save_paragraph_output(feed, submission, SEGMENTATION_JSON)

        assert outcome.status == "created"
        assert outcome.segment_count == 4
        segments = await store.find_segments(submission.id)
        assert [s.type for s in segments] == [
            SegmentKind.INTRODUCTION,
            SegmentKind.MAIN_POINT,
            SegmentKind.MAIN_POINT,
            SegmentKind.CONCLUSION,
        ]
        assert outcome.content.startswith("# Introduction\n\n")

    @pytest.mark.asyncio
    async def test_existing_segments_are_kept(self, store, submission):
        feed = build_feed(1, apply_to="paragraph")
        persistence = FeedbackPersistence(store)
        await persistence.save_paragraph_output(feed, submission, SEGMENTATION_JSON)

        outcome = await persistence.save_paragraph_output(
            feed, submission, '[{"text": "Different.", "type": "introduction"}]'
        )
        assert outcome.status == "skipped"
        assert outcome.segment_count == 4
        assert len(await store.find_segments(submission.id)) == 4

    @pytest.mark.asyncio
    async def test_malformed_output_is_noop(self, store, submission):
        feed = build_feed(1, apply_to="paragraph")
        outcome = await FeedbackPersistence(store).save_paragraph_output(feed, submission, "Sorry, I can't.")
        assert outcome is None
        assert await store.find_segments(submission.id) == []

    @pytest.mark.asyncio
    async def test_markdown_format(self, store, submission):
        feed = build_feed(1, apply_to="paragraph", segment_format="markdown")
        raw = "# Paragraph - Opening\nIntroduction\nCities are crowded.\n\n---\n\n# Paragraph - End\nConclusion\nBan cars."
        outcome = await FeedbackPersistence(store).save_paragraph_output(feed, submission, raw)
        assert outcome.segment_count == 2
        segments = await store.find_segments(submission.id)
        assert [s.title for s in segments] == ["Introduction", "Conclusion"]

    @pytest.mark.asyncio
    async def test_interleaved_saves_create_segments_once(self, store, submission):
        real_find = store.find_segments

        async def slow_find(essay_id):
            segments = await real_find(essay_id)
            # Let the other session read before either one writes
            await asyncio.sleep(0)
            return segments

        store.find_segments = slow_find
        feed = build_feed(1, apply_to="paragraph")
        persistence = FeedbackPersistence(store)

        outcomes = await asyncio.gather(
            persistence.save_paragraph_output(feed, submission, SEGMENTATION_JSON),
            persistence.save_paragraph_output(feed, submission, SEGMENTATION_JSON),
        )

        assert sorted(o.status for o in outcomes) == ["created", "skipped"]
        assert all(o.segment_count == 4 for o in outcomes)
        segments = await real_find(submission.id)
        assert [s.order for s in segments] == [1, 2, 3, 4]
