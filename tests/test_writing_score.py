"""Tests for band descriptors and overall score aggregation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from models.feedback import FeedbackRecord, FeedbackTarget, Source
from models.score import ScoreType
from models.submission import Submission
from services.band_descriptor import BandDescriptor, to_number
from services.writing_score import TASK_1_CRITERIA, TASK_2_CRITERIA, WritingScore, criteria_for, round_half_up


async def _seed_scores(store, essay_id: int, bands: dict[str, str], source: Source = Source.AI, **record_kwargs):
    """Give every sub-criteria of each criterion the criterion's score."""
    for criteria, score in bands.items():
        for feed_criteria in TASK_2_CRITERIA[criteria]:
            await store.upsert_feedback(
                FeedbackRecord(
                    target=FeedbackTarget.essay(essay_id),
                    feedback_criteria=feed_criteria,
                    source=source,
                    score_content=score,
                    **record_kwargs,
                )
            )


# ── BandDescriptor ──────────────────────────────────────────


class TestBandDescriptor:
    def test_alias_mapping(self):
        descriptor = BandDescriptor()
        assert "Idea Development" in descriptor.get_band_descriptor_mapping("taskResponse")
        assert descriptor.get_band_descriptor_mapping("TR") == descriptor.get_band_descriptor_mapping("taskResponse")
        assert descriptor.get_band_descriptor_mapping("nope") == {}

    def test_get_score_by_label(self):
        result = BandDescriptor().get_score("coherenceCohesion", "Some lapses")
        assert result == {"score": 7, "color": "info"}

    def test_get_score_with_sub_criteria(self):
        result = BandDescriptor().get_score("LR", "Errors impede meaning", "Word choice, Collocation, Style")
        assert result == {"score": 4, "color": "error"}

    def test_unknown_label(self):
        assert BandDescriptor().get_score("LR", "Not a label")["score"] is None

    def test_band_is_lowest_numeric(self):
        assert BandDescriptor().get_band_score("gra", ["7", "6.5", "8"]) == 6.5

    def test_labels_and_open_scores(self):
        # "ALL parts of the question are answered" scores "6+", which is ignored
        band = BandDescriptor().get_band_score(
            "taskResponse",
            ["ALL parts of the question are answered", "Well extended and supported"],
        )
        assert band == 8

    def test_no_numeric_values(self):
        assert BandDescriptor().get_band_score("TR", ["6+", "garbage"]) is None

    def test_to_number(self):
        assert to_number("6.5") == 6.5
        assert to_number(7) == 7.0
        assert to_number("7 or less") is None
        assert to_number("nan") is None


# ── Aggregation helpers ─────────────────────────────────────


class TestHelpers:
    def test_criteria_by_essay_type(self):
        assert criteria_for("task-1") is TASK_1_CRITERIA
        assert criteria_for("task-2-ocr") is TASK_2_CRITERIA
        assert criteria_for("general") is None

    @pytest.mark.parametrize(
        "value,expected",
        [(6.75, 7.0), (6.25, 6.5), (6.1, 6.0), (6.5, 6.5), (7.0, 7.0)],
    )
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected


# ── WritingScore ────────────────────────────────────────────


class TestWritingScore:
    @pytest.mark.asyncio
    async def test_rounds_up_to_seven(self, store, submission):
        await _seed_scores(
            store, submission.id, {"lexicalResource": "7", "taskResponse": "7", "coherenceCohesion": "7", "gra": "6"}
        )
        result = await WritingScore(store).get_overall_score(submission)
        assert result.score == 7.0
        assert result.source == Source.AI

    @pytest.mark.asyncio
    async def test_rounds_up_to_six_and_a_half(self, store, submission):
        await _seed_scores(
            store, submission.id, {"lexicalResource": "7", "taskResponse": "6", "coherenceCohesion": "6", "gra": "6"}
        )
        result = await WritingScore(store).get_overall_score(submission)
        assert result.score == 6.5

    @pytest.mark.asyncio
    async def test_missing_sub_criteria(self, store, submission):
        await _seed_scores(store, submission.id, {"lexicalResource": "7", "taskResponse": "7", "coherenceCohesion": "7"})
        assert await WritingScore(store).get_overall_score(submission) is None

    @pytest.mark.asyncio
    async def test_lowest_sub_criteria_sets_band(self, store, submission):
        await _seed_scores(
            store, submission.id, {"lexicalResource": "8", "taskResponse": "8", "coherenceCohesion": "8", "gra": "8"}
        )
        await store.upsert_feedback(
            FeedbackRecord(
                target=FeedbackTarget.essay(submission.id),
                feedback_criteria="flow",
                source=Source.HUMAN,
                score_content="4",
            )
        )
        result = await WritingScore(store).get_overall_score(submission)
        # Human "4" is the newest flow score: CC band 4, mean 7.0
        assert result.score == 7.0
        assert result.source == Source.HUMAN

    @pytest.mark.asyncio
    async def test_initial_uses_oldest(self, store, submission):
        earlier = datetime.now(timezone.utc) - timedelta(days=1)
        await _seed_scores(
            store,
            submission.id,
            {"lexicalResource": "6", "taskResponse": "6", "coherenceCohesion": "6", "gra": "6"},
            created_at=earlier,
        )
        await _seed_scores(
            store,
            submission.id,
            {"lexicalResource": "8", "taskResponse": "8", "coherenceCohesion": "8", "gra": "8"},
            source=Source.HUMAN,
        )
        scorer = WritingScore(store)
        assert (await scorer.get_overall_score(submission, ScoreType.INITIAL)).score == 6.0
        final = await scorer.get_overall_score(submission, "final")
        assert final.score == 8.0
        assert final.source == Source.HUMAN

    @pytest.mark.asyncio
    async def test_unsupported_essay_type(self, store):
        essay = Submission(id=9, uuid="general", essay_type="general")
        assert await WritingScore(store).get_overall_score(essay) is None
