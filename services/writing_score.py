"""Overall writing band score from stored essay-level scoring feedback.

Each IELTS criterion is backed by several feed criteria (sub-criteria).
A criterion's band is the lowest score among its sub-criteria; the overall
score is the mean of the criterion bands rounded half-up to the nearest
0.5.  No overall score is given unless every sub-criterion has been scored.
"""

from __future__ import annotations

import logging
import math

from models.feedback import FeedbackTarget, Source
from models.score import OverallScore, ScoreType
from models.submission import Submission
from services.band_descriptor import BandDescriptor
from services.feedback_store import FeedbackStore

logger = logging.getLogger(__name__)

_LEXICAL_RESOURCE = [
    "range-of-vocab",
    "word-choice-collocation-style",
    "uncommon-vocab",
    "spelling-word-form-error",
]
_GRA = ["range-of-structures", "grammar-accuracy"]

TASK_1_CRITERIA: dict[str, list[str]] = {
    "lexicalResource": _LEXICAL_RESOURCE,
    "taskAchievement": [
        "use-data-accurately",
        "present-key-features",
        "use-data",
        "present-an-overview",
        "format",
    ],
    "coherenceCohesion": ["flow", "paragraphing-task-1", "referencing", "use-of-cohesive-devices"],
    "gra": _GRA,
}

TASK_2_CRITERIA: dict[str, list[str]] = {
    "lexicalResource": _LEXICAL_RESOURCE,
    "taskResponse": ["relevance", "clear-opinion", "idea-development"],
    "coherenceCohesion": ["flow", "paragraphing", "referencing", "use-of-cohesive-devices"],
    "gra": _GRA,
}


def criteria_for(essay_type: str) -> dict[str, list[str]] | None:
    if "task-1" in essay_type:
        return TASK_1_CRITERIA
    if "task-2" in essay_type:
        return TASK_2_CRITERIA
    return None


def round_half_up(value: float, step: float = 0.5) -> float:
    """6.75 → 7.0, 6.25 → 6.5 (``round`` would give 6.5 and 6.0)."""
    return math.floor(value / step + 0.5) * step


class WritingScore:
    def __init__(self, store: FeedbackStore, descriptor: BandDescriptor | None = None):
        self._store = store
        self._descriptor = descriptor or BandDescriptor()

    async def get_overall_score(
        self, submission: Submission, score_type: ScoreType | str = ScoreType.FINAL
    ) -> OverallScore | None:
        config = criteria_for(submission.essay_type)
        if config is None:
            return None

        newest_first = ScoreType(score_type) is ScoreType.FINAL
        target = FeedbackTarget.essay(submission.id)
        has_human = False
        bands: list[float] = []

        for criteria, sub_criteria in config.items():
            values: list[str] = []
            for feed_criteria in sub_criteria:
                records = await self._store.list_feedback(
                    target, feed_criteria, newest_first=newest_first
                )
                scored = next((r for r in records if r.score_content), None)
                if scored is None:
                    logger.debug(
                        "No %s score for %s on essay %s", score_type, feed_criteria, submission.id
                    )
                    return None
                values.append(scored.score_content)
                if scored.source == Source.HUMAN:
                    has_human = True

            band = self._descriptor.get_band_score(criteria, values)
            if band is not None:
                bands.append(band)

        if len(bands) != len(config):
            return None

        average = sum(bands) / len(bands)
        return OverallScore(
            score=round_half_up(average),
            source=Source.HUMAN if has_human else Source.AI,
        )
