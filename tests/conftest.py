"""Shared pytest fixtures for the feedback pipeline tests.

Provides:
- ``store``: Fresh InMemoryFeedbackStore per test
- ``submission``: A Task 2 essay already saved in ``store``
- ``generator``: FakeGenerator that records every generation call
- ``make_feed``: Factory for FeedDefinition objects
"""

from __future__ import annotations

import json

import pytest

from models.feed import FeedDefinition, StepKind
from models.submission import Submission
from services.feed_resolver import FeedResolver, InMemoryFeedSource
from services.feedback_store import InMemoryFeedbackStore
from services.generation import FeedbackGenerator, GenerationContext

ESSAY_UUID = "essay-uuid-001"

ESSAY_TEXT = (
    "Some people believe that university education should be free.\n\n"
    "Firstly, free education widens access.\n\n"
    "Secondly, it benefits the economy.\n\n"
    "In conclusion, I agree that it should be free."
)

SEGMENTATION_JSON = json.dumps(
    [
        {"text": "Some people believe that university education should be free.", "type": "introduction"},
        {"text": "Firstly, free education widens access.", "type": "main point"},
        {"text": "Secondly, it benefits the economy.", "type": "main-point"},
        {"text": "In conclusion, I agree that it should be free.", "type": "conclusion"},
    ]
)


class FakeGenerator(FeedbackGenerator):
    """Deterministic generator.

    ``responses`` maps ``(feed_id, step_value)`` to the text to return; an
    ``Exception`` value is raised instead.  Anything else gets a canned reply.
    """

    def __init__(self, responses: dict | None = None):
        self.responses = dict(responses or {})
        self.calls: list[tuple[int, str, int | None]] = []
        self.contexts: list[GenerationContext] = []

    async def generate(self, step: StepKind, feed: FeedDefinition, context: GenerationContext) -> str:
        segment_order = context.segment.order if context.segment else None
        self.calls.append((feed.id, step.value, segment_order))
        self.contexts.append(context)
        response = self.responses.get((feed.id, step.value))
        if isinstance(response, Exception):
            raise response
        if response is not None:
            return response
        if segment_order is not None:
            return f"{step.value} for feed {feed.id} on segment {segment_order}"
        return f"{step.value} for feed {feed.id}"


def build_feed(
    feed_id: int,
    apply_to: str = "essay",
    process_order: int | None = None,
    criteria: str = "",
    steps: list[str] | None = None,
    **meta,
) -> FeedDefinition:
    data = {
        "id": feed_id,
        "feed_name": f"feed-{feed_id}",
        "feed_title": f"Feed {feed_id}",
        "process_order": feed_id if process_order is None else process_order,
        "apply_to": apply_to,
        "feedback_criteria": criteria or f"criteria-{feed_id}",
        "meta": meta,
    }
    if steps is not None:
        data["steps"] = steps
    return FeedDefinition.model_validate(data)


def build_resolver(feeds: list[FeedDefinition], essay_type: str = "task-2") -> FeedResolver:
    return FeedResolver(InMemoryFeedSource({essay_type: feeds}))


@pytest.fixture
def store() -> InMemoryFeedbackStore:
    """Fresh feedback store: isolated per test."""
    return InMemoryFeedbackStore()


@pytest.fixture
async def submission(store) -> Submission:
    """Task 2 essay saved in ``store``."""
    essay = Submission(
        id=1,
        uuid=ESSAY_UUID,
        essay_type="task-2",
        question="Should university education be free?",
        content=ESSAY_TEXT,
    )
    await store.save_submission(essay)
    return essay


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator({(1, "feedback"): SEGMENTATION_JSON})


@pytest.fixture
def make_feed():
    return build_feed
