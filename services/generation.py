"""Feedback generation: the external inference step behind every feed.

The orchestrator only depends on :class:`FeedbackGenerator`; tests plug in
fakes and the service ships :class:`LiteLLMFeedbackGenerator`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from pydantic import BaseModel

from config.llm_config import LLMConfig
from models.feed import FeedDefinition, StepKind
from models.submission import Segment, Submission
from services.llm_service import LLMService
from services.prompt_renderer import render_prompt

logger = logging.getLogger(__name__)


class GenerationContext(BaseModel):
    """Everything a prompt may refer to for one unit of work."""

    submission: Submission
    segment: Segment | None = None
    language: str = "en"
    feedback_style: str = ""
    guide_score: str = ""
    guide_feedback: str = ""

    def merge_values(self) -> dict[str, str]:
        """Values for the prompt merge tags."""
        return {
            "essay_content": self.submission.content,
            "question": self.submission.question,
            "segment_title": self.segment.title if self.segment else "",
            "segment_content": self.segment.content if self.segment else "",
            "feedback_style": self.feedback_style,
            "guide_score": self.guide_score,
            "guide_feedback": self.guide_feedback,
        }


class FeedbackGenerator(ABC):
    """Produces the text of one feed sub-step, or raises."""

    @abstractmethod
    async def generate(
        self, step: StepKind, feed: FeedDefinition, context: GenerationContext
    ) -> str:
        ...


def select_prompt(step: StepKind, feed: FeedDefinition, language: str) -> str:
    """Prompt template for *step*.

    ``meta.prompts[<step>]`` wins; otherwise the language prompt, with
    Vietnamese falling back to English when the feed has none.
    """
    prompts = feed.meta.get("prompts") or {}
    if prompts.get(step.value):
        return prompts[step.value]
    if language == "vi" and feed.meta.get("vietnamese_prompt"):
        return feed.meta["vietnamese_prompt"]
    return feed.meta.get("english_prompt", "")


class LiteLLMFeedbackGenerator(FeedbackGenerator):
    """Renders the feed prompt and sends it through :class:`LLMService`."""

    def __init__(self, config: LLMConfig | None = None):
        self._config = config

    def _service_for(self, feed: FeedDefinition) -> LLMService:
        config = LLMConfig.from_feed_meta(feed.meta)
        if self._config:
            config = self._config.merge(config)
        return LLMService(config=config)

    async def generate(
        self, step: StepKind, feed: FeedDefinition, context: GenerationContext
    ) -> str:
        template = select_prompt(step, feed, context.language)
        if not template:
            raise ValueError(f"Feed {feed.id} has no prompt for step '{step.value}'")

        prompt = render_prompt(template, context.merge_values())
        system = feed.meta.get("system_prompt", "")
        service = self._service_for(feed)
        logger.info(
            "[Feedback] Generating %s for feed %s with %s",
            step.value,
            feed.id,
            service.model,
        )
        return await service.complete(prompt, system=system)
