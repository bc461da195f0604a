"""Feedback Orchestrator: drives one feedback streaming session.

For every configured feed, in ``process_order``, and for each of its
sub-steps and targets the orchestrator:

1. Asks the cache gate for content a previous run produced.
2. Otherwise generates the content and persists it (fill-empty-only).
3. Yields one ``StepOk`` as soon as that unit is done.

Tutor guidance (``guide_score`` / ``guide_feedback``) applies only to the feed
named by ``request.feed_id``.  That feed still generates, with the guidance
in its prompt; its output is stored as the human record, and ``guide_score``
stands in for the extracted score.

A generation failure or any unexpected error ends the session with a single
``StepErr``; nothing emitted before it is retracted.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable

from errors.exceptions import (
    FeedbackPipelineError,
    GenerationError,
    MissingSegmentTarget,
    SubmissionNotFoundError,
)
from models.errors import error_details_from_exception
from models.feed import FeedDefinition, StepKind
from models.feedback import Source
from models.request import FeedbackStreamRequest
from models.sse_events import FeedbackStepPayload, StepErr, StepOk, StepResult
from models.submission import Segment, Submission
from services.feed_resolver import FeedResolver
from services.feedback_persistence import FeedbackPersistence
from services.feedback_store import FeedbackStore
from services.generation import FeedbackGenerator, GenerationContext
from services.step_cache import StepCache

logger = logging.getLogger(__name__)

DEFAULT_SCORE_REGEX = r"\d+"

IsDisconnected = Callable[[], Awaitable[bool]]


class SessionPhase(str, Enum):
    INIT = "init"
    RESOLVING_FEEDS = "resolving_feeds"
    RUNNING_STEP = "running_step"
    EMITTING = "emitting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class SessionState:
    """Where a session is; only used for logging."""

    uuid: str
    phase: SessionPhase = SessionPhase.INIT
    reason: str = ""
    emitted: int = 0

    def advance(self, phase: SessionPhase, reason: str = "") -> None:
        self.phase = phase
        self.reason = reason
        logger.debug("[Feedback] Session %s → %s %s", self.uuid, phase.value, reason)


class _ClientDisconnected(Exception):
    pass


def extract_score(text: str, pattern: str | None = None) -> str:
    """First match of *pattern* in *text*, else the trimmed text."""
    try:
        match = re.search(pattern or DEFAULT_SCORE_REGEX, text)
    except re.error:
        logger.warning("[Feedback] Invalid score_regex %r, using default", pattern)
        match = re.search(DEFAULT_SCORE_REGEX, text)
    return match.group(0) if match else text.strip()


class FeedbackOrchestrator:
    def __init__(
        self,
        store: FeedbackStore,
        resolver: FeedResolver,
        generator: FeedbackGenerator,
    ):
        self._store = store
        self._resolver = resolver
        self._generator = generator
        self._cache = StepCache(store)
        self._persistence = FeedbackPersistence(store)

    async def stream(
        self,
        request: FeedbackStreamRequest,
        is_disconnected: IsDisconnected | None = None,
    ) -> AsyncIterator[StepResult]:
        """Run the session for ``request.uuid``, yielding results in order."""
        state = SessionState(uuid=request.uuid)
        try:
            submission = await self._store.find_submission_by_uuid(request.uuid)
            if submission is None:
                raise SubmissionNotFoundError(request.uuid)

            state.advance(SessionPhase.RESOLVING_FEEDS)
            feeds = self._resolver.resolve(submission.essay_type)
            logger.info(
                "[Feedback] Session %s: %d feeds for %s",
                request.uuid,
                len(feeds),
                submission.essay_type,
            )

            for feed in feeds:
                try:
                    targets = await self._targets_for(feed, submission, request.segment_order)
                except MissingSegmentTarget as e:
                    logger.info("[Feedback] Skipping feed %s: %s", feed.id, e.message)
                    continue

                for step in feed.steps:
                    for segment in targets:
                        state.advance(SessionPhase.RUNNING_STEP, f"feed={feed.id} step={step.value}")
                        payload = await self._run_step(
                            step, feed, submission, segment, request, is_disconnected
                        )
                        if payload is None:
                            continue
                        state.advance(SessionPhase.EMITTING)
                        state.emitted += 1
                        yield StepOk(payload=payload)

        except _ClientDisconnected:
            state.advance(SessionPhase.FAILED, "client_disconnected")
            logger.info(
                "[Feedback] Session %s: client disconnected after %d results",
                request.uuid,
                state.emitted,
            )
            return
        except FeedbackPipelineError as e:
            state.advance(SessionPhase.FAILED, e.code)
            logger.warning("[Feedback] Session %s failed: %s", request.uuid, e.message)
            code, details = error_details_from_exception(e)
            yield StepErr(code=code, error=details)
            return
        except Exception as e:
            state.advance(SessionPhase.FAILED, "internal_error")
            logger.exception("[Feedback] Session %s crashed", request.uuid)
            code, details = error_details_from_exception(e)
            yield StepErr(code=code, error=details)
            return

        state.advance(SessionPhase.DONE)
        logger.info("[Feedback] Session %s done: %d results", request.uuid, state.emitted)

    async def _targets_for(
        self,
        feed: FeedDefinition,
        submission: Submission,
        segment_order: int | None,
    ) -> list[Segment | None]:
        """Targets of *feed*: ``[None]`` for the submission itself, else segments.

        Raises:
            MissingSegmentTarget: a segment-scoped feed with no matching segment.
        """
        scope = feed.apply_to
        if scope.kind in ("essay", "paragraph"):
            return [None]
        if scope.kind == "segment":
            segments = [
                s
                for s in await self._store.find_segments(submission.id)
                if s.type == scope.segment_kind
                and (segment_order is None or s.order == segment_order)
            ]
            if not segments:
                raise MissingSegmentTarget(scope.apply_to, segment_order)
            return segments
        raise ValueError(f"Unhandled feed scope: {scope.kind}")

    async def _run_step(
        self,
        step: StepKind,
        feed: FeedDefinition,
        submission: Submission,
        segment: Segment | None,
        request: FeedbackStreamRequest,
        is_disconnected: IsDisconnected | None,
    ) -> FeedbackStepPayload | None:
        """One (feed, step, target) unit; ``None`` means nothing to emit."""
        guided = feed.apply_to.kind != "paragraph" and request.guides(feed.id)

        cached = await self._cache.get_existing_content(
            step, feed, submission, segment, human_only=guided
        )
        if cached is not None:
            return self._payload(
                feed,
                step,
                cached.content,
                cached.source,
                segment,
                reused=True,
                segment_count=cached.segment_count,
            )

        if is_disconnected is not None and await is_disconnected():
            raise _ClientDisconnected()

        context = GenerationContext(
            submission=submission,
            segment=segment,
            language=request.language,
            feedback_style=request.feedback_style or feed.meta.get("style", ""),
            guide_score=request.guide_score if guided else "",
            guide_feedback=request.guide_feedback if guided else "",
        )
        try:
            content = await self._generator.generate(step, feed, context)
        except Exception as e:
            raise GenerationError(feed.id, step.value, e) from e

        if feed.apply_to.kind == "paragraph":
            if step is StepKind.CHAIN_OF_THOUGHT:
                return self._payload(feed, step, content, Source.AI, segment)
            outcome = await self._persistence.save_paragraph_output(feed, submission, content)
            if outcome is None:
                return None
        else:
            if step is StepKind.SCORING:
                content = extract_score(content, feed.meta.get("score_regex"))
                if guided and request.guide_score.strip():
                    content = request.guide_score.strip()
            outcome = await self._persistence.save_step_content(
                step,
                feed,
                submission,
                content,
                segment=segment,
                source=Source.HUMAN if guided else Source.AI,
                language=request.language,
            )

        return self._payload(
            feed,
            step,
            outcome.content,
            outcome.source,
            segment,
            reused=outcome.skipped,
            segment_count=outcome.segment_count,
        )

    @staticmethod
    def _payload(
        feed: FeedDefinition,
        step: StepKind,
        content: str,
        source: Source,
        segment: Segment | None,
        *,
        reused: bool = False,
        segment_count: int | None = None,
    ) -> FeedbackStepPayload:
        return FeedbackStepPayload(
            id=feed.id,
            process_order=feed.process_order,
            title=feed.feed_title,
            criteria=feed.feedback_criteria,
            apply_to=feed.apply_to.apply_to,
            step=step.value,
            content=content,
            source=source,
            reused=reused,
            segment_order=segment.order if segment else None,
            segment_count=segment_count,
        )
