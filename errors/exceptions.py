"""Domain-specific exceptions for the writing feedback pipeline.

These exceptions let the Orchestrator and API layers distinguish between
failure modes that end a session (surfaced as an SSE error event) and
failure modes that only skip a single step.
"""

from __future__ import annotations


class FeedbackPipelineError(Exception):
    """Base class for pipeline errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotConfiguredError(FeedbackPipelineError):
    """No feed definitions exist for the submission's essay type."""

    code = "NOT_CONFIGURED"

    def __init__(self, essay_type: str) -> None:
        self.essay_type = essay_type
        super().__init__(f"No feedback is configured for essay type '{essay_type}'")


class SubmissionNotFoundError(FeedbackPipelineError):
    """The requested submission UUID does not exist in the store."""

    code = "SUBMISSION_NOT_FOUND"

    def __init__(self, uuid: str) -> None:
        self.uuid = uuid
        super().__init__(f"Submission '{uuid}' not found")


class GenerationError(FeedbackPipelineError):
    """The external generation operation failed for a step.

    Ends the session: later feeds may depend on this step's output.
    """

    code = "GENERATION_FAILED"

    def __init__(self, feed_id: int | str, step: str, cause: BaseException) -> None:
        self.feed_id = feed_id
        self.step = step
        self.cause = cause
        super().__init__(f"Generating '{step}' for feed {feed_id} failed: {cause}")


class MalformedSegmentationOutput(FeedbackPipelineError):
    """Paragraph step output is not a usable list of segments.

    Never reaches the stream; the paragraph step becomes a no-op.
    """

    code = "MALFORMED_SEGMENTATION"


class MissingSegmentTarget(FeedbackPipelineError):
    """A segment-scoped feed ran but the submission has no matching segment."""

    code = "MISSING_SEGMENT"

    def __init__(self, segment_kind: str, segment_order: int | None = None) -> None:
        self.segment_kind = segment_kind
        self.segment_order = segment_order
        where = f" at order {segment_order}" if segment_order is not None else ""
        super().__init__(f"No '{segment_kind}' segment{where}")
