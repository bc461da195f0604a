"""Custom exception hierarchy for the writing feedback service."""

from errors.exceptions import (
    FeedbackPipelineError,
    GenerationError,
    MalformedSegmentationOutput,
    MissingSegmentTarget,
    NotConfiguredError,
    SubmissionNotFoundError,
)

__all__ = [
    "FeedbackPipelineError",
    "GenerationError",
    "MalformedSegmentationOutput",
    "MissingSegmentTarget",
    "NotConfiguredError",
    "SubmissionNotFoundError",
]
