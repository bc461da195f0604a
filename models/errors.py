"""Structured, user-facing error details for the feedback stream.

Every error a client can see carries a title, a message and an optional
call-to-action (label + link) so the frontend can render recovery UI
instead of a raw failure code.
"""

from __future__ import annotations

from enum import Enum

from errors.exceptions import FeedbackPipelineError
from models.base import CamelModel


class ErrorCode(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    GENERATION_FAILED = "GENERATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetails(CamelModel):
    """Wire shape: ``{"title", "message", "ctaTitle", "ctaLink"}``."""

    title: str
    message: str
    cta_title: str = ""
    cta_link: str = ""


# code → (title, ctaTitle, ctaLink)
_ERROR_COPY: dict[ErrorCode, tuple[str, str, str]] = {
    ErrorCode.NOT_CONFIGURED: (
        "No Feedback Configured",
        "Contact Support",
        "#support",
    ),
    ErrorCode.SUBMISSION_NOT_FOUND: (
        "Essay Not Found",
        "Submit an Essay",
        "#new-essay",
    ),
    ErrorCode.GENERATION_FAILED: (
        "Error Processing Feedback",
        "Try Again",
        "#",
    ),
    ErrorCode.INTERNAL_ERROR: (
        "Something Went Wrong",
        "Try Again",
        "#",
    ),
}


def build_error_details(code: ErrorCode, message: str) -> ErrorDetails:
    """Build the user-facing error for *code* with a specific *message*."""
    title, cta_title, cta_link = _ERROR_COPY[code]
    return ErrorDetails(
        title=title,
        message=message,
        cta_title=cta_title,
        cta_link=cta_link,
    )


def error_details_from_exception(exc: BaseException) -> tuple[ErrorCode, ErrorDetails]:
    """Classify an exception raised inside a session.

    Pipeline errors keep their own code; anything else is ``INTERNAL_ERROR``.
    """
    if isinstance(exc, FeedbackPipelineError):
        try:
            code = ErrorCode(exc.code)
        except ValueError:
            code = ErrorCode.INTERNAL_ERROR
        return code, build_error_details(code, exc.message)
    return ErrorCode.INTERNAL_ERROR, build_error_details(
        ErrorCode.INTERNAL_ERROR, str(exc) or exc.__class__.__name__
    )
