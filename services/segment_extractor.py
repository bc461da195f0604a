"""Segment extraction: split essay text into titled structural segments.

Two input shapes reach this module:

- Labelled text (``Introduction``, ``Topic Sentence``, ``Main Point 2``,
  ``Conclusion``, ``Body Paragraph 1``), optionally written as Markdown
  headings.  ``extract_segments`` never fails on it: unlabelled text comes
  back as a single segment.
- The paragraph feed's generation output: a JSON list of
  ``{"text", "type"}`` items (default), or the older Markdown layout of
  ``# Paragraph - <title>`` blocks separated by ``---``.  These parsers
  raise ``MalformedSegmentationOutput`` so the caller can turn the step
  into a no-op.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass

from errors.exceptions import MalformedSegmentationOutput
from models.submission import SegmentKind

logger = logging.getLogger(__name__)

PARAGRAPH_SEPARATOR = "\n\n---\n\n"

_LABEL = r"(?:Introduction|Topic Sentence|Main Point \d+|Conclusion|Body Paragraph \d+)"

# Mid-line label: follows sentence punctuation and is written as "Label:"
_INLINE_START = rf"(?<=[.!?])[ \t]+(?=[#*]*{_LABEL}[ \t*]*:)"

# A label at the start of a line (optionally behind heading/bold markers) or
# inline after a sentence owns everything up to the next heading, the next
# label, or end of input.
_SEGMENT_RE = re.compile(
    rf"(?:^|{_INLINE_START})[ \t#*]*(?P<title>{_LABEL})\b[ \t*:\-]*(?P<content>.*?)"
    rf"(?=^[ \t]*#|^[ \t*]*{_LABEL}\b|{_INLINE_START}|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_LIST_MARKER_RE = re.compile(r"^[\s*\-]+", re.MULTILINE)
_HEADING_RE = re.compile(r"#{1,6}\s+", re.MULTILINE)
_PARAGRAPH_ITEM_RE = re.compile(
    r"#*\s*Paragraph\s*-\s*(?P<title>.+)\s*(?P<content>[\s\S]+)", re.MULTILINE
)
_JSON_FENCE_RE = re.compile(r"^```(?:json)?\s*(?P<body>.*?)\s*```$", re.DOTALL)

_FALLBACK_TITLE = "Paragraph"
_TITLE_MAX_CHARS = 100
_SENTENCE_TERMINATORS = (".", "!", "?")

_KIND_TITLES = {
    SegmentKind.INTRODUCTION: "Introduction",
    SegmentKind.TOPIC_SENTENCE: "Topic Sentence",
    SegmentKind.CONCLUSION: "Conclusion",
}


@dataclass
class ExtractedSegment:
    title: str
    content: str


@dataclass
class SegmentDraft:
    """A segment ready to be stored (the store assigns ``id``)."""

    type: SegmentKind
    title: str
    content: str
    order: int


def _clean_block(text: str) -> str:
    text = _LIST_MARKER_RE.sub("", text)
    text = _HEADING_RE.sub("", text)
    return text.strip()


def extract_segments(text: str) -> list[ExtractedSegment]:
    """Split *text* on structural labels.

    Returns at least one segment for any input.
    """
    segments: list[ExtractedSegment] = []
    for match in _SEGMENT_RE.finditer(text):
        title = match.group("title").strip()
        content = _clean_block(match.group("content"))
        if not title or not content:
            continue
        segments.append(ExtractedSegment(title=title, content=content))

    if segments:
        return segments

    # No usable label: the whole text is one segment
    stripped = text.strip()
    first_line = stripped.split("\n", 1)[0].strip()
    if first_line and len(first_line) < _TITLE_MAX_CHARS and not first_line.endswith(
        _SENTENCE_TERMINATORS
    ):
        return [
            ExtractedSegment(
                title=first_line,
                content=stripped[len(first_line):].strip(),
            )
        ]
    return [ExtractedSegment(title=_FALLBACK_TITLE, content=stripped)]


def determine_segment_type(title: str) -> SegmentKind:
    """Infer the segment kind from a human-readable title."""
    lowered = title.lower()
    if "introduction" in lowered:
        return SegmentKind.INTRODUCTION
    if "conclusion" in lowered:
        return SegmentKind.CONCLUSION
    if "topic sentence" in lowered:
        return SegmentKind.TOPIC_SENTENCE
    if "main point" in lowered:
        return SegmentKind.MAIN_POINT
    return SegmentKind.UNKNOWN


def title_for(kind: SegmentKind, main_point_number: int, raw_type: str = "") -> str:
    """Readable title for a segment kind; main points are numbered."""
    if kind == SegmentKind.MAIN_POINT:
        return f"Main Point {main_point_number}"
    if kind in _KIND_TITLES:
        return _KIND_TITLES[kind]
    label = raw_type.replace("-", " ").replace("_", " ").strip()
    return label.title() if label else _FALLBACK_TITLE


# ── Paragraph feed output ────────────────────────────────────


def parse_segmentation_output(raw: str) -> list[SegmentDraft]:
    """Parse the JSON list a paragraph feed produces into ordered drafts.

    Raises:
        MalformedSegmentationOutput: *raw* is not a non-empty JSON list of
            objects with a non-empty ``text``.
    """
    body = raw.strip()
    fence = _JSON_FENCE_RE.match(body)
    if fence:
        body = fence.group("body")

    try:
        items = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise MalformedSegmentationOutput(f"Segmentation output is not JSON: {e}") from e

    if not isinstance(items, list) or not items:
        raise MalformedSegmentationOutput("Segmentation output is not a non-empty list")

    drafts: list[SegmentDraft] = []
    main_points = 0
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise MalformedSegmentationOutput(f"Item {index} is not an object")
        text = item.get("text")
        raw_type = item.get("type") or ""
        if not isinstance(text, str) or not text.strip() or not isinstance(raw_type, str):
            raise MalformedSegmentationOutput(f"Item {index} has no usable text/type")

        kind = SegmentKind.normalize(raw_type) if raw_type else SegmentKind.UNKNOWN
        if kind == SegmentKind.MAIN_POINT:
            main_points += 1
        drafts.append(
            SegmentDraft(
                type=kind,
                title=title_for(kind, main_points, raw_type),
                content=text.strip(),
                order=index,
            )
        )
    return drafts


def parse_markdown_output(raw: str) -> list[SegmentDraft]:
    """Parse ``# Paragraph - <title>`` blocks separated by ``---``.

    Raises:
        MalformedSegmentationOutput: no block yields a usable segment.
    """
    drafts: list[SegmentDraft] = []
    for item in (part.strip() for part in raw.split(PARAGRAPH_SEPARATOR)):
        if not item:
            continue
        match = _PARAGRAPH_ITEM_RE.search(item)
        if not match:
            logger.debug("Skipping paragraph block without header: %.60s", item)
            continue
        for segment in extract_segments(match.group("content").strip()):
            if not segment.title or not segment.content:
                continue
            drafts.append(
                SegmentDraft(
                    type=determine_segment_type(segment.title),
                    title=segment.title,
                    content=segment.content,
                    order=len(drafts) + 1,
                )
            )

    if not drafts:
        raise MalformedSegmentationOutput("No paragraph blocks found in output")
    return drafts
