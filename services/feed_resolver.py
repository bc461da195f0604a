"""Feed configuration loading and per-essay-type resolution.

Feeds are stored one JSON file per essay type under ``data/feeds/``
(``task-2.json`` holds every feed configured for Task 2 essays).  The
resolver hands the orchestrator an ordered, bounded list and refuses to
start a session for an essay type with nothing configured.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from functools import lru_cache
from pathlib import Path

from pydantic import ValidationError

from errors.exceptions import NotConfiguredError
from models.feed import FeedDefinition

logger = logging.getLogger(__name__)

MAX_FEEDS_PER_SESSION = 50


# ── Sources ──────────────────────────────────────────────────


class FeedSource(ABC):
    """Where feed definitions come from."""

    @abstractmethod
    def list_feeds(self, essay_type: str) -> list[FeedDefinition]:
        """All feeds configured for *essay_type*, in any order."""
        ...


class InMemoryFeedSource(FeedSource):
    """Feeds held in a dict keyed by essay type."""

    def __init__(self, feeds: dict[str, list[FeedDefinition]] | None = None):
        self._feeds: dict[str, list[FeedDefinition]] = dict(feeds or {})

    def list_feeds(self, essay_type: str) -> list[FeedDefinition]:
        return list(self._feeds.get(essay_type, []))


@lru_cache(maxsize=32)
def _load_feed_file(path: str) -> tuple[FeedDefinition, ...]:
    """Parse one feed file; invalid entries are logged and dropped."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Failed to load feed file %s: %s", path, e)
        return ()

    entries = data.get("feeds", []) if isinstance(data, dict) else data
    feeds: list[FeedDefinition] = []
    for entry in entries:
        try:
            feeds.append(FeedDefinition.model_validate(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid feed %s in %s: %s",
                entry.get("id") if isinstance(entry, dict) else "?",
                path,
                e.errors()[0]["msg"] if e.errors() else e,
            )
    return tuple(feeds)


class JsonFeedSource(FeedSource):
    """Feeds loaded from ``<feeds_dir>/<essay_type>.json`` (cached per file)."""

    def __init__(self, feeds_dir: str | Path):
        self._dir = Path(feeds_dir)

    def list_feeds(self, essay_type: str) -> list[FeedDefinition]:
        file_path = self._dir / f"{essay_type.lower()}.json"
        if not file_path.exists():
            logger.warning("Feed file not found for essay type: %s", essay_type)
            return []
        return list(_load_feed_file(str(file_path)))


# ── Resolver ─────────────────────────────────────────────────


class FeedResolver:
    """Ordered feed list for one streaming session."""

    def __init__(self, source: FeedSource, max_feeds: int = MAX_FEEDS_PER_SESSION):
        self._source = source
        self._max_feeds = max_feeds

    def resolve(self, essay_type: str) -> list[FeedDefinition]:
        """Feeds for *essay_type* sorted by ``process_order``, capped.

        Raises:
            NotConfiguredError: no feeds exist for *essay_type*.
        """
        feeds = self._source.list_feeds(essay_type)
        if not feeds:
            raise NotConfiguredError(essay_type)

        # sorted() is stable, so equal process_order keeps configuration order
        ordered = sorted(feeds, key=lambda f: f.process_order)
        if len(ordered) > self._max_feeds:
            logger.warning(
                "[Feeds] %d feeds configured for %s, capping at %d",
                len(ordered),
                essay_type,
                self._max_feeds,
            )
        return ordered[: self._max_feeds]
