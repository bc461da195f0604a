"""Feedback store: submissions, segments and feedback records.

Provides an abstract interface with an in-memory implementation (tests,
single-instance deployments) and a Redis implementation (multi-worker).

Concurrency contract shared by both backends: ``upsert_feedback`` only
fills content fields that are still empty.  Two sessions racing on the same
step both compute it, but only the first write lands; the second caller gets
the stored record back and can see its own content was not used.
``create_segments`` follows the same rule for a submission's segments: it
writes only when none exist, and a losing caller gets the stored list.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from models.feed import StepKind
from models.feedback import FeedbackRecord, FeedbackTarget, Source
from models.submission import Segment, Submission

logger = logging.getLogger(__name__)

_CONTENT_FIELDS = tuple(step.content_field for step in StepKind)


# ── Abstract Interface ───────────────────────────────────────


class FeedbackStore(ABC):
    """Abstract feedback store: implement for different backends."""

    @abstractmethod
    async def save_submission(self, submission: Submission) -> None:
        """Persist a submission (create or replace)."""
        ...

    @abstractmethod
    async def find_submission_by_uuid(self, uuid: str) -> Submission | None:
        """Look up a submission by its external UUID."""
        ...

    @abstractmethod
    async def find_segments(self, essay_id: int) -> list[Segment]:
        """All segments of a submission, ordered by ``order``."""
        ...

    @abstractmethod
    async def create_segment(self, segment: Segment) -> Segment:
        """Store a new segment and return it with its assigned ``id``."""
        ...

    @abstractmethod
    async def create_segments(
        self, essay_id: int, segments: list[Segment]
    ) -> tuple[list[Segment], bool]:
        """Store *segments* only if the submission has none yet.

        Returns the submission's segments as stored and whether this call
        wrote them.  A caller that loses the race gets the winner's segments
        and ``False``.
        """
        ...

    @abstractmethod
    async def find_feedback(
        self, target: FeedbackTarget, criteria: str, source: Source
    ) -> FeedbackRecord | None:
        """The single record for (target, criteria, source), if any."""
        ...

    @abstractmethod
    async def list_feedback(
        self, target: FeedbackTarget, criteria: str, *, newest_first: bool = True
    ) -> list[FeedbackRecord]:
        """Every record for (target, criteria) across sources, by ``created_at``."""
        ...

    @abstractmethod
    async def upsert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        """Create the record, or fill the empty content fields of the existing one.

        Non-empty stored fields are never overwritten.  Returns the record
        as stored after the write.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None

    async def ping(self) -> bool:
        return True


# ── In-Memory Implementation ────────────────────────────────


class InMemoryFeedbackStore(FeedbackStore):
    """Dict-backed store.

    Each method runs without awaiting in the middle, so the check-and-fill
    in ``upsert_feedback`` cannot interleave with another session on the
    same event loop.
    """

    def __init__(self) -> None:
        self._submissions: dict[str, Submission] = {}
        self._segments: dict[int, list[Segment]] = {}
        self._feedback: dict[tuple[str, int, str, str], FeedbackRecord] = {}
        self._segment_ids = itertools.count(1)
        self._feedback_ids = itertools.count(1)

    @staticmethod
    def _key(target: FeedbackTarget, criteria: str, source: Source) -> tuple[str, int, str, str]:
        return (target.kind, target.id, criteria, Source(source).value)

    async def save_submission(self, submission: Submission) -> None:
        self._submissions[submission.uuid] = submission.model_copy()

    async def find_submission_by_uuid(self, uuid: str) -> Submission | None:
        submission = self._submissions.get(uuid)
        return submission.model_copy() if submission else None

    async def find_segments(self, essay_id: int) -> list[Segment]:
        segments = self._segments.get(essay_id, [])
        return [s.model_copy() for s in sorted(segments, key=lambda s: s.order)]

    async def create_segment(self, segment: Segment) -> Segment:
        stored = segment.model_copy(update={"id": next(self._segment_ids)})
        self._segments.setdefault(segment.essay_id, []).append(stored)
        return stored.model_copy()

    async def create_segments(
        self, essay_id: int, segments: list[Segment]
    ) -> tuple[list[Segment], bool]:
        if self._segments.get(essay_id):
            return await self.find_segments(essay_id), False
        self._segments[essay_id] = [
            s.model_copy(update={"id": next(self._segment_ids), "essay_id": essay_id})
            for s in segments
        ]
        logger.debug("[Store] Created %d segments for essay %s", len(segments), essay_id)
        return await self.find_segments(essay_id), True

    async def find_feedback(
        self, target: FeedbackTarget, criteria: str, source: Source
    ) -> FeedbackRecord | None:
        record = self._feedback.get(self._key(target, criteria, source))
        return record.model_copy() if record else None

    async def list_feedback(
        self, target: FeedbackTarget, criteria: str, *, newest_first: bool = True
    ) -> list[FeedbackRecord]:
        records = [
            r.model_copy()
            for (kind, target_id, crit, _), r in self._feedback.items()
            if kind == target.kind and target_id == target.id and crit == criteria
        ]
        records.sort(key=lambda r: (r.created_at, r.id or 0), reverse=newest_first)
        return records

    async def upsert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        key = self._key(record.target, record.feedback_criteria, record.source)
        existing = self._feedback.get(key)
        if existing is None:
            stored = record.model_copy(update={"id": next(self._feedback_ids)})
            self._feedback[key] = stored
            logger.debug("[Store] Created feedback %s for %s", stored.id, key)
            return stored.model_copy()

        updates = {
            field: getattr(record, field)
            for field in _CONTENT_FIELDS
            if getattr(record, field) and not getattr(existing, field)
        }
        if updates:
            updates["updated_at"] = datetime.now(timezone.utc)
            existing = existing.model_copy(update=updates)
            self._feedback[key] = existing
            logger.debug("[Store] Filled %s on feedback %s", sorted(updates), existing.id)
        return existing.model_copy()

    @property
    def size(self) -> int:
        """Number of feedback records currently stored."""
        return len(self._feedback)


# ── Redis Implementation ─────────────────────────────────────


class RedisFeedbackStore(FeedbackStore):
    """Redis-backed store for multi-worker deployments.

    Feedback records are hashes keyed by (target, criteria, source); content
    fields are written with ``HSETNX`` so a populated field is never
    replaced, whichever worker gets there second.
    """

    _SUBMISSION = "essay:"
    _SEGMENTS = "segments:"
    _FEEDBACK = "feedback:"
    _FEEDBACK_INDEX = "feedback-sources:"
    _SEQ_SEGMENT = "seq:segment"
    _SEQ_FEEDBACK = "seq:feedback"

    def __init__(self, redis_url: str):
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )

    def _feedback_key(self, target: FeedbackTarget, criteria: str, source: Source) -> str:
        return f"{self._FEEDBACK}{target.kind}:{target.id}:{criteria}:{Source(source).value}"

    def _index_key(self, target: FeedbackTarget, criteria: str) -> str:
        return f"{self._FEEDBACK_INDEX}{target.kind}:{target.id}:{criteria}"

    @staticmethod
    def _record_from_hash(data: dict[str, str]) -> FeedbackRecord:
        return FeedbackRecord(
            id=int(data["id"]),
            target=FeedbackTarget(kind=data["target_kind"], id=int(data["target_id"])),
            feedback_criteria=data["feedback_criteria"],
            source=Source(data["source"]),
            feedback_language=data.get("feedback_language", "en"),
            cot_content=data.get("cot_content", ""),
            score_content=data.get("score_content", ""),
            feedback_content=data.get("feedback_content", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data.get("updated_at", data["created_at"])),
        )

    async def save_submission(self, submission: Submission) -> None:
        await self._redis.set(f"{self._SUBMISSION}{submission.uuid}", submission.model_dump_json())

    async def find_submission_by_uuid(self, uuid: str) -> Submission | None:
        data = await self._redis.get(f"{self._SUBMISSION}{uuid}")
        if data is None:
            return None
        return Submission.model_validate_json(data)

    async def find_segments(self, essay_id: int) -> list[Segment]:
        raw = await self._redis.lrange(f"{self._SEGMENTS}{essay_id}", 0, -1)
        segments = [Segment.model_validate_json(item) for item in raw]
        return sorted(segments, key=lambda s: s.order)

    async def create_segment(self, segment: Segment) -> Segment:
        segment_id = await self._redis.incr(self._SEQ_SEGMENT)
        stored = segment.model_copy(update={"id": segment_id})
        await self._redis.rpush(f"{self._SEGMENTS}{segment.essay_id}", stored.model_dump_json())
        return stored

    async def create_segments(
        self, essay_id: int, segments: list[Segment]
    ) -> tuple[list[Segment], bool]:
        from redis.exceptions import WatchError

        key = f"{self._SEGMENTS}{essay_id}"
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    # WATCH aborts our MULTI if another worker pushes first
                    await pipe.watch(key)
                    if await pipe.llen(key):
                        await pipe.reset()
                        return await self.find_segments(essay_id), False

                    last_id = await pipe.incrby(self._SEQ_SEGMENT, len(segments))
                    first_id = last_id - len(segments) + 1
                    stored = [
                        s.model_copy(update={"id": first_id + i, "essay_id": essay_id})
                        for i, s in enumerate(segments)
                    ]
                    pipe.multi()
                    pipe.rpush(key, *(s.model_dump_json() for s in stored))
                    await pipe.execute()
                    logger.debug("[Store] Created %d segments for essay %s", len(stored), essay_id)
                    return sorted(stored, key=lambda s: s.order), True
                except WatchError:
                    logger.debug("[Store] Segment write for essay %s raced, retrying", essay_id)
                    continue

    async def find_feedback(
        self, target: FeedbackTarget, criteria: str, source: Source
    ) -> FeedbackRecord | None:
        data = await self._redis.hgetall(self._feedback_key(target, criteria, source))
        if not data:
            return None
        return self._record_from_hash(data)

    async def list_feedback(
        self, target: FeedbackTarget, criteria: str, *, newest_first: bool = True
    ) -> list[FeedbackRecord]:
        sources = await self._redis.smembers(self._index_key(target, criteria))
        records = []
        for source in sources:
            record = await self.find_feedback(target, criteria, Source(source))
            if record is not None:
                records.append(record)
        records.sort(key=lambda r: (r.created_at, r.id or 0), reverse=newest_first)
        return records

    async def upsert_feedback(self, record: FeedbackRecord) -> FeedbackRecord:
        key = self._feedback_key(record.target, record.feedback_criteria, record.source)

        if not await self._redis.exists(key):
            new_id = await self._redis.incr(self._SEQ_FEEDBACK)
            # HSETNX on "id" decides which racing writer creates the record
            await self._redis.hsetnx(key, "id", new_id)

        now = datetime.now(timezone.utc).isoformat()
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.hsetnx(key, "target_kind", record.target.kind)
            pipe.hsetnx(key, "target_id", record.target.id)
            pipe.hsetnx(key, "feedback_criteria", record.feedback_criteria)
            pipe.hsetnx(key, "source", Source(record.source).value)
            pipe.hsetnx(key, "feedback_language", record.feedback_language)
            pipe.hsetnx(key, "created_at", record.created_at.isoformat())
            for field in _CONTENT_FIELDS:
                value = getattr(record, field)
                if value:
                    pipe.hsetnx(key, field, value)
            pipe.hset(key, "updated_at", now)
            pipe.sadd(
                self._index_key(record.target, record.feedback_criteria),
                Source(record.source).value,
            )
            await pipe.execute()

        stored = await self.find_feedback(record.target, record.feedback_criteria, record.source)
        if stored is None:
            raise RuntimeError(f"Feedback record vanished after write: {key}")
        return stored

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            return False


# ── Module-level Singleton ───────────────────────────────────

_store: FeedbackStore | None = None


def get_feedback_store() -> FeedbackStore:
    """Get the singleton feedback store instance."""
    global _store
    if _store is None:
        from config.settings import get_settings

        settings = get_settings()
        if settings.feedback_store_type == "redis" and settings.redis_url:
            _store = RedisFeedbackStore(redis_url=settings.redis_url)
            logger.info("Initialized RedisFeedbackStore")
        else:
            _store = InMemoryFeedbackStore()
            logger.info("Initialized InMemoryFeedbackStore")
    return _store
