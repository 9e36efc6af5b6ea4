"""Story history: text-only records of generated stories."""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod

import redis

from shared.enums import StoryLanguage
from shared.models import StoryRecord

logger = logging.getLogger(__name__)


def _normalise_prompt(prompt: str) -> str:
    return " ".join(prompt.lower().split())


class StoryHistoryStore(ABC):
    """
    Where generated stories are remembered. Records never hold image data.

    Methods are blocking; async callers run them with ``asyncio.to_thread``.
    """

    @abstractmethod
    def save(self, record: StoryRecord) -> StoryRecord:
        """Persist a record and return the stored (text-only) copy."""

    @abstractmethod
    def get(self, story_id: str) -> StoryRecord | None: ...

    @abstractmethod
    def list(self, limit: int | None = None) -> list[StoryRecord]:
        """Most recent records first."""

    @abstractmethod
    def delete(self, story_id: str) -> None: ...

    def find(self, prompt: str, language: StoryLanguage | str) -> StoryRecord | None:
        """Latest record written for the same prompt and language, if any."""
        wanted = (_normalise_prompt(prompt), StoryLanguage(language))
        for record in self.list():
            if (_normalise_prompt(record.prompt), record.language) == wanted:
                return record
        return None


class InMemoryStoryHistory(StoryHistoryStore):
    def __init__(self) -> None:
        self._records: dict[str, StoryRecord] = {}

    def save(self, record: StoryRecord) -> StoryRecord:
        stored = record.for_storage()
        self._records[stored.id] = stored
        return stored

    def get(self, story_id: str) -> StoryRecord | None:
        record = self._records.get(story_id)
        return record.model_copy(deep=True) if record else None

    def list(self, limit: int | None = None) -> list[StoryRecord]:
        records = sorted(self._records.values(), key=lambda r: r.timestamp, reverse=True)
        return [r.model_copy(deep=True) for r in records[:limit]]

    def delete(self, story_id: str) -> None:
        self._records.pop(story_id, None)


class RedisStoryHistory(StoryHistoryStore):
    """Records as JSON strings under ``<prefix>:<id>``, ordered by a sorted-set index."""

    def __init__(self, redis_url: str, prefix: str = "tinytales:story") -> None:
        self.redis_url = redis_url
        self.prefix = prefix
        self.index_key = f"{prefix}:index"
        self.redis = redis.Redis.from_url(redis_url, decode_responses=True)  # type: ignore[misc]
        self._connection_checked = False
        logger.info(f"Story history using Redis at {redis_url}")

    def _key(self, story_id: str) -> str:
        return f"{self.prefix}:{story_id}"

    def _ensure_connection(self) -> None:
        """Lazy connection check with retry logic."""
        if self._connection_checked:
            return

        max_retries = 3
        retry_delay = 1.0

        for attempt in range(max_retries):
            try:
                self.redis.ping()
                self._connection_checked = True
                return
            except redis.RedisError as e:
                if attempt == max_retries - 1:
                    logger.error(f"Failed to connect to Redis at {self.redis_url} after {max_retries} attempts: {e}")
                    raise ConnectionError(f"Redis connection failed: {e}") from e
                logger.warning(f"Redis connection attempt {attempt + 1} failed, retrying in {retry_delay}s: {e}")
                time.sleep(retry_delay)
                retry_delay *= 2

    def save(self, record: StoryRecord) -> StoryRecord:
        stored = record.for_storage()
        try:
            self._ensure_connection()
            self.redis.set(self._key(stored.id), stored.model_dump_json())
            self.redis.zadd(self.index_key, {stored.id: stored.timestamp})
        except redis.RedisError as e:
            self._connection_checked = False
            raise ConnectionError(f"Redis save failed: {e}") from e
        logger.debug(f"Saved story {stored.id}")
        return stored

    def get(self, story_id: str) -> StoryRecord | None:
        self._ensure_connection()
        raw = self.redis.get(self._key(story_id))
        if raw is None:
            return None
        return StoryRecord.model_validate_json(raw)

    def list(self, limit: int | None = None) -> list[StoryRecord]:
        self._ensure_connection()
        end = -1 if limit is None else limit - 1
        story_ids = self.redis.zrevrange(self.index_key, 0, end)
        records = []
        for story_id in story_ids:
            record = self.get(story_id)
            if record is not None:
                records.append(record)
        return records

    def delete(self, story_id: str) -> None:
        self._ensure_connection()
        self.redis.delete(self._key(story_id))
        self.redis.zrem(self.index_key, story_id)


def create_history_store(backend: str, redis_url: str | None = None) -> StoryHistoryStore:
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis history backend needs REDIS_URL")
        return RedisStoryHistory(redis_url)
    if backend != "memory":
        logger.warning(f"Unknown history backend '{backend}', using in-memory history")
    return InMemoryStoryHistory()
