"""
skillpath/services/result_cache.py
Short-lived cache of session views

Two views are cached per (user, session):
- next_question: 60s while in progress, 1h once complete
- session_result: 1h, completed sessions only

Entries are advisory. Any backend failure is logged and treated as a miss;
the database stays authoritative.

Invalidation bumps a per-key generation counter and deletes the entry.
Every entry is stored together with the generation its reader captured
before reading the database. get only serves an entry whose generation still
matches the counter, so a write-back that lands after an invalidation is
never served, even when the set itself races the invalidation.
"""
import abc
import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import redis.asyncio as aioredis

from skillpath.config.settings import AssessmentSettings

logger = logging.getLogger(__name__)


class CacheBackend(abc.ABC):
    """Key-value store with per-key expiry."""

    @abc.abstractmethod
    async def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    @abc.abstractmethod
    async def set(self, key: str, value: str, ttl: int) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def delete(self, key: str) -> None:
        raise NotImplementedError

    @abc.abstractmethod
    async def incr(self, key: str, ttl: int) -> int:
        """Atomically increment an integer counter, refreshing its expiry."""
        raise NotImplementedError

    async def close(self) -> None:
        return None


class InMemoryCacheBackend(CacheBackend):
    """
    Process-local backend for development and tests.

    Expired entries are dropped lazily on read.
    """

    def __init__(self):
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        async with self._lock:
            self._entries[key] = (value, time.monotonic() + ttl)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def incr(self, key: str, ttl: int) -> int:
        async with self._lock:
            entry = self._entries.get(key)
            current = 0
            if entry is not None and entry[1] > time.monotonic():
                current = int(entry[0])
            current += 1
            self._entries[key] = (str(current), time.monotonic() + ttl)
            return current

    def __len__(self) -> int:
        return len(self._entries)


class RedisCacheBackend(CacheBackend):
    """Redis backend shared by all workers."""

    def __init__(self, redis_url: str = "redis://localhost:6379/0"):
        self.redis_url = redis_url
        self._redis: Optional[aioredis.Redis] = None

    async def connect(self) -> None:
        """Establish Redis connection."""
        self._redis = aioredis.from_url(
            self.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True
        )

    async def _client(self) -> aioredis.Redis:
        if not self._redis:
            await self.connect()
        return self._redis

    async def get(self, key: str) -> Optional[str]:
        client = await self._client()
        return await client.get(key)

    async def set(self, key: str, value: str, ttl: int) -> None:
        client = await self._client()
        await client.set(key, value, ex=ttl)

    async def delete(self, key: str) -> None:
        client = await self._client()
        await client.delete(key)

    async def incr(self, key: str, ttl: int) -> int:
        client = await self._client()
        async with client.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, ttl)
            value, _ = await pipe.execute()
        return int(value)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None


def serialize_value(value: Dict[str, Any]) -> str:
    return json.dumps(value, sort_keys=True, separators=(',', ':'), default=str)


class ResultCache:
    """Session view cache keyed by (operation, user_id, session_id)."""

    NEXT_QUESTION = "next_question"
    SESSION_RESULT = "session_result"

    def __init__(
        self,
        backend: CacheBackend,
        next_question_ttl: int = AssessmentSettings.NEXT_QUESTION_TTL,
        completed_ttl: int = AssessmentSettings.COMPLETED_TTL,
        session_result_ttl: int = AssessmentSettings.SESSION_RESULT_TTL
    ):
        self.backend = backend
        self.next_question_ttl = next_question_ttl
        self.completed_ttl = completed_ttl
        self.session_result_ttl = session_result_ttl

    @staticmethod
    def key(operation: str, user_id: int, session_id: int) -> str:
        return f"{operation}:{user_id}:{session_id}"

    @staticmethod
    def _generation_key(key: str) -> str:
        return f"{key}:gen"

    @property
    def _generation_ttl(self) -> int:
        # outlives any entry written after the bump
        return 2 * max(self.next_question_ttl, self.completed_ttl, self.session_result_ttl)

    async def get(self, operation: str, user_id: int, session_id: int) -> Optional[Dict[str, Any]]:
        key = self.key(operation, user_id, session_id)
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            logger.warning(f"[CACHE] get failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            entry = json.loads(raw)
            stored_generation = int(entry["generation"])
            value = entry["value"]
        except (ValueError, TypeError, KeyError):
            logger.warning(f"[CACHE] discarding undecodable entry {key}")
            return None

        current = await self.generation(operation, user_id, session_id)
        if current is None or current != stored_generation:
            logger.info(f"[CACHE] ignoring {key}: written for generation {stored_generation}, now {current}")
            return None
        return value

    async def generation(self, operation: str, user_id: int, session_id: int) -> Optional[int]:
        """
        Current invalidation generation of a key.

        None means the backend could not be read; callers must then skip
        the write-back.
        """
        key = self._generation_key(self.key(operation, user_id, session_id))
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            logger.warning(f"[CACHE] generation read failed for {key}: {e}")
            return None
        return int(raw) if raw is not None else 0

    async def put(
        self,
        operation: str,
        user_id: int,
        session_id: int,
        value: Dict[str, Any],
        ttl: int,
        generation: Optional[int]
    ) -> bool:
        """
        Store value unless the key was invalidated since generation was read.

        The check here only saves a useless write; get re-checks the
        generation stored with the entry.
        """
        if generation is None:
            return False
        key = self.key(operation, user_id, session_id)
        current = await self.generation(operation, user_id, session_id)
        if current != generation:
            logger.info(f"[CACHE] skip write-back for {key}: invalidated during read")
            return False
        try:
            await self.backend.set(key, serialize_value({"generation": generation, "value": value}), ttl)
        except Exception as e:
            logger.warning(f"[CACHE] set failed for {key}: {e}")
            return False
        return True

    async def invalidate(self, operation: str, user_id: int, session_id: int) -> None:
        key = self.key(operation, user_id, session_id)
        try:
            await self.backend.incr(self._generation_key(key), self._generation_ttl)
            await self.backend.delete(key)
        except Exception as e:
            logger.error(f"[CACHE] invalidation failed for {key}: {e}")
