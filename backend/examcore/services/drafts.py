"""
Exam Session Engine - Draft Store
Autosaved in-progress sessions, kept only to survive reloads.

Redis-backed with a process-local fallback when Redis is unavailable or the
memory backend is configured.
"""
import logging
import time
from typing import Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from examcore.core.config import settings
from examcore.schemas.session import SessionDraft

logger = logging.getLogger(__name__)


class DraftStore:
    """Drafts keyed by session id, expiring after ``ttl_seconds``."""

    def __init__(
        self,
        backend: Optional[str] = None,
        redis_url: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.backend = backend or settings.DRAFT_BACKEND
        self.redis_url = redis_url or settings.REDIS_URL
        self.ttl_seconds = ttl_seconds or settings.DRAFT_TTL_SECONDS

        self._redis = None
        # session_id -> (expires_at, serialized draft)
        self._local_store: dict[str, tuple[float, str]] = {}

    def _key(self, session_id: str) -> str:
        return f"exam:draft:{session_id}"

    async def _get_redis(self):
        """Get Redis connection (lazy initialization)."""
        if self.backend != "redis":
            return None
        if self._redis is None:
            client = aioredis.from_url(self.redis_url, encoding="utf-8", decode_responses=True)
            try:
                await client.ping()
                self._redis = client
            except (RedisError, OSError) as e:
                logger.warning(f"Redis unavailable, keeping drafts in process memory: {e}")
                await client.aclose()
                self._redis = False
        return self._redis or None

    async def save(self, draft: SessionDraft) -> None:
        data = draft.model_dump_json()
        redis = await self._get_redis()
        if redis:
            await redis.set(self._key(draft.session_id), data, ex=self.ttl_seconds)
        else:
            now = time.monotonic()
            self._sweep(now)
            self._local_store[draft.session_id] = (now + self.ttl_seconds, data)

    def _sweep(self, now: float) -> None:
        """Drop expired local drafts, including ones nobody loads again."""
        expired = [key for key, (expires_at, _) in self._local_store.items() if expires_at <= now]
        for key in expired:
            del self._local_store[key]

    async def load(self, session_id: str) -> Optional[SessionDraft]:
        redis = await self._get_redis()
        if redis:
            data = await redis.get(self._key(session_id))
        else:
            entry = self._local_store.get(session_id)
            data = None
            if entry is not None:
                expires_at, data = entry
                if expires_at <= time.monotonic():
                    del self._local_store[session_id]
                    data = None
        if data is None:
            return None
        return SessionDraft.model_validate_json(data)

    async def delete(self, session_id: str) -> None:
        redis = await self._get_redis()
        if redis:
            await redis.delete(self._key(session_id))
        else:
            self._local_store.pop(session_id, None)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
        self._redis = None
