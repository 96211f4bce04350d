"""
Redis read cache for workflow content.

The engine only invalidates; readers populate the cache elsewhere.
"""

import logging
from typing import Optional

import redis.asyncio as redis

from ..core.config import get_settings

logger = logging.getLogger(__name__)


class WorkflowCache:
    """Invalidates cached workflow content after live node updates."""

    def __init__(self, redis_url: Optional[str] = None, prefix: Optional[str] = None):
        settings = get_settings()
        self.redis_url = redis_url if redis_url is not None else settings.redis_url
        self.prefix = prefix or settings.workflow_cache_prefix
        self._redis: Optional[redis.Redis] = None

    @property
    def enabled(self) -> bool:
        return bool(self.redis_url)

    def key(self, workflow_id: str) -> str:
        return f"{self.prefix}{workflow_id}"

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection with lazy initialization."""
        if self._redis is None:
            self._redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._redis

    async def invalidate(self, workflow_id: str) -> None:
        if not self.enabled:
            return
        client = await self._get_redis()
        await client.delete(self.key(workflow_id))
        logger.debug(f"Invalidated cache for workflow {workflow_id}")

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
