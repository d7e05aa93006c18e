"""
Caching Service

Redis-backed read cache for round-scoped views. Every operation is
best-effort: a cache failure is logged and never reaches the caller, and
without REDIS_URL the service is a no-op.
"""

import json
from typing import Any

import redis.asyncio as aioredis
import structlog

from rpgf.config import settings

logger = structlog.get_logger(__name__)


def generate_key(*parts: str | int) -> str:
    """Namespaced cache key, e.g. ``rpgf-cache:v1:applications:<round>:*``."""
    return f"rpgf-cache:v{settings.cache_version}:" + ":".join(str(p) for p in parts)


def applications_pattern(round_id: str) -> str:
    return generate_key("applications", round_id, "*")


def application_pattern(application_id: str) -> str:
    return generate_key("application", application_id, "*")


def forms_pattern(round_id: str) -> str:
    return generate_key("forms", round_id, "*")


def results_pattern(round_id: str) -> str:
    return generate_key("results", round_id, "*")


def round_pattern(round_id: str) -> str:
    return generate_key("round", round_id, "*")


class CachingService:
    def __init__(self, redis_url: str | None = None, default_ttl_seconds: int | None = None):
        self._redis_url = redis_url if redis_url is not None else settings.redis_url
        self._default_ttl = (
            default_ttl_seconds if default_ttl_seconds is not None else settings.cache_ttl_seconds
        )
        self._redis: Any = None

    async def initialize(self) -> None:
        if not self._redis_url:
            logger.info("cache_disabled", reason="no_redis_url")
            return
        try:
            self._redis = aioredis.from_url(self._redis_url, decode_responses=True)
            await self._redis.ping()
            logger.info("cache_connected")
        except Exception as e:
            logger.warning("cache_connect_failed", error=str(e))
            self._redis = None

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    async def get(self, key: str) -> Any | None:
        if self._redis is None:
            return None
        try:
            value = await self._redis.get(key)
            return json.loads(value) if value else None
        except Exception as e:
            logger.error("cache_get_failed", key=key, error=str(e))
            return None

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        if self._redis is None:
            return
        try:
            await self._redis.set(
                key,
                json.dumps(value, default=str),
                ex=ttl_seconds if ttl_seconds is not None else self._default_ttl,
            )
        except Exception as e:
            logger.error("cache_set_failed", key=key, error=str(e))

    async def delete(self, *keys: str) -> None:
        if self._redis is None or not keys:
            return
        try:
            await self._redis.delete(*keys)
        except Exception as e:
            logger.error("cache_delete_failed", keys=list(keys), error=str(e))

    async def invalidate(self, *patterns: str) -> None:
        """Delete every key matching any of ``patterns``."""
        if self._redis is None:
            return
        for pattern in patterns:
            try:
                keys = [key async for key in self._redis.scan_iter(match=pattern)]
                if keys:
                    await self._redis.delete(*keys)
                logger.debug("cache_invalidated", pattern=pattern, keys=len(keys))
            except Exception as e:
                logger.error("cache_invalidate_failed", pattern=pattern, error=str(e))
