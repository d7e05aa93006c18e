"""
Caching and Audit Service Tests

Both services are best-effort: their failures are logged and never reach
the operation that used them.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from rpgf.config import settings
from rpgf.models.events import ActorType, AuditAction
from rpgf.services.audit import AuditService
from rpgf.services.caching import (
    CachingService,
    applications_pattern,
    generate_key,
    results_pattern,
)


class KeyStream:
    def __init__(self, keys):
        self._keys = keys

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for key in self._keys:
            yield key


@pytest.fixture
def mock_redis():
    redis = MagicMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    redis.aclose = AsyncMock()
    redis.scan_iter = MagicMock(return_value=KeyStream([]))
    return redis


@pytest.fixture
def connected_cache(mock_redis):
    cache = CachingService(redis_url="redis://localhost:6379/0", default_ttl_seconds=60)
    cache._redis = mock_redis
    return cache


# =============================================================================
# Keys
# =============================================================================


class TestKeys:
    """Tests for cache key construction."""

    def test_generate_key_is_versioned(self):
        assert generate_key("results", "round-1", "list") == (
            f"rpgf-cache:v{settings.cache_version}:results:round-1:list"
        )

    def test_patterns(self):
        assert applications_pattern("round-1") == generate_key("applications", "round-1", "*")
        assert results_pattern("round-1").endswith(":results:round-1:*")


# =============================================================================
# Caching Service
# =============================================================================


class TestCachingService:
    """Tests for CachingService."""

    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        cache = CachingService(redis_url="")
        await cache.initialize()

        assert not cache.enabled
        assert await cache.get("k") is None
        await cache.set("k", {"a": 1})
        await cache.invalidate("k*")

    @pytest.mark.asyncio
    async def test_get_decodes_json(self, connected_cache, mock_redis):
        mock_redis.get.return_value = '[{"application_id": "A"}]'
        assert await connected_cache.get("k") == [{"application_id": "A"}]

    @pytest.mark.asyncio
    async def test_set_uses_default_ttl(self, connected_cache, mock_redis):
        await connected_cache.set("k", {"a": 1})
        mock_redis.set.assert_awaited_once_with("k", '{"a": 1}', ex=60)

    @pytest.mark.asyncio
    async def test_invalidate_deletes_matches(self, connected_cache, mock_redis):
        mock_redis.scan_iter.return_value = KeyStream(["k:1", "k:2"])

        await connected_cache.invalidate("k:*")

        mock_redis.scan_iter.assert_called_once_with(match="k:*")
        mock_redis.delete.assert_awaited_once_with("k:1", "k:2")

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self, connected_cache, mock_redis):
        mock_redis.get.side_effect = ConnectionError("redis down")
        mock_redis.set.side_effect = ConnectionError("redis down")
        mock_redis.scan_iter.side_effect = ConnectionError("redis down")

        assert await connected_cache.get("k") is None
        await connected_cache.set("k", 1)
        await connected_cache.invalidate("k:*")

    @pytest.mark.asyncio
    async def test_close(self, connected_cache, mock_redis):
        await connected_cache.close()

        mock_redis.aclose.assert_awaited_once()
        assert not connected_cache.enabled


# =============================================================================
# Audit Service
# =============================================================================


class TestAuditService:
    """Tests for AuditService."""

    @pytest.mark.asyncio
    async def test_user_action(self, admin):
        repository = AsyncMock()

        await AuditService(repository).record(AuditAction.ROUND_PUBLISHED, "round-1", admin)

        kwargs = repository.log.await_args.kwargs
        assert kwargs["actor_type"] == ActorType.USER
        assert kwargs["actor_user_id"] == "admin-1"
        assert kwargs["actor_wallet_address"] == admin.wallet_address

    @pytest.mark.asyncio
    async def test_system_action(self):
        repository = AsyncMock()

        await AuditService(repository).record(
            AuditAction.APPLICATION_ATTESTATION_RESOLVED, "round-1", None, {"application_id": "app-1"}
        )

        kwargs = repository.log.await_args.kwargs
        assert kwargs["actor_type"] == ActorType.SYSTEM
        assert kwargs["actor_user_id"] is None

    @pytest.mark.asyncio
    async def test_failure_is_not_raised(self, admin):
        repository = AsyncMock()
        repository.log.side_effect = RuntimeError("database down")

        assert await AuditService(repository).record(AuditAction.ROUND_CREATED, "round-1", admin) is None
