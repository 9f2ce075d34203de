"""
Tests for the Redis client manager.

Tests verify:
- fakeredis is used in the test environment
- The client is a singleton until reset
- Missing REDIS_URL degrades to None instead of raising
- Health check reflects availability
"""

import pytest

from libs.caching.redis_client import close_redis_client, get_redis_client, health_check, reset_redis_client


@pytest.fixture(autouse=True)
async def reset_redis():
    """Reset Redis client before each test."""
    await reset_redis_client()
    yield
    await reset_redis_client()


@pytest.mark.asyncio
async def test_fake_client_in_test_env():
    redis = await get_redis_client()

    assert redis is not None
    assert await redis.ping() is True


@pytest.mark.asyncio
async def test_client_is_reused():
    first = await get_redis_client(use_fake=True)
    second = await get_redis_client(use_fake=True)
    assert first is second


@pytest.mark.asyncio
async def test_summary_ttl_round_trip():
    redis = await get_redis_client(use_fake=True)

    await redis.setex("summary:conv_ttl", 10, "Athlete asked about appeals.")

    assert await redis.get("summary:conv_ttl") == "Athlete asked about appeals."
    assert 0 < await redis.ttl("summary:conv_ttl") <= 10


@pytest.mark.asyncio
async def test_missing_url_returns_none():
    assert await get_redis_client(use_fake=False) is None
    # A failed attempt is remembered until reset
    assert await get_redis_client(use_fake=False) is None


@pytest.mark.asyncio
async def test_health_check():
    assert await health_check() is True
    await close_redis_client()
    assert await health_check() is True
