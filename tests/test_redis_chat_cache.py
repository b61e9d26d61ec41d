"""Tests for services/redis_chat_cache.py — list semantics and error swallowing."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import fakeredis.aioredis
import pytest

from jeevabot.services.redis_chat_cache import RedisChatCache


def _msg(i, role="user"):
    return {
        "id": f"m{i}",
        "conversation_id": "conv-1",
        "role": role,
        "content": f"message {i}",
        "created_at": f"2026-03-01T09:00:0{i}",
    }


@pytest.fixture
def redis_client():
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


class TestRedisChatCache:
    @pytest.mark.asyncio
    async def test_miss_returns_none(self, redis_client):
        cache = RedisChatCache(redis_client, limit=5)
        assert await cache.get_last_messages("conv-1") is None

    @pytest.mark.asyncio
    async def test_warm_then_read_keeps_order(self, redis_client):
        cache = RedisChatCache(redis_client, limit=5)
        await cache.warm("conv-1", [_msg(0), _msg(1, "assistant")])
        assert await cache.get_last_messages("conv-1") == [_msg(0), _msg(1, "assistant")]

    @pytest.mark.asyncio
    async def test_warm_trims_and_sets_ttl(self, redis_client):
        cache = RedisChatCache(redis_client, ttl_seconds=60, limit=3)
        await cache.warm("conv-1", [_msg(i) for i in range(5)])
        cached = await cache.get_last_messages("conv-1")
        assert [m["id"] for m in cached] == ["m2", "m3", "m4"]
        assert 0 < await redis_client.ttl("chat:conv-1") <= 60

    @pytest.mark.asyncio
    async def test_count_reads_newest(self, redis_client):
        cache = RedisChatCache(redis_client, limit=5)
        await cache.warm("conv-1", [_msg(i) for i in range(4)])
        cached = await cache.get_last_messages("conv-1", 2)
        assert [m["id"] for m in cached] == ["m2", "m3"]

    @pytest.mark.asyncio
    async def test_append_only_extends_warm_list(self, redis_client):
        cache = RedisChatCache(redis_client, limit=5)
        await cache.append_messages("conv-1", [_msg(0)])
        assert await cache.get_last_messages("conv-1") is None

        await cache.warm("conv-1", [_msg(0)])
        await cache.append_messages("conv-1", [_msg(1), _msg(2, "assistant")])
        cached = await cache.get_last_messages("conv-1")
        assert [m["id"] for m in cached] == ["m0", "m1", "m2"]

    @pytest.mark.asyncio
    async def test_corrupt_entries_are_skipped(self, redis_client):
        cache = RedisChatCache(redis_client, limit=5)
        await redis_client.rpush("chat:conv-1", "not json", '{"no_role": true}')
        assert await cache.get_last_messages("conv-1") is None

    @pytest.mark.asyncio
    async def test_redis_errors_are_swallowed(self):
        broken = MagicMock()
        broken.lrange = AsyncMock(side_effect=ConnectionError("redis down"))
        broken.rpushx = AsyncMock(side_effect=ConnectionError("redis down"))
        broken.pipeline = MagicMock(side_effect=ConnectionError("redis down"))
        cache = RedisChatCache(broken, limit=5)

        assert await cache.get_last_messages("conv-1") is None
        await cache.append_messages("conv-1", [_msg(0)])
        await cache.warm("conv-1", [_msg(0)])

    @pytest.mark.asyncio
    async def test_no_client_is_a_no_op(self):
        cache = RedisChatCache(None, limit=5)
        assert await cache.get_last_messages("conv-1") is None
        await cache.append_messages("conv-1", [_msg(0)])
        await cache.warm("conv-1", [_msg(0)])
