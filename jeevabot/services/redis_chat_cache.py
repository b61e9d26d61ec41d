"""
Redis cache for conversation history. Cache-Aside: Redis is read-through cache only.
All Redis errors are handled internally; never raise to caller. System works if Redis is down.
Key: chat:{conversation_id} — Redis LIST of JSON message records, oldest to newest. Last N items, TTL 1 day.
"""
import json
import logging
from typing import Any

from jeevabot.config import get_settings

logger = logging.getLogger(__name__)

CHAT_KEY_PREFIX = "chat:"
MESSAGE_FIELDS = ("id", "conversation_id", "role", "content", "created_at")


def _key(conversation_id: str) -> str:
    return f"{CHAT_KEY_PREFIX}{conversation_id}"


def _serialize(message: dict) -> str:
    return json.dumps({f: message.get(f) for f in MESSAGE_FIELDS})


def _deserialize(s: str) -> dict | None:
    try:
        data = json.loads(s)
        if isinstance(data, dict) and "role" in data:
            return {f: data.get(f) for f in MESSAGE_FIELDS}
    except (json.JSONDecodeError, TypeError):
        pass
    return None


class RedisChatCache:
    """
    Async Redis cache for conversation messages. LIST-based: RPUSH, LTRIM, EXPIRE.
    All methods swallow Redis errors and log; caller gets None or no-op on failure.
    """

    def __init__(self, redis_client: Any, ttl_seconds: int | None = None, limit: int | None = None):
        settings = get_settings()
        self._redis = redis_client
        self._ttl = ttl_seconds or settings.chat_cache_ttl_seconds
        self._limit = limit or settings.chat_history_max_messages

    @property
    def limit(self) -> int:
        return self._limit

    async def get_last_messages(self, conversation_id: str, count: int | None = None) -> list[dict] | None:
        """
        Cache-Aside read: LRANGE chat:{conversation_id} -count -1.
        Returns message dicts oldest-first, or None on miss/error (caller should hit DB).
        """
        if not self._redis:
            return None
        count = min(count or self._limit, self._limit)
        try:
            raw_list = await self._redis.lrange(_key(conversation_id), -count, -1)
            if not raw_list:
                return None
            out = []
            for item in raw_list:
                s = item.decode() if isinstance(item, bytes) else item
                m = _deserialize(s)
                if m:
                    out.append(m)
            return out if out else None
        except Exception as e:
            logger.warning("Redis chat cache get failed for conversation %s: %s", conversation_id, e, exc_info=False)
            return None

    async def append_messages(self, conversation_id: str, messages: list[dict]) -> None:
        """
        After DB save: RPUSHX (only onto an already warmed list), LTRIM to last N, EXPIRE.
        A cold key stays cold so a partial list is never served; the next read warms it from DB.
        On Redis error: log only, do not raise.
        """
        if not self._redis or not messages:
            return
        try:
            key = _key(conversation_id)
            length = await self._redis.rpushx(key, *[_serialize(m) for m in messages])
            if not length:
                return
            await self._redis.ltrim(key, -self._limit, -1)
            await self._redis.expire(key, self._ttl)
        except Exception as e:
            logger.warning("Redis chat cache append failed for conversation %s: %s", conversation_id, e, exc_info=False)

    async def warm(self, conversation_id: str, messages: list[dict]) -> None:
        """
        Cache-Aside warm on DB miss: replace list with last N from DB, set EXPIRE.
        """
        if not self._redis or not messages:
            return
        try:
            key = _key(conversation_id)
            pipe = self._redis.pipeline()
            pipe.delete(key)  # start fresh so order is correct
            for m in messages:
                pipe.rpush(key, _serialize(m))
            pipe.ltrim(key, -self._limit, -1)
            pipe.expire(key, self._ttl)
            await pipe.execute()
        except Exception as e:
            logger.warning("Redis chat cache warm failed for conversation %s: %s", conversation_id, e, exc_info=False)
