"""
Redis-backed counter cache.

Fast, advisory copies of the chats_count and messages_count aggregates.
The database stays authoritative; this cache can be flushed at any time.

Design Decisions:
    - Raw Redis client from django-redis for INCRBY and Lua scripts
    - increment/decrement only touch keys that already exist (Lua script).
      A missing key stays missing, so the next read goes back to the
      database and reseeds it instead of starting from the delta.
    - refresh() overwrites an existing key with a value committed to the
      database (SET XX), under the same absent-stays-absent rule
    - Every Redis error is logged and reported as "absent" (None)

Usage:
    from messaging.counters import CounterCache

    counters = CounterCache()
    key = CounterCache.chats_count_key(application.token)

    value = counters.get(key)
    if value is None:
        value = recount_from_database()
        counters.set(key, value)

    counters.increment(key, 3)
"""

from __future__ import annotations

import logging

from django_redis import get_redis_connection

from messaging.constants import CACHE_CONFIG

logger = logging.getLogger(__name__)


class CounterCache:
    """
    Keyed integer counters in Redis.

    Contract:
        get(key) -> int | None
        set(key, value)
        increment(key, delta=1) -> int | None
        decrement(key, delta=1) -> int | None
        refresh(key, value) -> bool
        delete(key)
    """

    # Keys: [counter_key]
    # Args: [delta]
    # Returns nil when the key is absent
    LUA_INCR_IF_EXISTS = """
    if redis.call('EXISTS', KEYS[1]) == 1 then
        return redis.call('INCRBY', KEYS[1], ARGV[1])
    end
    return nil
    """

    def __init__(self, alias: str = "default"):
        self._alias = alias
        self._incr_script = None
        self._incr_script_client = None

    def _get_redis_client(self):
        return get_redis_connection(self._alias)

    def _get_incr_script(self, redis_client):
        # Script objects are bound to the client that registered them
        if self._incr_script is None or self._incr_script_client is not redis_client:
            self._incr_script = redis_client.register_script(self.LUA_INCR_IF_EXISTS)
            self._incr_script_client = redis_client
        return self._incr_script

    @staticmethod
    def chats_count_key(token: str) -> str:
        """Build counter key for an application's chats_count."""
        return f"{CACHE_CONFIG.KEY_COUNTER_APPLICATION}:{token}:chats_count"

    @staticmethod
    def messages_count_key(chat_id: int) -> str:
        """Build counter key for a chat's messages_count."""
        return f"{CACHE_CONFIG.KEY_COUNTER_CHAT}:{chat_id}:messages_count"

    def get(self, key: str) -> int | None:
        try:
            raw = self._get_redis_client().get(key)
        except Exception as e:
            logger.warning(f"Counter read failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding non-integer counter value at {key}")
            self.delete(key)
            return None

    def set(self, key: str, value: int) -> None:
        try:
            self._get_redis_client().set(key, int(value))
        except Exception as e:
            logger.warning(f"Counter write failed for {key}: {e}")

    def increment(self, key: str, delta: int = 1) -> int | None:
        """
        Add delta to an existing counter.

        Returns:
            The new value, or None when the counter is absent or Redis fails.
        """
        try:
            redis_client = self._get_redis_client()
            result = self._get_incr_script(redis_client)(keys=[key], args=[int(delta)])
        except Exception as e:
            logger.warning(f"Counter increment failed for {key}: {e}")
            return None
        return int(result) if result is not None else None

    def decrement(self, key: str, delta: int = 1) -> int | None:
        """Subtract delta from an existing counter. See increment()."""
        return self.increment(key, -int(delta))

    def refresh(self, key: str, value: int) -> bool:
        """
        Overwrite an existing counter with a committed value.

        Like increment(), an absent counter stays absent.

        Returns:
            True when the counter existed and was overwritten.
        """
        try:
            return bool(self._get_redis_client().set(key, int(value), xx=True))
        except Exception as e:
            logger.warning(f"Counter refresh failed for {key}: {e}")
            return False

    def delete(self, key: str) -> None:
        try:
            self._get_redis_client().delete(key)
        except Exception as e:
            logger.warning(f"Counter delete failed for {key}: {e}")
