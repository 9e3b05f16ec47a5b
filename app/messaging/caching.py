"""
Response cache for formatted API payloads.

Read-through / write-through cache in front of the repositories. Values are
the JSON-ready dicts returned by the services, stored in Redis with a TTL.

Key layout:
    application:token:{token}:{variant}                 application payload
    ref:application:id:{id}:{variant}                   -> name of the key above
    applications:page:{page}:limit:{limit}              application listing
    application:{token}:chats:page:{p}:limit:{l}        chat listing
    application:{token}:chat:{number}                   chat payload
    application:{token}:chat:{number}:messages:page:{p}:limit:{l}:sort:{s}

Reference keys:
    An id lookup stores the *name* of the token key rather than a copy of
    the payload, so a write to the token key is visible through both.
    get() follows a key that starts with "ref:" once.

Invalidation:
    invalidate_prefix() scans for prefix* and deletes in batches. Deleting
    keys that do not exist is a no-op.

Failure policy:
    Every operation catches and logs Redis errors. Reads report a miss and
    writes are dropped, so callers always fall back to the database.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import TYPE_CHECKING

from django.core.serializers.json import DjangoJSONEncoder
from django_redis import get_redis_connection

from messaging.constants import CACHE_CONFIG

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class ResponseVariant(str, Enum):
    """
    Shape of a cached application payload.

    SUMMARY: {name, token, chats_count}
    FULL: SUMMARY plus created_at and updated_at
    """

    SUMMARY = "summary"
    FULL = "full"

    @classmethod
    def parse(cls, value: str | None) -> ResponseVariant:
        """Map a query parameter to a variant, defaulting to SUMMARY."""
        if value and value.lower() == cls.FULL.value:
            return cls.FULL
        return cls.SUMMARY


class ResponseCache:
    """Best-effort JSON cache over the raw django-redis client."""

    def __init__(self, alias: str = "default"):
        self._alias = alias

    def _get_redis_client(self):
        return get_redis_connection(self._alias)

    # =========================================================================
    # Key builders
    # =========================================================================

    @staticmethod
    def application_key(token: str, variant: ResponseVariant) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_TOKEN}:{token}:{variant.value}"

    @staticmethod
    def application_ref_key(application_id: int, variant: ResponseVariant) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_ID_REF}:{application_id}:{variant.value}"

    @staticmethod
    def application_list_key(page: int, limit: int) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_LIST}:page:{page}:limit:{limit}"

    @staticmethod
    def application_list_prefix() -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_LIST}:"

    @staticmethod
    def application_entries_prefix(token: str) -> str:
        """Prefix of both variants of the application payload."""
        return f"{CACHE_CONFIG.KEY_APPLICATION_TOKEN}:{token}:"

    @staticmethod
    def application_scope_prefix(token: str) -> str:
        """Prefix of every chat and message entry under the application."""
        return f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:"

    @staticmethod
    def chat_list_key(token: str, page: int, limit: int) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:chats:page:{page}:limit:{limit}"

    @staticmethod
    def chat_list_prefix(token: str) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:chats:"

    @staticmethod
    def chat_key(token: str, number: int) -> str:
        return f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:chat:{number}"

    @staticmethod
    def chat_scope_prefix(token: str, number: int) -> str:
        """Prefix of every message entry under the chat (not the chat itself)."""
        return f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:chat:{number}:"

    @staticmethod
    def message_list_key(token: str, number: int, page: int, limit: int, sort_by: str) -> str:
        return (
            f"{CACHE_CONFIG.KEY_APPLICATION_SCOPE}:{token}:chat:{number}"
            f":messages:page:{page}:limit:{limit}:sort:{sort_by}"
        )

    # =========================================================================
    # Operations
    # =========================================================================

    def get(self, key: str) -> Any | None:
        """
        Return the cached value for key, following one reference hop.

        Returns None on a miss, on a dangling reference and on any error.
        """
        try:
            redis_client = self._get_redis_client()
            if key.startswith(CACHE_CONFIG.REF_PREFIX):
                target = redis_client.get(key)
                if target is None:
                    return None
                key = target.decode() if isinstance(target, bytes) else target
            raw = redis_client.get(key)
            if raw is None:
                return None
            return json.loads(raw)
        except Exception as e:
            logger.warning(f"Response cache read failed for {key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value, cls=DjangoJSONEncoder)
            self._get_redis_client().set(key, payload, ex=ttl)
        except Exception as e:
            logger.warning(f"Response cache write failed for {key}: {e}")

    def set_reference(self, ref_key: str, target_key: str, ttl: int) -> None:
        """Point ref_key at target_key."""
        try:
            self._get_redis_client().set(ref_key, target_key, ex=ttl)
        except Exception as e:
            logger.warning(f"Response cache reference write failed for {ref_key}: {e}")

    def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            self._get_redis_client().delete(*keys)
        except Exception as e:
            logger.warning(f"Response cache delete failed for {keys}: {e}")

    def invalidate_application(self, token: str) -> None:
        """Drop both application payload variants and every listing page."""
        self.invalidate_prefix(self.application_entries_prefix(token))
        self.invalidate_prefix(self.application_list_prefix())

    def invalidate_prefix(self, prefix: str) -> int:
        """
        Delete every key starting with prefix.

        Returns:
            Number of keys deleted (0 on error).
        """
        deleted = 0
        try:
            redis_client = self._get_redis_client()
            batch = []
            for key in redis_client.scan_iter(
                match=f"{prefix}*", count=CACHE_CONFIG.SCAN_COUNT
            ):
                batch.append(key)
                if len(batch) >= CACHE_CONFIG.SCAN_COUNT:
                    deleted += redis_client.delete(*batch)
                    batch = []
            if batch:
                deleted += redis_client.delete(*batch)
        except Exception as e:
            logger.warning(f"Response cache prefix invalidation failed for {prefix}: {e}")
        return deleted
