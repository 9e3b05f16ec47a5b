"""
Constants and configuration for the messaging module.

This module centralizes configuration values for:
- Application, chat and message validation
- Response cache key layout and TTLs
- Counter cache key layout
- Aggregation queue names and drain budget
- Search index layout

TTLs, drain budget and the aggregation interval can be overridden via
Django settings (see config/settings.py). The values here are the defaults.

Import example:
    from messaging.constants import CACHE_CONFIG, QUEUE_CONFIG
"""

from typing import Final


# =============================================================================
# Entity Configuration
# =============================================================================


class APPLICATION_CONFIG:
    """Configuration for applications."""

    NAME_MIN_LENGTH: Final[int] = 3
    NAME_MAX_LENGTH: Final[int] = 50

    # secrets.token_hex(32) -> 64 hex characters
    TOKEN_BYTES: Final[int] = 32
    TOKEN_LENGTH: Final[int] = 64


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MIN_BODY_LENGTH: Final[int] = 1

    SORT_FIELDS: Final[tuple] = ("number", "-number", "created_at", "-created_at")
    DEFAULT_SORT: Final[str] = "number"


class PAGINATION_CONFIG:
    """Page/limit query parameter handling for list endpoints."""

    DEFAULT_PAGE: Final[int] = 1
    DEFAULT_LIMIT: Final[int] = 10
    MAX_LIMIT: Final[int] = 50
    # Keeps (page - 1) * limit inside a database integer
    MAX_PAGE: Final[int] = 100_000


# =============================================================================
# Cache Configuration
# =============================================================================


class CACHE_CONFIG:
    """
    Response cache and counter cache configuration.

    Response entries live a little longer right after a create (the entity
    is likely to be fetched back immediately) than after a read or update.
    """

    CREATE_TTL_SECONDS: Final[int] = 300  # 5 minutes
    READ_TTL_SECONDS: Final[int] = 120  # 2 minutes

    # Value stored under a reference key points at another key
    REF_PREFIX: Final[str] = "ref:"

    KEY_APPLICATION_TOKEN: Final[str] = "application:token"
    KEY_APPLICATION_ID_REF: Final[str] = "ref:application:id"
    KEY_APPLICATION_LIST: Final[str] = "applications"
    KEY_APPLICATION_SCOPE: Final[str] = "application"

    KEY_COUNTER_APPLICATION: Final[str] = "counter:application"
    KEY_COUNTER_CHAT: Final[str] = "counter:chat"

    # SCAN batch size for prefix invalidation
    SCAN_COUNT: Final[int] = 500


# =============================================================================
# Queue Configuration
# =============================================================================


class QUEUE_CONFIG:
    """Aggregation queue names and worker budget."""

    CHAT_CREATION_QUEUE: Final[str] = "chat_creation_queue"
    MESSAGE_CREATION_QUEUE: Final[str] = "message_creation_queue"

    # Upper bound on a single drain phase
    DRAIN_TIME_BUDGET_SECONDS: Final[float] = 5.0

    # Beat intervals for the aggregation tasks
    CHAT_AGGREGATION_INTERVAL_SECONDS: Final[int] = 10
    MESSAGE_AGGREGATION_INTERVAL_SECONDS: Final[int] = 15

    CONNECT_MAX_RETRIES: Final[int] = 1


# =============================================================================
# Search Configuration
# =============================================================================


class SEARCH_CONFIG:
    """Search index layout."""

    INDEX_NAME: Final[str] = "messages"

    MODE_MATCH: Final[str] = "match"
    MODE_WILDCARD: Final[str] = "wildcard"
    MODES: Final[tuple] = ("match", "wildcard")

    MIN_QUERY_LENGTH: Final[int] = 1
    BULK_CHUNK_SIZE: Final[int] = 500

    # Cluster rejections worth retrying (throttled, overloaded, gateway)
    RETRYABLE_STATUS_CODES: Final[frozenset] = frozenset({429, 502, 503, 504})

    MAPPINGS: Final[dict] = {
        "properties": {
            "id": {"type": "long"},
            "number": {"type": "integer"},
            "chatId": {"type": "long"},
            "createdAt": {"type": "date"},
            "body": {
                "type": "text",
                # wildcard type indexes the whole body, with no length cutoff
                "fields": {"wildcard": {"type": "wildcard"}},
            },
        }
    }
