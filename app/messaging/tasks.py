"""
Celery tasks for count aggregation and search indexing.

This module provides async tasks for:
- Draining the aggregation queues and applying batched count increments
  (scheduled by Celery Beat, see migration 0002)
- Indexing newly created messages
- Bulk reindexing and purging search documents

Aggregation tasks never raise: a failed cycle is logged and the next beat
tick starts a fresh one. Indexing tasks retry on search cluster
connection errors and on throttling or overload responses (429, 502, 503,
504).

Usage:
    from messaging.tasks import index_message, reindex_messages

    index_message.delay(message.id)
    reindex_messages.delay()          # every message
    reindex_messages.delay(chat_id)   # one chat
"""

from __future__ import annotations

import logging
from contextlib import contextmanager

from celery import shared_task
from elasticsearch import ApiError, TransportError

from messaging.constants import SEARCH_CONFIG

logger = logging.getLogger(__name__)


class TransientSearchError(Exception):
    """The search cluster rejected a request with a retryable status."""


# TransportError covers connection failures and timeouts
SEARCH_RETRY_ERRORS = (TransportError, TransientSearchError)


@contextmanager
def retryable_search_errors():
    """
    Re-raise throttling and overload responses as TransientSearchError.

    Other ApiErrors (bad request, mapping conflicts) propagate unchanged and
    fail the task without a retry.
    """
    try:
        yield
    except ApiError as e:
        if e.status_code in SEARCH_CONFIG.RETRYABLE_STATUS_CODES:
            raise TransientSearchError(
                f"Search cluster returned {e.status_code}"
            ) from e
        raise


# =============================================================================
# Aggregation Tasks
# =============================================================================


def _run_aggregator(attribute: str) -> dict:
    from messaging.dependencies import get_container

    aggregator = getattr(get_container(), attribute)
    try:
        report = aggregator.run_cycle()
    except Exception as e:
        logger.exception(
            f"Aggregation cycle {aggregator.name} aborted: {e}",
            extra={"aggregator": aggregator.name},
        )
        return {"status": "error", "aggregator": aggregator.name, "error": str(e)}
    return {"status": "ok", "aggregator": aggregator.name, **report.to_dict()}


@shared_task
def aggregate_chat_counts() -> dict:
    """
    Drain chat_creation_queue and apply one chats_count increment per token.

    Returns:
        Cycle report: drained, keys, committed, failed, skipped
    """
    return _run_aggregator("chat_aggregator")


@shared_task
def aggregate_message_counts() -> dict:
    """Drain message_creation_queue and apply one messages_count increment per chat."""
    return _run_aggregator("message_aggregator")


# =============================================================================
# Search Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=SEARCH_RETRY_ERRORS,
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def index_message(self, message_id: int) -> dict:
    """
    Write one message to the search index.

    Idempotent: the document id is the message id, so a retry overwrites
    the same document.

    Args:
        message_id: Primary key of the Message

    Returns:
        Dict with status ("indexed" or "not_found") and message_id
    """
    from messaging.dependencies import get_container

    with retryable_search_errors():
        indexed = get_container().search.index_message(message_id)
    status = "indexed" if indexed else "not_found"
    logger.debug(
        f"index_message {status}",
        extra={"message_id": message_id, "attempt": self.request.retries},
    )
    return {"status": status, "message_id": message_id}


@shared_task(
    bind=True,
    autoretry_for=SEARCH_RETRY_ERRORS,
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def reindex_messages(self, chat_id: int | None = None) -> dict:
    """Bulk index every message, or only those of chat_id."""
    from messaging.dependencies import get_container

    with retryable_search_errors():
        indexed = get_container().search.reindex(chat_id)
    logger.info(
        f"Reindexed {indexed} messages",
        extra={"chat_id": chat_id, "indexed": indexed},
    )
    return {"indexed": indexed, "chat_id": chat_id}


@shared_task(
    bind=True,
    autoretry_for=SEARCH_RETRY_ERRORS,
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def purge_chat_documents(self, chat_ids: list[int]) -> dict:
    """Delete the search documents of deleted chats."""
    from messaging.dependencies import get_container

    with retryable_search_errors():
        deleted = get_container().search.purge_chats(chat_ids)
    logger.info(
        f"Purged {deleted} search documents",
        extra={"chats": len(chat_ids), "deleted": deleted},
    )
    return {"deleted": deleted, "chats": len(chat_ids)}
