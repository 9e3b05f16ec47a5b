"""
Service layer for the messaging API.

Services orchestrate the repositories (system of record), the response and
counter caches, the aggregation queues and the search index.

Services:
    ApplicationService: Create, read, rename and delete applications
    ChatService: Create, list, read and delete chats; chats_count upkeep
    MessageService: Create and list messages; messages_count upkeep
    MessageSearchService: Query and maintain the message search index

Write Path:
    1. Mutate the database inside transaction.atomic()
    2. Register transaction.on_commit callbacks that publish the count event
       and enqueue search indexing, so rolled-back writes emit nothing
    3. After the block: invalidate or refresh cache entries

Read Path:
    Response cache first; on a miss read the repositories, format with the
    DRF serializers and cache the payload.

Counts:
    chats_count / messages_count columns only move through the batch
    aggregator (apply_*_increment) and through deletes. get_*_count reads
    the counter cache and, on a miss, recounts rows, writes the true value
    back to the column and reseeds the counter. Every column change is
    bounded by the live row count, so an event applied after a reconcile
    or after the matching delete settles on the rows instead of drifting.
    The counter cache is then overwritten with the committed column value.

Usage:
    from messaging.dependencies import get_container

    services = get_container()
    app = services.applications.create_application("Bot")
    chat = services.chats.create_chat(app["token"])
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import transaction

from core.exceptions import NotFoundError, ValidationError
from core.helpers import calculate_pagination
from core.services import BaseService, ServiceResult
from messaging.caching import ResponseCache, ResponseVariant
from messaging.constants import MESSAGE_CONFIG, SEARCH_CONFIG
from messaging.counters import CounterCache
from messaging.repositories import (
    ApplicationRepository,
    ChatRepository,
    MessageRepository,
)
from messaging.search import build_message_document
from messaging.serializers import (
    ChatSerializer,
    MessageSerializer,
    application_payload,
)
from messaging.tasks import index_message, purge_chat_documents

if TYPE_CHECKING:
    from messaging.models import Application, Message
    from messaging.pagination import PageParams
    from messaging.queues import AggregationQueue
    from messaging.search import MessageSearchIndex

logger = logging.getLogger(__name__)


def enqueue_task(task, *args) -> None:
    """Send a Celery task, logging instead of raising when the broker is down."""
    try:
        task.delay(*args)
    except Exception as e:
        logger.error(
            f"Failed to enqueue {task.name}: {e}",
            extra={"task": task.name},
        )


def build_message_envelope(message: Message, token: str, chat_number: int) -> dict:
    """Payload published to message_creation_queue."""
    return {
        "id": message.id,
        "number": message.number,
        "body": message.body,
        "chat_id": message.chat_id,
        "chat_number": chat_number,
        "application_token": token,
        "created_at": message.created_at.isoformat(),
    }


def paginated(data: list, total: int, page: PageParams) -> dict:
    return {
        "data": data,
        "meta": calculate_pagination(total=total, page=page.page, per_page=page.limit),
    }


# =============================================================================
# Application Service
# =============================================================================


class ApplicationService(BaseService):
    """
    Service for application lifecycle.

    Handles:
    - Creation with automatic token assignment
    - Cached reads by token and by internal id (reference keys)
    - Renaming with cache refresh
    - Cascading deletion with cache, counter and search cleanup
    """

    def __init__(self, response_cache: ResponseCache, counter_cache: CounterCache):
        self.response_cache = response_cache
        self.counter_cache = counter_cache

    def _cache_application(
        self, application: Application, payload: dict, variant: ResponseVariant, ttl: int
    ) -> None:
        key = ResponseCache.application_key(application.token, variant)
        self.response_cache.set(key, payload, ttl)
        self.response_cache.set_reference(
            ResponseCache.application_ref_key(application.id, variant), key, ttl
        )

    def create_application(self, name) -> dict:
        """
        Create an application.

        Returns:
            {name, token, chats_count}

        Raises:
            ValidationError: Blank name or length outside 3..50
        """
        application = ApplicationRepository.create(name)
        payload = application_payload(application, ResponseVariant.SUMMARY)

        self._cache_application(
            application,
            payload,
            ResponseVariant.SUMMARY,
            settings.RESPONSE_CACHE_CREATE_TTL,
        )
        self.response_cache.invalidate_prefix(ResponseCache.application_list_prefix())

        self.get_logger().info(
            "Created application",
            extra={"application_id": application.id},
        )
        return payload

    def get_application(
        self, token: str, variant: ResponseVariant = ResponseVariant.SUMMARY
    ) -> dict:
        key = ResponseCache.application_key(token, variant)
        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        application = ApplicationRepository.get_by_token(token)
        payload = application_payload(application, variant)
        self._cache_application(
            application, payload, variant, settings.RESPONSE_CACHE_READ_TTL
        )
        return payload

    def get_application_by_id(
        self, application_id: int, variant: ResponseVariant = ResponseVariant.SUMMARY
    ) -> dict:
        """Internal lookup by id, served through the reference key."""
        cached = self.response_cache.get(
            ResponseCache.application_ref_key(application_id, variant)
        )
        if cached is not None:
            return cached

        application = ApplicationRepository.get_by_id(application_id)
        payload = application_payload(application, variant)
        self._cache_application(
            application, payload, variant, settings.RESPONSE_CACHE_READ_TTL
        )
        return payload

    def list_applications(self, page: PageParams) -> dict:
        key = ResponseCache.application_list_key(page.page, page.limit)
        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        applications, total = ApplicationRepository.page(page.offset, page.limit)
        result = paginated(
            [application_payload(a, ResponseVariant.SUMMARY) for a in applications],
            total,
            page,
        )
        self.response_cache.set(key, result, settings.RESPONSE_CACHE_READ_TTL)
        return result

    def update_application(self, token: str, name) -> dict:
        """
        Rename an application.

        Raises:
            NotFoundError: Unknown token
            ValidationError: Invalid name
        """
        application = ApplicationRepository.update(token, name=name)
        payload = application_payload(application, ResponseVariant.SUMMARY)

        self.response_cache.invalidate_application(token)
        self._cache_application(
            application,
            payload,
            ResponseVariant.SUMMARY,
            settings.RESPONSE_CACHE_READ_TTL,
        )

        self.get_logger().info(
            "Renamed application",
            extra={"application_id": application.id},
        )
        return payload

    def delete_application(self, token: str) -> None:
        """
        Delete an application with its chats and messages.

        Every cache entry, counter and search document of the subtree is
        removed. Search cleanup is asynchronous.
        """
        deleted = ApplicationRepository.delete(token)

        self.response_cache.invalidate_application(token)
        self.response_cache.invalidate_prefix(
            ResponseCache.application_scope_prefix(token)
        )
        self.response_cache.delete(
            *(
                ResponseCache.application_ref_key(deleted.id, variant)
                for variant in ResponseVariant
            )
        )

        self.counter_cache.delete(CounterCache.chats_count_key(token))
        for chat_id in deleted.chat_ids:
            self.counter_cache.delete(CounterCache.messages_count_key(chat_id))

        if deleted.chat_ids:
            transaction.on_commit(
                partial(enqueue_task, purge_chat_documents, deleted.chat_ids)
            )

        self.get_logger().info(
            "Deleted application",
            extra={"application_id": deleted.id, "chats": len(deleted.chat_ids)},
        )


# =============================================================================
# Chat Service
# =============================================================================


class ChatService(BaseService):
    """
    Service for chats and the chats_count aggregate.

    Chat creation does not touch chats_count. It publishes the application
    token to chat_creation_queue, and the batch aggregator applies the
    increment later.
    """

    def __init__(
        self,
        response_cache: ResponseCache,
        counter_cache: CounterCache,
        queue: AggregationQueue,
    ):
        self.response_cache = response_cache
        self.counter_cache = counter_cache
        self.queue = queue

    def create_chat(self, token: str) -> dict:
        """
        Create the next chat of an application.

        Raises:
            NotFoundError: Unknown token
        """
        with self.atomic():
            application = ApplicationRepository.get_by_token(token)
            chat = ChatRepository.create(application)
            transaction.on_commit(partial(self.queue.publish, application.token))

        payload = dict(ChatSerializer(chat).data)
        self.response_cache.invalidate_prefix(ResponseCache.chat_list_prefix(token))
        self.response_cache.set(
            ResponseCache.chat_key(token, chat.number),
            payload,
            settings.RESPONSE_CACHE_CREATE_TTL,
        )

        self.get_logger().info(
            "Created chat",
            extra={"application_id": application.id, "number": chat.number},
        )
        return payload

    def list_chats(self, token: str, page: PageParams) -> dict:
        key = ResponseCache.chat_list_key(token, page.page, page.limit)
        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        application = ApplicationRepository.get_by_token(token)
        chats, total = ChatRepository.page(application, page.offset, page.limit)
        result = paginated(ChatSerializer(chats, many=True).data, total, page)
        self.response_cache.set(key, result, settings.RESPONSE_CACHE_READ_TTL)
        return result

    def get_chat(self, token: str, number: int) -> dict:
        key = ResponseCache.chat_key(token, number)
        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        application = ApplicationRepository.get_by_token(token)
        chat = ChatRepository.get_by_number(application, number)
        payload = dict(ChatSerializer(chat).data)
        self.response_cache.set(key, payload, settings.RESPONSE_CACHE_READ_TTL)
        return payload

    def delete_chat(self, token: str, number: int) -> None:
        """
        Delete a chat and its messages, decrementing chats_count.

        Raises:
            NotFoundError: Unknown token or chat number
        """
        with self.atomic():
            application = ApplicationRepository.get_by_token(token)
            chat_id = ChatRepository.delete(application, number)
            chats_count = ApplicationRepository.increment_chats_count(token, -1)
            transaction.on_commit(partial(enqueue_task, purge_chat_documents, [chat_id]))

        self.counter_cache.refresh(CounterCache.chats_count_key(token), chats_count)
        self.counter_cache.delete(CounterCache.messages_count_key(chat_id))

        self.response_cache.delete(ResponseCache.chat_key(token, number))
        self.response_cache.invalidate_prefix(ResponseCache.chat_scope_prefix(token, number))
        self.response_cache.invalidate_prefix(ResponseCache.chat_list_prefix(token))
        self.response_cache.invalidate_application(token)

        self.get_logger().info(
            "Deleted chat",
            extra={"application_id": application.id, "number": number},
        )

    def get_chats_count(self, token: str) -> int:
        """
        Read chats_count through the counter cache.

        On a miss, the count is recomputed from rows, written back to the
        column when it drifted, and seeded into the cache.
        """
        key = CounterCache.chats_count_key(token)
        value = self.counter_cache.get(key)
        if value is not None:
            return value

        application = ApplicationRepository.get_by_token(token)
        value = ApplicationRepository.count_chats(application)
        if value != application.chats_count:
            self.get_logger().info(
                "Reconciled chats_count",
                extra={
                    "application_id": application.id,
                    "stored": application.chats_count,
                    "actual": value,
                },
            )
            ApplicationRepository.set_chats_count(application.id, value)
            self.response_cache.invalidate_application(token)
        self.counter_cache.set(key, value)
        return value

    def apply_chat_count_increment(self, token: str, delta: int) -> ServiceResult[int]:
        """
        Commit step of the chat count aggregator.

        Returns:
            ServiceResult with the new chats_count, or a failure for this
            token only.
        """
        try:
            new_value = ApplicationRepository.increment_chats_count(token, delta)
        except NotFoundError as e:
            return self.handle_exception(
                e, f"Dropping chats_count +{delta} for deleted application", logging.WARNING
            )
        except Exception as e:
            return self.handle_exception(e, f"Applying chats_count +{delta}")

        self.counter_cache.refresh(CounterCache.chats_count_key(token), new_value)
        self.response_cache.invalidate_application(token)
        return ServiceResult.success(new_value)


# =============================================================================
# Message Service
# =============================================================================


class MessageService(BaseService):
    """
    Service for messages and the messages_count aggregate.

    Message creation publishes an envelope to message_creation_queue (for
    messages_count) and enqueues index_message (for search), both on commit.
    """

    def __init__(
        self,
        response_cache: ResponseCache,
        counter_cache: CounterCache,
        queue: AggregationQueue,
    ):
        self.response_cache = response_cache
        self.counter_cache = counter_cache
        self.queue = queue

    def create_message(self, token: str, number: int, body) -> dict:
        """
        Append a message to a chat.

        Raises:
            NotFoundError: Unknown token or chat number
            ValidationError: Blank body
        """
        MessageRepository.validate_body(body)

        with self.atomic():
            application = ApplicationRepository.get_by_token(token)
            chat = ChatRepository.get_by_number(application, number)
            message = MessageRepository.create(chat, body)

            envelope = build_message_envelope(message, application.token, chat.number)
            transaction.on_commit(partial(self.queue.publish, envelope))
            transaction.on_commit(partial(enqueue_task, index_message, message.id))

        self.response_cache.invalidate_prefix(ResponseCache.chat_scope_prefix(token, number))

        self.get_logger().info(
            "Created message",
            extra={"chat_id": chat.id, "number": message.number},
        )
        return dict(MessageSerializer(message).data)

    def list_messages(
        self,
        token: str,
        number: int,
        page: PageParams,
        sort_by: str = MESSAGE_CONFIG.DEFAULT_SORT,
    ) -> dict:
        """
        Raises:
            ValidationError: Unsupported sort_by
            NotFoundError: Unknown token or chat number
        """
        MessageRepository.validate_sort(sort_by)

        key = ResponseCache.message_list_key(token, number, page.page, page.limit, sort_by)
        cached = self.response_cache.get(key)
        if cached is not None:
            return cached

        application = ApplicationRepository.get_by_token(token)
        chat = ChatRepository.get_by_number(application, number)
        messages, total = MessageRepository.page(chat, page.offset, page.limit, sort_by)
        result = paginated(MessageSerializer(messages, many=True).data, total, page)
        self.response_cache.set(key, result, settings.RESPONSE_CACHE_READ_TTL)
        return result

    def get_messages_count(self, token: str, number: int) -> int:
        """Read messages_count through the counter cache (see ChatService.get_chats_count)."""
        application = ApplicationRepository.get_by_token(token)
        chat = ChatRepository.get_by_number(application, number)

        key = CounterCache.messages_count_key(chat.id)
        value = self.counter_cache.get(key)
        if value is not None:
            return value

        value = ChatRepository.count_messages(chat)
        if value != chat.messages_count:
            self.get_logger().info(
                "Reconciled messages_count",
                extra={"chat_id": chat.id, "stored": chat.messages_count, "actual": value},
            )
            ChatRepository.set_messages_count(chat.id, value)
            self.response_cache.delete(ResponseCache.chat_key(token, number))
            self.response_cache.invalidate_prefix(ResponseCache.chat_list_prefix(token))
        self.counter_cache.set(key, value)
        return value

    def apply_message_count_increment(self, chat_id: int, delta: int) -> ServiceResult[int]:
        """Commit step of the message count aggregator."""
        try:
            new_value = ChatRepository.increment_messages_count(chat_id, delta)
            chat = ChatRepository.get_by_id(chat_id)
        except NotFoundError as e:
            return self.handle_exception(
                e, f"Dropping messages_count +{delta} for deleted chat", logging.WARNING
            )
        except Exception as e:
            return self.handle_exception(e, f"Applying messages_count +{delta}")

        token = chat.application.token
        self.counter_cache.refresh(CounterCache.messages_count_key(chat_id), new_value)
        self.response_cache.delete(ResponseCache.chat_key(token, chat.number))
        self.response_cache.invalidate_prefix(ResponseCache.chat_list_prefix(token))
        return ServiceResult.success(new_value)


# =============================================================================
# Search Service
# =============================================================================


class MessageSearchService(BaseService):
    """
    Service for message search.

    Handles:
    - Match and wildcard queries scoped to one chat
    - Single-message indexing (called by the index_message task)
    - Bulk reindexing and purge of deleted chats

    Query failures degrade to an empty page. Indexing failures propagate so
    the calling task can retry.
    """

    def __init__(self, search_index: MessageSearchIndex):
        self.search_index = search_index

    def search_messages(
        self,
        token: str,
        number: int,
        query: str,
        page: PageParams,
        mode: str = SEARCH_CONFIG.MODE_MATCH,
    ) -> dict:
        """
        Raises:
            ValidationError: Blank query or unknown mode
            NotFoundError: Unknown token or chat number
        """
        if not query or not query.strip():
            raise ValidationError("Search query is required", error_code="INVALID_QUERY")
        if mode not in SEARCH_CONFIG.MODES:
            raise ValidationError(
                f"mode must be one of {', '.join(SEARCH_CONFIG.MODES)}",
                error_code="INVALID_SEARCH_MODE",
            )

        application = ApplicationRepository.get_by_token(token)
        chat = ChatRepository.get_by_number(application, number)

        run = (
            self.search_index.wildcard_search
            if mode == SEARCH_CONFIG.MODE_WILDCARD
            else self.search_index.search
        )
        try:
            documents, total = run(
                query.strip(), chat_id=chat.id, offset=page.offset, limit=page.limit
            )
        except Exception as e:
            self.get_logger().warning(
                f"Search unavailable, returning empty page: {e}",
                extra={"chat_id": chat.id, "mode": mode},
            )
            documents, total = [], 0

        return paginated(documents, total, page)

    def index_message(self, message_id: int) -> bool:
        """
        Write one message to the index.

        Returns:
            False when the message no longer exists, True once indexed.
        """
        try:
            message = MessageRepository.get_by_id(message_id)
        except NotFoundError:
            self.get_logger().info(
                "Skipping index of deleted message",
                extra={"message_id": message_id},
            )
            return False
        self.search_index.index_document(build_message_document(message))
        return True

    def reindex(self, chat_id: int | None = None) -> int:
        """Bulk index every message (optionally of one chat)."""
        self.search_index.ensure_index()
        documents = (
            build_message_document(message)
            for message in MessageRepository.iter_for_indexing(chat_id)
        )
        return self.search_index.bulk_index(documents)

    def purge_chats(self, chat_ids: list[int]) -> int:
        return self.search_index.delete_chat_documents(chat_ids)
