"""
Wiring of messaging services and their collaborators.

Services are built once per process and shared by the views and the Celery
tasks. Tests call get_container.cache_clear() to rebuild with fresh state.

Usage:
    from messaging.dependencies import get_container

    get_container().chats.create_chat(token)
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from messaging.aggregator import BatchAggregator
from messaging.caching import ResponseCache
from messaging.counters import CounterCache
from messaging.queues import chat_creation_queue, message_creation_queue
from messaging.search import MessageSearchIndex
from messaging.services import (
    ApplicationService,
    ChatService,
    MessageSearchService,
    MessageService,
)


def chat_event_key(payload) -> str | None:
    """Aggregation key of a chat_creation_queue event: the application token."""
    if isinstance(payload, str) and payload:
        return payload
    return None


def message_event_key(payload) -> int | None:
    """Aggregation key of a message_creation_queue event: the chat id."""
    if isinstance(payload, dict):
        chat_id = payload.get("chat_id")
        if isinstance(chat_id, int) and not isinstance(chat_id, bool):
            return chat_id
    return None


@dataclass
class ServiceContainer:
    applications: ApplicationService
    chats: ChatService
    messages: MessageService
    search: MessageSearchService
    chat_aggregator: BatchAggregator
    message_aggregator: BatchAggregator


def build_container() -> ServiceContainer:
    response_cache = ResponseCache()
    counter_cache = CounterCache()
    chat_queue = chat_creation_queue()
    message_queue = message_creation_queue()

    chats = ChatService(response_cache, counter_cache, chat_queue)
    messages = MessageService(response_cache, counter_cache, message_queue)

    return ServiceContainer(
        applications=ApplicationService(response_cache, counter_cache),
        chats=chats,
        messages=messages,
        search=MessageSearchService(MessageSearchIndex()),
        chat_aggregator=BatchAggregator(
            name="chat_counts",
            queue=chat_queue,
            key_for=chat_event_key,
            commit=chats.apply_chat_count_increment,
        ),
        message_aggregator=BatchAggregator(
            name="message_counts",
            queue=message_queue,
            key_for=message_event_key,
            commit=messages.apply_message_count_increment,
        ),
    )


@lru_cache(maxsize=1)
def get_container() -> ServiceContainer:
    return build_container()
