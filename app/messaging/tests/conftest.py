"""
Test configuration and fixtures for messaging tests.

This module provides:
- An in-process Redis (fakeredis) behind every get_redis_connection call
- Empty aggregation queues (kombu memory transport) for every test
- A service container whose search index talks to a MagicMock client
- Application, chat and message fixtures
- An unauthenticated API client

Usage:
    def test_example(api_client, application):
        response = api_client.get(f"/api/v1/applications/{application.token}/")
        assert response.status_code == 200
"""

from unittest.mock import MagicMock, patch

import fakeredis
import pytest
from rest_framework.test import APIClient

from messaging.dependencies import get_container
from messaging.queues import chat_creation_queue, message_creation_queue
from messaging.search import MessageSearchIndex
from messaging.tests.factories import ApplicationFactory, ChatFactory, MessageFactory


# =============================================================================
# Infrastructure Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def redis_client():
    """Fresh fakeredis server shared by the counter cache, response cache and health check."""
    client = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    with (
        patch("messaging.counters.get_redis_connection", return_value=client),
        patch("messaging.caching.get_redis_connection", return_value=client),
        patch("core.views.get_redis_connection", return_value=client),
    ):
        yield client


@pytest.fixture(autouse=True)
def empty_queues():
    """Start and finish every test with empty aggregation queues."""
    queues = [chat_creation_queue(), message_creation_queue()]
    for queue in queues:
        queue.purge()
    yield
    for queue in queues:
        queue.purge()


@pytest.fixture
def search_client():
    """MagicMock standing in for the Elasticsearch client."""
    client = MagicMock(name="Elasticsearch")
    client.search.return_value = {"hits": {"total": {"value": 0}, "hits": []}}
    client.delete_by_query.return_value = {"deleted": 0}
    return client


@pytest.fixture(autouse=True)
def services(search_client):
    """
    Service container rebuilt for each test.

    Views and tasks resolve the same instance through get_container().
    """
    get_container.cache_clear()
    with patch(
        "messaging.dependencies.MessageSearchIndex",
        side_effect=lambda: MessageSearchIndex(client=search_client),
    ):
        container = get_container()
    yield container
    get_container.cache_clear()


@pytest.fixture
def api_client():
    return APIClient()


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def application(db):
    return ApplicationFactory(name="Bot")


@pytest.fixture
def chat(db, application):
    return ChatFactory(application=application, number=1)


@pytest.fixture
def message(db, chat):
    return MessageFactory(chat=chat, number=1, body="hello world")
