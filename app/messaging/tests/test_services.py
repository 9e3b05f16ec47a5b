"""
Tests for the messaging service layer.

Services run against the test database, fakeredis, the kombu memory
transport and a MagicMock search client (see conftest.py). Celery tasks
run eagerly, so on-commit index/purge tasks hit the mock client.

Test Organization:
    - Each service has its own test classes
    - Tests use descriptive names: test_<scenario>_<expected_outcome>
"""

from unittest.mock import patch

import pytest

from core.exceptions import NotFoundError, ValidationError
from messaging.caching import ResponseCache, ResponseVariant
from messaging.counters import CounterCache
from messaging.models import Application, Chat, Message
from messaging.pagination import PageParams
from messaging.queues import chat_creation_queue, message_creation_queue
from messaging.tests.factories import ApplicationFactory, ChatFactory, MessageFactory


# =============================================================================
# ApplicationService
# =============================================================================


class TestApplicationServiceCreate:
    def test_returns_summary_payload(self, db, services):
        payload = services.applications.create_application("Bot")

        assert payload["name"] == "Bot"
        assert payload["chats_count"] == 0
        assert Application.objects.filter(token=payload["token"]).exists()

    def test_payload_is_cached_by_token_and_id(self, db, services):
        payload = services.applications.create_application("Bot")
        application = Application.objects.get(token=payload["token"])
        cache = ResponseCache()

        assert cache.get(ResponseCache.application_key(payload["token"], ResponseVariant.SUMMARY)) == payload
        assert cache.get(ResponseCache.application_ref_key(application.id, ResponseVariant.SUMMARY)) == payload

    def test_invalid_name_raises_and_writes_nothing(self, db, services):
        with pytest.raises(ValidationError):
            services.applications.create_application("ab")

        assert not Application.objects.exists()


class TestApplicationServiceRead:
    def test_get_serves_cached_payload(self, db, services):
        payload = services.applications.create_application("Bot")
        Application.objects.filter(token=payload["token"]).update(name="Changed")

        assert services.applications.get_application(payload["token"])["name"] == "Bot"

    def test_get_miss_reads_database(self, db, services, application):
        payload = services.applications.get_application(application.token)

        assert payload == {"name": "Bot", "token": application.token, "chats_count": 0}

    def test_full_variant_includes_timestamps(self, db, services, application):
        payload = services.applications.get_application(
            application.token, ResponseVariant.FULL
        )

        assert {"created_at", "updated_at"} <= payload.keys()

    def test_get_by_id_round_trips_token(self, db, services, application):
        payload = services.applications.get_application_by_id(application.id)

        assert payload["token"] == application.token

    def test_unknown_token_raises_not_found(self, db, services):
        with pytest.raises(NotFoundError):
            services.applications.get_application("missing")

    def test_list_returns_data_and_meta(self, db, services):
        ApplicationFactory.create_batch(3)

        result = services.applications.list_applications(PageParams(page=2, limit=2))

        assert len(result["data"]) == 1
        assert result["meta"] == {
            "page": 2,
            "limit": 2,
            "totalItems": 3,
            "totalPages": 2,
            "hasNext": False,
            "hasPrev": True,
        }

    def test_create_invalidates_cached_listing(self, db, services):
        services.applications.list_applications(PageParams())
        services.applications.create_application("Bot")

        result = services.applications.list_applications(PageParams())

        assert result["meta"]["totalItems"] == 1


class TestApplicationServiceUpdate:
    def test_rename_refreshes_cache(self, db, services, application):
        services.applications.get_application(application.token)

        services.applications.update_application(application.token, "Renamed")

        assert services.applications.get_application(application.token)["name"] == "Renamed"

    def test_rename_unknown_token_raises(self, db, services):
        with pytest.raises(NotFoundError):
            services.applications.update_application("missing", "Renamed")


class TestApplicationServiceDelete:
    def test_removes_rows_caches_and_counters(
        self, db, services, application, django_capture_on_commit_callbacks
    ):
        chat = ChatFactory(application=application)
        MessageFactory(chat=chat)
        services.applications.get_application(application.token)
        services.chats.get_chat(application.token, chat.number)
        counters = CounterCache()
        counters.set(CounterCache.chats_count_key(application.token), 1)
        counters.set(CounterCache.messages_count_key(chat.id), 1)

        with django_capture_on_commit_callbacks(execute=True):
            services.applications.delete_application(application.token)

        cache = ResponseCache()
        assert not Chat.objects.filter(pk=chat.pk).exists()
        assert not Message.objects.filter(chat_id=chat.id).exists()
        assert cache.get(ResponseCache.application_key(application.token, ResponseVariant.SUMMARY)) is None
        assert cache.get(ResponseCache.chat_key(application.token, chat.number)) is None
        assert counters.get(CounterCache.chats_count_key(application.token)) is None
        assert counters.get(CounterCache.messages_count_key(chat.id)) is None

    def test_purges_search_documents_of_chats(
        self, db, services, application, search_client, django_capture_on_commit_callbacks
    ):
        chat = ChatFactory(application=application)

        with django_capture_on_commit_callbacks(execute=True):
            services.applications.delete_application(application.token)

        query = search_client.delete_by_query.call_args.kwargs["query"]
        assert query == {"terms": {"chatId": [chat.id]}}

    def test_get_after_delete_is_not_found(self, db, services, application):
        services.applications.get_application(application.token)
        services.applications.delete_application(application.token)

        with pytest.raises(NotFoundError):
            services.applications.get_application(application.token)

    def test_delete_unknown_token_raises(self, db, services):
        with pytest.raises(NotFoundError):
            services.applications.delete_application("missing")


# =============================================================================
# ChatService
# =============================================================================


class TestChatServiceCreate:
    def test_numbers_chats_sequentially(self, db, services, application):
        numbers = [services.chats.create_chat(application.token)["number"] for _ in range(3)]

        assert numbers == [1, 2, 3]

    def test_publishes_token_on_commit(
        self, db, services, application, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            services.chats.create_chat(application.token)

        assert chat_creation_queue().drain() == [application.token]

    def test_nothing_published_before_commit(self, db, services, application):
        services.chats.create_chat(application.token)

        assert chat_creation_queue().drain() == []

    def test_chats_count_waits_for_aggregator(
        self, db, services, application, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            services.chats.create_chat(application.token)

        assert services.applications.get_application(application.token)["chats_count"] == 0

        services.chat_aggregator.run_cycle()

        assert services.applications.get_application(application.token)["chats_count"] == 1

    def test_unknown_application_raises(self, db, services):
        with pytest.raises(NotFoundError):
            services.chats.create_chat("missing")


class TestChatServiceRead:
    def test_list_is_ordered_by_number(self, db, services, application):
        for _ in range(3):
            services.chats.create_chat(application.token)

        result = services.chats.list_chats(application.token, PageParams(limit=2))

        assert [c["number"] for c in result["data"]] == [1, 2]
        assert result["meta"]["hasNext"] is True

    def test_create_invalidates_listing(self, db, services, application):
        services.chats.list_chats(application.token, PageParams())
        services.chats.create_chat(application.token)

        result = services.chats.list_chats(application.token, PageParams())

        assert result["meta"]["totalItems"] == 1

    def test_get_unknown_number_raises(self, db, services, application):
        with pytest.raises(NotFoundError):
            services.chats.get_chat(application.token, 9)


class TestChatServiceDelete:
    def test_decrements_chats_count(self, db, services, application):
        services.chats.create_chat(application.token)
        Application.objects.filter(pk=application.pk).update(chats_count=1)

        services.chats.delete_chat(application.token, 1)

        application.refresh_from_db()
        assert application.chats_count == 0

    def test_delete_before_aggregation_converges_to_rows(
        self, db, services, application, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            services.chats.create_chat(application.token)
            services.chats.delete_chat(application.token, 1)

        services.chat_aggregator.run_cycle()

        application.refresh_from_db()
        assert Chat.objects.filter(application=application).count() == 0
        assert application.chats_count == 0

    def test_removes_cached_chat_and_messages(self, db, services, chat):
        token = chat.application.token
        services.chats.get_chat(token, chat.number)
        services.messages.list_messages(token, chat.number, PageParams())

        services.chats.delete_chat(token, chat.number)

        with pytest.raises(NotFoundError):
            services.chats.get_chat(token, chat.number)
        with pytest.raises(NotFoundError):
            services.messages.list_messages(token, chat.number, PageParams())

    def test_deleted_number_is_not_reused(self, db, services, application):
        services.chats.create_chat(application.token)
        services.chats.create_chat(application.token)
        services.chats.delete_chat(application.token, 2)

        assert services.chats.create_chat(application.token)["number"] == 3


class TestChatsCount:
    def test_miss_recounts_and_writes_back(self, db, services, application):
        ChatFactory.create_batch(2, application=application)

        assert services.chats.get_chats_count(application.token) == 2

        application.refresh_from_db()
        assert application.chats_count == 2
        assert CounterCache().get(CounterCache.chats_count_key(application.token)) == 2

    def test_hit_is_served_from_counter(self, db, services, application):
        CounterCache().set(CounterCache.chats_count_key(application.token), 7)

        assert services.chats.get_chats_count(application.token) == 7

    def test_recount_then_aggregation_does_not_double_count(
        self, db, services, application, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            services.chats.create_chat(application.token)

        assert services.chats.get_chats_count(application.token) == 1

        services.chat_aggregator.run_cycle()

        application.refresh_from_db()
        assert application.chats_count == 1
        assert services.chats.get_chats_count(application.token) == 1

    def test_apply_increment_unknown_token_fails_softly(self, db, services):
        result = services.chats.apply_chat_count_increment("missing", 2)

        assert result.success is False
        assert result.error_code == "APPLICATION_NOT_FOUND"


# =============================================================================
# MessageService
# =============================================================================


class TestMessageServiceCreate:
    def test_returns_payload_with_chat_number(self, db, services, chat):
        payload = services.messages.create_message(chat.application.token, chat.number, "hi")

        assert payload["number"] == 1
        assert payload["body"] == "hi"
        assert payload["chat_number"] == chat.number

    def test_publishes_envelope_and_indexes_on_commit(
        self, db, services, chat, search_client, django_capture_on_commit_callbacks
    ):
        token = chat.application.token

        with django_capture_on_commit_callbacks(execute=True):
            services.messages.create_message(token, chat.number, "hi")

        message = Message.objects.get(chat=chat)
        [envelope] = message_creation_queue().drain()
        assert envelope["id"] == message.id
        assert envelope["chat_id"] == chat.id
        assert envelope["application_token"] == token
        assert search_client.index.call_args.kwargs["id"] == str(message.id)

    def test_blank_body_raises(self, db, services, chat):
        with pytest.raises(ValidationError):
            services.messages.create_message(chat.application.token, chat.number, "  ")

        assert not Message.objects.exists()

    def test_unknown_chat_raises(self, db, services, application):
        with pytest.raises(NotFoundError):
            services.messages.create_message(application.token, 5, "hi")

    def test_create_invalidates_message_listing(self, db, services, chat):
        token = chat.application.token
        services.messages.list_messages(token, chat.number, PageParams())
        services.messages.create_message(token, chat.number, "hi")

        result = services.messages.list_messages(token, chat.number, PageParams())

        assert result["meta"]["totalItems"] == 1


class TestMessageServiceList:
    def test_sort_by_descending_number(self, db, services, chat):
        token = chat.application.token
        for body in ("a", "b", "c"):
            services.messages.create_message(token, chat.number, body)

        result = services.messages.list_messages(token, chat.number, PageParams(), "-number")

        assert [m["body"] for m in result["data"]] == ["c", "b", "a"]

    def test_invalid_sort_raises_before_lookup(self, db, services):
        with pytest.raises(ValidationError) as exc_info:
            services.messages.list_messages("missing", 1, PageParams(), "body")

        assert exc_info.value.error_code == "INVALID_SORT"


class TestMessagesCount:
    def test_miss_recounts_and_writes_back(self, db, services, chat):
        MessageFactory.create_batch(3, chat=chat)

        assert services.messages.get_messages_count(chat.application.token, chat.number) == 3

        chat.refresh_from_db()
        assert chat.messages_count == 3

    def test_apply_increment_refreshes_chat_payload(self, db, services, chat):
        token = chat.application.token
        MessageFactory.create_batch(4, chat=chat)
        services.chats.get_chat(token, chat.number)

        result = services.messages.apply_message_count_increment(chat.id, 4)

        assert result.data == 4
        assert services.chats.get_chat(token, chat.number)["messages_count"] == 4

    def test_recount_then_aggregation_does_not_double_count(
        self, db, services, chat, django_capture_on_commit_callbacks
    ):
        token = chat.application.token
        with django_capture_on_commit_callbacks(execute=True):
            services.messages.create_message(token, chat.number, "hi")

        assert services.messages.get_messages_count(token, chat.number) == 1

        services.message_aggregator.run_cycle()

        chat.refresh_from_db()
        assert chat.messages_count == 1
        assert services.messages.get_messages_count(token, chat.number) == 1

    def test_apply_increment_unknown_chat_fails_softly(self, db, services):
        result = services.messages.apply_message_count_increment(424242, 1)

        assert result.success is False
        assert result.error_code == "CHAT_NOT_FOUND"


# =============================================================================
# MessageSearchService
# =============================================================================


class TestMessageSearchService:
    def test_returns_hits_for_chat(self, db, services, chat, search_client):
        search_client.search.return_value = {
            "hits": {
                "total": {"value": 1},
                "hits": [{"_source": {"id": 5, "number": 1, "body": "hello", "chatId": chat.id}}],
            }
        }

        result = services.search.search_messages(
            chat.application.token, chat.number, "hello", PageParams()
        )

        assert [hit["id"] for hit in result["data"]] == [5]
        assert result["meta"]["totalItems"] == 1
        query = search_client.search.call_args.kwargs["query"]
        assert query["bool"]["filter"] == [{"term": {"chatId": chat.id}}]

    def test_wildcard_mode_uses_wildcard_query(self, db, services, chat, search_client):
        services.search.search_messages(
            chat.application.token, chat.number, "ell", PageParams(), mode="wildcard"
        )

        query = search_client.search.call_args.kwargs["query"]
        assert "wildcard" in query["bool"]["must"][0]

    def test_cluster_failure_returns_empty_page(self, db, services, chat, search_client):
        search_client.search.side_effect = ConnectionError("cluster down")

        result = services.search.search_messages(
            chat.application.token, chat.number, "hello", PageParams()
        )

        assert result["data"] == []
        assert result["meta"]["totalItems"] == 0

    @pytest.mark.parametrize("query, mode", [("", "match"), ("   ", "match"), ("x", "fuzzy")])
    def test_invalid_input_raises(self, db, services, chat, query, mode):
        with pytest.raises(ValidationError):
            services.search.search_messages(
                chat.application.token, chat.number, query, PageParams(), mode=mode
            )

    def test_index_missing_message_is_skipped(self, db, services, search_client):
        assert services.search.index_message(424242) is False
        search_client.index.assert_not_called()

    def test_reindex_chat(self, db, services, chat, search_client):
        MessageFactory.create_batch(2, chat=chat)
        search_client.indices.exists.return_value = True

        with patch("messaging.search.helpers.bulk", return_value=(2, [])) as bulk:
            assert services.search.reindex(chat.id) == 2

        assert len(list(bulk.call_args.args[1])) == 2
