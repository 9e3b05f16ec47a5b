"""
Tests for the persistent store adapter.

Test Organization:
    - Sequencing: numbers start at 1, are gapless on create, never reused
    - Validation: names and bodies are checked before any write
    - Counters: deltas are bounded by the live rows and report unknown parents
    - Concurrency: parallel creates never share a number (PostgreSQL only)
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from core.exceptions import NotFoundError, ValidationError
from messaging.models import Application, Chat, Message
from messaging.repositories import (
    ApplicationRepository,
    ChatRepository,
    MessageRepository,
    next_sequence_number,
)
from messaging.tests.factories import ApplicationFactory, ChatFactory, MessageFactory


# =============================================================================
# Applications
# =============================================================================


class TestApplicationRepository:
    def test_create_trims_name_and_assigns_token(self, db):
        application = ApplicationRepository.create("  Bot  ")

        assert application.name == "Bot"
        assert ApplicationRepository.get_by_token(application.token).id == application.id

    @pytest.mark.parametrize("name", ["", "   ", None, "ab", "x" * 51])
    def test_create_rejects_invalid_names(self, db, name):
        with pytest.raises(ValidationError) as exc_info:
            ApplicationRepository.create(name)

        assert exc_info.value.error_code == "INVALID_NAME"
        assert not Application.objects.exists()

    def test_get_by_token_unknown_raises_not_found(self, db):
        with pytest.raises(NotFoundError) as exc_info:
            ApplicationRepository.get_by_token("missing")

        assert exc_info.value.error_code == "APPLICATION_NOT_FOUND"

    def test_update_renames(self, db, application):
        updated = ApplicationRepository.update(application.token, name="Renamed")

        application.refresh_from_db()
        assert updated.name == application.name == "Renamed"

    def test_update_unknown_token_raises_not_found(self, db):
        with pytest.raises(NotFoundError):
            ApplicationRepository.update("missing", name="Valid")

    def test_delete_reports_chat_ids(self, db, application):
        chats = ChatFactory.create_batch(2, application=application)

        deleted = ApplicationRepository.delete(application.token)

        assert sorted(deleted.chat_ids) == sorted(c.id for c in chats)
        assert deleted.token == application.token
        assert not Application.objects.filter(pk=application.pk).exists()

    def test_page_orders_by_id_and_reports_total(self, db):
        apps = ApplicationFactory.create_batch(5)

        page, total = ApplicationRepository.page(offset=2, limit=2)

        assert total == 5
        assert [a.id for a in page] == [apps[2].id, apps[3].id]

    def test_increment_chats_count_adds_delta(self, db, application):
        ChatFactory.create_batch(5, application=application)

        assert ApplicationRepository.increment_chats_count(application.token, 3) == 3
        assert ApplicationRepository.increment_chats_count(application.token, 2) == 5

    def test_increment_chats_count_is_bounded_by_chat_rows(self, db, application):
        ChatFactory.create_batch(2, application=application)

        assert ApplicationRepository.increment_chats_count(application.token, 4) == 2

    def test_decrement_before_increment_settles_on_rows(self, db, application):
        # A chat created and deleted before its creation event was applied
        ApplicationRepository.increment_chats_count(application.token, -1)

        assert ApplicationRepository.increment_chats_count(application.token, 1) == 0
        application.refresh_from_db()
        assert application.chats_count == 0

    def test_increment_chats_count_unknown_token_raises(self, db):
        with pytest.raises(NotFoundError):
            ApplicationRepository.increment_chats_count("missing", 1)


# =============================================================================
# Sequencing
# =============================================================================


class TestChatSequencing:
    def test_numbers_start_at_one_and_increase(self, db, application):
        numbers = [ChatRepository.create(application).number for _ in range(3)]

        assert numbers == [1, 2, 3]

    def test_numbers_are_scoped_per_application(self, db):
        first = ApplicationFactory()
        second = ApplicationFactory()

        ChatRepository.create(first)
        ChatRepository.create(first)

        assert ChatRepository.create(second).number == 1

    def test_deleted_number_is_never_reused(self, db, application):
        ChatRepository.create(application)
        ChatRepository.create(application)
        ChatRepository.delete(application, 2)

        assert ChatRepository.create(application).number == 3

    def test_mark_catches_up_with_rows_inserted_directly(self, db, application):
        ChatFactory(application=application, number=7)

        assert ChatRepository.create(application).number == 8

    def test_high_water_mark_is_persisted(self, db, application):
        ChatRepository.create(application)

        application.refresh_from_db()
        assert application.last_chat_number == 1

    def test_creating_chat_does_not_touch_chats_count(self, db, application):
        ChatRepository.create(application)

        application.refresh_from_db()
        assert application.chats_count == 0


class TestMessageSequencing:
    def test_numbers_start_at_one_per_chat(self, db, application):
        chat_a = ChatRepository.create(application)
        chat_b = ChatRepository.create(application)

        a_numbers = [MessageRepository.create(chat_a, f"a{i}").number for i in range(3)]
        b_number = MessageRepository.create(chat_b, "b").number

        assert a_numbers == [1, 2, 3]
        assert b_number == 1

    def test_next_sequence_number_advances_chat_mark(self, db, chat):
        assert next_sequence_number(chat) == 1
        assert next_sequence_number(chat) == 2
        assert chat.last_message_number == 2

    def test_message_carries_application(self, db, chat):
        message = MessageRepository.create(chat, "hello")

        assert message.application_id == chat.application_id

    @pytest.mark.parametrize("body", ["", "   ", None])
    def test_blank_body_is_rejected(self, db, chat, body):
        with pytest.raises(ValidationError) as exc_info:
            MessageRepository.create(chat, body)

        assert exc_info.value.error_code == "INVALID_BODY"
        assert not Message.objects.exists()


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(
    connection.vendor != "postgresql",
    reason="row locks need PostgreSQL",
)
class TestConcurrentSequencing:
    """Parallel creates under one parent serialize on the parent row lock."""

    WORKERS = 8

    def _run_parallel(self, fn):
        def worker(_):
            try:
                return fn()
            finally:
                connection.close()

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            return list(pool.map(worker, range(self.WORKERS * 2)))

    def test_parallel_chat_creates_get_distinct_numbers(self):
        application = ApplicationFactory()

        numbers = self._run_parallel(
            lambda: ChatRepository.create(Application.objects.get(pk=application.pk)).number
        )

        assert sorted(numbers) == list(range(1, self.WORKERS * 2 + 1))

    def test_parallel_message_creates_get_distinct_numbers(self):
        chat = ChatFactory(number=1)

        numbers = self._run_parallel(
            lambda: MessageRepository.create(Chat.objects.get(pk=chat.pk), "hi").number
        )

        assert sorted(numbers) == list(range(1, self.WORKERS * 2 + 1))


# =============================================================================
# Chats and messages
# =============================================================================


class TestChatRepository:
    def test_get_by_number_unknown_raises(self, db, application):
        with pytest.raises(NotFoundError) as exc_info:
            ChatRepository.get_by_number(application, 99)

        assert exc_info.value.error_code == "CHAT_NOT_FOUND"

    def test_delete_returns_id_and_cascades(self, db, chat):
        MessageFactory.create_batch(2, chat=chat)

        chat_id = ChatRepository.delete(chat.application, chat.number)

        assert chat_id == chat.id
        assert not Message.objects.filter(chat_id=chat_id).exists()

    def test_increment_messages_count_is_bounded_by_message_rows(self, db, chat):
        MessageFactory.create_batch(3, chat=chat)
        Chat.objects.filter(pk=chat.pk).update(messages_count=3)

        assert ChatRepository.increment_messages_count(chat.id, 2) == 3
        assert ChatRepository.increment_messages_count(chat.id, -5) == 0

    def test_increment_messages_count_unknown_chat_raises(self, db):
        with pytest.raises(NotFoundError):
            ChatRepository.increment_messages_count(424242, 1)

    def test_count_messages_counts_rows(self, db, chat):
        MessageFactory.create_batch(4, chat=chat)

        assert ChatRepository.count_messages(chat) == 4


class TestMessageRepositoryPage:
    @pytest.fixture
    def messages(self, chat):
        return [MessageFactory(chat=chat, number=n, body=f"m{n}") for n in (1, 2, 3)]

    def test_default_sort_is_ascending_number(self, db, chat, messages):
        page, total = MessageRepository.page(chat, 0, 10, "number")

        assert total == 3
        assert [m.number for m in page] == [1, 2, 3]

    def test_descending_sort(self, db, chat, messages):
        page, _ = MessageRepository.page(chat, 0, 2, "-number")

        assert [m.number for m in page] == [3, 2]

    def test_unknown_sort_is_rejected(self, db, chat):
        with pytest.raises(ValidationError) as exc_info:
            MessageRepository.page(chat, 0, 10, "body")

        assert exc_info.value.error_code == "INVALID_SORT"

    def test_iter_for_indexing_filters_by_chat(self, db, chat, messages):
        MessageFactory()  # another chat

        ids = [m.id for m in MessageRepository.iter_for_indexing(chat_id=chat.id)]

        assert ids == [m.id for m in messages]
