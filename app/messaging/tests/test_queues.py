"""
Tests for the aggregation queues on the kombu memory transport.

Verifies:
- Publish then drain preserves payloads and order
- Drain stops on an empty queue and respects the time budget
- Broker failures are reported, not raised
"""

from unittest.mock import patch

from freezegun import freeze_time

from messaging.queues import AggregationQueue, chat_creation_queue, message_creation_queue


class TestAggregationQueue:
    def test_factories_use_configured_names(self):
        assert chat_creation_queue().name == "chat_creation_queue"
        assert message_creation_queue().name == "message_creation_queue"

    def test_url_defaults_to_settings(self, settings):
        settings.AGGREGATION_QUEUE_URL = "memory://"

        assert AggregationQueue("q").url == "memory://"

    def test_publish_then_drain_in_order(self):
        queue = chat_creation_queue()
        for token in ("a", "b", "a"):
            assert queue.publish(token) is True

        assert queue.drain() == ["a", "b", "a"]

    def test_dict_payloads_round_trip(self):
        queue = message_creation_queue()
        queue.publish({"chat_id": 3, "number": 1})

        assert queue.drain() == [{"chat_id": 3, "number": 1}]

    def test_drained_messages_are_removed(self):
        queue = chat_creation_queue()
        queue.publish("a")

        queue.drain()

        assert queue.drain() == []

    def test_drain_empty_queue_returns_immediately(self):
        assert chat_creation_queue().drain() == []

    def test_zero_budget_reads_nothing(self):
        queue = chat_creation_queue()
        queue.publish("a")

        assert queue.drain(time_budget=0) == []
        assert queue.drain() == ["a"]

    def test_drain_stops_when_budget_is_spent(self):
        queue = chat_creation_queue()
        for token in ("a", "b", "c"):
            queue.publish(token)

        # Every clock read advances 3s; a 5s budget allows one read
        with freeze_time("2026-01-01", auto_tick_seconds=3):
            drained = queue.drain(time_budget=5)

        remaining = queue.drain()
        assert 0 < len(drained) < 3
        assert drained + remaining == ["a", "b", "c"]

    def test_publish_failure_returns_false(self):
        queue = AggregationQueue("q")

        with patch("messaging.queues.Connection", side_effect=OSError("broker down")):
            assert queue.publish("a") is False
