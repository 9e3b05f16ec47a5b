"""
Durable aggregation queues.

The request path publishes one event per created chat or message. The
batch aggregator drains them on a schedule and turns them into counter
increments.

Queues:
    chat_creation_queue:    payload is the application token (str)
    message_creation_queue: payload is the message envelope (dict)

Transport:
    kombu, the messaging library under Celery. The broker URL comes from
    settings.AGGREGATION_QUEUE_URL (defaults to the Celery broker). Queues
    are declared durable and messages are published persistent.

Delivery:
    At-least-once. drain() acks every message as soon as it is read, so a
    worker crash after the read loses those events, and a redelivered
    message is counted again. There is no idempotency key.

Usage:
    from messaging.queues import AggregationQueue

    queue = AggregationQueue("chat_creation_queue")
    queue.publish(application.token)

    tokens = queue.drain(time_budget=5.0)
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from django.conf import settings
from kombu import Connection
from kombu.entity import PERSISTENT_DELIVERY_MODE

from messaging.constants import QUEUE_CONFIG

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class AggregationQueue:
    """
    Point-to-point durable queue with non-blocking drain.

    Attributes:
        name: Queue name (also used as exchange and routing key)
        url: Broker URL
    """

    def __init__(self, name: str, url: str | None = None):
        self.name = name
        self._url = url

    @property
    def url(self) -> str:
        return self._url or settings.AGGREGATION_QUEUE_URL

    def _connection(self) -> Connection:
        return Connection(self.url)

    def _simple_queue(self, conn: Connection):
        return conn.SimpleQueue(
            self.name,
            serializer="json",
            queue_opts={"durable": True},
            exchange_opts={"durable": True},
        )

    def publish(self, payload: Any) -> bool:
        """
        Publish one event synchronously with persistent delivery.

        Returns:
            True when the broker accepted the message. Failures are logged
            and reported as False, never raised.
        """
        try:
            with self._connection() as conn:
                conn.ensure_connection(max_retries=QUEUE_CONFIG.CONNECT_MAX_RETRIES)
                queue = self._simple_queue(conn)
                try:
                    queue.put(payload, delivery_mode=PERSISTENT_DELIVERY_MODE)
                finally:
                    queue.close()
        except Exception as e:
            logger.error(
                f"Failed to publish to {self.name}: {e}",
                extra={"queue": self.name},
            )
            return False
        return True

    def drain(self, time_budget: float | None = None) -> list:
        """
        Read every available message without blocking.

        Stops when the queue is empty or the time budget is spent. Each
        message is acked immediately after it is read.

        Args:
            time_budget: Seconds allowed for the drain (default from settings)

        Returns:
            Decoded payloads in delivery order.
        """
        budget = (
            time_budget
            if time_budget is not None
            else settings.AGGREGATION_DRAIN_SECONDS
        )
        deadline = time.monotonic() + budget
        payloads = []

        with self._connection() as conn:
            conn.ensure_connection(max_retries=QUEUE_CONFIG.CONNECT_MAX_RETRIES)
            queue = self._simple_queue(conn)
            try:
                while time.monotonic() < deadline:
                    try:
                        message = queue.get(block=False)
                    except queue.Empty:
                        break
                    message.ack()
                    payloads.append(message.payload)
            finally:
                queue.close()

        if payloads:
            logger.debug(
                f"Drained {len(payloads)} events from {self.name}",
                extra={"queue": self.name, "count": len(payloads)},
            )
        return payloads

    def purge(self) -> int:
        """Discard every pending message. Returns the number removed."""
        with self._connection() as conn:
            queue = self._simple_queue(conn)
            try:
                return queue.clear()
            finally:
                queue.close()


def chat_creation_queue() -> AggregationQueue:
    return AggregationQueue(QUEUE_CONFIG.CHAT_CREATION_QUEUE)


def message_creation_queue() -> AggregationQueue:
    return AggregationQueue(QUEUE_CONFIG.MESSAGE_CREATION_QUEUE)
