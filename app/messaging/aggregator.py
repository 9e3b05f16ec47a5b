"""
Batch aggregator for queued count events.

Each cycle turns a burst of "chat created" or "message created" events into
a single counter update per key.

State Machine:
    IDLE ──timer──▶ DRAINING ──▶ AGGREGATING ──▶ COMMITTING ──▶ IDLE

    DRAINING     Non-blocking reads from the queue until it is empty or
                 the time budget runs out. Every message is acked on read.
    AGGREGATING  Coalesce events into {key: occurrences} in memory.
    COMMITTING   One commit(key, n) per key. A failing key is logged and
                 skipped; the remaining keys still commit.

The aggregator holds no state between cycles. Scheduling is external
(Celery beat, see messaging.tasks), so a cycle never blocks waiting for
new work.

Usage:
    aggregator = BatchAggregator(
        name="chat_counts",
        queue=chat_creation_queue(),
        key_for=lambda token: token,
        commit=chat_service.apply_chat_count_increment,
    )
    report = aggregator.run_cycle()
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable
    from typing import Any

    from core.services import ServiceResult
    from messaging.queues import AggregationQueue

logger = logging.getLogger(__name__)


class AggregatorState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    AGGREGATING = "aggregating"
    COMMITTING = "committing"


@dataclass
class AggregationReport:
    """Outcome of one aggregation cycle."""

    drained: int = 0
    keys: int = 0
    committed: dict = field(default_factory=dict)
    failed: dict = field(default_factory=dict)
    skipped: int = 0

    def to_dict(self) -> dict:
        return {
            "drained": self.drained,
            "keys": self.keys,
            "committed": len(self.committed),
            "failed": len(self.failed),
            "skipped": self.skipped,
        }


class BatchAggregator:
    """
    Drain, coalesce and commit queued increment events.

    Args:
        name: Label used in logs
        queue: Source queue
        key_for: Maps an event payload to its aggregation key. Returning
            None drops the event (malformed payload).
        commit: Applies an increment of n for a key. Returns a ServiceResult;
            a failed result or a raised exception marks the key as failed.
        time_budget: Optional override of the drain budget in seconds
    """

    def __init__(
        self,
        name: str,
        queue: AggregationQueue,
        key_for: Callable[[Any], Hashable | None],
        commit: Callable[[Any, int], ServiceResult],
        time_budget: float | None = None,
    ):
        self.name = name
        self.queue = queue
        self.key_for = key_for
        self.commit = commit
        self.time_budget = time_budget
        self.state = AggregatorState.IDLE

    def run_cycle(self) -> AggregationReport:
        report = AggregationReport()
        try:
            self.state = AggregatorState.DRAINING
            events = self.queue.drain(self.time_budget)
            report.drained = len(events)
            if not events:
                return report

            self.state = AggregatorState.AGGREGATING
            tally = self._coalesce(events, report)
            report.keys = len(tally)

            self.state = AggregatorState.COMMITTING
            for key, count in tally.items():
                self._commit_key(key, count, report)
        finally:
            self.state = AggregatorState.IDLE

        logger.info(
            f"Aggregation cycle {self.name} finished",
            extra={"aggregator": self.name, **report.to_dict()},
        )
        return report

    def _coalesce(self, events: list, report: AggregationReport) -> Counter:
        tally: Counter = Counter()
        for event in events:
            try:
                key = self.key_for(event)
            except Exception:
                key = None
            if key is None:
                report.skipped += 1
                logger.warning(
                    f"Dropping malformed event in {self.name}: {event!r}",
                    extra={"aggregator": self.name},
                )
                continue
            tally[key] += 1
        return tally

    def _commit_key(self, key, count: int, report: AggregationReport) -> None:
        try:
            result = self.commit(key, count)
        except Exception as e:
            logger.exception(
                f"Commit failed for {key} in {self.name}: {e}",
                extra={"aggregator": self.name, "key": str(key), "count": count},
            )
            report.failed[key] = count
            return

        if result:
            report.committed[key] = count
        else:
            logger.error(
                f"Commit rejected for {key} in {self.name}: {result.error}",
                extra={
                    "aggregator": self.name,
                    "key": str(key),
                    "count": count,
                    "error_code": result.error_code,
                },
            )
            report.failed[key] = count
