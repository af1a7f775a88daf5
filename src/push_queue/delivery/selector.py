"""
Module: delivery/selector.py
Description: Selection of due, retryable queue items.

The store pushes the eligibility predicate into its query and returns
candidates page by page; the selector re-applies eligibility, orders
by priority and schedule, and truncates to the batch size.
"""

from datetime import datetime
from typing import Iterable, List, Tuple

from push_queue.models.queue_item import QueueItem
from push_queue.utils.logger import get_logger

logger = get_logger(__name__)


def selection_key(item: QueueItem) -> Tuple[int, datetime, str]:
    """Priority descending, then earliest due, then id."""
    return (-item.priority, item.scheduled_for, item.id)


def select_eligible(
    candidates: Iterable[QueueItem],
    now: datetime,
    limit: int
) -> List[QueueItem]:
    """
    Filter candidates to eligible items and return the first ``limit``.

    Duplicate ids (an item seen in more than one candidate page) are
    collapsed to a single entry.
    """
    eligible = {}
    for item in candidates:
        if item.is_due(now) and item.id not in eligible:
            eligible[item.id] = item

    return sorted(eligible.values(), key=selection_key)[:limit]


class Selector:
    """Reads up to ``batch_size`` eligible items from the queue store."""

    def __init__(
        self,
        store,
        batch_size: int = 10,
        candidate_fetch_size: int = 20,
        max_candidate_pages: int = 5
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if candidate_fetch_size < 1:
            raise ValueError("candidate_fetch_size must be at least 1")
        if max_candidate_pages < 1:
            raise ValueError("max_candidate_pages must be at least 1")

        self.store = store
        self.batch_size = batch_size
        self.candidate_fetch_size = candidate_fetch_size
        self.max_candidate_pages = max_candidate_pages

    async def select(self, now: datetime) -> List[QueueItem]:
        """
        Return due items in dispatch order.

        Raises:
            QueueStoreError: If the store cannot be queried
        """
        candidates = await self.store.fetch_due_candidates(
            now=now,
            limit=self.batch_size,
            page_size=self.candidate_fetch_size,
            max_pages=self.max_candidate_pages
        )
        selected = select_eligible(candidates, now, self.batch_size)

        logger.info(
            "Queue items selected",
            candidates=len(candidates),
            selected=len(selected),
            batch_size=self.batch_size
        )

        return selected
