"""
Module: delivery/retry.py
Description: Retry policy for queued webhook delivery.

Decides, from a dispatch outcome, the next persisted state of a queue
item: delivered, rescheduled with backoff, or exhausted.

Key Components:
- Delivered / RetryableFailure / ExhaustedFailure: tagged decisions
- RetryPolicy.evaluate(): outcome -> decision
- RetryPolicy.backoff_delay(): exponential delay keyed on attempts

Dependencies: datetime, dataclasses, typing
Author: Push Queue Team
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Union

from push_queue.models.dispatch import DispatchOutcome
from push_queue.models.queue_item import QueueItem, QueueStatus

RATE_LIMIT_DELAY = timedelta(minutes=5)
BASE_BACKOFF = timedelta(minutes=1)
MAX_BACKOFF = timedelta(days=7)

UNKNOWN_ERROR = "Unknown error"


@dataclass(frozen=True)
class Delivered:
    """The webhook was accepted downstream."""

    completed_at: datetime

    status = QueueStatus.COMPLETED
    is_final_failure = False


@dataclass(frozen=True)
class RetryableFailure:
    """The dispatch failed and the item goes back to the queue."""

    attempts: int
    scheduled_for: datetime
    error: str
    is_rate_limited: bool

    status = QueueStatus.PENDING
    is_final_failure = False


@dataclass(frozen=True)
class ExhaustedFailure:
    """The dispatch failed and no attempts remain."""

    attempts: int
    error: str
    is_rate_limited: bool

    status = QueueStatus.FAILED
    is_final_failure = True


RetryDecision = Union[Delivered, RetryableFailure, ExhaustedFailure]


class RetryPolicy:
    """
    Maps dispatch outcomes onto queue item state transitions.

    Rate-limited failures wait a fixed delay. Other failures wait
    base_delay * 2**attempts, where attempts is the count *before* this
    failure, so successive delays run 1, 2, 4, 8 ... minutes up to
    max_delay.
    """

    def __init__(
        self,
        rate_limit_delay: timedelta = RATE_LIMIT_DELAY,
        base_delay: timedelta = BASE_BACKOFF,
        max_delay: timedelta = MAX_BACKOFF
    ):
        if base_delay <= timedelta(0):
            raise ValueError("base_delay must be positive")
        if max_delay < base_delay:
            raise ValueError("max_delay must not be shorter than base_delay")

        self.rate_limit_delay = rate_limit_delay
        self.base_delay = base_delay
        self.max_delay = max_delay

    def backoff_delay(self, attempts: int) -> timedelta:
        """
        Exponential delay for a failure observed at ``attempts``.

        Example:
            >>> [RetryPolicy().backoff_delay(n).total_seconds() / 60 for n in range(4)]
            [1.0, 2.0, 4.0, 8.0]
        """
        if attempts < 0:
            raise ValueError("attempts must be non-negative")

        # Integer arithmetic keeps large attempt counts from overflowing timedelta
        base_us = self.base_delay // timedelta(microseconds=1)
        max_us = self.max_delay // timedelta(microseconds=1)
        return timedelta(microseconds=min(base_us * 2 ** attempts, max_us))

    def evaluate(
        self,
        item: QueueItem,
        outcome: DispatchOutcome,
        now: datetime
    ) -> RetryDecision:
        """
        Compute the next state of ``item`` after ``outcome``.

        Args:
            item: Item as it was selected, before the claim incremented attempts
            outcome: Normalized dispatch outcome
            now: Current time from the injected clock

        Returns:
            Delivered, RetryableFailure or ExhaustedFailure
        """
        if outcome.success:
            return Delivered(completed_at=now)

        attempts = item.attempts + 1
        error = outcome.error or UNKNOWN_ERROR

        if attempts >= item.max_attempts:
            return ExhaustedFailure(
                attempts=attempts,
                error=error,
                is_rate_limited=outcome.is_rate_limited
            )

        if outcome.is_rate_limited:
            delay = self.rate_limit_delay
        else:
            delay = self.backoff_delay(item.attempts)

        return RetryableFailure(
            attempts=attempts,
            scheduled_for=now + delay,
            error=error,
            is_rate_limited=outcome.is_rate_limited
        )
