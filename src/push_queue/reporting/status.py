"""
Module: reporting/status.py
Description: Read-only queue status aggregation.

Builds the operator-facing status report from a full read of the
queue table: counts, averages, items needing attention, health flags
and threshold-based recommendations.

Key Components:
- StatusThresholds: tuning knobs for health and recommendations
- build_status_report(): pure aggregation over a list of items
- generate_recommendations(): threshold rules to operator text
- StatusReporter: reads the store and builds the report

Dependencies: dataclasses, datetime, typing
Author: Push Queue Team
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from push_queue.models.queue_item import CLAIMABLE_STATUSES, QueueItem, QueueStatus, WebhookType
from push_queue.models.response import (
    QueueHealth,
    QueueItemSummary,
    QueueStatistics,
    QueueStatusReport,
)
from push_queue.utils.clock import Clock, SystemClock
from push_queue.utils.logger import get_logger
from push_queue.utils.metrics import MetricsClient

logger = get_logger(__name__)

HEALTHY_MESSAGE = "Queue is healthy - no issues detected"


@dataclass(frozen=True)
class StatusThresholds:
    """Operational tuning knobs; none of these affect delivery."""

    unhealthy_processing: int = 50
    unhealthy_pending: int = 100
    many_pending: int = 50
    many_failed: int = 10
    many_overdue: int = 5
    high_avg_attempts: float = 2
    many_processing: int = 20
    recent_activity_limit: int = 10
    failed_items_limit: int = 20
    overdue_items_limit: int = 10
    processing_timeout: timedelta = timedelta(minutes=15)

    @classmethod
    def from_settings(cls, settings) -> "StatusThresholds":
        return cls(
            unhealthy_processing=settings.unhealthy_processing_threshold,
            unhealthy_pending=settings.unhealthy_pending_threshold,
            many_pending=settings.pending_warning_threshold,
            many_failed=settings.failed_warning_threshold,
            many_overdue=settings.overdue_warning_threshold,
            high_avg_attempts=settings.avg_attempts_warning_threshold,
            many_processing=settings.processing_warning_threshold,
            recent_activity_limit=settings.recent_activity_limit,
            failed_items_limit=settings.failed_items_limit,
            overdue_items_limit=settings.overdue_items_limit,
            processing_timeout=timedelta(minutes=settings.processing_timeout_minutes)
        )


def is_overdue(item: QueueItem, now: datetime) -> bool:
    """Pending or failed with a schedule already in the past."""
    return (
        item.status in CLAIMABLE_STATUSES
        and item.scheduled_for is not None
        and item.scheduled_for < now
    )


def generate_recommendations(
    stats: QueueStatistics,
    overdue_count: int,
    thresholds: StatusThresholds = StatusThresholds()
) -> List[str]:
    """Turn queue statistics into operator recommendations."""
    recommendations: List[str] = []

    if stats.pending > thresholds.many_pending:
        recommendations.append(
            "High number of pending webhooks - consider increasing processing frequency"
        )

    if stats.failed > thresholds.many_failed:
        recommendations.append(
            "Multiple failed webhooks detected - check downstream API connectivity"
        )

    if overdue_count > thresholds.many_overdue:
        recommendations.append(
            "Overdue webhooks found - queue processor may not be running regularly"
        )

    if stats.avg_attempts > thresholds.high_avg_attempts:
        recommendations.append(
            "High average attempts - may indicate API rate limiting or connectivity issues"
        )

    if stats.processing > thresholds.many_processing:
        recommendations.append(
            "Many webhooks stuck in processing state - check for hanging requests"
        )

    if not recommendations:
        recommendations.append(HEALTHY_MESSAGE)

    return recommendations


def build_status_report(
    items: Sequence[QueueItem],
    now: datetime,
    thresholds: StatusThresholds = StatusThresholds()
) -> QueueStatusReport:
    """
    Aggregate queue items into a status report.

    Pure: the same items and ``now`` always produce the same report.
    Ties in every ordering fall back to the item id.
    """
    status_counts = Counter(item.status for item in items)
    type_counts = Counter(item.webhook_type for item in items)
    total = len(items)

    newest_first = sorted(items, key=lambda i: (i.created_at, i.id), reverse=True)

    stats = QueueStatistics(
        total=total,
        pending=status_counts[QueueStatus.PENDING],
        processing=status_counts[QueueStatus.PROCESSING],
        completed=status_counts[QueueStatus.COMPLETED],
        failed=status_counts[QueueStatus.FAILED],
        by_type={webhook_type.value: type_counts[webhook_type] for webhook_type in WebhookType},
        avg_attempts=(sum(item.attempts for item in items) / total) if total else 0.0,
        recent_activity=[
            QueueItemSummary.from_item(item)
            for item in newest_first[:thresholds.recent_activity_limit]
        ]
    )

    failed_items = sorted(
        (item for item in items if item.status == QueueStatus.FAILED),
        key=lambda i: (i.updated_at, i.id),
        reverse=True
    )
    overdue_items = sorted(
        (item for item in items if is_overdue(item, now)),
        key=lambda i: (i.scheduled_for, i.id)
    )
    stale_cutoff = now - thresholds.processing_timeout
    stale_processing = sum(
        1 for item in items
        if item.status == QueueStatus.PROCESSING and item.updated_at < stale_cutoff
    )

    health = QueueHealth(
        queue_size=stats.pending + stats.processing,
        is_healthy=(
            stats.processing < thresholds.unhealthy_processing
            and stats.pending < thresholds.unhealthy_pending
        ),
        overdue_count=len(overdue_items),
        failed_count=stats.failed,
        stale_processing_count=stale_processing
    )

    return QueueStatusReport(
        timestamp=now,
        statistics=stats,
        health=health,
        failed_webhooks=[
            QueueItemSummary.from_item(item)
            for item in failed_items[:thresholds.failed_items_limit]
        ],
        overdue_webhooks=[
            QueueItemSummary.from_item(item)
            for item in overdue_items[:thresholds.overdue_items_limit]
        ],
        recommendations=generate_recommendations(stats, len(overdue_items), thresholds)
    )


class StatusReporter:
    """Reads the queue store and reports its status."""

    def __init__(
        self,
        store,
        clock: Optional[Clock] = None,
        thresholds: StatusThresholds = StatusThresholds(),
        metrics_client: Optional[MetricsClient] = None
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.thresholds = thresholds
        self.metrics_client = metrics_client

    async def report(self) -> QueueStatusReport:
        """
        Build the current status report.

        Raises:
            QueueStoreError: If the queue table cannot be read
        """
        items = await self.store.scan_items()
        report = build_status_report(items, self.clock.now(), self.thresholds)

        logger.info(
            "Queue status computed",
            total=report.statistics.total,
            queue_size=report.health.queue_size,
            is_healthy=report.health.is_healthy,
            overdue_count=report.health.overdue_count
        )

        if self.metrics_client is not None:
            self.metrics_client.put_metric(
                metric_name="QueueDepth",
                value=float(report.health.queue_size)
            )

        return report
