"""
Module: response.py
Description: API response models for the Push Queue API.

Defines response models for outgoing API calls. These models structure
the JSON responses returned by the queue endpoints. Attributes are
snake_case in Python and serialized as camelCase on the wire.

Key Components:
- ProcessingResult: Outcome of one queue item within a batch
- ProcessQueueResponse: Aggregate returned by POST /queue/process
- QueueStatusReport: Aggregate returned by GET /queue/status

Dependencies: pydantic, datetime, typing
Author: Push Queue Team
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel

from push_queue.models.queue_item import QueueItem


class ApiModel(BaseModel):
    """Base for response models serialized with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True
    )


class ProcessingResult(ApiModel):
    """
    Outcome of a single queue item within one invocation.

    Attributes:
        id: Queue item identifier
        success: Whether the webhook was delivered
        webhook_type: Webhook variant
        applicant_id: Applicant the webhook refers to
        priority: Item priority
        error: Failure description (failures only)
        is_rate_limit: Failure was rate-limit-class
        attempts: Attempt count after this invocation (failures only)
        max_attempts: Attempt ceiling (failures only)
        final_failure: Attempts are now exhausted
        bundled: Item was dispatched as part of a bundle pair
        skipped: Item was not reliably claimed or its outcome was not recorded
    """

    id: str = Field(..., description="Queue item identifier")
    success: bool = Field(..., description="Whether the webhook was delivered")
    webhook_type: str = Field(..., description="Webhook variant")
    applicant_id: str = Field(..., description="Applicant identifier")
    priority: int = Field(..., description="Item priority")
    error: Optional[str] = Field(default=None, description="Failure description")
    is_rate_limit: Optional[bool] = Field(default=None, description="Rate-limit-class failure")
    attempts: Optional[int] = Field(default=None, description="Attempts after this invocation")
    max_attempts: Optional[int] = Field(default=None, description="Attempt ceiling")
    final_failure: Optional[bool] = Field(default=None, description="Attempts exhausted")
    bundled: Optional[bool] = Field(default=None, description="Dispatched in a bundle pair")
    skipped: Optional[bool] = Field(default=None, description="Excluded from success accounting")


class ProcessQueueResponse(ApiModel):
    """
    Aggregate result of one batch invocation.

    Every selected item appears exactly once in ``results``, and
    ``succeeded + failed + skipped == processed``.
    """

    success: bool = Field(default=True, description="Invocation completed")
    message: str = Field(..., description="Human-readable summary")
    processed: int = Field(default=0, description="Items handled in this invocation")
    succeeded: int = Field(default=0, description="Items delivered")
    failed: int = Field(default=0, description="Items whose dispatch failed")
    final_failures: int = Field(default=0, description="Failures that exhausted attempts")
    bundled: int = Field(default=0, description="Bundle pairs dispatched")
    skipped: int = Field(default=0, description="Items lost to claim races or write failures")
    reclaimed: int = Field(default=0, description="Stale processing items returned to the queue")
    results: List[ProcessingResult] = Field(default_factory=list, description="Per-item results")


class QueueItemSummary(ApiModel):
    """Operator-facing view of a queue item."""

    id: str
    applicant_id: str
    webhook_type: str
    status: str
    attempts: int
    max_attempts: int
    priority: int
    scheduled_for: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    last_error: Optional[str] = None

    @classmethod
    def from_item(cls, item: QueueItem) -> "QueueItemSummary":
        return cls(
            id=item.id,
            applicant_id=item.applicant_id,
            webhook_type=item.webhook_type.value,
            status=item.status.value,
            attempts=item.attempts,
            max_attempts=item.max_attempts,
            priority=item.priority,
            scheduled_for=item.scheduled_for,
            created_at=item.created_at,
            updated_at=item.updated_at,
            last_error=item.last_error
        )


class QueueStatistics(ApiModel):
    """Counts and averages over the whole queue table."""

    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    avg_attempts: float = 0.0
    recent_activity: List[QueueItemSummary] = Field(default_factory=list)


class QueueHealth(ApiModel):
    """Health flags derived from the queue statistics."""

    queue_size: int
    is_healthy: bool
    overdue_count: int
    failed_count: int
    stale_processing_count: int


class QueueStatusReport(ApiModel):
    """Response model for GET /queue/status."""

    success: bool = True
    timestamp: datetime
    statistics: QueueStatistics
    health: QueueHealth
    failed_webhooks: List[QueueItemSummary] = Field(default_factory=list)
    overdue_webhooks: List[QueueItemSummary] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
