"""
Module: queue_item.py
Description: Queue item data model for the Push Queue API.

Defines the QueueItem model with validation rules for the webhook
delivery queue. A queue item is one unit of pending webhook work that
is claimed, dispatched and retried by the batch runner.

Key Components:
- QueueItem: Core queue item model with full lifecycle tracking
- WebhookType: Enum of dispatchable webhook variants
- QueueStatus: Enum of persisted lifecycle states
- priority_for_score(): Priority producers assign to score pushes

Dependencies: pydantic, datetime, typing, uuid
Author: Push Queue Team
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, ConfigDict, field_validator

from push_queue.utils.clock import ensure_utc

PRIORITY_LIMIT = 10 ** 9
DEFAULT_MAX_ATTEMPTS = 3
NOTE_PUSH_PRIORITY = 90


class WebhookType(str, Enum):
    """Webhook variants; each maps to its own downstream endpoint."""

    SCORE_PUSH = "score_push"
    NOTE_PUSH = "note_push"


class QueueStatus(str, Enum):
    """Persisted lifecycle states of a queue item."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Statuses an item may be claimed from
CLAIMABLE_STATUSES = (QueueStatus.PENDING, QueueStatus.FAILED)


def priority_for_score(score: float) -> int:
    """Priority given to a score push: the score itself, capped at 100."""
    return min(int(score), 100)


class QueueItem(BaseModel):
    """
    Queue item representing one webhook awaiting delivery.

    Items are created by producers in the pending state and are then
    mutated only by the batch runner: claimed into processing, and
    settled into completed, pending (retry scheduled) or failed.

    A failed item whose attempts are below max_attempts is a soft,
    retryable failure and is still selected once due; a failed item
    whose attempts reached max_attempts is exhausted and terminal.

    Attributes:
        id: Unique queue item identifier
        user_id: Owner of the queued work
        applicant_id: Subject the webhook is about
        webhook_type: score_push or note_push
        payload: Variant-shaped payload (see WebhookType)
        status: Lifecycle status
        attempts: Number of dispatch attempts made
        max_attempts: Ceiling on attempts
        priority: Higher values dispatch first
        scheduled_for: Earliest time the item may be selected
        created_at: Creation timestamp
        updated_at: Last mutation timestamp
        completed_at: Successful delivery timestamp
        last_error: Most recent dispatch error
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True
    )

    id: str = Field(
        ...,
        min_length=1,
        description="Unique queue item identifier"
    )
    user_id: str = Field(
        ...,
        min_length=1,
        description="Owner of the queued work"
    )
    applicant_id: str = Field(
        ...,
        min_length=1,
        description="Applicant the webhook refers to"
    )
    webhook_type: WebhookType = Field(
        ...,
        description="Webhook variant"
    )
    payload: Dict[str, Any] = Field(
        ...,
        description="Webhook payload"
    )
    status: QueueStatus = Field(
        default=QueueStatus.PENDING,
        description="Lifecycle status"
    )
    attempts: int = Field(
        default=0,
        ge=0,
        description="Number of dispatch attempts made"
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        description="Maximum number of dispatch attempts"
    )
    priority: int = Field(
        default=0,
        ge=-PRIORITY_LIMIT,
        le=PRIORITY_LIMIT,
        description="Dispatch priority, higher first"
    )
    scheduled_for: Optional[datetime] = Field(
        default=None,
        description="Earliest selection time"
    )
    created_at: datetime = Field(
        ...,
        description="Creation timestamp"
    )
    updated_at: datetime = Field(
        ...,
        description="Last update timestamp"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="Successful delivery timestamp"
    )
    last_error: Optional[str] = Field(
        default=None,
        description="Most recent dispatch error"
    )

    @field_validator('payload', mode='before')
    @classmethod
    def validate_payload(cls, v: Any) -> Dict[str, Any]:
        """Validate payload is a dictionary, preserving all JSON types."""
        if not isinstance(v, dict):
            raise ValueError("payload must be a dictionary")
        return v

    @field_validator('scheduled_for', 'created_at', 'updated_at', 'completed_at')
    @classmethod
    def validate_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Normalize timestamps to aware UTC."""
        if v is None:
            return v
        return ensure_utc(v)

    @classmethod
    def new(
        cls,
        user_id: str,
        applicant_id: str,
        webhook_type: WebhookType,
        payload: Dict[str, Any],
        now: datetime,
        priority: int = 0,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        item_id: Optional[str] = None
    ) -> "QueueItem":
        """Build a freshly enqueued item, due immediately."""
        return cls(
            id=item_id or f"wq_{uuid4().hex}",
            user_id=user_id,
            applicant_id=applicant_id,
            webhook_type=webhook_type,
            payload=payload,
            status=QueueStatus.PENDING,
            attempts=0,
            max_attempts=max_attempts,
            priority=priority,
            scheduled_for=now,
            created_at=now,
            updated_at=now
        )

    @property
    def is_bundleable(self) -> bool:
        """True when the payload opts into bundled dispatch."""
        return self.payload.get("bundleable") is True

    @property
    def is_exhausted(self) -> bool:
        """True when no attempts remain."""
        return self.attempts >= self.max_attempts

    def is_due(self, now: datetime) -> bool:
        """Whether the item is eligible for selection at ``now``."""
        return (
            self.status in CLAIMABLE_STATUSES
            and self.scheduled_for is not None
            and self.scheduled_for < now
            and self.attempts < self.max_attempts
        )
