"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the Push Queue API:
- QueueItem: Core queue item domain model with validation
- QueueItem.new, priority_for_score, NOTE_PUSH_PRIORITY: enqueue helpers
  for producers writing to the queue table
- DispatchOutcome: Normalized result of one dispatch attempt
- ProcessQueueResponse / QueueStatusReport: API response models

All models are exported here for convenient importing.
"""

from .queue_item import NOTE_PUSH_PRIORITY, QueueItem, QueueStatus, WebhookType, priority_for_score
from .dispatch import DispatchOutcome
from .response import ProcessingResult, ProcessQueueResponse, QueueStatusReport

__all__ = [
    "QueueItem",
    "QueueStatus",
    "WebhookType",
    "NOTE_PUSH_PRIORITY",
    "priority_for_score",
    "DispatchOutcome",
    "ProcessingResult",
    "ProcessQueueResponse",
    "QueueStatusReport",
]
