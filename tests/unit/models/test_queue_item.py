"""
Module: test_queue_item.py
Description: Unit tests for the QueueItem model.

Tests field validation, timestamp normalization, the enqueue factory
and lifecycle helper properties.
"""

import pytest
from datetime import datetime, timedelta, timezone
from pydantic import ValidationError

from push_queue.models.queue_item import (
    NOTE_PUSH_PRIORITY,
    PRIORITY_LIMIT,
    QueueItem,
    QueueStatus,
    WebhookType,
    priority_for_score,
)
from tests.conftest import NOW


class TestQueueItemModel:
    """Test cases for QueueItem validation and behavior."""

    def test_new_item_defaults(self):
        """Test the enqueue factory produces a due pending item."""
        item = QueueItem.new(
            user_id="user_1",
            applicant_id="app_1",
            webhook_type=WebhookType.SCORE_PUSH,
            payload={"applicantId": "app_1"},
            now=NOW,
            priority=priority_for_score(87.5)
        )

        assert item.id.startswith("wq_")
        assert item.status == QueueStatus.PENDING
        assert item.attempts == 0
        assert item.max_attempts == 3
        assert item.priority == 87
        assert item.scheduled_for == NOW
        assert item.created_at == NOW
        assert item.updated_at == NOW
        assert item.completed_at is None

    def test_new_item_ids_are_unique(self):
        """Test generated ids do not repeat."""
        ids = {
            QueueItem.new("user_1", "app_1", WebhookType.NOTE_PUSH,
                          {"applicantId": "app_1", "note": "hi"}, NOW).id
            for _ in range(50)
        }
        assert len(ids) == 50

    def test_priority_for_score_is_capped(self):
        """Test score pushes never outrank the cap."""
        assert priority_for_score(42) == 42
        assert priority_for_score(100) == 100
        assert priority_for_score(250) == 100
        assert NOTE_PUSH_PRIORITY == 90

    def test_payload_must_be_dict(self, make_item):
        """Test non-dict payloads are rejected."""
        with pytest.raises(ValidationError):
            make_item(payload=["applicantId", "app_1"])

    def test_attempts_and_max_attempts_bounds(self, make_item):
        """Test attempt counters are validated."""
        with pytest.raises(ValidationError):
            make_item(attempts=-1)

        with pytest.raises(ValidationError):
            make_item(max_attempts=0)

    def test_priority_bounds(self, make_item):
        """Test priority is bounded to the index-encodable range."""
        assert make_item(priority=PRIORITY_LIMIT).priority == PRIORITY_LIMIT
        assert make_item(priority=-PRIORITY_LIMIT).priority == -PRIORITY_LIMIT

        with pytest.raises(ValidationError):
            make_item(priority=PRIORITY_LIMIT + 1)

    def test_unknown_webhook_type_rejected(self, make_item):
        """Test only score_push and note_push are accepted."""
        with pytest.raises(ValidationError):
            make_item(webhook_type="email_push")

    def test_naive_timestamps_are_utc(self, make_item):
        """Test naive datetimes are treated as UTC."""
        item = make_item(scheduled_for=datetime(2024, 1, 15, 11, 0))

        assert item.scheduled_for.tzinfo == timezone.utc
        assert item.scheduled_for == datetime(2024, 1, 15, 11, 0, tzinfo=timezone.utc)


class TestQueueItemLifecycle:
    """Test cases for lifecycle helper properties."""

    def test_is_due(self, make_item):
        """Test due items need a past schedule and attempts left."""
        assert make_item().is_due(NOW) is True
        assert make_item(status=QueueStatus.FAILED, attempts=1).is_due(NOW) is True

        assert make_item(scheduled_for=NOW).is_due(NOW) is False
        assert make_item(scheduled_for=NOW + timedelta(minutes=1)).is_due(NOW) is False
        assert make_item(scheduled_for=None).is_due(NOW) is False
        assert make_item(status=QueueStatus.PROCESSING).is_due(NOW) is False
        assert make_item(status=QueueStatus.COMPLETED).is_due(NOW) is False
        assert make_item(attempts=3, max_attempts=3).is_due(NOW) is False

    def test_is_bundleable_requires_true(self, make_item):
        """Test only an explicit true flag opts into bundling."""
        assert make_item(bundleable=True).is_bundleable is True
        assert make_item().is_bundleable is False
        assert make_item(payload={"applicantId": "app_1", "bundleable": "yes"}).is_bundleable is False
