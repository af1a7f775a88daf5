"""
Module: conftest.py
Description: Shared pytest fixtures for Push Queue API tests.

Provides a frozen clock, a moto-backed queue table, a queue store
and a queue item factory. Environment variables are set before the
application package is imported so the global settings load.
"""

import os

os.environ.setdefault("QUEUE_TABLE_NAME", "test-webhook-queue")
os.environ.setdefault("WEBHOOK_SECRET", "test-webhook-secret")
os.environ.setdefault("DISPATCH_TOKEN", "test-dispatch-token")
os.environ.setdefault("SCORE_PUSH_URL", "https://ats.example.com/api/push-score")
os.environ.setdefault("NOTE_PUSH_URL", "https://ats.example.com/api/push-note")
os.environ.setdefault("METRICS_ENABLED", "false")
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")

from datetime import datetime, timedelta, timezone

import boto3
import pytest
from moto import mock_aws

from push_queue.config.settings import Settings
from push_queue.models.queue_item import QueueItem, QueueStatus, WebhookType
from push_queue.storage.dynamodb import DUE_INDEX, SCHEDULE_INDEX, DynamoDBQueueStore

TABLE_NAME = "test-webhook-queue"
NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def test_settings():
    """
    Provide test configuration settings.

    Built explicitly so tests never depend on a local .env file.
    """
    return Settings(
        _env_file=None,
        queue_table_name=TABLE_NAME,
        webhook_secret="test-webhook-secret",
        score_push_url="https://ats.example.com/api/push-score",
        note_push_url="https://ats.example.com/api/push-note",
        dispatch_token="test-dispatch-token",
        metrics_enabled=False,
        log_level="DEBUG"
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def queue_table():
    """
    Create a mocked DynamoDB queue table with the schedule index.

    The table lives for the duration of the test.
    """
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        table = dynamodb.create_table(
            TableName=TABLE_NAME,
            KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
            AttributeDefinitions=[
                {"AttributeName": "id", "AttributeType": "S"},
                {"AttributeName": "queue_partition", "AttributeType": "S"},
                {"AttributeName": "queue_rank", "AttributeType": "S"},
                {"AttributeName": "scheduled_for", "AttributeType": "S"},
            ],
            GlobalSecondaryIndexes=[
                {
                    "IndexName": SCHEDULE_INDEX,
                    "KeySchema": [
                        {"AttributeName": "queue_partition", "KeyType": "HASH"},
                        {"AttributeName": "queue_rank", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
                {
                    "IndexName": DUE_INDEX,
                    "KeySchema": [
                        {"AttributeName": "queue_partition", "KeyType": "HASH"},
                        {"AttributeName": "scheduled_for", "KeyType": "RANGE"},
                    ],
                    "Projection": {"ProjectionType": "ALL"},
                },
            ],
            BillingMode="PAY_PER_REQUEST",
        )
        yield table


@pytest.fixture
def queue_store(queue_table):
    """Queue store bound to the mocked table."""
    return DynamoDBQueueStore(table_name=TABLE_NAME, region_name="us-east-1")


@pytest.fixture
def make_item():
    """
    Factory for queue items.

    Defaults to a pending score push for applicant ``app_1`` that has
    been due for a minute.
    """
    counter = {"n": 0}

    def _make(
        webhook_type: WebhookType = WebhookType.SCORE_PUSH,
        applicant_id: str = "app_1",
        item_id: str = None,
        status: QueueStatus = QueueStatus.PENDING,
        attempts: int = 0,
        max_attempts: int = 3,
        priority: int = 0,
        scheduled_for: datetime = NOW - timedelta(minutes=1),
        created_at: datetime = None,
        updated_at: datetime = None,
        bundleable: bool = False,
        payload: dict = None,
        **extra
    ) -> QueueItem:
        counter["n"] += 1
        if payload is None:
            payload = {"applicantId": applicant_id}
            if webhook_type == WebhookType.NOTE_PUSH:
                payload["note"] = "Strong candidate"
            if bundleable:
                payload["bundleable"] = True

        created = created_at or NOW - timedelta(hours=1, minutes=-counter["n"])
        return QueueItem(
            id=item_id or f"wq_{counter['n']:03d}",
            user_id="user_1",
            applicant_id=applicant_id,
            webhook_type=webhook_type,
            payload=payload,
            status=status,
            attempts=attempts,
            max_attempts=max_attempts,
            priority=priority,
            scheduled_for=scheduled_for,
            created_at=created,
            updated_at=updated_at or created,
            **extra
        )

    return _make
