"""
Module: test_queue_flow.py
Description: Integration tests for the webhook queue.

Drives the FastAPI app and the scheduled worker end to end against a
moto DynamoDB table, with downstream push endpoints mocked by
pytest-httpx.
"""

import asyncio
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from push_queue.auth.api_key import hash_api_key
from push_queue.config.settings import get_settings
from push_queue.delivery import worker
from push_queue.handlers.queue import get_clock
from push_queue.main import app
from push_queue.models import NOTE_PUSH_PRIORITY, QueueItem, QueueStatus, WebhookType, priority_for_score
from tests.conftest import NOW

SCORE_URL = "https://ats.example.com/api/push-score"
NOTE_URL = "https://ats.example.com/api/push-note"
OPERATOR_KEY = "sk_operator1234567890123456789012"
SCHEDULER_AUTH = {"Authorization": "Bearer test-webhook-secret"}
OPERATOR_AUTH = {"Authorization": f"Bearer {OPERATOR_KEY}"}


@pytest.fixture
def test_client(queue_table, test_settings, clock):
    """Create FastAPI test client bound to the mocked table and a frozen clock."""
    settings = test_settings.model_copy(update={"status_api_key_hash": hash_api_key(OPERATOR_KEY)})
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


class TestQueueFlow:
    """End-to-end processing and reporting."""

    @pytest.mark.asyncio
    async def test_process_then_report(self, test_client, queue_store, clock, make_item, httpx_mock):
        """Test a mixed batch is delivered, retried and reported."""
        score_a = make_item(WebhookType.SCORE_PUSH, applicant_id="A", bundleable=True, priority=80)
        note_a = make_item(WebhookType.NOTE_PUSH, applicant_id="A", bundleable=True, priority=90)
        score_b = make_item(WebhookType.SCORE_PUSH, applicant_id="B", priority=40)
        for item in (score_a, note_a, score_b):
            await queue_store.put_item(item)

        httpx_mock.add_response(
            url=SCORE_URL, match_json={"applicantId": "A", "userId": "user_1"}, json={"success": True}
        )
        httpx_mock.add_response(url=NOTE_URL, json={"success": True})
        httpx_mock.add_response(
            url=SCORE_URL,
            match_json={"applicantId": "B", "userId": "user_1"},
            status_code=503,
            json={"success": False, "error": "Rate limited"}
        )

        response = test_client.post("/queue/process", headers=SCHEDULER_AUTH)

        assert response.status_code == 200
        data = response.json()
        assert data["processed"] == 3
        assert data["succeeded"] == 2
        assert data["failed"] == 1
        assert data["bundled"] == 1
        assert data["skipped"] == 0
        assert [r["id"] for r in data["results"]] == [score_a.id, note_a.id, score_b.id]
        assert data["results"][0]["bundled"] is True
        assert data["results"][2]["isRateLimit"] is True
        assert "bundled" not in data["results"][2]

        assert (await queue_store.get_item(note_a.id)).status == QueueStatus.COMPLETED
        retried = await queue_store.get_item(score_b.id)
        assert retried.status == QueueStatus.PENDING
        assert retried.scheduled_for == NOW + timedelta(minutes=5)

        status = test_client.get("/queue/status", headers=OPERATOR_AUTH)

        assert status.status_code == 200
        report = status.json()
        assert report["statistics"]["completed"] == 2
        assert report["statistics"]["pending"] == 1
        assert report["health"]["overdueCount"] == 0

        # Nothing is due until the rate-limit delay passes
        idle = test_client.post("/queue/process", headers=SCHEDULER_AUTH)
        assert idle.json()["processed"] == 0

        clock.advance(minutes=6)
        httpx_mock.add_response(url=SCORE_URL, json={"success": True})

        retry = test_client.post("/queue/process", headers=SCHEDULER_AUTH)

        assert retry.json()["succeeded"] == 1
        completed = await queue_store.get_item(score_b.id)
        assert completed.status == QueueStatus.COMPLETED
        assert completed.attempts == 2

    @pytest.mark.asyncio
    async def test_enqueued_items_processed_by_priority(self, test_client, queue_store, clock, httpx_mock):
        """Test producer-built items are dispatched note first, then by score."""
        score = QueueItem.new(
            "user_1", "C", WebhookType.SCORE_PUSH, {"applicantId": "C"},
            now=clock.now(), priority=priority_for_score(87.5)
        )
        note = QueueItem.new(
            "user_1", "C", WebhookType.NOTE_PUSH, {"applicantId": "C", "note": "Call back"},
            now=clock.now(), priority=NOTE_PUSH_PRIORITY
        )
        for item in (score, note):
            await queue_store.put_item(item)
        httpx_mock.add_response(url=SCORE_URL, json={"success": True})
        httpx_mock.add_response(url=NOTE_URL, json={"success": True})

        # Items are due strictly after their enqueue time
        clock.advance(seconds=1)
        response = test_client.post("/queue/process", headers=SCHEDULER_AUTH)

        data = response.json()
        assert data["succeeded"] == 2
        assert [r["id"] for r in data["results"]] == [note.id, score.id]
        assert [r["priority"] for r in data["results"]] == [90, 87]

    def test_unauthorized_trigger_has_no_side_effects(self, test_client):
        """Test a rejected trigger does not touch the queue."""
        response = test_client.post("/queue/process", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401


class TestScheduledWorker:
    """The scheduled Lambda runs one invocation directly."""

    @pytest.mark.asyncio
    async def test_worker_handler(self, queue_store, make_item, httpx_mock):
        """Test the worker returns the camelCase aggregate."""
        item = make_item()
        await queue_store.put_item(item)
        httpx_mock.add_response(url=SCORE_URL, json={"success": True})

        # The worker owns its event loop, so it runs off this one
        result = await asyncio.to_thread(worker.handler, {"source": "aws.events"}, None)

        assert result["success"] is True
        assert result["processed"] == 1
        assert result["results"][0]["webhookType"] == "score_push"
        assert "error" not in result["results"][0]
        assert (await queue_store.get_item(item.id)).status == QueueStatus.COMPLETED
