"""
Module: test_push.py
Description: Unit tests for push dispatch.

Tests payload transformation, response normalization and transport
failures with downstream calls mocked by pytest-httpx.
"""

import json

import httpx
import pytest

from push_queue.delivery.push import PushDispatcher, build_request_body
from push_queue.exceptions import PayloadValidationError
from push_queue.models.queue_item import WebhookType

SCORE_URL = "https://ats.example.com/api/push-score"
NOTE_URL = "https://ats.example.com/api/push-note"


@pytest.fixture
def dispatcher():
    return PushDispatcher(
        score_push_url=SCORE_URL,
        note_push_url=NOTE_URL,
        token="service-token",
        timeout_seconds=5
    )


class TestBuildRequestBody:
    """Test cases for payload transformation."""

    def test_score_push_body(self, make_item):
        """Test score pushes send applicant and user only."""
        item = make_item(
            WebhookType.SCORE_PUSH,
            payload={"applicantId": "app_1", "bundleable": True}
        )

        assert build_request_body(item) == {"applicantId": "app_1", "userId": "user_1"}

    def test_note_push_body_defaults_notifications_off(self, make_item):
        """Test sendNotifications defaults to false."""
        item = make_item(WebhookType.NOTE_PUSH, payload={"applicantId": "app_1", "note": "Great fit"})

        assert build_request_body(item) == {
            "applicantId": "app_1",
            "note": "Great fit",
            "sendNotifications": False,
            "userId": "user_1"
        }

    def test_note_push_body_keeps_notifications(self, make_item):
        """Test an explicit sendNotifications flag is forwarded."""
        item = make_item(
            WebhookType.NOTE_PUSH,
            payload={"applicantId": "app_1", "note": "Great fit", "sendNotifications": True}
        )

        assert build_request_body(item)["sendNotifications"] is True

    @pytest.mark.parametrize("flag", ["false", "true", 1, "yes"])
    def test_note_push_body_requires_boolean_notifications(self, make_item, flag):
        """Test only a literal true enables notifications."""
        item = make_item(
            WebhookType.NOTE_PUSH,
            payload={"applicantId": "app_1", "note": "Great fit", "sendNotifications": flag}
        )

        assert build_request_body(item)["sendNotifications"] is False

    def test_missing_applicant_id(self, make_item):
        """Test applicantId is required for every type."""
        with pytest.raises(PayloadValidationError, match="applicantId"):
            build_request_body(make_item(payload={}))

    def test_missing_note(self, make_item):
        """Test note pushes require a note."""
        item = make_item(WebhookType.NOTE_PUSH, payload={"applicantId": "app_1"})

        with pytest.raises(PayloadValidationError, match="note"):
            build_request_body(item)


class TestPushDispatcher:
    """Test cases for the HTTP dispatcher."""

    def test_invalid_configuration(self):
        """Test endpoints and token are validated."""
        with pytest.raises(ValueError):
            PushDispatcher(score_push_url="ftp://x", note_push_url=NOTE_URL, token="t")

        with pytest.raises(ValueError):
            PushDispatcher(score_push_url=SCORE_URL, note_push_url="", token="t")

        with pytest.raises(ValueError):
            PushDispatcher(score_push_url=SCORE_URL, note_push_url=NOTE_URL, token="")

    @pytest.mark.asyncio
    async def test_success(self, dispatcher, make_item, httpx_mock):
        """Test a 2xx response with success true is delivered."""
        httpx_mock.add_response(method="POST", url=SCORE_URL, json={"success": True})

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is True
        assert outcome.error is None
        assert outcome.is_rate_limited is False

    @pytest.mark.asyncio
    async def test_request_shape(self, dispatcher, make_item, httpx_mock):
        """Test the note endpoint, headers and body of a request."""
        httpx_mock.add_response(method="POST", url=NOTE_URL, json={"success": True})
        item = make_item(WebhookType.NOTE_PUSH, payload={"applicantId": "app_9", "note": "Hello"})

        await dispatcher.dispatch(item)

        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer service-token"
        assert request.headers["x-webhook-source"] == "queue-processor"
        assert request.headers["Content-Type"] == "application/json"
        assert json.loads(request.content) == {
            "applicantId": "app_9",
            "note": "Hello",
            "sendNotifications": False,
            "userId": "user_1"
        }

    @pytest.mark.asyncio
    async def test_success_false_is_failure(self, dispatcher, make_item, httpx_mock):
        """Test a 2xx with success false uses the body error."""
        httpx_mock.add_response(
            url=SCORE_URL, json={"success": False, "error": "Applicant not found"}
        )

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.error == "Applicant not found"
        assert outcome.is_rate_limited is False

    @pytest.mark.asyncio
    async def test_non_2xx_without_error_text(self, dispatcher, make_item, httpx_mock):
        """Test non-2xx responses fall back to the status code."""
        httpx_mock.add_response(url=SCORE_URL, status_code=500, json={"success": False})

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.error == "HTTP 500"
        assert outcome.is_rate_limited is False

    @pytest.mark.asyncio
    async def test_non_2xx_with_success_true_is_failure(self, dispatcher, make_item, httpx_mock):
        """Test the status code wins over the body flag."""
        httpx_mock.add_response(url=SCORE_URL, status_code=400, json={"success": True})

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_503_is_rate_limited(self, dispatcher, make_item, httpx_mock):
        """Test HTTP 503 is rate-limit-class."""
        httpx_mock.add_response(
            url=SCORE_URL, status_code=503, json={"success": False, "error": "Rate limited"}
        )

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.error == "Rate limited"
        assert outcome.is_rate_limited is True

    @pytest.mark.asyncio
    async def test_503_without_json_is_rate_limited(self, dispatcher, make_item, httpx_mock):
        """Test a bare 503 page is still rate-limit-class."""
        httpx_mock.add_response(url=SCORE_URL, status_code=503, text="Service Unavailable")

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.is_rate_limited is True

    @pytest.mark.asyncio
    async def test_is_rate_limit_flag(self, dispatcher, make_item, httpx_mock):
        """Test an explicit isRateLimit flag is rate-limit-class."""
        httpx_mock.add_response(
            url=SCORE_URL,
            status_code=429,
            json={"success": False, "isRateLimit": True, "error": "Too many requests"}
        )

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.is_rate_limited is True
        assert outcome.error == "Too many requests"

    @pytest.mark.asyncio
    async def test_invalid_json_is_failure(self, dispatcher, make_item, httpx_mock):
        """Test a 2xx without a JSON body is not a success."""
        httpx_mock.add_response(url=SCORE_URL, status_code=200, text="<html>ok</html>")

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.is_rate_limited is False
        assert "invalid JSON" in outcome.error

    @pytest.mark.asyncio
    async def test_timeout(self, dispatcher, make_item, httpx_mock):
        """Test timeouts are ordinary failures."""
        httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.error == "Dispatch timed out after 5s"
        assert outcome.is_rate_limited is False

    @pytest.mark.asyncio
    async def test_network_error(self, dispatcher, make_item, httpx_mock):
        """Test connection failures are ordinary failures."""
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        outcome = await dispatcher.dispatch(make_item())

        assert outcome.success is False
        assert outcome.error.startswith("Network error")

    @pytest.mark.asyncio
    async def test_invalid_payload_never_sent(self, dispatcher, make_item, httpx_mock):
        """Test local validation failures never reach the network."""
        outcome = await dispatcher.dispatch(make_item(payload={"bundleable": True}))

        assert outcome.success is False
        assert "applicantId" in outcome.error
        assert httpx_mock.get_requests() == []
