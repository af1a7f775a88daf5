"""
Module: push.py
Description: Push dispatch of queued webhooks to downstream endpoints.

Transforms a queue item's payload into the body its push endpoint
expects and performs a single authenticated HTTP POST, normalizing
every result into a DispatchOutcome.
"""

import httpx
from typing import Any, Dict

from push_queue.exceptions import PayloadValidationError
from push_queue.models.dispatch import DispatchOutcome
from push_queue.models.queue_item import QueueItem, WebhookType
from push_queue.utils.logger import get_logger

logger = get_logger(__name__)

RATE_LIMIT_STATUS = 503


def build_request_body(item: QueueItem) -> Dict[str, Any]:
    """
    Build the downstream request body for a queue item.

    Args:
        item: Queue item to transform

    Returns:
        JSON-serializable request body

    Raises:
        PayloadValidationError: If a required payload field is missing
    """
    payload = item.payload
    applicant_id = payload.get("applicantId")
    if not applicant_id:
        raise PayloadValidationError("applicantId is required in webhook payload")

    if item.webhook_type == WebhookType.SCORE_PUSH:
        return {
            "applicantId": applicant_id,
            "userId": item.user_id
        }

    if item.webhook_type == WebhookType.NOTE_PUSH:
        note = payload.get("note")
        if not note:
            raise PayloadValidationError("note is required in note_push payload")

        return {
            "applicantId": applicant_id,
            "note": note,
            "sendNotifications": payload.get("sendNotifications") is True,
            "userId": item.user_id
        }

    raise PayloadValidationError(f"Unsupported webhook type: {item.webhook_type}")


def parse_response(response: httpx.Response) -> DispatchOutcome:
    """
    Normalize a downstream response.

    A dispatch succeeds only on a 2xx status with ``success: true`` in
    the JSON body. HTTP 503 or an ``isRateLimit`` flag marks the
    failure as rate-limit-class.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    if not isinstance(body, dict):
        return DispatchOutcome.failed(
            f"HTTP {response.status_code}: invalid JSON response",
            is_rate_limited=response.status_code == RATE_LIMIT_STATUS
        )

    if response.is_success and body.get("success") is True:
        return DispatchOutcome.succeeded()

    error = body.get("error") or f"HTTP {response.status_code}"
    is_rate_limited = (
        response.status_code == RATE_LIMIT_STATUS
        or bool(body.get("isRateLimit"))
    )
    return DispatchOutcome.failed(str(error), is_rate_limited=is_rate_limited)


class PushDispatcher:
    """
    HTTP client for pushing queued webhooks downstream.

    Each webhook type has its own endpoint. Calls carry the service
    credential as a bearer token and their own timeout.
    """

    def __init__(
        self,
        score_push_url: str,
        note_push_url: str,
        token: str,
        timeout_seconds: float = 10
    ):
        """
        Initialize push dispatcher.

        Args:
            score_push_url: Endpoint for score_push webhooks
            note_push_url: Endpoint for note_push webhooks
            token: Service-level bearer credential
            timeout_seconds: HTTP timeout in seconds per dispatch

        Raises:
            ValueError: If an endpoint or the token is invalid
        """
        for url in (score_push_url, note_push_url):
            if not url or not isinstance(url, str):
                raise ValueError("push endpoint must be a non-empty string")
            if not url.startswith(('http://', 'https://')):
                raise ValueError("push endpoint must be a valid HTTP/HTTPS URL")
        if not token:
            raise ValueError("token must be a non-empty string")

        self.endpoints = {
            WebhookType.SCORE_PUSH: score_push_url,
            WebhookType.NOTE_PUSH: note_push_url,
        }
        self.token = token
        self.timeout_seconds = timeout_seconds
        self.timeout = httpx.Timeout(timeout_seconds, connect=timeout_seconds)

        logger.info(
            "Push dispatcher initialized",
            score_push_url=score_push_url,
            note_push_url=note_push_url,
            timeout_seconds=timeout_seconds
        )

    async def dispatch(self, item: QueueItem) -> DispatchOutcome:
        """
        Dispatch a queue item to its push endpoint.

        Never raises; every failure is returned as an outcome.

        Args:
            item: Queue item to dispatch

        Returns:
            Normalized dispatch outcome
        """
        try:
            body = build_request_body(item)
        except PayloadValidationError as e:
            logger.warning(
                "Queue item payload invalid",
                item_id=item.id,
                webhook_type=item.webhook_type.value,
                error=str(e)
            )
            return DispatchOutcome.failed(str(e))

        url = self.endpoints[item.webhook_type]

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                logger.debug(
                    "Attempting webhook dispatch",
                    item_id=item.id,
                    webhook_type=item.webhook_type.value,
                    url=url
                )

                response = await client.post(
                    url,
                    json=body,
                    headers={
                        'Content-Type': 'application/json',
                        'Authorization': f'Bearer {self.token}',
                        'x-webhook-source': 'queue-processor'
                    }
                )

                outcome = parse_response(response)

                if outcome.success:
                    logger.info(
                        "Webhook dispatched successfully",
                        item_id=item.id,
                        webhook_type=item.webhook_type.value,
                        status_code=response.status_code
                    )
                else:
                    logger.warning(
                        "Webhook dispatch rejected",
                        item_id=item.id,
                        webhook_type=item.webhook_type.value,
                        status_code=response.status_code,
                        is_rate_limited=outcome.is_rate_limited,
                        error=outcome.error,
                        response=response.text[:500]  # Truncate large responses
                    )

                return outcome

            except httpx.TimeoutException:
                logger.warning(
                    "Webhook dispatch timeout",
                    item_id=item.id,
                    url=url,
                    timeout_seconds=self.timeout_seconds
                )
                return DispatchOutcome.failed(
                    f"Dispatch timed out after {self.timeout_seconds}s"
                )

            except httpx.HTTPError as e:
                logger.warning(
                    "Webhook dispatch network error",
                    item_id=item.id,
                    error=str(e)
                )
                return DispatchOutcome.failed(f"Network error: {e}")

            except Exception as e:
                logger.error(
                    "Webhook dispatch failed",
                    item_id=item.id,
                    error=str(e),
                    error_type=type(e).__name__
                )
                return DispatchOutcome.failed(str(e) or type(e).__name__)
