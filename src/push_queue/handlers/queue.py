"""
Module: queue.py
Description: Webhook queue processing and status handlers.

Implements the queue endpoints:
- POST /queue/process: Run one bounded processing invocation
- GET /queue/status: Read-only queue statistics and health

Key Components:
- process_queue(): Scheduler-triggered batch processing endpoint
- queue_status(): Operator status endpoint
- get_*(): Dependency injection for store, dispatcher, clock and metrics

Dependencies: FastAPI, typing
Author: Push Queue Team
"""

from fastapi import APIRouter, Depends, HTTPException
from fastapi import status as status_codes

from push_queue.auth.authorizer import require_operator_key, require_scheduler_secret
from push_queue.config.settings import Settings, get_settings
from push_queue.delivery.push import PushDispatcher
from push_queue.delivery.runner import BatchRunner
from push_queue.exceptions import QueueStoreError
from push_queue.models.response import ProcessQueueResponse, QueueStatusReport
from push_queue.reporting.status import StatusReporter, StatusThresholds
from push_queue.storage.dynamodb import DynamoDBQueueStore
from push_queue.utils.clock import Clock, SystemClock
from push_queue.utils.logger import get_logger
from push_queue.utils.metrics import MetricsClient

router = APIRouter(prefix="/queue", tags=["queue"])
logger = get_logger(__name__)


def get_store(settings: Settings = Depends(get_settings)) -> DynamoDBQueueStore:
    """
    Dependency to get the queue store.

    Returns:
        Configured DynamoDBQueueStore instance
    """
    return DynamoDBQueueStore(
        table_name=settings.queue_table_name,
        region_name=settings.aws_region
    )


def get_dispatcher(settings: Settings = Depends(get_settings)) -> PushDispatcher:
    """
    Dependency to get the push dispatcher.

    Returns:
        PushDispatcher posting to the score and note push endpoints
    """
    return PushDispatcher(
        score_push_url=settings.score_push_url,
        note_push_url=settings.note_push_url,
        token=settings.dispatch_token,
        timeout_seconds=settings.dispatch_timeout
    )


def get_metrics_client(settings: Settings = Depends(get_settings)) -> MetricsClient:
    """Dependency to get CloudWatch metrics client."""
    return MetricsClient(
        namespace=settings.metrics_namespace,
        region_name=settings.aws_region,
        enabled=settings.metrics_enabled
    )


def get_clock() -> Clock:
    return SystemClock()


def get_batch_runner(
    settings: Settings = Depends(get_settings),
    store: DynamoDBQueueStore = Depends(get_store),
    dispatcher: PushDispatcher = Depends(get_dispatcher),
    clock: Clock = Depends(get_clock),
    metrics_client: MetricsClient = Depends(get_metrics_client)
) -> BatchRunner:
    """Dependency wiring a BatchRunner for one request."""
    return BatchRunner.from_settings(
        settings,
        store=store,
        dispatcher=dispatcher,
        clock=clock,
        metrics_client=metrics_client
    )


def get_status_reporter(
    settings: Settings = Depends(get_settings),
    store: DynamoDBQueueStore = Depends(get_store),
    clock: Clock = Depends(get_clock),
    metrics_client: MetricsClient = Depends(get_metrics_client)
) -> StatusReporter:
    return StatusReporter(
        store,
        clock=clock,
        thresholds=StatusThresholds.from_settings(settings),
        metrics_client=metrics_client
    )


@router.post(
    "/process",
    response_model=ProcessQueueResponse,
    response_model_exclude_none=True,
    dependencies=[Depends(require_scheduler_secret)]
)
async def process_queue(
    runner: BatchRunner = Depends(get_batch_runner)
) -> ProcessQueueResponse:
    """
    Process one batch of due webhooks.

    Called by the scheduler with "Authorization: Bearer <WEBHOOK_SECRET>".
    Individual delivery failures are reported per item in the response
    and never fail the request.

    Returns:
        ProcessQueueResponse with aggregate counts and per-item results

    Raises:
        HTTPException: 401 if the webhook secret is missing or wrong
        HTTPException: 500 if the queue cannot be read

    Example:
        POST /queue/process
        Authorization: Bearer <secret>

        Response (200 OK):
        {
            "success": true,
            "message": "Processed 2 webhooks: 1 succeeded, 1 failed, 0 skipped",
            "processed": 2,
            "succeeded": 1,
            "failed": 1,
            "finalFailures": 0,
            "bundled": 0,
            "skipped": 0,
            "reclaimed": 0,
            "results": [...]
        }
    """
    try:
        return await runner.run()

    except QueueStoreError as e:
        logger.error(
            "Failed to fetch webhook queue",
            error=str(e),
            error_type=type(e).__name__
        )
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch webhook queue"
        )

    except Exception as e:
        logger.error(
            "Failed to process webhook queue",
            error=str(e),
            error_type=type(e).__name__
        )
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process webhook queue"
        )


@router.get(
    "/status",
    response_model=QueueStatusReport,
    dependencies=[Depends(require_operator_key)]
)
async def queue_status(
    reporter: StatusReporter = Depends(get_status_reporter)
) -> QueueStatusReport:
    """
    Report queue statistics, health and recommendations.

    Read-only: never modifies queue items.

    Raises:
        HTTPException: 401 if the operator API key is missing or invalid
        HTTPException: 500 if the queue cannot be read
    """
    try:
        return await reporter.report()

    except Exception as e:
        logger.error(
            "Failed to compute queue status",
            error=str(e),
            error_type=type(e).__name__
        )
        raise HTTPException(
            status_code=status_codes.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to fetch queue status"
        )
