"""
Module: delivery/worker.py
Description: Scheduled Lambda entry point for queue processing.

Runs one batch invocation directly from an EventBridge schedule,
without going through API Gateway. Equivalent to POST /queue/process.
"""

import asyncio
from typing import Any, Dict

from push_queue.config.settings import settings
from push_queue.delivery.runner import BatchRunner
from push_queue.utils.logger import configure_logging, get_logger
from push_queue.utils.metrics import MetricsClient

configure_logging(settings.log_level)
logger = get_logger(__name__)


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for scheduled queue processing.

    Args:
        event: EventBridge scheduled event (unused)
        context: Lambda context

    Returns:
        The invocation result in the same camelCase shape as the HTTP endpoint

    Raises:
        QueueStoreError: If the queue cannot be read, so the invocation
            is reported as failed
    """
    logger.info(
        "Scheduled queue processing started",
        request_id=getattr(context, 'aws_request_id', None)
    )

    runner = BatchRunner.from_settings(
        settings,
        metrics_client=MetricsClient(
            namespace=settings.metrics_namespace,
            region_name=settings.aws_region,
            enabled=settings.metrics_enabled
        )
    )
    response = asyncio.run(runner.run())

    return response.model_dump(by_alias=True, exclude_none=True, mode='json')
