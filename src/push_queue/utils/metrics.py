"""
Module: metrics.py
Description: CloudWatch custom metrics publishing.

Publishes queue metrics to CloudWatch for monitoring batch throughput,
delivery success, final failures and queue depth.

Key Components:
- MetricsClient: CloudWatch metrics client
- put_metric(): Publish individual metrics
- put_metrics(): Publish a group of count metrics in one call
- Graceful error handling for metrics failures

Dependencies: boto3, typing, logger
Author: Push Queue Team
"""

import boto3
from typing import Dict, Optional

from push_queue.utils.logger import get_logger

logger = get_logger(__name__)


class MetricsClient:
    """CloudWatch metrics client."""

    def __init__(
        self,
        namespace: str = "PushQueue",
        region_name: Optional[str] = None,
        enabled: bool = True
    ):
        """
        Initialize metrics client.

        Args:
            namespace: CloudWatch metrics namespace
            region_name: AWS region for the CloudWatch client
            enabled: When False, metrics are only logged at debug level
        """
        self.namespace = namespace
        self.enabled = enabled
        self.cloudwatch = boto3.client('cloudwatch', region_name=region_name) if enabled else None

        logger.info(
            "Metrics client initialized",
            namespace=namespace,
            enabled=enabled
        )

    def put_metric(
        self,
        metric_name: str,
        value: float,
        unit: str = 'Count',
        dimensions: Optional[dict] = None
    ) -> None:
        """
        Publish a metric to CloudWatch.

        Args:
            metric_name: Name of the metric
            value: Metric value
            unit: Metric unit (Count, Seconds, etc.)
            dimensions: Optional metric dimensions
        """
        self._publish([self._metric_datum(metric_name, value, unit, dimensions)])

    def put_metrics(
        self,
        values: Dict[str, float],
        unit: str = 'Count',
        dimensions: Optional[dict] = None
    ) -> None:
        """
        Publish several metrics sharing a unit and dimensions.

        Args:
            values: Mapping of metric name to value
            unit: Metric unit applied to every value
            dimensions: Optional metric dimensions
        """
        if not values:
            return

        self._publish([
            self._metric_datum(name, value, unit, dimensions)
            for name, value in values.items()
        ])

    @staticmethod
    def _metric_datum(metric_name, value, unit, dimensions) -> dict:
        metric_data = {
            'MetricName': metric_name,
            'Value': float(value),
            'Unit': unit
        }

        if dimensions:
            metric_data['Dimensions'] = [
                {'Name': k, 'Value': v}
                for k, v in dimensions.items()
            ]

        return metric_data

    def _publish(self, metric_data: list) -> None:
        names = [datum['MetricName'] for datum in metric_data]

        if not self.enabled:
            logger.debug("Metrics disabled, skipping publish", metric_names=names)
            return

        try:
            self.cloudwatch.put_metric_data(
                Namespace=self.namespace,
                MetricData=metric_data
            )

            logger.debug(
                "Metrics published to CloudWatch",
                metric_names=names,
                namespace=self.namespace
            )

        except Exception as e:
            # Don't fail the batch if metrics fail
            logger.warning(
                "Failed to publish metrics",
                metric_names=names,
                error=str(e),
                namespace=self.namespace
            )
