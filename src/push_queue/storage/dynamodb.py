"""
Module: dynamodb.py
Description: DynamoDB queue store for webhook queue items.

Provides async operations for enqueuing, selecting, claiming and
settling queue items in DynamoDB with conditional writes, proper error
handling and logging.

Key Components:
- DynamoDBQueueStore: Main store class for queue operations
- ScheduleIndex: sparse GSI holding only schedulable items, ordered by
  priority descending then scheduled_for ascending
- DueIndex: sparse GSI over the same items ordered by scheduled_for
- claim(): atomic conditional transition into processing
- record_outcome(): conditional write of a retry decision
- reclaim_stale(): visibility timeout for items stuck in processing
- Throttled writes retried with tenacity

Dependencies: boto3, botocore, tenacity, datetime, typing
Author: Push Queue Team
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    before_log,
    after_log
)

from push_queue.delivery.retry import Delivered, ExhaustedFailure, RetryableFailure, RetryDecision
from push_queue.exceptions import ClaimConflictError, QueueStoreError
from push_queue.models.queue_item import (
    CLAIMABLE_STATUSES,
    PRIORITY_LIMIT,
    QueueItem,
    QueueStatus,
)
from push_queue.utils.clock import format_timestamp, parse_timestamp
from push_queue.utils.logger import get_logger

logger = get_logger(__name__)

SCHEDULE_INDEX = "ScheduleIndex"
DUE_INDEX = "DueIndex"
PROCESSING_TIMEOUT_ERROR = "Processing timed out"
UNDECODABLE_ERROR = "Undecodable queue item"

THROTTLING_ERROR_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
}
CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailedException"

_TIMESTAMP_FIELDS = ("scheduled_for", "created_at", "updated_at", "completed_at")
_INTEGER_FIELDS = ("attempts", "max_attempts", "priority")


def _is_throttling_error(exc: BaseException) -> bool:
    return (
        isinstance(exc, ClientError)
        and exc.response.get('Error', {}).get('Code') in THROTTLING_ERROR_CODES
    )


# Transient DynamoDB throttling is retried before a write counts as failed
write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
    retry=retry_if_exception(_is_throttling_error),
    before=before_log(logger, logging.DEBUG),
    after=after_log(logger, logging.WARNING),
    reraise=True
)


def queue_rank(priority: int, scheduled_for: datetime) -> str:
    """
    Sort key for the schedule index.

    The inverted, zero-padded priority makes ascending key order equal
    to priority descending; the fixed-width timestamp breaks ties by
    earliest schedule.

    Example:
        >>> queue_rank(5, datetime(2024, 1, 15, tzinfo=timezone.utc))
        '0999999995#2024-01-15T00:00:00.000000Z'
    """
    return f"{PRIORITY_LIMIT - priority:010d}#{format_timestamp(scheduled_for)}"


def serialize_item(item: QueueItem) -> Dict[str, Any]:
    """Convert a QueueItem into a DynamoDB item."""
    data = item.model_dump(mode="python")

    data['webhook_type'] = item.webhook_type.value
    data['status'] = item.status.value

    # Serialize payload as JSON string to preserve types
    data['payload'] = json.dumps(item.payload)

    for field in _TIMESTAMP_FIELDS:
        if data.get(field) is not None:
            data[field] = format_timestamp(data[field])

    # Only schedulable items are projected into the schedule index
    if item.status in CLAIMABLE_STATUSES and item.scheduled_for is not None:
        data['queue_partition'] = item.status.value
        data['queue_rank'] = queue_rank(item.priority, item.scheduled_for)

    # Remove None values - DynamoDB doesn't allow None/null values
    return {k: v for k, v in data.items() if v is not None}


def deserialize_item(raw: Dict[str, Any]) -> QueueItem:
    """Convert a DynamoDB item back into a QueueItem."""
    data = {k: v for k, v in raw.items() if k not in ('queue_partition', 'queue_rank')}

    if isinstance(data.get('payload'), str):
        data['payload'] = json.loads(data['payload'])

    for field in _TIMESTAMP_FIELDS:
        if data.get(field) is not None:
            data[field] = parse_timestamp(data[field])

    # boto3 returns numbers as Decimal
    for field in _INTEGER_FIELDS:
        if data.get(field) is not None:
            data[field] = int(data[field])

    return QueueItem(**data)


class DynamoDBQueueStore:
    """
    DynamoDB store for webhook queue items.

    The table is keyed on ``id``. ``ScheduleIndex`` is a sparse GSI
    (hash ``queue_partition``, range ``queue_rank``): the two attributes
    are present only while an item is pending or failed with a
    schedule, so processing, completed and exhausted items drop out.
    ``DueIndex`` shares the hash key and ranges on ``scheduled_for``.

    Attributes:
        table_name: Name of the DynamoDB queue table
        dynamodb: boto3 DynamoDB resource
        table: boto3 DynamoDB table resource

    Example:
        >>> store = DynamoDBQueueStore(table_name="push-queue-items")
        >>> await store.put_item(item)
        >>> due = await store.fetch_due_candidates(now, limit=10, page_size=20)
    """

    def __init__(self, table_name: str, region_name: Optional[str] = None):
        """
        Initialize queue store.

        Args:
            table_name: Name of the DynamoDB queue table
            region_name: Optional AWS region

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.dynamodb = boto3.resource('dynamodb', region_name=region_name)
        self.table = self.dynamodb.Table(table_name)

        logger.info(
            "DynamoDB queue store initialized",
            table_name=table_name
        )

    def _log_client_error(self, message: str, e: ClientError, **context) -> None:
        logger.error(
            message,
            table_name=self.table_name,
            error_code=e.response['Error']['Code'],
            error_message=e.response['Error']['Message'],
            **context
        )

    async def put_item(self, item: QueueItem) -> None:
        """
        Store a queue item, replacing any item with the same id.

        Args:
            item: Queue item to store

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If item is invalid
        """
        if not isinstance(item, QueueItem):
            raise ValueError("item must be a QueueItem instance")

        try:
            self.table.put_item(Item=serialize_item(item))

            logger.info(
                "Queue item stored in DynamoDB",
                item_id=item.id,
                webhook_type=item.webhook_type.value,
                status=item.status.value,
                priority=item.priority,
                table_name=self.table_name
            )

        except ClientError as e:
            self._log_client_error("Failed to store queue item in DynamoDB", e, item_id=item.id)
            raise

    async def get_item(self, item_id: str) -> Optional[QueueItem]:
        """
        Retrieve a queue item by id.

        Args:
            item_id: Queue item identifier

        Returns:
            QueueItem if found, None otherwise

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If item_id is invalid
        """
        if not item_id or not isinstance(item_id, str):
            raise ValueError("item_id must be a non-empty string")

        try:
            response = self.table.get_item(Key={'id': item_id}, ConsistentRead=True)

            if 'Item' not in response:
                logger.warning(
                    "Queue item not found in DynamoDB",
                    item_id=item_id,
                    table_name=self.table_name
                )
                return None

            return deserialize_item(response['Item'])

        except ClientError as e:
            self._log_client_error("Failed to retrieve queue item from DynamoDB", e, item_id=item_id)
            raise

    async def fetch_due_candidates(
        self,
        now: datetime,
        limit: int = 10,
        page_size: int = 20,
        max_pages: int = 5
    ) -> List[QueueItem]:
        """
        Fetch candidate items that are due at ``now``.

        Queries the schedule index once per claimable status. The
        ``scheduled_for < now`` and ``attempts < max_attempts`` predicates
        run as a filter expression; because DynamoDB applies Limit before
        filtering, pages of ``page_size`` are read until ``limit``
        matches are collected, the index is exhausted, or ``max_pages``
        pages have been read. When the page cap cuts the schedule index
        short, the due index (ordered by ``scheduled_for``) tops up the
        remaining slots with the longest-waiting due items.

        Rows that cannot be decoded are marked ``failed`` and skipped.

        Args:
            now: Current time
            limit: Matches wanted per status
            page_size: Items evaluated per query page
            max_pages: Query pages read per status and index

        Returns:
            Candidates from every claimable status, in index order per status

        Raises:
            QueueStoreError: If DynamoDB cannot be queried
        """
        candidates: List[QueueItem] = []
        names = {
            '#partition': 'queue_partition',
            '#scheduled_for': 'scheduled_for',
            '#attempts': 'attempts',
            '#max_attempts': 'max_attempts'
        }

        for status in CLAIMABLE_STATUSES:
            values = {':partition': status.value, ':now': format_timestamp(now)}

            try:
                matches, truncated = await self._query_due(
                    {
                        'IndexName': SCHEDULE_INDEX,
                        'KeyConditionExpression': '#partition = :partition',
                        'FilterExpression': '#scheduled_for < :now AND #attempts < #max_attempts',
                        'ExpressionAttributeNames': names,
                        'ExpressionAttributeValues': values,
                        'ScanIndexForward': True,
                        'Limit': page_size
                    },
                    now, limit, max_pages
                )

                if truncated and len(matches) < limit:
                    logger.warning(
                        "Candidate page limit reached",
                        index_name=SCHEDULE_INDEX,
                        status_filter=status.value,
                        max_pages=max_pages,
                        matches=len(matches)
                    )
                    seen = {item.id for item in matches}
                    oldest, _ = await self._query_due(
                        {
                            'IndexName': DUE_INDEX,
                            'KeyConditionExpression': '#partition = :partition AND #scheduled_for < :now',
                            'FilterExpression': '#attempts < #max_attempts',
                            'ExpressionAttributeNames': names,
                            'ExpressionAttributeValues': values,
                            'ScanIndexForward': True,
                            'Limit': page_size
                        },
                        now, limit - len(matches), max_pages, skip_ids=seen
                    )
                    matches.extend(oldest)

            except ClientError as e:
                self._log_client_error(
                    "Failed to query due queue items", e, status_filter=status.value
                )
                raise QueueStoreError(
                    f"Failed to query {status.value} queue items: {e.response['Error']['Message']}"
                ) from e

            candidates.extend(matches[:limit])

        logger.info(
            "Due queue candidates fetched",
            count=len(candidates),
            limit=limit,
            page_size=page_size,
            max_pages=max_pages,
            table_name=self.table_name
        )

        return candidates

    async def _query_due(
        self,
        kwargs: Dict[str, Any],
        now: datetime,
        limit: int,
        max_pages: int,
        skip_ids=frozenset()
    ) -> Tuple[List[QueueItem], bool]:
        """Page through one index; returns matches and whether pages remained unread."""
        matches: List[QueueItem] = []

        for _ in range(max_pages):
            response = self.table.query(**kwargs)
            for raw in response.get('Items', []):
                if raw['id'] in skip_ids:
                    continue
                item = self._decode_candidate(raw, now)
                if item is not None:
                    matches.append(item)

            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return matches, False
            if len(matches) >= limit:
                break
            kwargs['ExclusiveStartKey'] = last_key
        else:
            return matches, True

        return matches, False

    def _decode_candidate(self, raw: Dict[str, Any], now: datetime) -> Optional[QueueItem]:
        item = self._decode(raw)
        if item is None:
            self._quarantine(raw, now)
        return item

    def _quarantine(self, raw: Dict[str, Any], now: datetime) -> None:
        """Mark an undecodable row terminal so it leaves both indexes."""
        try:
            self.table.update_item(
                Key={'id': raw['id']},
                UpdateExpression=(
                    'SET #status = :failed, #last_error = :error, #updated_at = :now '
                    'REMOVE #scheduled_for, #partition, #rank'
                ),
                ConditionExpression='attribute_exists(#partition)',
                ExpressionAttributeNames={
                    '#status': 'status',
                    '#last_error': 'last_error',
                    '#updated_at': 'updated_at',
                    '#scheduled_for': 'scheduled_for',
                    '#partition': 'queue_partition',
                    '#rank': 'queue_rank'
                },
                ExpressionAttributeValues={
                    ':failed': QueueStatus.FAILED.value,
                    ':error': UNDECODABLE_ERROR,
                    ':now': format_timestamp(now)
                }
            )
            logger.warning("Undecodable queue item marked failed", item_id=raw['id'])
        except ClientError as e:
            self._log_client_error("Failed to mark undecodable queue item", e, item_id=raw['id'])

    @write_retry
    async def claim(self, item: QueueItem, now: datetime) -> None:
        """
        Atomically claim an item for dispatch.

        Sets status to processing, increments attempts and clears the
        schedule only if the stored item is still claimable with the
        attempt count the caller selected.

        Args:
            item: Item as selected
            now: Claim time

        Raises:
            ClaimConflictError: If the item changed since it was selected
            ClientError: If DynamoDB operation fails
        """
        try:
            self.table.update_item(
                Key={'id': item.id},
                UpdateExpression=(
                    'SET #status = :processing, #attempts = :next_attempts, #updated_at = :now '
                    'REMOVE #scheduled_for, #partition, #rank'
                ),
                ConditionExpression=(
                    '#status IN (:pending, :failed) '
                    'AND #attempts = :attempts AND #attempts < #max_attempts'
                ),
                ExpressionAttributeNames={
                    '#status': 'status',
                    '#attempts': 'attempts',
                    '#max_attempts': 'max_attempts',
                    '#updated_at': 'updated_at',
                    '#scheduled_for': 'scheduled_for',
                    '#partition': 'queue_partition',
                    '#rank': 'queue_rank'
                },
                ExpressionAttributeValues={
                    ':processing': QueueStatus.PROCESSING.value,
                    ':pending': QueueStatus.PENDING.value,
                    ':failed': QueueStatus.FAILED.value,
                    ':attempts': item.attempts,
                    ':next_attempts': item.attempts + 1,
                    ':now': format_timestamp(now)
                }
            )

            logger.info(
                "Queue item claimed",
                item_id=item.id,
                attempts=item.attempts + 1,
                max_attempts=item.max_attempts
            )

        except ClientError as e:
            if e.response['Error']['Code'] == CONDITIONAL_CHECK_FAILED:
                raise ClaimConflictError(item.id, "claim") from e
            self._log_client_error("Failed to claim queue item", e, item_id=item.id)
            raise

    @write_retry
    async def record_outcome(
        self,
        item: QueueItem,
        decision: RetryDecision,
        now: datetime
    ) -> None:
        """
        Persist a retry decision for a claimed item.

        Written only if the item is still processing with the attempt
        count set by this invocation's claim.

        Args:
            item: Item as selected (before the claim)
            decision: Retry policy decision
            now: Write time

        Raises:
            ClaimConflictError: If the item was reclaimed or settled elsewhere
            ClientError: If DynamoDB operation fails
        """
        names = {
            '#status': 'status',
            '#attempts': 'attempts',
            '#updated_at': 'updated_at',
            '#scheduled_for': 'scheduled_for',
            '#partition': 'queue_partition',
            '#rank': 'queue_rank'
        }
        values: Dict[str, Any] = {
            ':processing': QueueStatus.PROCESSING.value,
            ':claimed_attempts': item.attempts + 1,
            ':status': decision.status.value,
            ':now': format_timestamp(now)
        }

        if isinstance(decision, Delivered):
            names['#completed_at'] = 'completed_at'
            values[':completed_at'] = format_timestamp(decision.completed_at)
            update = (
                'SET #status = :status, #completed_at = :completed_at, #updated_at = :now '
                'REMOVE #scheduled_for, #partition, #rank'
            )
        elif isinstance(decision, RetryableFailure):
            names['#last_error'] = 'last_error'
            values.update({
                ':last_error': decision.error,
                ':scheduled_for': format_timestamp(decision.scheduled_for),
                ':rank': queue_rank(item.priority, decision.scheduled_for)
            })
            update = (
                'SET #status = :status, #last_error = :last_error, '
                '#scheduled_for = :scheduled_for, #partition = :status, #rank = :rank, '
                '#updated_at = :now'
            )
        elif isinstance(decision, ExhaustedFailure):
            names['#last_error'] = 'last_error'
            values[':last_error'] = decision.error
            update = (
                'SET #status = :status, #last_error = :last_error, #updated_at = :now '
                'REMOVE #scheduled_for, #partition, #rank'
            )
        else:
            raise ValueError(f"Unsupported retry decision: {decision!r}")

        try:
            self.table.update_item(
                Key={'id': item.id},
                UpdateExpression=update,
                ConditionExpression='#status = :processing AND #attempts = :claimed_attempts',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )

            logger.info(
                "Queue item outcome recorded",
                item_id=item.id,
                status=decision.status.value,
                attempts=item.attempts + 1,
                final_failure=decision.is_final_failure
            )

        except ClientError as e:
            if e.response['Error']['Code'] == CONDITIONAL_CHECK_FAILED:
                raise ClaimConflictError(item.id, "outcome write") from e
            self._log_client_error("Failed to record queue item outcome", e, item_id=item.id)
            raise

    async def reclaim_stale(self, now: datetime, timeout: timedelta) -> List[str]:
        """
        Return items stuck in processing to the queue.

        An item whose claim is older than ``timeout`` is made due again
        from its claim time, or marked as an exhausted failure if it has
        no attempts left. Each write is conditional on the item still
        carrying the claim that was observed.

        Args:
            now: Current time
            timeout: Visibility timeout for processing items

        Returns:
            Ids of reclaimed items

        Raises:
            ClientError: If the scan fails
        """
        cutoff = format_timestamp(now - timeout)
        scan_kwargs = {
            'FilterExpression': (
                Attr('status').eq(QueueStatus.PROCESSING.value)
                & Attr('updated_at').lt(cutoff)
            ),
            'ConsistentRead': True
        }

        stale = self._decode_rows(self._scan(**scan_kwargs))
        reclaimed: List[str] = []

        for item in stale:
            try:
                await self._release_stale(item, now)
                reclaimed.append(item.id)
            except ClaimConflictError:
                logger.info("Stale queue item settled concurrently", item_id=item.id)

        if reclaimed:
            logger.warning(
                "Stale processing items reclaimed",
                count=len(reclaimed),
                item_ids=reclaimed,
                timeout_minutes=timeout.total_seconds() / 60
            )

        return reclaimed

    @write_retry
    async def _release_stale(self, item: QueueItem, now: datetime) -> None:
        names = {
            '#status': 'status',
            '#updated_at': 'updated_at',
            '#last_error': 'last_error'
        }
        values: Dict[str, Any] = {
            ':processing': QueueStatus.PROCESSING.value,
            ':claimed_at': format_timestamp(item.updated_at),
            ':last_error': PROCESSING_TIMEOUT_ERROR,
            ':now': format_timestamp(now)
        }

        if item.is_exhausted:
            values[':status'] = QueueStatus.FAILED.value
            update = 'SET #status = :status, #last_error = :last_error, #updated_at = :now'
        else:
            names.update({
                '#scheduled_for': 'scheduled_for',
                '#partition': 'queue_partition',
                '#rank': 'queue_rank'
            })
            values.update({
                ':status': QueueStatus.PENDING.value,
                ':scheduled_for': format_timestamp(item.updated_at),
                ':rank': queue_rank(item.priority, item.updated_at)
            })
            update = (
                'SET #status = :status, #last_error = :last_error, #updated_at = :now, '
                '#scheduled_for = :scheduled_for, #partition = :status, #rank = :rank'
            )

        try:
            self.table.update_item(
                Key={'id': item.id},
                UpdateExpression=update,
                ConditionExpression='#status = :processing AND #updated_at = :claimed_at',
                ExpressionAttributeNames=names,
                ExpressionAttributeValues=values
            )
        except ClientError as e:
            if e.response['Error']['Code'] == CONDITIONAL_CHECK_FAILED:
                raise ClaimConflictError(item.id, "reclaim") from e
            self._log_client_error("Failed to reclaim queue item", e, item_id=item.id)
            raise

    async def scan_items(self) -> List[QueueItem]:
        """
        Read every queue item.

        Returns:
            All queue items, unordered

        Raises:
            QueueStoreError: If the scan fails
        """
        try:
            items = self._decode_rows(self._scan(ConsistentRead=True))
        except ClientError as e:
            self._log_client_error("Failed to scan queue table", e)
            raise QueueStoreError(
                f"Failed to scan queue table: {e.response['Error']['Message']}"
            ) from e

        logger.info(
            "Queue table scanned",
            count=len(items),
            table_name=self.table_name
        )

        return items

    def _scan(self, **kwargs) -> List[Dict[str, Any]]:
        raw_items: List[Dict[str, Any]] = []
        while True:
            response = self.table.scan(**kwargs)
            raw_items.extend(response.get('Items', []))

            last_key = response.get('LastEvaluatedKey')
            if not last_key:
                return raw_items
            kwargs['ExclusiveStartKey'] = last_key

    def _decode(self, raw: Dict[str, Any]) -> Optional[QueueItem]:
        try:
            return deserialize_item(raw)
        except (ValueError, TypeError) as e:
            logger.error(
                "Undecodable queue item skipped",
                item_id=raw.get('id'),
                error=str(e),
                error_type=type(e).__name__,
                table_name=self.table_name
            )
            return None

    def _decode_rows(self, raw_items: List[Dict[str, Any]]) -> List[QueueItem]:
        decoded = (self._decode(raw) for raw in raw_items)
        return [item for item in decoded if item is not None]
