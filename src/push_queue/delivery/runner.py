"""
Module: delivery/runner.py
Description: Batch runner for one queue processing invocation.

Reclaims stale claims, selects due items, bundles them, claims and
dispatches each unit, applies the retry policy and aggregates the
per-item results. One call to run() is one bounded invocation; no
state is kept between invocations.

Key Components:
- BatchRunner.run(): end-to-end invocation
- BatchRunner.from_settings(): wiring from application settings
- Per-item failure isolation (claim, dispatch and outcome write)

Dependencies: asyncio, datetime, typing
Author: Push Queue Team
"""

import asyncio
from datetime import timedelta
from typing import Dict, List, Optional

from push_queue.delivery.bundler import BundlePair, plan_dispatch
from push_queue.delivery.push import PushDispatcher
from push_queue.delivery.retry import RetryDecision, RetryPolicy
from push_queue.delivery.selector import Selector
from push_queue.exceptions import ClaimConflictError
from push_queue.models.dispatch import DispatchOutcome
from push_queue.models.queue_item import QueueItem
from push_queue.models.response import ProcessingResult, ProcessQueueResponse
from push_queue.utils.clock import Clock, SystemClock
from push_queue.utils.logger import get_logger
from push_queue.utils.metrics import MetricsClient

logger = get_logger(__name__)

CLAIM_CONFLICT_ERROR = "Item was claimed by another invocation"


class BatchRunner:
    """
    Orchestrates one invocation of the webhook queue.

    Plain items are processed one after another; the two members of a
    bundle pair are dispatched concurrently. Every selected item is
    claimed and dispatched at most once and appears exactly once in the
    response.
    """

    def __init__(
        self,
        store,
        dispatcher,
        selector: Selector,
        retry_policy: RetryPolicy,
        clock: Optional[Clock] = None,
        metrics_client: Optional[MetricsClient] = None,
        processing_timeout: timedelta = timedelta(minutes=15)
    ):
        self.store = store
        self.dispatcher = dispatcher
        self.selector = selector
        self.retry_policy = retry_policy
        self.clock = clock or SystemClock()
        self.metrics_client = metrics_client
        self.processing_timeout = processing_timeout

    @classmethod
    def from_settings(
        cls,
        settings,
        store=None,
        dispatcher=None,
        clock: Optional[Clock] = None,
        metrics_client: Optional[MetricsClient] = None
    ) -> "BatchRunner":
        """Build a runner wired from application settings."""
        if store is None:
            from push_queue.storage.dynamodb import DynamoDBQueueStore
            store = DynamoDBQueueStore(
                table_name=settings.queue_table_name,
                region_name=settings.aws_region
            )

        if dispatcher is None:
            dispatcher = PushDispatcher(
                score_push_url=settings.score_push_url,
                note_push_url=settings.note_push_url,
                token=settings.dispatch_token,
                timeout_seconds=settings.dispatch_timeout
            )

        return cls(
            store=store,
            dispatcher=dispatcher,
            selector=Selector(
                store,
                batch_size=settings.batch_size,
                candidate_fetch_size=settings.candidate_fetch_size,
                max_candidate_pages=settings.max_candidate_pages
            ),
            retry_policy=RetryPolicy(
                rate_limit_delay=timedelta(minutes=settings.rate_limit_delay_minutes),
                max_delay=timedelta(minutes=settings.max_backoff_minutes)
            ),
            clock=clock,
            metrics_client=metrics_client,
            processing_timeout=timedelta(minutes=settings.processing_timeout_minutes)
        )

    async def run(self) -> ProcessQueueResponse:
        """
        Process one batch of due webhooks.

        Returns:
            Aggregated invocation result

        Raises:
            QueueStoreError: If due items cannot be selected; nothing is
                touched in that case
        """
        reclaimed = await self._reclaim_stale()

        items = await self.selector.select(self.clock.now())

        if not items:
            logger.info("No pending webhooks to process", reclaimed=reclaimed)
            return ProcessQueueResponse(
                message="No pending webhooks to process",
                reclaimed=reclaimed
            )

        units = plan_dispatch(items)
        bundle_count = sum(1 for unit in units if isinstance(unit, BundlePair))

        logger.info(
            "Processing queued webhooks",
            selected=len(items),
            units=len(units),
            bundles=bundle_count
        )

        results: List[ProcessingResult] = []
        for unit in units:
            if isinstance(unit, BundlePair):
                results.extend(await self._process_bundle(unit))
            else:
                results.append(await self._process_item(unit))

        response = self._aggregate(results, bundle_count, reclaimed)

        logger.info(
            "Webhook queue processing completed",
            processed=response.processed,
            succeeded=response.succeeded,
            failed=response.failed,
            final_failures=response.final_failures,
            skipped=response.skipped,
            bundled=response.bundled
        )

        self._publish_metrics(response)
        return response

    async def _reclaim_stale(self) -> int:
        try:
            reclaimed = await self.store.reclaim_stale(self.clock.now(), self.processing_timeout)
            return len(reclaimed)
        except Exception as e:
            # A failed sweep leaves stale items for the next invocation
            logger.error(
                "Failed to reclaim stale processing items",
                error=str(e),
                error_type=type(e).__name__
            )
            return 0

    async def _process_item(self, item: QueueItem) -> ProcessingResult:
        skipped = await self._claim(item)
        if skipped is not None:
            return skipped

        outcome = await self._dispatch(item)
        return await self._settle(item, outcome)

    async def _process_bundle(self, pair: BundlePair) -> List[ProcessingResult]:
        results: Dict[str, ProcessingResult] = {}
        claimed: List[QueueItem] = []

        for member in pair.members:
            skipped = await self._claim(member, bundled=True)
            if skipped is not None:
                results[member.id] = skipped
            else:
                claimed.append(member)

        logger.info(
            "Dispatching bundle pair",
            applicant_id=pair.applicant_id,
            item_ids=[member.id for member in claimed]
        )

        outcomes = await asyncio.gather(*(self._dispatch(member) for member in claimed))

        for member, outcome in zip(claimed, outcomes):
            results[member.id] = await self._settle(member, outcome, bundled=True)

        return [results[member.id] for member in pair.members]

    async def _claim(self, item: QueueItem, bundled: bool = False) -> Optional[ProcessingResult]:
        """Claim ``item``; return a skipped result if the claim did not stick."""
        try:
            await self.store.claim(item, self.clock.now())
            return None

        except ClaimConflictError:
            logger.info(
                "Queue item claim lost to another invocation",
                item_id=item.id,
                attempts=item.attempts
            )
            return self._skipped_result(item, CLAIM_CONFLICT_ERROR, bundled)

        except Exception as e:
            logger.error(
                "Failed to claim queue item",
                item_id=item.id,
                error=str(e),
                error_type=type(e).__name__
            )
            return self._skipped_result(item, f"Failed to claim item: {e}", bundled)

    async def _dispatch(self, item: QueueItem) -> DispatchOutcome:
        try:
            return await self.dispatcher.dispatch(item)
        except Exception as e:
            logger.error(
                "Webhook dispatch raised",
                item_id=item.id,
                error=str(e),
                error_type=type(e).__name__
            )
            return DispatchOutcome.failed(str(e) or type(e).__name__)

    async def _settle(
        self,
        item: QueueItem,
        outcome: DispatchOutcome,
        bundled: bool = False
    ) -> ProcessingResult:
        now = self.clock.now()
        decision = self.retry_policy.evaluate(item, outcome, now)

        try:
            await self.store.record_outcome(item, decision, now)
        except Exception as e:
            # The item stays in processing until the stale sweep reclaims it
            logger.error(
                "Failed to record queue item outcome, item may be stuck in processing",
                item_id=item.id,
                dispatch_success=outcome.success,
                decision=type(decision).__name__,
                error=str(e),
                error_type=type(e).__name__
            )
            return self._skipped_result(item, f"Failed to record outcome: {e}", bundled)

        return self._result(item, decision, outcome, bundled)

    @staticmethod
    def _result(
        item: QueueItem,
        decision: RetryDecision,
        outcome: DispatchOutcome,
        bundled: bool
    ) -> ProcessingResult:
        result = ProcessingResult(
            id=item.id,
            success=outcome.success,
            webhook_type=item.webhook_type.value,
            applicant_id=item.applicant_id,
            priority=item.priority,
            bundled=bundled or None
        )

        if not outcome.success:
            result.error = decision.error
            result.is_rate_limit = decision.is_rate_limited
            result.attempts = decision.attempts
            result.max_attempts = item.max_attempts
            result.final_failure = decision.is_final_failure

        return result

    @staticmethod
    def _skipped_result(item: QueueItem, error: str, bundled: bool) -> ProcessingResult:
        return ProcessingResult(
            id=item.id,
            success=False,
            webhook_type=item.webhook_type.value,
            applicant_id=item.applicant_id,
            priority=item.priority,
            error=error,
            bundled=bundled or None,
            skipped=True
        )

    @staticmethod
    def _aggregate(
        results: List[ProcessingResult],
        bundle_count: int,
        reclaimed: int
    ) -> ProcessQueueResponse:
        succeeded = sum(1 for r in results if r.success)
        skipped = sum(1 for r in results if r.skipped)
        failed = len(results) - succeeded - skipped
        final_failures = sum(1 for r in results if r.final_failure)

        return ProcessQueueResponse(
            message=(
                f"Processed {len(results)} webhooks: {succeeded} succeeded, "
                f"{failed} failed, {skipped} skipped"
            ),
            processed=len(results),
            succeeded=succeeded,
            failed=failed,
            final_failures=final_failures,
            bundled=bundle_count,
            skipped=skipped,
            reclaimed=reclaimed,
            results=results
        )

    def _publish_metrics(self, response: ProcessQueueResponse) -> None:
        if self.metrics_client is None:
            return

        self.metrics_client.put_metrics({
            "WebhooksProcessed": response.processed,
            "WebhooksSucceeded": response.succeeded,
            "WebhooksFailed": response.failed,
            "WebhookFinalFailures": response.final_failures,
            "WebhooksSkipped": response.skipped,
            "WebhookBundles": response.bundled,
        })
