"""
Summary Scheduler
=================

PURPOSE:
    Keeps the executive summary cached on each topic and inquiry current.

REFRESH POLICY (maybe_refresh):
    Refresh only when the aggregate has at least ``min_items`` analyzed
    contributing items AND either no summary exists yet or the newest
    contributing item was updated after the stored summary was generated.
    A refresh samples up to ``sample_cap`` bodies, counts sentiments over
    all contributing items, asks the gateway for a summary and stores it in
    a single update.

    Generation is best-effort: a failed or empty summary is logged and the
    previously stored summary stays as it was.
"""

import asyncio
import logging
import uuid
from collections import Counter
from typing import Dict, List, Optional, Set

from insights.core.errors import AggregateNotFound, AnalysisFailed
from insights.core.structured_logging import job_id_var
from insights.models.feedback import FeedbackItem, Sentiment
from insights.models.summary import AggregateRef
from insights.services.analysis_gateway import AnalysisGateway
from insights.services.analysis_orchestrator import JobHandle
from insights.services.feedback_store import FeedbackStore

logger = logging.getLogger(__name__)


def sentiment_counts(items: List[FeedbackItem]) -> Dict[str, int]:
    counts = Counter(item.sentiment for item in items if item.sentiment)
    return {s.value: counts.get(s.value, 0) for s in Sentiment}


class SummaryScheduler:
    def __init__(
        self,
        store: FeedbackStore,
        gateway: AnalysisGateway,
        *,
        min_items: int = 10,
        sample_cap: int = 100,
    ):
        self.store = store
        self.gateway = gateway
        self.min_items = min_items
        self.sample_cap = sample_cap
        self._tasks: Set[asyncio.Task] = set()

    async def maybe_refresh(
        self,
        aggregate: AggregateRef,
        contributing_items: Optional[List[FeedbackItem]] = None,
    ) -> bool:
        """Regenerate the summary for ``aggregate`` if warranted. True if refreshed."""
        if contributing_items is None:
            contributing_items = self.store.contributing_items(aggregate)

        count = len(contributing_items)
        if count < self.min_items:
            logger.debug("Skip summary for %s: %d/%d items", aggregate, count, self.min_items)
            return False

        record = self.store.get_aggregate(aggregate)
        if record is None:
            raise AggregateNotFound(detail=f"{aggregate} does not exist", context={"aggregate": str(aggregate)})

        latest = max(item.updated_at for item in contributing_items)
        if record.summary_generated_at is not None and latest <= record.summary_generated_at:
            logger.debug("Summary for %s is current (generated %s)", aggregate, record.summary_generated_at)
            return False

        bodies = [item.body for item in contributing_items[: self.sample_cap]]
        try:
            summary = await self.gateway.generate_summary(
                bodies,
                sentiment_counts(contributing_items),
                aggregate=aggregate,
                contributing_count=count,
                latest_update=latest,
            )
        except AnalysisFailed as e:
            logger.error("Summary generation for %s failed [%s]: %s", aggregate, e.code, e.detail)
            return False

        if summary.is_empty:
            logger.warning("Summary generation for %s returned no usable result", aggregate)
            return False

        # Stamped with the newest item actually summarized; anything written
        # while the provider call was in flight stays newer and triggers a refresh.
        summary = summary.model_copy(update={"generated_at": latest})
        if not self.store.save_summary(aggregate, summary):
            logger.warning("Summary for %s not saved: record disappeared", aggregate)
            return False

        logger.info("Refreshed summary for %s from %d items", aggregate, count)
        return True

    async def _run_check(self, aggregate: AggregateRef, job_id: str) -> bool:
        token = job_id_var.set(job_id)
        try:
            return await self.maybe_refresh(aggregate)
        except Exception:
            logger.exception("Summary check for %s failed", aggregate)
            return False
        finally:
            job_id_var.reset(token)

    def enqueue_summary_check(self, aggregate: AggregateRef) -> JobHandle:
        """Schedule a refresh check in the background and return immediately."""
        if self.store.get_aggregate(aggregate) is None:
            raise AggregateNotFound(detail=f"{aggregate} does not exist", context={"aggregate": str(aggregate)})

        job_id = job_id_var.get() or uuid.uuid4().hex[:12]
        task = asyncio.get_running_loop().create_task(self._run_check(aggregate, job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return JobHandle(job_id, str(aggregate), accepted=True, queue_depth=len(self._tasks))

    async def check_all(self) -> int:
        """Run the refresh check for every active aggregate. Returns refresh count."""
        refreshed = 0
        for aggregate in self.store.active_aggregates():
            try:
                if await self.maybe_refresh(aggregate):
                    refreshed += 1
            except AggregateNotFound:
                logger.info("%s removed during summary check", aggregate)
        logger.info("Summary check complete: %d refreshed", refreshed)
        return refreshed

    async def drain(self) -> None:
        """Wait for background summary checks (tests and shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
