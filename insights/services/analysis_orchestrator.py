"""
Analysis Orchestrator
=====================

PURPOSE:
    Drives feedback items through pending -> processing -> processed|error.
    A fixed pool of asyncio workers pulls item ids from an in-memory queue;
    each worker takes one item end to end (claim, analyze, resolve topic,
    persist) before pulling the next.

CLAIM BEFORE CALL:
    The claim (status -> processing) is committed before any provider call.
    A crash mid-analysis leaves the item in processing, where the recurring
    sweep finds it once the lease times out and returns it to pending.

DEADLINES AND CANCELLATION:
    Each item runs under ``deadline_s``. Hitting the deadline, or the worker
    being cancelled at shutdown, releases the claim back to pending instead
    of leaving the item claimed.

FAILURES:
    AnalysisUnavailable / AnalysisRejected / MalformedOutputError and the
    empty sentinel put the item in error. Error items are never retried
    automatically; an operator requeues them.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from insights.core.errors import AnalysisFailed, FeedbackNotFound
from insights.core.structured_logging import feedback_id_var, job_id_var
from insights.models.analysis import FeedbackAnalysis
from insights.models.feedback import FeedbackItem, FeedbackStatus
from insights.services.analysis_gateway import AnalysisGateway
from insights.services.feedback_store import FeedbackStore
from insights.services.topic_resolver import TopicResolver

logger = logging.getLogger(__name__)

FALLBACK_TOPIC_NAME = "General Feedback"


class AnalysisOutcome(str, Enum):
    PROCESSED = "processed"
    ERROR = "error"
    SKIPPED = "skipped"      # lost the claim race / not pending
    RELEASED = "released"    # deadline hit, claim returned to pending
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class JobHandle:
    """Fire-and-forget receipt returned by the enqueue operations."""
    job_id: str
    target_id: str
    accepted: bool
    reason: Optional[str] = None
    queue_depth: int = 0


@dataclass
class SweepReport:
    reset_processing: List[str] = field(default_factory=list)
    requeued_pending: List[str] = field(default_factory=list)


class AnalysisOrchestrator:
    def __init__(
        self,
        store: FeedbackStore,
        gateway: AnalysisGateway,
        resolver: TopicResolver,
        *,
        worker_count: int = 4,
        item_deadline_s: float = 300.0,
        processing_timeout_s: float = 900.0,
        pending_stale_after_s: float = 600.0,
        sweep_batch_size: int = 50,
    ):
        self.store = store
        self.gateway = gateway
        self.resolver = resolver
        self.worker_count = worker_count
        self.item_deadline_s = item_deadline_s
        self.processing_timeout_s = processing_timeout_s
        self.pending_stale_after_s = pending_stale_after_s
        self.sweep_batch_size = sweep_batch_size

        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._queued: Dict[str, str] = {}  # item id -> job id
        self._worker_tasks: List[asyncio.Task] = []

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    def _put(self, item_id: str, job_id: str) -> bool:
        if item_id in self._queued:
            return False
        self._queued[item_id] = job_id
        self._queue.put_nowait(item_id)
        return True

    def enqueue_analysis(self, item_id: str, force: bool = False) -> JobHandle:
        """
        Queue an item for analysis and return immediately.

        Already-analyzed items are a no-op unless ``force``; forcing resets
        processed/reviewed/error items to pending first.
        """
        # A request-triggered enqueue reuses the request's job id
        job_id = job_id_var.get() or uuid.uuid4().hex[:12]
        item = self.store.get(item_id)
        if item is None:
            raise FeedbackNotFound(detail=f"feedback item {item_id} does not exist", context={"item_id": item_id})

        status = item.lifecycle
        if status == FeedbackStatus.PROCESSING:
            return JobHandle(job_id, item_id, accepted=False, reason="already processing",
                             queue_depth=self.queue_depth)
        if status != FeedbackStatus.PENDING:
            if not force:
                return JobHandle(job_id, item_id, accepted=False, reason=f"already {status.value}",
                                 queue_depth=self.queue_depth)
            if not self.store.reset_to_pending(item_id):
                return JobHandle(job_id, item_id, accepted=False, reason="status changed concurrently",
                                 queue_depth=self.queue_depth)
            logger.info("Forced re-analysis of %s (was %s)", item_id, status.value)

        if not self._put(item_id, job_id):
            return JobHandle(self._queued[item_id], item_id, accepted=True, reason="already queued",
                             queue_depth=self.queue_depth)

        logger.info("Queued %s for analysis (queue_depth=%d)", item_id, self.queue_depth)
        return JobHandle(job_id, item_id, accepted=True, queue_depth=self.queue_depth)

    # ------------------------------------------------------------------
    # Per-item processing
    # ------------------------------------------------------------------

    async def process_item(self, item_id: str, deadline_s: Optional[float] = None) -> AnalysisOutcome:
        worker_id = f"worker-{uuid.uuid4().hex[:8]}"
        token = feedback_id_var.set(item_id)
        try:
            if not self.store.claim(item_id, worker_id):
                item = self.store.get(item_id)
                if item is None:
                    logger.warning("Feedback item %s vanished before claim", item_id)
                    return AnalysisOutcome.NOT_FOUND
                logger.info("Item %s not claimable (status=%s)", item_id, item.status)
                return AnalysisOutcome.SKIPPED

            item = self.store.get(item_id)
            if item is None:
                return AnalysisOutcome.NOT_FOUND

            try:
                return await asyncio.wait_for(
                    self._analyze_claimed(item, worker_id),
                    timeout=deadline_s or self.item_deadline_s,
                )
            except asyncio.TimeoutError:
                logger.warning("Deadline exceeded for %s; releasing claim", item_id)
                self.store.release(item_id, worker_id)
                return AnalysisOutcome.RELEASED
            except asyncio.CancelledError:
                logger.warning("Analysis of %s cancelled; releasing claim", item_id)
                self.store.release(item_id, worker_id)
                raise
            except Exception as e:
                logger.exception("Unexpected failure analyzing %s", item_id)
                self.store.mark_error(item_id, worker_id, f"{type(e).__name__}: {e}")
                return AnalysisOutcome.ERROR
        finally:
            feedback_id_var.reset(token)

    async def _analyze_claimed(self, item: FeedbackItem, worker_id: str) -> AnalysisOutcome:
        try:
            analysis = await self.gateway.analyze_feedback(item.body, item.is_linked)
        except AnalysisFailed as e:
            logger.error("Analysis of %s failed [%s]: %s", item.id, e.code, e.detail)
            self.store.mark_error(item.id, worker_id, str(e))
            return AnalysisOutcome.ERROR

        if analysis.is_empty:
            logger.error("Analysis of %s returned no usable result", item.id)
            self.store.mark_error(item.id, worker_id, "unsalvageable analysis output")
            return AnalysisOutcome.ERROR

        if analysis.clamped_fields:
            logger.warning("Analysis of %s adjusted fields: %s", item.id, ", ".join(analysis.clamped_fields))

        topic_id = None
        if not item.is_linked:
            topic_id = await self._resolve_topic(item, analysis)

        if not self.store.complete_analysis(item.id, worker_id, analysis, topic_id=topic_id):
            return AnalysisOutcome.SKIPPED

        logger.info(
            "Processed %s: sentiment=%s score=%.2f severity=%s topic=%s",
            item.id, analysis.sentiment.value, analysis.score, analysis.severity.value, topic_id,
        )
        return AnalysisOutcome.PROCESSED

    async def _resolve_topic(self, item: FeedbackItem, analysis: FeedbackAnalysis) -> str:
        try:
            label = await self.gateway.suggest_topic_name(item.body)
        except AnalysisFailed as e:
            label = analysis.theme_label or FALLBACK_TOPIC_NAME
            logger.warning("Topic naming for %s failed [%s]; using '%s'", item.id, e.code, label)
        topic = self.resolver.resolve_or_create(label or FALLBACK_TOPIC_NAME, item.scope_id)
        return topic.id

    # ------------------------------------------------------------------
    # Recurring sweep
    # ------------------------------------------------------------------

    def run_sweep(self) -> SweepReport:
        """Reset expired claims and re-enqueue items stuck in pending."""
        report = SweepReport()
        report.reset_processing = self.store.reset_stale_processing(self.processing_timeout_s)
        stale_pending = self.store.stale_pending_ids(self.pending_stale_after_s, self.sweep_batch_size)

        for item_id in dict.fromkeys(report.reset_processing + stale_pending):
            if self._put(item_id, uuid.uuid4().hex[:12]):
                report.requeued_pending.append(item_id)

        if report.reset_processing or report.requeued_pending:
            logger.info(
                "Sweep: reset %d processing, enqueued %d pending (queue_depth=%d)",
                len(report.reset_processing), len(report.requeued_pending), self.queue_depth,
            )
        return report

    # ------------------------------------------------------------------
    # Worker pool
    # ------------------------------------------------------------------

    async def worker_loop(self, index: int = 0):
        """Process queued items one at a time, forever."""
        logger.info("Analysis worker %d started", index)
        while True:
            item_id = await self._queue.get()
            job_id = self._queued.pop(item_id, None) or uuid.uuid4().hex[:12]
            token = job_id_var.set(job_id)
            try:
                await self.process_item(item_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Worker %d failed on %s", index, item_id)
            finally:
                job_id_var.reset(token)
                self._queue.task_done()
                await asyncio.sleep(0)  # yield to event loop

    def start(self, wrapper=None) -> List[asyncio.Task]:
        """Start ``worker_count`` worker tasks.

        Args:
            wrapper: Optional async wrapper(name, coro) for error isolation.
        """
        self._worker_tasks = [t for t in self._worker_tasks if not t.done()]
        while len(self._worker_tasks) < self.worker_count:
            idx = len(self._worker_tasks)
            coro = self.worker_loop(idx)
            if wrapper:
                coro = wrapper(f"analysis_worker_{idx}", coro)
            self._worker_tasks.append(asyncio.create_task(coro))
        return self._worker_tasks

    async def join(self) -> None:
        """Wait until every queued item has been processed."""
        await self._queue.join()

    async def shutdown(self):
        """Cancel all worker tasks."""
        for task in self._worker_tasks:
            task.cancel()
        for task in self._worker_tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._worker_tasks = []
