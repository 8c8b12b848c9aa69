"""
Feedback Store
==============

PURPOSE:
    Persistence operations the analysis pipeline needs on feedback items,
    topics and inquiries. Every status transition is a single conditional
    UPDATE (compare-and-swap on ``status`` and, once claimed, on
    ``claimed_by``) executed through SQLAlchemy Core, so the rowcount says
    whether this caller won.

STATE MACHINE:
    pending    -> processing   claim(): only if status is still pending
    processing -> processed    complete_analysis(): claim holder only
    processing -> error        mark_error(): claim holder only
    processing -> pending      release(): claim holder gives up (deadline, cancel)
    processing -> pending      reset_stale_processing(): lease expired
    processed/reviewed/error -> pending   reset_to_pending(): forced re-analysis
    error      -> pending      requeue_errors(): explicit operator action
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional, Union

import sqlalchemy as sa
from sqlmodel import or_, select

from insights.core.database import get_engine, get_session_context
from insights.core.timeutils import utc_now
from insights.models.analysis import FeedbackAnalysis
from insights.models.feedback import FeedbackItem, FeedbackStatus
from insights.models.summary import AggregateKind, AggregateRef, ExecutiveSummary
from insights.models.topic import Inquiry, InquiryStatus, Topic

logger = logging.getLogger(__name__)

Aggregate = Union[Topic, Inquiry]

_items = FeedbackItem.__table__

_RESETTABLE = (
    FeedbackStatus.PROCESSED.value,
    FeedbackStatus.REVIEWED.value,
    FeedbackStatus.ERROR.value,
)


class FeedbackStore:
    """Each public method acquires its own connection or session."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, item_id: str) -> Optional[FeedbackItem]:
        with get_session_context() as session:
            return session.get(FeedbackItem, item_id)

    def status_counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in FeedbackStatus}
        stmt = sa.select(_items.c.status, sa.func.count()).group_by(_items.c.status)
        with get_engine().connect() as conn:
            for status, n in conn.execute(stmt):
                counts[status] = n
        return counts

    # ------------------------------------------------------------------
    # Claim lifecycle
    # ------------------------------------------------------------------

    def claim(self, item_id: str, worker_id: str) -> bool:
        """Atomically move a pending item to processing. True if this worker won."""
        now = utc_now()
        with get_engine().begin() as conn:
            result = conn.execute(
                _items.update()
                .where(_items.c.id == item_id)
                .where(_items.c.status == FeedbackStatus.PENDING.value)
                .values(
                    status=FeedbackStatus.PROCESSING.value,
                    claimed_by=worker_id,
                    claimed_at=now,
                    updated_at=now,
                )
            )
        return result.rowcount == 1

    def _update_claimed(self, item_id: str, worker_id: str, **values) -> bool:
        with get_engine().begin() as conn:
            result = conn.execute(
                _items.update()
                .where(_items.c.id == item_id)
                .where(_items.c.status == FeedbackStatus.PROCESSING.value)
                .where(_items.c.claimed_by == worker_id)
                .values(claimed_by=None, claimed_at=None, updated_at=utc_now(), **values)
            )
        if result.rowcount != 1:
            logger.warning("Claim on %s no longer held by %s; update skipped", item_id, worker_id)
            return False
        return True

    def complete_analysis(
        self,
        item_id: str,
        worker_id: str,
        analysis: FeedbackAnalysis,
        topic_id: Optional[str] = None,
    ) -> bool:
        """Write all analysis fields and the topic link in one update."""
        values = dict(
            status=FeedbackStatus.PROCESSED.value,
            sentiment=analysis.sentiment.value,
            tone=analysis.tone.value,
            theme=analysis.theme_label,
            score=analysis.score,
            severity=analysis.severity.value,
            last_error=None,
            analyzed_at=utc_now(),
            **analysis.metrics(),
        )
        if topic_id is not None:
            values["topic_id"] = topic_id
        return self._update_claimed(item_id, worker_id, **values)

    def mark_error(self, item_id: str, worker_id: str, reason: str) -> bool:
        return self._update_claimed(
            item_id, worker_id, status=FeedbackStatus.ERROR.value, last_error=reason[:2000],
        )

    def release(self, item_id: str, worker_id: str) -> bool:
        return self._update_claimed(item_id, worker_id, status=FeedbackStatus.PENDING.value)

    def reset_to_pending(self, item_id: str) -> bool:
        with get_engine().begin() as conn:
            result = conn.execute(
                _items.update()
                .where(_items.c.id == item_id)
                .where(_items.c.status.in_(_RESETTABLE))
                .values(status=FeedbackStatus.PENDING.value, last_error=None, updated_at=utc_now())
            )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Sweep queries
    # ------------------------------------------------------------------

    def reset_stale_processing(self, timeout_s: float, limit: int = 500) -> List[str]:
        """Return items whose claim is older than ``timeout_s`` to pending."""
        cutoff = utc_now() - timedelta(seconds=timeout_s)
        stale = sa.and_(
            _items.c.status == FeedbackStatus.PROCESSING.value,
            or_(_items.c.claimed_at.is_(None), _items.c.claimed_at < cutoff),
        )
        with get_engine().begin() as conn:
            ids = [
                row.id for row in conn.execute(
                    sa.select(_items.c.id).where(stale).limit(limit).with_for_update(skip_locked=True)
                )
            ]
            if not ids:
                return []
            conn.execute(
                _items.update()
                .where(_items.c.id.in_(ids))
                .where(stale)
                .values(
                    status=FeedbackStatus.PENDING.value,
                    claimed_by=None,
                    claimed_at=None,
                    updated_at=utc_now(),
                )
            )
        logger.warning("Reset %d stale processing item(s) to pending", len(ids))
        return ids

    def stale_pending_ids(self, stale_after_s: float, limit: int) -> List[str]:
        cutoff = utc_now() - timedelta(seconds=stale_after_s)
        stmt = (
            sa.select(_items.c.id)
            .where(_items.c.status == FeedbackStatus.PENDING.value)
            .where(_items.c.updated_at < cutoff)
            .order_by(_items.c.created_at.asc())
            .limit(limit)
        )
        with get_engine().connect() as conn:
            return [row.id for row in conn.execute(stmt)]

    def requeue_errors(self, ids: Optional[List[str]] = None) -> List[str]:
        """Move Error items (all, or the given ids) back to pending."""
        where = _items.c.status == FeedbackStatus.ERROR.value
        if ids is not None:
            if not ids:
                return []
            where = sa.and_(where, _items.c.id.in_(ids))
        with get_engine().begin() as conn:
            requeued = [row.id for row in conn.execute(sa.select(_items.c.id).where(where))]
            if requeued:
                conn.execute(
                    _items.update()
                    .where(_items.c.id.in_(requeued))
                    .where(_items.c.status == FeedbackStatus.ERROR.value)
                    .values(status=FeedbackStatus.PENDING.value, last_error=None, updated_at=utc_now())
                )
        logger.info("Requeued %d error item(s)", len(requeued))
        return requeued

    # ------------------------------------------------------------------
    # Topics
    # ------------------------------------------------------------------

    def topic_candidates(self, scope_id: Optional[str]) -> List[Topic]:
        """Non-archived topics in ``scope_id`` plus globally scoped ones."""
        stmt = select(Topic).where(Topic.is_archived == False)  # noqa: E712
        if scope_id is None:
            stmt = stmt.where(Topic.scope_id.is_(None))
        else:
            stmt = stmt.where(or_(Topic.scope_id == scope_id, Topic.scope_id.is_(None)))
        with get_session_context() as session:
            return list(session.exec(stmt.order_by(Topic.created_at)).all())

    def create_topic(self, name: str, scope_id: Optional[str]) -> Topic:
        topic = Topic(name=name, scope_id=scope_id)
        with get_session_context() as session:
            session.add(topic)
            session.commit()
            session.refresh(topic)
        return topic

    # ------------------------------------------------------------------
    # Aggregates (topics and inquiries)
    # ------------------------------------------------------------------

    def get_aggregate(self, aggregate: AggregateRef) -> Optional[Aggregate]:
        model = Topic if aggregate.kind == AggregateKind.TOPIC else Inquiry
        with get_session_context() as session:
            return session.get(model, aggregate.id)

    def contributing_items(self, aggregate: AggregateRef) -> List[FeedbackItem]:
        """Analyzed items linked to the topic or inquiry, oldest first."""
        link = FeedbackItem.topic_id if aggregate.kind == AggregateKind.TOPIC else FeedbackItem.inquiry_id
        stmt = (
            select(FeedbackItem)
            .where(link == aggregate.id)
            .where(FeedbackItem.score.is_not(None))
            .order_by(FeedbackItem.created_at, FeedbackItem.id)
        )
        with get_session_context() as session:
            return list(session.exec(stmt).all())

    def save_summary(self, aggregate: AggregateRef, summary: ExecutiveSummary) -> bool:
        """Overwrite the stored summary and its timestamp in one update."""
        if summary.is_empty:
            raise ValueError("empty summary must not be persisted")
        model = Topic if aggregate.kind == AggregateKind.TOPIC else Inquiry
        table = model.__table__
        generated_at = summary.generated_at or utc_now()
        with get_engine().begin() as conn:
            result = conn.execute(
                table.update()
                .where(table.c.id == aggregate.id)
                .values(
                    summary_json=summary.to_json(),
                    summary_generated_at=generated_at,
                    updated_at=utc_now(),
                )
            )
        return result.rowcount == 1

    def active_aggregates(self) -> List[AggregateRef]:
        """Non-archived topics and active inquiries."""
        with get_session_context() as session:
            topic_ids = session.exec(select(Topic.id).where(Topic.is_archived == False)).all()  # noqa: E712
            inquiry_ids = session.exec(
                select(Inquiry.id).where(Inquiry.status == InquiryStatus.ACTIVE.value)
            ).all()
        return [AggregateRef(AggregateKind.TOPIC, tid) for tid in topic_ids] + [
            AggregateRef(AggregateKind.INQUIRY, iid) for iid in inquiry_ids
        ]
