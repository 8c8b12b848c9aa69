"""
Cost Ledger
===========

PURPOSE:
    Durable, append-only log of billed provider calls. The analysis gateway
    records every non-cached successful call here; monitoring endpoints
    aggregate the log over time windows.

COST CALCULATION:
    cost = prompt_tokens / 1000 * prompt_cost_per_1k
         + completion_tokens / 1000 * completion_cost_per_1k
    Rates are USD and configurable (INSIGHTS_PROMPT_COST_PER_1K,
    INSIGHTS_COMPLETION_COST_PER_1K).

FAILURE POLICY:
    Cost tracking is observability, not a correctness gate. A failed write
    is logged and swallowed; it never blocks or reverses an analysis.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import select

from insights.core.database import get_session_context
from insights.core.timeutils import as_naive_utc
from insights.models.cost_log import CostLogEntry

logger = logging.getLogger(__name__)

__all__ = ["CostLedger", "UsageStats"]


@dataclass(frozen=True)
class UsageStats:
    """Aggregate usage over a time window."""

    total_requests: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    requests_by_operation: Dict[str, int] = field(default_factory=dict)

    @property
    def average_cost_per_request(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.total_cost / self.total_requests


class CostLedger:
    def __init__(self, prompt_cost_per_1k: float, completion_cost_per_1k: float) -> None:
        self.prompt_cost_per_1k = prompt_cost_per_1k
        self.completion_cost_per_1k = completion_cost_per_1k

    def compute_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (
            prompt_tokens / 1000.0 * self.prompt_cost_per_1k
            + completion_tokens / 1000.0 * self.completion_cost_per_1k
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def record(
        self,
        operation: str,
        prompt_tokens: int,
        completion_tokens: int,
        metadata: Optional[dict] = None,
    ) -> Optional[CostLogEntry]:
        """Append one entry. Returns None if the write failed."""
        cost = self.compute_cost(prompt_tokens, completion_tokens)
        entry = CostLogEntry(
            operation=operation,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            cost=cost,
            metadata_json=json.dumps(metadata, default=str) if metadata else None,
        )
        try:
            with get_session_context() as session:
                session.add(entry)
                session.commit()
                session.refresh(entry)
        except Exception as e:
            logger.error(
                "Failed to record cost for %s (%d prompt / %d completion tokens, $%.4f): %s",
                operation, prompt_tokens, completion_tokens, cost, e,
            )
            return None

        logger.info(
            "AI usage logged: %s - %d tokens, $%.4f",
            operation, entry.total_tokens, cost,
        )
        return entry

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    @staticmethod
    def _window(stmt, start: Optional[datetime], end: Optional[datetime]):
        if start is not None:
            stmt = stmt.where(CostLogEntry.created_at >= as_naive_utc(start))
        if end is not None:
            stmt = stmt.where(CostLogEntry.created_at <= as_naive_utc(end))
        return stmt

    def total_cost(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> float:
        stmt = self._window(select(func.coalesce(func.sum(CostLogEntry.cost), 0.0)), start, end)
        with get_session_context() as session:
            return float(session.exec(stmt).one())

    def usage_stats(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> UsageStats:
        totals_stmt = self._window(
            select(
                func.count(CostLogEntry.id),
                func.coalesce(func.sum(CostLogEntry.prompt_tokens), 0),
                func.coalesce(func.sum(CostLogEntry.completion_tokens), 0),
                func.coalesce(func.sum(CostLogEntry.total_tokens), 0),
                func.coalesce(func.sum(CostLogEntry.cost), 0.0),
            ),
            start,
            end,
        )
        by_op_stmt = self._window(
            select(CostLogEntry.operation, func.count(CostLogEntry.id)).group_by(CostLogEntry.operation),
            start,
            end,
        )
        with get_session_context() as session:
            count, prompt, completion, total, cost = session.exec(totals_stmt).one()
            by_operation = {op: n for op, n in session.exec(by_op_stmt).all()}

        return UsageStats(
            total_requests=int(count),
            prompt_tokens=int(prompt),
            completion_tokens=int(completion),
            total_tokens=int(total),
            total_cost=float(cost),
            requests_by_operation=by_operation,
        )

    def entries(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        operation: Optional[str] = None,
        limit: int = 100,
    ) -> List[CostLogEntry]:
        stmt = self._window(select(CostLogEntry), start, end)
        if operation:
            stmt = stmt.where(CostLogEntry.operation == operation)
        stmt = stmt.order_by(CostLogEntry.created_at.desc(), CostLogEntry.id.desc()).limit(limit)
        with get_session_context() as session:
            return list(session.exec(stmt).all())
