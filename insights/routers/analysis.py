"""
Analysis pipeline endpoints (operator / intake-service facing).

- POST /api/analysis/feedback/{item_id}             enqueue analysis (202)
- POST /api/analysis/summaries/{kind}/{aggregate_id} enqueue summary check (202)
- GET  /api/analysis/summaries/{kind}/{aggregate_id} stored executive summary
- GET  /api/analysis/status                          status counts + queue depth
- POST /api/analysis/errors/requeue                  move Error items back to pending
- POST /api/analysis/sweep                           run the recurring sweep now

Every enqueue returns immediately; no request waits on the provider.
"""

import logging
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from insights.core.errors import AggregateNotFound
from insights.models.summary import AggregateKind, AggregateRef
from insights.services.pipeline import AnalysisPipeline, get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter()


class RequeueRequest(BaseModel):
    ids: Optional[List[str]] = None  # None = every Error item


@router.post("/feedback/{item_id}", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_feedback_analysis(
    item_id: str,
    force: bool = Query(False, description="Re-analyze even if already processed"),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    handle = pipeline.orchestrator.enqueue_analysis(item_id, force=force)
    return asdict(handle)


@router.post("/summaries/{kind}/{aggregate_id}", status_code=status.HTTP_202_ACCEPTED)
async def enqueue_summary_check(
    kind: AggregateKind,
    aggregate_id: str,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    handle = pipeline.scheduler.enqueue_summary_check(AggregateRef(kind, aggregate_id))
    return asdict(handle)


@router.get("/summaries/{kind}/{aggregate_id}")
def get_summary(
    kind: AggregateKind,
    aggregate_id: str,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    aggregate = AggregateRef(kind, aggregate_id)
    record = pipeline.store.get_aggregate(aggregate)
    if record is None:
        raise AggregateNotFound(detail=f"{aggregate} does not exist")
    summary = record.parsed_summary()
    return {
        "aggregate": {"kind": kind.value, "id": aggregate_id},
        "summary": summary.model_dump(mode="json", by_alias=True) if summary else None,
        "generated_at": record.summary_generated_at.isoformat() if record.summary_generated_at else None,
    }


@router.get("/status")
def analysis_status(pipeline: AnalysisPipeline = Depends(get_pipeline)):
    return {
        "counts": pipeline.store.status_counts(),
        "queue_depth": pipeline.orchestrator.queue_depth,
    }


@router.post("/errors/requeue")
async def requeue_errors(
    body: RequeueRequest,
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    requeued = pipeline.store.requeue_errors(body.ids)
    handles = [pipeline.orchestrator.enqueue_analysis(item_id) for item_id in requeued]
    logger.info("Operator requeued %d error item(s)", len(requeued))
    return {"requeued": requeued, "queued": sum(1 for h in handles if h.accepted)}


@router.post("/sweep")
async def run_sweep(pipeline: AnalysisPipeline = Depends(get_pipeline)):
    report = pipeline.orchestrator.run_sweep()
    return asdict(report)
