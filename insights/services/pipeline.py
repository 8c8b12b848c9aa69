"""
Analysis pipeline wiring.

Builds the gateway, resolver, orchestrator, summary scheduler and recurring
jobs from settings and holds the process-wide instance the routers use.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from insights.config import Settings, settings as default_settings
from insights.core.errors import InsightsError
from insights.services.analysis_gateway import AnalysisGateway
from insights.services.analysis_orchestrator import AnalysisOrchestrator
from insights.services.cost_ledger import CostLedger
from insights.services.feedback_store import FeedbackStore
from insights.services.llm_providers.base import BaseLLMProvider
from insights.services.recurring_jobs import RecurringJobs
from insights.services.response_cache import ResponseCache, TTLResponseCache
from insights.services.summary_scheduler import SummaryScheduler
from insights.services.topic_resolver import TopicResolver

logger = logging.getLogger(__name__)


@dataclass
class AnalysisPipeline:
    store: FeedbackStore
    cost_ledger: CostLedger
    gateway: AnalysisGateway
    resolver: TopicResolver
    orchestrator: AnalysisOrchestrator
    scheduler: SummaryScheduler
    jobs: RecurringJobs


def build_cost_ledger(cfg: Settings = default_settings) -> CostLedger:
    return CostLedger(cfg.prompt_cost_per_1k, cfg.completion_cost_per_1k)


def build_pipeline(
    provider: Optional[BaseLLMProvider] = None,
    *,
    cache: Optional[ResponseCache] = None,
    cfg: Settings = default_settings,
) -> AnalysisPipeline:
    if provider is None:
        from insights.services.llm_service import create_provider
        provider = create_provider(cfg.llm_provider)

    store = FeedbackStore()
    ledger = build_cost_ledger(cfg)
    gateway = AnalysisGateway(
        provider,
        ledger,
        cache if cache is not None else TTLResponseCache(cfg.cache_ttl_seconds, cfg.cache_max_entries),
        max_retries=cfg.llm_max_retries,
        retry_base_delay_s=cfg.llm_retry_base_delay_s,
        request_timeout_s=cfg.llm_request_timeout_s,
        temperature=cfg.llm_temperature,
        analysis_max_tokens=cfg.llm_max_tokens,
        topic_max_tokens=cfg.llm_topic_max_tokens,
        summary_max_tokens=cfg.llm_summary_max_tokens,
        topic_name_max_length=cfg.topic_name_max_length,
    )
    resolver = TopicResolver(store, cfg.topic_similarity_threshold, cfg.topic_name_max_length)
    orchestrator = AnalysisOrchestrator(
        store,
        gateway,
        resolver,
        worker_count=cfg.analysis_worker_count,
        item_deadline_s=cfg.analysis_item_deadline_s,
        processing_timeout_s=cfg.processing_timeout_s,
        pending_stale_after_s=cfg.pending_stale_after_s,
        sweep_batch_size=cfg.sweep_batch_size,
    )
    scheduler = SummaryScheduler(
        store, gateway, min_items=cfg.summary_min_items, sample_cap=cfg.summary_sample_cap,
    )
    jobs = RecurringJobs(
        orchestrator,
        scheduler,
        sweep_interval_s=cfg.sweep_interval_s,
        summary_interval_s=cfg.summary_check_interval_s,
    )
    return AnalysisPipeline(store, ledger, gateway, resolver, orchestrator, scheduler, jobs)


_pipeline: Optional[AnalysisPipeline] = None


def set_pipeline(pipeline: Optional[AnalysisPipeline]) -> None:
    global _pipeline
    _pipeline = pipeline


def current_pipeline() -> Optional[AnalysisPipeline]:
    return _pipeline


def get_pipeline() -> AnalysisPipeline:
    """FastAPI dependency: the running pipeline, or INS-CFG-001 if none."""
    if _pipeline is None:
        raise InsightsError("INS-CFG-001", detail="analysis pipeline not initialized")
    return _pipeline


_cost_ledger: Optional[CostLedger] = None


def get_cost_ledger() -> CostLedger:
    """FastAPI dependency: the cost ledger (available without a provider)."""
    global _cost_ledger
    if _pipeline is not None:
        return _pipeline.cost_ledger
    if _cost_ledger is None:
        _cost_ledger = build_cost_ledger()
    return _cost_ledger
