"""
Feedback Insights Configuration
===============================

PURPOSE:
    Pydantic-Settings based configuration for the analysis pipeline.
    All settings can be overridden via environment variables (INSIGHTS_ prefix).

DEFAULTS:
    The retry, cache, similarity and summary defaults mirror the values the
    pipeline was tuned with (3 retries at 2s base backoff, 24h cache TTL,
    0.7 topic similarity, summaries from 10 contributing items). They are
    configuration, not contract: the right values depend on how consistently
    the provider labels and scores feedback.
"""

import logging
from typing import Literal, Optional

from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    app_name: str = "feedback-insights"
    debug: bool = False

    # Storage
    data_directory: str = "/data"

    # Logging
    log_dir: str = "logs"
    log_level: str = "INFO"

    # LLM provider (BYO-Key)
    llm_provider: Literal["openai", "anthropic", "gemini"] = "openai"
    llm_model: Optional[str] = None  # None = provider default
    llm_temperature: float = 0.2
    llm_max_tokens: int = 2000
    llm_summary_max_tokens: int = 3000
    llm_topic_max_tokens: int = 50
    llm_request_timeout_s: float = 60.0
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None  # Azure / compatible gateways
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None

    # Retry policy for transient provider failures
    llm_max_retries: int = 3
    llm_retry_base_delay_s: float = 2.0  # doubled per retry: 2s, 4s, 8s

    # Response cache
    cache_ttl_hours: float = 24.0
    cache_max_entries: int = 10_000

    # Cost accounting (USD per 1K tokens)
    prompt_cost_per_1k: float = 0.03
    completion_cost_per_1k: float = 0.06

    # Topic resolution
    topic_similarity_threshold: float = 0.7
    topic_name_max_length: int = 100

    # Executive summaries
    summary_min_items: int = 10
    summary_sample_cap: int = 100
    summary_check_interval_s: int = 24 * 60 * 60

    # Analysis workers
    analysis_worker_count: int = 4
    analysis_item_deadline_s: float = 300.0

    # Recurring sweep
    sweep_interval_s: int = 300  # every 5 minutes
    pending_stale_after_s: int = 600
    processing_timeout_s: int = 900
    sweep_batch_size: int = 50

    class Config:
        env_file = ".env"
        env_prefix = "INSIGHTS_"

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600


settings = Settings()

logger.info(
    "Analysis provider: %s (model=%s, workers=%d)",
    settings.llm_provider,
    settings.llm_model or "default",
    settings.analysis_worker_count,
)
