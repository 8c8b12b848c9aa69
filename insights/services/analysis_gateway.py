"""
Analysis Gateway
================

PURPOSE:
    Single entry point for every call to the external completion provider.
    Wraps the provider behind ``invoke()`` with response caching, per-attempt
    timeout, retry with exponential backoff, cost accounting and output
    parsing, and exposes the three call shapes the pipeline needs:

    * analyze_feedback(body, is_linked)   -> FeedbackAnalysis
    * suggest_topic_name(body)            -> str
    * generate_summary(bodies, counts)    -> ExecutiveSummary

CALL FLOW (invoke):
    1. Cache lookup. A hit returns the cached parsed result with no
       provider call and no ledger entry.
    2. Provider call, each attempt bounded by ``request_timeout_s``.
       Retryable failures (timeout, rate limit, transport, 5xx) back off
       base * 2**attempt seconds (2s, 4s, 8s with defaults) and retry up to
       ``max_retries`` times, then raise AnalysisUnavailable. Non-retryable
       failures raise AnalysisRejected immediately.
    3. Ledger entry for the billed call (before parsing: the provider bills
       even when the output turns out to be unusable).
    4. Parse. Unlocatable JSON raises MalformedOutputError; the empty
       sentinel is returned but never cached.

CACHE KEYS:
    analysis : {operation}:{sha256(normalized body)[:32]}:{general|linked}
    topic    : {operation}:{sha256(normalized body)[:32]}
    summary  : {operation}:{kind}:{aggregate id}:{count}:{latest update}
    A new contributing item changes the count or the latest timestamp, so
    summary entries go stale without explicit eviction.
"""

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from insights.core.errors import AnalysisRejected, AnalysisUnavailable
from insights.core.structured_logging import operation_var
from insights.models.analysis import FeedbackAnalysis, TokenUsage
from insights.models.summary import AggregateKind, AggregateRef, ExecutiveSummary
from insights.prompts.analysis_prompts import PromptRegistry, get_prompt_registry
from insights.services.cost_ledger import CostLedger
from insights.services.llm_providers.base import BaseLLMProvider, Completion, LLMProviderError, ProviderTimeoutError
from insights.services.output_parser import (
    parse_executive_summary,
    parse_feedback_analysis,
    parse_topic_name,
)
from insights.services.response_cache import ResponseCache

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    FEEDBACK_ANALYSIS = "feedback_analysis"
    TOPIC_NAMING = "topic_naming"
    TOPIC_SUMMARY = "topic_summary"
    INQUIRY_SUMMARY = "inquiry_summary"


@dataclass(frozen=True)
class PromptPayload:
    system_prompt: Optional[str]
    user_prompt: str


@dataclass(frozen=True)
class Invocation:
    result: Any
    usage: TokenUsage
    cached: bool = False


def _digest(text: str) -> str:
    normalized = " ".join(text.split())
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()[:32]


def analysis_cache_key(body: str, is_linked: bool) -> str:
    kind = "linked" if is_linked else "general"
    return f"{OperationKind.FEEDBACK_ANALYSIS.value}:{_digest(body)}:{kind}"


def topic_cache_key(body: str) -> str:
    return f"{OperationKind.TOPIC_NAMING.value}:{_digest(body)}"


def summary_cache_key(
    operation: OperationKind,
    aggregate: AggregateRef,
    contributing_count: int,
    latest_update: datetime,
) -> str:
    return (
        f"{operation.value}:{aggregate.kind.value}:{aggregate.id}:"
        f"{contributing_count}:{latest_update.isoformat()}"
    )


class AnalysisGateway:
    def __init__(
        self,
        provider: BaseLLMProvider,
        cost_ledger: CostLedger,
        cache: Optional[ResponseCache] = None,
        *,
        prompts: Optional[PromptRegistry] = None,
        max_retries: int = 3,
        retry_base_delay_s: float = 2.0,
        request_timeout_s: float = 60.0,
        temperature: float = 0.2,
        analysis_max_tokens: int = 2000,
        topic_max_tokens: int = 50,
        summary_max_tokens: int = 3000,
        topic_name_max_length: int = 100,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.provider = provider
        self.cost_ledger = cost_ledger
        self.cache = cache
        self.prompts = prompts or get_prompt_registry()
        self.max_retries = max_retries
        self.retry_base_delay_s = retry_base_delay_s
        self.request_timeout_s = request_timeout_s
        self.temperature = temperature
        self.analysis_max_tokens = analysis_max_tokens
        self.topic_max_tokens = topic_max_tokens
        self.summary_max_tokens = summary_max_tokens
        self.topic_name_max_length = topic_name_max_length
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Core call
    # ------------------------------------------------------------------

    async def invoke(
        self,
        operation: OperationKind,
        payload: PromptPayload,
        max_output_tokens: int,
        *,
        parser: Callable[[str], Any],
        cache_key: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Invocation:
        token = operation_var.set(operation.value)
        try:
            if cache_key and self.cache is not None:
                cached = self.cache.get(cache_key)
                if cached is not None:
                    logger.info("Cache hit for %s", operation.value)
                    return Invocation(result=cached, usage=TokenUsage(), cached=True)

            completion = await self._complete_with_retry(operation, payload, max_output_tokens)
            usage = completion.usage
            logger.info(
                "AI request completed. Tokens - Prompt: %d, Completion: %d, Total: %d",
                usage.prompt_tokens, usage.completion_tokens, usage.total_tokens,
            )
            self.cost_ledger.record(
                operation.value,
                usage.prompt_tokens,
                usage.completion_tokens,
                metadata=metadata,
            )

            result = parser(completion.text)
            if cache_key and self.cache is not None and not getattr(result, "is_empty", False):
                self.cache.set(cache_key, result)
            return Invocation(result=result, usage=usage, cached=False)
        finally:
            operation_var.reset(token)

    async def _complete_with_retry(
        self,
        operation: OperationKind,
        payload: PromptPayload,
        max_output_tokens: int,
    ) -> Completion:
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    self.provider.complete(
                        payload.user_prompt,
                        system_prompt=payload.system_prompt,
                        max_tokens=max_output_tokens,
                        temperature=self.temperature,
                    ),
                    timeout=self.request_timeout_s,
                )
            except asyncio.TimeoutError as e:
                error: LLMProviderError = ProviderTimeoutError(
                    f"no response within {self.request_timeout_s}s",
                    provider=self.provider.name,
                    original_error=e,
                )
            except LLMProviderError as e:
                error = e

            context = {"operation": operation.value, "provider": error.provider, "attempts": attempt + 1}
            if not error.retryable:
                logger.error("Non-transient %s failure, not retrying: %s", operation.value, error)
                raise AnalysisRejected(str(error), context=context) from error

            if attempt >= self.max_retries:
                logger.error(
                    "%s failed after %d attempts: %s", operation.value, attempt + 1, error,
                )
                raise AnalysisUnavailable(str(error), context=context) from error

            delay = self.retry_base_delay_s * (2 ** attempt)
            attempt += 1
            logger.warning(
                "Retry %d/%d for %s after %.1fs (%s: %s)",
                attempt, self.max_retries, operation.value, delay, type(error).__name__, error,
            )
            await self._sleep(delay)

    # ------------------------------------------------------------------
    # Call shapes
    # ------------------------------------------------------------------

    async def analyze_feedback(self, body: str, is_linked: bool) -> FeedbackAnalysis:
        payload = PromptPayload(
            system_prompt=self.prompts.system_prompt,
            user_prompt=self.prompts.feedback_analysis(body, is_linked),
        )
        invocation = await self.invoke(
            OperationKind.FEEDBACK_ANALYSIS,
            payload,
            self.analysis_max_tokens,
            parser=parse_feedback_analysis,
            cache_key=analysis_cache_key(body, is_linked),
        )
        return invocation.result

    async def suggest_topic_name(self, body: str) -> str:
        payload = PromptPayload(
            system_prompt=self.prompts.system_prompt,
            user_prompt=self.prompts.topic_name(body),
        )
        invocation = await self.invoke(
            OperationKind.TOPIC_NAMING,
            payload,
            self.topic_max_tokens,
            parser=lambda text: parse_topic_name(text, self.topic_name_max_length),
            cache_key=topic_cache_key(body),
        )
        return invocation.result

    async def generate_summary(
        self,
        bodies: List[str],
        sentiment_counts: Dict[str, int],
        *,
        aggregate: Optional[AggregateRef] = None,
        contributing_count: Optional[int] = None,
        latest_update: Optional[datetime] = None,
    ) -> ExecutiveSummary:
        if not bodies:
            return ExecutiveSummary.empty()

        is_inquiry = aggregate is not None and aggregate.kind == AggregateKind.INQUIRY
        operation = OperationKind.INQUIRY_SUMMARY if is_inquiry else OperationKind.TOPIC_SUMMARY
        total = contributing_count if contributing_count is not None else len(bodies)

        cache_key = None
        if aggregate is not None and latest_update is not None:
            cache_key = summary_cache_key(operation, aggregate, total, latest_update)

        payload = PromptPayload(
            system_prompt=self.prompts.system_prompt,
            user_prompt=self.prompts.executive_summary(
                bodies,
                sentiment_counts,
                total=total,
                subject="to an inquiry" if is_inquiry else "about a single feedback topic",
            ),
        )
        invocation = await self.invoke(
            operation,
            payload,
            self.summary_max_tokens,
            parser=parse_executive_summary,
            cache_key=cache_key,
            metadata={"aggregate": str(aggregate)} if aggregate else None,
        )
        return invocation.result
