"""
Analysis Gateway Tests
======================

Coverage:
  - Cache: hit skips provider and ledger, key separates general/linked,
    whitespace-normalized bodies share a key, TTL expiry, sentinel never cached
  - Retry: exponential backoff delays, exhaustion -> AnalysisUnavailable,
    non-retryable -> AnalysisRejected, per-attempt timeout is retryable
  - Ledger: one entry per billed call, charged even when output is malformed
  - Call shapes: topic naming, topic vs inquiry summaries, empty summary input
"""

import asyncio
import json
from datetime import datetime

import pytest

from insights.core.errors import AnalysisFailed, AnalysisRejected, AnalysisUnavailable, MalformedOutputError
from insights.models.feedback import Sentiment
from insights.models.summary import AggregateKind, AggregateRef
from insights.services.analysis_gateway import (
    OperationKind,
    analysis_cache_key,
    summary_cache_key,
)
from insights.services.llm_providers.base import (
    AuthenticationError,
    InvalidRequestError,
    ProviderServerError,
    RateLimitError,
)
from insights.services.response_cache import TTLResponseCache

from conftest import ScriptedProvider, analysis_json, summary_json

BODY = "The library WiFi keeps disconnecting during exams."


# ---------------------------------------------------------------------------
# Cache keys
# ---------------------------------------------------------------------------

class TestCacheKeys:

    def test_key_separates_general_and_linked(self):
        assert analysis_cache_key(BODY, False) != analysis_cache_key(BODY, True)
        assert analysis_cache_key(BODY, False).endswith(":general")
        assert analysis_cache_key(BODY, True).endswith(":linked")

    def test_whitespace_normalized(self):
        assert analysis_cache_key("too   hot \n in here", False) == analysis_cache_key("too hot in here", False)

    def test_summary_key_changes_with_new_items(self):
        agg = AggregateRef(AggregateKind.TOPIC, "t1")
        ts = datetime(2026, 3, 1, 12, 0, 0)
        assert summary_cache_key(OperationKind.TOPIC_SUMMARY, agg, 10, ts) != summary_cache_key(
            OperationKind.TOPIC_SUMMARY, agg, 11, ts
        )


# ---------------------------------------------------------------------------
# Caching behaviour
# ---------------------------------------------------------------------------

class TestCaching:

    @pytest.mark.asyncio
    async def test_cache_hit_skips_provider_and_ledger(self, make_gateway, ledger):
        provider = ScriptedProvider([analysis_json()])
        gateway = make_gateway(provider)

        first = await gateway.analyze_feedback(BODY, is_linked=False)
        second = await gateway.analyze_feedback(BODY, is_linked=False)

        assert first == second
        assert len(provider.calls) == 1
        assert ledger.usage_stats().total_requests == 1

    @pytest.mark.asyncio
    async def test_linked_and_general_cached_separately(self, make_gateway):
        provider = ScriptedProvider(default=analysis_json())
        gateway = make_gateway(provider)

        await gateway.analyze_feedback(BODY, is_linked=False)
        await gateway.analyze_feedback(BODY, is_linked=True)

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_calls_provider_again(self, make_gateway):
        clock = [0.0]
        cache = TTLResponseCache(ttl_seconds=86400, timer=lambda: clock[0])
        provider = ScriptedProvider(default=analysis_json())
        gateway = make_gateway(provider, cache=cache)

        await gateway.analyze_feedback(BODY, is_linked=False)
        clock[0] = 86401.0
        await gateway.analyze_feedback(BODY, is_linked=False)

        assert len(provider.calls) == 2

    @pytest.mark.asyncio
    async def test_empty_sentinel_not_cached(self, make_gateway, ledger):
        provider = ScriptedProvider(default=json.dumps({"note": "nothing useful"}))
        gateway = make_gateway(provider)

        result = await gateway.analyze_feedback(BODY, is_linked=False)
        await gateway.analyze_feedback(BODY, is_linked=False)

        assert result.is_empty is True
        assert len(provider.calls) == 2
        assert ledger.usage_stats().total_requests == 2


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------

class TestRetry:

    @pytest.mark.asyncio
    async def test_transient_failures_back_off_then_succeed(self, make_gateway, sleeps):
        provider = ScriptedProvider([
            RateLimitError("slow down", provider="scripted"),
            ProviderServerError("502", provider="scripted"),
            analysis_json(),
        ])
        gateway = make_gateway(provider)

        result = await gateway.analyze_feedback(BODY, is_linked=False)

        assert result.sentiment == Sentiment.NEGATIVE
        assert sleeps == [2.0, 4.0]
        assert len(provider.calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_raises_unavailable(self, make_gateway, sleeps, ledger):
        provider = ScriptedProvider(default=None, responses=[
            RateLimitError("slow down", provider="scripted") for _ in range(4)
        ])
        gateway = make_gateway(provider)

        with pytest.raises(AnalysisUnavailable) as exc_info:
            await gateway.analyze_feedback(BODY, is_linked=False)

        assert sleeps == [2.0, 4.0, 8.0]
        assert len(provider.calls) == 4
        assert exc_info.value.context["attempts"] == 4
        assert ledger.usage_stats().total_requests == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_cls", [AuthenticationError, InvalidRequestError])
    async def test_non_retryable_not_retried(self, make_gateway, sleeps, error_cls):
        provider = ScriptedProvider([error_cls("nope", provider="scripted")])
        gateway = make_gateway(provider)

        with pytest.raises(AnalysisRejected) as exc_info:
            await gateway.analyze_feedback(BODY, is_linked=False)

        assert isinstance(exc_info.value, AnalysisFailed)
        assert exc_info.value.code == "INS-LLM-002"
        assert sleeps == []
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_attempt_timeout_is_retryable(self, make_gateway, sleeps):
        class SlowProvider(ScriptedProvider):
            async def complete(self, prompt, system_prompt=None, max_tokens=1024, temperature=0.2):
                self.calls.append({"prompt": prompt})
                await asyncio.sleep(1)

        provider = SlowProvider()
        gateway = make_gateway(provider, request_timeout_s=0.01, max_retries=1)

        with pytest.raises(AnalysisUnavailable):
            await gateway.analyze_feedback(BODY, is_linked=False)

        assert len(provider.calls) == 2
        assert sleeps == [2.0]


# ---------------------------------------------------------------------------
# Ledger and parsing
# ---------------------------------------------------------------------------

class TestLedgerAndParsing:

    @pytest.mark.asyncio
    async def test_malformed_output_raises_but_is_billed(self, make_gateway, ledger):
        provider = ScriptedProvider(["I'm sorry, I can't help with that."])
        gateway = make_gateway(provider)

        with pytest.raises(MalformedOutputError):
            await gateway.analyze_feedback(BODY, is_linked=False)

        stats = ledger.usage_stats()
        assert stats.total_requests == 1
        assert stats.requests_by_operation == {"feedback_analysis": 1}

    @pytest.mark.asyncio
    async def test_ledger_entry_has_cost(self, make_gateway, ledger):
        gateway = make_gateway(ScriptedProvider([analysis_json()]))
        await gateway.analyze_feedback(BODY, is_linked=False)

        entry = ledger.entries()[0]
        assert entry.prompt_tokens == 100
        assert entry.completion_tokens == 50
        assert entry.total_tokens == 150
        assert entry.cost == pytest.approx(0.006)

    @pytest.mark.asyncio
    async def test_prompt_carries_body_and_system_prompt(self, make_gateway):
        provider = ScriptedProvider([analysis_json()])
        await make_gateway(provider).analyze_feedback(BODY, is_linked=False)

        call = provider.calls[0]
        assert BODY in call["prompt"]
        assert call["system_prompt"]
        assert call["max_tokens"] == 2000


# ---------------------------------------------------------------------------
# Topic names and summaries
# ---------------------------------------------------------------------------

class TestCallShapes:

    @pytest.mark.asyncio
    async def test_suggest_topic_name(self, make_gateway, ledger):
        provider = ScriptedProvider(['"Library WiFi Connectivity Issues"'])
        gateway = make_gateway(provider)

        name = await gateway.suggest_topic_name(BODY)

        assert name == "Library WiFi Connectivity Issues"
        assert provider.calls[0]["max_tokens"] == 50
        assert ledger.usage_stats().requests_by_operation == {"topic_naming": 1}

    @pytest.mark.asyncio
    async def test_empty_bodies_skip_provider(self, make_gateway):
        provider = ScriptedProvider()
        summary = await make_gateway(provider).generate_summary([], {})
        assert summary.is_empty is True
        assert provider.calls == []

    @pytest.mark.asyncio
    async def test_inquiry_summary_operation(self, make_gateway, ledger):
        provider = ScriptedProvider([summary_json()])
        gateway = make_gateway(provider)

        summary = await gateway.generate_summary(
            ["Timetable clashes every Monday"] * 3,
            {"positive": 1, "neutral": 0, "negative": 2},
            aggregate=AggregateRef(AggregateKind.INQUIRY, "inq-1"),
            contributing_count=3,
            latest_update=datetime(2026, 3, 1),
        )

        assert summary.is_empty is False
        assert ledger.usage_stats().requests_by_operation == {"inquiry_summary": 1}
        assert "66.7%" in provider.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_topic_summary_cached_until_new_item(self, make_gateway):
        provider = ScriptedProvider(default=summary_json())
        gateway = make_gateway(provider)
        agg = AggregateRef(AggregateKind.TOPIC, "t1")
        ts = datetime(2026, 3, 1)

        await gateway.generate_summary(["a"], {"negative": 1}, aggregate=agg, contributing_count=1, latest_update=ts)
        await gateway.generate_summary(["a"], {"negative": 1}, aggregate=agg, contributing_count=1, latest_update=ts)
        await gateway.generate_summary(["a", "b"], {"negative": 2}, aggregate=agg, contributing_count=2,
                                       latest_update=datetime(2026, 3, 2))

        assert len(provider.calls) == 2
