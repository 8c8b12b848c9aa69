"""
Summary Scheduler Tests
=======================

Coverage:
  - Threshold: below min_items no refresh, at min_items refresh
  - Staleness: unchanged aggregate not regenerated, new item triggers refresh
  - Failure keeps the previously stored summary
  - Sample cap bounds the prompt; counts cover all items
  - Inquiry aggregates, enqueue_summary_check, check_all
"""

import pytest

from insights.core.database import get_session_context
from insights.core.errors import AggregateNotFound
from insights.core.timeutils import utc_now
from insights.models import FeedbackItem
from insights.models.summary import AggregateKind, AggregateRef
from insights.services.llm_providers.base import RateLimitError
from insights.services.summary_scheduler import SummaryScheduler, sentiment_counts

from conftest import ScriptedProvider, summary_json


@pytest.fixture
def make_scheduler(store, make_gateway):
    def _make(provider, **kwargs) -> SummaryScheduler:
        kwargs.setdefault("min_items", 10)
        return SummaryScheduler(store, make_gateway(provider), **kwargs)

    return _make


@pytest.fixture
def topic_ref(make_topic):
    topic = make_topic("Library WiFi Connectivity Issues")
    return AggregateRef(AggregateKind.TOPIC, topic.id)


def _touch(item_id: str):
    with get_session_context() as session:
        item = session.get(FeedbackItem, item_id)
        item.updated_at = utc_now()
        session.add(item)
        session.commit()


class TestSentimentCounts:

    def test_counts_all_sentiments(self, make_analyzed_items):
        counts = sentiment_counts(make_analyzed_items(5))
        assert counts == {"positive": 3, "neutral": 0, "negative": 2}


class TestMaybeRefresh:

    @pytest.mark.asyncio
    async def test_below_threshold_no_refresh(self, store, topic_ref, make_analyzed_items, make_scheduler):
        make_analyzed_items(9, topic_id=topic_ref.id)
        provider = ScriptedProvider()

        assert await make_scheduler(provider).maybe_refresh(topic_ref) is False
        assert provider.calls == []
        assert store.get_aggregate(topic_ref).summary_json is None

    @pytest.mark.asyncio
    async def test_threshold_reached_refreshes(self, store, topic_ref, make_analyzed_items, make_scheduler):
        make_analyzed_items(10, topic_id=topic_ref.id)
        provider = ScriptedProvider([summary_json()])

        assert await make_scheduler(provider).maybe_refresh(topic_ref) is True

        record = store.get_aggregate(topic_ref)
        assert record.summary_generated_at is not None
        summary = record.parsed_summary()
        assert summary.narrative["headlineInsight"] == "Connectivity dominates feedback"
        assert summary.generated_at == record.summary_generated_at
        assert "10 responses" in provider.calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_unchanged_aggregate_not_regenerated(self, topic_ref, make_analyzed_items, make_scheduler):
        make_analyzed_items(10, topic_id=topic_ref.id)
        provider = ScriptedProvider(default=summary_json())
        scheduler = make_scheduler(provider)

        assert await scheduler.maybe_refresh(topic_ref) is True
        assert await scheduler.maybe_refresh(topic_ref) is False
        assert len(provider.calls) == 1

    @pytest.mark.asyncio
    async def test_updated_item_triggers_refresh(self, store, topic_ref, make_analyzed_items, make_scheduler):
        items = make_analyzed_items(10, topic_id=topic_ref.id)
        provider = ScriptedProvider([summary_json("First"), summary_json("Second")])
        scheduler = make_scheduler(provider)

        await scheduler.maybe_refresh(topic_ref)
        _touch(items[0].id)

        assert await scheduler.maybe_refresh(topic_ref) is True
        assert store.get_aggregate(topic_ref).parsed_summary().narrative["headlineInsight"] == "Second"

    @pytest.mark.asyncio
    async def test_item_added_during_generation_triggers_next_refresh(
        self, store, topic_ref, make_analyzed_items, make_scheduler
    ):
        make_analyzed_items(10, topic_id=topic_ref.id)

        class ArrivingItemProvider(ScriptedProvider):
            async def complete(self, prompt, **kwargs):
                if not self.calls:
                    make_analyzed_items(1, topic_id=topic_ref.id)
                return await super().complete(prompt, **kwargs)

        provider = ArrivingItemProvider(default=summary_json())
        scheduler = make_scheduler(provider)

        assert await scheduler.maybe_refresh(topic_ref) is True
        assert len(store.contributing_items(topic_ref)) == 11

        assert await scheduler.maybe_refresh(topic_ref) is True
        assert "11 responses" in provider.calls[1]["prompt"]
        assert await scheduler.maybe_refresh(topic_ref) is False

    @pytest.mark.asyncio
    async def test_summary_stamped_with_newest_summarized_item(
        self, store, topic_ref, make_analyzed_items, make_scheduler
    ):
        items = make_analyzed_items(10, topic_id=topic_ref.id)
        scheduler = make_scheduler(ScriptedProvider([summary_json()]))

        await scheduler.maybe_refresh(topic_ref)

        latest = max(item.updated_at for item in items)
        assert store.get_aggregate(topic_ref).summary_generated_at == latest

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_summary(self, store, topic_ref, make_analyzed_items, make_scheduler):
        items = make_analyzed_items(10, topic_id=topic_ref.id)
        provider = ScriptedProvider([summary_json("Original")] + [
            RateLimitError("slow down", provider="scripted") for _ in range(4)
        ])
        scheduler = make_scheduler(provider)
        await scheduler.maybe_refresh(topic_ref)
        before = store.get_aggregate(topic_ref)
        _touch(items[0].id)

        assert await scheduler.maybe_refresh(topic_ref) is False

        after = store.get_aggregate(topic_ref)
        assert after.summary_json == before.summary_json
        assert after.summary_generated_at == before.summary_generated_at

    @pytest.mark.asyncio
    async def test_empty_result_not_saved(self, store, topic_ref, make_analyzed_items, make_scheduler):
        make_analyzed_items(10, topic_id=topic_ref.id)
        scheduler = make_scheduler(ScriptedProvider(['{"topics": []}']))

        assert await scheduler.maybe_refresh(topic_ref) is False
        assert store.get_aggregate(topic_ref).summary_json is None

    @pytest.mark.asyncio
    async def test_sample_cap_limits_prompt(self, topic_ref, make_analyzed_items, make_scheduler):
        make_analyzed_items(12, topic_id=topic_ref.id)
        provider = ScriptedProvider([summary_json()])

        await make_scheduler(provider, sample_cap=5).maybe_refresh(topic_ref)

        prompt = provider.calls[0]["prompt"]
        assert "showing first 5" in prompt
        assert "12 responses" in prompt

    @pytest.mark.asyncio
    async def test_inquiry_summary(self, store, make_inquiry, make_analyzed_items, make_scheduler, ledger):
        inquiry = make_inquiry()
        make_analyzed_items(10, inquiry_id=inquiry.id)
        ref = AggregateRef(AggregateKind.INQUIRY, inquiry.id)

        assert await make_scheduler(ScriptedProvider([summary_json()])).maybe_refresh(ref) is True
        assert store.get_aggregate(ref).summary_generated_at is not None
        assert ledger.usage_stats().requests_by_operation == {"inquiry_summary": 1}

    @pytest.mark.asyncio
    async def test_missing_aggregate_raises(self, make_analyzed_items, make_scheduler):
        ref = AggregateRef(AggregateKind.TOPIC, "missing")
        items = make_analyzed_items(10)
        with pytest.raises(AggregateNotFound):
            await make_scheduler(ScriptedProvider()).maybe_refresh(ref, contributing_items=items)


class TestScheduling:

    @pytest.mark.asyncio
    async def test_enqueue_summary_check_runs_in_background(
        self, store, topic_ref, make_analyzed_items, make_scheduler
    ):
        make_analyzed_items(10, topic_id=topic_ref.id)
        scheduler = make_scheduler(ScriptedProvider([summary_json()]))

        handle = scheduler.enqueue_summary_check(topic_ref)
        assert handle.accepted is True
        assert handle.target_id == str(topic_ref)

        await scheduler.drain()
        assert store.get_aggregate(topic_ref).summary_generated_at is not None

    @pytest.mark.asyncio
    async def test_enqueue_missing_aggregate(self, make_scheduler):
        with pytest.raises(AggregateNotFound):
            make_scheduler(ScriptedProvider()).enqueue_summary_check(AggregateRef(AggregateKind.INQUIRY, "missing"))

    @pytest.mark.asyncio
    async def test_check_all(self, make_topic, make_analyzed_items, make_scheduler):
        busy = make_topic("Library WiFi Connectivity Issues")
        quiet = make_topic("Parking Permit Costs")
        make_analyzed_items(10, topic_id=busy.id)
        make_analyzed_items(2, topic_id=quiet.id)
        provider = ScriptedProvider(default=summary_json())

        assert await make_scheduler(provider).check_all() == 1
        assert len(provider.calls) == 1
