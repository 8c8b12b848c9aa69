"""
Pytest configuration for feedback-insights tests.
Points the database and logs at a temp directory before any app import.
"""

import json
import os
import tempfile

_test_data_dir = tempfile.mkdtemp(prefix="insights_test_")
os.environ.setdefault("INSIGHTS_DATA_DIRECTORY", _test_data_dir)
os.environ.setdefault("INSIGHTS_LOG_DIR", os.path.join(_test_data_dir, "logs"))
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")

from typing import List, Optional, Union

import pytest
from sqlmodel import delete

from insights.core.database import create_tables, get_session_context
from insights.core.errors.registry import error_registry
from insights.core.timeutils import utc_now
from insights.models import CostLogEntry, FeedbackItem, Inquiry, Topic
from insights.models.analysis import TokenUsage
from insights.models.feedback import FeedbackStatus, FeedbackType
from insights.models.topic import InquiryStatus
from insights.services.analysis_gateway import AnalysisGateway
from insights.services.cost_ledger import CostLedger
from insights.services.feedback_store import FeedbackStore
from insights.services.llm_providers.base import BaseLLMProvider, Completion
from insights.services.response_cache import TTLResponseCache

create_tables()
error_registry.load()


# ---------------------------------------------------------------------------
# Scripted provider
# ---------------------------------------------------------------------------

class ScriptedProvider(BaseLLMProvider):
    """Returns queued responses in order; an Exception entry is raised instead."""

    name = "scripted"

    def __init__(self, responses: Optional[List[Union[str, Exception]]] = None, default: Optional[str] = None):
        self.responses = list(responses or [])
        self.default = default
        self.calls: List[dict] = []

    async def complete(self, prompt, system_prompt=None, max_tokens=1024, temperature=0.2):
        self.calls.append({"prompt": prompt, "system_prompt": system_prompt, "max_tokens": max_tokens})
        if self.responses:
            response = self.responses.pop(0)
        elif self.default is not None:
            response = self.default
        else:
            raise AssertionError("ScriptedProvider ran out of responses")
        if isinstance(response, Exception):
            raise response
        return Completion(text=response, usage=TokenUsage(prompt_tokens=100, completion_tokens=50))

    def get_model_info(self):
        return {"provider": "scripted", "model": "test"}


def analysis_json(**overrides) -> str:
    payload = {
        "sentiment": "Negative",
        "tone": "Negative",
        "urgency": 0.8,
        "importance": 0.9,
        "clarity": 0.7,
        "quality": 0.6,
        "helpfulness": 1.0,
        "theme": "Technology",
    }
    payload.update(overrides)
    return json.dumps({k: v for k, v in payload.items() if v is not None})


def summary_json(headline: str = "Connectivity dominates feedback") -> str:
    return json.dumps({
        "topics": ["WiFi", "Library"],
        "executiveSummaryData": {
            "headlineInsight": headline,
            "responseMix": "Mostly negative",
            "keyTakeaways": "Outages in the library are the main concern.",
            "risks": "Lost study time",
            "opportunities": "Upgrade access points",
        },
        "suggestedPrioritizedActions": [
            {
                "action": "Replace library access points",
                "impact": "high",
                "challenges": "Budget",
                "responseCount": 7,
                "supportingReasoning": "Most responses mention dropouts",
            }
        ],
    })


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_tables():
    yield
    with get_session_context() as session:
        for model in (CostLogEntry, FeedbackItem, Topic, Inquiry):
            session.exec(delete(model))
        session.commit()


@pytest.fixture
def store():
    return FeedbackStore()


@pytest.fixture
def ledger():
    return CostLedger(prompt_cost_per_1k=0.03, completion_cost_per_1k=0.06)


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def make_gateway(ledger, sleeps):
    async def _fake_sleep(delay):
        sleeps.append(delay)

    def _make(provider: BaseLLMProvider, cache=None, **kwargs) -> AnalysisGateway:
        kwargs.setdefault("request_timeout_s", 5.0)
        return AnalysisGateway(
            provider,
            ledger,
            cache if cache is not None else TTLResponseCache(ttl_seconds=3600),
            sleep=_fake_sleep,
            **kwargs,
        )

    return _make


@pytest.fixture
def make_item():
    def _make(
        body: str = "The library WiFi keeps disconnecting.",
        status: FeedbackStatus = FeedbackStatus.PENDING,
        **fields,
    ) -> FeedbackItem:
        item = FeedbackItem(body=body, status=status.value, **fields)
        with get_session_context() as session:
            session.add(item)
            session.commit()
            session.refresh(item)
        return item

    return _make


@pytest.fixture
def make_topic():
    def _make(name: str, scope_id: Optional[str] = None, **fields) -> Topic:
        topic = Topic(name=name, scope_id=scope_id, **fields)
        with get_session_context() as session:
            session.add(topic)
            session.commit()
            session.refresh(topic)
        return topic

    return _make


@pytest.fixture
def make_inquiry():
    def _make(body: str = "How is the new timetable working for you?", **fields) -> Inquiry:
        fields.setdefault("status", InquiryStatus.ACTIVE.value)
        inquiry = Inquiry(body=body, **fields)
        with get_session_context() as session:
            session.add(inquiry)
            session.commit()
            session.refresh(inquiry)
        return inquiry

    return _make


@pytest.fixture
def make_analyzed_items(make_item):
    """Create ``n`` analyzed items linked to a topic or inquiry."""
    def _make(n: int, *, topic_id: Optional[str] = None, inquiry_id: Optional[str] = None):
        items = []
        for i in range(n):
            items.append(make_item(
                body=f"Feedback number {i} about the library network",
                status=FeedbackStatus.PROCESSED,
                type=(FeedbackType.INQUIRY_LINKED if inquiry_id else FeedbackType.GENERAL).value,
                topic_id=topic_id,
                inquiry_id=inquiry_id,
                sentiment="negative" if i % 2 else "positive",
                tone="neutral",
                urgency=0.5, importance=0.5, clarity=0.5, quality=0.5, helpfulness=0.5,
                score=0.5,
                severity="medium",
                analyzed_at=utc_now(),
            ))
        return items

    return _make
