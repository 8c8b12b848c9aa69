"""
Feedback Item Model
===================

One unit of submitted free text and, once analyzed, its structured record:
sentiment/tone, five quality metrics, derived score and severity tier, and
(for general feedback) the topic it was clustered into.

Items are created by the intake service with status ``pending`` and are only
mutated here by the analysis workers. Metrics and score are written in a
single update, so an item is either fully analyzed or not analyzed at all.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from sqlmodel import Column, Field, SQLModel, Text

from insights.core.timeutils import utc_now


class FeedbackType(str, Enum):
    GENERAL = "general"                # unsolicited, clustered into topics
    INQUIRY_LINKED = "inquiry_linked"  # answer to an inquiry


class FeedbackStatus(str, Enum):
    """Feedback lifecycle states."""
    PENDING = "pending"        # awaiting analysis (claimable)
    PROCESSING = "processing"  # claimed by a worker
    PROCESSED = "processed"    # analysis complete
    REVIEWED = "reviewed"      # seen by an operator
    ERROR = "error"            # analysis failed; needs resubmission


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Tone(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class SeverityTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_score(cls, score: float) -> "SeverityTier":
        if score >= 0.75:
            return cls.HIGH
        if score >= 0.5:
            return cls.MEDIUM
        return cls.LOW


METRIC_FIELDS = ("urgency", "importance", "clarity", "quality", "helpfulness")


def mean_score(metrics: Dict[str, float]) -> float:
    """Derived score: unweighted mean of the five quality metrics."""
    return sum(metrics[name] for name in METRIC_FIELDS) / len(METRIC_FIELDS)


class FeedbackItem(SQLModel, table=True):
    __tablename__ = "feedback_items"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=36)
    body: str = Field(sa_column=Column(Text, nullable=False))
    type: str = Field(default=FeedbackType.GENERAL.value, max_length=32)
    status: str = Field(default=FeedbackStatus.PENDING.value, index=True, max_length=32)

    inquiry_id: Optional[str] = Field(default=None, foreign_key="inquiries.id", index=True, max_length=36)
    topic_id: Optional[str] = Field(default=None, foreign_key="topics.id", index=True, max_length=36)
    # Organizational unit (department) of the submitter; scopes topic matching
    scope_id: Optional[str] = Field(default=None, index=True, max_length=64)

    # Analysis results (all null until analyzed)
    sentiment: Optional[str] = Field(default=None, max_length=16)
    tone: Optional[str] = Field(default=None, max_length=16)
    theme: Optional[str] = Field(default=None, max_length=64)
    urgency: Optional[float] = Field(default=None)
    importance: Optional[float] = Field(default=None)
    clarity: Optional[float] = Field(default=None)
    quality: Optional[float] = Field(default=None)
    helpfulness: Optional[float] = Field(default=None)
    score: Optional[float] = Field(default=None)
    severity: Optional[str] = Field(default=None, max_length=16)

    # Claim lease (set while status == processing)
    claimed_by: Optional[str] = Field(default=None, max_length=64)
    claimed_at: Optional[datetime] = Field(default=None, index=True)
    last_error: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, index=True)
    analyzed_at: Optional[datetime] = Field(default=None)

    @property
    def lifecycle(self) -> FeedbackStatus:
        return FeedbackStatus(self.status)

    @property
    def is_linked(self) -> bool:
        return self.type == FeedbackType.INQUIRY_LINKED.value

    @property
    def is_analyzed(self) -> bool:
        return self.score is not None

    def metrics(self) -> Optional[Dict[str, float]]:
        if not self.is_analyzed:
            return None
        return {name: getattr(self, name) for name in METRIC_FIELDS}
