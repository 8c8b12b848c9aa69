"""
Topic and Inquiry Models
========================

Aggregates that feedback items roll up into. Both carry a cached executive
summary (JSON) and the time it was generated; the summary scheduler compares
that time against the newest contributing item to decide whether to refresh.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Column, Field, SQLModel, Text

from insights.core.timeutils import utc_now
from insights.models.summary import ExecutiveSummary


class InquiryStatus(str, Enum):
    DRAFT = "draft"    # not sent yet
    ACTIVE = "active"  # accepting responses
    CLOSED = "closed"


class _SummaryMixin:
    summary_json: Optional[str]
    summary_generated_at: Optional[datetime]

    def parsed_summary(self) -> Optional[ExecutiveSummary]:
        if not self.summary_json:
            return None
        return ExecutiveSummary.from_json(self.summary_json)


class Topic(_SummaryMixin, SQLModel, table=True):
    """A named cluster of related general feedback, created by the topic resolver."""

    __tablename__ = "topics"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=36)
    name: str = Field(max_length=100, index=True)
    scope_id: Optional[str] = Field(default=None, index=True, max_length=64)
    summary_json: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_generated_at: Optional[datetime] = Field(default=None)
    is_archived: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Inquiry(_SummaryMixin, SQLModel, table=True):
    """A question put to respondents; owned by the inquiry service, summarized here."""

    __tablename__ = "inquiries"

    id: str = Field(default_factory=lambda: uuid.uuid4().hex, primary_key=True, max_length=36)
    body: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(default=InquiryStatus.DRAFT.value, index=True, max_length=16)
    summary_json: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_generated_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
