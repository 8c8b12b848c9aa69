"""
Cost Log Model
==============

Append-only record of one billed provider call. Rows are written by the
CostLedger and never updated or deleted.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Column, Field, SQLModel, Text

from insights.core.timeutils import utc_now


class CostLogEntry(SQLModel, table=True):
    __tablename__ = "cost_log_entries"

    id: Optional[int] = Field(default=None, primary_key=True)
    operation: str = Field(max_length=64, index=True)
    prompt_tokens: int = Field(default=0)
    completion_tokens: int = Field(default=0)
    total_tokens: int = Field(default=0)
    cost: float = Field(default=0.0)  # USD
    created_at: datetime = Field(default_factory=utc_now, index=True)
    # Free-form JSON ("metadata" is reserved on declarative models)
    metadata_json: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
