"""
Executive Summary value objects.

Not a table: summaries are stored as JSON on the Topic / Inquiry row they
describe. The JSON uses the camelCase keys the summary prompt asks the model
for, so a provider response and a stored payload share one shape.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

NARRATIVE_KEYS = (
    "headlineInsight",
    "responseMix",
    "keyTakeaways",
    "risks",
    "opportunities",
)

_EMPTY_NARRATIVE = {
    "headlineInsight": "Insufficient data for analysis",
    "responseMix": "No responses available",
    "keyTakeaways": "Not enough feedback to generate insights",
    "risks": "N/A",
    "opportunities": "N/A",
}


class AggregateKind(str, Enum):
    TOPIC = "topic"
    INQUIRY = "inquiry"


@dataclass(frozen=True)
class AggregateRef:
    """Identifies the topic or inquiry a summary is computed over."""
    kind: AggregateKind
    id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.id}"


class ImpactTier(str, Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class SuggestedAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    action: str = ""
    impact: ImpactTier = ImpactTier.MEDIUM
    challenges: str = ""
    response_count: int = Field(default=0, alias="responseCount")
    supporting_reasoning: str = Field(default="", alias="supportingReasoning")

    @field_validator("impact", mode="before")
    @classmethod
    def _upper_impact(cls, value: Any) -> Any:
        if isinstance(value, ImpactTier):
            return value
        if isinstance(value, str):
            tier = value.strip().upper()
            if tier in ImpactTier.__members__:
                return ImpactTier[tier]
        logger.warning("Unknown impact tier %r, defaulting to %s", value, ImpactTier.MEDIUM.value)
        return ImpactTier.MEDIUM

    @field_validator("response_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        if isinstance(value, bool) or value is None:
            return 0
        try:
            return max(0, int(float(value)))
        except (TypeError, ValueError, OverflowError):
            logger.warning("responseCount %r is not numeric, defaulting to 0", value)
            return 0


class ExecutiveSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    topics: List[str] = Field(default_factory=list)
    narrative: Dict[str, str] = Field(default_factory=dict, alias="executiveSummaryData")
    suggested_actions: List[SuggestedAction] = Field(
        default_factory=list, alias="suggestedPrioritizedActions"
    )
    generated_at: Optional[datetime] = Field(default=None, alias="generatedAt")
    # Sentinel marker: never persisted, never cached
    is_empty: bool = Field(default=False, exclude=True)

    @classmethod
    def empty(cls) -> "ExecutiveSummary":
        return cls(narrative=dict(_EMPTY_NARRATIVE), is_empty=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, payload: str) -> "ExecutiveSummary":
        return cls.model_validate_json(payload)
