"""
Analysis result value objects returned by the AnalysisGateway.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

from insights.models.feedback import METRIC_FIELDS, Sentiment, SeverityTier, Tone, mean_score

DEFAULT_THEME = "General"


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class FeedbackAnalysis:
    """
    Parsed analysis for one feedback body.

    ``is_empty`` marks the sentinel produced when a response could not be
    salvaged; it carries neutral defaults but must never be written to an
    item as a real analysis. ``clamped_fields`` lists metrics that were
    defaulted or clamped while parsing (analyzed-but-uncertain).
    """
    sentiment: Sentiment = Sentiment.NEUTRAL
    tone: Tone = Tone.NEUTRAL
    urgency: float = 0.5
    importance: float = 0.5
    clarity: float = 0.5
    quality: float = 0.5
    helpfulness: float = 0.5
    theme_label: str = DEFAULT_THEME
    is_empty: bool = False
    clamped_fields: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def empty(cls) -> "FeedbackAnalysis":
        return cls(is_empty=True)

    def metrics(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in METRIC_FIELDS}

    @property
    def score(self) -> float:
        return mean_score(self.metrics())

    @property
    def severity(self) -> SeverityTier:
        return SeverityTier.from_score(self.score)
