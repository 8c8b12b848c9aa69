from .cost_log import CostLogEntry
from .feedback import FeedbackItem, FeedbackStatus, FeedbackType, Sentiment, SeverityTier, Tone
from .topic import Inquiry, InquiryStatus, Topic
from .summary import AggregateKind, AggregateRef, ExecutiveSummary, SuggestedAction

__all__ = [
    "CostLogEntry",
    "FeedbackItem",
    "FeedbackStatus",
    "FeedbackType",
    "Sentiment",
    "SeverityTier",
    "Tone",
    "Inquiry",
    "InquiryStatus",
    "Topic",
    "AggregateKind",
    "AggregateRef",
    "ExecutiveSummary",
    "SuggestedAction",
]
