"""
Error code system.

InsightsError is the base exception for all structured errors.
Raise it with an error code from the registry, and the error middleware
will produce a structured JSON response.

Usage:
    from insights.core.errors import InsightsError
    raise InsightsError("INS-FBK-001", detail="no feedback item 3f2a...")

The analysis pipeline raises the typed subclasses below; callers catch
``AnalysisFailed`` to handle every model-call failure at once.
"""

from __future__ import annotations

import re

CODE_PATTERN = re.compile(r"^INS-[A-Z]{2,6}-\d{3}$")


class InsightsError(Exception):
    """Structured application error tied to the error registry.

    Args:
        code: Registry error code, e.g. "INS-LLM-001".
        detail: Internal-only detail message (never exposed to users).
        context: Arbitrary key-value context for structured logging.
    """

    def __init__(
        self,
        code: str,
        detail: str | None = None,
        context: dict | None = None,
    ) -> None:
        if not CODE_PATTERN.match(code):
            raise ValueError(f"Invalid error code format: {code!r}")
        self.code = code
        self.detail = detail
        self.context = context or {}
        super().__init__(f"{code}: {detail}" if detail else code)


class _CodedError(InsightsError):
    CODE = "INS-SYS-001"

    def __init__(self, detail: str | None = None, context: dict | None = None) -> None:
        super().__init__(self.CODE, detail=detail, context=context)


class AnalysisFailed(_CodedError):
    """A model call did not produce a usable result."""
    CODE = "INS-LLM-000"


class AnalysisUnavailable(AnalysisFailed):
    """Transient provider failures exhausted the retry budget. Retryable later."""
    CODE = "INS-LLM-001"


class AnalysisRejected(AnalysisFailed):
    """The provider refused the request (auth, bad request). Not retried."""
    CODE = "INS-LLM-002"


class MalformedOutputError(AnalysisFailed):
    """No JSON object could be located or parsed in the provider output."""
    CODE = "INS-LLM-003"


class FeedbackNotFound(_CodedError):
    CODE = "INS-FBK-001"


class AggregateNotFound(_CodedError):
    CODE = "INS-SUM-001"
