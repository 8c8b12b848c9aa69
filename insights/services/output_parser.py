"""
Model Output Parsing
====================

PURPOSE:
    Providers return free text that is expected to contain one JSON object,
    often wrapped in prose or ```json fences. This module turns that text
    into typed results and decides what is salvageable:

    * No JSON object can be located or decoded -> ``MalformedOutputError``
      (the gateway treats this as terminal for the attempt).
    * A JSON object with missing or out-of-range fields -> defaults and
      clamps applied in place, each logged as a warning. The analysis is
      still a real analysis.
    * A JSON object that is not usable at all (wrong shape) -> the empty
      sentinel, so callers can tell "uncertain" from "not analyzed".
"""

import json
import logging
import math
import re
from enum import Enum
from typing import Any, Dict, List, Type, TypeVar

from pydantic import ValidationError

from insights.core.errors import MalformedOutputError
from insights.models.analysis import DEFAULT_THEME, FeedbackAnalysis
from insights.models.feedback import METRIC_FIELDS, Sentiment, Tone
from insights.models.summary import ExecutiveSummary

logger = logging.getLogger(__name__)

DEFAULT_METRIC = 0.5
TOPIC_NAME_MAX_LENGTH = 100

_FENCE_RE = re.compile(r"```(?:json|JSON)?")

E = TypeVar("E", bound=Enum)


def extract_json_object(text: str) -> Dict[str, Any]:
    """Strip fences, take the outermost ``{...}`` span and decode it."""
    if not text or not text.strip():
        raise MalformedOutputError("empty response")

    cleaned = _FENCE_RE.sub("", text).strip()
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        raise MalformedOutputError("no JSON object found in response", context={"preview": cleaned[:200]})

    try:
        data = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"invalid JSON: {e.msg}", context={"preview": cleaned[:200]}) from e

    if not isinstance(data, dict):
        raise MalformedOutputError("JSON payload is not an object")
    return data


def coerce_score(value: Any, field: str) -> tuple[float, bool]:
    """
    Coerce a metric to a float in [0, 1].

    Returns ``(value, adjusted)``; ``adjusted`` is True when the value was
    defaulted or clamped.
    """
    if value is None or isinstance(value, bool):
        logger.warning("Metric %s missing from analysis output, defaulting to %.1f", field, DEFAULT_METRIC)
        return DEFAULT_METRIC, True
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.warning("Metric %s=%r is not numeric, defaulting to %.1f", field, value, DEFAULT_METRIC)
        return DEFAULT_METRIC, True
    if math.isnan(number):
        logger.warning("Metric %s is NaN, defaulting to %.1f", field, DEFAULT_METRIC)
        return DEFAULT_METRIC, True
    if number < 0.0 or number > 1.0:
        clamped = min(1.0, max(0.0, number))
        logger.warning("Metric %s=%s out of range, clamped to %s", field, number, clamped)
        return clamped, True
    return number, False


def parse_enum(value: Any, enum_cls: Type[E], default: E) -> E:
    """Case-insensitive enum parse; unknown values fall back to ``default``."""
    if isinstance(value, str):
        wanted = value.strip().lower()
        for member in enum_cls:
            if member.value.lower() == wanted or member.name.lower() == wanted:
                return member
    if value is not None:
        logger.warning("Unknown %s value %r, defaulting to %s", enum_cls.__name__, value, default.value)
    return default


def parse_feedback_analysis(text: str) -> FeedbackAnalysis:
    data = extract_json_object(text)

    if not any(key in data for key in (*METRIC_FIELDS, "sentiment", "tone")):
        logger.warning("Analysis output has none of the expected fields: %s", sorted(data)[:10])
        return FeedbackAnalysis.empty()

    metrics: Dict[str, float] = {}
    adjusted: List[str] = []
    for name in METRIC_FIELDS:
        metrics[name], was_adjusted = coerce_score(data.get(name), name)
        if was_adjusted:
            adjusted.append(name)

    theme = data.get("theme")
    theme_label = theme.strip() if isinstance(theme, str) and theme.strip() else DEFAULT_THEME

    return FeedbackAnalysis(
        sentiment=parse_enum(data.get("sentiment"), Sentiment, Sentiment.NEUTRAL),
        tone=parse_enum(data.get("tone"), Tone, Tone.NEUTRAL),
        theme_label=theme_label,
        clamped_fields=tuple(adjusted),
        **metrics,
    )


def clean_topic_name(raw: str, max_length: int = TOPIC_NAME_MAX_LENGTH) -> str:
    name = raw.strip().strip("\"'`").strip()
    if len(name) > max_length:
        name = name[: max_length - 3] + "..."
    return name


def parse_topic_name(text: str, max_length: int = TOPIC_NAME_MAX_LENGTH) -> str:
    """Topic names come back as a bare line; take the first non-empty one."""
    for line in (text or "").splitlines():
        line = line.strip()
        if line.lower().startswith("topic:"):
            line = line[len("topic:"):]
        name = clean_topic_name(line, max_length)
        if name:
            return name
    raise MalformedOutputError("empty topic name")


def parse_executive_summary(text: str) -> ExecutiveSummary:
    data = extract_json_object(text)
    if not data.get("executiveSummaryData"):
        logger.warning("Summary output missing executiveSummaryData")
        return ExecutiveSummary.empty()
    try:
        return ExecutiveSummary.model_validate(data)
    except ValidationError as e:
        logger.warning("Summary output failed validation: %s", e.error_count())
        return ExecutiveSummary.empty()
