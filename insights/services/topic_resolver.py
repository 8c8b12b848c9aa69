"""
Topic Resolver
==============

PURPOSE:
    Decides which topic a general feedback item belongs to, given the short
    label the model suggested for it. Matching is lexical and local, so
    clustering costs no extra provider calls.

ALGORITHM (resolve_or_create):
    1. Exact case-insensitive name match among candidates -> that topic.
    2. Otherwise score every candidate with
           0.7 * levenshtein_similarity + 0.3 * word_overlap
       on lower-cased, trimmed names.
    3. Best score >= threshold (default 0.7) -> that topic.
    4. Otherwise create a topic named after the label (truncated to 100
       chars as first 97 + "...") in the item's scope.

    Candidates are non-archived topics in the item's scope plus globally
    scoped topics (scope_id is NULL).
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from insights.models.topic import Topic
from insights.services.feedback_store import FeedbackStore
from insights.services.output_parser import clean_topic_name

logger = logging.getLogger(__name__)

LEVENSHTEIN_WEIGHT = 0.7
OVERLAP_WEIGHT = 0.3


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,             # deletion
                current[j - 1] + 1,          # insertion
                previous[j - 1] + (ca != cb),  # substitution
            ))
        previous = current
    return previous[-1]


def word_overlap(a: str, b: str) -> float:
    """|common words| / max(word count)."""
    words_a = a.split()
    words_b = b.split()
    longest = max(len(words_a), len(words_b))
    if longest == 0:
        return 0.0
    return len(set(words_a) & set(words_b)) / longest


def topic_similarity(a: str, b: str) -> float:
    a = a.strip().lower()
    b = b.strip().lower()
    if not a and not b:
        return 1.0
    if not a or not b:
        return 0.0
    lev_similarity = 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))
    return LEVENSHTEIN_WEIGHT * lev_similarity + OVERLAP_WEIGHT * word_overlap(a, b)


@dataclass(frozen=True)
class TopicMatch:
    topic: Topic
    score: float
    exact: bool = False


class TopicResolver:
    def __init__(
        self,
        store: FeedbackStore,
        similarity_threshold: float = 0.7,
        max_name_length: int = 100,
    ):
        self.store = store
        self.similarity_threshold = similarity_threshold
        self.max_name_length = max_name_length

    def find_best_match(self, label: str, candidates: Iterable[Topic]) -> Optional[TopicMatch]:
        wanted = label.strip().lower()
        best: Optional[TopicMatch] = None
        for topic in candidates:
            if topic.name.strip().lower() == wanted:
                return TopicMatch(topic=topic, score=1.0, exact=True)
            score = topic_similarity(label, topic.name)
            if best is None or score > best.score:
                best = TopicMatch(topic=topic, score=score)
        return best

    def resolve_or_create(
        self,
        suggested_label: str,
        scope_id: Optional[str],
        existing_topics: Optional[List[Topic]] = None,
    ) -> Topic:
        if existing_topics is None:
            existing_topics = self.store.topic_candidates(scope_id)

        match = self.find_best_match(suggested_label, existing_topics)
        if match is not None and (match.exact or match.score >= self.similarity_threshold):
            logger.info(
                "Matched topic '%s' -> existing '%s' (similarity=%.3f, exact=%s)",
                suggested_label, match.topic.name, match.score, match.exact,
            )
            return match.topic

        name = clean_topic_name(suggested_label, self.max_name_length)
        topic = self.store.create_topic(name, scope_id)
        logger.info(
            "Created topic '%s' (scope=%s, best_similarity=%.3f)",
            name, scope_id, match.score if match else 0.0,
        )
        return topic
