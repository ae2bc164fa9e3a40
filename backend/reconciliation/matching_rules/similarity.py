"""
Description Similarity Metrics

Pluggable scoring functions comparing two free-text transaction
descriptions. Every metric returns a value in [0, 1].

Available metrics:
- token_overlap: keyword overlap with containment and financial synonyms
- sequence: difflib SequenceMatcher ratio on normalized text
- blended: 0.7 * token_overlap + 0.3 * sequence (default)

Custom metrics can be added with register_metric() and selected by
name through MatchOptions.similarity_metric, or passed directly to
MatchingEngine(similarity=...).
"""

import re
from abc import ABC, abstractmethod
from difflib import SequenceMatcher
from typing import Callable, Dict, List


STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
    "how", "its", "may", "new", "now", "old", "see", "two", "who", "boy",
    "did", "she", "use", "way", "why",
})

# Common bank/ledger wording for the same event
SYNONYMS: Dict[str, frozenset] = {
    "payment": frozenset({"pay", "paid", "transfer", "sent"}),
    "purchase": frozenset({"buy", "bought", "charge", "debit"}),
    "deposit": frozenset({"credit", "received", "income"}),
    "fee": frozenset({"charge", "cost", "service"}),
    "refund": frozenset({"return", "returned", "credit"}),
}

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_description(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    if not text:
        return ""
    text = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def extract_keywords(text: str) -> List[str]:
    """Meaningful terms of a description, in first-seen order."""
    keywords: List[str] = []
    for word in normalize_description(text).split(" "):
        if len(word) > 2 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def keywords_similar(first: str, second: str) -> bool:
    if first == second:
        return True
    if first in second or second in first:
        return True
    for key, values in SYNONYMS.items():
        if first == key and second in values:
            return True
        if second == key and first in values:
            return True
    return False


class SimilarityMetric(ABC):
    """Base class for description similarity metrics."""

    name: str = ""

    @abstractmethod
    def score(self, first: str, second: str) -> float:
        """Return similarity of two descriptions in [0, 1]."""

    def __call__(self, first: str, second: str) -> float:
        return round(min(max(self.score(first, second), 0.0), 1.0), 4)


class TokenOverlapSimilarity(SimilarityMetric):
    """Share of keywords with a similar counterpart on the other side."""

    name = "token_overlap"

    def score(self, first: str, second: str) -> float:
        keywords1 = extract_keywords(first)
        keywords2 = extract_keywords(second)

        if not keywords1 or not keywords2:
            return 0.0

        common = [k for k in keywords1 if any(keywords_similar(k, k2) for k2 in keywords2)]
        return len(common) / max(len(keywords1), len(keywords2))


class SequenceSimilarity(SimilarityMetric):
    """Edit-distance style ratio from difflib."""

    name = "sequence"

    def score(self, first: str, second: str) -> float:
        first = normalize_description(first)
        second = normalize_description(second)

        if not first or not second:
            return 0.0

        return SequenceMatcher(None, first, second).ratio()


class BlendedSimilarity(SimilarityMetric):
    """Weighted blend of keyword overlap and sequence ratio."""

    name = "blended"

    def __init__(self, token_weight: float = 0.7):
        if not 0.0 <= token_weight <= 1.0:
            raise ValueError("token_weight must be between 0 and 1")
        self.token_weight = token_weight
        self._tokens = TokenOverlapSimilarity()
        self._sequence = SequenceSimilarity()

    def score(self, first: str, second: str) -> float:
        normalized1 = normalize_description(first)
        normalized2 = normalize_description(second)

        if not normalized1 or not normalized2:
            return 0.0
        if normalized1 == normalized2:
            return 1.0

        return (
            self._tokens.score(first, second) * self.token_weight
            + self._sequence.score(first, second) * (1.0 - self.token_weight)
        )


# ==================== REGISTRY ====================

_METRICS: Dict[str, Callable[[], SimilarityMetric]] = {
    TokenOverlapSimilarity.name: TokenOverlapSimilarity,
    SequenceSimilarity.name: SequenceSimilarity,
    BlendedSimilarity.name: BlendedSimilarity,
}


def available_metrics() -> List[str]:
    return sorted(_METRICS)


def register_metric(name: str, factory: Callable[[], SimilarityMetric]):
    """Register a custom similarity metric under a name."""
    if not name:
        raise ValueError("metric name is required")
    _METRICS[name] = factory


def get_similarity_metric(name: str) -> SimilarityMetric:
    try:
        return _METRICS[name]()
    except KeyError:
        raise ValueError(f"Unknown similarity metric: {name}. Available: {available_metrics()}")
