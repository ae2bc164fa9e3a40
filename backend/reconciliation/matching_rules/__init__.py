"""
Matching Rules Module
"""

from .similarity import (
    SimilarityMetric,
    TokenOverlapSimilarity,
    SequenceSimilarity,
    BlendedSimilarity,
    available_metrics,
    get_similarity_metric,
    register_metric,
)
from .scoring import ReconciliationMatchingRules, MatchCandidate, references_match
from .custom_rules import score_custom_rules, rule_matches, rule_score

__all__ = [
    "SimilarityMetric",
    "TokenOverlapSimilarity",
    "SequenceSimilarity",
    "BlendedSimilarity",
    "available_metrics",
    "get_similarity_metric",
    "register_metric",
    "ReconciliationMatchingRules",
    "MatchCandidate",
    "references_match",
    "score_custom_rules",
    "rule_matches",
    "rule_score",
]
