"""
Reconciliation Matching Module

Pairs bank-statement transactions with book (ledger) transactions:
- Exact, amount+date and fuzzy description matching
- User-defined matching rules
- Configurable confidence threshold, date window and amount tolerance
- One-to-one conflict resolution by descending confidence
- Human-readable reasons and insights for every run
"""

from reconciliation.errors import (
    ReconciliationError,
    InvalidInputError,
    MatchingEngineError,
)
from reconciliation.models import (
    Transaction,
    TransactionSide,
    MatchCriteria,
    ConfidenceLevel,
    RuleOperator,
    RuleCondition,
    MatchingRule,
    MatchOptions,
    MatchedPair,
    UnmatchedTransaction,
    MatchSummary,
    MatchResult,
)
from reconciliation.matching_rules import (
    MatchCandidate,
    ReconciliationMatchingRules,
    get_similarity_metric,
)
from reconciliation.engine import MatchingEngine, matching_engine, find_optimal_matches

__all__ = [
    # Errors
    'ReconciliationError',
    'InvalidInputError',
    'MatchingEngineError',
    # Models
    'Transaction',
    'TransactionSide',
    'MatchCriteria',
    'ConfidenceLevel',
    'RuleOperator',
    'RuleCondition',
    'MatchingRule',
    'MatchOptions',
    'MatchedPair',
    'UnmatchedTransaction',
    'MatchSummary',
    'MatchResult',
    # Matching Rules
    'MatchCandidate',
    'ReconciliationMatchingRules',
    'get_similarity_metric',
    # Engine
    'MatchingEngine',
    'matching_engine',
    'find_optimal_matches',
]
