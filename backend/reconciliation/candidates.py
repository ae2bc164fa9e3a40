"""
Candidate Generation

Builds the pool of scored statement/book candidates for a run.

Every built-in criterion requires the two amounts to be within the
run's amount tolerance, so both sides are sorted by rounded amount and
a two-pointer window [amount - tolerance, amount + tolerance] is swept
across the books. Only pairs inside the window are scored, which keeps
the common case close to O(n log n + candidates) instead of n x m.

Custom rules can pair transactions regardless of amount; when rules are
supplied they are evaluated over the full cross product.
"""

from typing import Dict, List, Optional, Tuple

from reconciliation.models import MatchingRule
from reconciliation.normalization import NormalizedTransaction
from reconciliation.matching_rules.custom_rules import score_custom_rules
from reconciliation.matching_rules.scoring import MatchCandidate, ReconciliationMatchingRules


def _amount_key(txn: NormalizedTransaction) -> tuple:
    return txn.rounded_amount, txn.position


def _keep_best(pool: Dict[Tuple[int, int], MatchCandidate], candidate: MatchCandidate):
    current = pool.get(candidate.pair)
    if current is None or candidate.outranks(current):
        pool[candidate.pair] = candidate


def generate_candidates(
    statements: List[NormalizedTransaction],
    books: List[NormalizedTransaction],
    scorer: ReconciliationMatchingRules,
    rules: Optional[List[MatchingRule]] = None
) -> List[MatchCandidate]:
    """
    Score all plausible pairs of matchable transactions.

    Args:
        statements: Matchable statement transactions
        books: Matchable book transactions
        scorer: Built-in scoring rules for this run
        rules: Optional custom matching rules

    Returns:
        At most one candidate per pair (the best-scoring one), in
        statement/book position order
    """
    pool: Dict[Tuple[int, int], MatchCandidate] = {}
    tolerance = scorer.amount_tolerance

    books_by_amount = sorted(books, key=_amount_key)
    book_count = len(books_by_amount)
    low_index = 0
    high_index = 0

    for statement in sorted(statements, key=_amount_key):
        lower_bound = statement.rounded_amount - tolerance
        upper_bound = statement.rounded_amount + tolerance

        while low_index < book_count and books_by_amount[low_index].rounded_amount < lower_bound:
            low_index += 1
        high_index = max(high_index, low_index)
        while high_index < book_count and books_by_amount[high_index].rounded_amount <= upper_bound:
            high_index += 1

        for book in books_by_amount[low_index:high_index]:
            candidate = scorer.score_pair(statement, book)
            if candidate is not None:
                _keep_best(pool, candidate)

    active_rules = [rule for rule in (rules or []) if rule.enabled]
    if active_rules:
        for statement in statements:
            for book in books:
                candidate = score_custom_rules(active_rules, statement, book)
                if candidate is not None:
                    _keep_best(pool, candidate)

    return [pool[pair] for pair in sorted(pool)]
