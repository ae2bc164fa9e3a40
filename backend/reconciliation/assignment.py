"""
Conflict Resolution

Turns the candidate pool into a one-to-one assignment.

Policy: drop candidates below the confidence threshold, walk the rest in
descending score order (ties: lower statement id, then lower book id)
and accept a candidate when neither transaction is taken yet.

This greedy-by-score policy is not a global optimum in the
assignment-problem sense (a Hungarian solver could pair more
transactions in some layouts). It is kept because it is deterministic,
favors the highest-confidence pairs and every accepted pair can be
explained on its own.
"""

from typing import Iterable, List, Set

from reconciliation.matching_rules.scoring import MatchCandidate


def resolve_assignments(
    candidates: Iterable[MatchCandidate],
    min_confidence: float
) -> List[MatchCandidate]:
    """
    Greedily select non-conflicting candidates.

    Returns:
        Accepted candidates, ordered by the same key used for selection
    """
    eligible = sorted(
        (c for c in candidates if c.score >= min_confidence),
        key=lambda c: c.sort_key
    )

    used_statements: Set[int] = set()
    used_books: Set[int] = set()
    accepted: List[MatchCandidate] = []

    for candidate in eligible:
        if candidate.statement_position in used_statements:
            continue
        if candidate.book_position in used_books:
            continue
        accepted.append(candidate)
        used_statements.add(candidate.statement_position)
        used_books.add(candidate.book_position)

    return accepted
