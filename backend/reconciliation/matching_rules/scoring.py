"""
Candidate Scoring Rules

Scores a single statement/book pair against the built-in criteria:

1. exact_match
   - identical amount (after currency rounding)
   - identical, non-empty reference on both sides (case-insensitive)
   - score = 1.0
2. amount_date_match
   - identical amount and dates within the window
   - score decays linearly from 0.85 (same day) to 0.60 (window edge)
3. fuzzy_description_match
   - amount within tolerance (epsilon in fuzzy mode, otherwise identical)
   - description similarity at or above the threshold
   - score = 0.5 + 0.3 * similarity

Pairs failing every criterion produce no candidate. When several
criteria apply, the highest score wins.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from reconciliation.models import MatchCriteria, MatchOptions
from reconciliation.normalization import NormalizedTransaction
from reconciliation.matching_rules.similarity import SimilarityMetric, get_similarity_metric


# Order used to break equal scores between criteria of the same pair
CRITERIA_PRECEDENCE = {
    MatchCriteria.EXACT_MATCH: 0,
    MatchCriteria.AMOUNT_DATE_MATCH: 1,
    MatchCriteria.FUZZY_DESCRIPTION_MATCH: 2,
    MatchCriteria.RULE_MATCH: 3,
}


@dataclass(frozen=True)
class MatchCandidate:
    """
    A potential pairing, alive only during conflict resolution.

    Positions index the caller's collections; ids are used for
    deterministic ordering.
    """
    statement_position: int
    book_position: int
    statement_id: str
    book_id: str
    score: float
    criteria: MatchCriteria
    amount_difference: Decimal
    date_difference_days: int
    description_similarity: Optional[float] = None
    rule_name: Optional[str] = None
    rule_description: Optional[str] = None

    @property
    def pair(self) -> Tuple[int, int]:
        return self.statement_position, self.book_position

    @property
    def sort_key(self) -> tuple:
        """Descending score, then lower statement id, then lower book id."""
        return (
            -self.score,
            self.statement_id,
            self.book_id,
            self.statement_position,
            self.book_position,
        )

    def outranks(self, other: "MatchCandidate") -> bool:
        """True if this candidate should replace other for the same pair."""
        if self.score != other.score:
            return self.score > other.score
        return CRITERIA_PRECEDENCE[self.criteria] < CRITERIA_PRECEDENCE[other.criteria]


def references_match(first: Optional[str], second: Optional[str]) -> bool:
    if not first or not second:
        return False
    first = first.strip().casefold()
    second = second.strip().casefold()
    return bool(first) and first == second


class ReconciliationMatchingRules:
    """
    Built-in scoring rules for statement/book pairs.

    Holds only the options and similarity metric for one run.
    """

    EXACT_SCORE = 1.0
    AMOUNT_DATE_MAX_SCORE = 0.85
    AMOUNT_DATE_MIN_SCORE = 0.60
    FUZZY_BASE_SCORE = 0.5
    FUZZY_SIMILARITY_WEIGHT = 0.3

    def __init__(self, options: MatchOptions, similarity: Optional[SimilarityMetric] = None):
        self.options = options
        self.similarity = similarity or get_similarity_metric(options.similarity_metric)

    @property
    def amount_tolerance(self) -> Decimal:
        return self.options.amount_tolerance

    def amount_date_score(self, days_apart: int) -> float:
        """Linear decay from 0.85 at zero days to 0.60 at the window edge."""
        window = self.options.date_window_days
        if window == 0:
            return self.AMOUNT_DATE_MAX_SCORE
        span = self.AMOUNT_DATE_MAX_SCORE - self.AMOUNT_DATE_MIN_SCORE
        return self.AMOUNT_DATE_MAX_SCORE - span * (days_apart / window)

    def fuzzy_score(self, similarity: float) -> float:
        return self.FUZZY_BASE_SCORE + self.FUZZY_SIMILARITY_WEIGHT * similarity

    def score_pair(
        self,
        statement: NormalizedTransaction,
        book: NormalizedTransaction
    ) -> Optional[MatchCandidate]:
        """
        Score a pair of matchable transactions.

        Returns:
            The best-scoring candidate, or None if no criterion applies
        """
        amount_difference = statement.rounded_amount - book.rounded_amount
        if abs(amount_difference) > self.amount_tolerance:
            return None

        days_apart = abs((statement.transaction.date - book.transaction.date).days)
        same_amount = amount_difference == 0

        if same_amount and references_match(statement.transaction.reference, book.transaction.reference):
            # Nothing outscores an exact match
            return self._candidate(
                statement, book, self.EXACT_SCORE, MatchCriteria.EXACT_MATCH,
                amount_difference, days_apart
            )

        scored: List[Tuple[float, MatchCriteria]] = []

        if same_amount and days_apart <= self.options.date_window_days:
            scored.append((self.amount_date_score(days_apart), MatchCriteria.AMOUNT_DATE_MATCH))

        similarity = self.similarity(statement.transaction.description, book.transaction.description)
        if similarity > 0 and similarity >= self.options.description_similarity_threshold:
            scored.append((self.fuzzy_score(similarity), MatchCriteria.FUZZY_DESCRIPTION_MATCH))

        if not scored:
            return None

        score, criteria = max(scored, key=lambda item: (item[0], -CRITERIA_PRECEDENCE[item[1]]))

        return self._candidate(
            statement, book, score, criteria, amount_difference, days_apart,
            similarity=similarity
        )

    def _candidate(
        self,
        statement: NormalizedTransaction,
        book: NormalizedTransaction,
        score: float,
        criteria: MatchCriteria,
        amount_difference: Decimal,
        days_apart: int,
        similarity: Optional[float] = None,
        rule_name: Optional[str] = None
    ) -> MatchCandidate:
        return MatchCandidate(
            statement_position=statement.position,
            book_position=book.position,
            statement_id=statement.id,
            book_id=book.id,
            score=round(score, 4),
            criteria=criteria,
            amount_difference=amount_difference,
            date_difference_days=days_apart,
            description_similarity=similarity,
            rule_name=rule_name,
        )
