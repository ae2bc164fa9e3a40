"""
Reconciliation Matching Engine

Pairs bank-statement transactions with book (ledger) transactions:

1. Validate and normalize both collections
2. Set aside malformed transactions (missing amount/date) as unmatched
3. Generate scored candidates (exact, amount+date, fuzzy description,
   custom rules) with amount-window pruning
4. Resolve conflicts greedily by descending score (one-to-one)
5. Explain each match and summarize the run

The engine is a pure, synchronous computation with no shared mutable
state; one instance can serve concurrent reconciliation sessions.
Identical inputs and options always produce identical output.
"""

import logging
import time
from collections.abc import Mapping
from typing import Any, List, Optional, Sequence, Union

from pydantic import ValidationError

from reconciliation.errors import InvalidInputError, summarize_validation_errors
from reconciliation.models import MatchOptions, MatchResult, Transaction, TransactionSide
from reconciliation.normalization import NormalizedTransaction, normalize_transaction
from reconciliation.candidates import generate_candidates
from reconciliation.assignment import resolve_assignments
from reconciliation.explanation import (
    aggregate_confidence,
    build_matched_pair,
    build_summary,
    generate_insights,
    to_unmatched,
)
from reconciliation.matching_rules.scoring import ReconciliationMatchingRules
from reconciliation.matching_rules.similarity import SimilarityMetric

logger = logging.getLogger(__name__)

TransactionInput = Union[Transaction, Mapping]


class MatchingEngine:
    """
    Matches statement transactions against book transactions.

    Args:
        similarity: Description similarity metric. When omitted, the
            metric named by MatchOptions.similarity_metric is used.
    """

    def __init__(self, similarity: Optional[SimilarityMetric] = None):
        self.similarity = similarity

    def find_optimal_matches(
        self,
        statement_transactions: Sequence[TransactionInput],
        book_transactions: Sequence[TransactionInput],
        options: Optional[Union[MatchOptions, Mapping]] = None
    ) -> MatchResult:
        """
        Find a one-to-one pairing between statement and book transactions.

        Args:
            statement_transactions: Transactions from the bank statement
            book_transactions: Transactions from the ledger
            options: MatchOptions or a mapping of option overrides

        Returns:
            MatchResult with matches, unmatched transactions on each
            side, aggregate confidence and insights

        Raises:
            InvalidInputError: a collection is not a list, contains null or
                non-object entries, or options are invalid
            MatchingEngineError: an amount is not a finite number
        """
        started = time.perf_counter()
        options = self._resolve_options(options)

        statements = self._normalize_side(statement_transactions, TransactionSide.STATEMENT, options.currency)
        books = self._normalize_side(book_transactions, TransactionSide.BOOK, options.currency)

        for txn in statements + books:
            if not txn.is_matchable:
                logger.debug(f"Excluding {txn.side.value} transaction {txn.id} from matching: {txn.issue}")

        scorer = ReconciliationMatchingRules(options, self.similarity)
        candidates = generate_candidates(
            [t for t in statements if t.is_matchable],
            [t for t in books if t.is_matchable],
            scorer,
            options.rules
        )
        accepted = resolve_assignments(candidates, options.min_confidence)

        matches = [
            build_matched_pair(c, statements[c.statement_position], books[c.book_position], options.currency)
            for c in accepted
        ]

        matched_statements = {c.statement_position for c in accepted}
        matched_books = {c.book_position for c in accepted}
        unmatched_statements = [t for t in statements if t.position not in matched_statements]
        unmatched_books = [t for t in books if t.position not in matched_books]

        result = MatchResult(
            matches=matches,
            unmatched_statements=[to_unmatched(t) for t in unmatched_statements],
            unmatched_books=[to_unmatched(t) for t in unmatched_books],
            confidence=aggregate_confidence(matches),
            ai_insights=generate_insights(
                matches, statements, books, unmatched_statements, unmatched_books, options.currency
            ),
            summary=build_summary(matches, statements, books, unmatched_statements, unmatched_books),
        )

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info(
            f"Matched {len(matches)} of {len(statements)} statement transactions "
            f"against {len(books)} book transactions",
            extra={
                "event": "reconciliation.match_completed",
                "statement_count": len(statements),
                "book_count": len(books),
                "candidate_count": len(candidates),
                "match_count": len(matches),
                "overall_confidence": result.confidence,
                "duration_ms": duration_ms,
            }
        )

        return result

    def _resolve_options(self, options: Optional[Union[MatchOptions, Mapping]]) -> MatchOptions:
        if options is None:
            return MatchOptions()
        if isinstance(options, MatchOptions):
            return options
        if isinstance(options, Mapping):
            try:
                return MatchOptions.model_validate(dict(options))
            except ValidationError as e:
                raise InvalidInputError("Invalid match options", details={"errors": summarize_validation_errors(e.errors())})
        raise InvalidInputError(f"options must be MatchOptions or a mapping, got {type(options).__name__}")

    def _normalize_side(
        self,
        transactions: Any,
        side: TransactionSide,
        currency: str
    ) -> List[NormalizedTransaction]:
        if not isinstance(transactions, (list, tuple)):
            raise InvalidInputError(
                f"{side.value} transactions must be an array, got {type(transactions).__name__}",
                details={"side": side.value}
            )

        normalized: List[NormalizedTransaction] = []
        for position, raw in enumerate(transactions):
            if raw is None:
                raise InvalidInputError(
                    f"{side.value} transaction at index {position} is null",
                    details={"side": side.value, "index": position}
                )
            try:
                normalized.append(normalize_transaction(raw, side, position, currency))
            except ValidationError as e:
                raise InvalidInputError(
                    f"{side.value} transaction at index {position} is invalid",
                    details={"side": side.value, "index": position, "errors": summarize_validation_errors(e.errors())}
                )
        return normalized


# Shared engine instance (stateless)
matching_engine = MatchingEngine()


def find_optimal_matches(
    statement_transactions: Sequence[TransactionInput],
    book_transactions: Sequence[TransactionInput],
    options: Optional[Union[MatchOptions, Mapping]] = None
) -> MatchResult:
    """Run the shared MatchingEngine. See MatchingEngine.find_optimal_matches."""
    return matching_engine.find_optimal_matches(statement_transactions, book_transactions, options)
