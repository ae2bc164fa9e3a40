"""
Match Explanation

Human-readable output for a matching run:
- Reason strings and longer explanations for each accepted pair
- Confidence levels and aggregate confidence
- Advisory insights (unmatched counts and value, duplicate amounts,
  excluded transactions, amount discrepancies)
- Summary counts

Insights are advisory text only; they never create further matches.
"""

from collections import Counter
from decimal import Decimal
from typing import List, Optional, Sequence

from reconciliation.models import (
    ConfidenceLevel,
    MatchCriteria,
    MatchedPair,
    MatchSummary,
    Transaction,
    TransactionSide,
    UnmatchedTransaction,
)
from reconciliation.normalization import NormalizedTransaction, format_amount
from reconciliation.matching_rules.scoring import MatchCandidate


HIGH_CONFIDENCE_THRESHOLD = 0.8
MEDIUM_CONFIDENCE_THRESHOLD = 0.5


def confidence_level(score: float) -> ConfidenceLevel:
    if score >= HIGH_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.HIGH
    if score >= MEDIUM_CONFIDENCE_THRESHOLD:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _count(n: int, noun: str, plural: Optional[str] = None) -> str:
    return f"{n} {noun if n == 1 else (plural or noun + 's')}"


def _days(n: int) -> str:
    return _count(n, "day")


def build_reason(
    candidate: MatchCandidate,
    statement: NormalizedTransaction,
    book: NormalizedTransaction,
    currency: str
) -> str:
    """Templated explanation for an accepted candidate."""
    amount = format_amount(statement.rounded_amount, currency)
    days = candidate.date_difference_days

    if candidate.criteria == MatchCriteria.EXACT_MATCH:
        return f"Exact amount match ({amount}) with matching reference {statement.transaction.reference.strip()}"

    if candidate.criteria == MatchCriteria.AMOUNT_DATE_MATCH:
        if days == 0:
            return f"Amount and date match ({amount} on {statement.transaction.date.isoformat()})"
        return f"Amount and date match within {_days(days)} ({amount})"

    if candidate.criteria == MatchCriteria.FUZZY_DESCRIPTION_MATCH:
        similarity = round((candidate.description_similarity or 0.0) * 100)
        if candidate.amount_difference == 0:
            reason = f"Similar descriptions ({similarity}% similarity) with identical amounts ({amount})"
        else:
            difference = format_amount(abs(candidate.amount_difference), currency)
            reason = f"Similar descriptions ({similarity}% similarity) with amount difference of {difference}"
        if days:
            reason += f", {_days(days)} apart"
        return reason

    return f"Matched by rule: {candidate.rule_name}"


_CRITERIA_LABELS = {
    MatchCriteria.EXACT_MATCH: "amount and reference",
    MatchCriteria.AMOUNT_DATE_MATCH: "amount and date",
    MatchCriteria.FUZZY_DESCRIPTION_MATCH: "description similarity",
    MatchCriteria.RULE_MATCH: "a custom rule",
}


def build_explanation(candidate: MatchCandidate, currency: str) -> str:
    """
    Longer explanation for an accepted candidate.

    Rule matches use the rule's description when it has one; everything
    else gets the criteria, amount similarity and date proximity.
    """
    if candidate.criteria == MatchCriteria.RULE_MATCH and candidate.rule_description:
        return candidate.rule_description

    if candidate.amount_difference == 0:
        amount = "exact"
    else:
        amount = f"within {format_amount(abs(candidate.amount_difference), currency)}"
    days = candidate.date_difference_days
    proximity = "same day" if days == 0 else f"{_days(days)} apart"

    explanation = (
        f"Matched on {_CRITERIA_LABELS[candidate.criteria]}. "
        f"Amount similarity: {amount}. Date proximity: {proximity}."
    )
    if candidate.criteria == MatchCriteria.FUZZY_DESCRIPTION_MATCH:
        explanation += f" Description similarity: {round(candidate.description_similarity * 100)}%."
    return explanation


def build_matched_pair(
    candidate: MatchCandidate,
    statement: NormalizedTransaction,
    book: NormalizedTransaction,
    currency: str
) -> MatchedPair:
    return MatchedPair(
        statement_transaction=statement.transaction,
        book_transaction=book.transaction,
        score=candidate.score,
        confidence=candidate.score,
        confidence_level=confidence_level(candidate.score),
        criteria=candidate.criteria,
        reason=build_reason(candidate, statement, book, currency),
        explanation=build_explanation(candidate, currency),
        amount_difference=candidate.amount_difference,
        date_difference_days=candidate.date_difference_days,
        description_similarity=candidate.description_similarity,
    )


def to_unmatched(txn: NormalizedTransaction) -> UnmatchedTransaction:
    return UnmatchedTransaction(
        **txn.transaction.model_dump(include=set(Transaction.model_fields)),
        side=txn.side,
        issue=txn.issue,
    )


def aggregate_confidence(matches: Sequence[MatchedPair]) -> float:
    """Mean confidence of accepted matches; 0 when nothing matched."""
    if not matches:
        return 0.0
    return round(sum(m.confidence for m in matches) / len(matches), 4)


def _unmatched_total(unmatched: Sequence[NormalizedTransaction]) -> Decimal:
    return sum((abs(t.rounded_amount) for t in unmatched if t.rounded_amount is not None), Decimal("0"))


def build_summary(
    matches: Sequence[MatchedPair],
    statements: Sequence[NormalizedTransaction],
    books: Sequence[NormalizedTransaction],
    unmatched_statements: Sequence[NormalizedTransaction],
    unmatched_books: Sequence[NormalizedTransaction]
) -> MatchSummary:
    match_rate = round(len(matches) / len(statements) * 100, 1) if statements else 0.0
    return MatchSummary(
        statement_count=len(statements),
        book_count=len(books),
        matched_count=len(matches),
        match_rate=match_rate,
        excluded_statements=sum(1 for t in statements if not t.is_matchable),
        excluded_books=sum(1 for t in books if not t.is_matchable),
        unmatched_statement_total=_unmatched_total(unmatched_statements),
        unmatched_book_total=_unmatched_total(unmatched_books),
    )


def _duplicate_amounts_insight(
    transactions: Sequence[NormalizedTransaction],
    side: TransactionSide,
    currency: str
) -> List[str]:
    counts = Counter(t.rounded_amount for t in transactions if t.is_matchable)
    duplicates = sorted((amount, n) for amount, n in counts.items() if n > 1)
    if not duplicates:
        return []
    listed = ", ".join(f"{format_amount(amount, currency)} x{n}" for amount, n in duplicates)
    return [f"Duplicate amounts on the {side.value} side ({listed}) - possible split or duplicate transactions"]


def generate_insights(
    matches: Sequence[MatchedPair],
    statements: Sequence[NormalizedTransaction],
    books: Sequence[NormalizedTransaction],
    unmatched_statements: Sequence[NormalizedTransaction],
    unmatched_books: Sequence[NormalizedTransaction],
    currency: str
) -> List[str]:
    """
    Coarse observations about a run, in a fixed order.
    """
    insights: List[str] = [
        f"Found {_count(len(matches), 'match', 'matches')} out of "
        f"{_count(len(statements), 'statement transaction')}"
    ]

    high = sum(1 for m in matches if m.confidence_level == ConfidenceLevel.HIGH)
    review = len(matches) - high
    if high:
        verb = "has" if high == 1 else "have"
        insights.append(f"{_count(high, 'match', 'matches')} {verb} high confidence and can be accepted automatically")
    if review:
        verb = "needs" if review == 1 else "need"
        insights.append(f"{_count(review, 'match', 'matches')} {verb} manual review before acceptance")

    lonely_statements = [t for t in unmatched_statements if t.is_matchable]
    lonely_books = [t for t in unmatched_books if t.is_matchable]
    if lonely_statements:
        verb = "has" if len(lonely_statements) == 1 else "have"
        insights.append(
            f"{_count(len(lonely_statements), 'statement transaction')} {verb} no corresponding "
            f"book entry - possible missing bookkeeping"
        )
    if lonely_books:
        verb = "has" if len(lonely_books) == 1 else "have"
        insights.append(
            f"{_count(len(lonely_books), 'book transaction')} {verb} no corresponding "
            f"statement entry - possible outstanding items or timing differences"
        )

    if unmatched_statements or unmatched_books:
        insights.append(
            f"Unmatched value: {format_amount(_unmatched_total(unmatched_statements), currency)} on the "
            f"statement side, {format_amount(_unmatched_total(unmatched_books), currency)} on the book side"
        )

    insights.extend(_duplicate_amounts_insight(statements, TransactionSide.STATEMENT, currency))
    insights.extend(_duplicate_amounts_insight(books, TransactionSide.BOOK, currency))

    for side, transactions in ((TransactionSide.STATEMENT, statements), (TransactionSide.BOOK, books)):
        excluded = sum(1 for t in transactions if not t.is_matchable)
        if excluded:
            verb = "was" if excluded == 1 else "were"
            insights.append(
                f"{_count(excluded, side.value + ' transaction')} {verb} excluded from matching "
                f"due to a missing or invalid amount or date"
            )

    discrepancies = [m for m in matches if m.amount_difference != 0]
    if discrepancies:
        total = sum((abs(m.amount_difference) for m in discrepancies), Decimal("0"))
        verb = "has" if len(discrepancies) == 1 else "have"
        insights.append(
            f"{_count(len(discrepancies), 'match', 'matches')} {verb} amount differences totalling "
            f"{format_amount(total, currency)} that may need adjustment"
        )

    return insights
