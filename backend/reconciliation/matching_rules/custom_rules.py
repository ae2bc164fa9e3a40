"""
Custom Matching Rules

User-defined rules that pair transactions the built-in criteria would
miss (e.g. a processor payout whose statement description always
contains "STRIPE" booked against the Sales category).

A rule matches a pair when every condition holds. Supported operators:
- equals: field value equals the condition value
- contains: field text contains the condition value (case-insensitive)
- amount_equals: field value within 0.01 of the condition value

Score = min(1.0, 0.5 + 0.1 * priority); criteria = rule_match.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from reconciliation.models import MatchCriteria, MatchingRule, RuleCondition, RuleOperator, Transaction
from reconciliation.normalization import NormalizedTransaction
from reconciliation.matching_rules.scoring import MatchCandidate

logger = logging.getLogger(__name__)

AMOUNT_EQUALS_TOLERANCE = Decimal("0.01")


def rule_score(rule: MatchingRule) -> float:
    return round(min(1.0, 0.5 + rule.priority * 0.1), 4)


def _field_value(condition: RuleCondition, statement: Transaction, book: Transaction) -> Any:
    side, _, name = condition.field.partition("_")
    transaction = statement if side == "statement" else book
    value = getattr(transaction, name)
    if name == "date" and value is not None:
        return value.isoformat()
    return value


def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def condition_holds(condition: RuleCondition, statement: Transaction, book: Transaction) -> bool:
    value = _field_value(condition, statement, book)

    if condition.operator == RuleOperator.EQUALS:
        if isinstance(value, Decimal):
            expected = _to_decimal(condition.value)
            return expected is not None and value == expected
        return value is not None and str(value) == str(condition.value)

    if condition.operator == RuleOperator.CONTAINS:
        if not value or condition.value is None:
            return False
        return str(condition.value).lower() in str(value).lower()

    if condition.operator == RuleOperator.AMOUNT_EQUALS:
        actual = _to_decimal(value)
        expected = _to_decimal(condition.value)
        if actual is None or expected is None:
            return False
        return abs(actual - expected) <= AMOUNT_EQUALS_TOLERANCE

    return False


def rule_matches(rule: MatchingRule, statement: Transaction, book: Transaction) -> bool:
    return rule.enabled and all(condition_holds(c, statement, book) for c in rule.conditions)


def score_custom_rules(
    rules: List[MatchingRule],
    statement: NormalizedTransaction,
    book: NormalizedTransaction
) -> Optional[MatchCandidate]:
    """
    Best rule-based candidate for a pair, if any rule matches.

    Among matching rules the highest priority wins; equal priorities
    keep the first rule in the list.
    """
    best: Optional[MatchingRule] = None
    for rule in rules:
        if rule_matches(rule, statement.transaction, book.transaction):
            if best is None or rule.priority > best.priority:
                best = rule

    if best is None:
        return None

    logger.debug(
        f"Rule '{best.name}' matched statement {statement.id} with book {book.id}"
    )

    return MatchCandidate(
        statement_position=statement.position,
        book_position=book.position,
        statement_id=statement.id,
        book_id=book.id,
        score=rule_score(best),
        criteria=MatchCriteria.RULE_MATCH,
        amount_difference=statement.rounded_amount - book.rounded_amount,
        date_difference_days=abs((statement.transaction.date - book.transaction.date).days),
        rule_name=best.name,
        rule_description=best.description,
    )
