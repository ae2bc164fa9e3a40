"""
Unit Tests for Matching Rules

Tests:
- Description similarity metrics and registry
- Built-in pair scoring (exact, amount+date, fuzzy)
- Custom rule conditions and scoring

Run with: pytest backend/tests/test_matching_rules.py -v
"""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from reconciliation.models import MatchCriteria, MatchingRule, MatchOptions, RuleCondition, TransactionSide
from reconciliation.normalization import normalize_transaction
from reconciliation.matching_rules import (
    BlendedSimilarity,
    ReconciliationMatchingRules,
    SequenceSimilarity,
    SimilarityMetric,
    TokenOverlapSimilarity,
    available_metrics,
    get_similarity_metric,
    references_match,
    register_metric,
    rule_matches,
    rule_score,
    score_custom_rules,
)
from reconciliation.matching_rules import similarity
from reconciliation.matching_rules.similarity import extract_keywords, normalize_description


def statement(txn_id="s", amount="100.00", date="2025-01-10", position=0, **fields):
    raw = {"id": txn_id, "amount": amount, "date": date, **fields}
    return normalize_transaction(raw, TransactionSide.STATEMENT, position, "USD")


def book(txn_id="b", amount="100.00", date="2025-01-10", position=0, **fields):
    raw = {"id": txn_id, "amount": amount, "date": date, **fields}
    return normalize_transaction(raw, TransactionSide.BOOK, position, "USD")


# ==================== SIMILARITY ====================

class TestSimilarity:

    def test_normalize_description(self):
        assert normalize_description("  POS*Purchase -- Coffee,  Shop ") == "pos purchase coffee shop"
        assert normalize_description("") == ""

    def test_extract_keywords_drops_short_and_stop_words(self):
        assert extract_keywords("Payment for the office rent to ACME") == ["payment", "office", "rent", "acme"]

    def test_extract_keywords_deduplicates(self):
        assert extract_keywords("fee fee FEE") == ["fee"]

    def test_token_overlap_identical_keywords(self):
        metric = TokenOverlapSimilarity()
        assert metric("Office Depot supplies", "supplies office depot") == 1.0

    def test_token_overlap_synonyms(self):
        metric = TokenOverlapSimilarity()
        # "payment" ~ "transfer", "acme" == "acme"
        assert metric("ACME payment", "ACME transfer") == 1.0

    def test_token_overlap_partial(self):
        metric = TokenOverlapSimilarity()
        assert metric("office supplies staples", "office chairs ikea") == pytest.approx(0.3333)

    def test_empty_descriptions_score_zero(self):
        for metric in (TokenOverlapSimilarity(), SequenceSimilarity(), BlendedSimilarity()):
            assert metric("", "anything") == 0.0
            assert metric("anything", "   ") == 0.0

    def test_sequence_similarity_identical(self):
        assert SequenceSimilarity()("Coffee Shop", "coffee  shop!") == 1.0

    def test_blended_identical_text(self):
        assert BlendedSimilarity()("Rent - March", "rent march") == 1.0

    def test_blended_weights(self):
        metric = BlendedSimilarity(token_weight=1.0)
        assert metric("office supplies staples", "office chairs ikea") == pytest.approx(0.3333)

    def test_blended_rejects_invalid_weight(self):
        with pytest.raises(ValueError):
            BlendedSimilarity(token_weight=1.5)

    def test_scores_are_bounded(self):
        class Overshoot(SimilarityMetric):
            def score(self, first, second):
                return 3.0

        assert Overshoot()("a", "b") == 1.0

    def test_registry(self):
        assert available_metrics() == ["blended", "sequence", "token_overlap"]
        assert isinstance(get_similarity_metric("sequence"), SequenceSimilarity)
        with pytest.raises(ValueError):
            get_similarity_metric("soundex")

    def test_register_metric_makes_it_selectable(self, monkeypatch):
        monkeypatch.setattr(similarity, "_METRICS", dict(similarity._METRICS))

        class AlwaysSimilar(SimilarityMetric):
            name = "always_similar"

            def score(self, first, second):
                return 1.0

        register_metric(AlwaysSimilar.name, AlwaysSimilar)

        options = MatchOptions(similarity_metric="always_similar")
        assert options.similarity_metric == "always_similar"
        assert "always_similar" in available_metrics()


# ==================== BUILT-IN SCORING ====================

class TestReferences:

    def test_references_match_ignores_case_and_whitespace(self):
        assert references_match(" Ref-1 ", "REF-1")

    def test_blank_references_never_match(self):
        assert not references_match("", "")
        assert not references_match("  ", "  ")
        assert not references_match(None, "REF-1")


class TestScorePair:

    @pytest.fixture
    def rules(self):
        return ReconciliationMatchingRules(MatchOptions())

    def test_exact_match(self, rules):
        candidate = rules.score_pair(statement(reference="A1"), book(reference="a1", date="2025-06-01"))

        assert candidate.criteria == MatchCriteria.EXACT_MATCH
        assert candidate.score == 1.0
        assert candidate.date_difference_days == 142

    def test_exact_match_requires_identical_amount(self):
        rules = ReconciliationMatchingRules(MatchOptions(allow_fuzzy_amounts=True))
        candidate = rules.score_pair(statement(reference="A1"), book(amount="100.40", reference="A1"))
        assert candidate is None or candidate.criteria != MatchCriteria.EXACT_MATCH

    @pytest.mark.parametrize("book_date,expected", [
        ("2025-01-10", 0.85),
        ("2025-01-09", 0.7667),
        ("2025-01-12", 0.6833),
        ("2025-01-13", 0.6),
    ])
    def test_amount_date_score_decays_with_distance(self, rules, book_date, expected):
        candidate = rules.score_pair(statement(), book(date=book_date))

        assert candidate.criteria == MatchCriteria.AMOUNT_DATE_MATCH
        assert candidate.score == pytest.approx(expected)

    def test_outside_window_no_candidate(self, rules):
        assert rules.score_pair(statement(), book(date="2025-01-14")) is None

    def test_zero_day_window(self):
        rules = ReconciliationMatchingRules(MatchOptions(date_window_days=0))
        assert rules.score_pair(statement(), book()).score == 0.85
        assert rules.score_pair(statement(), book(date="2025-01-11")) is None

    def test_amount_outside_tolerance_no_candidate(self, rules):
        assert rules.score_pair(statement(description="rent"), book(amount="100.01", description="rent")) is None

    def test_fuzzy_match_with_tolerance(self):
        rules = ReconciliationMatchingRules(MatchOptions(allow_fuzzy_amounts=True, amount_epsilon=Decimal("0.50")))

        candidate = rules.score_pair(
            statement(description="Office Depot supplies"),
            book(amount="99.75", date="2025-02-01", description="OFFICE DEPOT SUPPLIES")
        )

        assert candidate.criteria == MatchCriteria.FUZZY_DESCRIPTION_MATCH
        assert candidate.description_similarity == 1.0
        assert candidate.score == 0.8
        assert candidate.amount_difference == Decimal("0.25")

    def test_fuzzy_below_threshold(self):
        rules = ReconciliationMatchingRules(
            MatchOptions(allow_fuzzy_amounts=True, description_similarity_threshold=0.9)
        )
        candidate = rules.score_pair(
            statement(description="office supplies staples"),
            book(amount="99.50", description="office chairs ikea")
        )
        assert candidate is None

    def test_highest_scoring_criterion_wins(self, rules):
        # Identical descriptions score 0.8 as fuzzy but 0.85 as same-day amount+date
        candidate = rules.score_pair(statement(description="Rent"), book(description="Rent"))
        assert candidate.criteria == MatchCriteria.AMOUNT_DATE_MATCH
        assert candidate.score == 0.85

        # Three days apart amount+date drops to 0.6, fuzzy keeps 0.8
        candidate = rules.score_pair(statement(description="Rent"), book(date="2025-01-13", description="Rent"))
        assert candidate.criteria == MatchCriteria.FUZZY_DESCRIPTION_MATCH
        assert candidate.score == 0.8

    def test_injected_similarity_metric(self):
        class Fixed(SimilarityMetric):
            def score(self, first, second):
                return 0.5

        rules = ReconciliationMatchingRules(MatchOptions(), similarity=Fixed())
        candidate = rules.score_pair(statement(description="x"), book(date="2025-02-01", description="y"))

        assert candidate.criteria == MatchCriteria.FUZZY_DESCRIPTION_MATCH
        assert candidate.score == 0.65

    def test_outranks_prefers_score_then_precedence(self, rules):
        exact = rules.score_pair(statement(reference="A"), book(reference="A"))
        dated = rules.score_pair(statement(), book())

        assert exact.outranks(dated)
        assert not dated.outranks(exact)


# ==================== CUSTOM RULES ====================

class TestCustomRules:

    def make_rule(self, *conditions, priority=0, name="rule", enabled=True):
        return MatchingRule(
            name=name,
            priority=priority,
            enabled=enabled,
            conditions=[RuleCondition(field=f, operator=op, value=v) for f, op, v in conditions],
        )

    def test_rule_score(self):
        assert rule_score(self.make_rule(("book_id", "equals", "x"))) == 0.5
        assert rule_score(self.make_rule(("book_id", "equals", "x"), priority=5)) == 1.0

    def test_condition_field_must_name_a_side(self):
        with pytest.raises(ValidationError):
            RuleCondition(field="ledger_description", operator="equals", value="x")
        with pytest.raises(ValidationError):
            RuleCondition(field="statement_memo", operator="equals", value="x")

    def test_rule_requires_conditions(self):
        with pytest.raises(ValidationError):
            MatchingRule(name="empty", conditions=[])

    def test_equals_on_amount_compares_numerically(self):
        rule = self.make_rule(("statement_amount", "equals", "100"))
        assert rule_matches(rule, statement().transaction, book().transaction)

    def test_equals_on_date(self):
        rule = self.make_rule(("book_date", "equals", "2025-01-10"))
        assert rule_matches(rule, statement().transaction, book().transaction)

    def test_contains_is_case_insensitive(self):
        rule = self.make_rule(("statement_description", "contains", "Stripe"))
        assert rule_matches(rule, statement(description="STRIPE TRANSFER").transaction, book().transaction)
        assert not rule_matches(rule, statement(description="PAYPAL").transaction, book().transaction)

    def test_contains_on_missing_field(self):
        rule = self.make_rule(("book_reference", "contains", "INV"))
        assert not rule_matches(rule, statement().transaction, book().transaction)

    def test_amount_equals_tolerance(self):
        rule = self.make_rule(("book_amount", "amount_equals", 100.01))
        assert rule_matches(rule, statement().transaction, book().transaction)
        rule = self.make_rule(("book_amount", "amount_equals", 100.02))
        assert not rule_matches(rule, statement().transaction, book().transaction)

    def test_all_conditions_must_hold(self):
        rule = self.make_rule(
            ("statement_description", "contains", "stripe"),
            ("book_category", "equals", "Sales"),
        )
        assert not rule_matches(rule, statement(description="stripe").transaction, book(category="Fees").transaction)

    def test_disabled_rule_never_matches(self):
        rule = self.make_rule(("statement_id", "equals", "s"), enabled=False)
        assert not rule_matches(rule, statement().transaction, book().transaction)

    def test_highest_priority_rule_wins(self):
        low = self.make_rule(("statement_id", "equals", "s"), priority=1, name="low")
        high = self.make_rule(("book_id", "equals", "b"), priority=4, name="high")

        candidate = score_custom_rules([low, high], statement(), book(amount="80.00"))

        assert candidate.criteria == MatchCriteria.RULE_MATCH
        assert candidate.rule_name == "high"
        assert candidate.score == 0.9
        assert candidate.amount_difference == Decimal("20.00")

    def test_equal_priority_keeps_first_rule(self):
        first = self.make_rule(("statement_id", "equals", "s"), priority=2, name="first")
        second = self.make_rule(("book_id", "equals", "b"), priority=2, name="second")

        assert score_custom_rules([first, second], statement(), book()).rule_name == "first"

    def test_no_matching_rule(self):
        rule = self.make_rule(("statement_id", "equals", "other"))
        assert score_custom_rules([rule], statement(), book()) is None
