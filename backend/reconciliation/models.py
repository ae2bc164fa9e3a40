"""
Reconciliation Data Models

Pydantic models shared by the matching engine and the API layer:
- Transaction: statement-side or book-side transaction (immutable)
- MatchOptions: tunable thresholds and tolerances for a matching run
- MatchingRule / RuleCondition: user-defined matching rules
- MatchedPair / UnmatchedTransaction / MatchResult: engine output

All models serialize with camelCase aliases on the wire
(e.g. unmatchedStatements, aiInsights) and accept snake_case
field names from Python callers.
"""

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


def _money_to_json(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


# ==================== ENUMS ====================

class TransactionSide(str, Enum):
    """Origin of a transaction."""
    STATEMENT = "statement"  # Bank / financial institution feed
    BOOK = "book"            # Internal ledger


class MatchCriteria(str, Enum):
    """
    Rule family that produced a match.

    Listed in precedence order: when several criteria apply to the same
    pair with equal scores, the earlier one is reported.
    """
    EXACT_MATCH = "exact_match"
    AMOUNT_DATE_MATCH = "amount_date_match"
    FUZZY_DESCRIPTION_MATCH = "fuzzy_description_match"
    RULE_MATCH = "rule_match"


class ConfidenceLevel(str, Enum):
    HIGH = "high"      # 0.8-1.0
    MEDIUM = "medium"  # 0.5-0.79
    LOW = "low"        # 0.0-0.49


class RuleOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    AMOUNT_EQUALS = "amount_equals"


RULE_FIELDS = ("id", "amount", "date", "description", "reference", "category")


# ==================== TRANSACTIONS ====================

class Transaction(BaseModel):
    """
    A statement-side or book-side transaction.

    amount and date are optional only so that malformed input can be
    reported back to the caller; transactions missing either are
    excluded from matching.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Identifier, unique within its side")
    amount: Optional[Decimal] = Field(default=None, description="Signed monetary amount")
    date: Optional[datetime.date] = Field(default=None, description="Transaction date")
    description: str = Field(default="", description="Free-text label")
    reference: Optional[str] = Field(default=None, description="External reference / check number")
    category: Optional[str] = Field(default=None, description="Ledger category (book side)")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> str:
        if v is None or isinstance(v, bool):
            raise ValueError("id is required")
        return str(v)

    @field_validator("description", mode="before")
    @classmethod
    def coerce_description(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("date", mode="before")
    @classmethod
    def truncate_datetime(cls, v: Any) -> Any:
        if isinstance(v, datetime.datetime):
            return v.date()
        return v

    @field_serializer("amount", when_used="json")
    def serialize_amount(self, value: Optional[Decimal]) -> Optional[float]:
        return _money_to_json(value)

    @property
    def has_reference(self) -> bool:
        return bool(self.reference and self.reference.strip())


class UnmatchedTransaction(Transaction):
    """A transaction left without a partner after resolution."""
    side: TransactionSide
    issue: Optional[str] = Field(
        default=None,
        description="Why the transaction was excluded from matching (None if it was simply unmatched)"
    )


# ==================== CUSTOM RULES ====================

class RuleCondition(BaseModel):
    """
    A single predicate on one side of a candidate pair.

    field is prefixed with the side it reads from, e.g.
    statement_description or book_reference.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    field: str
    operator: RuleOperator
    value: Any

    @field_validator("field")
    @classmethod
    def validate_field(cls, v: str) -> str:
        side, _, name = v.partition("_")
        if side not in ("statement", "book") or name not in RULE_FIELDS:
            raise ValueError(
                f"field must be statement_<name> or book_<name> with name in {list(RULE_FIELDS)}"
            )
        return v


class MatchingRule(BaseModel):
    """User-defined rule; all conditions must hold for a pair to match."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    priority: int = Field(default=0, ge=0, le=5, description="Higher priority yields a higher score")
    enabled: bool = True
    conditions: List[RuleCondition] = Field(..., min_length=1)


# ==================== OPTIONS ====================

class MatchOptions(BaseModel):
    """
    Tunable parameters for a matching run.

    Defaults mirror the MATCH_* settings in config.py.
    """
    model_config = ConfigDict(
        frozen=True, alias_generator=to_camel, populate_by_name=True, extra="forbid"
    )

    min_confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    date_window_days: int = Field(default=3, ge=0, le=366)
    allow_fuzzy_amounts: bool = Field(
        default=False,
        description="Allow amount differences up to amount_epsilon for description matches"
    )
    amount_epsilon: Decimal = Field(default=Decimal("1.00"), ge=0)
    description_similarity_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    similarity_metric: str = Field(default="blended")
    currency: str = Field(default="USD", min_length=3, max_length=3)
    rules: List[MatchingRule] = Field(default_factory=list)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("similarity_metric")
    @classmethod
    def validate_metric(cls, v: str) -> str:
        from reconciliation.matching_rules.similarity import available_metrics

        if v not in available_metrics():
            raise ValueError(f"similarity_metric must be one of {available_metrics()}")
        return v

    @field_serializer("amount_epsilon", when_used="json")
    def serialize_epsilon(self, value: Decimal) -> float:
        return float(value)

    @property
    def amount_tolerance(self) -> Decimal:
        """Largest amount difference any criterion may accept."""
        return self.amount_epsilon if self.allow_fuzzy_amounts else Decimal("0")

    @classmethod
    def from_settings(cls, settings: Any, **overrides: Any) -> "MatchOptions":
        """
        Build options from application settings, applying per-request overrides.

        Overrides may use either wire (camelCase) or Python field names.
        Unknown keys are passed through so validation rejects them.
        """
        by_alias = {field.alias: name for name, field in cls.model_fields.items() if field.alias}
        values = {
            "min_confidence": settings.MATCH_MIN_CONFIDENCE,
            "date_window_days": settings.MATCH_DATE_WINDOW_DAYS,
            "allow_fuzzy_amounts": settings.MATCH_ALLOW_FUZZY_AMOUNTS,
            "amount_epsilon": settings.MATCH_AMOUNT_EPSILON,
            "description_similarity_threshold": settings.MATCH_DESCRIPTION_SIMILARITY_THRESHOLD,
            "similarity_metric": settings.MATCH_SIMILARITY_METRIC,
            "currency": settings.MATCH_CURRENCY,
        }
        for key, value in overrides.items():
            values[by_alias.get(key, key)] = value
        return cls.model_validate(values)


# ==================== RESULTS ====================

class MatchedPair(BaseModel):
    """An accepted statement/book pairing."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    statement_transaction: Transaction
    book_transaction: Transaction
    score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    criteria: MatchCriteria
    reason: str
    explanation: Optional[str] = Field(
        default=None,
        description="Longer explanation; the rule's description for rule matches"
    )
    amount_difference: Decimal
    date_difference_days: int
    description_similarity: Optional[float] = None

    @field_serializer("amount_difference", when_used="json")
    def serialize_difference(self, value: Decimal) -> float:
        return float(value)


class MatchSummary(BaseModel):
    """Counts and totals for a matching run."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    statement_count: int = 0
    book_count: int = 0
    matched_count: int = 0
    match_rate: float = 0.0
    excluded_statements: int = 0
    excluded_books: int = 0
    unmatched_statement_total: Decimal = Decimal("0")
    unmatched_book_total: Decimal = Decimal("0")

    @field_serializer("unmatched_statement_total", "unmatched_book_total", when_used="json")
    def serialize_totals(self, value: Decimal) -> float:
        return float(value)


class MatchResult(BaseModel):
    """
    Output of a matching run.

    Every input transaction appears exactly once across matches,
    unmatched_statements and unmatched_books.
    """
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    matches: List[MatchedPair] = Field(default_factory=list)
    unmatched_statements: List[UnmatchedTransaction] = Field(default_factory=list)
    unmatched_books: List[UnmatchedTransaction] = Field(default_factory=list)
    confidence: float = 0.0
    ai_insights: List[str] = Field(default_factory=list)
    summary: MatchSummary = Field(default_factory=MatchSummary)

    def to_dict(self) -> dict:
        """JSON-ready dict using wire (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True)
