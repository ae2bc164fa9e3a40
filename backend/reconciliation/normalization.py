"""
Transaction Normalization

Lenient coercion of caller-supplied transactions into Transaction
models before matching:
- Amounts parsed to Decimal and rounded to the currency's minor units
- Dates parsed from ISO-8601 strings (dateutil), date or datetime
- Missing or unparseable amount/date recorded as an issue instead of
  failing the run

Only contract violations raise: non-object entries and missing ids
(InvalidInputError), non-finite amounts (MatchingEngineError).
"""

import datetime
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Any, List, Optional

from dateutil.parser import isoparse

from reconciliation.errors import InvalidInputError, MatchingEngineError
from reconciliation.models import Transaction, TransactionSide


DEFAULT_MINOR_UNITS = 2

# Significant digits kept when rounding amounts
AMOUNT_PRECISION = 60

# ISO-4217 currencies whose minor unit differs from 2
CURRENCY_MINOR_UNITS = {
    "BIF": 0, "CLP": 0, "DJF": 0, "GNF": 0, "ISK": 0, "JPY": 0, "KMF": 0,
    "KRW": 0, "PYG": 0, "RWF": 0, "UGX": 0, "VND": 0, "VUV": 0, "XAF": 0,
    "XOF": 0, "XPF": 0,
    "BHD": 3, "IQD": 3, "JOD": 3, "KWD": 3, "LYD": 3, "OMR": 3, "TND": 3,
}

CURRENCY_SYMBOLS = {"USD": "$", "CAD": "$", "AUD": "$", "EUR": "€", "GBP": "£", "JPY": "¥"}

# Alternate keys accepted for ledger rows exported from other systems
_DATE_KEYS = ("date", "transactionDate", "transaction_date")
_REFERENCE_KEYS = ("reference", "referenceId", "reference_id")


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS.get((currency or "").upper(), DEFAULT_MINOR_UNITS)


def round_amount(amount: Decimal, currency: str) -> Decimal:
    """
    Round to the currency's minor units (half up).

    Works to AMOUNT_PRECISION significant digits; larger amounts raise
    InvalidOperation.
    """
    quantum = Decimal(1).scaleb(-minor_units(currency))
    with localcontext() as ctx:
        ctx.prec = AMOUNT_PRECISION
        return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal, currency: str) -> str:
    """Human-readable amount, e.g. $1,250.00 or -€12.50 or 1,000 KWD."""
    rounded = round_amount(amount, currency)
    units = minor_units(currency)
    body = f"{abs(rounded):,.{units}f}"
    sign = "-" if rounded < 0 else ""
    symbol = CURRENCY_SYMBOLS.get((currency or "").upper())
    if symbol:
        return f"{sign}{symbol}{body}"
    return f"{sign}{body} {currency.upper()}"


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Parse an amount to Decimal.

    Returns None when the amount is absent; raises ValueError when it
    cannot be interpreted as a number. Non-finite values are returned
    as-is for the caller to reject.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (int, float)):
        return Decimal(str(value))
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        if not text:
            return None
        try:
            return Decimal(text)
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}")
    raise ValueError(f"Invalid amount: {value!r}")


def parse_date(value: Any) -> Optional[datetime.date]:
    """Parse a calendar date; returns None when absent, raises ValueError when invalid."""
    if value is None:
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        return isoparse(text).date()
    raise ValueError(f"Invalid date: {value!r}")


@dataclass(frozen=True)
class NormalizedTransaction:
    """A transaction prepared for matching, with its position in the input."""
    side: TransactionSide
    position: int
    transaction: Transaction
    rounded_amount: Optional[Decimal]
    issue: Optional[str] = None

    @property
    def id(self) -> str:
        return self.transaction.id

    @property
    def is_matchable(self) -> bool:
        return self.issue is None


def _first_present(raw: Mapping, keys) -> Any:
    for key in keys:
        if raw.get(key) is not None:
            return raw.get(key)
    return None


def _check_finite(amount: Optional[Decimal], side: TransactionSide, txn_id: Any):
    if amount is not None and not amount.is_finite():
        raise MatchingEngineError(
            f"Non-finite amount on {side.value} transaction {txn_id}",
            details={"side": side.value, "id": str(txn_id)}
        )


def _from_mapping(raw: Mapping, side: TransactionSide, position: int) -> tuple:
    issues: List[str] = []

    txn_id = raw.get("id")
    if txn_id is None or (isinstance(txn_id, str) and not txn_id.strip()):
        raise InvalidInputError(
            f"{side.value} transaction at index {position} has no id",
            details={"side": side.value, "index": position}
        )

    try:
        amount = parse_amount(raw.get("amount"))
        if amount is None:
            issues.append("missing amount")
    except ValueError:
        amount = None
        issues.append("invalid amount")
    _check_finite(amount, side, txn_id)

    try:
        txn_date = parse_date(_first_present(raw, _DATE_KEYS))
        if txn_date is None:
            issues.append("missing date")
    except (ValueError, OverflowError):
        txn_date = None
        issues.append("invalid date")

    reference = _first_present(raw, _REFERENCE_KEYS)
    category = raw.get("category")

    transaction = Transaction(
        id=txn_id,
        amount=amount,
        date=txn_date,
        description=raw.get("description"),
        reference=str(reference) if reference is not None else None,
        category=str(category) if category is not None else None,
    )
    return transaction, issues


def normalize_transaction(
    raw: Any,
    side: TransactionSide,
    position: int,
    currency: str
) -> NormalizedTransaction:
    """
    Normalize one caller-supplied transaction.

    Args:
        raw: Transaction model or mapping with id/amount/date/description/reference
        side: Which collection the transaction came from
        position: Index in that collection
        currency: ISO-4217 code used for rounding

    Raises:
        InvalidInputError: entry is not a transaction object or has no id
        MatchingEngineError: amount is NaN or infinite
    """
    if isinstance(raw, Transaction):
        transaction = raw
        if type(raw) is not Transaction:
            # e.g. an UnmatchedTransaction from an earlier run
            transaction = Transaction(**raw.model_dump(include=set(Transaction.model_fields)))
        _check_finite(transaction.amount, side, transaction.id)
        issues = []
        if transaction.amount is None:
            issues.append("missing amount")
        if transaction.date is None:
            issues.append("missing date")
    elif isinstance(raw, Mapping):
        transaction, issues = _from_mapping(raw, side, position)
    else:
        raise InvalidInputError(
            f"{side.value} transaction at index {position} must be an object, got {type(raw).__name__}",
            details={"side": side.value, "index": position}
        )

    rounded = None
    if transaction.amount is not None:
        try:
            rounded = round_amount(transaction.amount, currency)
        except InvalidOperation:
            raise MatchingEngineError(
                f"Amount out of range on {side.value} transaction {transaction.id}",
                details={"side": side.value, "id": transaction.id}
            )

    return NormalizedTransaction(
        side=side,
        position=position,
        transaction=transaction,
        rounded_amount=rounded,
        issue="; ".join(issues) if issues else None,
    )
