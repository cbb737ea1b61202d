"""
services/entry_rules.py — Entry validity rules and the settlement marker.

Pure functions only: no session, no Flask, no clock other than the `today`
argument (defaulting to the server's date). Everything that decides whether
an Entry is well formed lives here so that the entry service, the settlement
engine and the tests share one definition.

Rules enforced by validate_entry():
  - entry_type / category / payment_method must be known enum values
  - amount > 0, at most 2 decimal places, at most 999,999,999.99
  - entry_date not in the future and not more than 5 years in the past
  - Credit -> payment_method None; CashIn/CashOut/Advance -> Cash or Bank

The settlement marker is the notes text written on every realization entry:
    "Settlement of <EntryType> <Category> (ID: <sourceEntryId>)"
Realization rows also carry source_entry_id; the marker is parsed only for
rows that predate that column.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from backend.app.errors import AppError, ErrorCode
from backend.app.models.entry import Category, EntryType, PaymentMethod


MAX_ENTRY_AMOUNT = Decimal("999999999.99")
MAX_ENTRY_AGE = timedelta(days=5 * 365)

MARKER_PREFIX = "Settlement of"

# Accepts the current form and the older lower-case form without "ID: ".
_MARKER_RE = re.compile(
    r"^settlement of (?P<entry_type>\w+) (?P<category>\w+) \((?:id:\s*)?(?P<source_id>[^)\s]+)\)$",
    re.IGNORECASE,
)


# ── Settlement marker ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class SettlementMarker:
    entry_type: str
    category: str
    source_entry_id: int | None   # None when the id part is not an integer


def build_settlement_marker(entry_type: EntryType, category: Category, source_entry_id: int) -> str:
    return (
        f"{MARKER_PREFIX} {EntryType(entry_type).value} "
        f"{Category(category).value} (ID: {source_entry_id})"
    )


def looks_like_settlement_marker(notes: str | None) -> bool:
    """True if notes start like a marker, even when the rest is malformed."""
    return bool(notes) and notes.strip().lower().startswith(MARKER_PREFIX.lower())


def parse_settlement_marker(notes: str | None) -> SettlementMarker | None:
    """
    Parses a settlement marker out of an entry's notes.

    Returns None if the notes are not a well-formed marker. A marker whose id
    part is not an integer is returned with source_entry_id=None so callers
    can tell "not a settlement" from "broken settlement".
    """
    if not notes:
        return None
    match = _MARKER_RE.match(notes.strip())
    if match is None:
        return None

    raw_id = match.group("source_id")
    try:
        source_id: int | None = int(raw_id)
    except ValueError:
        source_id = None

    return SettlementMarker(
        entry_type=match.group("entry_type"),
        category=match.group("category"),
        source_entry_id=source_id,
    )


def is_realization(entry: Any) -> bool:
    """
    True for entries created by a settlement.

    Works on any object with `source_entry_id` and `notes` attributes so the
    analytics read-models can run on ORM rows and plain test doubles alike.
    """
    if getattr(entry, "source_entry_id", None) is not None:
        return True
    return parse_settlement_marker(getattr(entry, "notes", None)) is not None


def realized_entry_type(entry: Any) -> EntryType | None:
    """
    EntryType of the source a realization entry settled (Credit or Advance).

    Returns None for ordinary entries, or when the marker names an unknown type.
    """
    marker = parse_settlement_marker(getattr(entry, "notes", None))
    if marker is None:
        return None
    for entry_type in EntryType:
        if entry_type.value.lower() == marker.entry_type.lower():
            return entry_type
    return None


# ── Entry validation ───────────────────────────────────────────────────────

def _coerce_enum(enum_cls, value: Any, field: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise AppError(
            ErrorCode.INVALID_ENUM_VALUE,
            f"'{value}' is not a valid {field}. Valid values: {valid}.",
            400,
            field=field,
        )


def _coerce_amount(value: Any) -> Decimal:
    if isinstance(value, float):
        # Floats cannot represent currency exactly; go through str.
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"'{value}' is not a valid amount.",
            400,
            field="amount",
        )
    if not amount.is_finite():
        raise AppError(ErrorCode.INVALID_FIELD, "Amount must be a finite number.", 400, field="amount")
    return amount


def validate_amount(value: Any) -> Decimal:
    """Validates a monetary amount; returns it as a Decimal."""
    amount = _coerce_amount(value)

    if amount <= Decimal("0"):
        raise AppError(
            ErrorCode.NON_POSITIVE_AMOUNT,
            "Amount must be greater than zero.",
            400,
            field="amount",
        )

    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → reject, never round.
    if amount.as_tuple().exponent < -2:
        raise AppError(
            ErrorCode.INVALID_AMOUNT_PRECISION,
            "Amount must have at most 2 decimal places.",
            400,
            field="amount",
        )

    if amount > MAX_ENTRY_AMOUNT:
        raise AppError(
            ErrorCode.AMOUNT_TOO_LARGE,
            f"Amount cannot exceed {MAX_ENTRY_AMOUNT}.",
            400,
            field="amount",
        )

    return amount


def validate_entry_date(value: Any, today: date | None = None) -> date:
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value)
        except ValueError:
            raise AppError(
                ErrorCode.INVALID_FIELD,
                f"'{value}' is not a valid ISO date.",
                400,
                field="entry_date",
            )
    if not isinstance(value, date):
        raise AppError(ErrorCode.MISSING_FIELD, "entry_date is required.", 400, field="entry_date")

    today = today or date.today()
    if value > today:
        raise AppError(
            ErrorCode.FUTURE_ENTRY_DATE,
            "Entry date cannot be in the future.",
            400,
            field="entry_date",
        )
    if value < today - MAX_ENTRY_AGE:
        raise AppError(
            ErrorCode.ENTRY_DATE_TOO_OLD,
            "Entry date cannot be more than 5 years in the past.",
            400,
            field="entry_date",
        )
    return value


def validate_user_notes(notes: str | None) -> None:
    """
    Rejects user-supplied notes that start like a settlement marker.

    Only the settlement engine writes the marker; a marker typed by a user
    would make an ordinary entry look like a realization.
    """
    if looks_like_settlement_marker(notes):
        raise AppError(
            ErrorCode.RESERVED_NOTES,
            f"Notes cannot start with '{MARKER_PREFIX}'; that text is reserved for settlements.",
            400,
            field="notes",
        )


def validate_payment_pairing(entry_type: EntryType, payment_method: PaymentMethod) -> None:
    """
    Credit entries record an obligation, so no money has moved yet.
    Every other entry type moves cash or bank money at creation.
    """
    if entry_type == EntryType.CREDIT and payment_method != PaymentMethod.NONE:
        raise AppError(
            ErrorCode.PAYMENT_METHOD_MISMATCH,
            "Credit entries must have payment_method 'None'.",
            400,
            field="payment_method",
        )
    if entry_type != EntryType.CREDIT and payment_method == PaymentMethod.NONE:
        raise AppError(
            ErrorCode.PAYMENT_METHOD_MISMATCH,
            f"{entry_type.value} entries require payment_method 'Cash' or 'Bank'.",
            400,
            field="payment_method",
        )


def validate_entry(candidate: Mapping[str, Any], today: date | None = None) -> dict:
    """
    Validates a candidate entry and returns a normalised copy.

    Args:
        candidate: mapping with entry_type, category, payment_method, amount,
                   entry_date and any other Entry columns (passed through).
        today:     the date "future" is measured against. Defaults to the
                   server's current date.

    Returns:
        A new dict with enums coerced, amount as Decimal, entry_date as date.

    Raises:
        AppError (400) with the first failing rule's code. Nothing is written.
    """
    for required in ("entry_type", "category", "payment_method", "amount", "entry_date"):
        if candidate.get(required) is None:
            raise AppError(
                ErrorCode.MISSING_FIELD,
                f"{required} is required.",
                400,
                field=required,
            )

    entry_type = _coerce_enum(EntryType, candidate["entry_type"], "entry_type")
    category = _coerce_enum(Category, candidate["category"], "category")
    payment_method = _coerce_enum(PaymentMethod, candidate["payment_method"], "payment_method")
    amount = validate_amount(candidate["amount"])
    entry_date = validate_entry_date(candidate["entry_date"], today)

    validate_payment_pairing(entry_type, payment_method)

    valid = dict(candidate)
    valid.update(
        entry_type=entry_type,
        category=category,
        payment_method=payment_method,
        amount=amount,
        entry_date=entry_date,
    )
    return valid
