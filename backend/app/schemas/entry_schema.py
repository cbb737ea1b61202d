"""
schemas/entry_schema.py — Marshmallow schemas for entry endpoints.

Validation responsibility:
  - This file:
      - Field types, enum values, decimal precision, notes length
      - entry_type is not accepted on PATCH (fixed at creation)
      - start_date <= end_date for list filters (INVALID_DATE_RANGE)
  - services/entry_rules.py (validate_entry):
      - NON_POSITIVE_AMOUNT, AMOUNT_TOO_LARGE
      - FUTURE_ENTRY_DATE, ENTRY_DATE_TOO_OLD — depend on the server clock
      - PAYMENT_METHOD_MISMATCH — the pairing also has to hold for rows
        built by the settlement engine, so it lives with the entry rules
  - services/entry_service.py:
      - ENTRY_NOT_FOUND, PARTY_NOT_FOUND — require DB lookups
      - ENTRY_SETTLED, REALIZATION_ENTRY_READONLY, ENTRY_HAS_SETTLEMENTS
      - RESERVED_NOTES — the settlement engine writes marker notes through
        validate_entry, so the check runs only on user input

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from backend.app.errors import ErrorCode
from backend.app.models.entry import Category, EntryType, PaymentMethod


# ── Shared monetary precision validator ───────────────────────────────────
#
# Only precision is checked here. Sign and upper bound are entry rules and
# are reported by validate_entry() with their own codes.
# Input with more than 2 decimal places is REJECTED — never rounded.
# ──────────────────────────────────────────────────────────────────────────

def _validate_amount_precision(value: Decimal) -> None:
    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _enum_field(enum_cls, **kwargs) -> fields.Enum:
    return fields.Enum(
        enum_cls,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ENUM_VALUE},
        **kwargs,
    )


# ── Create entry ───────────────────────────────────────────────────────────

class CreateEntrySchema(Schema):
    """
    POST /entries

    payment_method is required: Credit entries must send "None" explicitly.
    A mismatch is reported as PAYMENT_METHOD_MISMATCH, never coerced.
    """

    entry_type = _enum_field(EntryType, required=True)
    category = _enum_field(Category, required=True)
    payment_method = _enum_field(PaymentMethod, required=True)

    amount = fields.Decimal(
        required=True,
        validate=_validate_amount_precision,
    )

    entry_date = fields.Date(required=True)

    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="Notes cannot exceed 500 characters."),
    )

    party_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="party_id must be a positive integer."),
    )


# ── Patch entry ────────────────────────────────────────────────────────────

class PatchEntrySchema(Schema):
    """
    PATCH /entries/:id

    All fields are optional; only provided fields are updated. entry_type is
    deliberately absent: unknown fields (including entry_type) are rejected
    by marshmallow's default RAISE behaviour.
    """

    category = _enum_field(Category, required=False)
    payment_method = _enum_field(PaymentMethod, required=False)

    amount = fields.Decimal(
        required=False,
        validate=_validate_amount_precision,
    )

    entry_date = fields.Date(required=False)

    notes = fields.Str(
        required=False,
        allow_none=True,
        validate=validate.Length(max=500, error="Notes cannot exceed 500 characters."),
    )

    party_id = fields.Int(
        required=False,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="party_id must be a positive integer."),
    )

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")


# ── List filters ───────────────────────────────────────────────────────────

class DateRangeSchema(Schema):
    """Optional inclusive entry_date window (?start_date=&end_date=)."""

    start_date = fields.Date(load_default=None)
    end_date = fields.Date(load_default=None)

    @validates_schema
    def validate_range(self, data: dict, **kwargs) -> None:
        start, end = data.get("start_date"), data.get("end_date")
        if start is not None and end is not None and start > end:
            raise ValidationError({"start_date": [ErrorCode.INVALID_DATE_RANGE]})


class EntryQuerySchema(DateRangeSchema):
    """GET /entries query parameters."""

    entry_type = _enum_field(EntryType, load_default=None)
    category = _enum_field(Category, load_default=None)
    settled = fields.Boolean(load_default=None)
