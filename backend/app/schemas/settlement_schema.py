"""
schemas/settlement_schema.py — Marshmallow schema for settlement endpoints.

Validation responsibility:
  - This file: field types, decimal precision, settlement payment method.
  - services/settlement_service.py, in this order:
      - ENTRY_NOT_FOUND     (404) — requires DB lookup
      - INVALID_ENTRY_TYPE  (422) — requires the stored entry
      - ALREADY_SETTLED     (422) — requires the stored entry
      - INVALID_AMOUNT      (422) — amount <= 0
      - EXCEEDS_OUTSTANDING (422) — requires the stored remaining_amount

The sign of the amount is NOT checked here. A non-positive amount against a
missing entry must still report ENTRY_NOT_FOUND first.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate

from backend.app.errors import ErrorCode
from backend.app.models.entry import PaymentMethod


def _validate_amount_precision(value: Decimal) -> None:
    """Rejects more than 2 decimal places (NUMERIC(12, 2)); never rounds."""
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


class CreateSettlementSchema(Schema):
    """
    POST /entries/:id/settlements

    Field rules:
      amount          : required Decimal, max 2 decimal places
      settlement_date : required ISO date; becomes the realization entry's
                        entry_date and must pass the entry date rules
      payment_method  : optional, Cash or Bank (default Cash). Where a Credit
                        is collected/paid. Ignored for Advance settlements,
                        which reuse the advance's own payment method.
    """

    amount = fields.Decimal(
        required=True,
        validate=_validate_amount_precision,
    )

    settlement_date = fields.Date(required=True)

    payment_method = fields.Enum(
        PaymentMethod,
        by_value=True,
        load_default=PaymentMethod.CASH,
        validate=validate.OneOf(
            [PaymentMethod.CASH, PaymentMethod.BANK],
            error="A settlement is paid in Cash or Bank.",
        ),
        error_messages={"unknown": ErrorCode.INVALID_ENUM_VALUE},
    )


class SettlementQuerySchema(Schema):
    """GET /settlements query parameters."""

    source_entry_id = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="source_entry_id must be a positive integer."),
    )
