"""
schemas/party_schema.py — Marshmallow schemas for party endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty name (including trim).
  - services/party_service.py:
      - DUPLICATE_PARTY_NAME (409) — requires DB lookup
      - PARTY_NOT_FOUND      (404) — requires DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from backend.app.errors import ErrorCode
from backend.app.models.party import PartyType


# validate.Length(min=1) alone allows "   ". Mirrors the DB
# CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _validate_amount_precision(value: Decimal) -> None:
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


_NAME_VALIDATORS = [
    validate.Length(
        min=1,
        max=100,
        error="Party name must be between 1 and 100 characters.",
    ),
    _validate_non_empty_after_trim,
]

_MOBILE_VALIDATORS = [
    validate.Length(max=20, error="Mobile number cannot exceed 20 characters."),
    validate.Regexp(r"^\+?[0-9 \-]*$", error="Mobile number may only contain digits, spaces and '-'."),
]


class CreatePartySchema(Schema):
    """POST /parties"""

    name = fields.Str(required=True, validate=_NAME_VALIDATORS)

    mobile = fields.Str(load_default=None, allow_none=True, validate=_MOBILE_VALIDATORS)

    party_type = fields.Enum(
        PartyType,
        by_value=True,
        load_default=PartyType.CUSTOMER,
        error_messages={"unknown": ErrorCode.INVALID_ENUM_VALUE},
    )

    opening_balance = fields.Decimal(
        load_default=Decimal("0.00"),
        validate=_validate_amount_precision,
    )


class PatchPartySchema(Schema):
    """PATCH /parties/:id — all fields optional."""

    name = fields.Str(required=False, validate=_NAME_VALIDATORS)
    mobile = fields.Str(required=False, allow_none=True, validate=_MOBILE_VALIDATORS)
    party_type = fields.Enum(
        PartyType,
        required=False,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_ENUM_VALUE},
    )
    opening_balance = fields.Decimal(required=False, validate=_validate_amount_precision)

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one field to update.")


class PartyQuerySchema(Schema):
    """GET /parties query parameters."""

    party_type = fields.Enum(
        PartyType,
        by_value=True,
        load_default=None,
        error_messages={"unknown": ErrorCode.INVALID_ENUM_VALUE},
    )
