"""
tests/unit/test_entry_rules.py — validate_entry() and settlement marker parsing.

No database, no Flask application context. `today` is pinned so date rules
are deterministic.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

import pytest

from backend.app.errors import AppError, ErrorCode
from backend.app.models.entry import Category, EntryType, PaymentMethod
from backend.app.services.entry_rules import (
    build_settlement_marker,
    is_realization,
    looks_like_settlement_marker,
    parse_settlement_marker,
    realized_entry_type,
    validate_entry,
    validate_user_notes,
)

TODAY = date(2026, 3, 15)


def _candidate(**overrides) -> dict:
    candidate = {
        "entry_type": "CashIn",
        "category": "Sales",
        "payment_method": "Cash",
        "amount": "100.00",
        "entry_date": TODAY,
    }
    candidate.update(overrides)
    return candidate


def _code_of(candidate: dict) -> str:
    with pytest.raises(AppError) as exc_info:
        validate_entry(candidate, today=TODAY)
    assert exc_info.value.http_status == 400
    return exc_info.value.code


# ═══════════════════════════════════════════════════════════════════════════
# validate_entry
# ═══════════════════════════════════════════════════════════════════════════

class TestValidateEntry:

    def test_valid_candidate_is_normalised(self):
        valid = validate_entry(_candidate(notes="walk-in"), today=TODAY)
        assert valid["entry_type"] is EntryType.CASH_IN
        assert valid["category"] is Category.SALES
        assert valid["payment_method"] is PaymentMethod.CASH
        assert valid["amount"] == Decimal("100.00")
        assert isinstance(valid["amount"], Decimal)
        assert valid["notes"] == "walk-in"

    def test_input_mapping_is_not_mutated(self):
        candidate = _candidate()
        validate_entry(candidate, today=TODAY)
        assert candidate["entry_type"] == "CashIn"

    def test_iso_string_date_is_parsed(self):
        valid = validate_entry(_candidate(entry_date="2026-03-01"), today=TODAY)
        assert valid["entry_date"] == date(2026, 3, 1)

    def test_credit_requires_payment_method_none(self):
        assert _code_of(_candidate(entry_type="Credit", payment_method="Bank")) == ErrorCode.PAYMENT_METHOD_MISMATCH
        valid = validate_entry(_candidate(entry_type="Credit", payment_method="None"), today=TODAY)
        assert valid["payment_method"] is PaymentMethod.NONE

    @pytest.mark.parametrize("entry_type", ["CashIn", "CashOut", "Advance"])
    def test_money_moving_types_reject_none(self, entry_type):
        assert _code_of(_candidate(entry_type=entry_type, payment_method="None")) == ErrorCode.PAYMENT_METHOD_MISMATCH

    @pytest.mark.parametrize("amount", ["0", "0.00", "-1.00", Decimal("-0.01")])
    def test_non_positive_amount(self, amount):
        assert _code_of(_candidate(amount=amount)) == ErrorCode.NON_POSITIVE_AMOUNT

    def test_three_decimal_places_rejected_not_rounded(self):
        assert _code_of(_candidate(amount="10.005")) == ErrorCode.INVALID_AMOUNT_PRECISION

    def test_amount_upper_bound(self):
        assert validate_entry(_candidate(amount="999999999.99"), today=TODAY)["amount"] == Decimal("999999999.99")
        assert _code_of(_candidate(amount="1000000000.00")) == ErrorCode.AMOUNT_TOO_LARGE

    def test_float_amount_goes_through_str(self):
        assert validate_entry(_candidate(amount=10.1), today=TODAY)["amount"] == Decimal("10.1")

    def test_garbage_amount(self):
        assert _code_of(_candidate(amount="ten")) == ErrorCode.INVALID_FIELD

    def test_future_date(self):
        assert _code_of(_candidate(entry_date=TODAY + timedelta(days=1))) == ErrorCode.FUTURE_ENTRY_DATE

    def test_today_is_allowed(self):
        assert validate_entry(_candidate(entry_date=TODAY), today=TODAY)["entry_date"] == TODAY

    def test_too_old_date(self):
        assert _code_of(_candidate(entry_date=TODAY - timedelta(days=5 * 365 + 1))) == ErrorCode.ENTRY_DATE_TOO_OLD

    def test_unknown_enum_values(self):
        assert _code_of(_candidate(entry_type="Loan")) == ErrorCode.INVALID_ENUM_VALUE
        assert _code_of(_candidate(category="Salary")) == ErrorCode.INVALID_ENUM_VALUE
        assert _code_of(_candidate(payment_method="UPI")) == ErrorCode.INVALID_ENUM_VALUE

    @pytest.mark.parametrize("field", ["entry_type", "category", "payment_method", "amount", "entry_date"])
    def test_missing_required_field(self, field):
        candidate = _candidate()
        del candidate[field]
        with pytest.raises(AppError) as exc_info:
            validate_entry(candidate, today=TODAY)
        assert exc_info.value.code == ErrorCode.MISSING_FIELD
        assert exc_info.value.field == field


# ═══════════════════════════════════════════════════════════════════════════
# Settlement marker
# ═══════════════════════════════════════════════════════════════════════════

class TestSettlementMarker:

    def test_build_marker(self):
        assert build_settlement_marker(EntryType.CREDIT, Category.SALES, 42) == "Settlement of Credit Sales (ID: 42)"

    def test_round_trip(self):
        marker = parse_settlement_marker(build_settlement_marker(EntryType.ADVANCE, Category.OPEX, 7))
        assert marker.entry_type == "Advance"
        assert marker.category == "Opex"
        assert marker.source_entry_id == 7

    @pytest.mark.parametrize("notes", [
        "settlement of credit sales (id: 12)",
        "SETTLEMENT OF Credit Sales (ID:12)",
        "Settlement of Credit Sales (12)",
        "  Settlement of Credit Sales (ID: 12)  ",
    ])
    def test_legacy_and_case_variants(self, notes):
        assert parse_settlement_marker(notes).source_entry_id == 12

    def test_non_integer_id_is_kept_as_broken_marker(self):
        marker = parse_settlement_marker("Settlement of Credit Sales (ID: 3f2a-uuid)")
        assert marker is not None
        assert marker.source_entry_id is None

    @pytest.mark.parametrize("notes", [None, "", "paid by cheque", "Settlement of something else"])
    def test_not_a_marker(self, notes):
        assert parse_settlement_marker(notes) is None

    def test_looks_like_marker_for_malformed_notes(self):
        assert looks_like_settlement_marker("Settlement of something else") is True
        assert looks_like_settlement_marker("paid by cheque") is False
        assert looks_like_settlement_marker(None) is False


class TestIsRealization:

    def test_linked_row_is_realization(self):
        assert is_realization(SimpleNamespace(source_entry_id=5, notes=None)) is True

    def test_marker_only_row_is_realization(self):
        row = SimpleNamespace(source_entry_id=None, notes="Settlement of Advance COGS (ID: 5)")
        assert is_realization(row) is True
        assert realized_entry_type(row) is EntryType.ADVANCE

    def test_ordinary_row(self):
        row = SimpleNamespace(source_entry_id=None, notes="rent for March")
        assert is_realization(row) is False
        assert realized_entry_type(row) is None


class TestValidateUserNotes:

    @pytest.mark.parametrize("notes", [None, "", "rent for March", "Re: Settlement of invoice 4"])
    def test_ordinary_notes_pass(self, notes):
        validate_user_notes(notes)

    @pytest.mark.parametrize("notes", [
        build_settlement_marker(EntryType.CREDIT, Category.SALES, 9),
        "settlement of credit sales (9)",
        "  SETTLEMENT OF anything",
    ])
    def test_marker_shaped_notes_are_reserved(self, notes):
        with pytest.raises(AppError) as exc_info:
            validate_user_notes(notes)
        assert exc_info.value.code == ErrorCode.RESERVED_NOTES
        assert exc_info.value.http_status == 400
        assert exc_info.value.field == "notes"
