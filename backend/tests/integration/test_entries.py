"""
tests/integration/test_entries.py — Integration tests for entry endpoints.

Endpoints covered:
  POST   /entries      → 201 / 400
  GET    /entries      → 200 (filters)
  GET    /entries/:id  → 200 / 404
  PATCH  /entries/:id  → 200 / 422 / 409
  DELETE /entries/:id  → 200 / 409

Rules verified:
  - Payment-method pairing is rejected, never coerced
  - Future entry dates and >2 dp amounts are rejected
  - Credit/Advance start fully outstanding (remaining_amount == amount)
  - Entries of another tenant are reported as not found
  - Settled and realization entries are read-only
  - Amount and category are frozen once an entry has settlements
  - Notes may not start with the settlement marker
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal


# ═══════════════════════════════════════════════════════════════════════════
# POST /entries
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateEntry:

    def test_credit_entry_starts_fully_outstanding(self, entry):
        data = entry(amount="1000.00")
        assert data["entry_type"] == "Credit"
        assert data["amount"] == "1000.00"
        assert data["remaining_amount"] == "1000.00"
        assert data["settled"] is False
        assert data["is_realization"] is False

    def test_cash_entry_has_no_remaining_amount(self, entry):
        data = entry(entry_type="CashIn", payment_method="Cash", amount="250.50")
        assert data["remaining_amount"] is None
        assert data["settled"] is False

    def test_amount_is_string_in_json(self, entry):
        data = entry(entry_type="CashOut", category="Opex", payment_method="Bank", amount="12.30")
        assert isinstance(data["amount"], str)
        assert data["amount"] == "12.30"

    def test_entry_date_is_iso_string(self, entry, today):
        data = entry()
        assert data["entry_date"] == today.isoformat()

    def test_credit_with_cash_payment_method_is_rejected(self, create_entry):
        resp = create_entry(entry_type="Credit", payment_method="Cash")
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "PAYMENT_METHOD_MISMATCH"
        assert error["field"] == "payment_method"

    def test_cash_in_without_payment_method_is_rejected(self, create_entry):
        resp = create_entry(entry_type="CashIn", payment_method="None")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PAYMENT_METHOD_MISMATCH"

    def test_future_entry_date_is_rejected(self, create_entry, today):
        resp = create_entry(entry_date=(today + timedelta(days=1)).isoformat())
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "FUTURE_ENTRY_DATE"

    def test_very_old_entry_date_is_rejected(self, create_entry, today):
        resp = create_entry(entry_date=(today - timedelta(days=6 * 365)).isoformat())
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "ENTRY_DATE_TOO_OLD"

    def test_three_decimal_places_are_rejected(self, create_entry):
        resp = create_entry(amount="10.123")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_AMOUNT_PRECISION"

    def test_zero_amount_is_rejected(self, create_entry):
        resp = create_entry(amount="0")
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "NON_POSITIVE_AMOUNT"

    def test_unknown_entry_type_is_rejected(self, create_entry):
        resp = create_entry(entry_type="Barter")
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "INVALID_ENUM_VALUE"
        assert error["field"] == "entry_type"

    def test_missing_amount_is_rejected(self, client, headers, today):
        resp = client.post(
            "/api/v1/entries",
            json={
                "entry_type": "CashIn",
                "category": "Sales",
                "payment_method": "Cash",
                "entry_date": today.isoformat(),
            },
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"

    def test_unknown_party_is_rejected(self, create_entry):
        resp = create_entry(party_id=99999)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "PARTY_NOT_FOUND"

    def test_marker_notes_are_rejected(self, client, headers, entry, create_entry, get_entry):
        credit = entry(amount="1000.00")

        resp = create_entry(
            entry_type="CashIn",
            payment_method="Cash",
            amount="400.00",
            notes=f"Settlement of Credit Sales (ID: {credit['id']})",
        )
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "RESERVED_NOTES"
        assert error["field"] == "notes"

        listed = client.get("/api/v1/entries", headers=headers).get_json()["data"]
        assert [row["id"] for row in listed] == [credit["id"]]
        assert get_entry(credit["id"])["remaining_amount"] == "1000.00"

    def test_requires_token(self, client, today):
        resp = client.post("/api/v1/entries", json={"amount": "1.00"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_expired_token_is_rejected(self, client, make_token):
        token = make_token(expires_in=timedelta(minutes=-1))
        resp = client.get("/api/v1/entries", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_EXPIRED"


# ═══════════════════════════════════════════════════════════════════════════
# GET /entries, GET /entries/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestReadEntries:

    def test_list_is_scoped_to_caller(self, client, headers, other_headers, entry, create_entry):
        mine = entry()
        resp = create_entry(request_headers=other_headers)
        assert resp.status_code == 201

        listed = client.get("/api/v1/entries", headers=headers).get_json()["data"]
        assert [e["id"] for e in listed] == [mine["id"]]

    def test_list_filters_by_type_and_window(self, client, headers, entry, today):
        entry(entry_type="CashIn", payment_method="Cash", amount="10.00",
              entry_date=(today - timedelta(days=10)).isoformat())
        recent = entry(entry_type="CashIn", payment_method="Cash", amount="20.00")
        entry()  # Credit, excluded by type

        resp = client.get(
            "/api/v1/entries",
            query_string={
                "entry_type": "CashIn",
                "start_date": (today - timedelta(days=1)).isoformat(),
            },
            headers=headers,
        )
        assert resp.status_code == 200
        assert [e["id"] for e in resp.get_json()["data"]] == [recent["id"]]

    def test_list_rejects_inverted_window(self, client, headers, today):
        resp = client.get(
            "/api/v1/entries",
            query_string={
                "start_date": today.isoformat(),
                "end_date": (today - timedelta(days=1)).isoformat(),
            },
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_DATE_RANGE"

    def test_other_tenants_entry_is_not_found(self, client, other_headers, entry):
        data = entry()
        resp = client.get(f"/api/v1/entries/{data['id']}", headers=other_headers)
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "ENTRY_NOT_FOUND"


# ═══════════════════════════════════════════════════════════════════════════
# PATCH /entries/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestUpdateEntry:

    def test_patch_updates_notes_and_amount(self, client, headers, entry):
        data = entry(amount="500.00")
        resp = client.patch(
            f"/api/v1/entries/{data['id']}",
            json={"amount": "600.00", "notes": "Invoice 42"},
            headers=headers,
        )
        assert resp.status_code == 200
        updated = resp.get_json()["data"]
        assert updated["amount"] == "600.00"
        assert updated["remaining_amount"] == "600.00"
        assert updated["notes"] == "Invoice 42"
        assert updated["updated_at"] is not None

    def test_patch_amount_of_partially_settled_entry_is_rejected(self, client, headers, entry, settle, get_entry):
        data = entry(amount="1000.00")
        assert settle(data["id"], "400.00").status_code == 201

        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"amount": "400.00"}, headers=headers)
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "ENTRY_HAS_SETTLEMENTS"
        assert error["field"] == "amount"

        source = get_entry(data["id"])
        assert source["amount"] == "1000.00"
        assert source["remaining_amount"] == "600.00"
        assert source["settled"] is False

    def test_patch_amount_above_face_value_after_settlement_is_rejected(self, client, headers, entry, settle):
        data = entry(amount="1000.00")
        settle(data["id"], "400.00")

        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"amount": "900.00"}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ENTRY_HAS_SETTLEMENTS"

    def test_patch_notes_of_partially_settled_entry_is_allowed(self, client, headers, entry, settle):
        data = entry(amount="1000.00")
        settle(data["id"], "400.00")

        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"notes": "Invoice 42"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["remaining_amount"] == "600.00"

    def test_patch_marker_notes_are_rejected(self, client, headers, entry, get_entry):
        data = entry(entry_type="CashIn", payment_method="Cash", amount="400.00", notes="counter sale")

        resp = client.patch(
            f"/api/v1/entries/{data['id']}",
            json={"notes": f"Settlement of Credit Sales (ID: {data['id']})"},
            headers=headers,
        )
        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "RESERVED_NOTES"
        assert error["field"] == "notes"
        assert get_entry(data["id"])["notes"] == "counter sale"

    def test_patch_category_of_partially_settled_entry_is_rejected(self, client, headers, entry, settle):
        data = entry(amount="1000.00")
        settle(data["id"], "400.00")

        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"category": "COGS"}, headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ENTRY_HAS_SETTLEMENTS"

    def test_patch_settled_entry_is_rejected(self, client, headers, entry, settle):
        data = entry(amount="100.00")
        settle(data["id"], "100.00")

        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"notes": "late"}, headers=headers)
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "ENTRY_SETTLED"

    def test_patch_realization_entry_is_rejected(self, client, headers, entry, settle):
        data = entry(amount="100.00")
        realization_id = settle(data["id"], "40.00").get_json()["data"]["realization_entry_id"]

        resp = client.patch(f"/api/v1/entries/{realization_id}", json={"notes": "x"}, headers=headers)
        assert resp.status_code == 422
        assert resp.get_json()["error"]["code"] == "REALIZATION_ENTRY_READONLY"

    def test_patch_entry_type_is_not_accepted(self, client, headers, entry):
        data = entry()
        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"entry_type": "CashIn"}, headers=headers)
        assert resp.status_code == 400

    def test_patch_revalidates_pairing(self, client, headers, entry):
        data = entry()
        resp = client.patch(f"/api/v1/entries/{data['id']}", json={"payment_method": "Cash"}, headers=headers)
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "PAYMENT_METHOD_MISMATCH"


# ═══════════════════════════════════════════════════════════════════════════
# DELETE /entries/:id
# ═══════════════════════════════════════════════════════════════════════════

class TestDeleteEntry:

    def test_delete_plain_entry(self, client, headers, entry):
        data = entry(entry_type="CashOut", category="Opex", payment_method="Cash", amount="5.00")
        resp = client.delete(f"/api/v1/entries/{data['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"] == {
            "deleted": True,
            "entry_id": data["id"],
            "restored_entry_id": None,
        }
        assert client.get(f"/api/v1/entries/{data['id']}", headers=headers).status_code == 404

    def test_delete_entry_with_settlements_is_rejected(self, client, headers, entry, settle):
        data = entry(amount="1000.00")
        settle(data["id"], "100.00")

        resp = client.delete(f"/api/v1/entries/{data['id']}", headers=headers)
        assert resp.status_code == 409
        assert resp.get_json()["error"]["code"] == "ENTRY_HAS_SETTLEMENTS"

    def test_delete_realization_entry_reverses_settlement(self, client, headers, entry, settle, get_entry):
        data = entry(amount="1000.00")
        realization_id = settle(data["id"], "1000.00").get_json()["data"]["realization_entry_id"]

        resp = client.delete(f"/api/v1/entries/{realization_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["restored_entry_id"] == data["id"]

        source = get_entry(data["id"])
        assert Decimal(source["remaining_amount"]) == Decimal("1000.00")
        assert source["settled"] is False

    def test_delete_other_tenants_entry_is_not_found(self, client, other_headers, entry):
        data = entry()
        resp = client.delete(f"/api/v1/entries/{data['id']}", headers=other_headers)
        assert resp.status_code == 404
