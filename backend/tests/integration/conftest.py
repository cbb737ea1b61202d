"""
tests/integration/conftest.py — Fixtures for all integration tests.

Design:
  - The app is created once per session using create_app("testing").
    TestingConfig points at in-memory SQLite unless TEST_DATABASE_URL names
    a PostgreSQL database (required to exercise SELECT ... FOR UPDATE).
  - All tables (and, on PostgreSQL, enum types) are created once via
    db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Tokens are signed here with the testing JWT secret; the service itself
    never issues tokens.

Factory fixtures are provided for common operations:
  - headers / other_headers  → Authorization headers for two tenants
  - create_entry(**fields)   → HTTP response of POST /entries
  - entry(**fields)          → created entry data dict (asserts 201)
  - settle(entry_id, amount) → HTTP response of POST /entries/:id/settlements
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db

USER_A = "user-a"
USER_B = "user-b"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Tables are created with db.create_all() and dropped at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.session.remove()
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.

    settlements reference entries (RESTRICT); realization entries reference
    their source entry, so they go before the rows they point at.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM settlements"))
            conn.execute(text("DELETE FROM entries WHERE source_entry_id IS NOT NULL"))
            conn.execute(text("DELETE FROM entries"))
            conn.execute(text("DELETE FROM parties"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client and auth fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def make_token(app):
    """Returns a function that signs an access token for a tenant id."""

    def _make(sub: str = USER_A, expires_in: timedelta = timedelta(minutes=15)) -> str:
        payload = {
            "sub": sub,
            "exp": datetime.now(timezone.utc) + expires_in,
        }
        return jwt.encode(payload, app.config["JWT_SECRET_KEY"], algorithm="HS256")

    return _make


@pytest.fixture
def headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(USER_A)}"}


@pytest.fixture
def other_headers(make_token) -> dict:
    return {"Authorization": f"Bearer {make_token(USER_B)}"}


# ═══════════════════════════════════════════════════════════════════════════
# Factory fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def today() -> date:
    return date.today()


@pytest.fixture
def create_entry(client, headers, today):
    """
    POSTs an entry and returns the HTTP response.

    Defaults to a 1000.00 Credit Sales entry dated today; override any field.
    """

    def _create(request_headers: dict | None = None, **fields):
        payload = {
            "entry_type": "Credit",
            "category": "Sales",
            "payment_method": "None",
            "amount": "1000.00",
            "entry_date": today.isoformat(),
        }
        payload.update(fields)
        return client.post("/api/v1/entries", json=payload, headers=request_headers or headers)

    return _create


@pytest.fixture
def entry(create_entry):
    """Creates an entry and returns its data dict."""

    def _entry(**fields) -> dict:
        resp = create_entry(**fields)
        assert resp.status_code == 201, f"create entry failed: {resp.get_json()}"
        return resp.get_json()["data"]

    return _entry


@pytest.fixture
def settle(client, headers, today):
    """POSTs a settlement and returns the HTTP response."""

    def _settle(entry_id: int, amount: str, request_headers: dict | None = None, **fields):
        payload = {"amount": amount, "settlement_date": today.isoformat()}
        payload.update(fields)
        return client.post(
            f"/api/v1/entries/{entry_id}/settlements",
            json=payload,
            headers=request_headers or headers,
        )

    return _settle


@pytest.fixture
def get_entry(client, headers):
    def _get(entry_id: int) -> dict:
        resp = client.get(f"/api/v1/entries/{entry_id}", headers=headers)
        assert resp.status_code == 200, f"get entry failed: {resp.get_json()}"
        return resp.get_json()["data"]

    return _get
