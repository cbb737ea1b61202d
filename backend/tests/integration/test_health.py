"""
tests/integration/test_health.py — Health probe and app-level error envelopes.
"""

from __future__ import annotations

from unittest.mock import patch

from sqlalchemy.exc import OperationalError

from backend.app.extensions import db


class TestHealth:

    def test_healthy_without_token(self, client):
        resp = client.get("/api/v1/health")
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["status"] == "healthy"
        assert data["services"] == {"database": "ok", "api": "ok"}

    def test_store_failure_is_503(self, client):
        failure = OperationalError("SELECT 1", {}, Exception("connection refused"))
        with patch.object(db.session, "execute", side_effect=failure):
            resp = client.get("/api/v1/health")
        assert resp.status_code == 503
        body = resp.get_json()
        assert body["error"]["code"] == "STORE_ERROR"
        assert "connection refused" not in body["error"]["message"]


class TestRoutingErrors:

    def test_unknown_route(self, client):
        resp = client.get("/api/v1/nope")
        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "ROUTE_NOT_FOUND"

    def test_wrong_method(self, client):
        resp = client.put("/api/v1/health")
        assert resp.status_code == 405
        assert resp.get_json()["error"]["code"] == "METHOD_NOT_ALLOWED"
