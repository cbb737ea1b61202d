"""
routes/health.py — Liveness / readiness probe.

Endpoint (base url_prefix=/api/v1):
  GET /health → 200 when the entry store answers a trivial query.
                No authentication. A store failure surfaces through the
                global SQLAlchemyError handler as STORE_ERROR (503).
"""

from __future__ import annotations

from datetime import datetime, timezone

from flask import Blueprint, jsonify
from sqlalchemy import text

from backend.app.extensions import db

health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    db.session.execute(text("SELECT 1"))
    return jsonify({
        "data": {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {"database": "ok", "api": "ok"},
        },
        "warnings": [],
    }), 200
