"""
routes/analytics.py — Dashboard read-model handlers.

Layer rules:
  - Parse query params, call ONE service, return envelope.
  - No business logic. The cash/profit rules live in
    services/analytics_service.py only.

Endpoints (base url_prefix=/api/v1/analytics):
  GET /analytics/cash-pulse   → 200  cash balance, flows, bucket/category split,
                                     entry counts, 30-day trend, month vs month
  GET /analytics/profit-lens  → 200  revenue, COGS, opex, profit, margin,
                                     expense split, 6-month trend
  GET /analytics/pending      → 200  collections, bills, advances per party

cash-pulse and profit-lens accept ?start_date=&end_date= (inclusive, ISO).
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.schemas.entry_schema import DateRangeSchema
from backend.app.services import analytics_service

analytics_bp = Blueprint("analytics", __name__)


@analytics_bp.route("/cash-pulse", methods=["GET"])
@require_auth
def cash_pulse():
    window = DateRangeSchema().load(request.args)
    result = analytics_service.get_cash_pulse(
        user_id=g.user_id,
        session=db.session,
        **window,
    )
    return jsonify({"data": result, "warnings": []}), 200


@analytics_bp.route("/profit-lens", methods=["GET"])
@require_auth
def profit_lens():
    window = DateRangeSchema().load(request.args)
    result = analytics_service.get_profit_lens(
        user_id=g.user_id,
        session=db.session,
        **window,
    )
    return jsonify({"data": result, "warnings": []}), 200


@analytics_bp.route("/pending", methods=["GET"])
@require_auth
def pending():
    result = analytics_service.get_pending(user_id=g.user_id, session=db.session)
    return jsonify({"data": result, "warnings": []}), 200
