"""
routes/settlements.py — Settlement route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Settling writes three rows (source update, realization insert, settlement
insert). The route commits once after the service returns; any AppError
propagates to the global handler, which rolls the whole unit back.

Endpoints (base url_prefix=/api/v1):
  POST   /entries/:id/settlements  → 201  settle part or all of an entry
  GET    /entries/:id/settlements  → 200  settlement history of one entry
  GET    /settlements              → 200  all settlements (?source_entry_id)
  DELETE /settlements/:id          → 200  reverse a settlement
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.settlement import Settlement
from backend.app.routes.entries import serialize_entry
from backend.app.schemas.settlement_schema import CreateSettlementSchema, SettlementQuerySchema
from backend.app.services import settlement_service

settlements_bp = Blueprint("settlements", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _serialize_settlement(s: Settlement) -> dict:
    """Converts a Settlement ORM object to a plain dict for JSON output."""
    return {
        "id": s.id,
        "source_entry_id": s.source_entry_id,
        "realization_entry_id": s.realization_entry_id,
        "amount": str(s.amount),
        "remaining_after": str(s.remaining_after),
        "settlement_date": s.settlement_date.isoformat(),
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@settlements_bp.route("/entries/<int:entry_id>/settlements", methods=["POST"])
@require_auth
def settle_entry(entry_id: int):
    """
    POST /entries/:id/settlements — Settle an outstanding Credit/Advance.

    Response data carries the settlement plus the updated source entry and
    the new realization entry so clients can refresh both rows.
    """
    data = CreateSettlementSchema().load(request.get_json(force=True) or {})
    settlement = settlement_service.settle_entry(
        entry_id=entry_id,
        user_id=g.user_id,
        amount=data["amount"],
        settlement_date=data["settlement_date"],
        session=db.session,
        payment_method=data["payment_method"],
    )
    db.session.commit()

    return jsonify({
        "data": {
            **_serialize_settlement(settlement),
            "source_entry": serialize_entry(settlement.source_entry),
            "realization_entry": serialize_entry(settlement.realization_entry),
        },
        "warnings": [],
    }), 201


@settlements_bp.route("/entries/<int:entry_id>/settlements", methods=["GET"])
@require_auth
def list_entry_settlements(entry_id: int):
    settlements = settlement_service.list_settlements(
        user_id=g.user_id,
        session=db.session,
        source_entry_id=entry_id,
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements", methods=["GET"])
@require_auth
def list_settlements():
    filters = SettlementQuerySchema().load(request.args)
    settlements = settlement_service.list_settlements(
        user_id=g.user_id,
        session=db.session,
        source_entry_id=filters["source_entry_id"],
    )
    return jsonify({
        "data": [_serialize_settlement(s) for s in settlements],
        "warnings": [],
    }), 200


@settlements_bp.route("/settlements/<int:settlement_id>", methods=["DELETE"])
@require_auth
def reverse_settlement(settlement_id: int):
    """DELETE /settlements/:id — returns the restored source entry."""
    source = settlement_service.reverse_settlement(settlement_id, g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": serialize_entry(source), "warnings": []}), 200
