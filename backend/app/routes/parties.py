"""
routes/parties.py — Party (customer / vendor) route handlers.

Endpoints (base url_prefix=/api/v1/parties):
  POST   /parties       → 201  create a party
  GET    /parties       → 200  list parties (?party_type=)
  PATCH  /parties/:id   → 200  edit a party
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.party import Party
from backend.app.schemas.party_schema import CreatePartySchema, PartyQuerySchema, PatchPartySchema
from backend.app.services import party_service

parties_bp = Blueprint("parties", __name__)


def _serialize_party(p: Party) -> dict:
    return {
        "id": p.id,
        "name": p.name,
        "mobile": p.mobile,
        "party_type": p.party_type.value,
        "opening_balance": str(p.opening_balance),
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }


@parties_bp.route("", methods=["POST"])
@require_auth
def create_party():
    data = CreatePartySchema().load(request.get_json(force=True) or {})
    party = party_service.create_party(g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": _serialize_party(party), "warnings": []}), 201


@parties_bp.route("", methods=["GET"])
@require_auth
def list_parties():
    filters = PartyQuerySchema().load(request.args)
    parties = party_service.list_parties(g.user_id, db.session, **filters)
    return jsonify({
        "data": [_serialize_party(p) for p in parties],
        "warnings": [],
    }), 200


@parties_bp.route("/<int:party_id>", methods=["PATCH"])
@require_auth
def update_party(party_id: int):
    data = PatchPartySchema().load(request.get_json(force=True) or {})
    party = party_service.update_party(party_id, g.user_id, data, db.session)
    db.session.commit()
    return jsonify({"data": _serialize_party(party), "warnings": []}), 200
