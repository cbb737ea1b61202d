"""
routes/entries.py — Entry route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1):
  POST   /entries         → 201  record an entry
  GET    /entries         → 200  list entries (?start_date, end_date,
                                 entry_type, category, settled)
  GET    /entries/:id     → 200  single entry
  PATCH  /entries/:id     → 200  edit an unsettled entry
  DELETE /entries/:id     → 200  delete; a realization entry reverses its
                                 settlement
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth
from backend.app.models.entry import Entry
from backend.app.schemas.entry_schema import CreateEntrySchema, EntryQuerySchema, PatchEntrySchema
from backend.app.services import entry_service
from backend.app.services.entry_rules import is_realization

entries_bp = Blueprint("entries", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def serialize_entry(e: Entry) -> dict:
    """Converts an Entry ORM object to a plain dict for JSON output."""
    return {
        "id": e.id,
        "entry_type": e.entry_type.value,
        "category": e.category.value,
        "payment_method": e.payment_method.value,
        "amount": str(e.amount),  # Decimal → string, never a JS number
        "remaining_amount": str(e.remaining_amount) if e.remaining_amount is not None else None,
        "settled": e.settled,
        "settled_at": e.settled_at.isoformat() if e.settled_at else None,
        "entry_date": e.entry_date.isoformat(),
        "notes": e.notes,
        "party_id": e.party_id,
        "source_entry_id": e.source_entry_id,
        "is_realization": is_realization(e),
        "created_at": e.created_at.isoformat() if e.created_at else None,
        "updated_at": e.updated_at.isoformat() if e.updated_at else None,
    }


# ── Route handlers ─────────────────────────────────────────────────────────

@entries_bp.route("/entries", methods=["POST"])
@require_auth
def create_entry():
    data = CreateEntrySchema().load(request.get_json(force=True) or {})
    entry = entry_service.create_entry(
        user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": serialize_entry(entry), "warnings": []}), 201


@entries_bp.route("/entries", methods=["GET"])
@require_auth
def list_entries():
    """GET /entries — newest entry_date first. All filters optional."""
    filters = EntryQuerySchema().load(request.args)
    entries = entry_service.list_entries_for_user(
        user_id=g.user_id,
        session=db.session,
        **filters,
    )
    return jsonify({
        "data": [serialize_entry(e) for e in entries],
        "warnings": [],
    }), 200


@entries_bp.route("/entries/<int:entry_id>", methods=["GET"])
@require_auth
def get_entry(entry_id: int):
    entry = entry_service.get_entry(entry_id, g.user_id, db.session)
    return jsonify({"data": serialize_entry(entry), "warnings": []}), 200


@entries_bp.route("/entries/<int:entry_id>", methods=["PATCH"])
@require_auth
def update_entry(entry_id: int):
    """
    PATCH /entries/:id — partial update.

    Settled entries (ENTRY_SETTLED) and realization entries
    (REALIZATION_ENTRY_READONLY) are rejected with 422.
    """
    data = PatchEntrySchema().load(request.get_json(force=True) or {})
    entry = entry_service.update_entry(
        entry_id=entry_id,
        user_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": serialize_entry(entry), "warnings": []}), 200


@entries_bp.route("/entries/<int:entry_id>", methods=["DELETE"])
@require_auth
def delete_entry(entry_id: int):
    """
    DELETE /entries/:id

    Deleting a realization entry reverses its settlement: the response's
    restored_entry_id names the Credit/Advance whose balance came back.
    """
    result = entry_service.delete_entry(entry_id, g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200
