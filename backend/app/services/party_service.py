"""
services/party_service.py — Customer / vendor business logic.

Rules enforced here:
  - Party names are unique per user (DUPLICATE_PARTY_NAME, 409), compared
    after trimming and case-insensitively.
  - Parties of other users are PARTY_NOT_FOUND (404).

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.party import Party, PartyType


# ── Private helpers ────────────────────────────────────────────────────────

def _get_party_or_404(party_id: int, user_id: str, session: Session) -> Party:
    """Returns the user's Party or raises PARTY_NOT_FOUND (404)."""
    party = session.execute(
        select(Party).where(
            Party.id == party_id,
            Party.user_id == user_id,
        )
    ).scalar_one_or_none()

    if party is None:
        raise AppError(
            ErrorCode.PARTY_NOT_FOUND,
            f"Party {party_id} does not exist.",
            404,
        )
    return party


def _require_unique_name(
        name: str,
        user_id: str,
        session: Session,
        exclude_id: int | None = None,
) -> None:
    stmt = select(Party.id).where(
        Party.user_id == user_id,
        func.lower(Party.name) == name.lower(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Party.id != exclude_id)

    if session.execute(stmt).first() is not None:
        raise AppError(
            ErrorCode.DUPLICATE_PARTY_NAME,
            f"A party named '{name}' already exists.",
            409,
            field="name",
        )


# ── Public service functions ───────────────────────────────────────────────

def create_party(user_id: str, data: dict, session: Session) -> Party:
    """
    Creates a party for the user.

    Args:
        data: Dict from CreatePartySchema: name, optional mobile, party_type,
              opening_balance.
    """
    name = data["name"].strip()
    _require_unique_name(name, user_id, session)

    party = Party(
        user_id=user_id,
        name=name,
        mobile=data.get("mobile"),
        party_type=data.get("party_type", PartyType.CUSTOMER),
        opening_balance=data.get("opening_balance") or Decimal("0.00"),
    )
    session.add(party)
    session.flush()
    return party


def list_parties(
        user_id: str,
        session: Session,
        party_type: PartyType | None = None,
) -> list[Party]:
    """Returns the user's parties ordered by name. Both-type parties match any filter."""
    stmt = select(Party).where(Party.user_id == user_id)
    if party_type is not None:
        stmt = stmt.where(Party.party_type.in_((party_type, PartyType.BOTH)))
    stmt = stmt.order_by(Party.name.asc())
    return list(session.execute(stmt).scalars().all())


def get_party(party_id: int, user_id: str, session: Session) -> Party:
    return _get_party_or_404(party_id, user_id, session)


def update_party(party_id: int, user_id: str, data: dict, session: Session) -> Party:
    """Partially updates name, mobile, party_type or opening_balance."""
    party = _get_party_or_404(party_id, user_id, session)

    if "name" in data:
        name = data["name"].strip()
        _require_unique_name(name, user_id, session, exclude_id=party.id)
        party.name = name

    for field in ("mobile", "party_type", "opening_balance"):
        if field in data:
            setattr(party, field, data[field])

    party.updated_at = datetime.now(timezone.utc)
    session.flush()
    return party
