"""
services/entry_service.py — Entry business logic (create, read, edit, delete).

Rules enforced here:
  - Every query is scoped by user_id. Entries of other users are reported
    as ENTRY_NOT_FOUND (404), never FORBIDDEN, so ids do not leak.
  - New entries pass validate_entry() (services/entry_rules.py).
  - Credit/Advance entries start fully outstanding: remaining_amount = amount.
  - Settled entries are history: ENTRY_SETTLED (422) on edit.
  - Realization entries can only go away through settlement reversal:
    REALIZATION_ENTRY_READONLY (422) on edit; delete delegates to
    settlement_service.delete_settlement().
  - A Credit/Advance with settlements cannot be deleted, and its amount
    and category are frozen (ENTRY_HAS_SETTLEMENTS, 409).
  - Notes typed by users may not start with the settlement marker
    (RESERVED_NOTES, 400).

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.entry import Category, Entry, EntryType
from backend.app.models.party import Party
from backend.app.models.settlement import Settlement
from backend.app.services import settlement_service
from backend.app.services.entry_rules import (
    is_realization,
    validate_entry,
    validate_user_notes,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _get_entry_or_404(entry_id: int, user_id: str, session: Session) -> Entry:
    """Returns the user's Entry or raises ENTRY_NOT_FOUND (404)."""
    entry = session.execute(
        select(Entry).where(
            Entry.id == entry_id,
            Entry.user_id == user_id,
        )
    ).scalar_one_or_none()

    if entry is None:
        raise AppError(
            ErrorCode.ENTRY_NOT_FOUND,
            f"Entry {entry_id} does not exist.",
            404,
        )
    return entry


def _require_party(party_id: int | None, user_id: str, session: Session) -> None:
    """Raises PARTY_NOT_FOUND (404) unless party_id is None or one of the user's parties."""
    if party_id is None:
        return
    found = session.execute(
        select(Party.id).where(
            Party.id == party_id,
            Party.user_id == user_id,
        )
    ).scalar_one_or_none()

    if found is None:
        raise AppError(
            ErrorCode.PARTY_NOT_FOUND,
            f"Party {party_id} does not exist.",
            404,
            field="party_id",
        )


def _realizes_settlement(entry: Entry, session: Session) -> bool:
    """True if a Settlement row points at entry as its realization."""
    if entry.source_entry_id is not None:
        return True
    found = session.execute(
        select(Settlement.id).where(Settlement.realization_entry_id == entry.id).limit(1)
    ).first()
    return found is not None


def _has_settlements(entry: Entry, session: Session) -> bool:
    count = session.execute(
        select(Settlement.id).where(Settlement.source_entry_id == entry.id).limit(1)
    ).first()
    return count is not None or (
        entry.remaining_amount is not None and entry.remaining_amount != entry.amount
    )


# ── Data access helpers ────────────────────────────────────────────────────

def list_entries_for_user(
        user_id: str,
        session: Session,
        start_date: date | None = None,
        end_date: date | None = None,
        entry_type: EntryType | None = None,
        category: Category | None = None,
        settled: bool | None = None,
) -> list[Entry]:
    """
    Returns the user's entries, newest business date first.

    Date bounds are inclusive on entry_date. Analytics call this without any
    filter and apply their own windows.
    """
    stmt = select(Entry).where(Entry.user_id == user_id)

    if start_date is not None:
        stmt = stmt.where(Entry.entry_date >= start_date)
    if end_date is not None:
        stmt = stmt.where(Entry.entry_date <= end_date)
    if entry_type is not None:
        stmt = stmt.where(Entry.entry_type == entry_type)
    if category is not None:
        stmt = stmt.where(Entry.category == category)
    if settled is not None:
        stmt = stmt.where(Entry.settled.is_(settled))

    stmt = stmt.order_by(Entry.entry_date.desc(), Entry.id.desc())
    return list(session.execute(stmt).scalars().all())


# ── Public service functions ───────────────────────────────────────────────

def create_entry(
        user_id: str,
        data: dict,
        session: Session,
        today: date | None = None,
) -> Entry:
    """
    Records a new ledger entry.

    Args:
        user_id: Authenticated tenant (from flask.g).
        data:    Dict from CreateEntrySchema: entry_type, category,
                 payment_method, amount, entry_date, optional notes, party_id.

    Raises:
        AppError (400) from validate_entry(); PARTY_NOT_FOUND (404).
    """
    valid = validate_entry(data, today=today)
    validate_user_notes(valid.get("notes"))
    _require_party(valid.get("party_id"), user_id, session)

    entry_type: EntryType = valid["entry_type"]
    deferred = entry_type in (EntryType.CREDIT, EntryType.ADVANCE)

    entry = Entry(
        user_id=user_id,
        entry_type=entry_type,
        category=valid["category"],
        payment_method=valid["payment_method"],
        amount=valid["amount"],
        remaining_amount=valid["amount"] if deferred else None,
        settled=False,
        entry_date=valid["entry_date"],
        notes=valid.get("notes"),
        party_id=valid.get("party_id"),
    )
    session.add(entry)
    session.flush()

    logger.debug("Created %s entry %s for user %s", entry_type.value, entry.id, user_id)
    return entry


def get_entry(entry_id: int, user_id: str, session: Session) -> Entry:
    return _get_entry_or_404(entry_id, user_id, session)


def update_entry(
        entry_id: int,
        user_id: str,
        data: dict,
        session: Session,
        today: date | None = None,
) -> Entry:
    """
    Partially updates an unsettled entry.

    Editable fields: amount, category, payment_method, entry_date, notes,
    party_id. entry_type is fixed at creation.

    Once a Credit/Advance has settlements its amount and category are
    frozen: the realizations already carry them. Without settlements a new
    amount resets remaining_amount to the full new amount.

    updated_at is set to NOW() on every successful PATCH.
    """
    entry = _get_entry_or_404(entry_id, user_id, session)

    if is_realization(entry):
        raise AppError(
            ErrorCode.REALIZATION_ENTRY_READONLY,
            f"Entry {entry_id} was created by a settlement. Reverse the settlement instead.",
            422,
        )

    if entry.settled:
        raise AppError(
            ErrorCode.ENTRY_SETTLED,
            f"Entry {entry_id} is fully settled and can no longer be edited.",
            422,
        )

    if "notes" in data:
        validate_user_notes(data["notes"])

    merged = {
        "entry_type": entry.entry_type,
        "category": data.get("category", entry.category),
        "payment_method": data.get("payment_method", entry.payment_method),
        "amount": data.get("amount", entry.amount),
        "entry_date": data.get("entry_date", entry.entry_date),
    }
    valid = validate_entry(merged, today=today)

    category_changed = valid["category"] != entry.category
    amount_changed = valid["amount"] != entry.amount

    if entry.is_deferred and (category_changed or amount_changed) and _has_settlements(entry, session):
        locked = "amount" if amount_changed else "category"
        raise AppError(
            ErrorCode.ENTRY_HAS_SETTLEMENTS,
            f"Entry {entry_id} has settlements; its {locked} cannot change.",
            409,
            field=locked,
        )

    if "party_id" in data:
        _require_party(data["party_id"], user_id, session)
        entry.party_id = data["party_id"]

    if amount_changed and entry.is_deferred:
        # No settlements yet, so the whole new amount is outstanding.
        entry.remaining_amount = valid["amount"]

    entry.amount = valid["amount"]
    entry.category = valid["category"]
    entry.payment_method = valid["payment_method"]
    entry.entry_date = valid["entry_date"]

    if "notes" in data:
        entry.notes = data["notes"]

    entry.updated_at = datetime.now(timezone.utc)
    session.flush()
    return entry


def delete_entry(entry_id: int, user_id: str, session: Session) -> dict:
    """
    Deletes an entry.

    - Realization entry → the settlement is reversed (source balance restored).
      Marker-shaped notes with no Settlement row behind them do not count.
    - Credit/Advance with settlements → ENTRY_HAS_SETTLEMENTS (409).
    - Anything else → plain delete after the ownership check.

    Returns:
        {"deleted": True, "entry_id": ..., "restored_entry_id": int | None}
    """
    entry = _get_entry_or_404(entry_id, user_id, session)

    if is_realization(entry) and _realizes_settlement(entry, session):
        source = settlement_service.delete_settlement(entry_id, user_id, session)
        return {"deleted": True, "entry_id": entry_id, "restored_entry_id": source.id}

    if entry.is_deferred and _has_settlements(entry, session):
        raise AppError(
            ErrorCode.ENTRY_HAS_SETTLEMENTS,
            f"Entry {entry_id} has settlements. Reverse them before deleting it.",
            409,
        )

    session.delete(entry)
    session.flush()

    logger.debug("Deleted entry %s for user %s", entry_id, user_id)
    return {"deleted": True, "entry_id": entry_id, "restored_entry_id": None}
