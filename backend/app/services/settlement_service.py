"""
services/settlement_service.py — Settlement engine and settlement reversal.

settle_entry() realizes part or all of an outstanding Credit/Advance entry:
  - the source entry's remaining_amount is decremented (settled at zero)
  - a realization entry (CashIn for Sales, CashOut otherwise) is inserted
  - a Settlement row links the two
All three writes happen in the caller's unit of work; this module only
flushes. The route commits; any AppError rolls the whole unit back.

Precondition order for settle_entry() (first failure wins):
  1. ENTRY_NOT_FOUND     (404) — missing, or owned by another user
  2. INVALID_ENTRY_TYPE  (422) — only Credit and Advance can be settled
  3. ALREADY_SETTLED     (422)
  4. INVALID_AMOUNT      (422) — settlement amount must be > 0
  5. EXCEEDS_OUTSTANDING (422) — amount > remaining_amount ?? amount

Advance settlement:
  The cash for an Advance moved when the Advance was recorded. Settling it
  only recognises the revenue/expense. The realization row therefore reuses
  the Advance's own payment method and analytics never count it as cash.

Concurrency:
  The source row is read with SELECT ... FOR UPDATE. A second transaction
  settling the same entry blocks until the first commits, then re-reads
  remaining_amount and re-validates (first committer wins).

Settlement is not idempotent: a retried call fails with EXCEEDS_OUTSTANDING
or ALREADY_SETTLED once the first call has committed.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.entry import Category, DEFERRED_ENTRY_TYPES, Entry, EntryType, PaymentMethod
from backend.app.models.settlement import Settlement
from backend.app.services.entry_rules import (
    build_settlement_marker,
    validate_entry,
    validate_entry_date,
)

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _lock_entry(entry_id: int, user_id: str, session: Session) -> Entry | None:
    """Loads an entry scoped to user_id with a row lock for the rest of the transaction."""
    return session.execute(
        select(Entry)
        .where(
            Entry.id == entry_id,
            Entry.user_id == user_id,
        )
        .with_for_update()
    ).scalar_one_or_none()


def _lock_entry_or_404(entry_id: int, user_id: str, session: Session) -> Entry:
    entry = _lock_entry(entry_id, user_id, session)
    if entry is None:
        raise AppError(
            ErrorCode.ENTRY_NOT_FOUND,
            f"Entry {entry_id} does not exist.",
            404,
        )
    return entry


def _realization_type(category: Category) -> EntryType:
    """Sales realize as money coming in; every other category as money going out."""
    return EntryType.CASH_IN if category == Category.SALES else EntryType.CASH_OUT


def _realization_payment_method(source: Entry, requested: PaymentMethod | None) -> PaymentMethod:
    if source.entry_type == EntryType.ADVANCE:
        # No new cash movement: reuse the bucket the advance was paid through.
        return source.payment_method
    if requested in (PaymentMethod.CASH, PaymentMethod.BANK):
        return requested
    return PaymentMethod.CASH


def build_realization_entry(
        source: Entry,
        amount: Decimal,
        settlement_date: date,
        payment_method: PaymentMethod | None = None,
        today: date | None = None,
) -> Entry:
    """
    Builds (does not add) the realization entry for a settlement of `source`.

    The candidate goes through validate_entry() so the engine can never write
    a row the entry validator would reject.
    """
    valid = validate_entry(
        {
            "user_id": source.user_id,
            "entry_type": _realization_type(source.category),
            "category": source.category,
            "payment_method": _realization_payment_method(source, payment_method),
            "amount": amount,
            "entry_date": settlement_date,
            "notes": build_settlement_marker(source.entry_type, source.category, source.id),
            "party_id": source.party_id,
            "source_entry_id": source.id,
        },
        today=today,
    )
    # Cash rows have no outstanding-balance semantics.
    return Entry(**valid, remaining_amount=None, settled=False)


# ── Public service functions ───────────────────────────────────────────────

def settle_entry(
        entry_id: int,
        user_id: str,
        amount: Decimal,
        settlement_date: date,
        session: Session,
        payment_method: PaymentMethod | None = None,
        today: date | None = None,
) -> Settlement:
    """
    Settles `amount` of an outstanding Credit/Advance entry.

    Args:
        entry_id:        The Credit/Advance entry to settle.
        user_id:         Authenticated tenant (from flask.g).
        amount:          Settlement amount (Decimal).
        settlement_date: Business date of the realization entry.
        payment_method:  Cash or Bank for Credit settlements (default Cash).
                         Ignored for Advance settlements.

    Returns:
        The new Settlement row (source id, realization id, amount,
        remaining_after).
    """
    source = _lock_entry_or_404(entry_id, user_id, session)

    if source.entry_type not in DEFERRED_ENTRY_TYPES:
        raise AppError(
            ErrorCode.INVALID_ENTRY_TYPE,
            f"Only Credit and Advance entries can be settled; entry {entry_id} "
            f"is {source.entry_type.value}.",
            422,
        )

    if source.settled:
        raise AppError(
            ErrorCode.ALREADY_SETTLED,
            f"Entry {entry_id} is already fully settled.",
            422,
        )

    if amount <= Decimal("0"):
        raise AppError(
            ErrorCode.INVALID_AMOUNT,
            "Settlement amount must be greater than zero.",
            422,
            field="amount",
        )

    outstanding = source.outstanding_amount
    if amount > outstanding:
        raise AppError(
            ErrorCode.EXCEEDS_OUTSTANDING,
            f"Settlement of {amount} exceeds the outstanding balance of {outstanding}.",
            422,
            field="amount",
        )

    validate_entry_date(settlement_date, today)

    realization = build_realization_entry(source, amount, settlement_date, payment_method, today)
    session.add(realization)

    now = datetime.now(timezone.utc)
    new_remaining = outstanding - amount
    source.remaining_amount = new_remaining
    source.updated_at = now
    if new_remaining == Decimal("0"):
        source.settled = True
        source.settled_at = now

    session.flush()  # populate realization.id before linking it

    settlement = Settlement(
        user_id=user_id,
        source_entry_id=source.id,
        realization_entry_id=realization.id,
        amount=amount,
        remaining_after=new_remaining,
        settlement_date=settlement_date,
    )
    session.add(settlement)
    session.flush()

    logger.info(
        "Settled %s of %s entry %s for user %s (remaining %s, realization %s)",
        amount, source.entry_type.value, source.id, user_id, new_remaining, realization.id,
    )
    return settlement


def delete_settlement(
        realization_entry_id: int,
        user_id: str,
        session: Session,
) -> Entry:
    """
    Reverses a settlement by deleting its realization entry.

    The source entry gets the realized amount back on remaining_amount and is
    marked unsettled again. The realization row and its Settlement row are
    deleted in the same unit of work.

    Raises:
        AppError(ENTRY_NOT_FOUND, 404)     — realization missing / other user.
                                             Also the result of a second call.
        AppError(NOT_A_SETTLEMENT, 422)    — an ordinary entry was given: no
                                             source_entry_id and no Settlement row.
        AppError(ORPHANED_SETTLEMENT, 409) — the source cannot be resolved or
                                             restoring would exceed its amount.
                                             Nothing is deleted.

    Returns:
        The restored source entry.
    """
    realization = _lock_entry_or_404(realization_entry_id, user_id, session)

    settlement = session.execute(
        select(Settlement).where(
            Settlement.realization_entry_id == realization.id,
            Settlement.user_id == user_id,
        )
    ).scalar_one_or_none()

    # Notes alone never make a row a realization: an unlinked row needs its Settlement.
    if realization.source_entry_id is None and settlement is None:
        raise AppError(
            ErrorCode.NOT_A_SETTLEMENT,
            f"Entry {realization_entry_id} was not created by a settlement.",
            422,
        )

    source_id = realization.source_entry_id
    if source_id is None:
        source_id = settlement.source_entry_id
    source = _lock_entry(source_id, user_id, session)
    if source is None or source.entry_type not in DEFERRED_ENTRY_TYPES:
        logger.error(
            "Orphaned settlement entry %s for user %s (notes=%r)",
            realization.id, user_id, realization.notes,
        )
        raise AppError(
            ErrorCode.ORPHANED_SETTLEMENT,
            f"The entry settled by entry {realization_entry_id} cannot be found. "
            f"The settlement was not reversed.",
            409,
        )

    restored = source.outstanding_amount + realization.amount
    if restored > source.amount:
        logger.error(
            "Reversing settlement entry %s would restore %s on entry %s (amount %s)",
            realization.id, restored, source.id, source.amount,
        )
        raise AppError(
            ErrorCode.ORPHANED_SETTLEMENT,
            f"Reversing entry {realization_entry_id} would restore more than the "
            f"original amount of entry {source.id}. The settlement was not reversed.",
            409,
        )

    if settlement is not None:
        session.delete(settlement)
        session.flush()

    session.delete(realization)

    source.remaining_amount = restored
    source.settled = False
    source.settled_at = None
    source.updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info(
        "Reversed settlement entry %s of %s on entry %s for user %s (remaining %s)",
        realization_entry_id, realization.amount, source.id, user_id, restored,
    )
    return source


def reverse_settlement(
        settlement_id: int,
        user_id: str,
        session: Session,
) -> Entry:
    """Reverses a settlement identified by its Settlement row instead of its entry."""
    settlement = session.execute(
        select(Settlement).where(
            Settlement.id == settlement_id,
            Settlement.user_id == user_id,
        )
    ).scalar_one_or_none()

    if settlement is None:
        raise AppError(
            ErrorCode.SETTLEMENT_NOT_FOUND,
            f"Settlement {settlement_id} does not exist.",
            404,
        )

    return delete_settlement(settlement.realization_entry_id, user_id, session)


def list_settlements(
        user_id: str,
        session: Session,
        source_entry_id: int | None = None,
) -> list[Settlement]:
    """
    Returns the user's settlement history, newest settlement date first.

    When source_entry_id is given, only settlements of that entry are returned
    and the entry must belong to the user (ENTRY_NOT_FOUND otherwise).
    """
    stmt = select(Settlement).where(Settlement.user_id == user_id)

    if source_entry_id is not None:
        owned = session.execute(
            select(Entry.id).where(
                Entry.id == source_entry_id,
                Entry.user_id == user_id,
            )
        ).scalar_one_or_none()
        if owned is None:
            raise AppError(
                ErrorCode.ENTRY_NOT_FOUND,
                f"Entry {source_entry_id} does not exist.",
                404,
            )
        stmt = stmt.where(Settlement.source_entry_id == source_entry_id)

    stmt = stmt.order_by(Settlement.settlement_date.desc(), Settlement.id.desc())
    return list(session.execute(stmt).scalars().all())
