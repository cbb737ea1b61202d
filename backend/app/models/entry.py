"""
models/entry.py — Entry table definition (one ledger line).

No business logic. No imports from services or routes.

Key design points:
  - `amount` and `remaining_amount` use Numeric(12, 2) — never Float.
  - `remaining_amount` is only meaningful for Credit/Advance entries.
    NULL means "fully outstanding" (equal to amount); 0 means settled.
  - `source_entry_id` is set on realization entries (the CashIn/CashOut row
    created by a settlement) and points at the settled Credit/Advance.
    The notes marker "Settlement of <type> <category> (ID: <id>)" is still
    written for readability and for rows created before the column existed.
  - The payment-method pairing rule is enforced by services/entry_rules.py and
    repeated here as a CHECK constraint.
  - EntryType, Category and PaymentMethod are Python enums so they can be
    imported and used throughout the service layer without repeating string
    literals.
"""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    false,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Fixed, not user-extensible. Do not duplicate these as plain string
# constants anywhere else in the codebase.

class EntryType(str, enum.Enum):
    CASH_IN  = "CashIn"
    CASH_OUT = "CashOut"
    CREDIT   = "Credit"
    ADVANCE  = "Advance"


class Category(str, enum.Enum):
    SALES  = "Sales"
    COGS   = "COGS"
    OPEX   = "Opex"
    ASSETS = "Assets"


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    BANK = "Bank"
    # No money has moved yet. Only valid for Credit entries.
    NONE = "None"


# Entry types that carry an outstanding balance and can be settled.
DEFERRED_ENTRY_TYPES = (EntryType.CREDIT, EntryType.ADVANCE)

# Categories that represent money going out of the business.
EXPENSE_CATEGORIES = (Category.COGS, Category.OPEX, Category.ASSETS)


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'CashIn'), not names ('CASH_IN')."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Entry(db.Model):
    __tablename__ = "entries"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_entries_amount_positive"),

        CheckConstraint(
            "remaining_amount IS NULL OR "
            "(remaining_amount >= 0 AND remaining_amount <= amount)",
            name="ck_entries_remaining_within_amount",
        ),

        # Credit -> no money moved yet; everything else -> Cash or Bank.
        CheckConstraint(
            "(entry_type = 'Credit' AND payment_method = 'None') OR "
            "(entry_type <> 'Credit' AND payment_method <> 'None')",
            name="ck_entries_payment_method_pairing",
        ),

        # Analytics always load a whole user's ledger ordered by business date.
        Index("idx_entries_user_date", "user_id", "entry_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Tenant id issued by the external auth provider (token `sub` claim).
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    entry_type: Mapped[EntryType] = mapped_column(
        Enum(
            EntryType,
            name="entry_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    category: Mapped[Category] = mapped_column(
        Enum(
            Category,
            name="entry_category_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(
            PaymentMethod,
            name="payment_method_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    remaining_amount: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2),
        nullable=True,
    )

    settled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=false(),
    )

    settled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Business date of the transaction — not the row-creation timestamp.
    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # ON DELETE SET NULL — removing a party keeps the ledger intact.
    party_id: Mapped[int | None] = mapped_column(
        ForeignKey("parties.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # ON DELETE RESTRICT — a settled source cannot vanish under its realizations.
    source_entry_id: Mapped[int | None] = mapped_column(
        ForeignKey("entries.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Set on every successful PATCH and on every balance change.
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    party: Mapped["Party | None"] = relationship(  # noqa: F821
        "Party",
        back_populates="entries",
    )

    # ── Convenience properties ─────────────────────────────────────────────
    # Read-only; they only inspect column values.

    @property
    def is_deferred(self) -> bool:
        """True for Credit/Advance entries (the ones with an outstanding balance)."""
        return self.entry_type in DEFERRED_ENTRY_TYPES

    @property
    def outstanding_amount(self) -> Decimal:
        """Unsettled balance; NULL remaining means nothing has been settled yet."""
        if not self.is_deferred:
            return Decimal("0.00")
        return self.remaining_amount if self.remaining_amount is not None else self.amount

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Entry id={self.id} "
            f"type={self.entry_type} "
            f"category={self.category} "
            f"amount={self.amount} "
            f"remaining={self.remaining_amount} "
            f"settled={self.settled}>"
        )
