"""
models/settlement.py — Settlement table definition.

One row per settle() call. Links the settled Credit/Advance entry to the
realization entry created for it, so reversal and history never need to
parse entry notes.

Key design points:
  - `amount` and `remaining_after` use Numeric(12, 2) — never Float.
  - Rows are deleted together with their realization entry when a
    settlement is reversed; there is no soft-delete.
  - Both entry FKs are ON DELETE RESTRICT: the service deletes the
    settlement row first, then the realization entry.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class Settlement(db.Model):
    __tablename__ = "settlements"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        CheckConstraint("remaining_after >= 0", name="ck_settlements_remaining_non_negative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    source_entry_id: Mapped[int] = mapped_column(
        ForeignKey("entries.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    realization_entry_id: Mapped[int] = mapped_column(
        ForeignKey("entries.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # Outstanding balance of the source entry right after this settlement.
    remaining_after: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    settlement_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # ── Relationships ──────────────────────────────────────────────────────

    source_entry: Mapped["Entry"] = relationship(  # noqa: F821
        "Entry",
        foreign_keys=[source_entry_id],
    )

    realization_entry: Mapped["Entry"] = relationship(  # noqa: F821
        "Entry",
        foreign_keys=[realization_entry_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Settlement id={self.id} "
            f"source={self.source_entry_id} "
            f"realization={self.realization_entry_id} "
            f"amount={self.amount} "
            f"remaining_after={self.remaining_after}>"
        )
