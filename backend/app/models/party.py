"""
models/party.py — Party (customer / vendor) table definition.

No business logic. No imports from services or routes.

Pending collections, bills and advances are aggregated per party.
Entries reference a party optionally (ON DELETE SET NULL on the entry side).
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


class PartyType(str, enum.Enum):
    CUSTOMER = "Customer"
    VENDOR   = "Vendor"
    BOTH     = "Both"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class Party(db.Model):
    __tablename__ = "parties"

    __table_args__ = (
        # One party name per user.
        UniqueConstraint("user_id", "name", name="uq_parties_user_name"),
        CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_parties_name_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
    )

    mobile: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    party_type: Mapped[PartyType] = mapped_column(
        Enum(
            PartyType,
            name="party_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=PartyType.CUSTOMER,
    )

    # Balance carried over from before the party was recorded in the app.
    opening_balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    entries: Mapped[list["Entry"]] = relationship(  # noqa: F821
        "Entry",
        back_populates="party",
        passive_deletes=True,
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Party id={self.id} name={self.name!r} type={self.party_type}>"
