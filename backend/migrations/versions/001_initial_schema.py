"""Initial schema — parties, entries, settlements, enums and indexes.

Revision: 001_initial_schema
Created:  2026-10-16

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  1. PostgreSQL enum types (must exist before tables that reference them)
  2. Tables in FK dependency order (parties → entries → settlements)
  3. Indexes

ON DELETE policies:
  entries.party_id               → SET NULL  (removing a party keeps the ledger)
  entries.source_entry_id        → RESTRICT  (a settled source cannot vanish)
  settlements.source_entry_id    → RESTRICT
  settlements.realization_entry_id → RESTRICT (service deletes the settlement first)
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


_ENTRY_TYPE = postgresql.ENUM(
    "CashIn", "CashOut", "Credit", "Advance",
    name="entry_type_enum",
    create_type=False,
)
_CATEGORY = postgresql.ENUM(
    "Sales", "COGS", "Opex", "Assets",
    name="entry_category_enum",
    create_type=False,
)
_PAYMENT_METHOD = postgresql.ENUM(
    "Cash", "Bank", "None",
    name="payment_method_enum",
    create_type=False,
)
_PARTY_TYPE = postgresql.ENUM(
    "Customer", "Vendor", "Both",
    name="party_type_enum",
    create_type=False,
)


def upgrade() -> None:
    """
    Apply the full initial schema.

    Enum types are created via op.execute() so the exact SQL is explicit and
    reviewable; the column definitions below reference them with
    create_type=False.
    """

    # ── Step 1: PostgreSQL enum types ─────────────────────────────────────

    op.execute("CREATE TYPE entry_type_enum AS ENUM ('CashIn', 'CashOut', 'Credit', 'Advance')")
    op.execute("CREATE TYPE entry_category_enum AS ENUM ('Sales', 'COGS', 'Opex', 'Assets')")
    op.execute("CREATE TYPE payment_method_enum AS ENUM ('Cash', 'Bank', 'None')")
    op.execute("CREATE TYPE party_type_enum AS ENUM ('Customer', 'Vendor', 'Both')")

    # ── Step 2: parties ────────────────────────────────────────────────────

    op.create_table(
        "parties",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("mobile", sa.String(20), nullable=True),
        sa.Column("party_type", _PARTY_TYPE, nullable=False),
        sa.Column(
            "opening_balance",
            sa.Numeric(12, 2),
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_parties"),
        sa.UniqueConstraint("user_id", "name", name="uq_parties_user_name"),
        sa.CheckConstraint(
            "LENGTH(TRIM(name)) > 0",
            name="ck_parties_name_nonempty",
        ),
    )

    # ── Step 3: entries ────────────────────────────────────────────────────
    # remaining_amount NULL means "nothing settled yet" (equal to amount).

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("entry_type", _ENTRY_TYPE, nullable=False),
        sa.Column("category", _CATEGORY, nullable=False),
        sa.Column("payment_method", _PAYMENT_METHOD, nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining_amount", sa.Numeric(12, 2), nullable=True),
        sa.Column(
            "settled",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("FALSE"),
        ),
        sa.Column("settled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column(
            "party_id",
            sa.Integer(),
            sa.ForeignKey("parties.id", ondelete="SET NULL", name="fk_entries_party"),
            nullable=True,
        ),
        sa.Column(
            "source_entry_id",
            sa.Integer(),
            sa.ForeignKey("entries.id", ondelete="RESTRICT", name="fk_entries_source"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_entries"),
        sa.CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
        sa.CheckConstraint(
            "remaining_amount IS NULL OR "
            "(remaining_amount >= 0 AND remaining_amount <= amount)",
            name="ck_entries_remaining_within_amount",
        ),
        sa.CheckConstraint(
            "(entry_type = 'Credit' AND payment_method = 'None') OR "
            "(entry_type <> 'Credit' AND payment_method <> 'None')",
            name="ck_entries_payment_method_pairing",
        ),
    )

    # ── Step 4: settlements ────────────────────────────────────────────────

    op.create_table(
        "settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "source_entry_id",
            sa.Integer(),
            sa.ForeignKey("entries.id", ondelete="RESTRICT", name="fk_settlements_source"),
            nullable=False,
        ),
        sa.Column(
            "realization_entry_id",
            sa.Integer(),
            sa.ForeignKey("entries.id", ondelete="RESTRICT", name="fk_settlements_realization"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("remaining_after", sa.Numeric(12, 2), nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_settlements"),
        sa.UniqueConstraint("realization_entry_id", name="uq_settlements_realization"),
        sa.CheckConstraint("amount > 0", name="ck_settlements_amount_positive"),
        sa.CheckConstraint("remaining_after >= 0", name="ck_settlements_remaining_non_negative"),
    )

    # ── Step 5: indexes ────────────────────────────────────────────────────
    # Analytics load one user's whole ledger ordered by business date.

    op.create_index("idx_entries_user_date", "entries", ["user_id", "entry_date"])
    op.create_index("ix_entries_user_id", "entries", ["user_id"])
    op.create_index("ix_entries_party_id", "entries", ["party_id"])
    op.create_index("ix_entries_source_entry_id", "entries", ["source_entry_id"])
    op.create_index("ix_parties_user_id", "parties", ["user_id"])
    op.create_index("ix_settlements_user_id", "settlements", ["user_id"])
    op.create_index("ix_settlements_source_entry_id", "settlements", ["source_entry_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. In production, prefer a corrective
    migration over a rollback.
    """

    op.drop_index("ix_settlements_source_entry_id", table_name="settlements")
    op.drop_index("ix_settlements_user_id",         table_name="settlements")
    op.drop_index("ix_parties_user_id",             table_name="parties")
    op.drop_index("ix_entries_source_entry_id",     table_name="entries")
    op.drop_index("ix_entries_party_id",            table_name="entries")
    op.drop_index("ix_entries_user_id",             table_name="entries")
    op.drop_index("idx_entries_user_date",          table_name="entries")

    op.drop_table("settlements")
    op.drop_table("entries")
    op.drop_table("parties")

    op.execute("DROP TYPE IF EXISTS party_type_enum")
    op.execute("DROP TYPE IF EXISTS payment_method_enum")
    op.execute("DROP TYPE IF EXISTS entry_category_enum")
    op.execute("DROP TYPE IF EXISTS entry_type_enum")
