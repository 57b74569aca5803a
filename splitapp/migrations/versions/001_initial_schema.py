"""Initial schema — all tables, constraints, and indexes.

Revision: 001_initial_schema
Created:  2026-10-18

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a schema change is required, create a NEW migration file.

Creation order:
  Tables in FK dependency order (profiles → groups → memberships → expenses
  → expense_payers, expense_splits → payments), then indexes.

Enumerations (role, currency, split_type) are stored as VARCHAR with a CHECK
constraint rather than native PostgreSQL enum types, matching the models'
Enum(native_enum=False). Adding a variant is a CHECK change, not an
ALTER TYPE.

ON DELETE policies:
  memberships.group_id        → CASCADE   (memberships go with their group)
  memberships.user_id         → RESTRICT
  expenses.group_id           → RESTRICT  (a group with expenses cannot be deleted)
  expense_payers.expense_id   → CASCADE   (children owned by their expense)
  expense_splits.expense_id   → CASCADE
  payments.group_id           → CASCADE   (payments go with their group)
  every *.user_id / paid_by / created_by → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "001_initial_schema"
down_revision: str | None = None      # first migration — no parent
branch_labels: tuple | None = None
depends_on: tuple | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── Step 1: profiles ───────────────────────────────────────────────────
    # id is assigned by the identity provider (no sequence).

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(100), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_profiles"),
        sa.UniqueConstraint("email", name="uq_profiles_email"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_profiles_email_format"),
    )

    # ── Step 2: groups ─────────────────────────────────────────────────────

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("icon", sa.String(50), nullable=False, server_default="Users"),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_groups_created_by"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
    )

    # ── Step 3: memberships ────────────────────────────────────────────────

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("role", sa.String(6), nullable=False, server_default="member"),
        sa.Column(
            "joined_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_memberships_role"),
    )

    # ── Step 4: expenses ───────────────────────────────────────────────────
    # No amount column: the total is the sum of expense_payers.amount.

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=False,
        ),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_expenses_created_by"),
            nullable=False,
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("LENGTH(TRIM(title)) > 0", name="ck_expenses_title_nonempty"),
        sa.CheckConstraint("currency IN ('INR')", name="ck_expenses_currency"),
    )

    # ── Step 5: expense_payers ─────────────────────────────────────────────

    op.create_table(
        "expense_payers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_expense_payers_expense"),
            nullable=False,
        ),
        sa.Column(
            "paid_by",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_expense_payers_paid_by"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_expense_payers"),
        sa.CheckConstraint("amount >= 0", name="ck_expense_payers_amount_nonnegative"),
    )

    # ── Step 6: expense_splits ─────────────────────────────────────────────
    # percentage / shares are reserved for split types not yet accepted.

    op.create_table(
        "expense_splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_expense_splits_expense"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_expense_splits_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("split_type", sa.String(5), nullable=False, server_default="equal"),
        sa.Column("percentage", sa.Numeric(5, 2), nullable=True),
        sa.Column("shares", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expense_splits"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_expense_splits_expense_user"),
        sa.CheckConstraint("amount >= 0", name="ck_expense_splits_amount_nonnegative"),
        sa.CheckConstraint(
            "split_type IN ('equal', 'exact')",
            name="ck_expense_splits_split_type",
        ),
    )

    # ── Step 7: payments ───────────────────────────────────────────────────
    # CHECK(from_user_id <> to_user_id) — also enforced in payment_service.

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="CASCADE", name="fk_payments_group"),
            nullable=False,
        ),
        sa.Column(
            "from_user_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_payments_from_user"),
            nullable=False,
        ),
        sa.Column(
            "to_user_id",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_payments_to_user"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("profiles.id", ondelete="RESTRICT", name="fk_payments_created_by"),
            nullable=False,
        ),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.CheckConstraint("from_user_id <> to_user_id", name="ck_payments_no_self_payment"),
    )

    # ── Step 8: Indexes ────────────────────────────────────────────────────
    # Names match the ones SQLAlchemy derives from index=True on the models.

    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index("ix_expense_payers_expense_id", "expense_payers", ["expense_id"])
    op.create_index("ix_expense_payers_paid_by", "expense_payers", ["paid_by"])
    op.create_index("ix_expense_splits_expense_id", "expense_splits", ["expense_id"])
    op.create_index("ix_expense_splits_user_id", "expense_splits", ["user_id"])
    op.create_index("ix_payments_group_id", "payments", ["group_id"])


def downgrade() -> None:
    """
    Drop all objects created in upgrade(), in reverse dependency order.

    Provided for local development reset. In production prefer a corrective
    migration over a downgrade.
    """
    op.drop_index("ix_payments_group_id",          table_name="payments")
    op.drop_index("ix_expense_splits_user_id",     table_name="expense_splits")
    op.drop_index("ix_expense_splits_expense_id",  table_name="expense_splits")
    op.drop_index("ix_expense_payers_paid_by",     table_name="expense_payers")
    op.drop_index("ix_expense_payers_expense_id",  table_name="expense_payers")
    op.drop_index("ix_expenses_group_id",          table_name="expenses")
    op.drop_index("ix_memberships_group_id",       table_name="memberships")
    op.drop_index("ix_memberships_user_id",        table_name="memberships")

    op.drop_table("payments")
    op.drop_table("expense_splits")
    op.drop_table("expense_payers")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("profiles")
