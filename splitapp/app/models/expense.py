"""
models/expense.py — Expense table definition plus the closed enums shared by
expenses and their splits.

No business logic. No imports from services or routes.

Key design points:
  - An expense has no amount column. Its total is the sum of its payer rows
    (models/payer.py); its obligations are its split rows (models/split.py).
  - Payers and splits are owned by their expense: ON DELETE CASCADE plus an
    ORM delete-orphan cascade, so deleting an expense never leaves orphans.
  - Hard delete only. There is no soft-delete column.
  - Currency and SplitType are closed enumerations. Their display metadata
    lives in CURRENCY_DISPLAY / SPLIT_TYPE_DISPLAY; adding a variant means
    adding one enum member and one table entry.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitapp.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────
# Defined here so they can be imported by schemas and services without
# pulling in the full model. Do not duplicate these as plain string constants.

class Currency(str, enum.Enum):
    INR = "INR"


class SplitType(str, enum.Enum):
    EQUAL = "equal"
    EXACT = "exact"


# Reserved split types: accepted by the data model (percentage / shares
# columns exist) but rejected by the validator until implemented.
RESERVED_SPLIT_TYPES: tuple[str, ...] = ("percentage", "shares")


CURRENCY_DISPLAY: dict[Currency, dict[str, str]] = {
    Currency.INR: {"symbol": "₹", "name": "Indian Rupee"},
}

SPLIT_TYPE_DISPLAY: dict[SplitType, dict[str, str]] = {
    SplitType.EQUAL: {
        "label": "Split Equally",
        "description": "The expense will be divided equally among selected members",
    },
    SplitType.EXACT: {
        "label": "Exact Amounts",
        "description": "Manually specify the exact amount each member owes",
    },
}


def enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values (e.g., 'equal'), not names ('EQUAL')."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        # Validator requires >= 3 chars after trim; the DB keeps the weaker guard.
        CheckConstraint(
            "LENGTH(TRIM(title)) > 0",
            name="ck_expenses_title_nonempty",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # ON DELETE RESTRICT — a group with expenses cannot be deleted.
    group_id: Mapped[int] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    currency: Mapped[Currency] = mapped_column(
        Enum(
            Currency,
            name="currency_enum",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=Currency.INR,
        server_default=Currency.INR.value,
    )

    # Immutable after creation; update never rewrites it.
    created_by: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
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

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    creator: Mapped["Profile"] = relationship(  # noqa: F821
        "Profile",
        foreign_keys=[created_by],
    )

    payers: Mapped[list["ExpensePayer"]] = relationship(  # noqa: F821
        "ExpensePayer",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpensePayer.id",
    )

    splits: Mapped[list["ExpenseSplit"]] = relationship(  # noqa: F821
        "ExpenseSplit",
        back_populates="expense",
        cascade="all, delete-orphan",
        order_by="ExpenseSplit.id",
    )

    # ── Convenience properties ─────────────────────────────────────────────
    # Read-only; they only inspect loaded rows.

    @property
    def total_amount(self) -> Decimal:
        """Sum of payer amounts: the expense total."""
        return sum((p.amount for p in self.payers), Decimal("0.00"))

    @property
    def paid_by(self) -> int | None:
        """The single payer's id; None when no payer rows are loaded."""
        return self.payers[0].paid_by if self.payers else None

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"group_id={self.group_id} "
            f"title={self.title!r}>"
        )
