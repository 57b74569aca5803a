"""
models/split.py — ExpenseSplit table definition.

No business logic. No imports from services or routes.

Key design points:
  - `amount` uses Numeric(12, 2) — never Float. Zero is allowed (a
    participant may owe nothing on an exact split); negatives are not.
  - expense_id is ON DELETE CASCADE — splits are owned by their expense.
  - UNIQUE(expense_id, user_id): one split row per participant.
  - percentage / shares are stored when supplied but are not used by the
    balance math; only `amount` is.

"sum(splits) ≈ sum(payers) within 0.01" spans rows and tables. It is enforced
in expense_service before the write, and on PostgreSQL by the deferred
trigger in migrations/versions/002_add_split_sum_trigger.py.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitapp.app.extensions import db
from splitapp.app.models.expense import SplitType, enum_values


class ExpenseSplit(db.Model):
    __tablename__ = "expense_splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_expense_splits_expense_user"),
        CheckConstraint("amount >= 0", name="ck_expense_splits_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            native_enum=False,
            values_callable=enum_values,
        ),
        nullable=False,
        default=SplitType.EQUAL,
        server_default=SplitType.EQUAL.value,
    )

    percentage: Mapped[Decimal | None] = mapped_column(
        Numeric(5, 2),
        nullable=True,
    )

    shares: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpenseSplit id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"amount={self.amount}>"
        )
