"""
models/payer.py — ExpensePayer table definition.

One row per user who fronted money for an expense. The sum of payer amounts
is the expense total. The write path creates exactly one payer per expense;
the balance aggregator handles any number.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitapp.app.extensions import db


class ExpensePayer(db.Model):
    __tablename__ = "expense_payers"

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_expense_payers_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    paid_by: Mapped[int] = mapped_column(
        ForeignKey("profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    # NUMERIC(12, 2). Never Float.
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="payers",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<ExpensePayer id={self.id} "
            f"expense_id={self.expense_id} "
            f"paid_by={self.paid_by} "
            f"amount={self.amount}>"
        )
