"""
services/split_calculator.py — Partition an expense total across participants.

Pure arithmetic. No session, no Flask, no I/O.

Equal mode:
  base      = floor(total / n) to the cent
  remainder = round(total - base * n, 2)
  Every participant gets `base`; the LAST participant in caller order also
  gets the remainder. Caller order is preserved, never sorted, so who absorbs
  the rounding remainder is decided by the order the caller supplies.

    compute_splits(Decimal("10.00"), [1, 2, 3], SplitType.EQUAL)
    → [{user_id: 1, 3.33}, {user_id: 2, 3.33}, {user_id: 3, 3.34}]

Exact mode:
  The caller's per-participant amounts are returned unchanged, in participant
  order. Checking that they add up to the total is the validator's job; this
  module never clamps or adjusts.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Mapping, Sequence

from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.expense import SplitType

CENT = Decimal("0.01")


def _invalid(message: str) -> AppError:
    return AppError(ErrorCode.INVALID_SPLIT_INPUT, message, 400)


def _compute_equal_splits(total: Decimal, participant_ids: Sequence[int]) -> list[dict]:
    n = len(participant_ids)
    base = (total / Decimal(n)).quantize(CENT, rounding=ROUND_FLOOR)
    remainder = (total - base * n).quantize(CENT, rounding=ROUND_HALF_UP)

    splits = [{"user_id": uid, "amount": base} for uid in participant_ids]
    splits[-1]["amount"] = base + remainder

    # Must always hold; a failure here is a programming error.
    computed_sum = sum((s["amount"] for s in splits), Decimal("0.00"))
    expected = total.quantize(CENT, rounding=ROUND_HALF_UP)
    if computed_sum != expected:
        raise AppError(
            ErrorCode.INTERNAL_ERROR,
            f"Equal split computation produced sum {computed_sum} for amount {total}.",
            500,
        )
    return splits


def _compute_exact_splits(
        participant_ids: Sequence[int],
        exact_amounts: Mapping[int, Decimal] | None,
) -> list[dict]:
    if exact_amounts is None:
        raise _invalid("Exact split requires an amount for every participant.")

    missing = [uid for uid in participant_ids if uid not in exact_amounts]
    if missing:
        raise _invalid(
            f"Exact split is missing amounts for participants: "
            f"{', '.join(str(uid) for uid in missing)}."
        )
    return [{"user_id": uid, "amount": exact_amounts[uid]} for uid in participant_ids]


def compute_splits(
        total: Decimal,
        participant_ids: Sequence[int],
        mode: SplitType | str,
        exact_amounts: Mapping[int, Decimal] | None = None,
) -> list[dict]:
    """
    Returns [{"user_id": int, "amount": Decimal}, ...] in participant order.

    Raises:
        AppError(INVALID_SPLIT_INPUT, 400) — no participants, total <= 0,
            unknown mode, or (exact mode) a participant without an amount.
    """
    if not participant_ids:
        raise _invalid("At least one participant is required to split an expense.")

    if total is None or Decimal(total) <= 0:
        raise _invalid("Split total must be greater than 0.")

    try:
        mode = SplitType(mode)
    except ValueError:
        raise _invalid(f"Unknown split mode '{mode}'.") from None

    if mode == SplitType.EQUAL:
        return _compute_equal_splits(Decimal(total), participant_ids)
    return _compute_exact_splits(participant_ids, exact_amounts)
