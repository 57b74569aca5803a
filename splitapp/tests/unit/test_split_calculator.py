"""
tests/unit/test_split_calculator.py — Unit tests for split_calculator.compute_splits.

What this file proves:
  - Equal split: sum(splits) == total exactly, for any total and participant
    count, including non-terminating division (10.00 / 3)
  - The rounding remainder goes to the LAST participant in caller order
  - Caller order is preserved, never sorted
  - Exact split returns the caller's amounts unchanged
  - Bad input raises INVALID_SPLIT_INPUT (400)

Unit test constraints:
  - No database, no Flask, no auth context.
  - Pure Python: only Decimal arithmetic. Tolerance is zero.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.expense import SplitType
from splitapp.app.services.split_calculator import compute_splits


def _amounts(splits: list[dict]) -> list[Decimal]:
    return [s["amount"] for s in splits]


def _assert_exact_sum(splits: list[dict], total: Decimal) -> None:
    computed = sum(_amounts(splits), Decimal("0.00"))
    assert computed == total, f"split sum {computed} != total {total}"


# ═══════════════════════════════════════════════════════════════════════════
# Equal mode
# ═══════════════════════════════════════════════════════════════════════════

class TestEqualSplit:

    def test_ten_over_three(self):
        result = compute_splits(Decimal("10.00"), [1, 2, 3], SplitType.EQUAL)

        assert result == [
            {"user_id": 1, "amount": Decimal("3.33")},
            {"user_id": 2, "amount": Decimal("3.33")},
            {"user_id": 3, "amount": Decimal("3.34")},
        ]
        _assert_exact_sum(result, Decimal("10.00"))

    def test_even_division_has_no_remainder(self):
        result = compute_splits(Decimal("90.00"), [1, 2, 3], SplitType.EQUAL)

        assert _amounts(result) == [Decimal("30.00")] * 3

    def test_remainder_goes_to_last_in_caller_order(self):
        result = compute_splits(Decimal("10.00"), [3, 1, 2], SplitType.EQUAL)

        assert [s["user_id"] for s in result] == [3, 1, 2]
        assert result[-1] == {"user_id": 2, "amount": Decimal("3.34")}

    def test_single_participant_gets_full_amount(self):
        result = compute_splits(Decimal("42.42"), [5], SplitType.EQUAL)

        assert result == [{"user_id": 5, "amount": Decimal("42.42")}]

    def test_one_cent_over_many_participants(self):
        result = compute_splits(Decimal("0.01"), [1, 2, 3, 4], SplitType.EQUAL)

        assert _amounts(result) == [Decimal("0.00")] * 3 + [Decimal("0.01")]
        _assert_exact_sum(result, Decimal("0.01"))

    @pytest.mark.parametrize(
        "total, n",
        [
            ("100.00", 3),
            ("100.00", 7),
            ("0.05", 3),
            ("1234.57", 9),
            ("999999.99", 11),
            ("33.33", 2),
        ],
    )
    def test_sum_is_exact(self, total, n):
        total = Decimal(total)
        result = compute_splits(total, list(range(1, n + 1)), SplitType.EQUAL)

        _assert_exact_sum(result, total)
        # Every share is within one cent of every other.
        assert max(_amounts(result)) - min(_amounts(result)) <= Decimal("0.01") * n

    def test_mode_accepts_plain_string(self):
        result = compute_splits(Decimal("20.00"), [1, 2], "equal")

        assert _amounts(result) == [Decimal("10.00"), Decimal("10.00")]

    def test_amounts_are_decimal(self):
        result = compute_splits(Decimal("10.00"), [1, 2, 3], SplitType.EQUAL)

        assert all(isinstance(s["amount"], Decimal) for s in result)


# ═══════════════════════════════════════════════════════════════════════════
# Exact mode
# ═══════════════════════════════════════════════════════════════════════════

class TestExactSplit:

    def test_amounts_pass_through_unchanged(self):
        exact = {1: Decimal("70.00"), 2: Decimal("29.99"), 3: Decimal("0.01")}

        result = compute_splits(Decimal("100.00"), [1, 2, 3], SplitType.EXACT, exact)

        assert result == [
            {"user_id": 1, "amount": Decimal("70.00")},
            {"user_id": 2, "amount": Decimal("29.99")},
            {"user_id": 3, "amount": Decimal("0.01")},
        ]

    def test_sum_is_not_checked_here(self):
        """Sum checking is the validator's job; the calculator never adjusts."""
        exact = {1: Decimal("10.00"), 2: Decimal("10.00")}

        result = compute_splits(Decimal("100.00"), [1, 2], SplitType.EXACT, exact)

        assert _amounts(result) == [Decimal("10.00"), Decimal("10.00")]

    def test_participant_order_is_kept(self):
        exact = {1: Decimal("1.00"), 2: Decimal("2.00")}

        result = compute_splits(Decimal("3.00"), [2, 1], SplitType.EXACT, exact)

        assert [s["user_id"] for s in result] == [2, 1]

    def test_missing_amount_is_rejected(self):
        with pytest.raises(AppError) as exc_info:
            compute_splits(Decimal("3.00"), [1, 2], SplitType.EXACT, {1: Decimal("3.00")})

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT_INPUT
        assert "2" in exc_info.value.message

    def test_no_amounts_at_all_is_rejected(self):
        with pytest.raises(AppError) as exc_info:
            compute_splits(Decimal("3.00"), [1], SplitType.EXACT)

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT_INPUT


# ═══════════════════════════════════════════════════════════════════════════
# Input errors
# ═══════════════════════════════════════════════════════════════════════════

class TestInvalidInput:

    @pytest.mark.parametrize("total", [Decimal("0"), Decimal("-1.00")])
    def test_non_positive_total(self, total):
        with pytest.raises(AppError) as exc_info:
            compute_splits(total, [1, 2], SplitType.EQUAL)

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT_INPUT
        assert exc_info.value.http_status == 400

    def test_no_participants(self):
        with pytest.raises(AppError) as exc_info:
            compute_splits(Decimal("10.00"), [], SplitType.EQUAL)

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT_INPUT

    def test_unknown_mode(self):
        with pytest.raises(AppError) as exc_info:
            compute_splits(Decimal("10.00"), [1, 2], "shares")

        assert exc_info.value.code == ErrorCode.INVALID_SPLIT_INPUT
        assert "shares" in exc_info.value.message

    def test_unknown_mode_hides_the_enum_lookup_failure(self):
        with pytest.raises(AppError) as exc_info:
            compute_splits(Decimal("10.00"), [1, 2], "bogus")

        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__ is True
