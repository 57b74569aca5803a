"""
services/expense_validator.py — Structural and business rules for an expense
submission.

Pure: takes the raw submitted mapping, returns a ValidationResult. No session,
no Flask, no side effects. The rules themselves live on
ExpenseSubmissionSchema (schemas/expense_schema.py); this module loads the
body through it and flattens marshmallow's nested error dict into one ordered
list of messages, so a client can highlight every problem at once.

Rules (message text is part of the API contract):
  1. title present and at least 3 characters after trimming
  2. group_id present
  3. paid_by present
  4. amount present and a number > 0
  5. splits is a non-empty list
  6. each split: user_id present, amount present and >= 0, split_type (when
     given) one of equal|exact; percentage|shares are reserved; a user may
     appear only once
  7. |sum(split amounts) - amount| <= 0.01
  8. a split set consisting only of the payer is rejected

Membership of the referenced users is NOT checked here (needs the DB); see
membership_service.validate_all_members.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from marshmallow import ValidationError

from splitapp.app.schemas.expense_schema import (  # noqa: F401  (re-exported)
    PAYER_ONLY_SPLIT_MESSAGE,
    SUM_TOLERANCE,
    ExpenseSubmissionSchema,
    sum_mismatch,
)

CENT = Decimal("0.01")

# Message order follows the order clients see the form fields in.
_FIELD_ORDER = ("title", "group_id", "paid_by", "amount", "currency", "splits")
_SPLIT_FIELD_ORDER = ("_schema", "user_id", "amount", "split_type", "percentage", "shares")

_submission_schema = ExpenseSubmissionSchema()


@dataclass
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)
    data: dict | None = None


def _split_messages(index: int, messages: Any) -> list[str]:
    label = f"Split {index + 1}"
    if isinstance(messages, list):
        return [f"{label}: {m}" for m in messages]
    keys = [*_SPLIT_FIELD_ORDER, *(k for k in messages if k not in _SPLIT_FIELD_ORDER)]
    return [f"{label}: {m}" for key in keys for m in messages.get(key, [])]


def flatten_errors(messages: Mapping[str, Any]) -> list[str]:
    """
    Turns marshmallow's error dict into the flat message list.

    Top-level fields come first in form order, per-split messages are
    prefixed "Split N:", and cross-field (_schema) messages come last.
    """
    keys = [
        *_FIELD_ORDER,
        *(k for k in messages if k not in _FIELD_ORDER and k != "_schema"),
        "_schema",
    ]
    errors: list[str] = []
    for key in keys:
        value = messages.get(key)
        if not value:
            continue
        if isinstance(value, dict):
            for index in sorted(value):
                errors.extend(_split_messages(index, value[index]))
        else:
            errors.extend(value)
    return errors


def validate_expense(data: Mapping[str, Any]) -> ValidationResult:
    """Runs every expense rule over `data` and collects the violations."""
    try:
        loaded = _submission_schema.load(data)
    except ValidationError as err:
        return ValidationResult(valid=False, errors=flatten_errors(err.messages))
    return ValidationResult(valid=True, data=loaded)


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def round_to_cents(submission: dict) -> tuple[dict, list[str]]:
    """
    Rounds the expense amount and every split amount half-up to the cent,
    the precision they are stored at.

    Returns (rounded submission, errors). Rounding can push an accepted
    split set past SUM_TOLERANCE, so the sum rule is checked again.
    """
    amount = _cents(submission["amount"])
    splits = [{**s, "amount": _cents(s["amount"])} for s in submission["splits"]]
    message = sum_mismatch(amount, [s["amount"] for s in splits])
    return {**submission, "amount": amount, "splits": splits}, [message] if message else []
