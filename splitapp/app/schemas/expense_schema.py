"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - ExpenseSubmissionSchema: the POST/PUT body. Field types, required
        fields, split_type and currency values, plus the cross-field rules
        (duplicate split users, split sum within SUM_TOLERANCE, payer-only
        split). Error messages are the exact strings clients assert on;
        services/expense_validator.py flattens them into one ordered list.
      - ExpenseListQuerySchema: the list query string (page, limit).
  - services/expense_service.py:
      - membership of the payer and every split user (DB lookup)
      - equal-split re-derivation (split_calculator)

Every field error and every cross-field rule is collected in one pass
(`skip_on_field_errors=False`), so a client sees all problems at once.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping

from marshmallow import (
    EXCLUDE,
    Schema,
    ValidationError,
    fields,
    pre_load,
    validate,
    validates_schema,
)

from splitapp.app.models.expense import RESERVED_SPLIT_TYPES, Currency, SplitType

# Splits may miss the expense amount by at most one minor unit.
SUM_TOLERANCE = Decimal("0.01")

PAYER_ONLY_SPLIT_MESSAGE = (
    "Cannot create an expense that is only split to the payer. "
    "Please include at least one other person."
)

TITLE_REQUIRED = "Title is required"
AMOUNT_REQUIRED = "Amount is required"
AMOUNT_NOT_POSITIVE = "Amount must be a positive number greater than 0"
SPLITS_REQUIRED = "At least one split is required"
SPLIT_NOT_OBJECT = "split must be an object with user_id and amount"
SPLIT_AMOUNT_REQUIRED = "amount is required"
SPLIT_AMOUNT_NEGATIVE = "amount must be a non-negative number"
PERCENTAGE_RANGE = "percentage must be between 0 and 100"
SHARES_NOT_POSITIVE = "shares must be a positive integer"


def sum_mismatch(amount: Decimal, split_amounts: list[Decimal]) -> str | None:
    """The sum-rule message when the splits miss `amount` by more than SUM_TOLERANCE."""
    total = sum(split_amounts, Decimal("0.00"))
    if abs(total - amount) > SUM_TOLERANCE:
        return (
            f"Total split amounts ({total:.2f}) must equal "
            f"expense amount ({amount:.2f})"
        )
    return None


def _blank_to_none(data: Any, keys: tuple[str, ...]) -> Any:
    """Whitespace-only strings count as missing, so they get the 'required' message."""
    if not isinstance(data, Mapping):
        return data
    return {
        key: None if key in keys and isinstance(value, str) and not value.strip() else value
        for key, value in data.items()
    }


def _positive_id(message: str) -> fields.Int:
    return fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0 and numeric strings
        validate=validate.Range(min=1, error=message),
        error_messages={"required": message, "null": message, "invalid": message},
    )


def _validate_title(value: str) -> None:
    if not value.strip():
        raise ValidationError(TITLE_REQUIRED)
    if len(value.strip()) < 3:
        raise ValidationError("Title must be at least 3 characters long")


def _validate_split_type(value: str) -> None:
    if value in RESERVED_SPLIT_TYPES:
        raise ValidationError(f"split_type '{value}' is not supported yet")
    if value not in {t.value for t in SplitType}:
        raise ValidationError(f"invalid split_type '{value}'")


def _validate_currency(value: str) -> None:
    if value not in {c.value for c in Currency}:
        raise ValidationError(f"Currency '{value}' is not supported")


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitSubmissionSchema(Schema):
    """
    One split. split_type is optional: untyped splits are stored with the
    submitted amount. percentage and shares are reserved for split types
    that are not supported yet; they are range-checked so they always fit
    their columns.
    """

    class Meta:
        unknown = EXCLUDE

    error_messages = {"type": SPLIT_NOT_OBJECT}

    user_id = _positive_id("user_id is required")

    amount = fields.Decimal(
        required=True,
        validate=validate.Range(min=0, error=SPLIT_AMOUNT_NEGATIVE),
        error_messages={
            "required": SPLIT_AMOUNT_REQUIRED,
            "null": SPLIT_AMOUNT_REQUIRED,
            "invalid": SPLIT_AMOUNT_NEGATIVE,
            "special": SPLIT_AMOUNT_NEGATIVE,
        },
    )

    split_type = fields.Str(
        load_default=None,
        allow_none=True,
        validate=_validate_split_type,
        error_messages={"invalid": "invalid split_type"},
    )

    percentage = fields.Decimal(
        load_default=None,
        allow_none=True,
        validate=validate.Range(min=0, max=100, error=PERCENTAGE_RANGE),
        error_messages={"invalid": PERCENTAGE_RANGE, "special": PERCENTAGE_RANGE},
    )

    shares = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error=SHARES_NOT_POSITIVE),
        error_messages={"invalid": SHARES_NOT_POSITIVE},
    )

    @pre_load
    def blanks_to_none(self, data, **kwargs):
        return _blank_to_none(data, ("amount", "split_type", "percentage", "shares"))


# ── Create / replace expense ───────────────────────────────────────────────

class ExpenseSubmissionSchema(Schema):
    """
    POST /groups/:id/expenses and PUT /groups/:id/expenses/:eid

    group_id comes from the URL; the service injects it before loading.
    """

    class Meta:
        unknown = EXCLUDE

    error_messages = {"type": "Expense must be a JSON object"}

    title = fields.Str(
        required=True,
        validate=_validate_title,
        error_messages={
            "required": TITLE_REQUIRED,
            "null": TITLE_REQUIRED,
            "invalid": TITLE_REQUIRED,
        },
    )

    group_id = _positive_id("Group ID is required")

    paid_by = _positive_id("Payer (paid_by) is required")

    amount = fields.Decimal(
        required=True,
        validate=validate.Range(min=0, min_inclusive=False, error=AMOUNT_NOT_POSITIVE),
        error_messages={
            "required": AMOUNT_REQUIRED,
            "null": AMOUNT_REQUIRED,
            "invalid": AMOUNT_NOT_POSITIVE,
            "special": AMOUNT_NOT_POSITIVE,
        },
    )

    currency = fields.Str(
        load_default=None,
        allow_none=True,
        validate=_validate_currency,
        error_messages={"invalid": "Currency must be a currency code"},
    )

    splits = fields.List(
        fields.Nested(SplitSubmissionSchema, error_messages={"null": SPLIT_NOT_OBJECT}),
        required=True,
        validate=validate.Length(min=1, error=SPLITS_REQUIRED),
        error_messages={
            "required": SPLITS_REQUIRED,
            "null": SPLITS_REQUIRED,
            "invalid": SPLITS_REQUIRED,
        },
    )

    @pre_load
    def blanks_to_none(self, data, **kwargs):
        return _blank_to_none(data, ("amount", "currency"))

    @validates_schema(skip_on_field_errors=False, pass_original=True)
    def validate_split_set(self, data: dict, original_data, **kwargs) -> None:
        """
        Cross-split rules. They need every split to have loaded cleanly;
        otherwise the per-split messages already describe the problem.

        1. a user_id may appear only once
        2. |sum(split amounts) - amount| <= SUM_TOLERANCE
        3. a split set consisting only of the payer is rejected
        """
        submitted = original_data.get("splits") if isinstance(original_data, Mapping) else None
        splits = data.get("splits") or []
        if (
            not isinstance(submitted, list)
            or len(splits) != len(submitted)
            or not all(isinstance(s, dict) and "user_id" in s and "amount" in s for s in splits)
        ):
            return

        errors: list[str] = []
        seen: set[int] = set()
        for index, split in enumerate(splits):
            if split["user_id"] in seen:
                errors.append(f"Split {index + 1}: user_id {split['user_id']} appears more than once")
            seen.add(split["user_id"])

        if "amount" in data:
            message = sum_mismatch(data["amount"], [s["amount"] for s in splits])
            if message:
                errors.append(message)

        if "paid_by" in data and seen == {data["paid_by"]}:
            errors.append(PAYER_ONLY_SPLIT_MESSAGE)

        if errors:
            raise ValidationError(errors)


# ── List query ─────────────────────────────────────────────────────────────

class ExpenseListQuerySchema(Schema):
    """
    GET /groups/:id/expenses?page=&limit=

    limit has no default here: the route falls back to DEFAULT_PAGE_SIZE
    and clamps to MAX_PAGE_SIZE from config.
    """

    class Meta:
        unknown = EXCLUDE

    page = fields.Int(
        load_default=1,
        validate=validate.Range(min=1, error="page must be a positive integer."),
    )

    limit = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="limit must be a positive integer."),
    )
