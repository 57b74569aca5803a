"""
schemas/payment_schema.py — Marshmallow schema for payment endpoints.

Validation responsibility:
  - This file: field types, positive amount, decimal precision.
  - services/payment_service.py:
      - SELF_PAYMENT (400)       — from_user_id == to_user_id
      - FORBIDDEN (403)          — caller must be a member
      - USERS_NOT_MEMBERS (400)  — both parties must be members (DB lookup)
      - GROUP_NOT_FOUND (404)    — DB lookup

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import Schema, ValidationError, fields, validate


def _validate_payment_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places. Over-precise input is
    rejected, never rounded, because the column is NUMERIC(12, 2).
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3 → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError("Amount must have at most 2 decimal places.")


class CreatePaymentSchema(Schema):
    """
    POST /groups/:id/payments

    The caller records a payment between any two members; they need not be
    one of the parties themself. created_by comes from flask.g, not the body.
    """

    from_user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0 — integers only
        validate=validate.Range(min=1, error="from_user_id must be a positive integer."),
    )

    to_user_id = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=1, error="to_user_id must be a positive integer."),
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_payment_amount,
    )

    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500),
    )
