"""
Unit tests for the app-level helpers: the error envelope, marshmallow message
flattening and the Decimal JSON provider.
"""

from __future__ import annotations

from decimal import Decimal

from flask import Flask

from splitapp.app import DecimalJSONProvider, _flatten_messages
from splitapp.app.errors import AppError, ErrorCode


def test_app_error_envelope_omits_empty_optionals():
    err = AppError(ErrorCode.GROUP_NOT_FOUND, "Group 9 does not exist.", 404)

    assert err.to_dict() == {
        "error": {"code": "GROUP_NOT_FOUND", "message": "Group 9 does not exist."}
    }


def test_app_error_envelope_with_field_and_details():
    err = AppError(ErrorCode.USERS_NOT_MEMBERS, "Nope.", 400, field="splits", details=(4, 5))

    assert err.to_dict()["error"]["field"] == "splits"
    assert err.to_dict()["error"]["details"] == [4, 5]


def test_flatten_keeps_every_message_in_order():
    pairs = _flatten_messages({
        "name": ["Too short.", "Blank."],
        "splits": {0: {"amount": ["Missing."]}},
        "_schema": ["Provide at least one field."],
    })

    assert pairs == [
        ("name", "Too short."),
        ("name", "Blank."),
        ("splits.0.amount", "Missing."),
        (None, "Provide at least one field."),
    ]


def test_decimal_provider_round_trip_keeps_cents():
    provider = DecimalJSONProvider(Flask(__name__))

    assert provider.loads('{"amount": 10.10}') == {"amount": Decimal("10.10")}
    assert provider.dumps({"amount": Decimal("10.50")}) == '{"amount": "10.50"}'
