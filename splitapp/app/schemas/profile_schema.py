"""
schemas/profile_schema.py — Marshmallow schema for PUT /profile.

Both fields are optional. Blank strings are accepted and stored as NULL.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
"""

from __future__ import annotations

from marshmallow import Schema, fields, pre_load, validate

# Letters, spaces, hyphens and apostrophes.
FULL_NAME_PATTERN = r"^[a-zA-Z\s\-']*$"

# Digits, spaces, +, - and parentheses.
PHONE_PATTERN = r"^[\d\s\-+()]*$"


class UpdateProfileSchema(Schema):

    full_name = fields.Str(
        allow_none=True,
        validate=[
            validate.Length(max=100, error="Full name must be 100 characters or less."),
            validate.Regexp(
                FULL_NAME_PATTERN,
                error="Full name can only contain letters, spaces, hyphens, and apostrophes.",
            ),
        ],
    )

    phone = fields.Str(
        allow_none=True,
        validate=[
            validate.Length(max=20, error="Phone number must be 20 characters or less."),
            validate.Regexp(
                PHONE_PATTERN,
                error="Phone number can only contain numbers, spaces, +, -, and parentheses.",
            ),
        ],
    )

    @pre_load
    def strip_strings(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        return {
            key: value.strip() if isinstance(value, str) else value
            for key, value in data.items()
        }
