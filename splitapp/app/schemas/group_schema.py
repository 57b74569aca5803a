"""
schemas/group_schema.py — Marshmallow schemas for group and membership endpoints.

Validation responsibility:
  - This file: field types, string lengths, non-empty checks (including trim),
    email format, role values.
  - services/group_service.py and services/membership_service.py:
      - membership / admin checks (FORBIDDEN, INSUFFICIENT_ROLE)
      - USER_NOT_FOUND  (email lookup requires the DB)
      - ALREADY_MEMBER  (membership existence requires the DB)
      - LAST_ADMIN, CANNOT_REMOVE_SELF, MEMBER_HAS_EXPENSES, GROUP_HAS_EXPENSES

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

from splitapp.app.models.group import DEFAULT_GROUP_ICON
from splitapp.app.models.membership import MemberRole


# ── Shared non-empty string validator ─────────────────────────────────────
#
# validate.Length(min=1) alone allows whitespace-only strings like "   "
# because len("   ") == 3 > 0. This validator strips first then checks,
# mirroring the DB CHECK(LENGTH(TRIM(name)) > 0) at the API layer.
# ──────────────────────────────────────────────────────────────────────────

def _validate_non_empty_after_trim(value: str) -> None:
    """
    Raises ValidationError if the string is blank or contains only whitespace.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


_GROUP_NAME_VALIDATORS = [
    validate.Length(
        min=1,
        max=100,
        error="Group name must be between 1 and 100 characters.",
    ),
    _validate_non_empty_after_trim,
]


class CreateGroupSchema(Schema):
    """
    POST /groups

    name — non-empty after trim, max 100 chars.
    description — optional free text.
    icon — optional icon identifier; defaults to "Users".
    """

    name = fields.Str(required=True, validate=_GROUP_NAME_VALIDATORS)

    description = fields.Str(load_default=None, allow_none=True)

    icon = fields.Str(
        load_default=DEFAULT_GROUP_ICON,
        validate=validate.Length(min=1, max=50),
    )


class UpdateGroupSchema(Schema):
    """
    PUT /groups/:id — every field optional; only provided fields change.
    """

    name = fields.Str(validate=_GROUP_NAME_VALIDATORS)
    description = fields.Str(allow_none=True)
    icon = fields.Str(allow_none=True, validate=validate.Length(max=50))

    @validates_schema
    def validate_not_empty(self, data: dict, **kwargs) -> None:
        if not data:
            raise ValidationError("Provide at least one of: name, description, icon.")


class AddMemberSchema(Schema):
    """
    POST /groups/:id/members

    Members are added by email. Whether a profile with that email exists is
    a DB concern (USER_NOT_FOUND, 404), checked in membership_service.py.
    """

    email = fields.Email(
        required=True,
        error_messages={"invalid": "Invalid email format."},
    )

    role = fields.Enum(
        MemberRole,
        by_value=True,
        load_default=MemberRole.MEMBER,
    )


class UpdateMemberRoleSchema(Schema):
    """PATCH /groups/:id/members/:user_id"""

    role = fields.Enum(MemberRole, by_value=True, required=True)
