"""
routes/groups.py — Group and membership route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups                        → 201  create group (caller becomes admin)
  GET    /groups                        → 200  list caller's groups with role
  GET    /groups/:id                    → 200  group summary
  PUT    /groups/:id                    → 200  edit group (admin only)
  DELETE /groups/:id                    → 200  delete group without expenses (admin only)
  GET    /groups/:id/members            → 200  list members
  POST   /groups/:id/members            → 201  add member by email (admin only)
  PATCH  /groups/:id/members/:uid       → 200  change role (admin only)
  DELETE /groups/:id/members/:uid       → 200  remove member (admin only)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitapp.app.extensions import balance_cache, db
from splitapp.app.middleware.auth_middleware import require_auth
from splitapp.app.schemas.group_schema import (
    AddMemberSchema,
    CreateGroupSchema,
    UpdateGroupSchema,
    UpdateMemberRoleSchema,
)
from splitapp.app.services import group_service, membership_service

groups_bp = Blueprint("groups", __name__)


@groups_bp.route("/", methods=["POST"])
@require_auth
def create_group():
    """POST /groups — Create a new group. Caller becomes admin and first member."""
    data = CreateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.create_group(
        data=data,
        creator_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/", methods=["GET"])
@require_auth
def list_groups():
    """GET /groups — List all groups the authenticated user belongs to."""
    result = group_service.list_groups(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["GET"])
@require_auth
def get_group(group_id: int):
    """GET /groups/:id — Group, members, expense count and the caller's role."""
    result = group_service.get_group_summary(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["PUT"])
@require_auth
def update_group(group_id: int):
    data = UpdateGroupSchema().load(request.get_json(force=True) or {})
    result = group_service.update_group(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>", methods=["DELETE"])
@require_auth
def delete_group(group_id: int):
    """DELETE /groups/:id — Blocked with GROUP_HAS_EXPENSES while any expense exists."""
    stale_keys = group_service.delete_group(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(stale_keys)
    return jsonify({
        "data": {"deleted": True, "group_id": group_id},
        "warnings": [],
    }), 200


# ── Members ────────────────────────────────────────────────────────────────

@groups_bp.route("/<int:group_id>/members", methods=["GET"])
@require_auth
def list_members(group_id: int):
    result = membership_service.list_members(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members", methods=["POST"])
@require_auth
def add_member(group_id: int):
    """POST /groups/:id/members — Add a registered user by email. Admin only."""
    data = AddMemberSchema().load(request.get_json(force=True) or {})
    result = membership_service.add_member(
        group_id=group_id,
        caller_id=g.user_id,
        email=data["email"],
        role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@groups_bp.route("/<int:group_id>/members/<int:user_id>", methods=["PATCH"])
@require_auth
def update_member_role(group_id: int, user_id: int):
    data = UpdateMemberRoleSchema().load(request.get_json(force=True) or {})
    result = membership_service.update_member_role(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=user_id,
        role=data["role"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@groups_bp.route("/<int:group_id>/members/<int:user_id>", methods=["DELETE"])
@require_auth
def remove_member(group_id: int, user_id: int):
    """
    DELETE /groups/:id/members/:uid

    Refused for self-removal, the last admin, and members with expense
    involvement in the group.
    """
    stale_keys = membership_service.remove_member(
        group_id=group_id,
        caller_id=g.user_id,
        target_user_id=user_id,
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(stale_keys)
    return jsonify({
        "data": {
            "removed": True,
            "group_id": group_id,
            "user_id": user_id,
        },
        "warnings": [],
    }), 200
