"""
routes/profile.py — The caller's own profile.

Endpoints (base url_prefix=/api/v1):
  GET /profile  → 200  caller's profile (404 USER_NOT_FOUND if none yet)
  PUT /profile  → 200  create or update full_name / phone
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitapp.app.extensions import db
from splitapp.app.middleware.auth_middleware import require_auth
from splitapp.app.schemas.profile_schema import UpdateProfileSchema
from splitapp.app.services import profile_service

profile_bp = Blueprint("profile", __name__)


@profile_bp.route("/profile", methods=["GET"])
@require_auth
def get_profile():
    profile = profile_service.get_profile(g.user_id, db.session)
    return jsonify({"data": profile_service.profile_dict(profile), "warnings": []}), 200


@profile_bp.route("/profile", methods=["PUT"])
@require_auth
def update_profile():
    """
    PUT /profile — The first call creates the profile from the token's
    email claim; later calls only touch full_name and phone.
    """
    data = UpdateProfileSchema().load(request.get_json(force=True) or {})
    profile = profile_service.upsert_profile(
        user_id=g.user_id,
        email=g.user_email,
        data=data,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": profile_service.profile_dict(profile), "warnings": []}), 200
