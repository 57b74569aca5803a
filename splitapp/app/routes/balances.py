"""
routes/balances.py — Balance route handlers.

Layer rules:
  - Call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.

Both views share one shape:
  {user_id, total_paid, total_owed, net_balance,
   owes_to: [{user_id, user_name, amount}], owed_by: [...]}
Amounts are strings (DecimalJSONProvider). Results may be served from the
balance cache within BALANCE_CACHE_TTL_SECONDS of the last write.

Endpoints (base url_prefix=/api/v1):
  GET /groups/:id/balance  → 200  caller's balance within one group
  GET /balances            → 200  caller's balance across all their groups
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from splitapp.app.extensions import db
from splitapp.app.middleware.auth_middleware import require_auth
from splitapp.app.services import balance_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("/groups/<int:group_id>/balance", methods=["GET"])
@require_auth
def get_group_balance(group_id: int):
    """
    GET /groups/:id/balance

    Membership is enforced inside balance_service.compute_group_balance().
    """
    result = balance_service.compute_group_balance(
        group_id=group_id,
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@balances_bp.route("/balances", methods=["GET"])
@require_auth
def get_global_balance():
    """GET /balances — All-zero shape when the caller has no activity."""
    result = balance_service.compute_global_balance(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
