"""
routes/payments.py — Payment route handlers.

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.

Payments are append-only: there is no edit or delete endpoint.

Endpoints (base url_prefix=/api/v1/groups):
  POST   /groups/:id/payments  → 201  record a payment between two members
  GET    /groups/:id/payments  → 200  list payments, newest first
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitapp.app.extensions import balance_cache, db
from splitapp.app.middleware.auth_middleware import require_auth
from splitapp.app.models.payment import Payment
from splitapp.app.models.profile import Profile
from splitapp.app.schemas.payment_schema import CreatePaymentSchema
from splitapp.app.services import payment_service

payments_bp = Blueprint("payments", __name__)


# ── Serialization helper ───────────────────────────────────────────────────

def _name(profiles: dict[int, Profile], user_id: int) -> str | None:
    profile = profiles.get(user_id)
    return profile.display_name if profile else None


def _serialize_payment(p: Payment, profiles: dict[int, Profile] | None = None) -> dict:
    """Converts a Payment ORM object to a plain dict for JSON output."""
    result = {
        "id": p.id,
        "group_id": p.group_id,
        "from_user_id": p.from_user_id,
        "to_user_id": p.to_user_id,
        "amount": str(p.amount),  # Decimal → string
        "notes": p.notes,
        "created_by": p.created_by,
        "created_at": p.created_at.isoformat() if p.created_at else None,
        "updated_at": p.updated_at.isoformat() if p.updated_at else None,
    }
    if profiles is not None:
        result["from_user_name"] = _name(profiles, p.from_user_id)
        result["to_user_name"] = _name(profiles, p.to_user_id)
    return result


# ── Route handlers ─────────────────────────────────────────────────────────

@payments_bp.route("/<int:group_id>/payments", methods=["POST"])
@require_auth
def create_payment(group_id: int):
    """
    POST /groups/:id/payments — Record that from_user_id paid to_user_id.

    The caller is stored as created_by; they need not be either party.
    """
    data = CreatePaymentSchema().load(request.get_json(force=True) or {})
    payment, stale_keys = payment_service.create_payment(
        group_id=group_id,
        caller_id=g.user_id,
        data=data,
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(stale_keys)
    return jsonify({"data": _serialize_payment(payment), "warnings": []}), 201


@payments_bp.route("/<int:group_id>/payments", methods=["GET"])
@require_auth
def list_payments(group_id: int):
    """GET /groups/:id/payments — List all payments for a group."""
    payments, profiles = payment_service.list_payments(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_payment(p, profiles) for p in payments],
        "warnings": [],
    }), 200
