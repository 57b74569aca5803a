"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 because every path is group-scoped:
/groups/:id/expenses and /groups/:id/expenses/:expense_id.

Layer rules:
  - Parse, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper — not business logic.

The expense body goes to the service as raw JSON: expense_validator loads it
through ExpenseSubmissionSchema and reports every violated rule at once
(VALIDATION_FAILED with a details list).

Balance cache keys made stale by a write are evicted after the commit
succeeds, never before.

Endpoints:
  POST   /groups/:id/expenses        → 201  create expense
  GET    /groups/:id/expenses        → 200  paginated list, newest first
  PUT    /groups/:id/expenses/:eid   → 200  replace title/currency/payer/splits
  DELETE /groups/:id/expenses/:eid   → 200  hard delete
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.extensions import balance_cache, db
from splitapp.app.middleware.auth_middleware import require_auth
from splitapp.app.models.expense import Expense
from splitapp.app.models.profile import Profile
from splitapp.app.schemas.expense_schema import ExpenseListQuerySchema
from splitapp.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helpers ──────────────────────────────────────────────────
# Pure data-shaping — no DB access, no logic. Amounts as strings.

def _serialize_profile(profile: Profile | None) -> dict | None:
    if profile is None:
        return None
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "email": profile.email,
        "display_name": profile.display_name,
    }


def _serialize_expense(expense: Expense, profiles: dict[int, Profile] | None = None) -> dict:
    """
    Converts an Expense ORM object to a plain dict for JSON output.

    When `profiles` is given, creator, payer and split users are enriched
    with their profile (or None if the profile is missing).
    """
    enrich = profiles is not None
    result = {
        "id": expense.id,
        "group_id": expense.group_id,
        "title": expense.title,
        "currency": expense.currency.value,
        "amount": str(expense.total_amount),           # Decimal → string
        "paid_by": expense.paid_by,
        "created_by": expense.created_by,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "updated_at": expense.updated_at.isoformat() if expense.updated_at else None,
        "payers": [
            {"id": p.id, "paid_by": p.paid_by, "amount": str(p.amount)}
            for p in expense.payers
        ],
        "splits": [],
    }
    for s in expense.splits:
        split = {
            "id": s.id,
            "user_id": s.user_id,
            "amount": str(s.amount),
            "split_type": s.split_type.value,
            "percentage": str(s.percentage) if s.percentage is not None else None,
            "shares": s.shares,
        }
        if enrich:
            split["user_profile"] = _serialize_profile(profiles.get(s.user_id))
        result["splits"].append(split)

    if enrich:
        result["created_by_profile"] = _serialize_profile(profiles.get(expense.created_by))
        result["payer_profile"] = _serialize_profile(profiles.get(expense.paid_by))
    return result


def _json_body() -> dict:
    body = request.get_json(force=True, silent=True)
    if not isinstance(body, dict):
        raise AppError(
            ErrorCode.VALIDATION_FAILED,
            "Request body must be a JSON object.",
            400,
        )
    return body


# ── Routes ─────────────────────────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["POST"])
@require_auth
def create_expense(group_id: int):
    """POST /groups/:id/expenses — Record a new expense with one payer."""
    write = expense_service.create_expense(
        group_id=group_id,
        caller_id=g.user_id,
        data=_json_body(),
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(write.stale_keys)
    return jsonify({"data": _serialize_expense(write.expense), "warnings": write.warnings}), 201


@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_expenses(group_id: int):
    """
    GET /groups/:id/expenses?page=1&limit=50

    limit defaults to DEFAULT_PAGE_SIZE and is clamped to MAX_PAGE_SIZE.
    """
    query = ExpenseListQuerySchema().load(request.args)
    limit = min(
        query["limit"] or current_app.config["DEFAULT_PAGE_SIZE"],
        current_app.config["MAX_PAGE_SIZE"],
    )
    page = expense_service.list_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
        page=query["page"],
        limit=limit,
    )
    return jsonify({
        "data": {
            "expenses": [_serialize_expense(e, page.profiles) for e in page.expenses],
            "count": page.count,
            "page": page.page,
            "limit": page.limit,
            "total_pages": page.total_pages,
        },
        "warnings": [],
    }), 200


@expenses_bp.route("/groups/<int:group_id>/expenses/<int:expense_id>", methods=["PUT"])
@require_auth
def update_expense(group_id: int, expense_id: int):
    """
    PUT /groups/:id/expenses/:expense_id — Full replacement of the expense's
    payer and splits. Any group member may edit; created_by is preserved.
    """
    write = expense_service.update_expense(
        group_id=group_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        data=_json_body(),
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(write.stale_keys)
    return jsonify({"data": _serialize_expense(write.expense), "warnings": write.warnings}), 200


@expenses_bp.route("/groups/<int:group_id>/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(group_id: int, expense_id: int):
    """DELETE /groups/:id/expenses/:expense_id — Hard delete; payers and splits go with it."""
    stale_keys = expense_service.delete_expense(
        group_id=group_id,
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    db.session.commit()
    balance_cache.invalidate_many(stale_keys)
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200
