"""
services/payment_service.py — Direct payments between group members.

A payment {from, to, amount} reduces what `from` owes `to`. Payments are
append-only: recorded and listed, never edited or deleted.

Checks, in order:
  SELF_PAYMENT (400)      — from_user_id == to_user_id
  GROUP_NOT_FOUND (404)
  FORBIDDEN (403)         — caller is not a member of the group
  USERS_NOT_MEMBERS (400) — either party is not a member (one batched query)

Field shape (required fields, amount > 0, 2 dp) is enforced by
CreatePaymentSchema before the service is called. The DB repeats the
amount > 0 and from <> to rules as CHECK constraints.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from splitapp.app.cache import CacheKey, keys_for_group_write
from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.payment import Payment
from splitapp.app.models.profile import Profile
from splitapp.app.services import membership_service

logger = logging.getLogger(__name__)


def create_payment(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> tuple[Payment, list[CacheKey]]:
    """
    Records a payment. The caller need not be one of the two parties, but
    must be a member of the group; they are stored as created_by.

    Args:
        data: Validated dict from CreatePaymentSchema.
              Keys: from_user_id, to_user_id, amount (Decimal), notes (optional).

    Returns:
        (Payment, stale balance cache keys; the route evicts them after commit)
    """
    from_user_id: int = data["from_user_id"]
    to_user_id: int = data["to_user_id"]

    if from_user_id == to_user_id:
        raise AppError(
            ErrorCode.SELF_PAYMENT,
            "Cannot pay yourself.",
            400,
            field="to_user_id",
        )

    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    check = membership_service.validate_all_members([from_user_id, to_user_id], group_id, session)
    if not check.valid:
        raise AppError(
            ErrorCode.USERS_NOT_MEMBERS,
            "Both users must be members of this group.",
            400,
            details=check.invalid_user_ids,
        )

    payment = Payment(
        group_id=group_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        amount=data["amount"],
        notes=data.get("notes"),
        created_by=caller_id,
    )
    session.add(payment)
    session.flush()
    session.refresh(payment)

    stale_keys = keys_for_group_write(group_id, [from_user_id, to_user_id])
    logger.info(
        "Payment %s recorded in group %s: %s -> %s amount=%s",
        payment.id, group_id, from_user_id, to_user_id, payment.amount,
    )
    return payment, stale_keys


def list_payments(
        group_id: int,
        caller_id: int,
        session: Session,
) -> tuple[list[Payment], dict[int, Profile]]:
    """
    Returns all payments for a group, newest first, plus the profiles of every
    party involved (one query).
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    payments = list(
        session.execute(
            select(Payment)
            .where(Payment.group_id == group_id)
            .order_by(Payment.created_at.desc(), Payment.id.desc())
        ).scalars().all()
    )

    user_ids = {p.from_user_id for p in payments} | {p.to_user_id for p in payments}
    profiles: dict[int, Profile] = {}
    if user_ids:
        rows = session.execute(select(Profile).where(Profile.id.in_(user_ids))).scalars().all()
        profiles = {p.id: p for p in rows}
    return payments, profiles

