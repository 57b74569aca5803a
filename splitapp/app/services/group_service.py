"""
services/group_service.py — Group business logic.

Authorization rules:
  - Any authenticated user with a profile may create a group; they become
    its first admin.
  - Reading a group requires membership (FORBIDDEN 403, not 404).
  - Editing and deleting a group require the admin role.
  - A group with any expense cannot be deleted (GROUP_HAS_EXPENSES, 400).
    Its memberships and payments are deleted with it.

Member management lives in membership_service.py.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from splitapp.app.cache import CacheKey, keys_for_group_write
from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.expense import Expense
from splitapp.app.models.group import DEFAULT_GROUP_ICON, Group
from splitapp.app.models.membership import MemberRole, Membership
from splitapp.app.models.payment import Payment
from splitapp.app.models.profile import Profile
from splitapp.app.services import membership_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _build_group_dict(group: Group) -> dict:
    """Serialises a Group to a plain dict."""
    return {
        "id": group.id,
        "name": group.name,
        "description": group.description,
        "icon": group.icon,
        "created_by": group.created_by,
        "created_at": group.created_at.isoformat() if group.created_at else None,
        "updated_at": group.updated_at.isoformat() if group.updated_at else None,
    }


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _count_expenses(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Expense.id)).where(Expense.group_id == group_id)
    ).scalar_one()


# ── Public service functions ───────────────────────────────────────────────

def create_group(data: dict, creator_id: int, session: Session) -> dict:
    """
    Creates a new group. The creator becomes its admin and first member.

    Args:
        data:       Validated dict from CreateGroupSchema (name, description, icon).
        creator_id: The authenticated user (flask.g.user_id).

    Raises:
        AppError(USER_NOT_FOUND, 404) — the creator has no profile yet.
    """
    if session.get(Profile, creator_id) is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "Create your profile before creating a group.",
            404,
        )

    group = Group(
        name=data["name"].strip(),
        description=_clean_description(data.get("description")),
        icon=data.get("icon") or DEFAULT_GROUP_ICON,
        created_by=creator_id,
    )
    session.add(group)
    session.flush()  # populate group.id before creating membership

    session.add(Membership(user_id=creator_id, group_id=group.id, role=MemberRole.ADMIN))
    session.flush()
    session.refresh(group)

    logger.info("Group %s created by user %s", group.id, creator_id)
    return {**_build_group_dict(group), "user_role": MemberRole.ADMIN.value}


def list_groups(user_id: int, session: Session) -> list[dict]:
    """
    Returns the groups the user belongs to with their role in each,
    most recently joined first.
    """
    stmt = (
        select(Group, Membership.role)
        .join(Membership, Group.id == Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.joined_at.desc(), Group.id.desc())
    )
    return [
        {**_build_group_dict(group), "user_role": role.value}
        for group, role in session.execute(stmt).all()
    ]


def get_group_summary(group_id: int, caller_id: int, session: Session) -> dict:
    """
    Returns the group, its members, its expense count and the caller's role.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403) — caller is not a member.
    """
    group = membership_service.get_group_or_404(group_id, session)
    role = membership_service.require_member(caller_id, group_id, session)

    return {
        "group": _build_group_dict(group),
        "members": membership_service.list_members(group_id, caller_id, session),
        "expense_count": _count_expenses(group_id, session),
        "user_role": role.value,
    }


def update_group(group_id: int, caller_id: int, data: dict, session: Session) -> dict:
    """
    Partially updates name / description / icon. Admin only.

    A null or blank icon resets it to the default.
    """
    group = membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(caller_id, group_id, session)

    if "name" in data:
        group.name = data["name"].strip()
    if "description" in data:
        group.description = _clean_description(data["description"])
    if "icon" in data:
        group.icon = data["icon"] or DEFAULT_GROUP_ICON
    group.updated_at = datetime.now(timezone.utc)
    session.flush()

    logger.info("Group %s updated by user %s", group_id, caller_id)
    return _build_group_dict(group)


def delete_group(group_id: int, caller_id: int, session: Session) -> list[CacheKey]:
    """
    Deletes a group with no expenses. Admin only.

    Raises:
        AppError(GROUP_HAS_EXPENSES, 400)

    Returns the balance cache keys made stale by the deletion: the group's
    payments disappear with it, so every member's global view may move.
    """
    group = membership_service.get_group_or_404(group_id, session)
    membership_service.require_admin(caller_id, group_id, session)

    if _count_expenses(group_id, session) > 0:
        raise AppError(
            ErrorCode.GROUP_HAS_EXPENSES,
            "Cannot delete group that has expenses. Please delete all expenses first.",
            400,
        )

    affected = set(
        session.execute(
            select(Membership.user_id).where(Membership.group_id == group_id)
        ).scalars().all()
    )
    for from_id, to_id in session.execute(
        select(Payment.from_user_id, Payment.to_user_id).where(Payment.group_id == group_id)
    ).all():
        affected.update((from_id, to_id))

    session.delete(group)
    session.flush()

    logger.info("Group %s deleted by user %s", group_id, caller_id)
    return keys_for_group_write(group_id, affected)
