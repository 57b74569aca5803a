"""
services/membership_service.py — Membership guard and member management.

Guard functions (used before every mutating operation on groups, members,
expenses and payments):
  is_member(user_id, group_id)            → MemberRole | None
  require_member(user_id, group_id)       → role, or FORBIDDEN (403)
  require_admin(user_id, group_id)        → role, or FORBIDDEN / INSUFFICIENT_ROLE (403)
  validate_all_members(user_ids, group_id)→ MembershipCheck(valid, invalid_user_ids)

FORBIDDEN (not a member) and INSUFFICIENT_ROLE (member, not admin) are
distinct codes because clients render different messages for each.

validate_all_members issues ONE `IN` query for any number of ids. Expense and
payment writes must never do one membership round-trip per user.

Member management rules:
  - Only admins add, re-role or remove members.
  - An admin cannot remove themself.
  - A group always keeps at least one admin (LAST_ADMIN, 400).
  - A member who paid for or shares in any expense of the group cannot be
    removed (MEMBER_HAS_EXPENSES, 400).

Layer rules:
  - No Flask imports. Receives plain ints and a Session.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from splitapp.app.cache import CacheKey, keys_for_group_write
from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.expense import Expense
from splitapp.app.models.group import Group
from splitapp.app.models.membership import MemberRole, Membership
from splitapp.app.models.payer import ExpensePayer
from splitapp.app.models.profile import Profile
from splitapp.app.models.split import ExpenseSplit

logger = logging.getLogger(__name__)


@dataclass
class MembershipCheck:
    valid: bool
    invalid_user_ids: list[int] = field(default_factory=list)


# ── Lookups ────────────────────────────────────────────────────────────────

def get_group_or_404(group_id: int, session: Session) -> Group:
    """Returns the Group or raises GROUP_NOT_FOUND (404)."""
    group = session.get(Group, group_id)
    if group is None:
        raise AppError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            404,
        )
    return group


def _get_membership(user_id: int, group_id: int, session: Session) -> Membership | None:
    return session.execute(
        select(Membership).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def count_admins(group_id: int, session: Session) -> int:
    return session.execute(
        select(func.count(Membership.id)).where(
            Membership.group_id == group_id,
            Membership.role == MemberRole.ADMIN,
        )
    ).scalar_one()


def has_paid_expenses(user_id: int, group_id: int, session: Session) -> bool:
    """True if the user is a payer on any expense of the group."""
    stmt = (
        select(ExpensePayer.id)
        .join(Expense, Expense.id == ExpensePayer.expense_id)
        .where(Expense.group_id == group_id, ExpensePayer.paid_by == user_id)
        .limit(1)
    )
    return session.execute(stmt).scalars().first() is not None


def has_split_expenses(user_id: int, group_id: int, session: Session) -> bool:
    """True if the user is a split participant on any expense of the group."""
    stmt = (
        select(ExpenseSplit.id)
        .join(Expense, Expense.id == ExpenseSplit.expense_id)
        .where(Expense.group_id == group_id, ExpenseSplit.user_id == user_id)
        .limit(1)
    )
    return session.execute(stmt).scalars().first() is not None


# ── Guard ──────────────────────────────────────────────────────────────────

def is_member(user_id: int, group_id: int, session: Session) -> MemberRole | None:
    """Returns the user's role in the group, or None if they are not a member."""
    return session.execute(
        select(Membership.role).where(
            Membership.group_id == group_id,
            Membership.user_id == user_id,
        )
    ).scalar_one_or_none()


def require_member(user_id: int, group_id: int, session: Session) -> MemberRole:
    """Raises FORBIDDEN (403) if user_id is not a member of group_id."""
    role = is_member(user_id, group_id, session)
    if role is None:
        raise AppError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
            403,
        )
    return role


def require_admin(user_id: int, group_id: int, session: Session) -> MemberRole:
    """
    Raises FORBIDDEN (403) for non-members and INSUFFICIENT_ROLE (403) for
    members without the admin role.
    """
    role = require_member(user_id, group_id, session)
    if role != MemberRole.ADMIN:
        raise AppError(
            ErrorCode.INSUFFICIENT_ROLE,
            "Only group admins can perform this action.",
            403,
        )
    return role


def validate_all_members(
        user_ids: Iterable[int],
        group_id: int,
        session: Session,
) -> MembershipCheck:
    """
    Checks every id in ONE query. invalid_user_ids keeps first-seen order so
    error details are deterministic.
    """
    wanted = list(dict.fromkeys(user_ids))
    if not wanted:
        return MembershipCheck(valid=True)

    found = set(
        session.execute(
            select(Membership.user_id).where(
                Membership.group_id == group_id,
                Membership.user_id.in_(wanted),
            )
        ).scalars().all()
    )
    invalid = [uid for uid in wanted if uid not in found]
    return MembershipCheck(valid=not invalid, invalid_user_ids=invalid)


def require_all_members(user_ids: Iterable[int], group_id: int, session: Session) -> None:
    """validate_all_members, raising USERS_NOT_MEMBERS (400) with the offending ids."""
    check = validate_all_members(user_ids, group_id, session)
    if not check.valid:
        raise AppError(
            ErrorCode.USERS_NOT_MEMBERS,
            "Some users are not members of this group.",
            400,
            details=check.invalid_user_ids,
        )


# ── Member management ──────────────────────────────────────────────────────

def _member_dict(membership: Membership, profile: Profile | None) -> dict:
    return {
        "user_id": membership.user_id,
        "group_id": membership.group_id,
        "role": membership.role.value,
        "joined_at": membership.joined_at.isoformat() if membership.joined_at else None,
        "full_name": profile.full_name if profile else None,
        "email": profile.email if profile else None,
        "display_name": profile.display_name if profile else f"user_{membership.user_id}",
    }


def list_members(group_id: int, caller_id: int, session: Session) -> list[dict]:
    """Members of a group with role and profile, oldest membership first."""
    get_group_or_404(group_id, session)
    require_member(caller_id, group_id, session)

    rows = session.execute(
        select(Membership, Profile)
        .join(Profile, Profile.id == Membership.user_id)
        .where(Membership.group_id == group_id)
        .order_by(Membership.joined_at.asc(), Membership.id.asc())
    ).all()
    return [_member_dict(m, p) for m, p in rows]


def add_member(
        group_id: int,
        caller_id: int,
        email: str,
        role: MemberRole,
        session: Session,
) -> dict:
    """
    Adds the profile registered under `email` to the group. Admin only.

    Raises:
      AppError(GROUP_NOT_FOUND, 404)
      AppError(FORBIDDEN / INSUFFICIENT_ROLE, 403)
      AppError(USER_NOT_FOUND, 404)  — no profile with that email
      AppError(ALREADY_MEMBER, 409)
    """
    get_group_or_404(group_id, session)
    require_admin(caller_id, group_id, session)

    profile = session.execute(
        select(Profile).where(func.lower(Profile.email) == email.strip().lower())
    ).scalar_one_or_none()
    if profile is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "User not found with this email.",
            404,
            field="email",
        )

    if _get_membership(profile.id, group_id, session) is not None:
        raise AppError(
            ErrorCode.ALREADY_MEMBER,
            "User is already a member of this group.",
            409,
        )

    membership = Membership(user_id=profile.id, group_id=group_id, role=role)
    session.add(membership)
    session.flush()
    session.refresh(membership)

    logger.info(
        "User %s added user %s to group %s as %s",
        caller_id, profile.id, group_id, role.value,
    )
    return _member_dict(membership, profile)


def _get_target_membership(target_user_id: int, group_id: int, session: Session) -> Membership:
    membership = _get_membership(target_user_id, group_id, session)
    if membership is None:
        raise AppError(
            ErrorCode.MEMBER_NOT_FOUND,
            f"User {target_user_id} is not a member of group {group_id}.",
            404,
        )
    return membership


def update_member_role(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        role: MemberRole,
        session: Session,
) -> dict:
    """Changes a member's role. Admin only; the last admin cannot be demoted."""
    get_group_or_404(group_id, session)
    require_admin(caller_id, group_id, session)
    membership = _get_target_membership(target_user_id, group_id, session)

    if (
        membership.role == MemberRole.ADMIN
        and role != MemberRole.ADMIN
        and count_admins(group_id, session) <= 1
    ):
        raise AppError(
            ErrorCode.LAST_ADMIN,
            "Cannot demote the last admin. Please promote another member to admin first.",
            400,
        )

    membership.role = role
    session.flush()

    logger.info(
        "User %s set role of user %s in group %s to %s",
        caller_id, target_user_id, group_id, role.value,
    )
    return _member_dict(membership, session.get(Profile, target_user_id))


def remove_member(
        group_id: int,
        caller_id: int,
        target_user_id: int,
        session: Session,
) -> list[CacheKey]:
    """
    Removes a member from a group. Admin only.

    Raises:
      AppError(MEMBER_NOT_FOUND, 404)
      AppError(CANNOT_REMOVE_SELF, 400)
      AppError(LAST_ADMIN, 400)
      AppError(MEMBER_HAS_EXPENSES, 400)

    Returns the balance cache keys made stale by the removal.
    """
    get_group_or_404(group_id, session)
    require_admin(caller_id, group_id, session)

    membership = _get_target_membership(target_user_id, group_id, session)

    if caller_id == target_user_id:
        raise AppError(
            ErrorCode.CANNOT_REMOVE_SELF,
            "You cannot remove yourself from the group. Ask another admin to remove you.",
            400,
        )

    if membership.role == MemberRole.ADMIN and count_admins(group_id, session) <= 1:
        raise AppError(
            ErrorCode.LAST_ADMIN,
            "Cannot remove the last admin. Please promote another member to admin first.",
            400,
        )

    if has_paid_expenses(target_user_id, group_id, session):
        raise AppError(
            ErrorCode.MEMBER_HAS_EXPENSES,
            "Cannot remove member who has paid for expenses in this group. "
            "Please delete or reassign their expenses first.",
            400,
        )

    if has_split_expenses(target_user_id, group_id, session):
        raise AppError(
            ErrorCode.MEMBER_HAS_EXPENSES,
            "Cannot remove member who is part of expense splits in this group. "
            "Please delete or reassign their expenses first.",
            400,
        )

    session.delete(membership)
    session.flush()

    logger.info("User %s removed user %s from group %s", caller_id, target_user_id, group_id)
    return keys_for_group_write(group_id, [target_user_id])
