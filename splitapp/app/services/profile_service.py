"""
services/profile_service.py — The caller's own profile.

Profiles mirror the external identity provider's user directory: the id is
the token's `sub` claim and the email comes from the token's `email` claim.
They supply the display names used to enrich expenses, members and balances.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from splitapp.app.errors import AppError, ErrorCode
from splitapp.app.models.profile import Profile

logger = logging.getLogger(__name__)


def profile_dict(profile: Profile) -> dict:
    return {
        "id": profile.id,
        "email": profile.email,
        "full_name": profile.full_name,
        "phone": profile.phone,
        "display_name": profile.display_name,
        "created_at": profile.created_at.isoformat() if profile.created_at else None,
        "updated_at": profile.updated_at.isoformat() if profile.updated_at else None,
    }


def get_profile(user_id: int, session: Session) -> Profile:
    """Raises USER_NOT_FOUND (404) if the user has no profile yet."""
    profile = session.get(Profile, user_id)
    if profile is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            "Profile not found.",
            404,
        )
    return profile


def upsert_profile(
        user_id: int,
        email: str | None,
        data: dict,
        session: Session,
) -> Profile:
    """
    Creates or updates the caller's profile.

    Args:
        email: The token's email claim. Required only when the profile does
               not exist yet; an existing profile keeps its email.
        data:  Validated dict from UpdateProfileSchema. Absent keys are left
               unchanged; blank values are stored as NULL.
    """
    profile = session.get(Profile, user_id)
    if profile is None:
        if not email:
            raise AppError(
                ErrorCode.VALIDATION_FAILED,
                "An email claim is required to create a profile.",
                400,
                field="email",
            )
        profile = Profile(id=user_id, email=email.strip().lower())
        session.add(profile)
        logger.info("Profile created for user %s", user_id)
    else:
        profile.updated_at = datetime.now(timezone.utc)

    if "full_name" in data:
        profile.full_name = data["full_name"] or None
    if "phone" in data:
        profile.phone = data["phone"] or None

    session.flush()
    session.refresh(profile)
    return profile
