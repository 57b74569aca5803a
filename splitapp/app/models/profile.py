"""
models/profile.py — Profile table definition.

A profile is the local projection of an identity-provider user: the id is the
`sub` claim of the bearer token, and the row carries display data used to
enrich expense, payment and balance responses. Credentials never live here.

No business logic. No imports from services or routes.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitapp.app.extensions import db


class Profile(db.Model):
    __tablename__ = "profiles"

    __table_args__ = (
        CheckConstraint(
            "email LIKE '%@%'",
            name="ck_profiles_email_format",
        ),
    )

    # Assigned by the identity provider; not autoincremented here.
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=False)

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
    )

    full_name: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    memberships: Mapped[list["Membership"]] = relationship(  # noqa: F821
        "Membership",
        back_populates="user",
    )

    @property
    def display_name(self) -> str:
        """full_name when set, otherwise the local part of the email."""
        if self.full_name:
            return self.full_name
        return self.email.split("@", 1)[0]

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Profile id={self.id} email={self.email!r}>"
