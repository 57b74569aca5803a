"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database named by TEST_DATABASE_URL, or an
    in-memory SQLite database when it is unset.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start. The
    PostgreSQL-only split-sum trigger (002_add_split_sum_trigger.py) is not
    installed; the service layer is what these tests exercise.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - The balance cache is disabled by TestingConfig (TTL 0); it is cleared
    between tests anyway for tests that switch it on.

Identity comes from an external provider, so tests mint their own HS256
tokens with the testing JWT_SECRET_KEY. A user exists for the API once their
profile has been created through PUT /profile.

Helper functions (not fixtures) are provided for common operations:
  - token_for(user_id, email)     → signed bearer token
  - auth_headers(token)           → {"Authorization": "Bearer <token>"}
  - make_user(client, ...)        → {"id", "email", "token"}
  - make_group(client, ...)       → group dict
  - add_member(...)               → HTTP response
  - make_expense(...)             → HTTP response
  - make_payment(...)             → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import text

from splitapp.app import create_app
from splitapp.app.extensions import balance_cache
from splitapp.app.extensions import db as _db

TEST_JWT_SECRET = "test-jwt-secret"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates all tables, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.

    Children before parents: splits and payers before expenses, payments and
    expenses before groups, memberships before groups and profiles.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.remove()

        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM expense_splits"))
            conn.execute(text("DELETE FROM expense_payers"))
            conn.execute(text("DELETE FROM payments"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM profiles"))
            conn.commit()

    balance_cache.clear()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def token_for(
    user_id: int,
    email: str | None = None,
    expires_in: timedelta = timedelta(hours=1),
    secret: str = TEST_JWT_SECRET,
) -> str:
    """Mints a bearer token the way the identity provider would."""
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if email is not None:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def make_user(
    client,
    user_id: int,
    name: str = "alice",
    full_name: str | None = None,
) -> dict:
    """
    Creates a profile through PUT /profile and returns
    {"id", "email", "token"}. The email is "<name>@test.com".
    """
    email = f"{name}@test.com"
    token = token_for(user_id, email)
    body = {"full_name": full_name} if full_name is not None else {}
    resp = client.put("/api/v1/profile", json=body, headers=auth_headers(token))
    assert resp.status_code == 200, f"make_user failed: {resp.get_json()}"
    return {"id": user_id, "email": email, "token": token}


def make_group(client, token: str, name: str = "Test Group") -> dict:
    """
    Creates a group and returns the group data dict.
    The caller (token owner) becomes the group admin and first member.
    """
    resp = client.post(
        "/api/v1/groups/",
        json={"name": name},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, f"make_group failed: {resp.get_json()}"
    return resp.get_json()["data"]


def add_member(client, token: str, group_id: int, email: str, role: str | None = None):
    """Adds a registered user to a group by email (admin token required)."""
    body = {"email": email}
    if role is not None:
        body["role"] = role
    return client.post(
        f"/api/v1/groups/{group_id}/members",
        json=body,
        headers=auth_headers(token),
    )


def make_expense(
    client,
    token: str,
    group_id: int,
    paid_by: int,
    amount: str,
    splits: list[dict],
    title: str = "Dinner out",
):
    """
    Creates an expense and returns the HTTP response.
    splits: list of {user_id, amount[, split_type]} dicts.
    """
    return client.post(
        f"/api/v1/groups/{group_id}/expenses",
        json={
            "title": title,
            "paid_by": paid_by,
            "amount": amount,
            "splits": splits,
        },
        headers=auth_headers(token),
    )


def make_payment(
    client,
    token: str,
    group_id: int,
    from_user_id: int,
    to_user_id: int,
    amount: str,
    notes: str | None = None,
):
    """Records a payment and returns the HTTP response."""
    body = {"from_user_id": from_user_id, "to_user_id": to_user_id, "amount": amount}
    if notes is not None:
        body["notes"] = notes
    return client.post(
        f"/api/v1/groups/{group_id}/payments",
        json=body,
        headers=auth_headers(token),
    )


def get_group_balance(client, token: str, group_id: int):
    return client.get(f"/api/v1/groups/{group_id}/balance", headers=auth_headers(token))
