"""
tests/integration/test_payments.py — Integration tests for payment endpoints.

Endpoints covered:
  POST /groups/:id/payments → 201 (record payment)
  GET  /groups/:id/payments → 200 (list payments, newest first)

What this file proves:
  - A payment is recorded between two members by any member of the group;
    the caller is stored as created_by
  - SELF_PAYMENT (400) — from_user_id == to_user_id
  - USERS_NOT_MEMBERS (400) — either party outside the group, reported by id
  - FORBIDDEN (403) — caller not a member
  - amount must be > 0 with at most 2 decimal places (schema, VALIDATION_FAILED)
  - Payments are append-only: no edit or delete route exists
"""

from __future__ import annotations

from .conftest import add_member, auth_headers, make_group, make_payment, make_user


# ═══════════════════════════════════════════════════════════════════════════
# Setup helpers
# ═══════════════════════════════════════════════════════════════════════════

def _setup(client):
    """Alice (admin) + Bob + Carol in one group."""
    alice = make_user(client, 1, "alice", "Alice Smith")
    bob   = make_user(client, 2, "bob", "Bob Jones")
    carol = make_user(client, 3, "carol")
    group = make_group(client, alice["token"])
    add_member(client, alice["token"], group["id"], bob["email"])
    add_member(client, alice["token"], group["id"], carol["email"])
    return alice, bob, carol, group


# ═══════════════════════════════════════════════════════════════════════════
# POST /groups/:id/payments
# ═══════════════════════════════════════════════════════════════════════════

class TestCreatePayment:

    def test_create_payment_returns_201(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, bob["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"],
            amount="40.00", notes="Cash",
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["warnings"] == []
        data = body["data"]
        assert data["group_id"] == group["id"]
        assert data["from_user_id"] == bob["id"]
        assert data["to_user_id"] == alice["id"]
        assert data["amount"] == "40.00"   # string, not number
        assert data["notes"] == "Cash"
        assert data["created_by"] == bob["id"]

    def test_third_member_can_record_payment_for_others(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, carol["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="15.50",
        )

        assert resp.status_code == 201
        assert resp.get_json()["data"]["created_by"] == carol["id"]

    def test_self_payment_is_rejected(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, alice["token"], group["id"],
            from_user_id=alice["id"], to_user_id=alice["id"], amount="10.00",
        )

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "SELF_PAYMENT"
        assert error["field"] == "to_user_id"

    def test_party_outside_group_is_rejected(self, client):
        alice, bob, carol, group = _setup(client)
        dave = make_user(client, 4, "dave")

        resp = make_payment(
            client, alice["token"], group["id"],
            from_user_id=dave["id"], to_user_id=alice["id"], amount="10.00",
        )

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "USERS_NOT_MEMBERS"
        assert error["details"] == [dave["id"]]

    def test_non_member_caller_is_forbidden(self, client):
        alice, bob, carol, group = _setup(client)
        dave = make_user(client, 4, "dave")

        resp = make_payment(
            client, dave["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="10.00",
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_group_returns_404(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, alice["token"], 99999,
            from_user_id=bob["id"], to_user_id=alice["id"], amount="10.00",
        )

        assert resp.status_code == 404
        assert resp.get_json()["error"]["code"] == "GROUP_NOT_FOUND"

    def test_zero_amount_is_validation_failed(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, alice["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="0",
        )

        assert resp.status_code == 400
        error = resp.get_json()["error"]
        assert error["code"] == "VALIDATION_FAILED"
        assert error["field"] == "amount"
        assert error["message"] == "Amount must be greater than zero."

    def test_three_decimal_places_rejected(self, client):
        alice, bob, carol, group = _setup(client)

        resp = make_payment(
            client, alice["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="10.001",
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"]["message"] == "Amount must have at most 2 decimal places."

    def test_missing_fields_are_all_reported(self, client):
        alice, bob, carol, group = _setup(client)

        resp = client.post(
            f"/api/v1/groups/{group['id']}/payments",
            json={},
            headers=auth_headers(alice["token"]),
        )

        assert resp.status_code == 400
        details = resp.get_json()["error"]["details"]
        assert any(d.startswith("from_user_id:") for d in details)
        assert any(d.startswith("to_user_id:") for d in details)
        assert any(d.startswith("amount:") for d in details)


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups/:id/payments
# ═══════════════════════════════════════════════════════════════════════════

class TestListPayments:

    def test_list_is_newest_first_with_names(self, client):
        alice, bob, carol, group = _setup(client)
        first = make_payment(
            client, bob["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="10.00",
        ).get_json()["data"]
        second = make_payment(
            client, carol["token"], group["id"],
            from_user_id=carol["id"], to_user_id=alice["id"], amount="20.00",
        ).get_json()["data"]

        resp = client.get(
            f"/api/v1/groups/{group['id']}/payments",
            headers=auth_headers(alice["token"]),
        )

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert [p["id"] for p in data] == [second["id"], first["id"]]
        assert data[1]["from_user_name"] == "Bob Jones"
        assert data[1]["to_user_name"] == "Alice Smith"
        assert data[0]["from_user_name"] == "carol"

    def test_empty_list(self, client):
        alice, bob, carol, group = _setup(client)

        resp = client.get(
            f"/api/v1/groups/{group['id']}/payments",
            headers=auth_headers(alice["token"]),
        )

        assert resp.status_code == 200
        assert resp.get_json()["data"] == []

    def test_non_member_cannot_list(self, client):
        alice, bob, carol, group = _setup(client)
        dave = make_user(client, 4, "dave")

        resp = client.get(
            f"/api/v1/groups/{group['id']}/payments",
            headers=auth_headers(dave["token"]),
        )

        assert resp.status_code == 403

    def test_payments_cannot_be_deleted(self, client):
        alice, bob, carol, group = _setup(client)
        payment = make_payment(
            client, bob["token"], group["id"],
            from_user_id=bob["id"], to_user_id=alice["id"], amount="10.00",
        ).get_json()["data"]

        resp = client.delete(
            f"/api/v1/groups/{group['id']}/payments/{payment['id']}",
            headers=auth_headers(alice["token"]),
        )

        assert resp.status_code in (404, 405)
        assert "error" in resp.get_json()
