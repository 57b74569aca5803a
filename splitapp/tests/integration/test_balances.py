"""
tests/integration/test_balances.py — Integration tests for balance endpoints.

Endpoints covered:
  GET /groups/:id/balance → caller's balance within one group
  GET /balances           → caller's balance across all their groups

What this file proves (against real persisted expenses and payments):
  - A 100.00 debt drops to 60.00 after a 40.00 payment and disappears once
    paid in full
  - The pairwise net is single-directional for every pair
  - net_balance = total_paid - total_owed + payments sent - payments received
  - Recomputation is idempotent: two reads with no write in between agree
  - The global view nets the same pair across groups
  - A user with no activity gets the all-zero shape, not an error
  - Deleting an expense removes it from every later computation
"""

from __future__ import annotations

from .conftest import (
    add_member,
    auth_headers,
    get_group_balance,
    make_expense,
    make_group,
    make_payment,
    make_user,
)


# ═══════════════════════════════════════════════════════════════════════════
# Setup helpers
# ═══════════════════════════════════════════════════════════════════════════

def _setup(client):
    """Alice (admin) + Bob in one group."""
    alice = make_user(client, 1, "alice", "Alice Smith")
    bob   = make_user(client, 2, "bob", "Bob Jones")
    group = make_group(client, alice["token"])
    add_member(client, alice["token"], group["id"], bob["email"])
    return alice, bob, group


def _bob_pays_200_half_each(client, alice, bob, group):
    """Bob pays 200.00 split equally: Alice owes Bob 100.00."""
    resp = make_expense(
        client, bob["token"], group["id"],
        paid_by=bob["id"], amount="200.00",
        splits=[
            {"user_id": alice["id"], "amount": "100.00"},
            {"user_id": bob["id"],   "amount": "100.00"},
        ],
    )
    assert resp.status_code == 201
    return resp.get_json()["data"]


def _balance(client, user, group) -> dict:
    resp = get_group_balance(client, user["token"], group["id"])
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()["data"]


def _debts(entries: list[dict]) -> list[tuple[int, str]]:
    return [(e["user_id"], e["amount"]) for e in entries]


# ═══════════════════════════════════════════════════════════════════════════
# GET /groups/:id/balance
# ═══════════════════════════════════════════════════════════════════════════

class TestGroupBalance:

    def test_expense_creates_single_directional_debt(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)

        a = _balance(client, alice, group)
        b = _balance(client, bob, group)

        assert a["group_id"] == group["id"]
        assert a["user_id"] == alice["id"]
        assert _debts(a["owes_to"]) == [(bob["id"], "100.00")]
        assert a["owed_by"] == []
        assert _debts(b["owed_by"]) == [(alice["id"], "100.00")]
        assert b["owes_to"] == []

        assert a["total_paid"] == "0.00"
        assert a["total_owed"] == "100.00"
        assert a["net_balance"] == "-100.00"
        assert b["total_paid"] == "200.00"
        assert b["total_owed"] == "100.00"
        assert b["net_balance"] == "100.00"

    def test_entries_carry_user_names(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)

        a = _balance(client, alice, group)

        assert a["owes_to"][0]["user_name"] == "Bob Jones"

    def test_partial_payment_reduces_then_full_payment_settles(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)

        resp = make_payment(
            client, alice["token"], group["id"],
            from_user_id=alice["id"], to_user_id=bob["id"], amount="40.00",
        )
        assert resp.status_code == 201

        a = _balance(client, alice, group)
        assert _debts(a["owes_to"]) == [(bob["id"], "60.00")]
        # Payments move who-owes-whom, not expense participation.
        assert a["total_paid"] == "0.00"
        assert a["total_owed"] == "100.00"
        assert a["net_balance"] == "-60.00"

        make_payment(
            client, alice["token"], group["id"],
            from_user_id=alice["id"], to_user_id=bob["id"], amount="60.00",
        )

        a = _balance(client, alice, group)
        b = _balance(client, bob, group)
        assert a["owes_to"] == [] and a["owed_by"] == []
        assert b["owes_to"] == [] and b["owed_by"] == []
        assert a["net_balance"] == "0.00"
        assert b["net_balance"] == "0.00"

    def test_overpayment_flips_direction(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)

        make_payment(
            client, alice["token"], group["id"],
            from_user_id=alice["id"], to_user_id=bob["id"], amount="130.00",
        )

        a = _balance(client, alice, group)
        assert a["owes_to"] == []
        assert _debts(a["owed_by"]) == [(bob["id"], "30.00")]

    def test_opposite_expenses_net_out(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)
        make_expense(
            client, alice["token"], group["id"],
            paid_by=alice["id"], amount="50.00",
            splits=[
                {"user_id": alice["id"], "amount": "25.00"},
                {"user_id": bob["id"],   "amount": "25.00"},
            ],
        )

        a = _balance(client, alice, group)
        b = _balance(client, bob, group)

        assert _debts(a["owes_to"]) == [(bob["id"], "75.00")]
        assert a["owed_by"] == []
        assert b["owes_to"] == []

    def test_owes_to_is_sorted_by_amount_descending(self, client):
        alice, bob, group = _setup(client)
        carol = make_user(client, 3, "carol")
        add_member(client, alice["token"], group["id"], carol["email"])
        make_expense(
            client, bob["token"], group["id"],
            paid_by=bob["id"], amount="20.00",
            splits=[
                {"user_id": alice["id"], "amount": "10.00"},
                {"user_id": bob["id"],   "amount": "10.00"},
            ],
        )
        make_expense(
            client, carol["token"], group["id"],
            paid_by=carol["id"], amount="60.00",
            splits=[
                {"user_id": alice["id"], "amount": "30.00"},
                {"user_id": carol["id"], "amount": "30.00"},
            ],
        )

        a = _balance(client, alice, group)

        assert _debts(a["owes_to"]) == [(carol["id"], "30.00"), (bob["id"], "10.00")]
        assert a["owes_to"][0]["user_name"] == carol["email"]

    def test_two_reads_without_writes_are_identical(self, client):
        alice, bob, group = _setup(client)
        _bob_pays_200_half_each(client, alice, bob, group)
        make_payment(
            client, alice["token"], group["id"],
            from_user_id=alice["id"], to_user_id=bob["id"], amount="25.00",
        )

        assert _balance(client, alice, group) == _balance(client, alice, group)

    def test_deleted_expense_is_excluded(self, client):
        alice, bob, group = _setup(client)
        expense = _bob_pays_200_half_each(client, alice, bob, group)

        resp = client.delete(
            f"/api/v1/groups/{group['id']}/expenses/{expense['id']}",
            headers=auth_headers(alice["token"]),
        )
        assert resp.status_code == 200

        a = _balance(client, alice, group)
        assert a["owes_to"] == []
        assert a["total_owed"] == "0.00"
        assert a["net_balance"] == "0.00"

    def test_member_without_activity_gets_zero_shape(self, client):
        alice, bob, group = _setup(client)

        a = _balance(client, alice, group)

        assert a == {
            "group_id": group["id"],
            "user_id": alice["id"],
            "total_paid": "0.00",
            "total_owed": "0.00",
            "net_balance": "0.00",
            "owes_to": [],
            "owed_by": [],
        }

    def test_non_member_is_forbidden(self, client):
        alice, bob, group = _setup(client)
        dave = make_user(client, 4, "dave")

        resp = get_group_balance(client, dave["token"], group["id"])

        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "FORBIDDEN"

    def test_unknown_group_returns_404(self, client):
        alice, bob, group = _setup(client)

        resp = get_group_balance(client, alice["token"], 99999)

        assert resp.status_code == 404


# ═══════════════════════════════════════════════════════════════════════════
# GET /balances
# ═══════════════════════════════════════════════════════════════════════════

class TestGlobalBalance:

    def _get(self, client, user) -> dict:
        resp = client.get("/api/v1/balances", headers=auth_headers(user["token"]))
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()["data"]

    def test_sums_across_groups(self, client):
        alice, bob, group = _setup(client)
        trip = make_group(client, alice["token"], "Trip")
        add_member(client, alice["token"], trip["id"], bob["email"])

        _bob_pays_200_half_each(client, alice, bob, group)
        _bob_pays_200_half_each(client, alice, bob, trip)

        a = self._get(client, alice)

        assert a["user_id"] == alice["id"]
        assert _debts(a["owes_to"]) == [(bob["id"], "200.00")]
        assert a["total_owed"] == "200.00"
        assert a["net_balance"] == "-200.00"
        assert "group_id" not in a

    def test_pair_nets_across_groups(self, client):
        """Alice owes Bob 100 in one group, Bob owes Alice 30 in another."""
        alice, bob, group = _setup(client)
        trip = make_group(client, alice["token"], "Trip")
        add_member(client, alice["token"], trip["id"], bob["email"])

        _bob_pays_200_half_each(client, alice, bob, group)
        make_expense(
            client, alice["token"], trip["id"],
            paid_by=alice["id"], amount="60.00",
            splits=[
                {"user_id": alice["id"], "amount": "30.00"},
                {"user_id": bob["id"],   "amount": "30.00"},
            ],
        )

        a = self._get(client, alice)
        b = self._get(client, bob)

        assert _debts(a["owes_to"]) == [(bob["id"], "70.00")]
        assert a["owed_by"] == []
        assert _debts(b["owed_by"]) == [(alice["id"], "70.00")]
        assert b["owes_to"] == []

    def test_ignores_groups_the_user_is_not_in(self, client):
        alice, bob, group = _setup(client)
        carol = make_user(client, 3, "carol")
        other = make_group(client, bob["token"], "Bob and Carol")
        add_member(client, bob["token"], other["id"], carol["email"])
        make_expense(
            client, bob["token"], other["id"],
            paid_by=bob["id"], amount="80.00",
            splits=[
                {"user_id": bob["id"],   "amount": "40.00"},
                {"user_id": carol["id"], "amount": "40.00"},
            ],
        )

        a = self._get(client, alice)

        assert a["owes_to"] == [] and a["owed_by"] == []
        assert a["total_paid"] == "0.00"

    def test_user_without_groups_gets_zero_shape(self, client):
        erin = make_user(client, 5, "erin")

        assert self._get(client, erin) == {
            "user_id": erin["id"],
            "total_paid": "0.00",
            "total_owed": "0.00",
            "net_balance": "0.00",
            "owes_to": [],
            "owed_by": [],
        }

    def test_requires_authentication(self, client):
        resp = client.get("/api/v1/balances")

        assert resp.status_code == 401
