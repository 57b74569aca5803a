"""
services/balance_service.py — Balance computation.

This file is the SINGLE SOURCE OF TRUTH for how balances are computed.
The reduction must not be reimplemented elsewhere in the codebase.

Balances are a pure reduction over the full expense + payment history of a
scope (one group, or every group a user belongs to). Nothing is maintained
incrementally; recomputation is always correct.

Reduction (build_ledger):
  1. For each expense, every split participant owes every payer a share of
     their split amount proportional to that payer's contribution:
         split.amount * payer.amount / sum(payer amounts)
     A participant never owes themself.
  2. A payment {from, to, amount} adds a reverse edge to → from, which is
     the same as reducing what `from` owes `to`.
  3. Parallel edges between the same ordered pair are summed.

Netting (net_pairs):
  Each unordered pair {A, B} collapses to one direction and one amount.
  A pair whose net is within BALANCE_TOLERANCE is settled and dropped.

Per-user totals:
  total_paid  = sum of payer amounts for the user
  total_owed  = sum of split amounts for the user
  net_balance = total_paid - total_owed + payments sent - payments received

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Pure functions take any objects with the model attribute names, so they
    are unit-testable with SimpleNamespace fixtures and no database.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from splitapp.app.cache import global_balance_key, group_ledger_key
from splitapp.app.extensions import balance_cache
from splitapp.app.models.expense import Expense
from splitapp.app.models.membership import Membership
from splitapp.app.models.payment import Payment
from splitapp.app.models.profile import Profile
from splitapp.app.services import membership_service

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

# Pairs whose net debt is not above one minor currency unit are settled.
BALANCE_TOLERANCE = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _money_map() -> defaultdict[int, Decimal]:
    return defaultdict(lambda: ZERO)


@dataclass
class Ledger:
    """
    Reduced state of one or more groups.

    edges maps (debtor_id, creditor_id) to the gross amount owed along that
    direction, before pair netting.
    """
    edges: defaultdict[tuple[int, int], Decimal] = field(default_factory=lambda: defaultdict(lambda: ZERO))
    paid: defaultdict[int, Decimal] = field(default_factory=_money_map)
    owed: defaultdict[int, Decimal] = field(default_factory=_money_map)
    sent: defaultdict[int, Decimal] = field(default_factory=_money_map)
    received: defaultdict[int, Decimal] = field(default_factory=_money_map)

    def merge(self, other: "Ledger") -> "Ledger":
        """Adds another ledger into this one (edges and totals). Returns self."""
        for mine, theirs in (
            (self.edges, other.edges),
            (self.paid, other.paid),
            (self.owed, other.owed),
            (self.sent, other.sent),
            (self.received, other.received),
        ):
            for key, amount in theirs.items():
                mine[key] += amount
        return self


# ── Core algorithms ────────────────────────────────────────────────────────

def build_ledger(expenses: Iterable, payments: Iterable) -> Ledger:
    """
    Reduces expenses (with loaded .payers and .splits) and payments into a
    Ledger. See the module docstring for the rules.
    """
    ledger = Ledger()

    for expense in expenses:
        total_paid = sum((p.amount for p in expense.payers), ZERO)

        for payer in expense.payers:
            ledger.paid[payer.paid_by] += payer.amount
        for split in expense.splits:
            ledger.owed[split.user_id] += split.amount

        # An expense with no payer amount has nobody to owe.
        if total_paid <= ZERO:
            continue

        for split in expense.splits:
            for payer in expense.payers:
                if payer.paid_by == split.user_id:
                    continue
                share = split.amount * payer.amount / total_paid
                ledger.edges[(split.user_id, payer.paid_by)] += share

    for payment in payments:
        ledger.edges[(payment.to_user_id, payment.from_user_id)] += payment.amount
        ledger.sent[payment.from_user_id] += payment.amount
        ledger.received[payment.to_user_id] += payment.amount

    return ledger


def net_pairs(edges: dict[tuple[int, int], Decimal]) -> dict[tuple[int, int], Decimal]:
    """
    Collapses each unordered pair to a single (debtor, creditor) direction.

    The larger direction wins; the amount is the difference, rounded to the
    cent. Pairs within BALANCE_TOLERANCE are omitted entirely.
    """
    netted: dict[tuple[int, int], Decimal] = {}
    seen: set[frozenset[int]] = set()

    for (a, b) in edges:
        pair = frozenset((a, b))
        if a == b or pair in seen:
            continue
        seen.add(pair)

        net = _money(edges.get((a, b), ZERO) - edges.get((b, a), ZERO))
        if abs(net) <= BALANCE_TOLERANCE:
            continue
        if net > 0:
            netted[(a, b)] = net
        else:
            netted[(b, a)] = -net

    return netted


def _sorted_debts(debts: dict[int, Decimal]) -> list[dict]:
    ordered = sorted(debts.items(), key=lambda item: (-item[1], item[0]))
    return [{"user_id": uid, "amount": amount} for uid, amount in ordered]


def summarize(user_id: int, ledger: Ledger) -> dict:
    """
    The balance view of one user over a ledger.

    Returns an all-zero shape (not an error) when the user has no activity.
    owes_to / owed_by are sorted by amount descending, then user_id.
    """
    owes_to: dict[int, Decimal] = {}
    owed_by: dict[int, Decimal] = {}
    for (debtor, creditor), amount in net_pairs(ledger.edges).items():
        if debtor == user_id:
            owes_to[creditor] = amount
        elif creditor == user_id:
            owed_by[debtor] = amount

    total_paid = _money(ledger.paid.get(user_id, ZERO))
    total_owed = _money(ledger.owed.get(user_id, ZERO))
    net_balance = _money(
        total_paid
        - total_owed
        + ledger.sent.get(user_id, ZERO)
        - ledger.received.get(user_id, ZERO)
    )

    return {
        "user_id": user_id,
        "total_paid": total_paid,
        "total_owed": total_owed,
        "net_balance": net_balance,
        "owes_to": _sorted_debts(owes_to),
        "owed_by": _sorted_debts(owed_by),
    }


# ── Data access helpers ────────────────────────────────────────────────────

def get_group_expenses(group_ids: list[int], session: Session) -> list[Expense]:
    """Expenses of the given groups with payers and splits eagerly loaded."""
    if not group_ids:
        return []
    stmt = (
        select(Expense)
        .where(Expense.group_id.in_(group_ids))
        .options(selectinload(Expense.payers), selectinload(Expense.splits))
    )
    return list(session.execute(stmt).scalars().all())


def get_group_payments(group_ids: list[int], session: Session) -> list[Payment]:
    if not group_ids:
        return []
    stmt = select(Payment).where(Payment.group_id.in_(group_ids))
    return list(session.execute(stmt).scalars().all())


def get_user_group_ids(user_id: int, session: Session) -> list[int]:
    """Ids of every group the user currently belongs to."""
    stmt = (
        select(Membership.group_id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.group_id)
    )
    return list(session.execute(stmt).scalars().all())


def _group_ledger(group_id: int, session: Session) -> Ledger:
    """The group's Ledger, served from the balance cache when fresh."""
    key = group_ledger_key(group_id)
    ledger = balance_cache.get(key)
    if ledger is None:
        ledger = build_ledger(
            get_group_expenses([group_id], session),
            get_group_payments([group_id], session),
        )
        balance_cache.set(key, ledger)
    return ledger


def _user_name(profile: Profile | None, user_id: int) -> str:
    if profile is None:
        return f"User {user_id}"
    return profile.full_name or profile.email


def _with_user_names(summary: dict, session: Session) -> dict:
    """Adds user_name to every owes_to / owed_by entry (one profile query)."""
    user_ids = {d["user_id"] for d in summary["owes_to"]} | {d["user_id"] for d in summary["owed_by"]}
    profiles: dict[int, Profile] = {}
    if user_ids:
        rows = session.execute(select(Profile).where(Profile.id.in_(user_ids))).scalars().all()
        profiles = {p.id: p for p in rows}

    def enrich(debts: list[dict]) -> list[dict]:
        return [
            {
                "user_id": d["user_id"],
                "user_name": _user_name(profiles.get(d["user_id"]), d["user_id"]),
                "amount": d["amount"],
            }
            for d in debts
        ]

    return {**summary, "owes_to": enrich(summary["owes_to"]), "owed_by": enrich(summary["owed_by"])}


# ── Public service functions ───────────────────────────────────────────────

def compute_group_balance(group_id: int, user_id: int, session: Session) -> dict:
    """
    Balance of `user_id` within one group.

    Raises:
        AppError(GROUP_NOT_FOUND, 404)
        AppError(FORBIDDEN, 403)  -- user is not a member of the group.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(user_id, group_id, session)

    summary = summarize(user_id, _group_ledger(group_id, session))
    return {"group_id": group_id, **_with_user_names(summary, session)}


def compute_global_balance(user_id: int, session: Session) -> dict:
    """
    Balance of `user_id` across every group they belong to. Pair debts are
    netted across groups, so A owing B in one group and B owing A in another
    cancel out.
    """
    key = global_balance_key(user_id)
    cached = balance_cache.get(key)
    if cached is not None:
        return cached

    ledger = Ledger()
    for group_id in get_user_group_ids(user_id, session):
        ledger.merge(_group_ledger(group_id, session))

    result = _with_user_names(summarize(user_id, ledger), session)
    balance_cache.set(key, result)
    return result
