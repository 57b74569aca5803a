"""
services/expense_service.py — Expense ledger: create / update / delete / list.

An expense is written as ONE unit: the Expense row plus its payer and split
rows. Children are always fully replaced (delete old, flush, insert new),
never patched. The route commits once after the service returns; any error
before that rolls the whole unit back (see the error handlers in
app/__init__.py), so a failure never leaves stale or half-written children.

Write pipeline (create and update):
  1. expense_validator.validate_expense   — VALIDATION_FAILED (400), all rules
  2. amounts rounded half-up to the cent, sum re-checked
                                          — VALIDATION_FAILED (400)
  3. group exists, caller is a member     — GROUP_NOT_FOUND (404) / FORBIDDEN (403)
  4. (update) expense exists and belongs to the group
                                          — EXPENSE_NOT_FOUND (404) / EXPENSE_NOT_IN_GROUP (400)
  5. payer + every split user are members, ONE query
                                          — USERS_NOT_MEMBERS (400)
  6. split_calculator consistency         — equal splits are re-derived
  7. persist; the route commits, then invalidates the returned cache keys

Equal splits:
  When every submitted split is explicitly `equal`, the server re-derives
  the shares with split_calculator in the submitted order. Each submitted
  amount must be within 0.01 of the derived share; the derived shares are
  what gets stored, and a SPLIT_AMOUNTS_NORMALISED warning is returned when
  they differ from what was sent. Untyped splits are stored as submitted.

Authorization: any group member may create, edit or delete an expense.
`created_by` is set once and never rewritten by an update.

Layer rules:
  - No Flask imports. Receives plain ints and dicts; returns ORM objects.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import NamedTuple

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from splitapp.app.cache import CacheKey, keys_for_group_write
from splitapp.app.errors import AppError, ErrorCode, WarningCode
from splitapp.app.models.expense import Currency, Expense, SplitType
from splitapp.app.models.payer import ExpensePayer
from splitapp.app.models.profile import Profile
from splitapp.app.models.split import ExpenseSplit
from splitapp.app.services import membership_service
from splitapp.app.services.expense_validator import (
    SUM_TOLERANCE,
    round_to_cents,
    validate_expense,
)
from splitapp.app.services.split_calculator import compute_splits

logger = logging.getLogger(__name__)


class LedgerWrite(NamedTuple):
    expense: Expense
    warnings: list[dict]
    stale_keys: list[CacheKey]


class ExpensePage(NamedTuple):
    expenses: list[Expense]
    profiles: dict[int, Profile]
    count: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.count / self.limit) if self.limit else 0


# ── Private helpers ────────────────────────────────────────────────────────

def _get_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Returns the Expense or raises EXPENSE_NOT_FOUND (404)."""
    expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def _require_expense_in_group(expense: Expense, group_id: int) -> None:
    if expense.group_id != group_id:
        raise AppError(
            ErrorCode.EXPENSE_NOT_IN_GROUP,
            f"Expense {expense.id} does not belong to group {group_id}.",
            400,
        )


def _validate_submission(data: dict) -> dict:
    """
    Loads the body through the validator and rounds it to the cent.

    Returns the loaded submission (Decimal amounts, int ids); raises
    VALIDATION_FAILED with every message otherwise.
    """
    result = validate_expense(data)
    errors = list(result.errors)
    submission = None
    if result.valid:
        submission, errors = round_to_cents(result.data)

    if errors:
        raise AppError(
            ErrorCode.VALIDATION_FAILED,
            "Expense validation failed.",
            400,
            details=errors,
        )
    return submission


def _participants(submission: dict) -> tuple[int, list[int]]:
    """(paid_by, split user ids in submitted order) from a loaded submission."""
    return submission["paid_by"], [s["user_id"] for s in submission["splits"]]


def _existing_participants(expense: Expense) -> set[int]:
    return {p.paid_by for p in expense.payers} | {s.user_id for s in expense.splits}


def _resolve_split_rows(submission: dict) -> tuple[list[dict], list[dict]]:
    """
    Runs the split calculator over a loaded submission.

    Only an all-`equal` split set is re-derived. Untyped splits keep their
    submitted amounts and are stored as `exact`.

    Returns (rows, warnings) where each row is
    {user_id, amount, split_type, percentage, shares}.
    """
    total = submission["amount"]
    splits = submission["splits"]
    participant_ids = [s["user_id"] for s in splits]
    submitted = {s["user_id"]: s["amount"] for s in splits}
    given_types = [s.get("split_type") for s in splits]

    warnings: list[dict] = []
    if all(t == SplitType.EQUAL.value for t in given_types):
        computed = compute_splits(total, participant_ids, SplitType.EQUAL)
        mismatches = [
            f"Split {i + 1}: amount {submitted[c['user_id']]:.2f} does not match "
            f"the equal share {c['amount']:.2f}"
            for i, c in enumerate(computed)
            if abs(c["amount"] - submitted[c["user_id"]]) > SUM_TOLERANCE
        ]
        if mismatches:
            raise AppError(
                ErrorCode.VALIDATION_FAILED,
                "Expense validation failed.",
                400,
                details=mismatches,
            )
        if any(c["amount"] != submitted[c["user_id"]] for c in computed):
            warnings.append({
                "code": WarningCode.SPLIT_AMOUNTS_NORMALISED,
                "message": "Equal split amounts were recalculated to sum exactly to the expense amount.",
            })
        split_types = [SplitType.EQUAL] * len(computed)
    else:
        computed = compute_splits(total, participant_ids, SplitType.EXACT, exact_amounts=submitted)
        split_types = [SplitType(t) if t else SplitType.EXACT for t in given_types]

    rows = []
    for split, row, split_type in zip(splits, computed, split_types):
        rows.append({
            "user_id": row["user_id"],
            "amount": row["amount"],
            "split_type": split_type,
            "percentage": split.get("percentage"),
            "shares": split.get("shares"),
        })
    return rows, warnings


def _delete_children(expense: Expense, session: Session) -> None:
    """
    Removes payer and split rows (delete-orphan cascade). Flushes so the
    re-inserted rows never collide with old ones on unique keys.
    """
    expense.payers.clear()
    expense.splits.clear()
    session.flush()


def _insert_children(
        expense: Expense,
        paid_by: int,
        total: Decimal,
        rows: list[dict],
        session: Session,
) -> None:
    expense.payers.append(ExpensePayer(paid_by=paid_by, amount=total))
    for row in rows:
        expense.splits.append(ExpenseSplit(**row))
    session.flush()


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        group_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> LedgerWrite:
    """
    Records a new expense with one payer and its splits.

    Args:
        group_id:  The group from the URL. Overrides any group_id in `data`.
        caller_id: The authenticated user (from flask.g); stored as created_by.
        data:      Raw JSON body: title, paid_by, amount, currency?, splits[].

    Returns:
        LedgerWrite(expense, warnings, stale cache keys). The route evicts
        the keys once its commit has succeeded.
    """
    submission = _validate_submission({**data, "group_id": group_id})

    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    paid_by, participant_ids = _participants(submission)
    membership_service.require_all_members([paid_by, *participant_ids], group_id, session)

    rows, warnings = _resolve_split_rows(submission)
    total = submission["amount"]

    expense = Expense(
        title=submission["title"].strip(),
        group_id=group_id,
        currency=Currency(submission.get("currency") or Currency.INR.value),
        created_by=caller_id,
    )
    session.add(expense)
    session.flush()  # populate expense.id before creating children

    _insert_children(expense, paid_by, total, rows, session)
    session.refresh(expense)

    logger.info(
        "Expense %s created in group %s by user %s (amount=%s, participants=%s)",
        expense.id, group_id, caller_id, total, len(rows),
    )
    return LedgerWrite(
        expense, warnings, keys_for_group_write(group_id, {paid_by, *participant_ids}),
    )


def update_expense(
        group_id: int,
        expense_id: int,
        caller_id: int,
        data: dict,
        session: Session,
) -> LedgerWrite:
    """
    Replaces an expense's title, currency, payer and splits.

    created_by is preserved. Cache keys of both the previous and the new
    participants are returned as stale, since either side's balances may move.
    """
    submission = _validate_submission({**data, "group_id": group_id})

    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    expense = _get_expense_or_404(expense_id, session)
    _require_expense_in_group(expense, group_id)

    paid_by, participant_ids = _participants(submission)
    membership_service.require_all_members([paid_by, *participant_ids], group_id, session)

    rows, warnings = _resolve_split_rows(submission)
    total = submission["amount"]
    previous_participants = _existing_participants(expense)

    expense.title = submission["title"].strip()
    if submission.get("currency"):
        expense.currency = Currency(submission["currency"])
    expense.updated_at = datetime.now(timezone.utc)

    _delete_children(expense, session)
    _insert_children(expense, paid_by, total, rows, session)
    session.refresh(expense)

    logger.info("Expense %s in group %s updated by user %s", expense_id, group_id, caller_id)
    return LedgerWrite(
        expense,
        warnings,
        keys_for_group_write(group_id, previous_participants | {paid_by, *participant_ids}),
    )


def delete_expense(
        group_id: int,
        expense_id: int,
        caller_id: int,
        session: Session,
) -> list[CacheKey]:
    """
    Hard-deletes an expense; payer and split rows go with it through the
    ORM delete-orphan cascade (and ON DELETE CASCADE at the DB level).

    Never blocks on other entities. Returns the cache keys the delete makes
    stale.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    expense = _get_expense_or_404(expense_id, session)
    _require_expense_in_group(expense, group_id)

    participants = _existing_participants(expense)
    session.delete(expense)
    session.flush()

    logger.info("Expense %s in group %s deleted by user %s", expense_id, group_id, caller_id)
    return keys_for_group_write(group_id, participants)


def list_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
        page: int = 1,
        limit: int = 50,
) -> ExpensePage:
    """
    Returns one page of a group's expenses, newest first, plus the profiles
    of everyone referenced on that page (creators, payers, split users),
    fetched in a single query.
    """
    membership_service.get_group_or_404(group_id, session)
    membership_service.require_member(caller_id, group_id, session)

    count = session.execute(
        select(func.count(Expense.id)).where(Expense.group_id == group_id)
    ).scalar_one()

    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .options(selectinload(Expense.payers), selectinload(Expense.splits))
        .order_by(Expense.created_at.desc(), Expense.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    expenses = list(session.execute(stmt).scalars().all())

    user_ids: set[int] = set()
    for expense in expenses:
        user_ids.add(expense.created_by)
        user_ids |= _existing_participants(expense)

    profiles: dict[int, Profile] = {}
    if user_ids:
        rows = session.execute(select(Profile).where(Profile.id.in_(user_ids))).scalars().all()
        profiles = {p.id: p for p in rows}

    return ExpensePage(expenses, profiles, count, page, limit)
