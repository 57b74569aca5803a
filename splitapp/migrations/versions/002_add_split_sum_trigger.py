"""Add split sum integrity trigger (DB enforcement of splits ≈ payers).

Revision: 002_add_split_sum_trigger
Created:  2026-10-18

For every expense:
    |SUM(expense_splits.amount) - SUM(expense_payers.amount)| <= 0.01

The service layer already guarantees this (expense_validator +
split_calculator); the trigger is the last line of defence against writes
that bypass the service.

Why a trigger and not a CHECK constraint:
  CHECK constraints are evaluated per-row in isolation and cannot aggregate
  sibling rows in other tables.

Trigger design:
  Function : fn_check_expense_split_sum()
    - Determines the affected expense_id from NEW (INSERT/UPDATE) or
      OLD (DELETE).
    - Compares the split total with the payer total for that expense.
    - Raises EXCEPTION (SQLSTATE '23514' — check_violation) when they differ
      by more than one minor unit.

  Triggers : trg_expense_splits_sum_check, trg_expense_payers_sum_check
    - AFTER INSERT OR UPDATE OR DELETE, FOR EACH ROW
    - DEFERRABLE INITIALLY DEFERRED: they fire at COMMIT. expense_service
      deletes all children, flushes, then inserts the new ones; the
      intermediate states are inconsistent by construction.

  Deleting an expense cascades to both child tables; at commit both sums
  are 0 and the check passes.

PostgreSQL only. SQLite test databases are built with db.create_all() and
never run this migration.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a change is needed, create a new corrective migration.
"""

from __future__ import annotations

from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "002_add_split_sum_trigger"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


# ── SQL definitions ────────────────────────────────────────────────────────
#
# Defined as module-level constants so upgrade() and downgrade() reference
# the same names, and so the SQL is easy to review in isolation.

_CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION fn_check_expense_split_sum()
RETURNS TRIGGER
LANGUAGE plpgsql
AS $$
DECLARE
    v_expense_id  INTEGER;
    v_split_sum   NUMERIC(12, 2);
    v_payer_sum   NUMERIC(12, 2);
BEGIN
    IF TG_OP = 'DELETE' THEN
        v_expense_id := OLD.expense_id;
    ELSE
        v_expense_id := NEW.expense_id;
    END IF;

    SELECT COALESCE(SUM(amount), 0)
    INTO v_split_sum
    FROM expense_splits
    WHERE expense_id = v_expense_id;

    SELECT COALESCE(SUM(amount), 0)
    INTO v_payer_sum
    FROM expense_payers
    WHERE expense_id = v_expense_id;

    IF ABS(v_split_sum - v_payer_sum) > 0.01 THEN
        RAISE EXCEPTION
            'split sum (%) does not match payer sum (%) for expense id=%',
            v_split_sum, v_payer_sum, v_expense_id
            USING ERRCODE = '23514';  -- check_violation
    END IF;

    -- Ignored for AFTER triggers, but required by plpgsql.
    IF TG_OP = 'DELETE' THEN
        RETURN OLD;
    ELSE
        RETURN NEW;
    END IF;
END;
$$;
"""

_CREATE_TRIGGERS = [
    """
CREATE CONSTRAINT TRIGGER trg_expense_splits_sum_check
    AFTER INSERT OR UPDATE OR DELETE
    ON expense_splits
    DEFERRABLE INITIALLY DEFERRED
    FOR EACH ROW
    EXECUTE FUNCTION fn_check_expense_split_sum();
""",
    """
CREATE CONSTRAINT TRIGGER trg_expense_payers_sum_check
    AFTER INSERT OR UPDATE OR DELETE
    ON expense_payers
    DEFERRABLE INITIALLY DEFERRED
    FOR EACH ROW
    EXECUTE FUNCTION fn_check_expense_split_sum();
""",
]

_DROP_TRIGGERS = [
    "DROP TRIGGER IF EXISTS trg_expense_payers_sum_check ON expense_payers;",
    "DROP TRIGGER IF EXISTS trg_expense_splits_sum_check ON expense_splits;",
]
_DROP_FUNCTION = "DROP FUNCTION IF EXISTS fn_check_expense_split_sum();"


def upgrade() -> None:
    """Creates the backing function first, then both constraint triggers."""
    op.execute(_CREATE_FUNCTION)
    for statement in _CREATE_TRIGGERS:
        op.execute(statement)


def downgrade() -> None:
    """Drops the triggers (they reference the function), then the function."""
    for statement in _DROP_TRIGGERS:
        op.execute(statement)
    op.execute(_DROP_FUNCTION)
