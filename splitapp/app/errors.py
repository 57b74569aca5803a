"""
errors.py — AppError base class and error code registry.

Every error returned by the API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - `details` carries the full list of violated rules (validation) or the
    offending ids (membership), so clients can highlight every problem at once.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
            details: list | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field    # which request field caused the error
        self.details     = details

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = list(self.details)
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# These are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Input Errors (400) ─────────────────────────────────────────────────
    VALIDATION_FAILED          = "VALIDATION_FAILED"
    INVALID_SPLIT_INPUT        = "INVALID_SPLIT_INPUT"
    USERS_NOT_MEMBERS          = "USERS_NOT_MEMBERS"
    EXPENSE_NOT_IN_GROUP       = "EXPENSE_NOT_IN_GROUP"
    SELF_PAYMENT               = "SELF_PAYMENT"

    # ── Conflict Errors (400, 409) ─────────────────────────────────────────
    # Business invariants that would be broken by the action. Not retryable
    # until the underlying state changes.
    CANNOT_REMOVE_SELF         = "CANNOT_REMOVE_SELF"     # 400
    LAST_ADMIN                 = "LAST_ADMIN"             # 400
    MEMBER_HAS_EXPENSES        = "MEMBER_HAS_EXPENSES"    # 400
    GROUP_HAS_EXPENSES         = "GROUP_HAS_EXPENSES"     # 400
    ALREADY_MEMBER             = "ALREADY_MEMBER"         # 409

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    MEMBER_NOT_FOUND           = "MEMBER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403 — not a member
    INSUFFICIENT_ROLE          = "INSUFFICIENT_ROLE"      # 403 — member, not admin

    # ── System Errors (500) ────────────────────────────────────────────────
    STORE_FAILURE              = "STORE_FAILURE"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # Equal-split amounts were re-derived server-side and differ from what the
    # client sent by at most one minor unit.
    SPLIT_AMOUNTS_NORMALISED = "SPLIT_AMOUNTS_NORMALISED"
