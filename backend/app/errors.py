"""
errors.py — AppError base class and error code registry.

Every error returned by the Donna API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Validation failures are raised before any write; a service that raises
    never leaves a partially flushed unit of work behind (the error handler
    rolls the session back).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
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
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_ENUM_VALUE         = "INVALID_ENUM_VALUE"
    NON_POSITIVE_AMOUNT        = "NON_POSITIVE_AMOUNT"
    AMOUNT_TOO_LARGE           = "AMOUNT_TOO_LARGE"
    FUTURE_ENTRY_DATE          = "FUTURE_ENTRY_DATE"
    ENTRY_DATE_TOO_OLD         = "ENTRY_DATE_TOO_OLD"
    PAYMENT_METHOD_MISMATCH    = "PAYMENT_METHOD_MISMATCH"
    INVALID_DATE_RANGE         = "INVALID_DATE_RANGE"
    RESERVED_NOTES             = "RESERVED_NOTES"          # notes start with the settlement marker

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    # Ownership mismatches also surface as 404: entries of other users are
    # indistinguishable from missing ones.
    ENTRY_NOT_FOUND            = "ENTRY_NOT_FOUND"
    SETTLEMENT_NOT_FOUND       = "SETTLEMENT_NOT_FOUND"
    PARTY_NOT_FOUND            = "PARTY_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    INVALID_ENTRY_TYPE         = "INVALID_ENTRY_TYPE"      # only Credit/Advance settle
    ALREADY_SETTLED            = "ALREADY_SETTLED"
    INVALID_AMOUNT             = "INVALID_AMOUNT"          # settlement amount <= 0
    EXCEEDS_OUTSTANDING        = "EXCEEDS_OUTSTANDING"
    NOT_A_SETTLEMENT           = "NOT_A_SETTLEMENT"
    ENTRY_SETTLED              = "ENTRY_SETTLED"           # settled entries are history
    REALIZATION_ENTRY_READONLY = "REALIZATION_ENTRY_READONLY"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    ENTRY_HAS_SETTLEMENTS      = "ENTRY_HAS_SETTLEMENTS"
    DUPLICATE_PARTY_NAME       = "DUPLICATE_PARTY_NAME"
    # Realization entry whose source cannot be resolved. Indicates broken
    # linkage data, not a user mistake.
    ORPHANED_SETTLEMENT        = "ORPHANED_SETTLEMENT"

    # ── Auth Errors (401) ──────────────────────────────────────────────────
    TOKEN_MISSING              = "TOKEN_MISSING"
    TOKEN_INVALID              = "TOKEN_INVALID"
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"

    # ── Routing Errors ─────────────────────────────────────────────────────
    ROUTE_NOT_FOUND            = "ROUTE_NOT_FOUND"         # 404, unknown URL
    METHOD_NOT_ALLOWED         = "METHOD_NOT_ALLOWED"      # 405

    # ── System Errors ──────────────────────────────────────────────────────
    STORE_ERROR                = "STORE_ERROR"             # 503, retryable
    INTERNAL_ERROR             = "INTERNAL_ERROR"          # 500
