"""
errors.py — AppError base class, engine error taxonomy and code registry.

Every error returned by the GroupLedger API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).

Engine errors (InvalidInput, SplitPersistenceError, BalanceComputationError)
are AppError subclasses so that anything escaping a service reaches the
client through the same global handler, with the same envelope.
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
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT             = "INVALID_AMOUNT"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CURRENCY           = "INVALID_CURRENCY"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    TRANSACTION_NOT_FOUND      = "TRANSACTION_NOT_FOUND"

    # ── Business Rule Violations (422) ────────────────────────────────────
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    SPLIT_USER_NOT_MEMBER      = "SPLIT_USER_NOT_MEMBER"
    EMPTY_SPLIT                = "EMPTY_SPLIT"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed (unauthorized)
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── Engine Errors ──────────────────────────────────────────────────────
    SPLIT_PERSISTENCE_FAILED   = "SPLIT_PERSISTENCE_FAILED"    # 500
    BALANCE_COMPUTATION_FAILED = "BALANCE_COMPUTATION_FAILED"  # 503

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # The transaction row was written but its split rows were not.
    # The transaction amount stays authoritative; splits can be repaired
    # later through POST /transactions/:id/splits/repair.
    SPLITS_NOT_PERSISTED      = "SPLITS_NOT_PERSISTED"

    # One group's balances could not be computed; the overall view was
    # built from the remaining groups.
    GROUP_BALANCE_UNAVAILABLE = "GROUP_BALANCE_UNAVAILABLE"


# ── Engine error taxonomy ──────────────────────────────────────────────────

class InvalidInput(AppError):
    """Raised synchronously by the allocator and calculator on bad input."""

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.INVALID_FIELD,
            field: str | None = None,
    ) -> None:
        super().__init__(code, message, 400, field=field)


class SplitPersistenceError(AppError):
    """Recomputed split rows could not be written for a transaction."""

    def __init__(self, transaction_id: int, message: str) -> None:
        super().__init__(ErrorCode.SPLIT_PERSISTENCE_FAILED, message, 500)
        self.transaction_id = transaction_id


class BalanceComputationError(AppError):
    """Reading a group's ledger failed while computing its balances."""

    def __init__(self, group_id: str, message: str) -> None:
        super().__init__(ErrorCode.BALANCE_COMPUTATION_FAILED, message, 503)
        self.group_id = group_id
