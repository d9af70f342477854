"""
middleware/auth_middleware.py — Bearer token authentication decorator.

Users are owned by an external identity provider. GroupLedger never issues
tokens; it only verifies them:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Verifies the JWT signature with JWT_SECRET_KEY / JWT_ALGORITHM
  3. Checks expiry and, when JWT_AUDIENCE is configured, the aud claim
  4. Attaches the opaque user id (the `sub` claim, a string) to flask.g
  5. Raises the matching 401 AppError if any step fails

Strict responsibility boundary:
  - Middleware = authentication (401). It never checks group membership or
    ownership; services raise 403 FORBIDDEN for that.
  - Services receive user_id as a plain string argument, with no knowledge
    of JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from groupledger.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces bearer-token authentication.

    Usage:
        @balances_bp.route("/balances")
        @require_auth
        def get_overall_balances():
            user_id = g.user_id  # always a non-empty str when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.user_id.

    Raises AppError on any failure; the global error handler turns it into
    the JSON envelope.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    audience = current_app.config.get("JWT_AUDIENCE")
    try:
        payload = jwt.decode(
            parts[1],
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={"verify_aud": audience is not None},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Obtain a new one from your identity provider.",
            401,
        )
    except jwt.InvalidTokenError:
        # Bad signature, malformed token, wrong audience, etc.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract the sub (user id) claim ───────────────────────────
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub.strip():
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is missing a valid 'sub' claim.",
            401,
        )

    g.user_id = sub
