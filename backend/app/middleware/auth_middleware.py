"""
middleware/auth_middleware.py — Bearer-token verification for ledger routes.

Tokens are issued by the external identity provider (the Donna web app's
auth service). This API never signs tokens: it verifies the signature with
the shared JWT_SECRET_KEY, requires the `exp` and `sub` claims, checks the
audience when JWT_AUDIENCE is configured, and exposes the tenant id as
flask.g.user_id.

Ownership is not checked here. Every service query is scoped by user_id, so
another tenant's rows are simply not found (404).

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, wrong audience,
                         missing claim or unusable sub
  TOKEN_EXPIRED  (401) — exp is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode

# Tenant ids are stored in VARCHAR(64) user_id columns.
MAX_USER_ID_LENGTH = 64

_REQUIRED_CLAIMS = ["exp", "sub"]


def require_auth(f: Callable) -> Callable:
    """
    Route decorator: verifies the bearer token and sets flask.g.user_id.

    Failures raise AppError; the global error handler renders them.

    Usage:
        @entries_bp.route("/entries")
        @require_auth
        def list_entries():
            user_id = g.user_id
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _authenticate_request() -> str:
    """Returns the tenant id for the current request or raises AppError (401)."""
    claims = _decode_token(_bearer_token())
    return _user_id_from_claims(claims)


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    scheme, _, token = auth_header.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return token


def _decode_token(raw_token: str) -> dict:
    config = current_app.config
    audience = config.get("JWT_AUDIENCE")

    try:
        return jwt.decode(
            raw_token,
            config["JWT_SECRET_KEY"],
            algorithms=[config.get("JWT_ALGORITHM", "HS256")],
            audience=audience,
            options={
                "require": _REQUIRED_CLAIMS,
                "verify_aud": audience is not None,
            },
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Sign in again to obtain a new one.",
            401,
        )
    except jwt.MissingRequiredClaimError as exc:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            f"The access token is missing the required '{exc.claim}' claim.",
            401,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )


def _user_id_from_claims(claims: dict) -> str:
    user_id = str(claims["sub"]).strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )
    return user_id
