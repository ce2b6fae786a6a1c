"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The session JWT (see auth.tokens.encode_session_token) is read from, in order:
  1. the "session_token" cookie -- set by POST /auth/sign-in for browsers.
  2. an Authorization: Bearer <token> header -- API clients.

The JWT only names the session. Every request is checked against the stored
session by AuthService.validate_session(), so sign-out and password changes
take effect immediately.

get_current_session() raises HTTP 401 if unauthenticated, carrying the
failure code (SESSION_EXPIRED, SESSION_INVALID, ...) when a session was named.

Layer rule: this module may import from fastapi because it is part of the
FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import HTTPException, Request

from auth.models import Identity
from auth.tokens import decode_session_token
from core.result import ErrorCode, Failure

SESSION_COOKIE = "session_token"

STATUS_BY_CODE = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_CREDENTIALS: 401,
    ErrorCode.SESSION_NOT_FOUND: 401,
    ErrorCode.SESSION_EXPIRED: 401,
    ErrorCode.SESSION_INVALID: 401,
    ErrorCode.IDENTITY_NOT_FOUND: 404,
    ErrorCode.SESSION_DUPLICATE: 409,
    ErrorCode.ACCOUNT_LOCKED: 423,
    ErrorCode.RATE_LIMITED: 429,
    ErrorCode.UNEXPECTED_ERROR: 500,
}


@dataclass(frozen=True)
class CurrentSession:
    """An authenticated request: the identity plus the session triple it presented."""

    identity: Identity
    session_id: str
    access_token: str


def read_session_token(request: Request) -> str | None:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def _authenticate(request: Request) -> CurrentSession | Failure | None:
    token = read_session_token(request)
    if token is None:
        return None
    service = request.app.state.auth
    payload = decode_session_token(service.settings.secret_key, token)
    if payload is None:
        return None
    result = service.validate_session(payload["sub"], payload["sid"], payload["tok"])
    if isinstance(result, Failure):
        return result
    return CurrentSession(identity=result.data, session_id=payload["sid"], access_token=payload["tok"])


def failure_to_http(result: Failure) -> HTTPException:
    """Map a Failure onto an HTTPException whose detail is the {code, message} pair.

    retry_after_ms, when present, becomes a Retry-After header in whole seconds.
    """
    headers = None
    retry_after_ms = result.details.get("retry_after_ms")
    if retry_after_ms is not None:
        headers = {"Retry-After": str(max(1, -(-int(retry_after_ms) // 1000)))}
    return HTTPException(
        status_code=STATUS_BY_CODE.get(result.code, 500),
        detail={"code": result.code, "message": result.message},
        headers=headers,
    )


def get_current_session(request: Request) -> CurrentSession:
    """Require a valid session. Raises HTTPException carrying the failure code.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(current: CurrentSession = Depends(get_current_session)): ...
    """
    outcome = _authenticate(request)
    if isinstance(outcome, CurrentSession):
        return outcome
    if isinstance(outcome, Failure):
        raise failure_to_http(outcome)
    raise HTTPException(
        status_code=401,
        detail={"code": ErrorCode.SESSION_NOT_FOUND, "message": "Authentication required."},
    )
