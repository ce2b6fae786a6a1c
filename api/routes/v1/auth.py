"""
api/routes/v1/auth.py -- Sign-in and session REST endpoints.

Routes:
  POST /api/v1/auth/sign-in   -- email/password sign-in; sets session cookie
  GET  /api/v1/auth/session   -- current session and identity (requires auth)
  POST /api/v1/auth/sign-out  -- deletes the presented session; clears cookie
  POST /api/v1/auth/refresh   -- rotate the session with its reset token
  POST /api/v1/auth/password  -- change password; revokes every session

Every core failure is mapped by auth.dependencies.failure_to_http, so the
HTTP status always follows the ErrorCode (401 credentials, 423 locked,
429 rate limited, ...).

Security:
  Sign-in is exempt from the slowapi default limit. It is throttled per
  source IP by the core RateLimitService instead.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi.util import get_remote_address

from api.limiter import limiter
from api.models import (
    ChangePasswordRequest,
    IdentityInfo,
    MessageResponse,
    RefreshRequest,
    SessionResponse,
    SignInRequest,
    TokenResponse,
)
from auth.dependencies import (
    SESSION_COOKIE,
    CurrentSession,
    failure_to_http,
    get_current_session,
    read_session_token,
)
from auth.service import AuthService
from auth.tokens import decode_session_token, encode_session_token
from core.result import ErrorCode, Failure

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _error_response(result: Failure) -> JSONResponse:
    exc = failure_to_http(result)
    resp = JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _token_response(service: AuthService, token: TokenResponse) -> JSONResponse:
    resp = JSONResponse(status_code=200, content=token.model_dump(mode="json"))
    resp.set_cookie(
        key=SESSION_COOKIE,
        value=token.access_token,
        max_age=service.settings.session_max_age_seconds,
        httponly=True,
        secure=service.settings.secure_cookies,
        samesite="lax",
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


def _session_jwt(service: AuthService, identity_id: str, session_id: str, raw_token: str, expires_at) -> str:
    return encode_session_token(service.settings.secret_key, identity_id, session_id, raw_token, expires_at)


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@limiter.exempt
@router.post("/auth/sign-in", response_model=TokenResponse)
def sign_in(request: Request, body: SignInRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    Unknown email and wrong password return the same INVALID_CREDENTIALS
    response.
    """
    service: AuthService = request.app.state.auth
    result = service.sign_in(body.email, body.password, get_remote_address(request))
    if isinstance(result, Failure):
        return _error_response(result)

    signed_in = result.data
    token = TokenResponse(
        access_token=_session_jwt(
            service,
            signed_in.identity.id,
            signed_in.session_id,
            signed_in.raw_access_token,
            signed_in.access_expires_at,
        ),
        session_id=signed_in.session_id,
        expires_at=signed_in.access_expires_at,
        reset_token=signed_in.raw_reset_token,
        reset_expires_at=signed_in.reset_expires_at,
        identity=IdentityInfo.from_identity(signed_in.identity),
    )
    return _token_response(service, token)


@router.post("/auth/refresh", response_model=TokenResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Exchange a reset token for a new session.

    The session JWT may already be past its exp; it only has to carry a valid
    signature so the session can be named.
    """
    service: AuthService = request.app.state.auth
    raw = read_session_token(request)
    payload = decode_session_token(service.settings.secret_key, raw, verify_exp=False) if raw else None
    if payload is None:
        raise HTTPException(
            status_code=401,
            detail={"code": ErrorCode.SESSION_NOT_FOUND, "message": "Authentication required."},
        )

    result = service.refresh_session(payload["sub"], payload["sid"], body.reset_token)
    if isinstance(result, Failure):
        return _error_response(result)

    issued = result.data
    token = TokenResponse(
        access_token=_session_jwt(
            service,
            issued.identity_id,
            issued.session_id,
            issued.raw_access_token,
            issued.access_expires_at,
        ),
        session_id=issued.session_id,
        expires_at=issued.access_expires_at,
        reset_token=issued.raw_reset_token,
        reset_expires_at=issued.reset_expires_at,
    )
    return _token_response(service, token)


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/session", response_model=SessionResponse)
def current_session(current: CurrentSession = Depends(get_current_session)) -> SessionResponse:
    """Return the session and identity behind the presented token."""
    return SessionResponse(session_id=current.session_id, identity=IdentityInfo.from_identity(current.identity))


@router.post("/auth/sign-out", response_model=MessageResponse)
def sign_out(request: Request, current: CurrentSession = Depends(get_current_session)) -> JSONResponse:
    """Delete the presented session and clear the cookie."""
    service: AuthService = request.app.state.auth
    result = service.sign_out(current.identity.id, current.session_id, current.access_token)
    if isinstance(result, Failure):
        raise failure_to_http(result)
    resp = JSONResponse(content=MessageResponse(message="Signed out.").model_dump())
    resp.delete_cookie(SESSION_COOKIE)
    return resp


@router.post("/auth/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current: CurrentSession = Depends(get_current_session),
) -> JSONResponse:
    """Change the password. Every session of the identity, this one included, is revoked."""
    service: AuthService = request.app.state.auth
    result = service.change_password(current.identity.id, body.current_password, body.new_password)
    if isinstance(result, Failure):
        return _error_response(result)
    resp = JSONResponse(content=MessageResponse(message="Password changed. Sign in again.").model_dump())
    resp.delete_cookie(SESSION_COOKIE)
    return resp
