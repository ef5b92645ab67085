"""
api/routes/v1/auth.py -- Registration, session, and profile REST endpoints.

Routes:
  POST  /api/v1/users/register         -- create account; 201
  POST  /api/v1/users/login            -- password login; sets token cookies
  POST  /api/v1/users/logout           -- revoke refresh token; clears cookies
  POST  /api/v1/users/refresh-token    -- rotate refresh token (cookie or body)
  POST  /api/v1/users/change-password  -- replace password (requires auth)
  GET   /api/v1/users/me               -- current user (requires auth)
  PATCH /api/v1/users/me               -- update email/fullName (requires auth)

Handlers call the SessionManager, unwrap its Result, and wrap the value in
the success envelope. They never build error bodies: unwrap() raises
AuthFailure and the handler registered in api/main.py writes the envelope.

Security:
  Cache-Control: no-store on every response that carries tokens.
  Cookies are httpOnly + samesite=strict; secure unless SECURE_COOKIES=false.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    ApiResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
    UpdateProfileRequest,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.errors import unwrap
from auth.models import AuthContext
from auth.session import SessionManager
from auth.tokens import REFRESH_COOKIE, clear_auth_cookies, set_auth_cookies

# Auth policy:
# - POST  /users/register, /users/login:   public
# - POST  /users/refresh-token:            refresh token only (no access token needed)
# - everything else:                       requires a valid access token
router = APIRouter(prefix="/users")


def _manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def _secure(request: Request) -> bool:
    return request.app.state.settings.secure_cookies


def _envelope(status_code: int, data, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ApiResponse(status_code=status_code, data=data, message=message).model_dump(by_alias=True),
    )


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/register", status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an account. No tokens are issued until the user logs in."""
    user = unwrap(_manager(request).register(body.full_name, body.email, body.password, body.avatar_url))
    return _envelope(201, UserResponse.from_public(user).model_dump(by_alias=True), "User registered successfully")


@router.post("/login")
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set both token cookies.

    Tokens are also returned in the body. Unknown email and wrong password
    both return INVALID_CREDENTIALS.
    """
    result = unwrap(_manager(request).login(body.email, body.password))
    payload = LoginResponse(
        user=UserResponse.from_public(result.user),
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
    )
    resp = _envelope(200, payload.model_dump(by_alias=True), "User logged in successfully")
    set_auth_cookies(resp, result.tokens, _manager(request).signer, secure=_secure(request))
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/refresh-token")
def refresh_token(request: Request, body: Optional[RefreshRequest] = None) -> JSONResponse:
    """Exchange a refresh token for a new token pair (rotation).

    The refreshToken cookie takes precedence over the request body.
    """
    incoming = request.cookies.get(REFRESH_COOKIE) or (body.refresh_token if body else None)
    tokens = unwrap(_manager(request).refresh(incoming))
    payload = TokenPairResponse(access_token=tokens.access_token, refresh_token=tokens.refresh_token)
    resp = _envelope(200, payload.model_dump(by_alias=True), "Access token refreshed")
    set_auth_cookies(resp, tokens, _manager(request).signer, secure=_secure(request))
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request, ctx: AuthContext = Depends(get_current_user)) -> JSONResponse:
    """Revoke the stored refresh token and clear both cookies."""
    unwrap(_manager(request).logout(ctx.user_id))
    resp = _envelope(200, {}, "User logged out")
    clear_auth_cookies(resp, secure=_secure(request))
    return resp


@router.post("/change-password")
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    ctx: AuthContext = Depends(get_current_user),
) -> JSONResponse:
    """Replace the password. Clears cookies when existing sessions were revoked."""
    revoked = unwrap(
        _manager(request).change_password(ctx.user_id, body.old_password, body.new_password, body.confirm_password)
    )
    resp = _envelope(200, {}, "Password changed successfully")
    if revoked:
        clear_auth_cookies(resp, secure=_secure(request))
    return resp


@router.get("/me")
def me(ctx: AuthContext = Depends(get_current_user)) -> JSONResponse:
    """Return the sanitized profile of the authenticated user."""
    return _envelope(200, UserResponse.from_public(ctx.user).model_dump(by_alias=True), "Current user fetched")


@router.patch("/me")
def update_profile(
    request: Request,
    body: UpdateProfileRequest,
    ctx: AuthContext = Depends(get_current_user),
) -> JSONResponse:
    """Update email and/or full name. Only supplied fields change."""
    user = unwrap(_manager(request).update_profile(ctx.user_id, email=body.email, full_name=body.full_name))
    return _envelope(200, UserResponse.from_public(user).model_dump(by_alias=True), "Profile updated successfully")
