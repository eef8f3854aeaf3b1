"""
api/routes/v1/auth.py -- Registration, login and profile REST endpoints.

Routes:
  POST /api/v1/auth/register                  -- create an account (public)
  POST /api/v1/auth/login                     -- password login; returns bearer token
  GET  /api/v1/auth/me                        -- current account profile (requires auth)
  POST /api/v1/auth/users/{username}/unlock   -- clear a lockout (admin only)

Errors are raised as auth.errors.AuthError subclasses and rendered by the
exception handler in api/main.py:
  invalid_credentials -> 401, account_locked -> 423,
  duplicate_username / duplicate_email -> 400, not_found -> 404.

Security:
  [H2] POST /login is rate-limited per IP (LOGIN_RATE_LIMIT, default 10/minute).
       Rate limiting is per address; lockout is per account. Both apply.
  [M5] Cache-Control: no-store on login responses.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserInfoResponse
from auth.dependencies import get_identity, require_admin
from auth.models import AccountProfile, Identity
from auth.service import CredentialVerifier
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:                 public
# - POST /api/v1/auth/login:                    public, rate-limited
# - GET  /api/v1/auth/me:                       requires bearer token (get_identity)
# - POST /api/v1/auth/users/{username}/unlock:  requires ADMIN role (require_admin)
router = APIRouter()


def _login_rate_limit() -> str:
    return get_settings().login_rate_limit


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=MessageResponse)
def register(request: Request, body: RegisterRequest) -> MessageResponse:
    """Create a new account with the USER role. The password is never echoed back."""
    verifier: CredentialVerifier = request.app.state.verifier
    verifier.register(body.username, body.email, body.password)
    return MessageResponse(message="User registered successfully")


@limiter.limit(_login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a bearer token.

    Unknown username and wrong password produce the same 401
    invalid_credentials body. A locked account produces 423 account_locked
    whether or not the password is correct.
    """
    verifier: CredentialVerifier = request.app.state.verifier
    result = verifier.authenticate(body.username, body.password)
    account = result.account
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            token=result.token,
            id=account.id,
            username=account.username,
            email=account.email,
            roles=sorted(account.roles),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserInfoResponse)
async def me(request: Request, identity: Identity = Depends(get_identity)) -> UserInfoResponse:
    """Return the stored profile for the token's subject (404 if it no longer exists)."""
    verifier: CredentialVerifier = request.app.state.verifier
    return _profile_to_response(verifier.current_user(identity.username))


@router.post("/auth/users/{username}/unlock", response_model=UserInfoResponse)
async def unlock_user(
    request: Request,
    username: str,
    identity: Identity = Depends(require_admin),
) -> UserInfoResponse:
    """Clear the lockout and failure counter on an account. Admin only."""
    verifier: CredentialVerifier = request.app.state.verifier
    account = verifier.unlock(username)
    return _profile_to_response(account.to_profile())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _profile_to_response(profile: AccountProfile) -> UserInfoResponse:
    return UserInfoResponse(
        id=profile.id,
        username=profile.username,
        email=profile.email,
        roles=sorted(profile.roles),
        enabled=profile.enabled,
        account_non_locked=profile.account_non_locked,
        last_login=profile.last_login,
        created_at=profile.created_at,
    )
