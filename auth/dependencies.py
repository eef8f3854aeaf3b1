"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer authentication.

The caller's identity is resolved from the Authorization: Bearer header and
handed to the route as an explicit Identity argument. There is no
process-wide "current user" context.

Verification is a pure token check (TokenService.verify); these helpers do
not consult the account store. A route that needs the stored record (e.g.
/auth/me) looks it up itself with the identity's username.

try_get_identity() is the soft variant (returns None on failure).
get_identity() wraps it and raises HTTP 401 if unauthenticated.
require_admin() wraps get_identity() and raises HTTP 403 without the ADMIN role.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi because it is part of the
  FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import InvalidToken
from auth.models import Identity
from auth.tokens import TokenService

ADMIN_ROLE = "ADMIN"


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not credentials.strip():
        return None
    return credentials.strip()


def try_get_identity(request: Request) -> Identity | None:
    """Return the Identity carried by a valid bearer token, or None. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None
    tokens: TokenService = request.app.state.token_service
    try:
        claims = tokens.verify(token)
    except InvalidToken:
        return None
    roles = claims.get("roles") or []
    return Identity(
        username=claims["sub"],
        roles=frozenset(r for r in roles if isinstance(r, str)),
        claims=claims,
    )


def get_identity(request: Request) -> Identity:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(identity: Identity = Depends(get_identity)): ...
    """
    identity = try_get_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return identity


def require_admin(request: Request) -> Identity:
    """Require the ADMIN role in the token's role snapshot. 401 if unauthenticated, 403 otherwise."""
    identity = get_identity(request)
    if ADMIN_ROLE not in identity.roles:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "Admin access required."},
        )
    return identity
