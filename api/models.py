"""
api/models.py -- Pydantic request/response models for the Lockgate API.

Request models carry the field validation (lengths, email shape) so the
verifier only ever sees well-formed input. Response models are the public
projection; no model here has a field for a password hash.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# Deliberately loose: one "@", no whitespace, a dot in the domain. Deliverability
# is not checked.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


# ---------------------------------------------------------------------------
# Auth -- requests
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Body for POST /api/v1/auth/register."""

    username: str = Field(min_length=3, max_length=50)
    email: str = Field(max_length=100, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=6, max_length=100)


class LoginRequest(BaseModel):
    """Body for POST /api/v1/auth/login.

    No length rules beyond a sane cap: a too-short password must fail as
    invalid_credentials (and count toward lockout), not as a 422.
    """

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- responses
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class LoginResponse(BaseModel):
    """Bearer token plus the public identity fields of the account."""

    model_config = ConfigDict(frozen=True)

    token: str
    type: str = "Bearer"
    id: int
    username: str
    email: str
    roles: list[str]


class UserInfoResponse(BaseModel):
    """Response for GET /api/v1/auth/me and the admin unlock endpoint."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    roles: list[str]
    enabled: bool
    account_non_locked: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None


# ---------------------------------------------------------------------------
# Shared
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
