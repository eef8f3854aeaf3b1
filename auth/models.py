"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class. Account owns the persisted shape; the lock state is a
small tagged union so "locked" and "failed attempt count" can never disagree:

    Unlocked(failed_attempts=k)  --failure-->  Unlocked(k+1) or Locked(k+1)
    Unlocked(k)                  --success-->  Unlocked(0)
    Locked(k)                    --anything--> Locked(k)

Only the administrative unlock leaves Locked; it assigns Unlocked(0)
directly rather than going through a transition method.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

DEFAULT_ROLES = frozenset({"USER"})


@dataclass(frozen=True)
class Unlocked:
    """Account accepts login attempts. failed_attempts counts consecutive failures."""

    failed_attempts: int = 0

    def record_failure(self, threshold: int) -> LockState:
        attempts = self.failed_attempts + 1
        if attempts >= threshold:
            return Locked(failed_attempts=attempts)
        return Unlocked(failed_attempts=attempts)

    def record_success(self) -> LockState:
        return Unlocked()


@dataclass(frozen=True)
class Locked:
    """Account rejects every login attempt until an administrator unlocks it."""

    failed_attempts: int

    def record_failure(self, threshold: int) -> LockState:
        return self

    def record_success(self) -> LockState:
        return self


LockState = Union[Unlocked, Locked]


@dataclass
class Account:
    """A registered user and its security counters.

    password_hash is the bcrypt output, never the raw password. id, created_at,
    updated_at and version are filled in by AccountStore.save(); a fresh
    Account has id=None and version=0.
    """

    username: str
    email: str
    password_hash: str
    roles: frozenset[str] = DEFAULT_ROLES
    id: int | None = None
    enabled: bool = True
    lock_state: LockState = field(default_factory=Unlocked)
    last_login: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    @property
    def failed_login_attempts(self) -> int:
        return self.lock_state.failed_attempts

    @property
    def account_locked(self) -> bool:
        return isinstance(self.lock_state, Locked)

    def to_profile(self) -> AccountProfile:
        return AccountProfile(
            id=self.id,
            username=self.username,
            email=self.email,
            roles=self.roles,
            enabled=self.enabled,
            account_non_locked=not self.account_locked,
            last_login=self.last_login,
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class AccountProfile:
    """Public-safe projection of an Account (no credential hash, no counters)."""

    id: int | None
    username: str
    email: str
    roles: frozenset[str]
    enabled: bool
    account_non_locked: bool
    last_login: datetime | None
    created_at: datetime | None


@dataclass(frozen=True)
class LoginResult:
    """Successful authenticate() outcome: the bearer token and the updated record."""

    token: str
    account: Account


@dataclass(frozen=True)
class Identity:
    """Caller identity resolved from a verified bearer token.

    Passed explicitly from the request boundary into route handlers. roles is
    the snapshot embedded at issue time and may be empty for tokens minted by
    TokenService.issue_for_subject().
    """

    username: str
    roles: frozenset[str] = frozenset()
    claims: dict = field(default_factory=dict, compare=False)
