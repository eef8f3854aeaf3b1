"""
auth/service.py -- Credential verification and account lockout.

CredentialVerifier is the single place where a username/password pair is
checked, lockout counters move, and a login token is minted. There is no
separate "authentication manager" phase: authenticate() looks the account up,
rejects locked accounts before touching bcrypt, verifies the password, applies
the lock-state transition and persists it, all in one call.

Ordering guarantees:
  [L1] A locked account is rejected with AccountLocked before any password
       check. No bcrypt work is spent and no counter moves.
  [L2] On a failed password the new lock state (including the Locked
       transition at the threshold) is saved BEFORE InvalidCredentials is
       raised. The attempt that trips the lock reports InvalidCredentials;
       the next attempt reports AccountLocked.
  [C1] Unknown usernames still run one bcrypt verify against a dummy hash and
       raise the same InvalidCredentials as a wrong password, so neither the
       response nor its timing reveals whether the username exists.
  [L3] A disabled account runs one bcrypt verify against its own hash and
       raises InvalidCredentials. No counter moves and no token is minted.

Concurrent logins against one account are serialized by AccountStore.save()'s
version check. On StaleAccountError the account is re-read and the SAME
outcome is re-applied to the fresh copy; the password is not re-verified.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from auth.errors import (
    AccountLocked,
    ConcurrentUpdateError,
    DuplicateEmail,
    DuplicateUsername,
    InvalidCredentials,
    NotFound,
    StaleAccountError,
)
from auth.models import DEFAULT_ROLES, Account, AccountProfile, LoginResult, Unlocked
from auth.passwords import BcryptHasher
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import DEFAULT_MAX_FAILED_ATTEMPTS

logger = logging.getLogger("lockgate.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialVerifier:
    """Register accounts, authenticate logins and apply the lockout policy.

    Args:
        store:             Account repository (read/write contract only).
        tokens:            TokenService used to mint the login token.
        hasher:            Object with hash(plain) and verify(plain, hashed).
        max_failed_attempts: Consecutive failures that lock the account.
        max_save_retries:  Re-read/re-apply attempts after a stale write.
    """

    def __init__(
        self,
        store: AccountStore,
        tokens: TokenService,
        hasher: BcryptHasher | None = None,
        max_failed_attempts: int = DEFAULT_MAX_FAILED_ATTEMPTS,
        max_save_retries: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if max_failed_attempts < 1:
            raise ValueError("max_failed_attempts must be at least 1.")
        self.store = store
        self.tokens = tokens
        self.hasher = hasher or BcryptHasher()
        self.max_failed_attempts = max_failed_attempts
        self.max_save_retries = max_save_retries
        self._clock = clock
        # Timing equalization dummy hash [C1]. Same cost factor as real hashes.
        self._dummy_hash = self.hasher.hash("lockgate_timing_dummy")

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> LoginResult:
        """Authenticate a username/password pair. See module docstring for ordering."""
        account = self.store.find_by_username(username)
        if account is None:
            # Equalize timing -- do NOT return early before running bcrypt [C1]
            self.hasher.verify(password, self._dummy_hash)
            logger.warning("Failed login for unknown username")
            raise InvalidCredentials()

        if account.account_locked:  # [L1]
            logger.warning("Login rejected for locked account id=%s", account.id)
            raise AccountLocked()

        if not account.enabled:  # [L3]
            self.hasher.verify(password, account.password_hash)
            logger.warning("Login rejected for disabled account id=%s", account.id)
            raise InvalidCredentials()

        if self.hasher.verify(password, account.password_hash):
            account = self._persist_success(account)
            token = self.tokens.issue(
                {
                    "sub": account.username,
                    "uid": account.id,
                    "roles": sorted(account.roles),
                }
            )
            logger.info("Successful login for account id=%s", account.id)
            return LoginResult(token=token, account=account)

        account, counted = self._persist_failure(account)  # [L2]
        if not counted:
            logger.warning(
                "Failed login for account id=%s, already locked by a concurrent attempt",
                account.id,
            )
        elif account.account_locked:
            logger.warning(
                "Account id=%s locked after %d failed login attempts",
                account.id,
                account.failed_login_attempts,
            )
        else:
            logger.warning(
                "Failed login for account id=%s (%d/%d)",
                account.id,
                account.failed_login_attempts,
                self.max_failed_attempts,
            )
        raise InvalidCredentials()

    def _persist_success(self, account: Account) -> Account:
        for _ in range(self.max_save_retries + 1):
            if account.account_locked:
                # A concurrent failure locked the account first; the lock wins.
                raise AccountLocked()
            account.lock_state = account.lock_state.record_success()
            account.last_login = self._clock()
            try:
                return self.store.save(account)
            except StaleAccountError:
                account = self._reload(account)
        raise ConcurrentUpdateError(f"Could not record login for account {account.id}.")

    def _persist_failure(self, account: Account) -> tuple[Account, bool]:
        """Save one more failure. The flag is False when a concurrent attempt locked first."""
        for _ in range(self.max_save_retries + 1):
            if account.account_locked:
                # Already locked by a concurrent attempt; nothing left to count.
                return account, False
            account.lock_state = account.lock_state.record_failure(self.max_failed_attempts)
            try:
                return self.store.save(account), True
            except StaleAccountError:
                account = self._reload(account)
        raise ConcurrentUpdateError(f"Could not record failed login for account {account.id}.")

    def _reload(self, account: Account) -> Account:
        fresh = self.store.find_by_id(account.id)
        if fresh is None:
            raise ConcurrentUpdateError(f"Account {account.id} disappeared during login.")
        return fresh

    # ------------------------------------------------------------------
    # Registration and profile
    # ------------------------------------------------------------------

    def register(self, username: str, email: str, password: str) -> Account:
        """Create a new account with the default role set. Username is checked first."""
        if self.store.exists_by_username(username):
            raise DuplicateUsername()
        if self.store.exists_by_email(email):
            raise DuplicateEmail()

        account = Account(
            username=username,
            email=email,
            password_hash=self.hasher.hash(password),
            roles=DEFAULT_ROLES,
        )
        try:
            saved = self.store.save(account)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration for the same identity.
            if self.store.exists_by_username(username):
                raise DuplicateUsername() from exc
            if self.store.exists_by_email(email):
                raise DuplicateEmail() from exc
            raise
        logger.info("Registered account id=%s", saved.id)
        return saved

    def current_user(self, username: str) -> AccountProfile:
        """Return the public profile for username or raise NotFound."""
        account = self.store.find_by_username(username)
        if account is None:
            raise NotFound()
        return account.to_profile()

    # ------------------------------------------------------------------
    # Administrative unlock
    # ------------------------------------------------------------------

    def unlock(self, username: str) -> Account:
        """Clear the lock and the failure counter. Administrative action only.

        The login path never calls this; it is reached from the admin-only
        unlock endpoint and the management CLI.
        """
        account = self.store.find_by_username(username)
        if account is None:
            raise NotFound()
        for _ in range(self.max_save_retries + 1):
            account.lock_state = Unlocked()
            try:
                saved = self.store.save(account)
            except StaleAccountError:
                account = self._reload(account)
                continue
            logger.info("Account id=%s unlocked by administrator", saved.id)
            return saved
        raise ConcurrentUpdateError(f"Could not unlock account {account.id}.")
