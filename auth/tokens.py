"""
auth/tokens.py -- Stateless bearer tokens (JWT, HS256).

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       username as the subject claim plus iat/exp, and on interactive login a
       uid and a snapshot of the account's roles. Nothing is stored server
       side: a token is valid exactly when its signature checks out and it has
       not expired. Locking an account does NOT revoke tokens already issued.

  Signature: the signature segment must be the canonical base64url encoding.
       The decoder ignores the padding bits of the last character; verify()
       compares the segment against its re-encoding.

  Expiry: exp is a NumericDate (whole seconds). A token is rejected once
       now >= exp, so a zero lifetime never yields a usable token. Lifetimes
       below one second round down to zero.

  SECRET_KEY: sourced from core.config.get_settings(), which refuses keys
       shorter than 32 characters [M6]. TokenService re-checks so it cannot be
       constructed with a weak key in tests or scripts.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from jose import JWTError, jwt
from jose.utils import base64url_decode, base64url_encode

from auth.errors import InvalidToken
from core.config import Settings

logger = logging.getLogger("lockgate.auth")

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_canonical_signature(token: str) -> bool:
    signature = token.rsplit(".", 1)[-1].encode("utf-8")
    return base64url_encode(base64url_decode(signature)) == signature


class TokenService:
    """Issue and verify signed, time-bounded bearer tokens.

    Usage:
        tokens = TokenService(secret_key, lifetime_ms=3_600_000)
        token = tokens.issue({"sub": "alice", "roles": ["USER"]})
        claims = tokens.verify(token)   # raises InvalidToken
    """

    def __init__(
        self,
        secret_key: str,
        lifetime_ms: int = 86_400_000,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if len(secret_key) < MIN_SECRET_LENGTH:
            raise ValueError(f"Signing key must be at least {MIN_SECRET_LENGTH} characters.")
        if lifetime_ms < 0:
            raise ValueError("Token lifetime must not be negative.")
        self._secret_key = secret_key
        self.lifetime_ms = lifetime_ms
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(settings.secret_key, lifetime_ms=settings.token_expire_ms)

    def issue(self, claims: dict[str, Any]) -> str:
        """Sign claims into a compact JWT. claims must contain a non-empty "sub".

        iat and exp are always set here; values for them in claims are ignored.
        """
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ValueError("Token claims require a non-empty 'sub'.")
        now = self._clock().timestamp()
        payload = dict(claims)
        payload["iat"] = int(now)
        payload["exp"] = int(now + self.lifetime_ms / 1000)
        return jwt.encode(payload, self._secret_key, algorithm=ALGORITHM)

    def issue_for_subject(self, username: str) -> str:
        """Issue a token whose only identity claim is the subject."""
        return self.issue({"sub": username})

    def verify(self, token: str) -> dict[str, Any]:
        """Decode and verify a JWT. Returns the claims or raises InvalidToken.

        Malformed input, a signature mismatch, an expired token and a token
        without a subject all raise the same error; the reason is only logged
        at DEBUG.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            logger.debug("Token rejected: %s", exc)
            raise InvalidToken() from exc

        if not _is_canonical_signature(token):
            logger.debug("Token rejected: non-canonical signature encoding")
            raise InvalidToken()

        exp = claims.get("exp")
        if not isinstance(exp, int) or self._clock().timestamp() >= exp:
            logger.debug("Token rejected: expired or missing exp")
            raise InvalidToken()
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            logger.debug("Token rejected: missing subject")
            raise InvalidToken()
        return claims
