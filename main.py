#!/usr/bin/env python3
"""
Lockgate management CLI -- administrative actions that sit outside the login path.

Usage:
  python main.py show alice
  python main.py unlock alice
  python main.py create-user admin admin@example.com --role ADMIN
  python main.py token svc-reporting

Environment variables:
  SECRET_KEY    Signing key (required unless DEBUG=true).
  DATABASE_URL  Account database URL. Defaults to auth/lockgate_auth.db.
"""

import argparse
import getpass
import sys
from typing import Optional

from auth.errors import AuthError, NotFound
from auth.passwords import BcryptHasher
from auth.service import CredentialVerifier
from auth.store import DEFAULT_DB_URL, AccountStore
from auth.tokens import TokenService
from core.config import get_settings


def _build_verifier(store: AccountStore) -> CredentialVerifier:
    settings = get_settings()
    return CredentialVerifier(
        store,
        TokenService.from_settings(settings),
        hasher=BcryptHasher(),
        max_failed_attempts=settings.max_failed_attempts,
    )


def _print_account(verifier: CredentialVerifier, username: str) -> None:
    account = verifier.store.find_by_username(username)
    if account is None:
        raise NotFound()
    profile = account.to_profile()
    print(f"  id:               {profile.id}")
    print(f"  username:         {profile.username}")
    print(f"  email:            {profile.email}")
    print(f"  roles:            {', '.join(sorted(profile.roles))}")
    print(f"  enabled:          {profile.enabled}")
    print(f"  locked:           {not profile.account_non_locked}")
    print(f"  failed attempts:  {account.failed_login_attempts}")
    print(f"  last login:       {profile.last_login.isoformat() if profile.last_login else 'never'}")
    print(f"  created:          {profile.created_at.isoformat() if profile.created_at else '?'}")


def _cmd_show(verifier: CredentialVerifier, args: argparse.Namespace) -> int:
    _print_account(verifier, args.username)
    return 0


def _cmd_unlock(verifier: CredentialVerifier, args: argparse.Namespace) -> int:
    verifier.unlock(args.username)
    print(f"  Unlocked {args.username}.")
    return 0


def _cmd_create_user(verifier: CredentialVerifier, args: argparse.Namespace) -> int:
    password: Optional[str] = args.password
    if password is None:
        password = getpass.getpass("  Password: ")
        if password != getpass.getpass("  Repeat:   "):
            print("  [!] Passwords do not match.")
            return 1
    if not 6 <= len(password) <= 100:
        print("  [!] Password must be 6-100 characters.")
        return 1
    account = verifier.register(args.username, args.email, password)
    if args.role:
        account.roles = account.roles | frozenset(args.role)
        verifier.store.save(account)
    print(f"  Created {args.username} (id={account.id}).")
    return 0


def _cmd_token(verifier: CredentialVerifier, args: argparse.Namespace) -> int:
    # Service-to-service tokens carry only the subject, no role snapshot.
    print(verifier.tokens.issue_for_subject(args.subject))
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Lockgate account administration",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--db", metavar="URL", help="Account database URL (overrides DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_show = sub.add_parser("show", help="Print an account's profile and lockout state")
    p_show.add_argument("username")
    p_show.set_defaults(func=_cmd_show)

    p_unlock = sub.add_parser("unlock", help="Clear an account lockout and its failure counter")
    p_unlock.add_argument("username")
    p_unlock.set_defaults(func=_cmd_unlock)

    p_create = sub.add_parser("create-user", help="Register an account (prompts for the password)")
    p_create.add_argument("username")
    p_create.add_argument("email")
    p_create.add_argument("--password", help="Password (omit to be prompted)")
    p_create.add_argument("--role", action="append", help="Extra role, repeatable (USER is always granted)")
    p_create.set_defaults(func=_cmd_create_user)

    p_token = sub.add_parser("token", help="Mint a subject-only token for service-to-service calls")
    p_token.add_argument("subject")
    p_token.set_defaults(func=_cmd_token)

    args = parser.parse_args(argv)

    store = AccountStore(args.db or get_settings().database_url or DEFAULT_DB_URL)
    try:
        return args.func(_build_verifier(store), args)
    except AuthError as exc:
        print(f"  [!] {exc.message}")
        return 1
    finally:
        store.close()


if __name__ == "__main__":
    sys.exit(main())
