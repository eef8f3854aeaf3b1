"""Unit tests for auth/models.py -- the lockout state machine and Account views.

Covers:
- Unlocked failures count up and lock exactly at the threshold
- Success from any Unlocked state resets to Unlocked(0)
- Locked absorbs both failures and successes (only an admin unlock leaves it)
- failed_login_attempts / account_locked are derived from the lock state
- to_profile() never exposes the password hash
"""

from __future__ import annotations

from dataclasses import fields

import pytest

from auth.models import Account, AccountProfile, Locked, Unlocked


class TestUnlockedTransitions:
    @pytest.mark.parametrize("count", [0, 1, 2, 3])
    def test_failure_below_threshold_increments(self, count: int) -> None:
        assert Unlocked(count).record_failure(threshold=5) == Unlocked(count + 1)

    def test_failure_reaching_threshold_locks(self) -> None:
        assert Unlocked(4).record_failure(threshold=5) == Locked(5)

    def test_threshold_of_one_locks_on_first_failure(self) -> None:
        assert Unlocked(0).record_failure(threshold=1) == Locked(1)

    def test_success_resets_count(self) -> None:
        assert Unlocked(3).record_success() == Unlocked(0)

    def test_full_walk_to_locked(self) -> None:
        state = Unlocked()
        seen = []
        for _ in range(5):
            state = state.record_failure(threshold=5)
            seen.append(state)
        assert seen == [Unlocked(1), Unlocked(2), Unlocked(3), Unlocked(4), Locked(5)]


class TestLockedLatch:
    def test_failure_keeps_state(self) -> None:
        assert Locked(5).record_failure(threshold=5) == Locked(5)

    def test_success_does_not_unlock(self) -> None:
        """The login path can never clear a lock; only an admin unlock can."""
        assert Locked(5).record_success() == Locked(5)


class TestAccountViews:
    def test_fresh_account_is_unlocked_with_zero_attempts(self) -> None:
        account = Account(username="alice", email="a@x.com", password_hash="h")
        assert account.failed_login_attempts == 0
        assert account.account_locked is False
        assert account.roles == frozenset({"USER"})

    def test_locked_state_is_reflected(self) -> None:
        account = Account(username="alice", email="a@x.com", password_hash="h", lock_state=Locked(5))
        assert account.failed_login_attempts == 5
        assert account.account_locked is True

    def test_profile_omits_hash(self) -> None:
        account = Account(username="alice", email="a@x.com", password_hash="$2b$secret", id=7)
        profile = account.to_profile()
        assert "password_hash" not in {f.name for f in fields(AccountProfile)}
        assert "$2b$secret" not in repr(profile)
        assert profile.account_non_locked is True
        assert profile.id == 7
