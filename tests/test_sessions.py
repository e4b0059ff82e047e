"""Unit tests for auth/sessions.py -- the session lifecycle.

A fake clock drives expiry so no test sleeps. Sessions move
Created -> Active -> (Expired | Revoked) and never back.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auth.accounts import create_admin, register
from auth.sessions import SessionManager
from auth.store import UserStore
from core.errors import AdminRequired, InvalidCredentials, NotAuthenticated


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def store():
    s = UserStore("sqlite:///:memory:")
    register(s, "alice", "secret1")
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sessions(store: UserStore, clock: FakeClock) -> SessionManager:
    return SessionManager(store, ttl=timedelta(days=30), clock=clock)


class TestLogin:
    def test_login_returns_token_and_user(self, sessions: SessionManager) -> None:
        token, user = sessions.login("alice", "secret1")
        assert user.username == "alice"
        assert len(token) == 64, "48 random bytes encode to 64 URL-safe characters"
        assert sessions.validate(token) == user.id

    def test_each_login_creates_a_new_session(self, sessions: SessionManager, store: UserStore) -> None:
        first, user = sessions.login("alice", "secret1")
        second, _ = sessions.login("alice", "secret1")
        assert first != second
        assert len(store.list_sessions(user.id)) == 2

    def test_expiry_is_thirty_days_out(self, sessions: SessionManager, store: UserStore, clock: FakeClock) -> None:
        token, _ = sessions.login("alice", "secret1")
        expires = datetime.fromisoformat(store.get_session(token).expires_at)
        assert expires == clock.now + timedelta(days=30)

    def test_wrong_password_and_unknown_user_fail_identically(self, sessions: SessionManager) -> None:
        with pytest.raises(InvalidCredentials) as wrong_pw:
            sessions.login("alice", "nope")
        with pytest.raises(InvalidCredentials) as no_user:
            sessions.login("nobody", "secret1")
        assert str(wrong_pw.value) == str(no_user.value)

    def test_login_stamps_last_login(self, sessions: SessionManager, store: UserStore) -> None:
        _, user = sessions.login("alice", "secret1")
        assert store.get_by_id(user.id).last_login is not None


class TestValidate:
    def test_none_and_unknown_tokens(self, sessions: SessionManager) -> None:
        assert sessions.validate(None) is None
        assert sessions.validate("") is None
        assert sessions.validate("not-a-real-token") is None

    def test_valid_until_expiry_instant(self, sessions: SessionManager, clock: FakeClock) -> None:
        token, user = sessions.login("alice", "secret1")
        clock.advance(days=30, seconds=-1)
        assert sessions.validate(token) == user.id
        clock.advance(seconds=1)
        assert sessions.validate(token) is None, "now == expires_at must already be expired"

    def test_validate_never_deletes_expired_rows(self, sessions: SessionManager, store: UserStore, clock: FakeClock) -> None:
        token, _ = sessions.login("alice", "secret1")
        clock.advance(days=31)
        assert sessions.validate(token) is None
        assert store.get_session(token) is not None


class TestLogout:
    def test_logout_revokes(self, sessions: SessionManager) -> None:
        token, _ = sessions.login("alice", "secret1")
        sessions.logout(token)
        assert sessions.validate(token) is None

    def test_logout_is_idempotent(self, sessions: SessionManager) -> None:
        token, _ = sessions.login("alice", "secret1")
        sessions.logout(token)
        sessions.logout(token)
        sessions.logout("never-issued")
        sessions.logout(None)

    def test_logout_only_affects_that_session(self, sessions: SessionManager) -> None:
        first, user = sessions.login("alice", "secret1")
        second, _ = sessions.login("alice", "secret1")
        sessions.logout(first)
        assert sessions.validate(second) == user.id


class TestRequireHelpers:
    def test_require_auth(self, sessions: SessionManager) -> None:
        token, user = sessions.login("alice", "secret1")
        assert sessions.require_auth(token) == user.id
        with pytest.raises(NotAuthenticated):
            sessions.require_auth("bogus")

    def test_require_admin_rejects_member(self, sessions: SessionManager) -> None:
        token, _ = sessions.login("alice", "secret1")
        with pytest.raises(AdminRequired):
            sessions.require_admin(token)

    def test_require_admin_accepts_admin(self, sessions: SessionManager, store: UserStore) -> None:
        create_admin(store, "boss", "bosspass")
        token, _ = sessions.login("boss", "bosspass")
        assert sessions.require_admin(token).username == "boss"

    def test_require_user_after_user_deleted(self, sessions: SessionManager, store: UserStore) -> None:
        token, user = sessions.login("alice", "secret1")
        store.delete_user(user.id)
        with pytest.raises(NotAuthenticated):
            sessions.require_user(token)


def test_purge_expired_removes_only_dead_sessions(sessions: SessionManager, store: UserStore, clock: FakeClock) -> None:
    old, user = sessions.login("alice", "secret1")
    clock.advance(days=20)
    fresh, _ = sessions.login("alice", "secret1")
    clock.advance(days=15)

    assert sessions.purge_expired() == 1
    assert store.get_session(old) is None
    assert sessions.validate(fresh) == user.id
