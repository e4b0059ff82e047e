"""
auth/sessions.py -- Session lifecycle: login, validate, logout, authorization.

Per-session state machine:

    Created --(row inserted)--> Active --+--(now >= expires_at)--> Expired
                                         +--(logout / user deleted)--> Revoked

There are no other transitions. A login always inserts a brand-new row;
sessions are never refreshed or reused. Expired rows are inert: validate()
filters them out at read time and never deletes them. Only logout(), the
owning user's deletion, and the periodic purge_expired() remove rows.

The clock is injected so tests can move time forward without sleeping.

Layer rule: no imports from api/ or festival/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.models import Session, User
from auth.store import UserStore
from auth.tokens import authenticate_user, generate_session_token
from core.config import get_settings
from core.errors import AdminRequired, InvalidCredentials, NotAuthenticated

logger = logging.getLogger("rooranking.auth")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str) -> datetime:
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        # Naive timestamp -- assume UTC, matching now_iso()
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class SessionManager:
    """Issues, validates and revokes bearer sessions against a UserStore.

    Usage:
        sessions = SessionManager(user_store)
        token, user = sessions.login("alice", "secret1")
        user_id = sessions.validate(token)      # -> int | None
        sessions.logout(token)
    """

    def __init__(
        self,
        store: UserStore,
        ttl: timedelta | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl if ttl is not None else timedelta(days=get_settings().session_ttl_days)
        self._clock = clock

    def login(self, username: str, password: str) -> tuple[str, User]:
        """Verify credentials and open a new session.

        Raises InvalidCredentials for an unknown username and for a wrong
        password alike -- the caller cannot tell which.
        """
        user = authenticate_user(self.store, username, password)
        if user is None:
            logger.info("Failed login attempt for username=%r", username)
            raise InvalidCredentials()

        token = generate_session_token()
        expires_at = (self._clock() + self.ttl).isoformat()
        self.store.create_session(Session(user_id=user.id, token=token, expires_at=expires_at))
        self.store.update_last_login(user.id)
        logger.info("User %s logged in", user.id)
        return token, user

    def validate(self, token: str | None) -> int | None:
        """Return the owning user id for a live session, None otherwise."""
        if not token:
            return None
        session = self.store.get_session(token)
        if session is None:
            return None
        if self._clock() >= _parse_ts(session.expires_at):
            return None
        return session.user_id

    def logout(self, token: str | None) -> None:
        """Revoke a session. Unknown or expired tokens are not an error."""
        if token and self.store.delete_session(token):
            logger.info("Session revoked")

    def require_auth(self, token: str | None) -> int:
        user_id = self.validate(token)
        if user_id is None:
            raise NotAuthenticated()
        return user_id

    def require_user(self, token: str | None) -> User:
        """Like require_auth() but resolves the User row.

        A live session whose user vanished mid-request is treated as
        unauthenticated, not as a server error.
        """
        user = self.store.get_by_id(self.require_auth(token))
        if user is None:
            raise NotAuthenticated()
        return user

    def require_admin(self, token: str | None) -> User:
        """Resolve the caller and insist on the admin flag (re-read from the store)."""
        user = self.require_user(token)
        if not user.is_admin:
            raise AdminRequired()
        return user

    def purge_expired(self) -> int:
        """Delete expired session rows. Housekeeping only -- validate() never relies on it."""
        removed = self.store.purge_expired_sessions(self._clock().isoformat())
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return removed
