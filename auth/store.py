"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper (same as festival/store.py).
UserStore is the repository; _row_to_user / _row_to_session are the mappers.
Route and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  UNIQUE(username) and UNIQUE(token) are the store-level guarantees behind
  "one account per username" and "one session per token". A registration
  that loses a race raises IntegrityError rather than creating a duplicate.

DB path: auth/rooranking_auth.db (sibling to festival/rooranking_festival.db).

Layer rule: no imports from api/ or festival/.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from pathlib import Path

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Questionnaire, Session, User
from core.config import now_iso

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'rooranking_auth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("is_admin", Integer, nullable=False, server_default="0"),
    Column("avatar_color", String(16), nullable=False),
    Column("avatar_image_id", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("years_attended", Text),  # JSON array of ints
    Column("questionnaire", Text),  # JSON object
    Column("onboarding_complete", Integer, nullable=False, server_default="0"),
    Column("last_login", String(32)),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("created_at", String(32), nullable=False),
)

# Columns update_user() accepts. Anything else is a programming error.
_MUTABLE_USER_FIELDS = {
    "hashed_password",
    "is_admin",
    "avatar_color",
    "avatar_image_id",
    "years_attended",
    "questionnaire",
    "onboarding_complete",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# JSON column helpers
# ---------------------------------------------------------------------------


def _dump_years(years: list[int] | None) -> str | None:
    return json.dumps(sorted(set(years))) if years is not None else None


def _dump_questionnaire(questionnaire: Questionnaire | None) -> str | None:
    if questionnaire is None:
        return None
    answers = {k: v for k, v in asdict(questionnaire).items() if v}
    return json.dumps(answers) if answers else None


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Session entities.

    Usage:
        store = UserStore()
        store.create_user(User(username="matt", hashed_password=hash_password("secret1"), is_admin=True))
        user = store.get_by_username("matt")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        """Return True if at least one user record exists."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username already exists.
        Callers treat that as "username taken" -- a concurrent registration
        won the race.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    username=user.username,
                    hashed_password=user.hashed_password,
                    is_admin=1 if user.is_admin else 0,
                    avatar_color=user.avatar_color,
                    avatar_image_id=user.avatar_image_id,
                    created_at=now_iso(),
                    years_attended=_dump_years(user.years_attended),
                    questionnaire=_dump_questionnaire(user.questionnaire),
                    onboarding_complete=1 if user.onboarding_complete else 0,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by username. Admin-only operation."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: see _MUTABLE_USER_FIELDS. Booleans are converted to
        0/1; years_attended / questionnaire are serialized to JSON (None
        clears them).

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        for flag in ("is_admin", "onboarding_complete"):
            if flag in fields:
                fields[flag] = 1 if fields[flag] else 0
        if "years_attended" in fields:
            fields["years_attended"] = _dump_years(fields["years_attended"])
        if "questionnaire" in fields:
            fields["questionnaire"] = _dump_questionnaire(fields["questionnaire"])
        if not fields:
            return self.get_by_id(user_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user and every session they own, in one transaction.

        Sessions go first so no request can authenticate as a user whose row
        is already gone. Rankings live in the festival store; the cascade
        in festival/cascade.py handles those around this call.

        Returns True if the user existed.
        """
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=now_iso()))
            conn.commit()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def create_session(self, session: Session) -> int:
        """Insert a session row and return its ID.

        Raises IntegrityError on a token collision (astronomically unlikely
        with 384-bit tokens; the caller does not retry).
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    user_id=session.user_id,
                    token=session.token,
                    expires_at=session.expires_at,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_session(self, token: str) -> Session | None:
        """Look up a session by token. O(1) via UNIQUE index. Expiry is NOT checked here."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_sessions(self, user_id: int) -> list[Session]:
        """Return every session row owned by a user, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _sessions.select().where(_sessions.c.user_id == user_id).order_by(_sessions.c.id)
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def delete_session(self, token: str) -> bool:
        """Delete a session by token. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
            conn.commit()
        return result.rowcount > 0

    def delete_sessions_for_user(self, user_id: int) -> int:
        """Revoke every session a user owns. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired_sessions(self, now: str) -> int:
        """Delete sessions whose expires_at is at or before `now` (ISO 8601 UTC).

        All timestamps are produced by datetime.isoformat() on UTC-aware
        values, so lexicographic order matches chronological order.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    years = json.loads(row.years_attended) if row.years_attended else None
    questionnaire = Questionnaire(**json.loads(row.questionnaire)) if row.questionnaire else None
    return User(
        id=row.id,
        username=row.username,
        hashed_password=row.hashed_password,
        is_admin=bool(row.is_admin),
        avatar_color=row.avatar_color,
        avatar_image_id=row.avatar_image_id,
        created_at=row.created_at,
        years_attended=years,
        questionnaire=questionnaire,
        onboarding_complete=bool(row.onboarding_complete),
        last_login=row.last_login,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        expires_at=row.expires_at,
        created_at=row.created_at,
    )
