"""
festival/store.py -- SQLAlchemy-backed persistence layer for lineup data.

Uses SQLAlchemy Core (not ORM) so the domain dataclasses in festival/models.py
remain the authoritative domain representation. Swapping SQLite for
PostgreSQL is a connection string change, not a rewrite.

Pattern: Repository + Data Mapper. FestivalStore is the repository (one clean
interface per entity). The _row_to_* functions are the mappers. Route
handlers never touch SQL directly.

Consistency rules owned here:
  - (name, year) is unique per artist            -> UNIQUE constraint
  - (user_id, artist_id) is unique per ranking   -> UNIQUE constraint + upsert retry
  - one "current" and one "next" group per year  -> UNIQUE(year, status) + clear-then-set
  - settings.key is unique                        -> UNIQUE constraint + upsert retry
  - deleting an artist removes its rankings and prunes it from every group,
    all inside one transaction, dependents first

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = FestivalStore()                               # SQLite default
    store = FestivalStore("postgresql://user:pw@host/db") # PostgreSQL
    store.add_artists(["Tame Impala", "Khruangbin"], 2025)
    store.set_ranking(user_id, artist_id, 9)
    rows = store.get_aggregate_rankings(2025)
    store.close()
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from core.config import now_iso
from core.errors import ArtistNotFound, InvalidGroupName, ScoreOutOfRange
from festival.models import AddArtistsResult, AggregateRow, Artist, AvatarImage, Group, GroupStatus, Ranking

logger = logging.getLogger("rooranking.festival")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'rooranking_festival.db'}"

ACTIVE_YEAR_KEY = "activeYear"
MIN_SCORE = 1
MAX_SCORE = 10

# Lookup-then-write upserts retry once after losing a unique-constraint race:
# the second attempt sees the winner's row and turns into an update.
_UPSERT_ATTEMPTS = 2

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_artists = Table(
    "artists",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("year", Integer, nullable=False, index=True),
    UniqueConstraint("name", "year", name="uq_artist_name_year"),
)

_groups = Table(
    "bali_groups",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("year", Integer, nullable=False, index=True),
    Column("artist_ids", Text, nullable=False),  # JSON array of artist ids
    Column("status", String(10)),  # "current" | "next" | NULL
    Column("sort_order", Integer, nullable=False),
    # NULLs are distinct under UNIQUE in SQLite and PostgreSQL, so any number
    # of status-less groups coexist while a second "current" in a year fails.
    UniqueConstraint("year", "status", name="uq_group_year_status"),
)

_rankings = Table(
    "rankings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("artist_id", Integer, nullable=False, index=True),
    Column("score", Integer, nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("user_id", "artist_id", name="uq_ranking_user_artist"),
)

_settings = Table(
    "settings",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("key", String(100), nullable=False, unique=True),
    Column("value", Text),  # JSON-encoded
)

_avatars = Table(
    "avatars",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("storage_id", String(64), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("created_at", String(32), nullable=False),
)


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
# Helpers
# ---------------------------------------------------------------------------


def _status_value(status: Optional[GroupStatus]) -> Optional[str]:
    return status.value if status is not None else None


def _clear_status(conn, year: int, status: GroupStatus, keep_id: Optional[int] = None) -> None:
    """Strip `status` from every group in `year` except `keep_id`.

    Must run in the same transaction as the write that assigns the status,
    so no reader ever sees two holders.
    """
    stmt = _groups.update().where((_groups.c.year == year) & (_groups.c.status == status.value))
    if keep_id is not None:
        stmt = stmt.where(_groups.c.id != keep_id)
    conn.execute(stmt.values(status=None))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class FestivalStore:
    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            # SQLite requires check_same_thread=False when used from FastAPI's
            # threadpool where the same connection may be accessed across
            # threads managed by the ASGI server.
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Artists
    # ------------------------------------------------------------------

    def add_artists(self, names: list[str], year: int) -> AddArtistsResult:
        """Insert each non-blank trimmed name for `year`, skipping existing ones.

        Processing follows input order; both partitions keep relative order.
        A name repeated within the batch is added once and then skipped.
        A concurrent insert of the same (name, year) also lands in skipped.
        """
        result = AddArtistsResult()
        for raw in names:
            name = raw.strip()
            if not name:
                continue
            if self.get_artist_by_name(name, year) is not None:
                result.skipped.append(name)
                continue
            try:
                with self.engine.connect() as conn:
                    conn.execute(_artists.insert().values(name=name, year=year))
                    conn.commit()
            except IntegrityError:
                result.skipped.append(name)
                continue
            result.added.append(name)
        logger.info("Bulk add for %d: %d added, %d skipped", year, len(result.added), len(result.skipped))
        return result

    def get_artist(self, artist_id: int) -> Optional[Artist]:
        """Fetch a single artist by ID. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_artists.select().where(_artists.c.id == artist_id)).fetchone()
        return _row_to_artist(row) if row is not None else None

    def get_artist_by_name(self, name: str, year: int) -> Optional[Artist]:
        """Exact (case-sensitive) (name, year) lookup. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _artists.select().where((_artists.c.name == name) & (_artists.c.year == year))
            ).fetchone()
        return _row_to_artist(row) if row is not None else None

    def get_artists_by_year(self, year: int) -> list[Artist]:
        """Return every artist billed for `year`, ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _artists.select().where(_artists.c.year == year).order_by(_artists.c.name, _artists.c.id)
            ).fetchall()
        return [_row_to_artist(r) for r in rows]

    def get_years_with_artists(self) -> list[int]:
        """Distinct years that have at least one artist, most recent first."""
        with self.engine.connect() as conn:
            rows = conn.execute(select(_artists.c.year).distinct().order_by(_artists.c.year.desc())).fetchall()
        return [r.year for r in rows]

    def delete_artist(self, artist_id: int) -> bool:
        """Delete an artist with its rankings and group memberships.

        One transaction, dependents before the parent: rankings, then the id
        is pruned from every group in every year (full scan -- artist_ids is
        a JSON column), then the artist row. Returns False if not found.
        """
        with self.engine.begin() as conn:
            found = conn.execute(select(_artists.c.id).where(_artists.c.id == artist_id)).fetchone()
            if found is None:
                return False
            removed = conn.execute(_rankings.delete().where(_rankings.c.artist_id == artist_id)).rowcount
            for row in conn.execute(select(_groups.c.id, _groups.c.artist_ids)).fetchall():
                member_ids: list[int] = json.loads(row.artist_ids)
                if artist_id in member_ids:
                    conn.execute(
                        _groups.update()
                        .where(_groups.c.id == row.id)
                        .values(artist_ids=json.dumps([i for i in member_ids if i != artist_id]))
                    )
            conn.execute(_artists.delete().where(_artists.c.id == artist_id))
        logger.info("Deleted artist %s (%d rankings removed)", artist_id, removed)
        return True

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def get_group(self, group_id: int) -> Optional[Group]:
        with self.engine.connect() as conn:
            row = conn.execute(_groups.select().where(_groups.c.id == group_id)).fetchone()
        return _row_to_group(row) if row is not None else None

    def get_groups_by_year(self, year: int) -> list[Group]:
        """Return the year's groups in insertion order."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _groups.select().where(_groups.c.year == year).order_by(_groups.c.sort_order, _groups.c.id)
            ).fetchall()
        return [_row_to_group(r) for r in rows]

    def create_group(
        self,
        name: str,
        year: int,
        artist_ids: list[int],
        status: Optional[GroupStatus] = None,
    ) -> Group:
        """Append a group to `year` (order = max existing order + 1).

        A non-null status is taken away from whichever group in the year
        held it, in the same transaction.
        """
        name = name.strip()
        if not name:
            raise InvalidGroupName()
        group_id = None
        for attempt in range(_UPSERT_ATTEMPTS):
            try:
                with self.engine.begin() as conn:
                    max_order = conn.execute(
                        select(func.max(_groups.c.sort_order)).where(_groups.c.year == year)
                    ).scalar()
                    if status is not None:
                        _clear_status(conn, year, status)
                    result = conn.execute(
                        _groups.insert().values(
                            name=name,
                            year=year,
                            artist_ids=json.dumps(list(artist_ids)),
                            status=_status_value(status),
                            sort_order=0 if max_order is None else max_order + 1,
                        )
                    )
                    group_id = result.inserted_primary_key[0]
                break
            except IntegrityError:
                if attempt == _UPSERT_ATTEMPTS - 1:
                    raise
                logger.info("Group status conflict in %d, retrying", year)
        return self.get_group(group_id)

    def update_group(self, group_id: int, **fields) -> Optional[Group]:
        """Update name, artist_ids and/or status on an existing group.

        Only keys present in `fields` are written; status=None clears it.
        Returns the updated Group, or None if group_id was not found.
        """
        unknown = set(fields) - {"name", "artist_ids", "status"}
        if unknown:
            raise ValueError(f"Unknown group fields: {unknown!r}")
        group = self.get_group(group_id)
        if group is None:
            return None

        values: dict = {}
        if "name" in fields:
            name = (fields["name"] or "").strip()
            if not name:
                raise InvalidGroupName()
            values["name"] = name
        if "artist_ids" in fields:
            values["artist_ids"] = json.dumps(list(fields["artist_ids"] or []))
        status: Optional[GroupStatus] = fields.get("status")
        if "status" in fields:
            values["status"] = _status_value(status)
        if not values:
            return group

        for attempt in range(_UPSERT_ATTEMPTS):
            try:
                with self.engine.begin() as conn:
                    if status is not None:
                        _clear_status(conn, group.year, status, keep_id=group_id)
                    conn.execute(_groups.update().where(_groups.c.id == group_id).values(**values))
                break
            except IntegrityError:
                if attempt == _UPSERT_ATTEMPTS - 1:
                    raise
                logger.info("Group status conflict in %d, retrying", group.year)
        return self.get_group(group_id)

    def delete_group(self, group_id: int) -> bool:
        """Delete a group. Member artists are untouched. Returns False if not found."""
        with self.engine.connect() as conn:
            result = conn.execute(_groups.delete().where(_groups.c.id == group_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Rankings
    # ------------------------------------------------------------------

    def get_ranking(self, user_id: int, artist_id: int) -> Optional[Ranking]:
        with self.engine.connect() as conn:
            row = conn.execute(
                _rankings.select().where((_rankings.c.user_id == user_id) & (_rankings.c.artist_id == artist_id))
            ).fetchone()
        return _row_to_ranking(row) if row is not None else None

    def list_rankings_for_artist(self, artist_id: int) -> list[Ranking]:
        with self.engine.connect() as conn:
            rows = conn.execute(_rankings.select().where(_rankings.c.artist_id == artist_id)).fetchall()
        return [_row_to_ranking(r) for r in rows]

    def list_rankings_for_user(self, user_id: int) -> list[Ranking]:
        with self.engine.connect() as conn:
            rows = conn.execute(_rankings.select().where(_rankings.c.user_id == user_id)).fetchall()
        return [_row_to_ranking(r) for r in rows]

    def set_ranking(self, user_id: int, artist_id: int, score: int) -> Ranking:
        """Create or overwrite the caller's score for an artist.

        Raises ScoreOutOfRange before touching the store, and ArtistNotFound
        for an unknown artist. The write is update-first, insert-if-missing;
        an insert that collides with a concurrent one on
        UNIQUE(user_id, artist_id) is retried, and the retry updates the
        winner's row. One (user, artist) pair never has two rows.
        """
        if isinstance(score, bool) or not MIN_SCORE <= score <= MAX_SCORE:
            raise ScoreOutOfRange()
        if self.get_artist(artist_id) is None:
            raise ArtistNotFound()

        key = (_rankings.c.user_id == user_id) & (_rankings.c.artist_id == artist_id)
        for attempt in range(_UPSERT_ATTEMPTS):
            try:
                with self.engine.begin() as conn:
                    now = now_iso()
                    updated = conn.execute(_rankings.update().where(key).values(score=score, updated_at=now)).rowcount
                    if updated == 0:
                        conn.execute(
                            _rankings.insert().values(
                                user_id=user_id,
                                artist_id=artist_id,
                                score=score,
                                updated_at=now,
                            )
                        )
                break
            except IntegrityError:
                if attempt == _UPSERT_ATTEMPTS - 1:
                    raise
                logger.info("Ranking upsert race for user=%s artist=%s, retrying", user_id, artist_id)
        return self.get_ranking(user_id, artist_id)

    def clear_ranking(self, user_id: int, artist_id: int) -> bool:
        """Remove the caller's score for an artist. Returns False if there was none."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _rankings.delete().where((_rankings.c.user_id == user_id) & (_rankings.c.artist_id == artist_id))
            )
            conn.commit()
        return result.rowcount > 0

    def get_user_rankings_for_year(self, user_id: int, year: int) -> dict[int, int]:
        """Return {artist_id: score} for the user's rankings of `year`'s artists."""
        stmt = (
            select(_rankings.c.artist_id, _rankings.c.score)
            .select_from(_rankings.join(_artists, _rankings.c.artist_id == _artists.c.id))
            .where((_rankings.c.user_id == user_id) & (_artists.c.year == year))
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return {row.artist_id: row.score for row in rows}

    def get_aggregate_rankings(self, year: int) -> list[AggregateRow]:
        """Return per-artist rating count and average for `year`.

        LEFT OUTER JOIN keeps unrated artists; they report avg_score=None and
        rating_count=0. Sorted by average descending, unrated last, then name.
        """
        stmt = (
            select(
                _artists.c.id,
                _artists.c.name,
                func.count(_rankings.c.id).label("rating_count"),
                func.avg(_rankings.c.score).label("avg_score"),
            )
            .select_from(_artists.outerjoin(_rankings, _rankings.c.artist_id == _artists.c.id))
            .where(_artists.c.year == year)
            .group_by(_artists.c.id, _artists.c.name)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()

        results = [
            AggregateRow(
                artist_id=row.id,
                name=row.name,
                avg_score=float(row.avg_score) if row.rating_count else None,
                rating_count=row.rating_count,
            )
            for row in rows
        ]
        results.sort(key=lambda r: (r.avg_score is None, -(r.avg_score or 0.0), r.name.lower()))
        return results

    def delete_rankings_for_user(self, user_id: int) -> list[Ranking]:
        """Delete and return every ranking owned by a user (one transaction).

        The returned rows let the user-deletion saga restore them if the
        later step fails.
        """
        with self.engine.begin() as conn:
            rows = conn.execute(_rankings.select().where(_rankings.c.user_id == user_id)).fetchall()
            conn.execute(_rankings.delete().where(_rankings.c.user_id == user_id))
        return [_row_to_ranking(r) for r in rows]

    def restore_rankings(self, rankings: list[Ranking]) -> int:
        """Re-insert rankings removed by delete_rankings_for_user().

        A row written for the same (user, artist) in the meantime is newer
        and wins; the stale copy is dropped. Returns the number restored.
        """
        restored = 0
        for ranking in rankings:
            try:
                with self.engine.connect() as conn:
                    conn.execute(
                        _rankings.insert().values(
                            user_id=ranking.user_id,
                            artist_id=ranking.artist_id,
                            score=ranking.score,
                            updated_at=ranking.updated_at,
                        )
                    )
                    conn.commit()
                restored += 1
            except IntegrityError:
                continue
        return restored

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_setting(self, key: str):
        """Return the decoded value for `key`, or None if unset."""
        with self.engine.connect() as conn:
            row = conn.execute(_settings.select().where(_settings.c.key == key)).fetchone()
        return json.loads(row.value) if row is not None and row.value is not None else None

    def set_setting(self, key: str, value) -> None:
        """Upsert a setting (update-first, insert-if-missing, retry on key race)."""
        encoded = json.dumps(value)
        for attempt in range(_UPSERT_ATTEMPTS):
            try:
                with self.engine.begin() as conn:
                    updated = conn.execute(
                        _settings.update().where(_settings.c.key == key).values(value=encoded)
                    ).rowcount
                    if updated == 0:
                        conn.execute(_settings.insert().values(key=key, value=encoded))
                return
            except IntegrityError:
                if attempt == _UPSERT_ATTEMPTS - 1:
                    raise

    def get_active_year(self) -> int:
        """The festival year shown by default; falls back to the current calendar year."""
        value = self.get_setting(ACTIVE_YEAR_KEY)
        if value is None:
            return datetime.now(timezone.utc).year
        return int(value)

    def set_active_year(self, year: int) -> None:
        self.set_setting(ACTIVE_YEAR_KEY, year)

    # ------------------------------------------------------------------
    # Avatar catalog
    # ------------------------------------------------------------------

    def create_avatar(self, avatar: AvatarImage) -> int:
        """Register an uploaded image. Raises IntegrityError if storage_id is already saved."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _avatars.insert().values(
                    storage_id=avatar.storage_id,
                    name=avatar.name,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_avatar(self, avatar_id: int) -> Optional[AvatarImage]:
        with self.engine.connect() as conn:
            row = conn.execute(_avatars.select().where(_avatars.c.id == avatar_id)).fetchone()
        return _row_to_avatar(row) if row is not None else None

    def get_avatar_by_storage_id(self, storage_id: str) -> Optional[AvatarImage]:
        with self.engine.connect() as conn:
            row = conn.execute(_avatars.select().where(_avatars.c.storage_id == storage_id)).fetchone()
        return _row_to_avatar(row) if row is not None else None

    def list_avatars(self) -> list[AvatarImage]:
        """Return the catalog, oldest upload first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_avatars.select().order_by(_avatars.c.created_at, _avatars.c.id)).fetchall()
        return [_row_to_avatar(r) for r in rows]

    def rename_avatar(self, avatar_id: int, name: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_avatars.update().where(_avatars.c.id == avatar_id).values(name=name))
            conn.commit()
        return result.rowcount > 0

    def delete_avatar(self, avatar_id: int) -> Optional[AvatarImage]:
        """Remove a catalog entry. Returns the deleted entry, or None if not found."""
        avatar = self.get_avatar(avatar_id)
        if avatar is None:
            return None
        with self.engine.connect() as conn:
            conn.execute(_avatars.delete().where(_avatars.c.id == avatar_id))
            conn.commit()
        return avatar

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern -- DB row -> domain dataclass)
# ---------------------------------------------------------------------------


def _row_to_artist(row) -> Artist:
    return Artist(id=row.id, name=row.name, year=row.year)


def _row_to_group(row) -> Group:
    return Group(
        id=row.id,
        name=row.name,
        year=row.year,
        artist_ids=json.loads(row.artist_ids) if row.artist_ids else [],
        status=GroupStatus(row.status) if row.status else None,
        order=row.sort_order,
    )


def _row_to_ranking(row) -> Ranking:
    return Ranking(
        id=row.id,
        user_id=row.user_id,
        artist_id=row.artist_id,
        score=row.score,
        updated_at=row.updated_at,
    )


def _row_to_avatar(row) -> AvatarImage:
    return AvatarImage(
        id=row.id,
        storage_id=row.storage_id,
        name=row.name,
        created_at=row.created_at,
    )
